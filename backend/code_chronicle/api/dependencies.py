"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import HTTPException, Request

from code_chronicle.engine import TimeMachine


def get_engine(request: Request) -> TimeMachine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="History engine is not running")
    return engine


__all__ = ["get_engine"]
