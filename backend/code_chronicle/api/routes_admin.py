"""Administrative routes for Code Chronicle."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from code_chronicle.api.dependencies import get_engine
from code_chronicle.core.metrics import metrics_response
from code_chronicle.engine import TimeMachine
from code_chronicle.models.dto import ClearResponse, CompactionResponse, EnabledRequest, StatusResponse

router = APIRouter()


@router.get("/status", response_model=StatusResponse, summary="Recording state and store statistics")
async def status(engine: TimeMachine = Depends(get_engine)) -> StatusResponse:
    return StatusResponse(**engine.status())


@router.post("/enabled", response_model=StatusResponse, summary="Enable or disable recording")
async def set_enabled(request: EnabledRequest, engine: TimeMachine = Depends(get_engine)) -> StatusResponse:
    engine.set_enabled(request.enabled)
    return StatusResponse(**engine.status())


@router.post("/pause", response_model=StatusResponse, summary="Pause recording of edits")
async def pause(engine: TimeMachine = Depends(get_engine)) -> StatusResponse:
    engine.pause()
    return StatusResponse(**engine.status())


@router.post("/resume", response_model=StatusResponse, summary="Resume recording of edits")
async def resume(engine: TimeMachine = Depends(get_engine)) -> StatusResponse:
    engine.resume()
    return StatusResponse(**engine.status())


@router.post("/compact", response_model=CompactionResponse, summary="Apply the retention policy now")
async def compact(engine: TimeMachine = Depends(get_engine)) -> CompactionResponse:
    return CompactionResponse(**engine.compact().to_dict())


@router.post("/flush", response_model=StatusResponse, summary="Persist pending edits and the event log")
async def flush(engine: TimeMachine = Depends(get_engine)) -> StatusResponse:
    engine.flush()
    return StatusResponse(**engine.status())


@router.post("/clear", response_model=ClearResponse, summary="Delete all recorded history")
async def clear(engine: TimeMachine = Depends(get_engine)) -> ClearResponse:
    engine.clear_history()
    return ClearResponse(status="ok")


@router.get("/metrics", summary="Prometheus metrics")
async def metrics() -> Response:
    return metrics_response()
