"""Translation of engine errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from code_chronicle.core.errors import (
    BlobNotFound,
    BrokenChain,
    ChronicleError,
    InvalidArgument,
    NoHistory,
    PatchApplicationFailed,
    SnapshotNotFound,
)
from code_chronicle.core.logging import get_logger

logger = get_logger(__name__)

_STATUS_CODES: dict[type[ChronicleError], int] = {
    InvalidArgument: 400,
    SnapshotNotFound: 404,
    NoHistory: 404,
    PatchApplicationFailed: 409,
    BlobNotFound: 500,
    BrokenChain: 500,
}


def status_for(exc: ChronicleError) -> int:
    for error_type in type(exc).__mro__:
        status = _STATUS_CODES.get(error_type)
        if status is not None:
            return status
    return 500


def to_http_exception(exc: ChronicleError) -> HTTPException:
    status = status_for(exc)
    if status >= 500:
        logger.error("History integrity error: %s", exc.message, extra={"ctx_code": exc.code})
    return HTTPException(status_code=status, detail=exc.to_dict())


async def chronicle_error_handler(request: Request, exc: ChronicleError) -> JSONResponse:
    http_exc = to_http_exception(exc)
    return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})


__all__ = ["chronicle_error_handler", "status_for", "to_http_exception"]
