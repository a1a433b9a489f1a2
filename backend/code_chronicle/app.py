"""FastAPI application setup for Code Chronicle."""

from __future__ import annotations

from fastapi import FastAPI

from code_chronicle.api.errors import chronicle_error_handler
from code_chronicle.api.routes_admin import router as admin_router
from code_chronicle.api.routes_events import router as events_router
from code_chronicle.api.routes_history import router as history_router
from code_chronicle.core.config import get_settings
from code_chronicle.core.errors import ChronicleError
from code_chronicle.core.logging import configure_logging
from code_chronicle.engine import TimeMachine

configure_logging()

app = FastAPI(
    title="Code Chronicle",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_exception_handler(ChronicleError, chronicle_error_handler)

app.include_router(history_router, prefix="", tags=["history"])
app.include_router(events_router, prefix="", tags=["events"])
app.include_router(admin_router, prefix="", tags=["admin"])


@app.on_event("startup")
async def startup() -> None:
    """Open the workspace history and start watching if configured."""
    settings = get_settings()
    engine = TimeMachine(settings).open()
    if settings.watch:
        engine.watch()
    app.state.engine = engine


@app.on_event("shutdown")
async def shutdown() -> None:
    engine: TimeMachine | None = getattr(app.state, "engine", None)
    if engine is not None:
        engine.close()
        app.state.engine = None


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}
