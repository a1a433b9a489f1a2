"""Editor event and session routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from code_chronicle.api.dependencies import get_engine
from code_chronicle.engine import TimeMachine
from code_chronicle.models.dto import EventResponse, SessionResponse
from code_chronicle.models.entities import Session
from code_chronicle.models.events import (
    FileChangeEvent,
    FileCreateEvent,
    FileDeleteEvent,
    FileOpenEvent,
    FileSaveEvent,
)

router = APIRouter()


@router.post("/events/open", response_model=EventResponse, summary="A document was opened")
async def document_opened(event: FileOpenEvent, engine: TimeMachine = Depends(get_engine)) -> EventResponse:
    return EventResponse(accepted=engine.handle_open(event))


@router.post("/events/change", response_model=EventResponse, summary="A document was edited")
async def document_changed(event: FileChangeEvent, engine: TimeMachine = Depends(get_engine)) -> EventResponse:
    return EventResponse(accepted=engine.handle_change(event))


@router.post("/events/create", response_model=EventResponse, summary="A file was created")
async def file_created(event: FileCreateEvent, engine: TimeMachine = Depends(get_engine)) -> EventResponse:
    return EventResponse(accepted=engine.handle_create(event))


@router.post("/events/delete", response_model=EventResponse, summary="A file was deleted")
async def file_deleted(event: FileDeleteEvent, engine: TimeMachine = Depends(get_engine)) -> EventResponse:
    return EventResponse(accepted=engine.handle_delete(event))


@router.post("/events/save", response_model=EventResponse, summary="A document was saved")
async def document_saved(event: FileSaveEvent, engine: TimeMachine = Depends(get_engine)) -> EventResponse:
    return EventResponse(accepted=engine.handle_save(event))


@router.get("/sessions", response_model=list[SessionResponse], summary="List recorded sessions")
async def list_sessions(engine: TimeMachine = Depends(get_engine)) -> list[SessionResponse]:
    return [_to_response(session) for session in engine.list_sessions()]


@router.post("/sessions/start", response_model=SessionResponse, summary="Start or return the active session")
async def start_session(engine: TimeMachine = Depends(get_engine)) -> SessionResponse:
    return _to_response(engine.start_session())


@router.post("/sessions/stop", response_model=SessionResponse | None, summary="End the active session")
async def stop_session(engine: TimeMachine = Depends(get_engine)) -> SessionResponse | None:
    session = engine.stop_session()
    return _to_response(session) if session else None


def _to_response(session: Session) -> SessionResponse:
    return SessionResponse(
        id=session.id,
        start_time=session.start_time,
        last_activity_time=session.last_activity_time,
        is_active=session.is_active,
        repository=session.repository,
        branch=session.branch,
    )
