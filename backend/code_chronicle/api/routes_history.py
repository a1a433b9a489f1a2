"""Snapshot and reconstruction routes."""

from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Query

from code_chronicle.api.dependencies import get_engine
from code_chronicle.api.errors import to_http_exception
from code_chronicle.engine import TimeMachine
from code_chronicle.models.dto import (
    CaptureRequest,
    CaptureResponse,
    ExportRequest,
    ExportResponse,
    FileContentResponse,
    RebuildRequest,
    RebuildResponse,
    RenameRequest,
    RestoreResponse,
    SnapshotFilesResponse,
    SnapshotResponse,
    TimestampsResponse,
    VerifyRequest,
    VerifyResponse,
)

router = APIRouter()


@router.get("/snapshots", response_model=list[SnapshotResponse], summary="List retained snapshots, oldest first")
async def list_snapshots(engine: TimeMachine = Depends(get_engine)) -> list[SnapshotResponse]:
    return [SnapshotResponse.from_snapshot(snapshot) for snapshot in engine.list_snapshots()]


@router.post("/snapshots", response_model=CaptureResponse, summary="Capture the workspace as a snapshot")
async def capture_snapshot(
    request: CaptureRequest,
    engine: TimeMachine = Depends(get_engine),
) -> CaptureResponse:
    created = engine.capture_snapshot(request.description, request.affected_paths)
    if not created:
        return CaptureResponse(created=False)
    latest = engine.latest_snapshot()
    return CaptureResponse(created=True, snapshot=SnapshotResponse.from_snapshot(latest) if latest else None)


@router.get("/snapshots/{snapshot_id}", response_model=SnapshotResponse, summary="Describe one snapshot")
async def get_snapshot(snapshot_id: str, engine: TimeMachine = Depends(get_engine)) -> SnapshotResponse:
    return SnapshotResponse.from_snapshot(engine.get_snapshot(snapshot_id))


@router.patch("/snapshots/{snapshot_id}", response_model=SnapshotResponse, summary="Rename a snapshot")
async def rename_snapshot(
    snapshot_id: str,
    request: RenameRequest,
    engine: TimeMachine = Depends(get_engine),
) -> SnapshotResponse:
    return SnapshotResponse.from_snapshot(engine.rename_snapshot(snapshot_id, request.description))


@router.get("/snapshots/{snapshot_id}/files", response_model=SnapshotFilesResponse, summary="List files in a snapshot")
async def snapshot_files(snapshot_id: str, engine: TimeMachine = Depends(get_engine)) -> SnapshotFilesResponse:
    return SnapshotFilesResponse(snapshot_id=snapshot_id, paths=engine.get_snapshot_files(snapshot_id))


@router.get(
    "/snapshots/{snapshot_id}/content",
    response_model=FileContentResponse,
    summary="Return a file's content as of a snapshot",
)
async def snapshot_content(
    snapshot_id: str,
    path: str = Query(..., min_length=1),
    engine: TimeMachine = Depends(get_engine),
) -> FileContentResponse:
    content = engine.get_file_content_at_snapshot(snapshot_id, path)
    if content is None:
        raise HTTPException(status_code=404, detail=f"{path} is not part of snapshot {snapshot_id}")
    return FileContentResponse(snapshot_id=snapshot_id, path=path, content=content)


@router.post("/snapshots/{snapshot_id}/export", response_model=ExportResponse, summary="Export a snapshot")
async def export_snapshot(
    snapshot_id: str,
    request: ExportRequest,
    engine: TimeMachine = Depends(get_engine),
) -> ExportResponse:
    destination = Path(request.destination).expanduser()
    paths = engine.export_snapshot(snapshot_id, destination)
    return ExportResponse(snapshot_id=snapshot_id, destination=str(destination), paths=paths)


@router.post("/snapshots/{snapshot_id}/restore", response_model=RestoreResponse, summary="Restore the workspace")
async def restore_snapshot(snapshot_id: str, engine: TimeMachine = Depends(get_engine)) -> RestoreResponse:
    return RestoreResponse(**engine.restore_snapshot(snapshot_id).to_dict())


@router.post("/rebuild", response_model=RebuildResponse, summary="Reconstruct a file at a point in time")
async def rebuild(request: RebuildRequest, engine: TimeMachine = Depends(get_engine)) -> RebuildResponse:
    result = engine.rebuild(request.path, request.timestamp)
    if result.error is not None:
        raise to_http_exception(result.error)
    return RebuildResponse(
        path=result.path,
        timestamp=result.timestamp,
        content=result.content,
        patches_applied=result.patches_applied,
        recoveries=result.recoveries,
        source=result.source,
    )


@router.post("/verify", response_model=VerifyResponse, summary="Check a reconstruction against known content")
async def verify(request: VerifyRequest, engine: TimeMachine = Depends(get_engine)) -> VerifyResponse:
    ok = engine.verify(request.path, request.timestamp, request.expected)
    return VerifyResponse(path=request.path, timestamp=request.timestamp, ok=ok)


@router.get("/timestamps", response_model=TimestampsResponse, summary="Recorded change times for a path")
async def timestamps(
    path: str = Query(..., min_length=1),
    engine: TimeMachine = Depends(get_engine),
) -> TimestampsResponse:
    return TimestampsResponse(
        path=path,
        timestamps=engine.get_available_timestamps(path),
        earliest=engine.get_earliest_timestamp(path),
        latest=engine.get_latest_timestamp(path),
    )


@router.get("/paths", response_model=list[str], summary="Every path with recorded history")
async def tracked_paths(engine: TimeMachine = Depends(get_engine)) -> list[str]:
    return engine.tracked_paths()
