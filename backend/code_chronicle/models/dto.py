"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from code_chronicle.models.entities import Snapshot
from code_chronicle.utils.time import ms_to_datetime


class SnapshotResponse(BaseModel):
    id: str
    timestamp: int
    created_at: datetime
    description: str
    affected_paths: list[str]
    file_count: int

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> "SnapshotResponse":
        return cls(
            id=snapshot.id,
            timestamp=snapshot.timestamp,
            created_at=ms_to_datetime(snapshot.timestamp),
            description=snapshot.description,
            affected_paths=list(snapshot.affected_paths),
            file_count=len(snapshot.files),
        )


class SnapshotFilesResponse(BaseModel):
    snapshot_id: str
    paths: list[str]


class FileContentResponse(BaseModel):
    snapshot_id: str
    path: str
    content: str | None


class CaptureRequest(BaseModel):
    description: str = Field(default="Manual snapshot", min_length=1)
    affected_paths: list[str] = Field(default_factory=list)


class CaptureResponse(BaseModel):
    created: bool
    snapshot: SnapshotResponse | None = None


class RenameRequest(BaseModel):
    description: str = Field(min_length=1)


class ExportRequest(BaseModel):
    destination: str


class ExportResponse(BaseModel):
    snapshot_id: str
    destination: str
    paths: list[str]


class RestoreResponse(BaseModel):
    snapshot_id: str
    written: list[str]
    deleted: list[str]
    removed_dirs: list[str]


class RebuildRequest(BaseModel):
    path: str = Field(min_length=1)
    timestamp: int = Field(ge=0)


class RebuildResponse(BaseModel):
    path: str
    timestamp: int
    content: str
    patches_applied: int
    recoveries: int
    source: str | None


class VerifyRequest(RebuildRequest):
    expected: str


class VerifyResponse(BaseModel):
    path: str
    timestamp: int
    ok: bool


class TimestampsResponse(BaseModel):
    path: str
    timestamps: list[int]
    earliest: int | None
    latest: int | None


class EventResponse(BaseModel):
    accepted: bool


class EnabledRequest(BaseModel):
    enabled: bool


class SessionResponse(BaseModel):
    id: str
    start_time: int
    last_activity_time: int
    is_active: bool
    repository: str | None
    branch: str | None


class StatusResponse(BaseModel):
    enabled: bool
    paused: bool
    session_id: str | None
    snapshots: int
    patch_records: int
    blobs: int
    store_bytes: int


class CompactionResponse(BaseModel):
    evicted: list[str]
    blobs_reclaimed: int
    store_bytes: int
    oversize: bool


class ClearResponse(BaseModel):
    status: Literal["ok"]


__all__ = [
    "SnapshotResponse",
    "SnapshotFilesResponse",
    "FileContentResponse",
    "CaptureRequest",
    "CaptureResponse",
    "RenameRequest",
    "ExportRequest",
    "ExportResponse",
    "RestoreResponse",
    "RebuildRequest",
    "RebuildResponse",
    "VerifyRequest",
    "VerifyResponse",
    "TimestampsResponse",
    "EventResponse",
    "EnabledRequest",
    "SessionResponse",
    "StatusResponse",
    "CompactionResponse",
    "ClearResponse",
]
