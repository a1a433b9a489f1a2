"""Internal dataclasses representing persisted entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True, slots=True)
class FullBlob:
    content: str


@dataclass(frozen=True, slots=True)
class DeltaBlob:
    base: str
    script: str


Blob = Union[FullBlob, DeltaBlob]


@dataclass(frozen=True, slots=True)
class CursorPosition:
    line: int = 0
    character: int = 0


@dataclass(frozen=True, slots=True)
class Snapshot:
    id: str
    timestamp: int
    description: str
    files: dict[str, str]
    affected_paths: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class FileSnapshot:
    id: str
    session_id: str
    path: str
    content: str
    timestamp: int


@dataclass(frozen=True, slots=True)
class PatchRecord:
    id: str
    session_id: str
    path: str
    codec: str
    script: str
    base_content: str
    timestamp: int
    cursor: CursorPosition | None = None


@dataclass(slots=True)
class Session:
    id: str
    start_time: int
    last_activity_time: int
    is_active: bool = True
    repository: str | None = None
    branch: str | None = None


TEXT_CODEC = "text"
LINE_CODEC = "line"
CODECS = (TEXT_CODEC, LINE_CODEC)

__all__ = [
    "Blob",
    "FullBlob",
    "DeltaBlob",
    "CursorPosition",
    "Snapshot",
    "FileSnapshot",
    "PatchRecord",
    "Session",
    "TEXT_CODEC",
    "LINE_CODEC",
    "CODECS",
]
