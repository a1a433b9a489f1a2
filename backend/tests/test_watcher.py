"""Tests for translating filesystem events into workspace events."""

from __future__ import annotations

from pathlib import Path

from watchdog.events import (
    DirCreatedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from code_chronicle.capture.watcher import WorkspaceEventHandler
from code_chronicle.capture.workspace import WorkspaceScanner
from code_chronicle.models.events import FileCreateEvent, FileDeleteEvent, FileSaveEvent


def _handler(workspace: Path) -> tuple[WorkspaceEventHandler, list]:
    received: list = []
    return WorkspaceEventHandler(WorkspaceScanner(workspace), received.append), received


def test_create_and_modify_carry_disk_content(workspace: Path) -> None:
    handler, received = _handler(workspace)
    target = workspace / "src" / "a.py"
    target.parent.mkdir()
    target.write_text("x = 1\n", encoding="utf-8")

    handler.on_created(FileCreatedEvent(str(target)))
    handler.on_modified(FileModifiedEvent(str(target)))
    handler.on_created(DirCreatedEvent(str(target.parent)))

    assert received == [
        FileCreateEvent(path="src/a.py", content="x = 1\n"),
        FileSaveEvent(path="src/a.py", content="x = 1\n"),
    ]


def test_delete_and_move(workspace: Path) -> None:
    handler, received = _handler(workspace)
    moved = workspace / "b.txt"
    moved.write_text("moved", encoding="utf-8")

    handler.on_deleted(FileDeletedEvent(str(workspace / "gone.txt")))
    handler.on_moved(FileMovedEvent(str(workspace / "a.txt"), str(moved)))

    assert received == [
        FileDeleteEvent(path="gone.txt"),
        FileDeleteEvent(path="a.txt"),
        FileCreateEvent(path="b.txt", content="moved"),
    ]


def test_untracked_paths_are_ignored(workspace: Path, tmp_path: Path) -> None:
    handler, received = _handler(workspace)
    secret = workspace / ".env"
    secret.write_text("TOKEN=1", encoding="utf-8")
    outside = tmp_path / "outside.txt"
    outside.write_text("x", encoding="utf-8")

    handler.on_modified(FileModifiedEvent(str(secret)))
    handler.on_created(FileCreatedEvent(str(outside)))
    handler.on_deleted(FileDeletedEvent(str(workspace / ".git" / "index")))

    assert received == []
