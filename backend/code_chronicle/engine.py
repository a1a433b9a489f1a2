"""The workspace time machine: capture, storage and reconstruction in one context.

A :class:`TimeMachine` owns the blob archive and event log under
``settings.data_dir`` for a single workspace. Every mutation and every read
runs under one re-entrant lock, so callers observe either the state before a
mutation or the state after it.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from code_chronicle.capture.recorder import EditRecorder
from code_chronicle.capture.sessions import SessionTracker
from code_chronicle.capture.watcher import Watcher
from code_chronicle.capture.workspace import WorkspaceScanner
from code_chronicle.core.config import Settings, get_settings
from code_chronicle.core.errors import InvalidArgument, SnapshotNotFound
from code_chronicle.core.logging import get_logger
from code_chronicle.core.metrics import SNAPSHOT_COUNT, SNAPSHOTS_CAPTURED, STORE_BYTES
from code_chronicle.history.event_log import EventLog
from code_chronicle.history.rebuild import Rebuilder, RebuildResult
from code_chronicle.history.retention import CompactionReport, RetentionPolicy
from code_chronicle.models.entities import CursorPosition, FileSnapshot, PatchRecord, Session, Snapshot
from code_chronicle.models.events import (
    FileChangeEvent,
    FileCreateEvent,
    FileDeleteEvent,
    FileOpenEvent,
    FileSaveEvent,
)
from code_chronicle.store.archive import LEGACY_HISTORY_DIR, load_archive, migrate_legacy_history, save_archive
from code_chronicle.store.blob_store import BlobStore
from code_chronicle.utils.hashing import content_hash
from code_chronicle.utils.ids import new_id
from code_chronicle.utils.periodic import PeriodicTask
from code_chronicle.utils.time import now_ms

logger = get_logger(__name__)

INITIAL_SNAPSHOT_DESCRIPTION = "Initial workspace state"

WorkspaceEvent = FileOpenEvent | FileChangeEvent | FileCreateEvent | FileDeleteEvent | FileSaveEvent


@dataclass(slots=True)
class RestoreReport:
    snapshot_id: str
    written: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    removed_dirs: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "snapshot_id": self.snapshot_id,
            "written": list(self.written),
            "deleted": list(self.deleted),
            "removed_dirs": list(self.removed_dirs),
        }


class TimeMachine:
    """Record a workspace's history and answer questions about its past."""

    def __init__(
        self,
        settings: Settings | None = None,
        clock: Callable[[], int] = now_ms,
        background: bool = True,
    ) -> None:
        self.settings = settings or get_settings()
        self._clock = clock
        self._lock = threading.RLock()
        self.scanner = WorkspaceScanner.from_settings(self.settings)
        self.blob_store = BlobStore.from_settings(self.settings)
        self.event_log = EventLog(self.settings.db_path)
        self.rebuilder = Rebuilder(self.event_log, self.blob_store)
        self.retention = RetentionPolicy.from_settings(self.settings)
        self.sessions = SessionTracker(
            self.settings.workspace_root,
            idle_timeout_minutes=self.settings.idle_timeout_minutes,
            clock=clock,
        )
        self.recorder = EditRecorder(
            self._append_patch,
            self._append_file_snapshot,
            batch_interval_ms=self.settings.batch_interval_ms,
            clock=clock,
            flush_lock=self._lock,
        )
        self._periodic = (
            PeriodicTask(self.settings.flush_interval_seconds, self._tick, name="chronicle-flush")
            if background
            else None
        )
        self._watcher: Watcher | None = None
        self._enabled = self.settings.enabled
        self._restoring = False
        self._opened = False
        self.last_compaction: CompactionReport | None = None

    # Lifecycle --------------------------------------------------------

    def open(self) -> "TimeMachine":
        with self._lock:
            if self._opened:
                return self
            self.settings.data_dir.mkdir(parents=True, exist_ok=True)
            load_archive(self.blob_store, self.settings.archive_path)
            self.event_log.open()
            self._opened = True
            self._import_legacy_history()
            if self._enabled and self.event_log.snapshot_count() == 0 and any(self.scanner.iter_files()):
                self.capture_snapshot(INITIAL_SNAPSHOT_DESCRIPTION)
            SNAPSHOT_COUNT.set(self.event_log.snapshot_count())
            STORE_BYTES.set(self.blob_store.serialized_size())
            logger.info(
                "Opened history for %s",
                self.scanner.root,
                extra={"ctx_snapshots": self.event_log.snapshot_count(), "ctx_blobs": len(self.blob_store)},
            )
        if self._periodic is not None:
            self._periodic.start()
        return self

    def flush(self) -> bool:
        """Persist pending edits and the event log."""
        self.recorder.flush()
        with self._lock:
            self._require_open()
            return self.event_log.flush()

    def close(self) -> None:
        if self._periodic is not None:
            self._periodic.stop()
        self.unwatch()
        with self._lock:
            if not self._opened:
                return
            self.stop_session()
            self.recorder.dispose()
            save_archive(self.blob_store, self.settings.archive_path)
            self.event_log.close()
            self._opened = False
            logger.info("Closed history for %s", self.scanner.root)

    def __enter__(self) -> "TimeMachine":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # Control ----------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        with self._lock:
            if enabled == self._enabled:
                return
            self._enabled = enabled
            if enabled:
                self.recorder.resume()
            else:
                self.stop_session()
                self.recorder.pause()
            logger.info("Recording %s", "enabled" if enabled else "disabled")

    def pause(self) -> None:
        with self._lock:
            self.recorder.pause()

    def resume(self) -> None:
        with self._lock:
            self.recorder.resume()

    def set_batch_interval(self, value: int) -> int:
        return self.recorder.set_batch_interval(value)

    # Sessions ---------------------------------------------------------

    def start_session(self) -> Session:
        with self._lock:
            self._require_open()
            session, created = self.sessions.start()
            if created:
                self.event_log.append_session(session)
                self.recorder.set_session(session.id)
            return session

    def stop_session(self) -> Session | None:
        """End the active session after flushing every pending batch."""
        with self._lock:
            if self.sessions.current is None:
                return None
            self.recorder.end_session()
            session = self.sessions.stop()
            if session is not None:
                self.event_log.end_session(session.id, session.last_activity_time)
                self.event_log.flush()
            return session

    def current_session(self) -> Session | None:
        return self.sessions.current

    def list_sessions(self) -> list[Session]:
        with self._lock:
            return self.event_log.list_sessions()

    # Snapshots --------------------------------------------------------

    def capture_snapshot(self, description: str, affected_paths: list[str] | tuple[str, ...] = ()) -> bool:
        """Record the workspace as a snapshot; returns False if nothing changed."""
        with self._lock:
            self._require_open()
            if not self._enabled or self._restoring:
                return False
            state = self.scanner.scan()
            files = {path: content_hash(content) for path, content in state.items()}
            latest = self.event_log.latest_snapshot()
            if latest is not None and latest.files == files:
                logger.debug("Workspace unchanged since snapshot %s", latest.id)
                return False
            for content in state.values():
                self.blob_store.put(content)
            timestamp = self._clock()
            if latest is not None:
                timestamp = max(timestamp, latest.timestamp)
            snapshot = Snapshot(
                id=new_id("snap", timestamp),
                timestamp=timestamp,
                description=description,
                files=files,
                affected_paths=tuple(affected_paths),
            )
            self.event_log.append_snapshot(snapshot)
            SNAPSHOTS_CAPTURED.inc()
            self.last_compaction = self.retention.enforce(self.event_log, self.blob_store)
            save_archive(self.blob_store, self.settings.archive_path)
            self.event_log.flush()
            logger.info(
                "Captured snapshot %s with %s files",
                snapshot.id,
                len(files),
                extra={"ctx_description": description},
            )
            return True

    def list_snapshots(self) -> list[Snapshot]:
        with self._lock:
            return self.event_log.list_snapshots()

    def latest_snapshot(self) -> Snapshot | None:
        with self._lock:
            return self.event_log.latest_snapshot()

    def get_snapshot(self, snapshot_id: str) -> Snapshot:
        with self._lock:
            snapshot = self.event_log.get_snapshot(snapshot_id)
            if snapshot is None:
                raise SnapshotNotFound(snapshot_id)
            return snapshot

    def get_snapshot_files(self, snapshot_id: str) -> list[str]:
        return sorted(self.get_snapshot(snapshot_id).files)

    def get_file_content_at_snapshot(self, snapshot_id: str, path: str) -> str | None:
        with self._lock:
            digest = self.get_snapshot(snapshot_id).files.get(path)
            return self.blob_store.get(digest) if digest is not None else None

    def rename_snapshot(self, snapshot_id: str, description: str) -> Snapshot:
        with self._lock:
            if not self.event_log.rename_snapshot(snapshot_id, description):
                raise SnapshotNotFound(snapshot_id)
            return self.get_snapshot(snapshot_id)

    def export_snapshot(self, snapshot_id: str, destination: Path) -> list[str]:
        """Write every file of a snapshot beneath ``destination``."""
        with self._lock:
            contents = self._resolve_snapshot(self.get_snapshot(snapshot_id))
        root = destination.expanduser().resolve()
        for path, content in contents.items():
            target = (root / path).resolve()
            if not target.is_relative_to(root):
                raise InvalidArgument(f"{path} escapes the export directory")
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        logger.info("Exported snapshot %s to %s", snapshot_id, root)
        return sorted(contents)

    def restore_snapshot(self, snapshot_id: str) -> RestoreReport:
        """Make the workspace match a snapshot; capture is suppressed meanwhile."""
        with self._lock:
            snapshot = self.get_snapshot(snapshot_id)
            contents = self._resolve_snapshot(snapshot)
            self.recorder.flush()
            report = RestoreReport(snapshot_id=snapshot.id)
            self._restoring = True
            try:
                emptied: set[Path] = set()
                for relative, file_path in list(self.scanner.iter_files()):
                    if relative not in contents:
                        file_path.unlink()
                        self.recorder.forget(relative)
                        report.deleted.append(relative)
                        emptied.add(file_path.parent)
                for relative, content in contents.items():
                    target = self.scanner.absolute_path(relative)
                    target.parent.mkdir(parents=True, exist_ok=True)
                    if not target.is_file() or self.scanner.read_text(target) != content:
                        target.write_text(content, encoding="utf-8")
                        report.written.append(relative)
                    if relative in self.recorder.tracked_documents():
                        self.recorder.open_document(relative, content)
                report.removed_dirs = self._remove_empty_dirs(emptied)
            finally:
                self._restoring = False
            logger.info(
                "Restored snapshot %s: %s written, %s deleted",
                snapshot.id,
                len(report.written),
                len(report.deleted),
            )
            return report

    def clear_history(self) -> None:
        with self._lock:
            self._require_open()
            self.recorder.flush()
            self.event_log.clear()
            self.blob_store.clear()
            session = self.sessions.current
            if session is not None:
                # Keep the active session so later records still have an owner.
                self.event_log.append_session(session)
                self.recorder.set_session(session.id)
            save_archive(self.blob_store, self.settings.archive_path)
            self.event_log.flush()
            SNAPSHOT_COUNT.set(0)
            STORE_BYTES.set(self.blob_store.serialized_size())
            logger.info("Cleared history for %s", self.scanner.root)

    def compact(self) -> CompactionReport:
        with self._lock:
            self._require_open()
            self.last_compaction = self.retention.enforce(self.event_log, self.blob_store)
            save_archive(self.blob_store, self.settings.archive_path)
            self.event_log.flush()
            return self.last_compaction

    # Reconstruction ---------------------------------------------------

    def rebuild(self, path: str, timestamp: int) -> RebuildResult:
        with self._lock:
            return self.rebuilder.rebuild(path, timestamp)

    def verify(self, path: str, timestamp: int, expected: str) -> bool:
        with self._lock:
            return self.rebuilder.verify(path, timestamp, expected)

    def get_available_timestamps(self, path: str) -> list[int]:
        with self._lock:
            return self.rebuilder.available_timestamps(path)

    def get_earliest_timestamp(self, path: str) -> int | None:
        with self._lock:
            return self.rebuilder.earliest_timestamp(path)

    def get_latest_timestamp(self, path: str) -> int | None:
        with self._lock:
            return self.rebuilder.latest_timestamp(path)

    def tracked_paths(self) -> list[str]:
        with self._lock:
            return self.event_log.tracked_paths()

    def status(self) -> dict[str, object]:
        with self._lock:
            session = self.sessions.current
            return {
                "enabled": self._enabled,
                "paused": self.recorder.paused,
                "session_id": session.id if session else None,
                "snapshots": self.event_log.snapshot_count(),
                "patch_records": self.event_log.patch_count(),
                "blobs": len(self.blob_store),
                "store_bytes": self.blob_store.serialized_size(),
            }

    # Editor events ----------------------------------------------------

    def handle_event(self, event: WorkspaceEvent) -> bool:
        if isinstance(event, FileChangeEvent):
            return self.handle_change(event)
        if isinstance(event, FileOpenEvent):
            return self.handle_open(event)
        if isinstance(event, FileCreateEvent):
            return self.handle_create(event)
        if isinstance(event, FileDeleteEvent):
            return self.handle_delete(event)
        if isinstance(event, FileSaveEvent):
            return self.handle_save(event)
        raise InvalidArgument(f"unsupported event {type(event).__name__}")

    def handle_open(self, event: FileOpenEvent) -> bool:
        path = self._trackable(event.path)
        if path is None:
            return False
        return self.recorder.open_document(path, event.content)

    def handle_change(self, event: FileChangeEvent) -> bool:
        path = self._trackable(event.path)
        if path is None:
            return False
        with self._lock:
            self.start_session()
            self._touch()
            cursor = CursorPosition(event.cursor.line, event.cursor.character) if event.cursor else None
            return self.recorder.record_change(path, list(event.edits), cursor)

    def handle_create(self, event: FileCreateEvent) -> bool:
        path = self._trackable(event.path)
        if path is None:
            return False
        with self._lock:
            self.start_session()
            self._touch()
            if path not in self.recorder.tracked_documents():
                self.recorder.open_document(path, "")
            self.recorder.save_document(path, event.content)
            self.capture_snapshot(f"Created {path}", [path])
            return True

    def handle_delete(self, event: FileDeleteEvent) -> bool:
        path = self._trackable(event.path)
        if path is None:
            return False
        with self._lock:
            self._touch()
            self.recorder.forget(path)
            self.capture_snapshot(f"Deleted {path}", [path])
            return True

    def handle_save(self, event: FileSaveEvent) -> bool:
        path = self._trackable(event.path)
        if path is None:
            return False
        with self._lock:
            self.start_session()
            self._touch()
            self.recorder.save_document(path, event.content)
            self.capture_snapshot(f"Saved {path}", [path])
            return True

    # Filesystem watching ----------------------------------------------

    def watch(self) -> None:
        if self._watcher is None:
            self._watcher = Watcher(self.scanner, self.handle_event)
        self._watcher.start()

    def unwatch(self) -> None:
        if self._watcher is not None:
            self._watcher.close()
            self._watcher = None

    # Internal helpers -------------------------------------------------

    def _require_open(self) -> None:
        if not self._opened:
            raise RuntimeError("TimeMachine is not open")

    def _trackable(self, path: str) -> str | None:
        if not self._enabled or self._restoring:
            return None
        relative = self.scanner.relative_path(path)
        return relative if self.scanner.should_track(relative) else None

    def _touch(self) -> None:
        session = self.sessions.touch()
        if session is not None:
            self.event_log.update_session_activity(session.id, session.last_activity_time)

    def _append_patch(self, record: PatchRecord) -> None:
        with self._lock:
            self.event_log.append_patch(record)

    def _append_file_snapshot(self, snapshot: FileSnapshot) -> None:
        with self._lock:
            self.event_log.append_file_snapshot(snapshot)

    def _resolve_snapshot(self, snapshot: Snapshot) -> dict[str, str]:
        return {path: self.blob_store.get(digest) for path, digest in snapshot.files.items()}

    def _remove_empty_dirs(self, candidates: set[Path]) -> list[str]:
        removed: list[str] = []
        root = self.scanner.root
        for directory in sorted(candidates, key=lambda item: len(item.parts), reverse=True):
            current = directory
            while current != root and current.is_relative_to(root):
                try:
                    if any(current.iterdir()):
                        break
                    current.rmdir()
                except OSError as exc:
                    logger.warning("Cannot remove directory %s: %s", current, exc)
                    break
                removed.append(current.relative_to(root).as_posix())
                current = current.parent
        return removed

    def _import_legacy_history(self) -> None:
        legacy = migrate_legacy_history(self.blob_store, self.settings.workspace_root)
        if legacy is None:
            return
        imported = 0
        for snapshot in legacy.snapshots:
            if self.event_log.get_snapshot(snapshot.id) is None:
                self.event_log.append_snapshot(snapshot)
                imported += 1
        self.retention.enforce(self.event_log, self.blob_store)
        save_archive(self.blob_store, self.settings.archive_path)
        self.event_log.flush()
        manifest = self.settings.workspace_root / LEGACY_HISTORY_DIR / "manifest.json"
        os.replace(manifest, manifest.with_name("manifest.json.migrated"))
        logger.info("Imported %s legacy snapshots", imported)

    def check_idle(self) -> bool:
        """End the active session if it has been idle past the timeout."""
        with self._lock:
            if not self.sessions.is_idle():
                return False
            logger.info("Session idle timeout reached")
            self.stop_session()
            self.capture_snapshot("Session idle")
            return True

    def _tick(self) -> None:
        with self._lock:
            if not self._opened:
                return
            self.check_idle()
            self.event_log.flush()


__all__ = ["TimeMachine", "RestoreReport", "INITIAL_SNAPSHOT_DESCRIPTION"]
