"""Debounced recording of editor changes into patch records.

Edits to a document accumulate in memory. Once the editor has been quiet for
the batch interval, every document with pending changes is diffed against
the content it had when its batch began and one patch record is emitted per
document. Saves and session ends flush immediately.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable

from code_chronicle.codec import make_patch
from code_chronicle.core.config import MAX_BATCH_INTERVAL_MS, MIN_BATCH_INTERVAL_MS
from code_chronicle.core.errors import InvalidArgument
from code_chronicle.core.logging import get_logger
from code_chronicle.core.metrics import PATCHES_APPENDED
from code_chronicle.models.entities import TEXT_CODEC, CursorPosition, FileSnapshot, PatchRecord
from code_chronicle.models.events import EditOperation, FullReplace, apply_edits
from code_chronicle.utils.ids import new_id
from code_chronicle.utils.time import now_ms

logger = get_logger(__name__)

PatchSink = Callable[[PatchRecord], None]
FileSnapshotSink = Callable[[FileSnapshot], None]


def clamp_batch_interval(value: int) -> int:
    return max(MIN_BATCH_INTERVAL_MS, min(MAX_BATCH_INTERVAL_MS, int(value)))


@dataclass(slots=True)
class PendingDocument:
    original_content: str
    current_content: str
    cursor: CursorPosition | None = None
    has_changes: bool = False


class EditRecorder:
    """Collect per-document edits and emit them as text-codec patch records.

    Records are handed to ``patch_sink`` outside the recorder's lock but
    inside ``flush_lock``. An owner that passes its own lock there sees every
    drained record delivered before it can change what the sink writes to.
    """

    def __init__(
        self,
        patch_sink: PatchSink,
        file_snapshot_sink: FileSnapshotSink | None = None,
        batch_interval_ms: int = 3000,
        clock: Callable[[], int] = now_ms,
        flush_lock: threading.RLock | None = None,
    ) -> None:
        self._patch_sink = patch_sink
        self._file_snapshot_sink = file_snapshot_sink
        self.batch_interval_ms = clamp_batch_interval(batch_interval_ms)
        self._clock = clock
        self._lock = threading.RLock()
        self._flush_lock = flush_lock if flush_lock is not None else threading.RLock()
        self._documents: dict[str, PendingDocument] = {}
        self._snapshotted: set[str] = set()
        self._timer: threading.Timer | None = None
        self._session_id: str | None = None
        self._paused = False

    # Session and state ------------------------------------------------

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def paused(self) -> bool:
        return self._paused

    def set_session(self, session_id: str) -> None:
        with self._lock:
            self._session_id = session_id
            self._snapshotted.clear()

    def end_session(self) -> list[PatchRecord]:
        """Flush every pending batch, then detach from the session."""
        records = self.flush()
        with self._lock:
            self._session_id = None
            self._snapshotted.clear()
        return records

    def pause(self) -> list[PatchRecord]:
        records = self.flush()
        with self._lock:
            self._paused = True
        return records

    def resume(self) -> None:
        with self._lock:
            self._paused = False
            # Edits made while paused were not tracked; re-anchor on next open.
            self._documents.clear()

    def set_batch_interval(self, value: int) -> int:
        with self._lock:
            self.batch_interval_ms = clamp_batch_interval(value)
            return self.batch_interval_ms

    def tracked_documents(self) -> list[str]:
        with self._lock:
            return sorted(self._documents)

    def has_pending(self) -> bool:
        with self._lock:
            return any(document.has_changes for document in self._documents.values())

    # Document events --------------------------------------------------

    def open_document(self, path: str, content: str) -> bool:
        """Start tracking ``path`` with its current content.

        Returns True when the content was recorded as the path's first
        known content in the current session.
        """
        with self._lock:
            if self._paused:
                return False
            document = self._documents.get(path)
            if document is not None and document.has_changes:
                return False
            self._documents[path] = PendingDocument(original_content=content, current_content=content)
            snapshot = self._file_snapshot(path, content)
        if snapshot is not None:
            self._file_snapshot_sink(snapshot)
            return True
        return False

    def record_change(
        self,
        path: str,
        edits: list[EditOperation],
        cursor: CursorPosition | None = None,
    ) -> bool:
        """Apply ``edits`` to the tracked content of ``path`` and restart the batch timer."""
        snapshot = None
        with self._lock:
            if self._paused or self._session_id is None:
                return False
            document = self._documents.get(path)
            if document is None:
                if not isinstance(edits[0], FullReplace):
                    raise InvalidArgument(f"{path} is not open; its content before this edit is unknown")
                # A whole-document replacement of an untracked file anchors it.
                document = PendingDocument(original_content=edits[0].text, current_content=edits[0].text)
                self._documents[path] = document
                edits = edits[1:]
            updated = apply_edits(document.current_content, edits)
            snapshot = self._file_snapshot(path, document.original_content)
            if updated != document.current_content:
                document.current_content = updated
                document.has_changes = True
            if cursor is not None:
                document.cursor = cursor
            self._restart_timer()
        if snapshot is not None:
            self._file_snapshot_sink(snapshot)
        return True

    def save_document(self, path: str, content: str | None = None) -> list[PatchRecord]:
        """Flush ``path`` immediately; on-disk ``content`` overrides the buffer."""
        snapshot = None
        with self._lock:
            document = self._documents.get(path)
            if content is not None and not self._paused and self._session_id is not None:
                if document is None:
                    self._documents[path] = PendingDocument(original_content=content, current_content=content)
                    snapshot = self._file_snapshot(path, content)
                elif document.current_content != content:
                    document.current_content = content
                    document.has_changes = True
        if snapshot is not None:
            self._file_snapshot_sink(snapshot)
        return self.flush(path)

    def forget(self, path: str) -> list[PatchRecord]:
        """Flush and stop tracking ``path``."""
        records = self.flush(path)
        with self._lock:
            self._documents.pop(path, None)
        return records

    # Flushing ---------------------------------------------------------

    def flush(self, path: str | None = None) -> list[PatchRecord]:
        """Emit one patch record per document with pending changes."""
        with self._flush_lock:
            with self._lock:
                if path is None:
                    self._cancel_timer()
                    paths = list(self._documents)
                else:
                    paths = [path] if path in self._documents else []
                records = self._drain(paths)
            for record in records:
                self._patch_sink(record)
                PATCHES_APPENDED.inc()
        if records:
            logger.debug("Flushed %s patch records", len(records))
        return records

    def dispose(self) -> list[PatchRecord]:
        records = self.flush()
        with self._lock:
            self._documents.clear()
            self._snapshotted.clear()
        return records

    # Internal helpers -------------------------------------------------

    def _drain(self, paths: list[str]) -> list[PatchRecord]:
        session_id = self._session_id
        timestamp = self._clock()
        records: list[PatchRecord] = []
        for path in paths:
            document = self._documents[path]
            if not document.has_changes:
                continue
            document.has_changes = False
            if session_id is None or document.original_content == document.current_content:
                document.original_content = document.current_content
                continue
            records.append(
                PatchRecord(
                    id=new_id("patch", timestamp),
                    session_id=session_id,
                    path=path,
                    codec=TEXT_CODEC,
                    script=make_patch(document.original_content, document.current_content),
                    base_content=document.original_content,
                    timestamp=timestamp,
                    cursor=document.cursor,
                )
            )
            document.original_content = document.current_content
        return records

    def _file_snapshot(self, path: str, content: str) -> FileSnapshot | None:
        if self._file_snapshot_sink is None or self._session_id is None or path in self._snapshotted:
            return None
        self._snapshotted.add(path)
        timestamp = self._clock()
        return FileSnapshot(
            id=new_id("fsnap", timestamp),
            session_id=self._session_id,
            path=path,
            content=content,
            timestamp=timestamp,
        )

    def _restart_timer(self) -> None:
        self._cancel_timer()
        timer = threading.Timer(self.batch_interval_ms / 1000.0, self._on_timer)
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        try:
            self.flush()
        except Exception:  # noqa: BLE001
            logger.exception("Batched flush failed")


__all__ = ["EditRecorder", "PendingDocument", "clamp_batch_interval"]
