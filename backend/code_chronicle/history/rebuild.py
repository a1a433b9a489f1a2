"""Reconstruction of file content at a past moment.

The newest workspace snapshot at or before the target time (the checkpoint)
bounds replay: only patch records written after it are applied, starting from
the first such record's base content. The checkpoint answers directly when no
record follows it. Each record carries the content it was diffed against,
so when a patch does not fit the running content the replay resets to that
anchor and retries once. A second failure aborts the rebuild; partially
replayed content is never returned.
"""

from __future__ import annotations

from dataclasses import dataclass

from code_chronicle.codec import line_diff, text_patch
from code_chronicle.codec.types import PatchOutcome
from code_chronicle.core.errors import (
    BlobNotFound,
    BrokenChain,
    ChronicleError,
    InvalidArgument,
    NoHistory,
    PatchApplicationFailed,
)
from code_chronicle.core.logging import get_logger
from code_chronicle.core.metrics import REBUILD_COUNT, REBUILD_RECOVERIES
from code_chronicle.history.event_log import EventLog
from code_chronicle.models.entities import LINE_CODEC, TEXT_CODEC, PatchRecord
from code_chronicle.store.blob_store import BlobStore

logger = get_logger(__name__)

SOURCE_PATCHES = "patches"
SOURCE_SNAPSHOT = "snapshot"
SOURCE_FILE_SNAPSHOT = "file_snapshot"


@dataclass(frozen=True, slots=True)
class RebuildResult:
    path: str
    timestamp: int
    content: str | None = None
    patches_applied: int = 0
    recoveries: int = 0
    source: str | None = None
    error: ChronicleError | None = None

    @property
    def success(self) -> bool:
        return self.error is None


def apply_record(base: str, record: PatchRecord) -> PatchOutcome:
    """Apply a record's script with the codec it was written in."""
    if record.codec == TEXT_CODEC:
        return text_patch.apply_patch(base, record.script)
    if record.codec == LINE_CODEC:
        return line_diff.try_apply(base, record.script)
    return PatchOutcome(ok=False, content=base, detail=f"unknown codec {record.codec!r}")


class Rebuilder:
    """Fold the ordered history of a path into its content at a given time."""

    def __init__(self, event_log: EventLog, blob_store: BlobStore) -> None:
        self.event_log = event_log
        self.blob_store = blob_store

    def rebuild(self, path: str, timestamp: int) -> RebuildResult:
        result = self._rebuild(path, timestamp)
        if result.success:
            REBUILD_COUNT.labels(outcome="ok").inc()
            logger.debug(
                "Rebuilt %s at %s from %s with %s patches",
                path,
                timestamp,
                result.source,
                result.patches_applied,
            )
        else:
            REBUILD_COUNT.labels(outcome=result.error.code).inc()
            logger.info("Rebuild of %s at %s failed: %s", path, timestamp, result.error.message)
        return result

    def verify(self, path: str, timestamp: int, expected: str) -> bool:
        result = self.rebuild(path, timestamp)
        if not result.success:
            logger.warning("Verification of %s failed: %s", path, result.error.message)
            return False
        if result.content == expected:
            return True
        mismatch = next(
            (index for index, (left, right) in enumerate(zip(result.content, expected)) if left != right),
            min(len(result.content), len(expected)),
        )
        logger.warning(
            "Verification of %s failed: content differs at index %s (expected %s chars, rebuilt %s)",
            path,
            mismatch,
            len(expected),
            len(result.content),
            extra={"ctx_path": path, "ctx_timestamp": timestamp},
        )
        return False

    def available_timestamps(self, path: str) -> list[int]:
        return [record.timestamp for record in self.event_log.patches_by_path(path)]

    def earliest_timestamp(self, path: str) -> int | None:
        first = self.event_log.first_patch(path)
        if first is not None:
            return first.timestamp
        snapshot = self.event_log.earliest_file_snapshot(path)
        return snapshot.timestamp if snapshot else None

    def latest_timestamp(self, path: str) -> int | None:
        latest = self.event_log.latest_patch(path)
        return latest.timestamp if latest else None

    # Internal helpers -------------------------------------------------

    def _rebuild(self, path: str, timestamp: int) -> RebuildResult:
        if not isinstance(path, str) or not path:
            return RebuildResult(path=path, timestamp=timestamp, error=InvalidArgument("path must be a non-empty string"))
        if isinstance(timestamp, bool) or not isinstance(timestamp, int) or timestamp < 0:
            return RebuildResult(
                path=path, timestamp=timestamp, error=InvalidArgument("timestamp must be a non-negative integer")
            )

        records = self.event_log.patches_up_to(path, timestamp)
        checkpoint = self.event_log.latest_snapshot_at(timestamp)
        if checkpoint is not None:
            records = [record for record in records if record.timestamp > checkpoint.timestamp]

        if not records:
            if checkpoint is not None:
                digest = checkpoint.files.get(path)
                if digest is not None:
                    try:
                        content = self.blob_store.get(digest)
                    except (BlobNotFound, BrokenChain) as exc:
                        return RebuildResult(path=path, timestamp=timestamp, error=exc)
                    return RebuildResult(path=path, timestamp=timestamp, content=content, source=SOURCE_SNAPSHOT)
                return RebuildResult(
                    path=path,
                    timestamp=timestamp,
                    error=NoHistory(f"{path} is absent from snapshot {checkpoint.id} and unchanged since"),
                )
            file_snapshot = self.event_log.earliest_file_snapshot(path, timestamp)
            if file_snapshot is not None:
                return RebuildResult(
                    path=path, timestamp=timestamp, content=file_snapshot.content, source=SOURCE_FILE_SNAPSHOT
                )
            return RebuildResult(
                path=path,
                timestamp=timestamp,
                error=NoHistory(f"No history found for {path} at or before {timestamp}"),
            )

        # Snapshots hold disk content; records diff the editor buffer.
        current = records[0].base_content
        applied = 0
        recoveries = 0
        for record in records:
            outcome = apply_record(current, record)
            if not outcome.ok:
                logger.warning(
                    "Patch %s did not apply (%s); retrying from its anchored base content",
                    record.id,
                    outcome.detail,
                    extra={"ctx_path": path, "ctx_record": record.id},
                )
                outcome = apply_record(record.base_content, record)
                if not outcome.ok:
                    return RebuildResult(
                        path=path,
                        timestamp=timestamp,
                        patches_applied=applied,
                        recoveries=recoveries,
                        error=PatchApplicationFailed(record.id, record.timestamp),
                    )
                recoveries += 1
                REBUILD_RECOVERIES.inc()
                logger.info("Recovered patch %s from its anchored base content", record.id)
            current = outcome.content
            applied += 1
        return RebuildResult(
            path=path,
            timestamp=timestamp,
            content=current,
            patches_applied=applied,
            recoveries=recoveries,
            source=SOURCE_PATCHES,
        )


__all__ = ["RebuildResult", "Rebuilder", "apply_record"]
