"""Retention policy keeping snapshot count and blob archive size bounded."""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field

from code_chronicle.core.config import Settings
from code_chronicle.core.errors import StorageOversize
from code_chronicle.core.logging import get_logger
from code_chronicle.core.metrics import SNAPSHOT_COUNT, STORE_BYTES
from code_chronicle.history.event_log import EventLog
from code_chronicle.store.blob_store import BlobStore

logger = get_logger(__name__)


@dataclass(slots=True)
class CompactionReport:
    evicted: list[str] = field(default_factory=list)
    blobs_reclaimed: int = 0
    store_bytes: int = 0
    oversize: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "evicted": list(self.evicted),
            "blobs_reclaimed": self.blobs_reclaimed,
            "store_bytes": self.store_bytes,
            "oversize": self.oversize,
        }


class RetentionPolicy:
    """Evict the oldest snapshots until both caps hold or the floor is reached.

    Evicted history is gone for good. Eviction never drops below
    ``min_snapshots`` and reports an oversize store through a
    :class:`StorageOversize` warning instead.
    """

    def __init__(self, max_snapshots: int = 100, min_snapshots: int = 5, max_store_bytes: int = 50 * 1024 * 1024) -> None:
        if max_snapshots < min_snapshots:
            raise ValueError("max_snapshots must not be below min_snapshots")
        self.max_snapshots = max_snapshots
        self.min_snapshots = min_snapshots
        self.max_store_bytes = max_store_bytes

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetentionPolicy":
        return cls(
            max_snapshots=settings.max_snapshots,
            min_snapshots=settings.min_snapshots,
            max_store_bytes=settings.max_store_bytes,
        )

    def enforce(self, event_log: EventLog, blob_store: BlobStore) -> CompactionReport:
        report = CompactionReport()
        while event_log.snapshot_count() > self.max_snapshots:
            self._evict_oldest(event_log, report)
        report.blobs_reclaimed += blob_store.garbage_collect(event_log.live_hashes())

        size = blob_store.serialized_size()
        while size > self.max_store_bytes and event_log.snapshot_count() > self.min_snapshots:
            self._evict_oldest(event_log, report)
            report.blobs_reclaimed += blob_store.garbage_collect(event_log.live_hashes())
            size = blob_store.serialized_size()

        report.store_bytes = size
        report.oversize = size > self.max_store_bytes
        STORE_BYTES.set(size)
        SNAPSHOT_COUNT.set(event_log.snapshot_count())
        if report.evicted:
            logger.info(
                "Compaction evicted %s snapshots and reclaimed %s blobs",
                len(report.evicted),
                report.blobs_reclaimed,
            )
        if report.oversize:
            warnings.warn(
                f"Blob archive is {size} bytes, above the {self.max_store_bytes} byte budget, "
                f"with only the minimum of {self.min_snapshots} snapshots retained",
                StorageOversize,
                stacklevel=2,
            )
        return report

    def _evict_oldest(self, event_log: EventLog, report: CompactionReport) -> None:
        snapshot_id = event_log.oldest_snapshot_id()
        if snapshot_id is None:
            return
        event_log.delete_snapshot(snapshot_id)
        report.evicted.append(snapshot_id)


__all__ = ["CompactionReport", "RetentionPolicy"]
