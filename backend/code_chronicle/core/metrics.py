"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)

REGISTRY = CollectorRegistry()

REBUILD_COUNT = Counter(
    "chron_rebuilds_total",
    "File reconstructions by outcome",
    labelnames=("outcome",),
    registry=REGISTRY,
)

REBUILD_RECOVERIES = Counter(
    "chron_rebuild_recoveries_total",
    "Patch applications recovered from the record's anchored base content",
    registry=REGISTRY,
)

PATCHES_APPENDED = Counter(
    "chron_patch_records_total",
    "Patch records appended to the event log",
    registry=REGISTRY,
)

SNAPSHOTS_CAPTURED = Counter(
    "chron_snapshots_captured_total",
    "Workspace snapshots captured",
    registry=REGISTRY,
)

BLOBS_STORED = Counter(
    "chron_blobs_stored_total",
    "Blobs written to the store",
    labelnames=("kind",),
    registry=REGISTRY,
)

BLOBS_RECLAIMED = Counter(
    "chron_blobs_reclaimed_total",
    "Blobs removed by garbage collection",
    registry=REGISTRY,
)

STORE_BYTES = Gauge(
    "chron_store_bytes",
    "Compressed size of the blob archive",
    registry=REGISTRY,
)

SNAPSHOT_COUNT = Gauge(
    "chron_snapshots",
    "Number of retained snapshots",
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "REBUILD_COUNT",
    "REBUILD_RECOVERIES",
    "PATCHES_APPENDED",
    "SNAPSHOTS_CAPTURED",
    "BLOBS_STORED",
    "BLOBS_RECLAIMED",
    "STORE_BYTES",
    "SNAPSHOT_COUNT",
    "metrics_response",
]
