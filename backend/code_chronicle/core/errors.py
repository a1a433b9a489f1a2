"""Error taxonomy shared by the store, the event log and reconstruction."""

from __future__ import annotations


class ChronicleError(Exception):
    """Base class for engine failures."""

    code = "chronicle_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class InvalidArgument(ChronicleError):
    """Malformed path or timestamp, rejected before any I/O."""

    code = "invalid_argument"


class BlobNotFound(ChronicleError):
    code = "blob_not_found"

    def __init__(self, content_hash: str) -> None:
        super().__init__(f"Blob {content_hash} is not in the store")
        self.content_hash = content_hash


class BrokenChain(ChronicleError):
    """A delta blob cannot be resolved to full content."""

    code = "broken_chain"

    def __init__(self, content_hash: str, reason: str) -> None:
        super().__init__(f"Delta chain for {content_hash} is broken: {reason}")
        self.content_hash = content_hash


class PatchApplicationFailed(ChronicleError):
    code = "patch_application_failed"

    def __init__(self, record_id: str, timestamp: int) -> None:
        super().__init__(
            f"Failed to apply patch {record_id} at timestamp {timestamp}; recovery from its base content also failed"
        )
        self.record_id = record_id
        self.timestamp = timestamp


class NoHistory(ChronicleError):
    """No record exists for the path at or before the requested time."""

    code = "no_history"


class SnapshotNotFound(ChronicleError):
    code = "snapshot_not_found"

    def __init__(self, snapshot_id: str) -> None:
        super().__init__(f"Snapshot {snapshot_id} not found")
        self.snapshot_id = snapshot_id


class StorageOversize(UserWarning):
    """Compaction reached its retention floor while still over budget."""


__all__ = [
    "ChronicleError",
    "InvalidArgument",
    "BlobNotFound",
    "BrokenChain",
    "PatchApplicationFailed",
    "NoHistory",
    "SnapshotNotFound",
    "StorageOversize",
]
