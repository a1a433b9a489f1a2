"""Durable storage of the blob archive and migration of legacy layouts."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

import orjson

from code_chronicle.core.logging import get_logger
from code_chronicle.models.entities import Snapshot
from code_chronicle.store.blob_store import BlobStore

logger = get_logger(__name__)

LEGACY_HISTORY_DIR = ".history_machine"


@dataclass(slots=True)
class LegacyHistory:
    """Snapshots recovered from the original ``.history_machine`` layout."""

    snapshots: list[Snapshot] = field(default_factory=list)
    blobs_migrated: int = 0
    missing_blobs: list[str] = field(default_factory=list)


def load_archive(store: BlobStore, path: Path) -> bool:
    """Fill ``store`` from ``path``; returns True if the file held legacy data.

    A missing file leaves the store empty.
    """
    if not path.exists():
        return False
    migrated = store.load(path.read_bytes())
    if migrated:
        logger.info("Blob archive %s used a legacy format; rewriting", path)
        save_archive(store, path)
    return migrated


def save_archive(store: BlobStore, path: Path) -> int:
    """Atomically write the archive and return its size in bytes."""
    payload = store.serialize()
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=path.name, suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(payload)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return len(payload)


def migrate_legacy_history(store: BlobStore, workspace_root: Path) -> LegacyHistory | None:
    """Import ``.history_machine/manifest.json`` and its ``blobs/`` directory.

    Returns None when the workspace holds no legacy history. Blob content is
    re-hashed on import, so snapshot maps always reference current keys.
    """
    history_dir = workspace_root / LEGACY_HISTORY_DIR
    manifest_path = history_dir / "manifest.json"
    if not manifest_path.is_file():
        return None
    manifest = orjson.loads(manifest_path.read_bytes())
    result = LegacyHistory()
    blobs_dir = history_dir / "blobs"
    for raw in manifest.get("snapshots") or []:
        workspace_state = raw.get("workspaceState")
        if not isinstance(workspace_state, dict):
            # Diff-based manifests carry no content-addressed state to import.
            logger.warning("Skipping legacy snapshot %s without workspace state", raw.get("id"))
            continue
        files: dict[str, str] = {}
        for relative_path, legacy_hash in workspace_state.items():
            blob_path = blobs_dir / legacy_hash
            if not blob_path.is_file():
                result.missing_blobs.append(legacy_hash)
                continue
            content = blob_path.read_text(encoding="utf-8")
            files[_normalize_path(relative_path)] = store.put(content)
            result.blobs_migrated += 1
        result.snapshots.append(
            Snapshot(
                id=str(raw.get("id")),
                timestamp=int(raw.get("timestamp", 0)),
                description=str(raw.get("description", "")),
                files=files,
                affected_paths=tuple(_normalize_path(p) for p in raw.get("affectedFiles") or []),
            )
        )
    if result.missing_blobs:
        logger.warning("Legacy history referenced %s missing blobs", len(result.missing_blobs))
    logger.info("Migrated %s legacy snapshots from %s", len(result.snapshots), history_dir)
    return result


def _normalize_path(value: str) -> str:
    return value.replace("\\", "/")


__all__ = ["LegacyHistory", "load_archive", "save_archive", "migrate_legacy_history", "LEGACY_HISTORY_DIR"]
