"""Identifiers for snapshots, sessions and history records."""

from __future__ import annotations

import uuid

from code_chronicle.utils.time import now_ms


def new_id(prefix: str, timestamp: int | None = None) -> str:
    """Return ``<prefix>_<ms>_<random>``; ids of one kind sort by creation time."""
    stamp = timestamp if timestamp is not None else now_ms()
    return f"{prefix}_{stamp:013d}_{uuid.uuid4().hex[:12]}"
