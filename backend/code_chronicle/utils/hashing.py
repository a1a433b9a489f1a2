"""Content fingerprints used as blob keys."""

from __future__ import annotations

import hashlib

SHORT_HASH_LENGTH = 12


def content_hash(data: bytes | str) -> str:
    """Return the storage key for content.

    Text is hashed over its UTF-8 encoding without any normalisation, so
    whitespace, line-ending or encoding differences always change the key.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def short_hash(digest: str) -> str:
    """Abbreviated digest for display. Never use it as a lookup key."""
    return digest[:SHORT_HASH_LENGTH]


__all__ = ["content_hash", "short_hash"]
