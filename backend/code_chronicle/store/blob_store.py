"""Content-addressed blob store with similarity-based delta encoding."""

from __future__ import annotations

from typing import Iterable, Iterator

import orjson
import zstandard

from code_chronicle.codec.line_diff import ScriptApplyError, apply_script, decode_script, diff_lines, encode_script
from code_chronicle.core.config import Settings
from code_chronicle.core.errors import BlobNotFound, BrokenChain
from code_chronicle.core.logging import get_logger
from code_chronicle.core.metrics import BLOBS_RECLAIMED, BLOBS_STORED
from code_chronicle.models.entities import Blob, DeltaBlob, FullBlob
from code_chronicle.utils.hashing import content_hash, short_hash
from code_chronicle.utils.text import split_lines

logger = get_logger(__name__)

ARCHIVE_FORMAT = "code-chronicle/blobs"
ARCHIVE_VERSION = 2
ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"


class ArchiveFormatError(ValueError):
    """Archive bytes are neither the current nor a known legacy format."""


class BlobStore:
    """Map from content hash to full content or a delta against a base blob.

    Delta bases are always full blobs, so a chain written by ``put`` has a
    single hop; ``get`` still walks chains iteratively and bounds them by
    ``max_hops`` to cope with archives written elsewhere.
    """

    def __init__(
        self,
        sample_lines: int = 50,
        similarity_floor: float = 0.5,
        delta_floor: float = 0.6,
        delta_size_ratio: float = 0.6,
        lookahead: int = 10,
        max_hops: int = 16,
    ) -> None:
        self.sample_lines = sample_lines
        self.similarity_floor = similarity_floor
        self.delta_floor = delta_floor
        self.delta_size_ratio = delta_size_ratio
        self.lookahead = lookahead
        self.max_hops = max_hops
        self._blobs: dict[str, Blob] = {}
        self._samples: dict[str, frozenset[str]] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "BlobStore":
        return cls(
            sample_lines=settings.sample_lines,
            similarity_floor=settings.similarity_floor,
            delta_floor=settings.delta_floor,
            delta_size_ratio=settings.delta_size_ratio,
            lookahead=settings.diff_lookahead,
            max_hops=settings.max_delta_hops,
        )

    def __len__(self) -> int:
        return len(self._blobs)

    def __contains__(self, digest: object) -> bool:
        return digest in self._blobs

    def hashes(self) -> Iterator[str]:
        return iter(list(self._blobs))

    def blob(self, digest: str) -> Blob:
        try:
            return self._blobs[digest]
        except KeyError:
            raise BlobNotFound(digest) from None

    def kind(self, digest: str) -> str:
        return "delta" if isinstance(self.blob(digest), DeltaBlob) else "full"

    def put(self, content: str) -> str:
        digest = content_hash(content)
        if digest in self._blobs:
            return digest
        blob = self._encode(content)
        self._insert(digest, blob)
        if isinstance(blob, DeltaBlob):
            logger.debug("Stored %s as delta against %s", short_hash(digest), short_hash(blob.base))
        return digest

    def get(self, digest: str) -> str:
        blob = self._blobs.get(digest)
        if blob is None:
            raise BlobNotFound(digest)
        chain: list[DeltaBlob] = []
        visited = {digest}
        while isinstance(blob, DeltaBlob):
            if len(chain) >= self.max_hops:
                raise BrokenChain(digest, f"more than {self.max_hops} delta hops")
            chain.append(blob)
            base_hash = blob.base
            if base_hash in visited:
                raise BrokenChain(digest, f"cycle through {short_hash(base_hash)}")
            visited.add(base_hash)
            blob = self._blobs.get(base_hash)
            if blob is None:
                raise BrokenChain(digest, f"base {short_hash(base_hash)} is missing")
        content = blob.content
        for delta in reversed(chain):
            try:
                content = apply_script(content, decode_script(delta.script))
            except ScriptApplyError as exc:
                raise BrokenChain(digest, str(exc)) from exc
        return content

    def garbage_collect(self, live_hashes: Iterable[str]) -> int:
        """Remove every blob outside the delta-base closure of ``live_hashes``."""
        reachable: set[str] = set()
        pending = list(live_hashes)
        while pending:
            digest = pending.pop()
            if digest in reachable:
                continue
            blob = self._blobs.get(digest)
            if blob is None:
                logger.warning("Live hash %s is not in the store", short_hash(digest))
                continue
            reachable.add(digest)
            if isinstance(blob, DeltaBlob):
                pending.append(blob.base)
        unreachable = [digest for digest in self._blobs if digest not in reachable]
        for digest in unreachable:
            del self._blobs[digest]
            self._samples.pop(digest, None)
        if unreachable:
            BLOBS_RECLAIMED.inc(len(unreachable))
            logger.info("Garbage collection removed %s blobs", len(unreachable))
        return len(unreachable)

    def clear(self) -> None:
        self._blobs.clear()
        self._samples.clear()

    # Persistence ------------------------------------------------------

    def serialize(self) -> bytes:
        blobs: dict[str, dict[str, str]] = {}
        for digest, blob in self._blobs.items():
            if isinstance(blob, FullBlob):
                blobs[digest] = {"content": blob.content}
            else:
                blobs[digest] = {"base": blob.base, "script": blob.script}
        payload = orjson.dumps({"format": ARCHIVE_FORMAT, "version": ARCHIVE_VERSION, "blobs": blobs})
        return zstandard.ZstdCompressor(level=3).compress(payload)

    def serialized_size(self) -> int:
        return len(self.serialize())

    def load(self, data: bytes) -> bool:
        """Replace contents with an archive; returns True when legacy data was migrated."""
        self.clear()
        if data.startswith(ZSTD_MAGIC):
            raw = zstandard.ZstdDecompressor().decompress(data)
            document = orjson.loads(raw)
            if not isinstance(document, dict) or document.get("format") != ARCHIVE_FORMAT:
                raise ArchiveFormatError("compressed archive has an unknown format marker")
            if document.get("version") != ARCHIVE_VERSION:
                raise ArchiveFormatError(f"unsupported archive version {document.get('version')}")
            for digest, entry in document["blobs"].items():
                if "content" in entry:
                    self._insert(digest, FullBlob(entry["content"]), count=False)
                else:
                    self._insert(digest, DeltaBlob(entry["base"], entry["script"]), count=False)
            return False
        self._load_legacy_map(data)
        return True

    @classmethod
    def deserialize(cls, data: bytes, settings: Settings | None = None) -> "BlobStore":
        store = cls.from_settings(settings) if settings is not None else cls()
        store.load(data)
        return store

    def _load_legacy_map(self, data: bytes) -> None:
        # Version 1 archives were a plain JSON object of hash -> full content.
        try:
            document = orjson.loads(data)
        except orjson.JSONDecodeError as exc:
            raise ArchiveFormatError("archive is neither zstd nor JSON") from exc
        if not isinstance(document, dict):
            raise ArchiveFormatError("legacy archive must be a JSON object")
        for legacy_key, content in document.items():
            if not isinstance(content, str):
                raise ArchiveFormatError(f"legacy blob {legacy_key} is not text")
            digest = self.put(content)
            if digest != legacy_key:
                logger.warning("Legacy blob key %s re-keyed to %s", legacy_key, short_hash(digest))
        logger.info("Migrated %s legacy blobs", len(document))

    # Internal helpers -------------------------------------------------

    def _insert(self, digest: str, blob: Blob, count: bool = True) -> None:
        self._blobs[digest] = blob
        if isinstance(blob, FullBlob):
            self._samples[digest] = self._sample(blob.content)
        if count:
            BLOBS_STORED.labels(kind="full" if isinstance(blob, FullBlob) else "delta").inc()

    def _sample(self, content: str) -> frozenset[str]:
        return frozenset(split_lines(content)[: self.sample_lines])

    def _encode(self, content: str) -> Blob:
        base_hash, ratio = self._most_similar(self._sample(content))
        if base_hash is not None and ratio >= self.delta_floor:
            base = self._blobs[base_hash]
            assert isinstance(base, FullBlob)
            script = diff_lines(base.content, content, lookahead=self.lookahead, max_ratio=self.delta_size_ratio)
            if script is not None:
                return DeltaBlob(base=base_hash, script=encode_script(script))
        return FullBlob(content)

    def _most_similar(self, sample: frozenset[str]) -> tuple[str | None, float]:
        best_hash: str | None = None
        best_ratio = 0.0
        for digest, candidate in self._samples.items():
            ratio = len(sample & candidate) / len(sample)
            if ratio > best_ratio:
                best_hash, best_ratio = digest, ratio
        if best_ratio < self.similarity_floor:
            return None, best_ratio
        return best_hash, best_ratio


__all__ = ["BlobStore", "ArchiveFormatError", "ARCHIVE_FORMAT", "ARCHIVE_VERSION"]
