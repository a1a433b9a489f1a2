"""Tests for the content-addressed blob store."""

from __future__ import annotations

import orjson
import pytest
import zstandard
from hypothesis import HealthCheck, given, settings, strategies as st

from code_chronicle.core.errors import BlobNotFound, BrokenChain
from code_chronicle.store.blob_store import ARCHIVE_FORMAT, ARCHIVE_VERSION, ArchiveFormatError, BlobStore
from code_chronicle.utils.hashing import content_hash


def _archive(blobs: dict[str, dict[str, str]]) -> bytes:
    payload = orjson.dumps({"format": ARCHIVE_FORMAT, "version": ARCHIVE_VERSION, "blobs": blobs})
    return zstandard.ZstdCompressor().compress(payload)


def test_put_is_idempotent() -> None:
    store = BlobStore()
    first = store.put("hello")
    second = store.put("hello")
    assert first == second == content_hash("hello")
    assert len(first) == 64
    assert len(store) == 1


def test_near_duplicate_is_stored_as_delta() -> None:
    store = BlobStore()
    base = store.put("line1\nline2\nline3")
    near = store.put("line1\nlineX\nline3")
    assert store.kind(base) == "full"
    assert store.kind(near) == "delta"
    assert store.blob(near).base == base
    assert store.get(near) == "line1\nlineX\nline3"


def test_dissimilar_content_is_stored_in_full() -> None:
    store = BlobStore()
    store.put("alpha\nbeta\ngamma")
    other = store.put("one\ntwo\nthree")
    assert store.kind(other) == "full"


def test_hash_is_sensitive_to_whitespace_and_line_endings() -> None:
    store = BlobStore()
    hashes = {store.put("a\nb"), store.put("a\r\nb"), store.put("a\nb "), store.put("a\nb\n")}
    assert len(hashes) == 4


def test_get_unknown_hash_raises() -> None:
    with pytest.raises(BlobNotFound):
        BlobStore().get("0" * 64)


def test_garbage_collect_keeps_delta_bases() -> None:
    store = BlobStore()
    base = store.put("line1\nline2\nline3")
    near = store.put("line1\nlineX\nline3")
    orphan = store.put("something else entirely")

    removed = store.garbage_collect({near})

    assert removed == 1
    assert orphan not in store
    assert base in store
    assert store.get(near) == "line1\nlineX\nline3"


def test_serialize_round_trip_preserves_encoding() -> None:
    store = BlobStore()
    base = store.put("line1\nline2\nline3")
    near = store.put("line1\nlineX\nline3")

    restored = BlobStore.deserialize(store.serialize())

    assert len(restored) == 2
    assert restored.kind(near) == "delta"
    assert restored.get(base) == "line1\nline2\nline3"
    assert restored.get(near) == "line1\nlineX\nline3"


def test_legacy_json_archive_is_migrated() -> None:
    legacy = orjson.dumps({"abc123": "first file", "def456": "second file"})
    store = BlobStore()
    migrated = store.load(legacy)
    assert migrated is True
    assert store.get(content_hash("first file")) == "first file"
    assert store.get(content_hash("second file")) == "second file"
    assert "abc123" not in store


def test_unknown_archive_rejected() -> None:
    with pytest.raises(ArchiveFormatError):
        BlobStore().load(b"\x00\x01 not an archive")


def test_missing_delta_base_is_broken_chain() -> None:
    store = BlobStore.deserialize(_archive({"d" * 64: {"base": "b" * 64, "script": "R0 x"}}))
    with pytest.raises(BrokenChain):
        store.get("d" * 64)


def test_delta_cycle_is_broken_chain() -> None:
    first, second = "1" * 64, "2" * 64
    store = BlobStore.deserialize(
        _archive({first: {"base": second, "script": "R0 x"}, second: {"base": first, "script": "R0 y"}})
    )
    with pytest.raises(BrokenChain):
        store.get(first)


def test_delta_chain_longer_than_hop_limit_is_broken_chain() -> None:
    blobs = {"0" * 64: {"content": "root"}}
    previous = "0" * 64
    for index in range(1, 5):
        digest = str(index) * 64
        blobs[digest] = {"base": previous, "script": f"R0 v{index}"}
        previous = digest
    store = BlobStore(max_hops=3)
    store.load(_archive(blobs))

    assert store.get("3" * 64) == "v3"
    with pytest.raises(BrokenChain):
        store.get("4" * 64)


def test_delta_script_that_does_not_fit_is_broken_chain() -> None:
    store = BlobStore.deserialize(
        _archive({"a" * 64: {"content": "one line"}, "d" * 64: {"base": "a" * 64, "script": "R7 nope"}})
    )
    with pytest.raises(BrokenChain):
        store.get("d" * 64)


_LINES = st.lists(st.sampled_from(["import os", "", "x = 1", "x = 2", "print(x)", "# note"]), max_size=15)
_CONTENTS = st.lists(_LINES.map("\n".join), min_size=1, max_size=12)


@settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(contents=_CONTENTS)
def test_putting_stored_content_again_adds_nothing(contents: list[str]) -> None:
    store = BlobStore()
    digests = [store.put(content) for content in contents]
    size = len(store)

    assert [store.put(content) for content in contents] == digests
    assert len(store) == size
    assert size == len(set(contents))


@settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(contents=_CONTENTS, data=st.data())
def test_live_hashes_resolve_after_garbage_collection(contents: list[str], data) -> None:
    store = BlobStore()
    digests = {store.put(content): content for content in contents}
    live = data.draw(st.sets(st.sampled_from(sorted(digests))))

    store.garbage_collect(live)

    for digest in live:
        assert store.get(digest) == digests[digest]
