"""Tests for boundary event validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from code_chronicle.core.errors import InvalidArgument
from code_chronicle.models.events import (
    Delete,
    FileChangeEvent,
    FullReplace,
    Insert,
    RangeReplace,
    apply_edits,
    parse_edit,
)


def test_edit_variants_are_selected_by_kind() -> None:
    assert isinstance(parse_edit({"kind": "full", "text": "x"}), FullReplace)
    assert isinstance(parse_edit({"kind": "insert", "offset": 0, "text": "x"}), Insert)
    assert isinstance(parse_edit({"kind": "delete", "offset": 0, "length": 1}), Delete)
    assert isinstance(parse_edit({"kind": "replace", "start": 0, "end": 1, "text": "x"}), RangeReplace)


@pytest.mark.parametrize(
    "payload",
    [
        {"kind": "append", "text": "x"},
        {"kind": "insert", "offset": -1, "text": "x"},
        {"kind": "replace", "start": 5, "end": 2, "text": "x"},
        {"text": "no kind"},
    ],
)
def test_invalid_edits_are_rejected(payload: dict) -> None:
    with pytest.raises(ValidationError):
        parse_edit(payload)


def test_change_event_normalises_path_and_requires_edits() -> None:
    event = FileChangeEvent.model_validate(
        {"path": "src\\app.py", "edits": [{"kind": "insert", "offset": 0, "text": "#"}], "cursor": {"line": 3}}
    )
    assert event.path == "src/app.py"
    assert event.cursor.character == 0
    with pytest.raises(ValidationError):
        FileChangeEvent.model_validate({"path": "a.py", "edits": []})
    with pytest.raises(ValidationError):
        FileChangeEvent.model_validate({"path": "  ", "edits": [{"kind": "full", "text": ""}]})


def test_apply_edits_in_order() -> None:
    edits = [
        Insert(offset=5, text=" world"),
        RangeReplace(start=0, end=5, text="Hello"),
        Delete(offset=11, length=1),
    ]
    assert apply_edits("hello!", edits) == "Hello world"
    assert apply_edits("anything", [FullReplace(text="fresh")]) == "fresh"


def test_apply_edits_rejects_offsets_past_end() -> None:
    with pytest.raises(InvalidArgument):
        apply_edits("abc", [Insert(offset=4, text="x")])
    with pytest.raises(InvalidArgument):
        apply_edits("abc", [Delete(offset=2, length=5)])
