"""Tests for the line-level delta codec."""

from __future__ import annotations

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st
from hypothesis.strategies import composite

from code_chronicle.codec.line_diff import (
    DELETE,
    INSERT,
    REPLACE,
    EditOp,
    ScriptApplyError,
    apply_script,
    decode_script,
    diff_lines,
    encode_script,
    make_script,
    try_apply,
)

PAIRS = [
    ("", ""),
    ("", "first line"),
    ("only", ""),
    ("a\nb\nc", "a\nb\nc"),
    ("a\nb\nc", "a\nX\nc"),
    ("a\nb\nc", "a\nc"),
    ("a\nc", "a\nb\nc"),
    ("a\nb\nc\nd", "d\nc\nb\na"),
    ("header\nbody\nfooter\n", "header\nnew\nbody\nmore\nfooter\n"),
    ("x\ny\nz", "y\nz\nw\nv"),
    ("one\ntwo\nthree\nfour\nfive", "zero\none\nthree\nfive\nsix"),
    ("trailing\n", "trailing"),
]


@pytest.mark.parametrize("old,new", PAIRS)
def test_diff_then_apply_restores_new(old: str, new: str) -> None:
    script = diff_lines(old, new, max_ratio=None)
    assert script is not None
    assert apply_script(old, script) == new
    assert apply_script(old, decode_script(encode_script(script))) == new


def test_replacement_of_single_line() -> None:
    script = diff_lines("line1\nline2\nline3", "line1\nlineX\nline3")
    assert script == [EditOp(REPLACE, 1, "lineX")]
    assert encode_script(script) == "R1 lineX"


def test_insert_and_delete_detected_by_lookahead() -> None:
    inserted = diff_lines("a\nb", "a\nnew\nb", max_ratio=None)
    assert inserted == [EditOp(INSERT, 1, "new")]
    deleted = diff_lines("a\nold\nb", "a\nb", max_ratio=None)
    assert deleted == [EditOp(DELETE, 1)]


def test_oversized_script_is_rejected() -> None:
    assert diff_lines("a\nb\nc", "x\ny\nz") is None


def test_apply_rejects_out_of_range_indices() -> None:
    with pytest.raises(ScriptApplyError):
        apply_script("a\nb", [EditOp(REPLACE, 5, "x")])
    with pytest.raises(ScriptApplyError):
        apply_script("a\nb", [EditOp(DELETE, 2)])
    with pytest.raises(ScriptApplyError):
        apply_script("a\nb", [EditOp(DELETE, 0), EditOp(DELETE, 0)])
    with pytest.raises(ScriptApplyError):
        apply_script("a", [EditOp(INSERT, 3, "x")])


def test_decode_rejects_malformed_scripts() -> None:
    for payload in ("X1 text", "R one", "R1", "D-1", "I١ text"):
        with pytest.raises(ScriptApplyError):
            decode_script(payload)
    assert decode_script("") == []


def test_text_with_spaces_survives_encoding() -> None:
    script = [EditOp(REPLACE, 0, "  indented text "), EditOp(INSERT, 1, "")]
    assert decode_script(encode_script(script)) == script


def test_try_apply_reports_failure_without_raising() -> None:
    outcome = try_apply("a\nb", "R9 nope")
    assert not outcome.ok
    assert outcome.content == "a\nb"
    assert outcome.failed_regions == [0]

    good = try_apply("a\nb", make_script("a\nb", "a\nc"))
    assert good.ok
    assert good.content == "a\nc"


@composite
def documents(draw):
    """Line-structured text drawn from a small vocabulary so edits overlap."""
    lines = draw(st.lists(st.sampled_from(["", "a", "b", "def f():", "    return 1", "}", "x = 2 "]), max_size=25))
    text = "\n".join(lines)
    if draw(st.booleans()):
        text += "\n"
    return text


@settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(old=documents(), new=documents())
def test_apply_of_diff_reproduces_new_document(old: str, new: str) -> None:
    script = diff_lines(old, new, max_ratio=None)
    assert apply_script(old, script) == new
    assert try_apply(old, make_script(old, new)).content == new


@settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(old=st.text(max_size=80), new=st.text(max_size=80))
def test_apply_of_diff_reproduces_arbitrary_text(old: str, new: str) -> None:
    script = diff_lines(old, new, max_ratio=None)
    assert apply_script(old, decode_script(encode_script(script))) == new
