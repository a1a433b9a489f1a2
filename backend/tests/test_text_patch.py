"""Tests for the diff-match-patch text codec."""

from __future__ import annotations

from hypothesis import HealthCheck, given, settings, strategies as st

from code_chronicle.codec.text_patch import apply_patch, make_patch


def test_patch_round_trip() -> None:
    old = "def main():\n    return 1\n"
    new = "def main():\n    value = 2\n    return value\n"
    patch = make_patch(old, new)
    outcome = apply_patch(old, patch)
    assert outcome.ok
    assert outcome.content == new
    assert outcome.regions and all(outcome.regions)


def test_identical_content_produces_empty_patch() -> None:
    assert make_patch("same", "same") == ""
    outcome = apply_patch("same", "")
    assert outcome.ok
    assert outcome.content == "same"


def test_patch_from_empty_base() -> None:
    patch = make_patch("", "hello")
    assert apply_patch("", patch).content == "hello"


def test_unmatched_hunk_fails_and_keeps_base() -> None:
    patch = make_patch("def main():\n    return 1\n", "def main():\n    return 2\n")
    base = "ZZZZZZZZZZZZZZZZZZZZ"
    outcome = apply_patch(base, patch)
    assert not outcome.ok
    assert outcome.content == base
    assert outcome.failed_regions


def test_unparseable_patch_text_fails() -> None:
    outcome = apply_patch("text", "this is not a patch")
    assert not outcome.ok
    assert outcome.content == "text"
    assert outcome.detail


_TEXT = st.text(alphabet=st.characters(exclude_categories=("Cs", "Cc"), include_characters="\n\t"), max_size=200)


@settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(old=_TEXT, new=_TEXT)
def test_patch_applied_to_its_base_reproduces_new(old: str, new: str) -> None:
    outcome = apply_patch(old, make_patch(old, new))
    assert outcome.ok
    assert outcome.content == new
