"""Character-granular patches for live edits, backed by diff-match-patch.

Patches carry surrounding context, so application tolerates minor drift of
the base text. Each hunk is applied independently and reported as matched or
not; an outcome is only ``ok`` when every hunk matched.
"""

from __future__ import annotations

from diff_match_patch import diff_match_patch

from code_chronicle.codec.types import PatchOutcome


def _engine() -> diff_match_patch:
    engine = diff_match_patch()
    # Exact diffs regardless of size; live batches are small.
    engine.Diff_Timeout = 0
    return engine


def make_patch(old: str, new: str) -> str:
    """Return patch text turning ``old`` into ``new`` (empty when equal)."""
    if old == new:
        return ""
    engine = _engine()
    return engine.patch_toText(engine.patch_make(old, new))


def apply_patch(base: str, patch_text: str) -> PatchOutcome:
    if not patch_text:
        return PatchOutcome(ok=True, content=base)
    engine = _engine()
    try:
        patches = engine.patch_fromText(patch_text)
    except ValueError as exc:
        return PatchOutcome(ok=False, content=base, detail=f"unparseable patch: {exc}")
    content, results = engine.patch_apply(patches, base)
    regions = tuple(bool(result) for result in results)
    if not all(regions):
        failed = [index for index, matched in enumerate(regions) if not matched]
        return PatchOutcome(ok=False, content=base, regions=regions, detail=f"hunks {failed} did not match")
    return PatchOutcome(ok=True, content=content, regions=regions)


__all__ = ["make_patch", "apply_patch"]
