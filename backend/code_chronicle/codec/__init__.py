"""Diff and patch codecs."""

from .line_diff import EditOp, ScriptApplyError, apply_script, decode_script, diff_lines, encode_script, make_script
from .text_patch import apply_patch, make_patch
from .types import PatchOutcome

__all__ = [
    "EditOp",
    "ScriptApplyError",
    "PatchOutcome",
    "apply_script",
    "decode_script",
    "diff_lines",
    "encode_script",
    "make_script",
    "apply_patch",
    "make_patch",
]
