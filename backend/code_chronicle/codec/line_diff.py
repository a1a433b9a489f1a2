"""Line-level edit scripts used for blob delta encoding.

A script is a list of :class:`EditOp`. Replacements and deletions address
lines of the base text; insertions address positions in the buffer left after
deletions and are applied in ascending order with a running offset. Scripts
serialize to a compact text form, one operation per line::

    R<line> <text>
    D<line>
    I<line> <text>
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from code_chronicle.codec.types import PatchOutcome
from code_chronicle.utils.text import join_lines, split_lines

REPLACE = "replace"
DELETE = "delete"
INSERT = "insert"

DEFAULT_LOOKAHEAD = 10
DEFAULT_MAX_RATIO = 0.6

_TAGS = {REPLACE: "R", DELETE: "D", INSERT: "I"}
_KINDS = {tag: kind for kind, tag in _TAGS.items()}


class ScriptApplyError(ValueError):
    """Script does not fit the base text or cannot be parsed."""


@dataclass(frozen=True, slots=True)
class EditOp:
    kind: str
    line: int
    text: str = ""


def diff_lines(
    old: str,
    new: str,
    lookahead: int = DEFAULT_LOOKAHEAD,
    max_ratio: float | None = DEFAULT_MAX_RATIO,
) -> list[EditOp] | None:
    """Return an edit script turning ``old`` into ``new``.

    Returns None when the encoded script is not smaller than ``max_ratio``
    times the size of ``new``; callers then store ``new`` in full.
    """
    old_lines = split_lines(old)
    new_lines = split_lines(new)
    ops: list[EditOp] = []
    i = j = 0
    kept = 0
    while i < len(old_lines) or j < len(new_lines):
        if i >= len(old_lines):
            ops.append(EditOp(INSERT, kept, new_lines[j]))
            j += 1
            continue
        if j >= len(new_lines):
            ops.append(EditOp(DELETE, i))
            i += 1
            continue
        if old_lines[i] == new_lines[j]:
            i += 1
            j += 1
            kept += 1
            continue

        inserted = _realign_distance(new_lines, j, old_lines[i], lookahead)
        deleted = _realign_distance(old_lines, i, new_lines[j], lookahead)
        if inserted is not None and (deleted is None or inserted <= deleted):
            for offset in range(inserted):
                ops.append(EditOp(INSERT, kept, new_lines[j + offset]))
            j += inserted
        elif deleted is not None:
            for offset in range(deleted):
                ops.append(EditOp(DELETE, i + offset))
            i += deleted
        else:
            ops.append(EditOp(REPLACE, i, new_lines[j]))
            i += 1
            j += 1
            kept += 1

    if max_ratio is not None:
        encoded_size = len(encode_script(ops).encode("utf-8"))
        if encoded_size >= max_ratio * len(new.encode("utf-8")):
            return None
    return ops


def _realign_distance(lines: Sequence[str], start: int, target: str, lookahead: int) -> int | None:
    for distance in range(1, lookahead + 1):
        index = start + distance
        if index >= len(lines):
            return None
        if lines[index] == target:
            return distance
    return None


def apply_script(base: str, script: Sequence[EditOp]) -> str:
    """Apply ``script`` to ``base``; raises ScriptApplyError on any index misfit."""
    lines = split_lines(base)
    size = len(lines)
    replacements = [op for op in script if op.kind == REPLACE]
    deletions = [op.line for op in script if op.kind == DELETE]
    insertions = [op for op in script if op.kind == INSERT]

    for op in replacements:
        if not 0 <= op.line < size:
            raise ScriptApplyError(f"replace at line {op.line} outside base of {size} lines")
        lines[op.line] = op.text

    if len(set(deletions)) != len(deletions):
        raise ScriptApplyError("script deletes the same line twice")
    for line in sorted(deletions, reverse=True):
        if not 0 <= line < size:
            raise ScriptApplyError(f"delete at line {line} outside base of {size} lines")
        del lines[line]

    offset = 0
    for op in sorted(insertions, key=lambda item: item.line):
        position = op.line + offset
        if op.line < 0 or position > len(lines):
            raise ScriptApplyError(f"insert at line {op.line} outside buffer of {len(lines) - offset} lines")
        lines.insert(position, op.text)
        offset += 1
    return join_lines(lines)


def encode_script(script: Sequence[EditOp]) -> str:
    parts: list[str] = []
    for op in script:
        tag = _TAGS[op.kind]
        if op.kind == DELETE:
            parts.append(f"{tag}{op.line}")
        else:
            parts.append(f"{tag}{op.line} {op.text}")
    return "\n".join(parts)


def decode_script(payload: str) -> list[EditOp]:
    if not payload:
        return []
    ops: list[EditOp] = []
    for raw in payload.split("\n"):
        kind = _KINDS.get(raw[:1])
        if kind is None:
            raise ScriptApplyError(f"unknown script operation {raw[:16]!r}")
        head, separator, text = raw[1:].partition(" ")
        if not (head.isascii() and head.isdigit()):
            raise ScriptApplyError(f"invalid line number in {raw[:16]!r}")
        if kind != DELETE and not separator:
            raise ScriptApplyError(f"missing text in {raw[:16]!r}")
        ops.append(EditOp(kind, int(head), text if kind != DELETE else ""))
    return ops


def make_script(old: str, new: str, lookahead: int = DEFAULT_LOOKAHEAD) -> str:
    """Encoded script with no size limit, as stored in line-codec patch records."""
    ops = diff_lines(old, new, lookahead=lookahead, max_ratio=None)
    assert ops is not None
    return encode_script(ops)


def try_apply(base: str, payload: str) -> PatchOutcome:
    """Decode and apply an encoded script without raising."""
    try:
        script = decode_script(payload)
        content = apply_script(base, script)
    except ScriptApplyError as exc:
        return PatchOutcome(ok=False, content=base, regions=(False,), detail=str(exc))
    return PatchOutcome(ok=True, content=content, regions=(True,))


__all__ = [
    "EditOp",
    "ScriptApplyError",
    "diff_lines",
    "apply_script",
    "encode_script",
    "decode_script",
    "make_script",
    "try_apply",
    "REPLACE",
    "DELETE",
    "INSERT",
]
