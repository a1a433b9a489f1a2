"""Text processing helpers."""

from __future__ import annotations

LINE_SEPARATOR = "\n"


def split_lines(text: str) -> list[str]:
    """Split on newlines so that ``join_lines`` restores the exact input."""
    return text.split(LINE_SEPARATOR)


def join_lines(lines: list[str]) -> str:
    return LINE_SEPARATOR.join(lines)


def decode_text(data: bytes) -> str | None:
    """Decode UTF-8 file content, or None for binary/undecodable data."""
    if b"\x00" in data[:8192]:
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None
