"""Shared codec result types."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class PatchOutcome:
    """Result of applying a patch script to a base text.

    ``regions`` holds one flag per independently applied hunk. ``content`` is
    the patched text when ``ok`` and the untouched base otherwise.
    """

    ok: bool
    content: str
    regions: tuple[bool, ...] = field(default_factory=tuple)
    detail: str | None = None

    @property
    def failed_regions(self) -> list[int]:
        return [index for index, matched in enumerate(self.regions) if not matched]


__all__ = ["PatchOutcome"]
