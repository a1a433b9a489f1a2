"""Workspace scanning and the rules for which files are tracked."""

from __future__ import annotations

import fnmatch
import os
import re
from pathlib import Path, PurePosixPath
from typing import Iterable, Iterator

from code_chronicle.core.config import Settings
from code_chronicle.core.errors import InvalidArgument
from code_chronicle.core.logging import get_logger
from code_chronicle.utils.text import decode_text

logger = get_logger(__name__)

IGNORED_DIRECTORIES = frozenset({".git", "node_modules", ".history_machine", ".code-chronicle"})

SECRET_PATTERNS = (
    re.compile(r"(^|/)\.env($|\.)"),
    re.compile(r"(^|/)secrets?/", re.IGNORECASE),
    re.compile(r"config\.secret", re.IGNORECASE),
    re.compile(r"\.(pem|key|p12|pfx)$", re.IGNORECASE),
)

BINARY_EXTENSIONS = frozenset(
    {
        ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".webp",
        ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
        ".zip", ".tar", ".gz", ".rar", ".7z",
        ".exe", ".dll", ".so", ".dylib",
        ".mp3", ".mp4", ".wav", ".avi", ".mov", ".mkv",
        ".ttf", ".otf", ".woff", ".woff2", ".eot",
        ".sqlite", ".db", ".sqlite3", ".zst",
        ".pyc", ".class", ".o", ".obj",
    }
)  # fmt: skip


class WorkspaceScanner:
    """Map workspace files to relative POSIX paths and read trackable ones."""

    def __init__(
        self,
        root: Path,
        include_glob: str | None = None,
        exclude_glob: str | None = None,
        excluded_dirs: Iterable[Path] = (),
    ) -> None:
        self.root = root.expanduser().resolve()
        self.include_glob = include_glob
        self.exclude_glob = exclude_glob
        self._excluded_dirs = [path.expanduser().resolve() for path in excluded_dirs]

    @classmethod
    def from_settings(cls, settings: Settings) -> "WorkspaceScanner":
        return cls(
            root=settings.workspace_root,
            include_glob=settings.include_glob,
            exclude_glob=settings.exclude_glob,
            excluded_dirs=[settings.data_dir],
        )

    def relative_path(self, path: Path | str) -> str:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.root / candidate
        candidate = candidate.resolve()
        try:
            relative = candidate.relative_to(self.root)
        except ValueError:
            raise InvalidArgument(f"{path} is outside the workspace {self.root}") from None
        return relative.as_posix()

    def absolute_path(self, relative: str) -> Path:
        target = (self.root / relative).resolve()
        if not target.is_relative_to(self.root) or target == self.root:
            raise InvalidArgument(f"{relative} does not name a file inside the workspace")
        return target

    def should_track(self, relative: str) -> bool:
        parts = PurePosixPath(relative).parts
        if any(part in IGNORED_DIRECTORIES for part in parts[:-1]):
            return False
        if any(pattern.search(relative) for pattern in SECRET_PATTERNS):
            return False
        if PurePosixPath(relative).suffix.lower() in BINARY_EXTENSIONS:
            return False
        absolute = self.root / relative
        if any(absolute.is_relative_to(excluded) for excluded in self._excluded_dirs):
            return False
        return _matches_patterns(absolute.as_posix(), self.include_glob, self.exclude_glob)

    def iter_files(self) -> Iterator[tuple[str, Path]]:
        for dirpath, dirnames, filenames in os.walk(self.root):
            current = Path(dirpath)
            dirnames[:] = sorted(
                name
                for name in dirnames
                if name not in IGNORED_DIRECTORIES
                and not any((current / name).resolve() == excluded for excluded in self._excluded_dirs)
            )
            for filename in sorted(filenames):
                file_path = current / filename
                relative = file_path.relative_to(self.root).as_posix()
                if self.should_track(relative):
                    yield relative, file_path

    def read_text(self, path: Path) -> str | None:
        try:
            data = path.read_bytes()
        except OSError as exc:
            logger.warning("Cannot read %s: %s", path, exc)
            return None
        return decode_text(data)

    def scan(self) -> dict[str, str]:
        """Return relative path -> content for every trackable text file."""
        state: dict[str, str] = {}
        for relative, file_path in self.iter_files():
            content = self.read_text(file_path)
            if content is None:
                logger.debug("Skipping undecodable file %s", relative)
                continue
            state[relative] = content
        return state


def _matches_patterns(path_str: str, include: str | None, exclude: str | None) -> bool:
    if exclude and any(fnmatch.fnmatch(path_str, pattern.strip()) for pattern in _expand_patterns(exclude)):
        return False
    if include:
        return any(fnmatch.fnmatch(path_str, pattern.strip()) for pattern in _expand_patterns(include))
    return True


def _expand_patterns(pattern: str) -> list[str]:
    patterns = []
    for part in _split_top_level(pattern):
        part = part.strip()
        if not part:
            continue
        if "{" in part and "}" in part:
            prefix = part[: part.index("{")]
            suffix = part[part.index("}") + 1 :]
            options = part[part.index("{") + 1 : part.index("}")].split(",")
            for option in options:
                patterns.append(f"{prefix}{option}{suffix}")
        else:
            patterns.append(part)
    return patterns or [pattern]


def _split_top_level(pattern: str) -> list[str]:
    # Commas separate patterns except inside {a,b} groups.
    parts: list[str] = []
    depth = 0
    current = ""
    for char in pattern:
        if char == "{":
            depth += 1
        elif char == "}":
            depth = max(0, depth - 1)
        if char == "," and depth == 0:
            parts.append(current)
            current = ""
        else:
            current += char
    parts.append(current)
    return parts


__all__ = ["WorkspaceScanner", "IGNORED_DIRECTORIES", "BINARY_EXTENSIONS"]
