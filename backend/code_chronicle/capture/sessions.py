"""Coding session lifecycle with git tagging and idle timeout."""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable

from code_chronicle.core.config import MAX_IDLE_TIMEOUT_MINUTES, MIN_IDLE_TIMEOUT_MINUTES
from code_chronicle.core.logging import get_logger
from code_chronicle.models.entities import Session
from code_chronicle.utils.ids import new_id
from code_chronicle.utils.time import now_ms

logger = get_logger(__name__)

_HEAD_REF_PREFIX = "ref: refs/heads/"


@dataclass(frozen=True, slots=True)
class GitInfo:
    repository: str | None = None
    branch: str | None = None


def read_git_info(workspace_root: Path) -> GitInfo:
    """Repository name is the workspace folder; branch comes from ``.git/HEAD``."""
    git_dir = workspace_root / ".git"
    if not git_dir.is_dir():
        return GitInfo()
    branch = None
    head = git_dir / "HEAD"
    try:
        content = head.read_text(encoding="utf-8").strip()
    except OSError as exc:
        logger.warning("Cannot read %s: %s", head, exc)
    else:
        if content.startswith(_HEAD_REF_PREFIX):
            branch = content[len(_HEAD_REF_PREFIX) :]
    return GitInfo(repository=workspace_root.name, branch=branch)


class SessionTracker:
    """Hold the active session; persistence is left to the caller."""

    def __init__(
        self,
        workspace_root: Path,
        idle_timeout_minutes: int = 15,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.workspace_root = workspace_root
        self.idle_timeout_minutes = max(
            MIN_IDLE_TIMEOUT_MINUTES, min(MAX_IDLE_TIMEOUT_MINUTES, int(idle_timeout_minutes))
        )
        self._clock = clock
        self._lock = threading.Lock()
        self._current: Session | None = None

    @property
    def current(self) -> Session | None:
        with self._lock:
            return replace(self._current) if self._current else None

    @property
    def idle_timeout_ms(self) -> int:
        return self.idle_timeout_minutes * 60 * 1000

    def start(self, timestamp: int | None = None) -> tuple[Session, bool]:
        """Return the active session, creating one if needed; the flag tells which."""
        with self._lock:
            if self._current is not None:
                return replace(self._current), False
            now = timestamp if timestamp is not None else self._clock()
            info = read_git_info(self.workspace_root)
            self._current = Session(
                id=new_id("session", now),
                start_time=now,
                last_activity_time=now,
                repository=info.repository,
                branch=info.branch,
            )
            logger.info(
                "Started session %s",
                self._current.id,
                extra={"ctx_repository": info.repository, "ctx_branch": info.branch},
            )
            return replace(self._current), True

    def stop(self, timestamp: int | None = None) -> Session | None:
        with self._lock:
            session = self._current
            self._current = None
        if session is None:
            return None
        session.is_active = False
        session.last_activity_time = timestamp if timestamp is not None else self._clock()
        logger.info("Ended session %s", session.id)
        return session

    def touch(self, timestamp: int | None = None) -> Session | None:
        with self._lock:
            if self._current is None:
                return None
            now = timestamp if timestamp is not None else self._clock()
            self._current.last_activity_time = max(self._current.last_activity_time, now)
            return replace(self._current)

    def is_idle(self, now: int | None = None) -> bool:
        with self._lock:
            if self._current is None:
                return False
            now = now if now is not None else self._clock()
            return now - self._current.last_activity_time >= self.idle_timeout_ms


__all__ = ["GitInfo", "SessionTracker", "read_git_info"]
