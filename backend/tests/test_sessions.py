"""Tests for session tracking."""

from __future__ import annotations

from pathlib import Path

from code_chronicle.capture.sessions import GitInfo, SessionTracker, read_git_info


def test_git_info_reads_branch(workspace: Path) -> None:
    assert read_git_info(workspace) == GitInfo()

    (workspace / ".git").mkdir()
    (workspace / ".git" / "HEAD").write_text("ref: refs/heads/feature/login\n", encoding="utf-8")
    assert read_git_info(workspace) == GitInfo(repository=workspace.name, branch="feature/login")

    (workspace / ".git" / "HEAD").write_text("3f2a9c0d\n", encoding="utf-8")
    assert read_git_info(workspace) == GitInfo(repository=workspace.name, branch=None)


def test_start_reuses_active_session(workspace: Path, clock) -> None:
    tracker = SessionTracker(workspace, clock=clock)

    session, created = tracker.start()
    again, created_again = tracker.start()

    assert created is True
    assert created_again is False
    assert again.id == session.id
    assert session.start_time == clock.now


def test_idle_detection_and_stop(workspace: Path, clock) -> None:
    tracker = SessionTracker(workspace, idle_timeout_minutes=1, clock=clock)
    assert tracker.is_idle() is False

    tracker.start()
    clock.advance(30_000)
    tracker.touch()
    clock.advance(59_000)
    assert tracker.is_idle() is False
    clock.advance(1_000)
    assert tracker.is_idle() is True

    ended = tracker.stop()
    assert ended.is_active is False
    assert ended.last_activity_time == clock.now
    assert tracker.current is None
    assert tracker.stop() is None


def test_idle_timeout_is_clamped(workspace: Path) -> None:
    assert SessionTracker(workspace, idle_timeout_minutes=0).idle_timeout_minutes == 1
    assert SessionTracker(workspace, idle_timeout_minutes=1000).idle_timeout_minutes == 240
