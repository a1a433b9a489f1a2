"""Tests for the event log."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from code_chronicle.history.event_log import SCHEMA_VERSION, EventLog
from code_chronicle.models.entities import TEXT_CODEC, CursorPosition, FileSnapshot, PatchRecord, Session, Snapshot


def _session(session_id: str = "session-1", start: int = 0) -> Session:
    return Session(id=session_id, start_time=start, last_activity_time=start, repository="repo", branch="main")


def _record(record_id: str, path: str, timestamp: int, session_id: str = "session-1") -> PatchRecord:
    return PatchRecord(
        id=record_id,
        session_id=session_id,
        path=path,
        codec=TEXT_CODEC,
        script="",
        base_content=f"base of {record_id}",
        timestamp=timestamp,
        cursor=CursorPosition(line=1, character=2),
    )


@pytest.fixture
def log() -> EventLog:
    event_log = EventLog()
    event_log.open()
    event_log.append_session(_session())
    yield event_log
    event_log.close()


def test_patches_are_ordered_by_time_then_append_order(log: EventLog) -> None:
    log.append_patch(_record("late", "a.py", 300))
    log.append_patch(_record("tie-1", "a.py", 200))
    log.append_patch(_record("tie-2", "a.py", 200))
    log.append_patch(_record("other", "b.py", 100))

    assert [r.id for r in log.patches_by_path("a.py")] == ["tie-1", "tie-2", "late"]
    assert [r.id for r in log.patches_up_to("a.py", 250)] == ["tie-1", "tie-2"]
    assert [r.id for r in log.patches_in_range("a.py", 250, 300)] == ["late"]
    assert log.first_patch("a.py").id == "tie-1"
    assert log.latest_patch("a.py").id == "late"
    assert log.patches_by_path("a.py")[0].cursor == CursorPosition(line=1, character=2)
    assert len(log.patches_by_session("session-1")) == 4
    assert log.patch_count() == 4


def test_file_snapshot_is_first_known_content_per_session(log: EventLog) -> None:
    first = FileSnapshot(id="fs-1", session_id="session-1", path="a.py", content="v1", timestamp=10)
    again = FileSnapshot(id="fs-2", session_id="session-1", path="a.py", content="v2", timestamp=20)
    assert log.append_file_snapshot(first) is True
    assert log.append_file_snapshot(again) is False
    assert log.earliest_file_snapshot("a.py").content == "v1"
    assert log.earliest_file_snapshot("a.py", 5) is None


def test_snapshots_and_cascade_delete(log: EventLog) -> None:
    log.append_snapshot(Snapshot(id="s1", timestamp=100, description="one", files={"a.py": "h1"}))
    log.append_snapshot(
        Snapshot(id="s2", timestamp=200, description="two", files={"a.py": "h2", "b.py": "h3"}, affected_paths=("b.py",))
    )

    assert [s.id for s in log.list_snapshots()] == ["s1", "s2"]
    assert log.latest_snapshot().id == "s2"
    assert log.latest_snapshot_at(150).id == "s1"
    assert log.latest_snapshot_at(50) is None
    assert log.get_snapshot("s2").affected_paths == ("b.py",)
    assert log.live_hashes() == {"h1", "h2", "h3"}
    assert log.oldest_snapshot_id() == "s1"

    assert log.rename_snapshot("s1", "renamed") is True
    assert log.get_snapshot("s1").description == "renamed"
    assert log.delete_snapshot("s1") is True
    assert log.live_hashes() == {"h2", "h3"}
    assert log.snapshot_count() == 1
    assert log.delete_snapshot("s1") is False


def test_tracked_paths_combines_sources(log: EventLog) -> None:
    log.append_patch(_record("p1", "a.py", 1))
    log.append_file_snapshot(FileSnapshot(id="fs", session_id="session-1", path="b.py", content="", timestamp=1))
    log.append_snapshot(Snapshot(id="s", timestamp=1, description="", files={"c.py": "h"}))
    assert log.tracked_paths() == ["a.py", "b.py", "c.py"]


def test_sessions_round_trip(log: EventLog) -> None:
    log.update_session_activity("session-1", 50)
    log.end_session("session-1", 60)
    session = log.get_session("session-1")
    assert session.is_active is False
    assert session.last_activity_time == 60
    assert session.branch == "main"
    assert [s.id for s in log.list_sessions()] == ["session-1"]


def test_flush_persists_and_reopen_restores(tmp_path: Path) -> None:
    path = tmp_path / "chronicle.db"
    log = EventLog(path)
    log.open()
    log.append_session(_session())
    log.append_patch(_record("p1", "a.py", 100))
    assert log.flush() is True
    assert log.flush() is False
    log.close()

    reopened = EventLog(path)
    reopened.open()
    assert [r.id for r in reopened.patches_by_path("a.py")] == ["p1"]
    assert reopened.db.user_version == SCHEMA_VERSION
    reopened.close()


def test_unflushed_tail_is_lost_on_crash(tmp_path: Path) -> None:
    path = tmp_path / "chronicle.db"
    log = EventLog(path)
    log.open()
    log.append_session(_session())
    log.append_patch(_record("kept", "a.py", 100))
    log.flush()
    log.append_patch(_record("lost", "a.py", 200))
    # Simulate a crash: drop the connection without flushing.
    log.db.close()

    reopened = EventLog(path)
    reopened.open()
    assert [r.id for r in reopened.patches_by_path("a.py")] == ["kept"]
    reopened.close()


def test_unreadable_database_is_quarantined(tmp_path: Path) -> None:
    path = tmp_path / "chronicle.db"
    path.write_bytes(b"definitely not sqlite" * 100)
    log = EventLog(path)
    log.open()
    assert log.patch_count() == 0
    assert list(tmp_path.glob("chronicle.db.unreadable-*"))
    log.close()


def test_clear_removes_everything(log: EventLog) -> None:
    log.append_patch(_record("p1", "a.py", 1))
    log.append_snapshot(Snapshot(id="s", timestamp=1, description="", files={"a.py": "h"}))
    log.clear()
    assert log.patch_count() == 0
    assert log.snapshot_count() == 0
    assert log.list_sessions() == []


def test_legacy_tables_are_migrated(tmp_path: Path) -> None:
    path = tmp_path / "chronicle.db"
    conn = sqlite3.connect(path)
    conn.executescript(
        """
        CREATE TABLE sessions (
            session_id TEXT PRIMARY KEY, repository_name TEXT, branch_name TEXT,
            start_time INTEGER NOT NULL, last_activity_time INTEGER NOT NULL,
            is_active INTEGER NOT NULL DEFAULT 1, created_at INTEGER NOT NULL
        );
        CREATE TABLE diff_events (
            id TEXT PRIMARY KEY, session_id TEXT NOT NULL, file_path TEXT NOT NULL, patch TEXT NOT NULL,
            base_content TEXT NOT NULL, timestamp INTEGER NOT NULL, cursor_line INTEGER NOT NULL,
            cursor_character INTEGER NOT NULL, created_at INTEGER NOT NULL,
            FOREIGN KEY (session_id) REFERENCES sessions(session_id)
        );
        CREATE TABLE file_snapshots (
            id TEXT PRIMARY KEY, session_id TEXT NOT NULL, file_path TEXT NOT NULL, content TEXT NOT NULL,
            timestamp INTEGER NOT NULL, created_at INTEGER NOT NULL,
            FOREIGN KEY (session_id) REFERENCES sessions(session_id)
        );
        INSERT INTO sessions VALUES ('s-old', 'repo', 'dev', 10, 40, 0, 10);
        INSERT INTO diff_events VALUES ('e1', 's-old', 'src/a.ts', '', 'x', 20, 0, 1, 20);
        INSERT INTO diff_events VALUES ('e2', 'orphan', 'src/a.ts', '', 'y', 30, 2, 3, 30);
        INSERT INTO file_snapshots VALUES ('f1', 's-old', 'src/a.ts', 'x', 15, 15);
        """
    )
    conn.commit()
    conn.close()

    log = EventLog(path)
    log.open()

    records = log.patches_by_path("src/a.ts")
    assert [r.id for r in records] == ["e1", "e2"]
    assert records[1].cursor == CursorPosition(line=2, character=3)
    assert all(r.codec == TEXT_CODEC for r in records)
    assert log.get_session("s-old").branch == "dev"
    assert log.get_session("orphan") is not None
    assert log.earliest_file_snapshot("src/a.ts").content == "x"
    assert not log.db.table_exists("diff_events")
    log.close()

    reopened = EventLog(path)
    reopened.open()
    assert reopened.patch_count() == 2
    reopened.close()
