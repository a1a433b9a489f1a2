"""Append-only log of sessions, patch records and snapshots.

The log is an in-memory SQLite database. Writes are visible to readers as
soon as they are appended but only reach the durable file on ``flush``, which
the host calls on a fixed interval and on shutdown. A crash between flushes
loses at most the unflushed tail; the durable file itself is always a
consistent copy because it is written with the SQLite backup API and
atomically renamed into place.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Iterable, Sequence

import orjson

from code_chronicle.core.logging import get_logger
from code_chronicle.db.sqlite import SQLiteDatabase
from code_chronicle.models.entities import CursorPosition, FileSnapshot, PatchRecord, Session, Snapshot
from code_chronicle.utils.time import now_ms

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_PATCH_COLUMNS = "id, session_id, path, codec, script, base_content, timestamp, cursor_line, cursor_character"


class EventLog:
    """Timestamp- and path-indexed record of capture events."""

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path
        self.db = SQLiteDatabase()
        self._dirty = False

    # Lifecycle --------------------------------------------------------

    def open(self) -> None:
        self.db.connect()
        if self.db_path is not None and self.db_path.exists():
            try:
                self.db.load_from(self.db_path)
            except sqlite3.DatabaseError as exc:
                quarantined = self.db_path.with_name(f"{self.db_path.name}.unreadable-{now_ms()}")
                self.db_path.replace(quarantined)
                logger.error("Event log %s is unreadable (%s); moved to %s", self.db_path, exc, quarantined)
                self.db.close()
                self.db.connect()
        migrated = self._migrate_legacy_tables()
        self.db.ensure_schema()
        version = self.db.user_version
        if version > SCHEMA_VERSION:
            logger.warning("Event log schema version %s is newer than supported %s", version, SCHEMA_VERSION)
        elif version < SCHEMA_VERSION:
            self.db.user_version = SCHEMA_VERSION
            self._dirty = True
        self.db.commit()
        if migrated:
            self._dirty = True
            self.flush()

    def flush(self) -> bool:
        """Persist the in-memory log; returns False when nothing was pending."""
        if self.db_path is None or not self._dirty:
            return False
        self.db.backup_to(self.db_path)
        self._dirty = False
        logger.debug("Event log flushed to %s", self.db_path)
        return True

    def close(self) -> None:
        self.flush()
        self.db.close()

    def clear(self) -> None:
        with self.db.transaction() as cursor:
            cursor.execute("DELETE FROM snapshot_files")
            cursor.execute("DELETE FROM snapshots")
            cursor.execute("DELETE FROM patch_records")
            cursor.execute("DELETE FROM file_snapshots")
            cursor.execute("DELETE FROM sessions")
        self._dirty = True

    # Sessions ---------------------------------------------------------

    def append_session(self, session: Session) -> None:
        self.db.execute(
            """
            INSERT INTO sessions (id, repository, branch, start_time, last_activity_time, is_active, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
              repository = excluded.repository,
              branch = excluded.branch,
              last_activity_time = excluded.last_activity_time,
              is_active = excluded.is_active
            """,
            [
                session.id,
                session.repository,
                session.branch,
                session.start_time,
                session.last_activity_time,
                int(session.is_active),
                now_ms(),
            ],
        )
        self._commit()

    def update_session_activity(self, session_id: str, timestamp: int) -> None:
        self.db.execute("UPDATE sessions SET last_activity_time = ? WHERE id = ?", [timestamp, session_id])
        self._commit()

    def end_session(self, session_id: str, timestamp: int | None = None) -> None:
        self.db.execute(
            "UPDATE sessions SET is_active = 0, last_activity_time = ? WHERE id = ?",
            [timestamp if timestamp is not None else now_ms(), session_id],
        )
        self._commit()

    def get_session(self, session_id: str) -> Session | None:
        row = self.db.execute("SELECT * FROM sessions WHERE id = ?", [session_id]).fetchone()
        return _row_to_session(row) if row else None

    def list_sessions(self) -> list[Session]:
        rows = self.db.query("SELECT * FROM sessions ORDER BY start_time ASC")
        return [_row_to_session(row) for row in rows]

    # Patch records ----------------------------------------------------

    def append_patch(self, record: PatchRecord) -> None:
        cursor = record.cursor
        self.db.execute(
            f"INSERT INTO patch_records ({_PATCH_COLUMNS}, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                record.id,
                record.session_id,
                record.path,
                record.codec,
                record.script,
                record.base_content,
                record.timestamp,
                cursor.line if cursor else None,
                cursor.character if cursor else None,
                now_ms(),
            ],
        )
        self._commit()

    def patches_by_session(self, session_id: str) -> list[PatchRecord]:
        return self._patches("session_id = ?", [session_id])

    def patches_by_path(self, path: str) -> list[PatchRecord]:
        return self._patches("path = ?", [path])

    def patches_up_to(self, path: str, timestamp: int) -> list[PatchRecord]:
        return self._patches("path = ? AND timestamp <= ?", [path, timestamp])

    def patches_in_range(self, path: str, start: int, end: int) -> list[PatchRecord]:
        return self._patches("path = ? AND timestamp >= ? AND timestamp <= ?", [path, start, end])

    def first_patch(self, path: str) -> PatchRecord | None:
        records = self._patches("path = ?", [path], limit=1)
        return records[0] if records else None

    def latest_patch(self, path: str) -> PatchRecord | None:
        row = self.db.execute(
            f"SELECT {_PATCH_COLUMNS} FROM patch_records WHERE path = ? ORDER BY timestamp DESC, seq DESC LIMIT 1",
            [path],
        ).fetchone()
        return _row_to_patch(row) if row else None

    def tracked_paths(self) -> list[str]:
        rows = self.db.query(
            """
            SELECT path FROM patch_records
            UNION SELECT path FROM file_snapshots
            UNION SELECT path FROM snapshot_files
            ORDER BY path ASC
            """
        )
        return [row["path"] for row in rows]

    def patch_count(self) -> int:
        return int(self.db.execute("SELECT COUNT(*) FROM patch_records").fetchone()[0])

    # File snapshots ---------------------------------------------------

    def append_file_snapshot(self, snapshot: FileSnapshot) -> bool:
        """Store the first known content of a path in a session; False if one exists."""
        cursor = self.db.execute(
            """
            INSERT OR IGNORE INTO file_snapshots (id, session_id, path, content, timestamp, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [snapshot.id, snapshot.session_id, snapshot.path, snapshot.content, snapshot.timestamp, now_ms()],
        )
        self._commit()
        return cursor.rowcount > 0

    def earliest_file_snapshot(self, path: str, timestamp: int | None = None) -> FileSnapshot | None:
        sql = "SELECT * FROM file_snapshots WHERE path = ?"
        params: list[object] = [path]
        if timestamp is not None:
            sql += " AND timestamp <= ?"
            params.append(timestamp)
        row = self.db.execute(sql + " ORDER BY timestamp ASC LIMIT 1", params).fetchone()
        if row is None:
            return None
        return FileSnapshot(
            id=row["id"],
            session_id=row["session_id"],
            path=row["path"],
            content=row["content"],
            timestamp=row["timestamp"],
        )

    # Workspace snapshots ----------------------------------------------

    def append_snapshot(self, snapshot: Snapshot) -> None:
        with self.db.transaction() as cursor:
            cursor.execute(
                "INSERT INTO snapshots (id, timestamp, description, affected_paths, created_at) VALUES (?, ?, ?, ?, ?)",
                [
                    snapshot.id,
                    snapshot.timestamp,
                    snapshot.description,
                    orjson.dumps(list(snapshot.affected_paths)).decode("utf-8"),
                    now_ms(),
                ],
            )
            cursor.executemany(
                "INSERT INTO snapshot_files (snapshot_id, path, content_hash) VALUES (?, ?, ?)",
                [(snapshot.id, path, digest) for path, digest in snapshot.files.items()],
            )
        self._dirty = True

    def delete_snapshot(self, snapshot_id: str) -> bool:
        cursor = self.db.execute("DELETE FROM snapshots WHERE id = ?", [snapshot_id])
        self._commit()
        return cursor.rowcount > 0

    def rename_snapshot(self, snapshot_id: str, description: str) -> bool:
        cursor = self.db.execute("UPDATE snapshots SET description = ? WHERE id = ?", [description, snapshot_id])
        self._commit()
        return cursor.rowcount > 0

    def get_snapshot(self, snapshot_id: str) -> Snapshot | None:
        row = self.db.execute("SELECT * FROM snapshots WHERE id = ?", [snapshot_id]).fetchone()
        return self._hydrate_snapshots([row])[0] if row else None

    def list_snapshots(self) -> list[Snapshot]:
        rows = self.db.query("SELECT * FROM snapshots ORDER BY timestamp ASC, seq ASC")
        return self._hydrate_snapshots(rows)

    def latest_snapshot(self) -> Snapshot | None:
        row = self.db.execute("SELECT * FROM snapshots ORDER BY timestamp DESC, seq DESC LIMIT 1").fetchone()
        return self._hydrate_snapshots([row])[0] if row else None

    def latest_snapshot_at(self, timestamp: int) -> Snapshot | None:
        row = self.db.execute(
            "SELECT * FROM snapshots WHERE timestamp <= ? ORDER BY timestamp DESC, seq DESC LIMIT 1",
            [timestamp],
        ).fetchone()
        return self._hydrate_snapshots([row])[0] if row else None

    def oldest_snapshot_id(self) -> str | None:
        row = self.db.execute("SELECT id FROM snapshots ORDER BY timestamp ASC, seq ASC LIMIT 1").fetchone()
        return row["id"] if row else None

    def snapshot_count(self) -> int:
        return int(self.db.execute("SELECT COUNT(*) FROM snapshots").fetchone()[0])

    def live_hashes(self) -> set[str]:
        rows = self.db.query("SELECT DISTINCT content_hash FROM snapshot_files")
        return {row["content_hash"] for row in rows}

    # Internal helpers -------------------------------------------------

    def _commit(self) -> None:
        self.db.commit()
        self._dirty = True

    def _patches(self, where: str, params: Sequence[object], limit: int | None = None) -> list[PatchRecord]:
        sql = f"SELECT {_PATCH_COLUMNS} FROM patch_records WHERE {where} ORDER BY timestamp ASC, seq ASC"
        if limit is not None:
            sql += f" LIMIT {int(limit)}"
        return [_row_to_patch(row) for row in self.db.query(sql, list(params))]

    def _hydrate_snapshots(self, rows: Iterable[sqlite3.Row]) -> list[Snapshot]:
        rows = list(rows)
        if not rows:
            return []
        ids = [row["id"] for row in rows]
        placeholders = ",".join("?" for _ in ids)
        files: dict[str, dict[str, str]] = {snapshot_id: {} for snapshot_id in ids}
        for file_row in self.db.query(
            f"SELECT snapshot_id, path, content_hash FROM snapshot_files WHERE snapshot_id IN ({placeholders})",
            ids,
        ):
            files[file_row["snapshot_id"]][file_row["path"]] = file_row["content_hash"]
        return [
            Snapshot(
                id=row["id"],
                timestamp=row["timestamp"],
                description=row["description"],
                files=dict(sorted(files[row["id"]].items())),
                affected_paths=tuple(orjson.loads(row["affected_paths"])),
            )
            for row in rows
        ]

    def _migrate_legacy_tables(self) -> bool:
        """Convert the original ``diff_events`` layout into the current schema."""
        if not self.db.table_exists("diff_events"):
            return False
        has_file_snapshots = self.db.table_exists("file_snapshots")
        renames = ["ALTER TABLE diff_events RENAME TO legacy_diff_events;"]
        if self.db.table_exists("sessions"):
            renames.append("ALTER TABLE sessions RENAME TO legacy_sessions;")
        if has_file_snapshots:
            renames.append("ALTER TABLE file_snapshots RENAME TO legacy_file_snapshots;")
        self.db.executescript("\n".join(renames))
        self.db.ensure_schema()
        with self.db.transaction() as cursor:
            if self.db.table_exists("legacy_sessions"):
                cursor.execute(
                    """
                    INSERT OR IGNORE INTO sessions (id, repository, branch, start_time, last_activity_time, is_active, created_at)
                    SELECT session_id, repository_name, branch_name, start_time, last_activity_time, is_active, created_at
                    FROM legacy_sessions
                    """
                )
            cursor.execute(
                """
                INSERT OR IGNORE INTO sessions (id, start_time, last_activity_time, is_active, created_at)
                SELECT session_id, MIN(timestamp), MAX(timestamp), 0, MIN(created_at)
                FROM legacy_diff_events GROUP BY session_id
                """
            )
            cursor.execute(
                f"""
                INSERT INTO patch_records ({_PATCH_COLUMNS}, created_at)
                SELECT id, session_id, file_path, 'text', patch, base_content, timestamp,
                       cursor_line, cursor_character, created_at
                FROM legacy_diff_events ORDER BY timestamp ASC, rowid ASC
                """
            )
            if has_file_snapshots:
                cursor.execute(
                    """
                    INSERT OR IGNORE INTO sessions (id, start_time, last_activity_time, is_active, created_at)
                    SELECT session_id, MIN(timestamp), MAX(timestamp), 0, MIN(created_at)
                    FROM legacy_file_snapshots GROUP BY session_id
                    """
                )
                cursor.execute(
                    """
                    INSERT OR IGNORE INTO file_snapshots (id, session_id, path, content, timestamp, created_at)
                    SELECT id, session_id, file_path, content, timestamp, created_at FROM legacy_file_snapshots
                    """
                )
            migrated = cursor.execute("SELECT COUNT(*) FROM legacy_diff_events").fetchone()[0]
        drops = ["DROP TABLE legacy_diff_events;"]
        if has_file_snapshots:
            drops.append("DROP TABLE legacy_file_snapshots;")
        if self.db.table_exists("legacy_sessions"):
            drops.append("DROP TABLE legacy_sessions;")
        self.db.executescript("\n".join(drops))
        logger.info("Migrated %s legacy diff events into patch records", migrated)
        return True


def _row_to_patch(row: sqlite3.Row) -> PatchRecord:
    cursor = None
    if row["cursor_line"] is not None:
        cursor = CursorPosition(line=row["cursor_line"], character=row["cursor_character"] or 0)
    return PatchRecord(
        id=row["id"],
        session_id=row["session_id"],
        path=row["path"],
        codec=row["codec"],
        script=row["script"],
        base_content=row["base_content"],
        timestamp=row["timestamp"],
        cursor=cursor,
    )


def _row_to_session(row: sqlite3.Row) -> Session:
    return Session(
        id=row["id"],
        start_time=row["start_time"],
        last_activity_time=row["last_activity_time"],
        is_active=bool(row["is_active"]),
        repository=row["repository"],
        branch=row["branch"],
    )


__all__ = ["EventLog", "SCHEMA_VERSION"]
