"""SQLite helpers for the event log."""

from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Sequence

DEFAULT_PRAGMAS = (
    "PRAGMA foreign_keys=ON;",
    "PRAGMA temp_store=MEMORY;",
)


class SQLiteDatabase:
    """In-memory SQLite database made durable through the backup API.

    ``load_from`` and ``backup_to`` copy the whole database from and to a file.
    The connection may be used from several threads; callers serialise access
    themselves.
    """

    def __init__(self) -> None:
        self._connection: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        if self._connection is None:
            self._connection = sqlite3.connect(":memory:", check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
            for pragma in DEFAULT_PRAGMAS:
                self._connection.execute(pragma)
        return self._connection

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def commit(self) -> None:
        if self._connection is not None:
            self._connection.commit()

    def executescript(self, script: str) -> None:
        conn = self.connect()
        conn.executescript(script)

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> sqlite3.Cursor:
        conn = self.connect()
        return conn.execute(sql, params or [])

    def query(self, sql: str, params: Sequence[Any] | None = None) -> list[sqlite3.Row]:
        cursor = self.execute(sql, params)
        return cursor.fetchall()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        conn = self.connect()
        cursor = conn.cursor()
        try:
            yield cursor
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()

    def ensure_schema(self, schema_sql: str | None = None) -> None:
        if schema_sql is None:
            schema_path = Path(__file__).with_name("schema.sql")
            schema_sql = schema_path.read_text(encoding="utf-8")
        self.executescript(schema_sql)

    def table_exists(self, name: str) -> bool:
        row = self.execute("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", [name]).fetchone()
        return row is not None

    @property
    def user_version(self) -> int:
        return int(self.execute("PRAGMA user_version").fetchone()[0])

    @user_version.setter
    def user_version(self, value: int) -> None:
        self.execute(f"PRAGMA user_version = {int(value)}")

    def load_from(self, path: Path) -> None:
        """Replace the current contents with the database stored at ``path``."""
        source = sqlite3.connect(path)
        try:
            source.backup(self.connect())
        finally:
            source.close()

    def backup_to(self, path: Path) -> None:
        """Write a consistent copy of the database to ``path`` atomically."""
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.unlink(missing_ok=True)
        conn = self.connect()
        conn.commit()
        target = sqlite3.connect(tmp_path)
        try:
            conn.backup(target)
        finally:
            target.close()
        os.replace(tmp_path, path)


__all__ = ["SQLiteDatabase"]
