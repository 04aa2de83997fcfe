"""SQLite-backed run history: one row per cycle that created or updated tickets."""

from __future__ import annotations

import logging
import sqlite3
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from pathlib import Path

from email_piping.core.exceptions import StorageError
from email_piping.core.models import RunLogEntry

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 500


class RunLogger(ABC):
    """Receives the totals of each cycle that did something."""

    @abstractmethod
    def record(
        self,
        created_count: int,
        updated_count: int,
        processed_count: int,
        timestamp: datetime,
    ) -> None: ...


class SqliteRunLog(RunLogger):
    """Persists cycle totals in SQLite, keeping only the newest ``max_entries`` rows."""

    def __init__(self, db_path: Path, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        self._db_path = db_path
        self._max_entries = max_entries
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Open database connection and ensure schema exists."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> SqliteRunLog:
        self.connect()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._conn

    def _create_tables(self) -> None:
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS run_log (
                entry_id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                created_count INTEGER NOT NULL DEFAULT 0,
                updated_count INTEGER NOT NULL DEFAULT 0,
                processed_count INTEGER NOT NULL DEFAULT 0
            );
        """)

    def record(
        self,
        created_count: int,
        updated_count: int,
        processed_count: int,
        timestamp: datetime | None = None,
    ) -> None:
        """Append an entry and drop the oldest ones beyond the cap.

        Raises:
            StorageError: The entry could not be written.
        """
        timestamp = timestamp or datetime.now(UTC)
        try:
            with self.conn:
                self.conn.execute(
                    """INSERT INTO run_log
                       (timestamp, created_count, updated_count, processed_count)
                       VALUES (?, ?, ?, ?)""",
                    (timestamp.isoformat(), created_count, updated_count, processed_count),
                )
                self.conn.execute(
                    """DELETE FROM run_log WHERE entry_id NOT IN (
                           SELECT entry_id FROM run_log ORDER BY entry_id DESC LIMIT ?
                       )""",
                    (self._max_entries,),
                )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to record run: {e}") from e
        logger.info(
            "Recorded run: created=%d updated=%d processed=%d",
            created_count, updated_count, processed_count,
        )

    def entries(self, limit: int | None = None) -> list[RunLogEntry]:
        """Stored entries, newest first."""
        rows = self.conn.execute(
            "SELECT * FROM run_log ORDER BY entry_id DESC LIMIT ?",
            (limit if limit is not None else -1,),
        ).fetchall()
        return [
            RunLogEntry(
                entry_id=row["entry_id"],
                timestamp=datetime.fromisoformat(row["timestamp"]),
                created_count=row["created_count"],
                updated_count=row["updated_count"],
                processed_count=row["processed_count"],
            )
            for row in rows
        ]

    def count(self) -> int:
        row = self.conn.execute("SELECT COUNT(*) AS cnt FROM run_log").fetchone()
        return row["cnt"]
