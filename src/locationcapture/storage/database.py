"""SQLite database shared by the location store and the upload queue."""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Sequence

from locationcapture.errors import StorageError

logger = logging.getLogger(__name__)

SAMPLE_COLUMNS = """
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp INTEGER NOT NULL,
    latitude REAL NOT NULL,
    longitude REAL NOT NULL,
    accuracy INTEGER NOT NULL DEFAULT 0,
    heading REAL NOT NULL DEFAULT -1,
    speed REAL NOT NULL DEFAULT -1
"""


class Database:
    """Thin wrapper around a single SQLite connection.

    Both tables live in one database file. Every statement runs under one
    re-entrant lock, so callers on the capture thread, the sync task and
    the foreground never interleave on the connection. Writes that touch
    more than one row go through ``transaction()``.

    The connection is opened in autocommit mode; ``transaction()`` issues
    ``BEGIN IMMEDIATE`` so the write lock is taken before the first read.
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path | str, timeout: float = 10.0) -> None:
        """Open (and create if needed) the database.

        Args:
            db_path: Path to the SQLite database file
            timeout: Seconds to wait for a lock held by another process
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

        try:
            self._conn = sqlite3.connect(
                str(self.db_path),
                timeout=timeout,
                check_same_thread=False,
                isolation_level=None,
            )
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open database {self.db_path}: {e}") from e

        try:
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")
            self._create_tables()
        except sqlite3.Error as e:
            self._conn.close()
            raise StorageError(f"Cannot open database {self.db_path}: {e}") from e
        except StorageError:
            self._conn.close()
            raise

        logger.debug("Database opened: path=%s", self.db_path)

    def _create_tables(self) -> None:
        """Create both tables and their timestamp indexes."""
        version = self._conn.execute("PRAGMA user_version").fetchone()[0]
        if version > self.SCHEMA_VERSION:
            raise StorageError(
                f"Database schema version {version} is newer than supported "
                f"version {self.SCHEMA_VERSION}"
            )

        self._conn.executescript(f"""
            BEGIN;
            CREATE TABLE IF NOT EXISTS location_store ({SAMPLE_COLUMNS});
            CREATE INDEX IF NOT EXISTS idx_location_store_timestamp
                ON location_store (timestamp, id);
            CREATE TABLE IF NOT EXISTS upload_queue ({SAMPLE_COLUMNS});
            CREATE INDEX IF NOT EXISTS idx_upload_queue_timestamp
                ON upload_queue (timestamp, id);
            PRAGMA user_version = {self.SCHEMA_VERSION};
            COMMIT;
        """)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block of statements atomically.

        Yields the connection. Any exception rolls the transaction back;
        ``sqlite3.Error`` is re-raised as ``StorageError``.
        """
        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StorageError(f"Cannot begin transaction: {e}") from e

            try:
                yield self._conn
            except sqlite3.Error as e:
                self._rollback()
                raise StorageError(str(e)) from e
            except BaseException:
                self._rollback()
                raise

            try:
                self._conn.execute("COMMIT")
            except sqlite3.Error as e:
                self._rollback()
                raise StorageError(f"Commit failed: {e}") from e

    def _rollback(self) -> None:
        try:
            self._conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            # No transaction is active after a failed COMMIT on some errors
            logger.debug("Rollback skipped: %s", e)

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        """Execute a single statement in its own implicit transaction."""
        with self._lock:
            try:
                return self._conn.execute(sql, params)
            except sqlite3.Error as e:
                raise StorageError(str(e)) from e

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        """Run a SELECT and return all rows."""
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise StorageError(str(e)) from e

    def log_queries(self, enabled: bool) -> None:
        """Turn SQL tracing to the debug log on or off."""
        with self._lock:
            self._conn.set_trace_callback(logger.debug if enabled else None)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()
