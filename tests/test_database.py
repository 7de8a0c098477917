"""Tests for the shared SQLite database wrapper."""

import sqlite3

import pytest
from conftest import make_sample

from locationcapture.errors import StorageError
from locationcapture.storage import Database, LocationStore


class TrackingConnection(sqlite3.Connection):
    """Connection that records whether it was closed."""

    closed = False

    def close(self):
        TrackingConnection.closed = True
        super().close()


@pytest.fixture
def tracked_connect(monkeypatch):
    """Make sqlite3.connect hand out TrackingConnection objects."""
    real_connect = sqlite3.connect
    TrackingConnection.closed = False
    monkeypatch.setattr(
        sqlite3,
        "connect",
        lambda *args, **kwargs: real_connect(*args, factory=TrackingConnection, **kwargs),
    )
    return TrackingConnection


class TestSchema:
    """Opening and versioning the database file."""

    def test_creates_parent_directories(self, tmp_path):
        """Verify the database file is created under missing directories."""
        db = Database(tmp_path / "nested" / "dir" / "locations.db")

        assert db.db_path.exists()
        db.close()

    def test_newer_schema_is_rejected_and_connection_closed(self, tmp_path, tracked_connect):
        """Verify a newer schema version raises and releases the connection."""
        db_path = tmp_path / "locations.db"
        Database(db_path).close()
        conn = sqlite3.connect(str(db_path))
        conn.execute(f"PRAGMA user_version = {Database.SCHEMA_VERSION + 1}")
        conn.close()
        tracked_connect.closed = False

        with pytest.raises(StorageError, match="newer than supported"):
            Database(db_path)

        assert tracked_connect.closed is True

    def test_reopen_keeps_schema_version(self, tmp_path):
        """Verify reopening an existing database keeps its version and rows."""
        db_path = tmp_path / "locations.db"
        db = Database(db_path)
        LocationStore(db).append(make_sample(100))
        db.close()

        db = Database(db_path)
        version = db.query("PRAGMA user_version")[0][0]
        assert version == Database.SCHEMA_VERSION
        assert LocationStore(db).count() == 1
        db.close()


class TestTransactions:
    """Atomic writes and error translation."""

    def test_failed_transaction_rolls_back(self, db: Database):
        """Verify an exception inside a transaction discards its writes."""
        store = LocationStore(db)

        with pytest.raises(RuntimeError):
            with db.transaction() as conn:
                conn.execute(
                    "INSERT INTO location_store (timestamp, latitude, longitude) VALUES (1, 0, 0)"
                )
                raise RuntimeError("abort")

        assert store.count() == 0

    def test_sqlite_errors_become_storage_errors(self, db: Database):
        """Verify sqlite3 errors surface as StorageError."""
        with pytest.raises(StorageError):
            db.query("SELECT * FROM missing_table")

        with pytest.raises(StorageError):
            with db.transaction() as conn:
                conn.execute("INSERT INTO missing_table VALUES (1)")
