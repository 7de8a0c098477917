"""SQLite-backed persistent queue of locations awaiting upload."""

import logging
from typing import Iterable

from locationcapture.storage.database import Database
from locationcapture.storage.sample import SAMPLE_FIELDS, Sample

logger = logging.getLogger(__name__)

_COLUMNS = ", ".join(("id",) + SAMPLE_FIELDS)
_INSERT = (
    f"INSERT INTO upload_queue ({', '.join(SAMPLE_FIELDS)}) "
    f"VALUES ({', '.join('?' for _ in SAMPLE_FIELDS)})"
)


class UploadQueue:
    """Persistent queue of samples waiting to be delivered.

    The queue keeps its own copy of every sample, separate from the
    location store, so retention eviction never drops undelivered data.

    A sample is either queued here or held in memory by the one sync cycle
    that flushed it. ``flush()`` moves every queued row out in a single
    transaction; ``restore()`` puts a batch back when delivery fails.
    Restored rows get new ids, but flushes are ordered by timestamp so
    the delivery order is unchanged.
    """

    def __init__(self, db: Database) -> None:
        """Initialize the upload queue.

        Args:
            db: Database holding the ``upload_queue`` table
        """
        self._db = db

    def enqueue(self, sample: Sample) -> int:
        """Add a copy of a sample to the queue.

        Args:
            sample: Sample to deliver; its id (if any) is ignored

        Returns:
            Queue row id

        Raises:
            StorageError: If the row could not be written
        """
        with self._db.transaction() as conn:
            cursor = conn.execute(_INSERT, sample.row_values())
        return cursor.lastrowid

    def flush(self) -> list[Sample]:
        """Remove and return every queued sample.

        Selection and deletion happen in one immediate transaction, so a
        concurrent ``enqueue`` lands either before it (and is returned) or
        after it (and stays queued for the next flush).

        Returns:
            Samples ordered by timestamp then queue id; empty if the queue
            is empty
        """
        with self._db.transaction() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM upload_queue ORDER BY timestamp ASC, id ASC"
            ).fetchall()
            if rows:
                conn.execute(
                    "DELETE FROM upload_queue WHERE id <= ?",
                    (max(row["id"] for row in rows),),
                )
        samples = [Sample.from_row(row) for row in rows]
        if samples:
            logger.debug("Flushed %d samples from upload queue", len(samples))
        return samples

    def restore(self, samples: Iterable[Sample]) -> int:
        """Re-insert samples from a batch that could not be delivered.

        Args:
            samples: Samples previously returned by ``flush()``

        Returns:
            Number of samples restored
        """
        batch = list(samples)
        if not batch:
            return 0
        with self._db.transaction() as conn:
            conn.executemany(_INSERT, [sample.row_values() for sample in batch])
        logger.debug("Restored %d samples to upload queue", len(batch))
        return len(batch)

    def purge(self) -> int:
        """Drop every queued sample without delivering it.

        Returns:
            Number of samples removed
        """
        cursor = self._db.execute("DELETE FROM upload_queue")
        removed = cursor.rowcount
        logger.warning("Upload queue purged: removed=%d", removed)
        return removed

    def count(self) -> int:
        """Number of samples waiting in the queue."""
        return self._db.query("SELECT COUNT(*) AS n FROM upload_queue")[0]["n"]

    def get_stats(self) -> dict[str, int | None]:
        """Get queue statistics.

        Returns:
            Dictionary with the pending count and the oldest and newest
            queued timestamps (None when empty)
        """
        row = self._db.query(
            """
            SELECT COUNT(*) AS pending,
                   MIN(timestamp) AS oldest,
                   MAX(timestamp) AS newest
            FROM upload_queue
            """
        )[0]
        return {
            "pending": row["pending"],
            "oldest": row["oldest"],
            "newest": row["newest"],
        }

    def close(self) -> None:
        """Close the underlying database connection."""
        self._db.close()
