"""Append-only history of captured locations with anchor pagination."""

import base64
import binascii
import logging
import time
from dataclasses import dataclass, field
from typing import Iterable

from locationcapture.errors import AnchorError
from locationcapture.storage.database import Database
from locationcapture.storage.sample import SAMPLE_FIELDS, Sample

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400

_ANCHOR_VERSION = "v1"
_COLUMNS = ", ".join(("id",) + SAMPLE_FIELDS)
_INSERT = (
    f"INSERT INTO location_store ({', '.join(SAMPLE_FIELDS)}) "
    f"VALUES ({', '.join('?' for _ in SAMPLE_FIELDS)})"
)


@dataclass(frozen=True, order=True)
class Anchor:
    """A position in the store's (timestamp, id) order.

    Encoded as an opaque URL-safe string. Because it names a position and
    not an offset, rows inserted between two calls never shift it.
    """

    timestamp: int
    id: int

    def encode(self) -> str:
        raw = f"{_ANCHOR_VERSION}:{self.timestamp}:{self.id}".encode()
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    @classmethod
    def decode(cls, token: str) -> "Anchor":
        """Parse an anchor string produced by ``encode``.

        Raises:
            AnchorError: If the token is not a valid anchor
        """
        try:
            padded = token + "=" * (-len(token) % 4)
            raw = base64.urlsafe_b64decode(padded.encode("ascii")).decode("ascii")
            version, timestamp, row_id = raw.split(":")
            anchor = cls(timestamp=int(timestamp), id=int(row_id))
        except (binascii.Error, UnicodeError, ValueError) as e:
            raise AnchorError(f"Malformed anchor: {token!r}") from e

        if version != _ANCHOR_VERSION:
            raise AnchorError(f"Unsupported anchor version: {version}")
        return anchor

    @classmethod
    def of(cls, sample: Sample) -> "Anchor":
        if sample.id is None:
            raise ValueError("Cannot anchor a sample that has not been stored")
        return cls(timestamp=sample.timestamp, id=sample.id)


@dataclass(frozen=True)
class Page:
    """One page of query results."""

    samples: list[Sample] = field(default_factory=list)
    next_anchor: str | None = None

    def __len__(self) -> int:
        return len(self.samples)


class LocationStore:
    """Durable, time-ordered table of every captured sample.

    Samples are appended on capture and only ever deleted by retention
    eviction. Reading never removes anything, so any number of consumers
    can page through the history with their own anchors.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    def append(self, sample: Sample) -> int:
        """Persist a sample and return its new id.

        Raises:
            StorageError: If the row could not be written
        """
        with self._db.transaction() as conn:
            cursor = conn.execute(_INSERT, sample.row_values())
        return cursor.lastrowid

    def extend(self, samples: Iterable[Sample]) -> list[int]:
        """Persist several samples in one transaction, all or nothing."""
        ids = []
        with self._db.transaction() as conn:
            for sample in samples:
                ids.append(conn.execute(_INSERT, sample.row_values()).lastrowid)
        return ids

    def query(self, anchor: str | None, limit: int) -> Page:
        """Return up to ``limit`` samples strictly after ``anchor``.

        Args:
            anchor: Value from a previous page's ``next_anchor`` or from
                ``latest_anchor()``; None or "" starts at the oldest sample
            limit: Maximum number of samples; a negative limit returns
                everything that remains

        Returns:
            Page in ascending (timestamp, id) order. ``next_anchor`` points at
            the last returned sample, or is the given anchor when the page is
            empty. A page shorter than ``limit`` means the end was reached.

        Raises:
            AnchorError: If ``anchor`` is malformed
            StorageError: If the read fails
        """
        position = Anchor.decode(anchor) if anchor else None
        if limit == 0:
            return Page(samples=[], next_anchor=anchor or None)

        sql = f"SELECT {_COLUMNS} FROM location_store"
        params: list = []
        if position is not None:
            sql += " WHERE timestamp > ? OR (timestamp = ? AND id > ?)"
            params += [position.timestamp, position.timestamp, position.id]
        sql += " ORDER BY timestamp ASC, id ASC"
        if limit > 0:
            sql += " LIMIT ?"
            params.append(limit)

        samples = [Sample.from_row(row) for row in self._db.query(sql, params)]
        if not samples:
            return Page(samples=[], next_anchor=anchor or None)
        return Page(samples=samples, next_anchor=Anchor.of(samples[-1]).encode())

    def latest_anchor(self) -> str | None:
        """Anchor after which only newly appended samples will be returned.

        Returns None when the store is empty; a query from None then
        starts at the first sample ever appended.
        """
        rows = self._db.query(
            "SELECT timestamp, id FROM location_store "
            "ORDER BY timestamp DESC, id DESC LIMIT 1"
        )
        if not rows:
            return None
        return Anchor(timestamp=rows[0]["timestamp"], id=rows[0]["id"]).encode()

    def evict_older_than(self, days: int, now: float | None = None) -> int:
        """Delete samples captured more than ``days`` days before ``now``.

        Args:
            days: Retention window; negative keeps samples forever
            now: Reference time in epoch seconds (defaults to the clock)

        Returns:
            Number of samples deleted
        """
        if days < 0:
            return 0

        reference = time.time() if now is None else now
        cutoff = int(reference) - days * SECONDS_PER_DAY
        cursor = self._db.execute(
            "DELETE FROM location_store WHERE timestamp < ?",
            (cutoff,),
        )
        deleted = cursor.rowcount
        if deleted:
            logger.info("Evicted %d locations older than %d days", deleted, days)
        return deleted

    def count(self) -> int:
        """Number of samples currently stored."""
        return self._db.query("SELECT COUNT(*) AS n FROM location_store")[0]["n"]
