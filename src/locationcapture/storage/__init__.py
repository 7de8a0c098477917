"""Durable storage for captured locations."""

from locationcapture.storage.database import Database
from locationcapture.storage.location_store import Anchor, LocationStore, Page
from locationcapture.storage.sample import SAMPLE_FIELDS, UNKNOWN, Sample

__all__ = [
    "Anchor",
    "Database",
    "LocationStore",
    "Page",
    "SAMPLE_FIELDS",
    "Sample",
    "UNKNOWN",
]
