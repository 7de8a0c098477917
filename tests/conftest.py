"""Shared pytest fixtures."""

from pathlib import Path

import pytest

from locationcapture.config import CaptureOptions, Settings, get_settings
from locationcapture.storage import Database, LocationStore, Sample
from locationcapture.sync import UploadQueue


def make_sample(timestamp: int, latitude: float = 51.5, longitude: float = -0.12) -> Sample:
    """Build an unsaved sample with plausible values."""
    return Sample(
        timestamp=timestamp,
        latitude=latitude,
        longitude=longitude,
        accuracy=12,
        heading=90.0,
        speed=1.5,
    )


@pytest.fixture
def db(tmp_path: Path):
    """Open a database in a temporary directory."""
    database = Database(tmp_path / "locations.db")
    yield database
    database.close()


@pytest.fixture
def store(db: Database) -> LocationStore:
    return LocationStore(db)


@pytest.fixture
def queue(db: Database) -> UploadQueue:
    return UploadQueue(db)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing every path into the temporary directory."""
    return Settings(
        data_dir=tmp_path / "data",
        options_file=tmp_path / "options.yaml",
        sync_tick_interval=0.01,
    )


@pytest.fixture
def upload_options() -> CaptureOptions:
    return CaptureOptions(
        upload_enabled=True,
        upload_url="https://collector.example.com/locations",
        upload_connection_type="ANY",
    )


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Clear the cached settings singleton around each test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
