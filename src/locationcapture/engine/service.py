"""Service facade exposing the capture system to a host application."""

import logging
import threading
from typing import Any, Mapping

from locationcapture.config import CaptureOptions, Settings
from locationcapture.engine.capture import CaptureController, LocationSensor
from locationcapture.engine.coordinator import CycleOutcome, SyncCoordinator
from locationcapture.errors import AnchorError, ConfigError, SensorError, StorageError
from locationcapture.logging import log_config_change
from locationcapture.result import CONFIG_ERROR, NOT_SUPPORTED, STORAGE_ERROR, Result
from locationcapture.storage import Database, LocationStore, Page, Sample
from locationcapture.sync import (
    ConnectivityProbe,
    LocationUploader,
    StaticConnectivity,
    UploadQueue,
)

logger = logging.getLogger(__name__)

INVALID_ANCHOR = "INVALID_ANCHOR"

_FILTER_OPTIONS = {"time_filter", "distance_filter"}


class LocationCaptureService:
    """High-level entry point for the host application.

    Owns the database, both tables, the capture controller and the sync
    coordinator. Every public operation returns a ``Result`` rather than
    raising, so a failure is never fatal to the host.

    Example:
        service = LocationCaptureService(settings, sensor=my_sensor)
        service.configure({"upload_enabled": True, "upload_url": url})
        await service.start()
        page = service.query(None, 100).value
        await service.close()
    """

    def __init__(
        self,
        settings: Settings,
        sensor: LocationSensor | None = None,
        connectivity: ConnectivityProbe | None = None,
        uploader: LocationUploader | None = None,
        options: CaptureOptions | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            settings: Process settings (paths, timeouts)
            sensor: Platform location sensor; None disables capture
            connectivity: Network probe; defaults to an always-online probe
            uploader: Uploader to use; defaults to one built from settings
            options: Initial options; defaults to the settings' options file

        Raises:
            StorageError: If the database cannot be opened
            ConfigError: If the options file is invalid
        """
        self.settings = settings
        self._options = options if options is not None else settings.load_options()
        self._options_lock = threading.Lock()

        self._db = Database(settings.database_path)
        if settings.log_sql:
            self._db.log_queries(True)
        self.store = LocationStore(self._db)
        self.queue = UploadQueue(self._db)

        self._sensor = sensor
        self._uploader = uploader or LocationUploader(timeout=settings.upload_timeout)
        self.capture = CaptureController(self.store, self.queue, sensor, self.get_options)
        self.coordinator = SyncCoordinator(
            self.queue,
            self._uploader,
            connectivity or StaticConnectivity(),
            self.get_options,
            tick_interval=settings.sync_tick_interval,
        )
        self._running = False

    @property
    def options(self) -> CaptureOptions:
        """Current options snapshot."""
        return self._options

    def get_options(self) -> CaptureOptions:
        return self._options

    def configure(self, changes: Mapping[str, Any]) -> Result[CaptureOptions]:
        """Merge option changes into a new snapshot and swap it in.

        Options not named keep their previous values. If any value is
        invalid nothing changes.
        """
        with self._options_lock:
            try:
                updated = self._options.merged(changes)
            except ConfigError as e:
                return Result.failure(CONFIG_ERROR, str(e))
            previous, self._options = self._options, updated

        changed = previous.diff(updated)
        for key, (old, new) in changed.items():
            if key == "upload_extra_params":
                old, new = sorted(old), sorted(new)  # keys only
            log_config_change(logger, key, str(old), str(new))

        if changed.keys() & _FILTER_OPTIONS:
            self.capture.restart_updates()
        if "keep_locations_for" in changed and self._running:
            self.capture.evict_expired()
        return Result.success(updated)

    async def start(self) -> Result[None]:
        """Start capturing fixes and the background sync worker."""
        if self._running:
            return Result.success()
        try:
            self.capture.start()
        except SensorError as e:
            return Result.failure(e.code, str(e))

        self.coordinator.start()
        self._running = True
        logger.info("Location capture started, database=%s", self._db.db_path)
        return Result.success()

    async def stop(self) -> Result[None]:
        """Stop capturing and syncing; an in-flight batch is restored."""
        self.capture.stop()
        await self.coordinator.stop()
        if self._running:
            logger.info(
                "Location capture stopped, total_captures=%d",
                self.capture.capture_count,
            )
        self._running = False
        return Result.success()

    async def capture_now(self) -> Result[Sample]:
        """Request a single fix from the sensor.

        The fix is returned to the caller and not stored.
        """
        if self._sensor is None:
            return Result.failure(NOT_SUPPORTED, "No location sensor configured")
        try:
            fix = await self._sensor.request_fix()
        except SensorError as e:
            return Result.failure(e.code, str(e))
        return Result.success(fix)

    def query(self, anchor: str | None, limit: int) -> Result[Page]:
        """Read the next page of stored locations after ``anchor``."""
        try:
            return Result.success(self.store.query(anchor, limit))
        except AnchorError as e:
            return Result.failure(INVALID_ANCHOR, str(e))
        except StorageError as e:
            return Result.failure(STORAGE_ERROR, str(e))

    def latest_anchor(self) -> Result[str | None]:
        """Anchor of the newest stored location (None if the store is empty)."""
        try:
            return Result.success(self.store.latest_anchor())
        except StorageError as e:
            return Result.failure(STORAGE_ERROR, str(e))

    async def sync_now(self) -> Result[CycleOutcome]:
        """Run one sync cycle immediately, ignoring the frequency timer."""
        try:
            return Result.success(await self.coordinator.run_cycle(force=True))
        except ConfigError as e:
            return Result.failure(CONFIG_ERROR, str(e))

    def get_status(self) -> dict[str, Any]:
        """Get current service status.

        Returns:
            Dictionary with running state, sync state and table sizes
        """
        try:
            queue_stats = self.queue.get_stats()
            stored = self.store.count()
        except StorageError as e:
            logger.error("Status query failed: %s", e)
            queue_stats, stored = {}, None

        last_outcome = self.coordinator.last_outcome
        return {
            "running": self._running,
            "capturing": self.capture.is_capturing,
            "sync_state": self.coordinator.state.value,
            "last_sync_outcome": last_outcome.value if last_outcome else None,
            "last_sync_at": self.coordinator.last_cycle_at,
            "last_capture": self.capture.last_capture_time,
            "capture_count": self.capture.capture_count,
            "stored_locations": stored,
            "queue": {
                "pending": queue_stats.get("pending"),
                "in_flight": self.coordinator.in_flight_count,
                "oldest": queue_stats.get("oldest"),
                "newest": queue_stats.get("newest"),
            },
            "upload_enabled": self._options.upload_enabled,
            "database": str(self._db.db_path),
        }

    async def close(self) -> None:
        """Stop everything and release the database and HTTP client."""
        await self.stop()
        await self._uploader.close()
        self._db.close()
