"""Capture controller: turns sensor fixes into stored and queued samples."""

import logging
import time
from dataclasses import replace
from typing import Callable, Protocol

from locationcapture.config import CaptureOptions
from locationcapture.errors import StorageError
from locationcapture.logging import log_capture_write_failed, log_location_captured
from locationcapture.storage import LocationStore, Sample
from locationcapture.sync import UploadQueue

logger = logging.getLogger(__name__)

EVICTION_INTERVAL = 3600.0  # seconds between retention sweeps while capturing


class LocationSensor(Protocol):
    """Platform location provider.

    ``request_fix`` raises SensorUnavailable or PermissionDenied when no
    fix can be produced. ``start_updates`` delivers fixes to ``on_fix``
    from whatever thread the platform uses, honouring the time and
    distance filters.
    """

    async def request_fix(self) -> Sample: ...

    def start_updates(
        self,
        on_fix: Callable[[Sample], None],
        time_filter: int,
        distance_filter: int,
    ) -> None: ...

    def stop_updates(self) -> None: ...


class CaptureController:
    """Writes every accepted fix to the location store and the upload queue.

    The two writes are independent: if one fails the other is kept and the
    failure is logged. Listeners registered with ``on_location`` are told
    about each fix that reached at least one table.
    """

    def __init__(
        self,
        store: LocationStore,
        queue: UploadQueue,
        sensor: LocationSensor | None,
        options: Callable[[], CaptureOptions],
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._queue = queue
        self._sensor = sensor
        self._options = options
        self._clock = clock

        self._capturing = False
        self._last_eviction: float | None = None
        self._capture_count = 0
        self._last_capture_time: int | None = None
        self._location_callbacks: list[Callable[[Sample], None]] = []

    @property
    def is_capturing(self) -> bool:
        return self._capturing

    @property
    def capture_count(self) -> int:
        return self._capture_count

    @property
    def last_capture_time(self) -> int | None:
        return self._last_capture_time

    def on_location(self, callback: Callable[[Sample], None]) -> None:
        """Register a callback invoked with each captured sample.

        Args:
            callback: Function called with the stored sample (store id set
                when the store write succeeded)
        """
        self._location_callbacks.append(callback)

    def start(self) -> None:
        """Run a retention sweep and start receiving fixes from the sensor."""
        if self._capturing:
            return
        self.evict_expired()
        if self._sensor is not None:
            options = self._options()
            self._sensor.start_updates(
                self.handle_fix,
                time_filter=options.time_filter,
                distance_filter=options.distance_filter,
            )
        self._capturing = True

    def stop(self) -> None:
        """Stop receiving fixes."""
        if not self._capturing:
            return
        if self._sensor is not None:
            self._sensor.stop_updates()
        self._capturing = False

    def restart_updates(self) -> None:
        """Re-register with the sensor so new filter options take effect."""
        if self._capturing and self._sensor is not None:
            self._sensor.stop_updates()
            options = self._options()
            self._sensor.start_updates(
                self.handle_fix,
                time_filter=options.time_filter,
                distance_filter=options.distance_filter,
            )

    def handle_fix(self, fix: Sample) -> Sample | None:
        """Persist one fix to both tables.

        Args:
            fix: Sample from the sensor; a zero timestamp is replaced by the
                current time

        Returns:
            The sample as stored, or None if both writes failed
        """
        sample = fix.with_id(None)
        if not sample.timestamp:
            sample = replace(sample, timestamp=int(self._clock()))

        store_id: int | None = None
        queue_id: int | None = None
        try:
            store_id = self._store.append(sample)
        except StorageError as e:
            log_capture_write_failed(logger, "location_store", sample.timestamp, str(e))
        try:
            queue_id = self._queue.enqueue(sample)
        except StorageError as e:
            log_capture_write_failed(logger, "upload_queue", sample.timestamp, str(e))

        if store_id is None and queue_id is None:
            return None

        stored = sample.with_id(store_id)
        self._capture_count += 1
        self._last_capture_time = sample.timestamp
        log_location_captured(logger, sample.timestamp, store_id, queue_id)

        self._maybe_evict()
        self._notify_location(stored)
        return stored

    def _notify_location(self, sample: Sample) -> None:
        for callback in self._location_callbacks:
            try:
                callback(sample)
            except Exception as e:
                logger.warning("Location callback failed: %s", e)

    def _maybe_evict(self) -> None:
        now = self._clock()
        if self._last_eviction is None or now - self._last_eviction >= EVICTION_INTERVAL:
            self.evict_expired()

    def evict_expired(self) -> int:
        """Apply the ``keep_locations_for`` retention window.

        Returns:
            Number of samples deleted (0 if the sweep failed)
        """
        now = self._clock()
        self._last_eviction = now
        try:
            return self._store.evict_older_than(self._options().keep_locations_for, now=now)
        except StorageError as e:
            logger.error("Retention eviction failed: %s", e)
            return 0
