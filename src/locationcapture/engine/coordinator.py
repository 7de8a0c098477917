"""Sync coordinator: drains the upload queue and delivers it in batches."""

import asyncio
import logging
import time
from enum import Enum
from typing import Callable

from locationcapture.config import CaptureOptions
from locationcapture.errors import StorageError
from locationcapture.logging import log_state_change
from locationcapture.storage.sample import Sample
from locationcapture.sync import ConnectivityProbe, LocationUploader, UploadQueue, network_allows

logger = logging.getLogger(__name__)


class SyncState(Enum):
    """Stage of the current sync cycle."""

    IDLE = "idle"
    DRAINING = "draining"
    DELIVERING = "delivering"
    RESTORING = "restoring"


class CycleOutcome(Enum):
    """How a sync cycle ended."""

    BUSY = "busy"  # another cycle was already running
    DISABLED = "disabled"
    NO_NETWORK = "no_network"
    TOO_SOON = "too_soon"
    EMPTY = "empty"
    DELIVERED = "delivered"
    RESTORED = "restored"
    FAILED = "failed"
    ABANDONED = "abandoned"  # cancelled by stop(); any batch was restored


class SyncCoordinator:
    """Runs flush → upload → restore cycles against the upload queue.

    Only one cycle runs at a time, as its own task on the event loop, so
    ``stop()`` can cancel it whoever started it. The batch returned by
    ``flush()`` lives in ``_in_flight`` until the server accepts it; on any
    failure, error or cancellation it is restored to the queue, so a sample
    is always either queued or held by exactly one cycle.

    Example:
        coordinator = SyncCoordinator(queue, uploader, probe, lambda: options)
        coordinator.start()
        coordinator.trigger()  # sync now instead of waiting for the tick
        await coordinator.stop()
    """

    def __init__(
        self,
        queue: UploadQueue,
        uploader: LocationUploader,
        connectivity: ConnectivityProbe,
        options: Callable[[], CaptureOptions],
        tick_interval: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the coordinator.

        Args:
            queue: Upload queue to drain
            uploader: Uploader used for delivery
            connectivity: Probe reporting the current network
            options: Returns the current options snapshot
            tick_interval: Seconds between background worker wakeups
            clock: Monotonic clock used for the upload frequency timer
        """
        self._queue = queue
        self._uploader = uploader
        self._connectivity = connectivity
        self._options = options
        self._tick_interval = tick_interval
        self._clock = clock

        self._state = SyncState.IDLE
        self._cycle: asyncio.Task | None = None
        self._in_flight: list[Sample] | None = None
        self._last_drain: float | None = None

        self._task: asyncio.Task | None = None
        self._wake = asyncio.Event()
        self._forced = False

        self.last_outcome: CycleOutcome | None = None
        self.last_cycle_at: float | None = None

    @property
    def state(self) -> SyncState:
        """Get the current cycle stage."""
        return self._state

    @property
    def is_running(self) -> bool:
        """Check if the background worker is active."""
        return self._task is not None and not self._task.done()

    @property
    def in_flight_count(self) -> int:
        """Number of samples flushed but not yet confirmed or restored."""
        return len(self._in_flight) if self._in_flight else 0

    def _set_state(self, new_state: SyncState, trigger: str | None = None) -> None:
        if self._state != new_state:
            log_state_change(logger, self._state.value, new_state.value, trigger)
            self._state = new_state

    async def run_cycle(self, force: bool = False) -> CycleOutcome:
        """Run one sync cycle.

        Must be called from the event loop thread.

        Args:
            force: Ignore the upload frequency timer (on-demand sync)

        Returns:
            CycleOutcome describing what happened

        Raises:
            ConfigError: If the uploader rejects the configuration; the
                batch has already been restored
        """
        if self._cycle is not None:
            return CycleOutcome.BUSY

        self._cycle = asyncio.create_task(self._run_cycle(force))
        try:
            outcome = await self._cycle
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            # Cancelled by stop(); the cycle restored its own batch
            outcome = CycleOutcome.ABANDONED
        finally:
            self._cycle = None
            self._set_state(SyncState.IDLE)

        self.last_outcome = outcome
        self.last_cycle_at = time.time()
        logger.debug("Sync cycle finished: outcome=%s", outcome.value)
        return outcome

    async def _run_cycle(self, force: bool) -> CycleOutcome:
        # A batch left over from a failed restore goes back first
        if self._in_flight and not self._restore_in_flight("retry"):
            return CycleOutcome.FAILED

        options = self._options()
        if not options.upload_enabled:
            return CycleOutcome.DISABLED
        if not options.upload_url:
            logger.warning("Upload enabled but upload_url is not set")
            return CycleOutcome.DISABLED

        network = self._connectivity.current_network()
        if not network_allows(options.upload_connection_type, network):
            return CycleOutcome.NO_NETWORK

        now = self._clock()
        if (
            not force
            and options.upload_frequency > 0
            and self._last_drain is not None
            and now - self._last_drain < options.upload_frequency
        ):
            return CycleOutcome.TOO_SOON

        self._set_state(SyncState.DRAINING, "forced" if force else "timer")
        self._last_drain = now
        try:
            batch = self._queue.flush()
        except StorageError as e:
            logger.error("Upload queue flush failed: %s", e)
            return CycleOutcome.FAILED
        if not batch:
            return CycleOutcome.EMPTY

        self._in_flight = batch
        self._set_state(SyncState.DELIVERING)
        try:
            result = await self._uploader.upload(
                batch,
                endpoint=options.upload_url,
                request_format=options.upload_request_format,
                locations_param=options.upload_locations_param,
                extra_params=options.upload_extra_params,
                fields=options.upload_fields,
            )
        except BaseException:
            self._restore_in_flight("aborted")
            raise

        if result.success:
            self._in_flight = None
            logger.info("Delivered %d locations", len(batch))
            return CycleOutcome.DELIVERED

        if not self._restore_in_flight("delivery_failed"):
            return CycleOutcome.FAILED
        return CycleOutcome.RESTORED

    def _restore_in_flight(self, reason: str) -> bool:
        """Put the in-flight batch back into the queue.

        Returns:
            True if the batch was restored (or there was none). On a storage
            error the batch is kept in memory for the next attempt.
        """
        if not self._in_flight:
            return True

        self._set_state(SyncState.RESTORING, reason)
        try:
            restored = self._queue.restore(self._in_flight)
        except StorageError as e:
            logger.error(
                "Restore failed, keeping %d locations in memory: %s",
                len(self._in_flight),
                e,
            )
            return False

        self._in_flight = None
        logger.info("Restored %d locations to upload queue: reason=%s", restored, reason)
        return True

    def start(self) -> None:
        """Start the background sync worker on the running event loop."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._worker())

    def trigger(self) -> None:
        """Request an immediate sync cycle that skips the frequency timer.

        Must be called from the event loop thread.
        """
        self._forced = True
        self._wake.set()

    async def _worker(self) -> None:
        """Background worker that runs a cycle per tick or trigger."""
        while True:
            forced, self._forced = self._forced, False
            self._wake.clear()
            try:
                await self.run_cycle(force=forced)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Sync worker error: %s", e)

            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self._tick_interval)
            except asyncio.TimeoutError:
                pass

    async def stop(self) -> None:
        """Stop the worker and abandon any cycle in progress.

        Covers cycles started by the worker and on-demand ones alike. An
        abandoned batch is restored by its own cycle, never dropped.
        """
        for task in (self._task, self._cycle):
            if task is not None and not task.done():
                task.cancel()
                await asyncio.wait({task})
        self._task = None

        # Only a batch whose earlier restore failed is left without a cycle
        if self._in_flight:
            self._restore_in_flight("shutdown")
