"""Tests for the sync coordinator's flush, upload and restore cycle."""

import asyncio

import pytest
from conftest import make_sample

from locationcapture.config import CaptureOptions
from locationcapture.engine import CycleOutcome, SyncCoordinator, SyncState
from locationcapture.errors import ConfigError, StorageError
from locationcapture.sync import NetworkType, StaticConnectivity, UploadQueue
from locationcapture.sync.uploader import UploadResult


class FakeUploader:
    """Uploader stand-in that records batches and answers from a script."""

    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.batches: list[list] = []
        self.error: BaseException | None = None
        self.gate: asyncio.Event | None = None
        self.entered: asyncio.Event | None = None

    async def upload(self, samples, **kwargs):
        self.batches.append(list(samples))
        if self.entered is not None:
            self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return UploadResult(success=self.succeed, sent_count=len(samples) if self.succeed else 0)

    async def close(self):
        pass


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FlakyQueue(UploadQueue):
    """Upload queue whose restore fails a given number of times."""

    restore_failures = 0

    def restore(self, samples):
        if self.restore_failures:
            self.restore_failures -= 1
            raise StorageError("disk I/O error")
        return super().restore(samples)


def make_coordinator(queue, uploader, options, network=NetworkType.WIFI, clock=None):
    return SyncCoordinator(
        queue,
        uploader,
        StaticConnectivity(network),
        lambda: options,
        tick_interval=0.01,
        clock=clock or FakeClock(),
    )


def fill(queue: UploadQueue, *timestamps: int) -> None:
    for t in timestamps:
        queue.enqueue(make_sample(t))


class TestCycleGuards:
    """Conditions under which a cycle does not drain the queue."""

    def test_disabled(self, queue: UploadQueue):
        """Verify nothing is drained while upload is disabled."""
        fill(queue, 100)
        uploader = FakeUploader()
        coordinator = make_coordinator(queue, uploader, CaptureOptions())

        assert asyncio.run(coordinator.run_cycle()) == CycleOutcome.DISABLED
        assert queue.count() == 1
        assert uploader.batches == []

    def test_enabled_without_url(self, queue: UploadQueue):
        """Verify upload without a URL counts as disabled."""
        fill(queue, 100)
        options = CaptureOptions(upload_enabled=True)
        coordinator = make_coordinator(queue, FakeUploader(), options)

        assert asyncio.run(coordinator.run_cycle()) == CycleOutcome.DISABLED
        assert queue.count() == 1

    def test_wifi_only_on_cellular(self, queue: UploadQueue, upload_options: CaptureOptions):
        """Verify WIFI_ONLY uploads wait while on cellular."""
        fill(queue, 100)
        options = upload_options.merged({"upload_connection_type": "WIFI_ONLY"})
        coordinator = make_coordinator(queue, FakeUploader(), options, NetworkType.CELLULAR)

        assert asyncio.run(coordinator.run_cycle()) == CycleOutcome.NO_NETWORK
        assert queue.count() == 1

    def test_offline(self, queue: UploadQueue, upload_options: CaptureOptions):
        """Verify no cycle drains the queue while offline."""
        fill(queue, 100)
        coordinator = make_coordinator(queue, FakeUploader(), upload_options, NetworkType.NONE)

        assert asyncio.run(coordinator.run_cycle()) == CycleOutcome.NO_NETWORK

    def test_empty_queue(self, queue: UploadQueue, upload_options: CaptureOptions):
        """Verify an empty queue makes no upload request."""
        uploader = FakeUploader()
        coordinator = make_coordinator(queue, uploader, upload_options)

        assert asyncio.run(coordinator.run_cycle()) == CycleOutcome.EMPTY
        assert uploader.batches == []

    def test_frequency_limits_drains(self, queue: UploadQueue, upload_options: CaptureOptions):
        """Verify drains are spaced by upload_frequency."""
        clock = FakeClock()
        options = upload_options.merged({"upload_frequency": 60})
        coordinator = make_coordinator(queue, FakeUploader(), options, clock=clock)

        fill(queue, 100)
        assert asyncio.run(coordinator.run_cycle()) == CycleOutcome.DELIVERED

        fill(queue, 200)
        clock.now += 30
        assert asyncio.run(coordinator.run_cycle()) == CycleOutcome.TOO_SOON
        assert queue.count() == 1

        clock.now += 30
        assert asyncio.run(coordinator.run_cycle()) == CycleOutcome.DELIVERED
        assert queue.count() == 0

    def test_forced_cycle_skips_frequency(self, queue: UploadQueue, upload_options: CaptureOptions):
        """Verify a forced cycle ignores the frequency timer."""
        options = upload_options.merged({"upload_frequency": 3600})
        coordinator = make_coordinator(queue, FakeUploader(), options)

        fill(queue, 100)
        asyncio.run(coordinator.run_cycle())
        fill(queue, 200)

        assert asyncio.run(coordinator.run_cycle(force=True)) == CycleOutcome.DELIVERED


class TestDelivery:
    """Flush, upload and restore."""

    def test_delivered_batch_leaves_queue(self, queue: UploadQueue, upload_options: CaptureOptions):
        """Verify a delivered batch is gone from the queue."""
        fill(queue, 200, 100)
        uploader = FakeUploader()
        coordinator = make_coordinator(queue, uploader, upload_options)

        assert asyncio.run(coordinator.run_cycle()) == CycleOutcome.DELIVERED

        assert [s.timestamp for s in uploader.batches[0]] == [100, 200]
        assert queue.count() == 0
        assert coordinator.in_flight_count == 0
        assert coordinator.state == SyncState.IDLE
        assert coordinator.last_outcome == CycleOutcome.DELIVERED

    def test_failed_delivery_restores_batch(self, queue: UploadQueue, upload_options: CaptureOptions):
        """Verify a rejected batch is restored and delivered next time."""
        fill(queue, 100, 200)
        uploader = FakeUploader(succeed=False)
        coordinator = make_coordinator(queue, uploader, upload_options)

        assert asyncio.run(coordinator.run_cycle()) == CycleOutcome.RESTORED
        assert coordinator.in_flight_count == 0

        uploader.succeed = True
        assert asyncio.run(coordinator.run_cycle()) == CycleOutcome.DELIVERED
        assert [s.timestamp for s in uploader.batches[1]] == [100, 200]

    def test_samples_captured_during_upload_wait_for_next_cycle(
        self, queue: UploadQueue, upload_options: CaptureOptions
    ):
        """Verify samples queued mid-upload are left for the next cycle."""
        fill(queue, 100)
        uploader = FakeUploader()
        coordinator = make_coordinator(queue, uploader, upload_options)

        async def scenario():
            uploader.gate = asyncio.Event()
            uploader.entered = asyncio.Event()
            cycle = asyncio.create_task(coordinator.run_cycle())
            await uploader.entered.wait()
            fill(queue, 150)
            uploader.gate.set()
            return await cycle

        assert asyncio.run(scenario()) == CycleOutcome.DELIVERED
        assert [s.timestamp for s in uploader.batches[0]] == [100]
        assert queue.count() == 1

    def test_config_error_restores_and_propagates(
        self, queue: UploadQueue, upload_options: CaptureOptions
    ):
        """Verify a configuration error restores the batch and is raised."""
        fill(queue, 100)
        uploader = FakeUploader()
        uploader.error = ConfigError("Invalid upload_url")
        coordinator = make_coordinator(queue, uploader, upload_options)

        with pytest.raises(ConfigError):
            asyncio.run(coordinator.run_cycle())

        assert queue.count() == 1
        assert coordinator.in_flight_count == 0
        assert coordinator.state == SyncState.IDLE

    def test_restore_failure_keeps_batch_for_next_cycle(self, db, upload_options: CaptureOptions):
        """Verify a batch that cannot be restored is retried on the next cycle."""
        queue = FlakyQueue(db)
        queue.restore_failures = 1
        fill(queue, 100, 200)
        uploader = FakeUploader(succeed=False)
        coordinator = make_coordinator(queue, uploader, upload_options)

        assert asyncio.run(coordinator.run_cycle()) == CycleOutcome.FAILED
        assert coordinator.in_flight_count == 2
        assert queue.count() == 0

        uploader.succeed = True
        assert asyncio.run(coordinator.run_cycle()) == CycleOutcome.DELIVERED
        assert [s.timestamp for s in uploader.batches[1]] == [100, 200]
        assert coordinator.in_flight_count == 0


class TestConcurrency:
    """Single-cycle guarantee and cancellation."""

    def test_second_cycle_reports_busy(self, queue: UploadQueue, upload_options: CaptureOptions):
        """Verify a second concurrent cycle reports BUSY."""
        fill(queue, 100)
        uploader = FakeUploader()
        coordinator = make_coordinator(queue, uploader, upload_options)

        async def scenario():
            uploader.gate = asyncio.Event()
            uploader.entered = asyncio.Event()
            first = asyncio.create_task(coordinator.run_cycle())
            await uploader.entered.wait()
            second = await coordinator.run_cycle(force=True)
            uploader.gate.set()
            return await first, second

        first, second = asyncio.run(scenario())

        assert first == CycleOutcome.DELIVERED
        assert second == CycleOutcome.BUSY
        assert len(uploader.batches) == 1

    def test_cancelled_upload_restores_batch(self, queue: UploadQueue, upload_options: CaptureOptions):
        """Verify cancelling a cycle mid-upload restores its batch."""
        fill(queue, 100, 200, 300)
        uploader = FakeUploader()
        coordinator = make_coordinator(queue, uploader, upload_options)

        async def scenario():
            uploader.gate = asyncio.Event()
            uploader.entered = asyncio.Event()
            cycle = asyncio.create_task(coordinator.run_cycle())
            await uploader.entered.wait()
            assert queue.count() == 0
            cycle.cancel()
            with pytest.raises(asyncio.CancelledError):
                await cycle

        asyncio.run(scenario())

        assert [s.timestamp for s in queue.flush()] == [100, 200, 300]
        assert coordinator.in_flight_count == 0
        assert coordinator.state == SyncState.IDLE

    def test_stop_abandons_on_demand_cycle(self, queue: UploadQueue, upload_options: CaptureOptions):
        """Verify stop() during a forced cycle leaves the batch queued exactly once."""
        fill(queue, 100)
        uploader = FakeUploader()
        coordinator = make_coordinator(queue, uploader, upload_options)

        async def scenario():
            uploader.gate = asyncio.Event()
            uploader.entered = asyncio.Event()
            cycle = asyncio.create_task(coordinator.run_cycle(force=True))
            await uploader.entered.wait()
            await coordinator.stop()
            uploader.gate.set()
            return await cycle

        outcome = asyncio.run(scenario())

        assert outcome == CycleOutcome.ABANDONED
        assert coordinator.last_outcome == CycleOutcome.ABANDONED
        assert len(uploader.batches) == 1
        assert [s.timestamp for s in queue.flush()] == [100]
        assert coordinator.in_flight_count == 0
        assert coordinator.state == SyncState.IDLE

    def test_cycle_can_run_after_abandoned_one(
        self, queue: UploadQueue, upload_options: CaptureOptions
    ):
        """Verify the coordinator is not left busy after stop() abandons a cycle."""
        fill(queue, 100)
        uploader = FakeUploader()
        coordinator = make_coordinator(queue, uploader, upload_options)

        async def scenario():
            uploader.gate = asyncio.Event()
            uploader.entered = asyncio.Event()
            cycle = asyncio.create_task(coordinator.run_cycle(force=True))
            await uploader.entered.wait()
            await coordinator.stop()
            await cycle
            uploader.gate = None
            return await coordinator.run_cycle(force=True)

        assert asyncio.run(scenario()) == CycleOutcome.DELIVERED
        assert queue.count() == 0


class TestWorker:
    """Background worker lifecycle."""

    def test_worker_drains_queue(self, queue: UploadQueue, upload_options: CaptureOptions):
        """Verify the background worker empties the queue."""
        fill(queue, 100, 200)
        uploader = FakeUploader()
        coordinator = make_coordinator(queue, uploader, upload_options)

        async def scenario():
            coordinator.start()
            assert coordinator.is_running
            for _ in range(200):
                if queue.count() == 0:
                    break
                await asyncio.sleep(0.01)
            await coordinator.stop()

        asyncio.run(scenario())

        assert queue.count() == 0
        assert not coordinator.is_running

    def test_trigger_skips_frequency(self, queue: UploadQueue, upload_options: CaptureOptions):
        """Verify trigger runs a cycle despite the frequency timer."""
        options = upload_options.merged({"upload_frequency": 3600})
        uploader = FakeUploader()
        coordinator = make_coordinator(queue, uploader, options)

        async def scenario():
            fill(queue, 100)
            coordinator.start()
            while not uploader.batches:
                await asyncio.sleep(0.01)

            fill(queue, 200)
            coordinator.trigger()
            for _ in range(200):
                if len(uploader.batches) == 2:
                    break
                await asyncio.sleep(0.01)
            await coordinator.stop()

        asyncio.run(scenario())

        assert [[s.timestamp for s in batch] for batch in uploader.batches] == [[100], [200]]

    def test_stop_restores_in_flight_batch(self, queue: UploadQueue, upload_options: CaptureOptions):
        """Verify stopping the worker mid-upload restores the batch."""
        fill(queue, 100, 200)
        uploader = FakeUploader()

        async def scenario():
            uploader.gate = asyncio.Event()
            uploader.entered = asyncio.Event()
            coordinator = make_coordinator(queue, uploader, upload_options)
            coordinator.start()
            await uploader.entered.wait()
            assert coordinator.in_flight_count == 2
            await coordinator.stop()
            return coordinator

        coordinator = asyncio.run(scenario())

        assert queue.count() == 2
        assert coordinator.in_flight_count == 0

    def test_worker_survives_config_error(self, queue: UploadQueue, upload_options: CaptureOptions):
        """Verify the worker keeps running after a configuration error."""
        fill(queue, 100)
        uploader = FakeUploader()
        uploader.error = ConfigError("bad url")
        coordinator = make_coordinator(queue, uploader, upload_options)

        async def scenario():
            coordinator.start()
            for _ in range(200):
                if len(uploader.batches) >= 2:
                    break
                await asyncio.sleep(0.01)
            running = coordinator.is_running
            await coordinator.stop()
            return running

        assert asyncio.run(scenario()) is True
        assert queue.count() == 1
