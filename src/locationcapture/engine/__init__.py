"""Engine module: capture controller, sync coordinator and service facade."""

from locationcapture.engine.capture import CaptureController, LocationSensor
from locationcapture.engine.coordinator import CycleOutcome, SyncCoordinator, SyncState
from locationcapture.engine.service import LocationCaptureService

__all__ = [
    "CaptureController",
    "CycleOutcome",
    "LocationCaptureService",
    "LocationSensor",
    "SyncCoordinator",
    "SyncState",
]
