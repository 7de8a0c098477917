"""Exception hierarchy for the location capture core.

Delivery failures are not represented here: the uploader reports them as
a failed ``UploadResult`` and the coordinator restores the batch.
"""


class LocationCaptureError(Exception):
    """Base class for all errors raised by locationcapture."""


class ConfigError(LocationCaptureError, ValueError):
    """Invalid configuration, such as an unknown upload field or format."""


class StorageError(LocationCaptureError):
    """A durable storage operation failed and was rolled back."""


class AnchorError(LocationCaptureError, ValueError):
    """A pagination anchor could not be decoded."""


class SensorError(LocationCaptureError):
    """Raised by location sensors when a fix cannot be produced."""

    code = "SENSOR_ERROR"


class SensorUnavailable(SensorError):
    """No location provider is available (out of service, disabled, ...)."""

    code = "SENSOR_UNAVAILABLE"


class PermissionDenied(SensorError):
    """The user or platform denied access to location data."""

    code = "PERMISSION_DENIED"
