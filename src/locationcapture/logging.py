"""Structured JSON logging for the location capture service.

Provides audit-friendly logging with contextual fields for capture events,
upload attempts and sync state changes. Coordinates are never logged; only
counts, timestamps and identifiers.

Usage:
    import logging
    from locationcapture.logging import setup_logging

    setup_logging("INFO")
    log = logging.getLogger("locationcapture.sync")
    log.info("batch_uploaded", extra={"sample_count": 12})
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pythonjsonlogger.json import JsonFormatter

from locationcapture import __version__

# Device identifier added to every record once known
_device_id: str | None = None


class LocationCaptureJsonFormatter(JsonFormatter):
    """JSON formatter that adds service context to all log records."""

    def add_fields(
        self,
        log_record: dict,
        record: logging.LogRecord,
        message_dict: dict,
    ) -> None:
        """Add standard fields to every log record."""
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["version"] = __version__
        if _device_id:
            log_record["device_id"] = _device_id

        if "message" not in log_record and record.getMessage():
            log_record["message"] = record.getMessage()

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        """Format time as ISO 8601."""
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return dt.isoformat()


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    device_id: str | None = None,
    max_bytes: int = 5_000_000,
    backup_count: int = 3,
) -> None:
    """Configure the root logger with JSON formatting.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path for a rotating file handler
        device_id: Identifier for this device, added to every record
        max_bytes: Max size per log file before rotation
        backup_count: Number of rotated files to keep
    """
    global _device_id
    if device_id:
        _device_id = device_id

    formatter = LocationCaptureJsonFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


# --- Audit Event Functions ---


def log_location_captured(
    logger: logging.Logger,
    timestamp: int,
    store_id: int | None,
    queue_id: int | None,
) -> None:
    """Log a location sample that reached durable storage.

    Args:
        logger: Logger instance
        timestamp: Capture time of the sample (epoch seconds)
        store_id: Row id in the location store, None if that write failed
        queue_id: Row id in the upload queue, None if that write failed
    """
    logger.debug(
        "Location captured",
        extra={
            "event": "location_captured",
            "sample_timestamp": timestamp,
            "store_id": store_id,
            "queue_id": queue_id,
        },
    )


def log_capture_write_failed(
    logger: logging.Logger,
    table: str,
    timestamp: int,
    error: str,
) -> None:
    """Log one half of a capture write that failed.

    The other table's write is kept; nothing is rolled back.
    """
    logger.error(
        "Capture write failed",
        extra={
            "event": "capture_write_failed",
            "table": table,
            "sample_timestamp": timestamp,
            "error": error,
        },
    )


def log_upload_success(
    logger: logging.Logger,
    sample_count: int,
    status_code: int | None,
    duration_ms: float,
) -> None:
    """Log a batch accepted by the remote endpoint."""
    logger.info(
        "Upload successful",
        extra={
            "event": "upload_success",
            "sample_count": sample_count,
            "status_code": status_code,
            "duration_ms": round(duration_ms, 1),
        },
    )


def log_upload_failed(
    logger: logging.Logger,
    sample_count: int,
    error: str,
    status_code: int | None = None,
) -> None:
    """Log a failed delivery attempt.

    Args:
        logger: Logger instance
        sample_count: Number of samples in the batch (restored to the queue)
        error: Error message (no payload contents)
        status_code: HTTP status if the server answered
    """
    extra = {
        "event": "upload_failed",
        "sample_count": sample_count,
        "error": error,
    }
    if status_code is not None:
        extra["status_code"] = status_code
    logger.warning("Upload failed", extra=extra)


def log_state_change(
    logger: logging.Logger,
    old_state: str,
    new_state: str,
    trigger: str | None = None,
) -> None:
    """Log a state transition."""
    extra = {
        "event": "state_change",
        "old_state": old_state,
        "new_state": new_state,
    }
    if trigger:
        extra["trigger"] = trigger
    logger.debug("State changed", extra=extra)


def log_config_change(
    logger: logging.Logger,
    key: str,
    old_value: str | None,
    new_value: str,
) -> None:
    """Log a configuration change.

    Note: Values are logged as strings. Extra upload params may carry
    credentials, so callers pass a redacted value for those.
    """
    logger.info(
        "Configuration changed",
        extra={
            "event": "config_change",
            "key": key,
            "old_value": old_value,
            "new_value": new_value,
        },
    )
