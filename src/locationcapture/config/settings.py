"""Configuration: process settings and the capture/upload options snapshot."""

import logging
from functools import cached_property
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from locationcapture.errors import ConfigError
from locationcapture.sync.connectivity import ConnectionType
from locationcapture.sync.uploader import RequestFormat, validate_fields

logger = logging.getLogger(__name__)

DEFAULT_UPLOAD_FIELDS = ("timestamp", "latitude", "longitude")


class CaptureOptions(BaseModel):
    """Immutable snapshot of the capture and upload options.

    A sync cycle reads one snapshot for its whole duration. ``configure``
    never mutates a snapshot; it builds a new one with ``merged`` and
    swaps the reference.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    time_filter: int = Field(default=30, ge=0)  # seconds between fixes
    distance_filter: int = Field(default=0, ge=0)  # metres between fixes
    upload_enabled: bool = False
    upload_url: str | None = None
    upload_connection_type: ConnectionType = ConnectionType.WIFI_CELLULAR
    upload_frequency: int = Field(default=0, ge=0)  # seconds, 0 = every trigger
    upload_request_format: RequestFormat = RequestFormat.JSON
    upload_locations_param: str = Field(default="locations", min_length=1)
    upload_extra_params: dict[str, str] = Field(default_factory=dict)
    upload_fields: tuple[str, ...] = DEFAULT_UPLOAD_FIELDS
    keep_locations_for: int = Field(default=30, ge=-1)  # days, -1 = forever

    @field_validator("upload_fields")
    @classmethod
    def validate_upload_fields(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Ensure only known sample fields are uploaded."""
        try:
            return validate_fields(v)
        except ConfigError as e:
            raise ValueError(str(e)) from e

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "CaptureOptions":
        """Validate a full set of options.

        Raises:
            ConfigError: For unknown option names or invalid values
        """
        try:
            return cls.model_validate(dict(options))
        except ValidationError as e:
            raise ConfigError(f"Invalid capture options: {e}") from e

    def merged(self, changes: Mapping[str, Any]) -> "CaptureOptions":
        """Return a new snapshot with ``changes`` applied.

        Options not named in ``changes`` keep their current values.
        """
        return self.from_mapping({**self.model_dump(), **dict(changes)})

    def diff(self, other: "CaptureOptions") -> dict[str, tuple[Any, Any]]:
        """Options whose value differs in ``other``, as (old, new) pairs."""
        mine, theirs = self.model_dump(), other.model_dump()
        return {key: (mine[key], theirs[key]) for key in mine if mine[key] != theirs[key]}


class Settings(BaseSettings):
    """Process settings for the location capture service.

    Settings are loaded from environment variables with the LOCATIONCAPTURE_
    prefix. For example, LOCATIONCAPTURE_LOG_LEVEL=DEBUG sets log_level.
    Capture and upload options live in a separate YAML file so the host
    application can change them at runtime through ``configure``.
    """

    model_config = SettingsConfigDict(
        env_prefix="LOCATIONCAPTURE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    data_dir: Path = Path("~/.local/share/locationcapture")
    database_name: str = "locations.db"

    # Initial capture/upload options
    options_file: Path = Path("~/.config/locationcapture/options.yaml")

    # Sync worker
    upload_timeout: float = 30.0  # seconds per upload request
    sync_tick_interval: float = 5.0  # seconds between sync worker wakeups

    # Logging
    log_level: str = "INFO"
    log_sql: bool = False  # trace every SQL statement at DEBUG
    log_file: Path | None = None
    device_id: str | None = None

    @field_validator("upload_timeout", "sync_tick_interval")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Ensure timeouts and intervals are finite and positive."""
        if not 0 < v < float("inf"):
            raise ValueError("must be a positive number of seconds")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    @cached_property
    def data_path(self) -> Path:
        """Return expanded data directory path."""
        return self.data_dir.expanduser()

    @cached_property
    def database_path(self) -> Path:
        """Return the path of the SQLite database file."""
        return self.data_path / self.database_name

    @cached_property
    def options_path(self) -> Path:
        """Return expanded options file path."""
        return self.options_file.expanduser()

    def read_options_file(self) -> dict[str, Any]:
        """Read the raw option mapping from the YAML options file.

        A missing or unreadable file yields an empty mapping.
        """
        if not self.options_path.exists():
            return {}

        try:
            with open(self.options_path) as f:
                data = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            logger.warning("Failed to read options from %s: %s", self.options_path, e)
            return {}

        if not isinstance(data, dict):
            logger.warning("Ignoring options file %s: not a mapping", self.options_path)
            return {}
        return data

    def load_options(self) -> CaptureOptions:
        """Build the initial options snapshot from defaults and the YAML file.

        Raises:
            ConfigError: If the file names unknown options or invalid values
        """
        return CaptureOptions().merged(self.read_options_file())

    def save_options(self, changes: Mapping[str, Any]) -> CaptureOptions:
        """Validate ``changes`` against the file's options and write them back.

        Returns:
            The resulting options snapshot

        Raises:
            ConfigError: If the merged options are invalid; the file is
                left untouched
        """
        stored = self.read_options_file()
        stored.update(changes)
        options = CaptureOptions().merged(stored)

        self.options_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.options_path, "w") as f:
            yaml.safe_dump(stored, f, default_flow_style=False, sort_keys=True)
        return options
