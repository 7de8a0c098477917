"""Async HTTP uploader for batches of captured locations."""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

import httpx

from locationcapture import __version__
from locationcapture.errors import ConfigError
from locationcapture.logging import log_upload_failed, log_upload_success
from locationcapture.storage.sample import SAMPLE_FIELDS, Sample

logger = logging.getLogger(__name__)


class RequestFormat(str, Enum):
    """Wire encoding of an upload request body."""

    JSON = "JSON"
    FORM_URL_ENCODED = "FORM_URL_ENCODED"


def validate_fields(fields: Iterable[str]) -> tuple[str, ...]:
    """Check an upload field list against the sample fields.

    Raises:
        ConfigError: If a name is unknown or repeated, or the list is empty
    """
    names = tuple(fields)
    if not names:
        raise ConfigError("upload_fields must name at least one field")
    unknown = [name for name in names if name not in SAMPLE_FIELDS]
    if unknown:
        raise ConfigError(
            f"Unknown upload field(s): {', '.join(unknown)}; "
            f"valid fields are {', '.join(SAMPLE_FIELDS)}"
        )
    if len(set(names)) != len(names):
        raise ConfigError("upload_fields must not repeat a field")
    return names


def coerce_format(value: RequestFormat | str) -> RequestFormat:
    """Convert a format name to a RequestFormat.

    Raises:
        ConfigError: If the format is not supported
    """
    try:
        return RequestFormat(value)
    except ValueError as e:
        raise ConfigError(f"Unsupported upload request format: {value!r}") from e


def build_json_payload(
    samples: Sequence[Sample],
    locations_param: str,
    extra_params: Mapping[str, str],
    fields: Sequence[str],
) -> dict[str, Any]:
    """Build a JSON body: extra params plus the array of samples."""
    payload: dict[str, Any] = dict(extra_params)
    payload[locations_param] = [sample.as_dict(fields) for sample in samples]
    return payload


def build_form_payload(
    samples: Sequence[Sample],
    locations_param: str,
    extra_params: Mapping[str, str],
    fields: Sequence[str],
) -> dict[str, str]:
    """Build a form body using ``param[index][field]=value`` keys."""
    payload: dict[str, str] = dict(extra_params)
    for index, sample in enumerate(samples):
        for name, value in sample.as_dict(fields).items():
            payload[f"{locations_param}[{index}][{name}]"] = str(value)
    return payload


@dataclass
class UploadResult:
    """Result of an upload attempt."""

    success: bool
    status_code: int | None = None
    error: str | None = None
    sent_count: int = 0


class LocationUploader:
    """Sends one batch of samples per call to a configurable endpoint.

    Uses a single httpx.AsyncClient for connection pooling. Each call makes
    exactly one request and never retries: a failed batch goes back into
    the upload queue and is attempted again on a later sync cycle.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the uploader.

        Args:
            timeout: Request timeout in seconds; must be positive
            transport: Optional httpx transport (e.g. a MockTransport in tests)
        """
        if timeout <= 0:
            raise ConfigError("upload timeout must be positive")
        self.timeout = timeout

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={
                "User-Agent": f"locationcapture/{__version__}",
            },
            transport=transport,
        )

    async def upload(
        self,
        samples: Sequence[Sample],
        endpoint: str | None,
        request_format: RequestFormat | str,
        locations_param: str,
        extra_params: Mapping[str, str] | None,
        fields: Iterable[str],
    ) -> UploadResult:
        """Upload a batch of samples.

        Args:
            samples: Samples to send, in delivery order
            endpoint: URL to POST the batch to
            request_format: JSON or FORM_URL_ENCODED
            locations_param: Top-level key holding the sample array
            extra_params: Additional string params sent alongside the samples
            fields: Ordered sample fields to include for each sample

        Returns:
            UploadResult; ``success`` is True only for a 2xx response

        Raises:
            ConfigError: For an unknown field, unsupported format, or a
                missing or malformed endpoint. No request is made.
        """
        names = validate_fields(fields)
        fmt = coerce_format(request_format)
        if not endpoint:
            raise ConfigError("upload_url is not configured")
        if not locations_param:
            raise ConfigError("upload_locations_param must not be empty")

        extra = dict(extra_params or {})
        if fmt == RequestFormat.JSON:
            body = {"json": build_json_payload(samples, locations_param, extra, names)}
        else:
            body = {"data": build_form_payload(samples, locations_param, extra, names)}

        started = time.monotonic()
        try:
            response = await self._client.post(endpoint, **body)
        except httpx.InvalidURL as e:
            raise ConfigError(f"Invalid upload_url {endpoint!r}: {e}") from e
        except httpx.TimeoutException as e:
            return self._failed(samples, f"Timeout: {e}")
        except httpx.ConnectError as e:
            return self._failed(samples, f"Connection error: {e}")
        except httpx.HTTPError as e:
            return self._failed(samples, f"HTTP error: {e}")

        if response.is_success:
            log_upload_success(
                logger,
                sample_count=len(samples),
                status_code=response.status_code,
                duration_ms=(time.monotonic() - started) * 1000,
            )
            return UploadResult(
                success=True,
                status_code=response.status_code,
                sent_count=len(samples),
            )

        return self._failed(
            samples,
            f"Server responded {response.status_code}",
            status_code=response.status_code,
        )

    def _failed(
        self,
        samples: Sequence[Sample],
        error: str,
        status_code: int | None = None,
    ) -> UploadResult:
        log_upload_failed(logger, len(samples), error, status_code)
        return UploadResult(success=False, status_code=status_code, error=error)

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> "LocationUploader":
        """Enter async context manager."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Exit async context manager."""
        await self.close()
