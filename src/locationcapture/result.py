"""Explicit result values for host-facing operations."""

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")

NOT_SUPPORTED = "NOT_SUPPORTED"
STORAGE_ERROR = "STORAGE_ERROR"
CONFIG_ERROR = "CONFIG_ERROR"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a boundary operation.

    A successful result may carry an empty value (an empty page, no anchor);
    that is distinct from a failed result, which always has an error code.
    """

    ok: bool
    value: T | None = None
    error: str | None = None
    message: str | None = None

    @classmethod
    def success(cls, value: T | None = None) -> "Result[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str, message: str | None = None) -> "Result[T]":
        return cls(ok=False, error=error, message=message)

    def unwrap(self) -> T | None:
        """Return the value, raising RuntimeError for a failed result."""
        if not self.ok:
            raise RuntimeError(f"{self.error}: {self.message or 'operation failed'}")
        return self.value
