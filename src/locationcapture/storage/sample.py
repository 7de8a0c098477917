"""Location sample value type."""

from dataclasses import asdict, dataclass, replace
from typing import Any, Iterable

# Sentinel used by sensors for an unknown heading or speed
UNKNOWN = -1.0

SAMPLE_FIELDS = ("timestamp", "latitude", "longitude", "accuracy", "heading", "speed")


@dataclass(frozen=True)
class Sample:
    """One captured location reading.

    ``id`` is assigned by the table the sample was read from and is None
    for samples that have not been persisted yet. Store ids and queue ids
    live in separate key spaces. Timestamps are whole epoch seconds;
    fractional values are truncated.
    """

    timestamp: int
    latitude: float
    longitude: float
    accuracy: int = 0
    heading: float = UNKNOWN
    speed: float = UNKNOWN
    id: int | None = None

    def __post_init__(self) -> None:
        # Sensors may report fractional epoch seconds; rows and anchors use whole seconds
        object.__setattr__(self, "timestamp", int(self.timestamp))

    @classmethod
    def from_row(cls, row: Any) -> "Sample":
        """Build a sample from a database row with named columns."""
        return cls(
            id=row["id"],
            timestamp=row["timestamp"],
            latitude=row["latitude"],
            longitude=row["longitude"],
            accuracy=row["accuracy"],
            heading=row["heading"],
            speed=row["speed"],
        )

    def with_id(self, sample_id: int | None) -> "Sample":
        return replace(self, id=sample_id)

    def row_values(self) -> tuple:
        """Column values in SAMPLE_FIELDS order, without the id."""
        return tuple(getattr(self, name) for name in SAMPLE_FIELDS)

    def as_dict(self, fields: Iterable[str] = SAMPLE_FIELDS) -> dict[str, Any]:
        """Return the requested fields, in the order given."""
        values = asdict(self)
        return {name: values[name] for name in fields}
