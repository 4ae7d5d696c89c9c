"""
Observation Value Object
========================
One normalized station snapshot. Every metric is optional: a missing key
means the station did not report it, which is not the same as zero.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from app.domain.weather.units import Measurement


@dataclass(frozen=True)
class Observation:
    """
    Immutable observation. Measurements are always in canonical units.

    Processors never mutate an Observation; they derive a new instance via
    ``with_measurements`` (``dataclasses.replace`` under the hood).
    """

    station_id: str
    timestamp: datetime
    measurements: Mapping[str, Measurement] = field(default_factory=dict)
    source: str = "unknown"
    station_type: str | None = None
    meta: Mapping[str, Any] = field(default_factory=dict)
    received_at: datetime | None = None

    def __post_init__(self) -> None:
        ts = self.timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        object.__setattr__(self, "timestamp", ts.astimezone(timezone.utc))
        object.__setattr__(self, "measurements", MappingProxyType(dict(self.measurements)))
        object.__setattr__(self, "meta", MappingProxyType(dict(self.meta)))

    @property
    def epoch(self) -> int:
        """Whole seconds since the Unix epoch."""
        return int(self.timestamp.timestamp())

    def has(self, name: str) -> bool:
        return name in self.measurements

    def get(self, name: str) -> Measurement | None:
        return self.measurements.get(name)

    def value(self, name: str, default: float | None = None) -> float | None:
        measurement = self.measurements.get(name)
        return measurement.value if measurement is not None else default

    def with_measurements(
        self,
        updates: Mapping[str, Measurement] | None = None,
        *,
        drop: Iterable[str] = (),
    ) -> "Observation":
        merged = dict(self.measurements)
        for name in drop:
            merged.pop(name, None)
        if updates:
            merged.update(updates)
        return replace(self, measurements=merged)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        names = sorted(self.measurements)
        return {
            "station_id": self.station_id,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
            "station_type": self.station_type,
            "measurements": {name: self.measurements[name].value for name in names},
            "units": {name: self.measurements[name].unit.value for name in names},
            "meta": dict(self.meta),
        }
