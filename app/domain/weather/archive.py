"""
Archive Value Objects
=====================
Closed-window rollups (ArchiveRecord) and per-local-day rollups
(DailySummary). Both are immutable once built.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from types import MappingProxyType
from typing import Any, Mapping


@dataclass(frozen=True)
class Aggregate:
    """
    Statistics for one metric over one window.

    ``avg`` is the arithmetic mean for scalar metrics and the circular mean
    (degrees, [0, 360)) for directional ones. Directional aggregates keep
    their sin/cos sums so daily rollups can recombine them exactly.
    """

    count: int
    min: float | None = None
    max: float | None = None
    avg: float | None = None
    sum: float | None = None
    vector_sin: float | None = None
    vector_cos: float | None = None

    @property
    def is_vector(self) -> bool:
        return self.vector_sin is not None and self.vector_cos is not None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "count": self.count,
            "min": self.min,
            "max": self.max,
            "avg": self.avg,
            "sum": self.sum,
        }
        if self.is_vector:
            data["vector_sin"] = self.vector_sin
            data["vector_cos"] = self.vector_cos
        return data


@dataclass(frozen=True)
class ArchiveRecord:
    """One closed window for one station, keyed by (station_id, window_start)."""

    station_id: str
    window_start: datetime
    window_end: datetime
    interval_seconds: int
    observation_count: int
    aggregates: Mapping[str, Aggregate] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "aggregates", MappingProxyType(dict(self.aggregates)))

    @property
    def key(self) -> tuple[str, int]:
        return self.station_id, int(self.window_start.timestamp())

    def get(self, metric: str) -> Aggregate | None:
        return self.aggregates.get(metric)

    def to_dict(self) -> dict[str, Any]:
        return {
            "station_id": self.station_id,
            "window_start": self.window_start.isoformat(),
            "window_end": self.window_end.isoformat(),
            "interval_seconds": self.interval_seconds,
            "observation_count": self.observation_count,
            "aggregates": {name: self.aggregates[name].to_dict() for name in sorted(self.aggregates)},
        }


@dataclass(frozen=True)
class DailySummary:
    """
    Rollup of every ArchiveRecord that started on one local calendar day.

    Rebuilt from scratch each time a window of that day closes, so writing it
    is an upsert on (station_id, date). Two rebuilds from the same records
    serialize identically.
    """

    station_id: str
    date: date
    timezone: str
    archive_count: int
    observation_count: int
    first_window_start: datetime
    last_window_end: datetime
    aggregates: Mapping[str, Aggregate] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "aggregates", MappingProxyType(dict(self.aggregates)))

    @property
    def key(self) -> tuple[str, str]:
        return self.station_id, self.date.isoformat()

    def get(self, metric: str) -> Aggregate | None:
        return self.aggregates.get(metric)

    def to_dict(self) -> dict[str, Any]:
        return {
            "station_id": self.station_id,
            "date": self.date.isoformat(),
            "timezone": self.timezone,
            "archive_count": self.archive_count,
            "observation_count": self.observation_count,
            "first_window_start": self.first_window_start.isoformat(),
            "last_window_end": self.last_window_end.isoformat(),
            "aggregates": {name: self.aggregates[name].to_dict() for name in sorted(self.aggregates)},
        }

    def to_json(self) -> str:
        """Deterministic serialization (sorted keys, no whitespace)."""
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
