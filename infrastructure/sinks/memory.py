"""In-process sink backing the ``/api/v1/current`` and ``/api/v1/history`` routes."""

from __future__ import annotations

import threading
from collections import deque
from typing import Any

from app.domain.weather.archive import ArchiveRecord, DailySummary
from app.domain.weather.observation import Observation
from app.pipeline.interfaces import ISink, OutputUnit, SinkResult

DEFAULT_HISTORY_CAPACITY = 1000
DEFAULT_DAILY_RETENTION = 31  # days kept per station


class MemorySink(ISink):
    """
    Keeps the latest observation per station plus capped histories.

    Daily summaries are keyed by ``(station_id, date)`` so a recomputed
    summary replaces the previous one. Only the newest ``daily_retention``
    days are kept per station.
    """

    name = "memory"

    def __init__(self, capacity: int = DEFAULT_HISTORY_CAPACITY, daily_retention: int = DEFAULT_DAILY_RETENTION) -> None:
        self.capacity = max(1, int(capacity))
        self.daily_retention = max(1, int(daily_retention))
        self._lock = threading.Lock()
        self._latest: dict[str, Observation] = {}
        self._observations: deque[Observation] = deque(maxlen=self.capacity)
        self._archives: deque[ArchiveRecord] = deque(maxlen=self.capacity)
        self._daily: dict[tuple[str, str], DailySummary] = {}

    def write(self, unit: OutputUnit) -> SinkResult:
        with self._lock:
            if isinstance(unit, Observation):
                self._observations.append(unit)
                current = self._latest.get(unit.station_id)
                if current is None or unit.timestamp >= current.timestamp:
                    self._latest[unit.station_id] = unit
            elif isinstance(unit, ArchiveRecord):
                self._archives.append(unit)
            elif isinstance(unit, DailySummary):
                self._daily[unit.key] = unit
                self._prune_daily(unit.station_id)
            else:
                raise TypeError(f"Unsupported output unit {type(unit).__name__}")
        return SinkResult.success()

    def _prune_daily(self, station_id: str) -> None:
        keys = sorted(key for key in self._daily if key[0] == station_id)
        for key in keys[: -self.daily_retention]:
            del self._daily[key]

    # --- Queries ---------------------------------------------------------------
    def latest(self, station_id: str | None = None) -> Observation | None:
        with self._lock:
            if station_id is not None:
                return self._latest.get(station_id)
            if not self._latest:
                return None
            return max(self._latest.values(), key=lambda obs: obs.timestamp)

    def history(self, limit: int | None = None, station_id: str | None = None) -> list[Observation]:
        """Most recent observations, oldest first."""
        with self._lock:
            items = [obs for obs in self._observations if station_id is None or obs.station_id == station_id]
        if limit is not None:
            items = items[-max(0, int(limit)):] if limit > 0 else []
        return items

    def archives(self, station_id: str | None = None) -> list[ArchiveRecord]:
        with self._lock:
            return [rec for rec in self._archives if station_id is None or rec.station_id == station_id]

    def daily_summaries(self, station_id: str | None = None) -> list[DailySummary]:
        with self._lock:
            items = [s for s in self._daily.values() if station_id is None or s.station_id == station_id]
        return sorted(items, key=lambda s: s.key)

    def stations(self) -> list[str]:
        with self._lock:
            return sorted(self._latest)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "stations": len(self._latest),
                "observations": len(self._observations),
                "archives": len(self._archives),
                "daily_summaries": len(self._daily),
            }
