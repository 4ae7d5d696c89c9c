"""
Spike Rejection Processor
=========================
Drops single measurements that jump implausibly far from the previous
accepted value of the same station and metric.
"""

from __future__ import annotations

import logging
import threading
from typing import Mapping

from app.domain.weather.observation import Observation

from .base_processor import IObservationProcessor

logger = logging.getLogger(__name__)

# Max change between consecutive accepted reports, canonical units.
DEFAULT_SPIKE_LIMITS: dict[str, float] = {
    "temperature": 10.0,
    "humidity": 30.0,
    "pressure": 10.0,
}

# After this gap the previous value no longer says anything about the next one.
DEFAULT_MAX_GAP_SECONDS = 900


class SpikeRejectionProcessor(IObservationProcessor):
    """
    Per-station step limiter.

    The last accepted value is remembered per ``(station_id, metric)``. A new
    value further than the metric's limit from it is removed from the
    observation; the remembered value is not updated, so a sustained shift is
    only accepted once the gap exceeds ``max_gap_seconds``.
    """

    name = "spike_rejection"

    def __init__(
        self,
        limits: Mapping[str, float] | None = None,
        *,
        max_gap_seconds: int = DEFAULT_MAX_GAP_SECONDS,
    ) -> None:
        self.limits = dict(DEFAULT_SPIKE_LIMITS if limits is None else limits)
        self.max_gap_seconds = max_gap_seconds
        self._last: dict[tuple[str, str], tuple[int, float]] = {}
        self._lock = threading.Lock()

    def process(self, observation: Observation) -> Observation | None:
        if not self.limits:
            return observation

        rejected: list[str] = []
        epoch = observation.epoch
        with self._lock:
            for metric, limit in self.limits.items():
                value = observation.value(metric)
                if value is None:
                    continue
                key = (observation.station_id, metric)
                previous = self._last.get(key)
                if previous is not None:
                    prev_epoch, prev_value = previous
                    recent = 0 <= epoch - prev_epoch <= self.max_gap_seconds
                    if recent and abs(value - prev_value) > limit:
                        rejected.append(metric)
                        logger.info(
                            "Spike rejected for %s/%s: %.3f -> %.3f (limit %.3f)",
                            observation.station_id,
                            metric,
                            prev_value,
                            value,
                            limit,
                        )
                        continue
                if previous is None or epoch >= previous[0]:
                    self._last[key] = (epoch, value)

        if not rejected:
            return observation
        cleaned = observation.with_measurements(drop=rejected)
        if not cleaned.measurements:
            return None
        return cleaned

    def reset(self, station_id: str | None = None) -> None:
        with self._lock:
            if station_id is None:
                self._last.clear()
                return
            for key in [k for k in self._last if k[0] == station_id]:
                del self._last[key]
