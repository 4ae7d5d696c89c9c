"""
Window Accumulators
===================
Running per-metric statistics for one open aggregation window, plus the
per-station rain counter state used to turn cumulative counters into deltas.

None of these classes lock; the aggregation engine serializes access.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable

from app.domain.weather.archive import Aggregate, ArchiveRecord
from app.domain.weather.fields import (
    RAIN_COUNTER_PRIORITY,
    AggregationKind,
    WeatherField,
    get_metric_spec,
)
from app.domain.weather.observation import Observation
from app.utils.time import from_epoch

RAIN_METRIC = WeatherField.RAIN.value

# Direction metric -> the speed metric that weights it
VECTOR_WEIGHTS: dict[str, str] = {
    WeatherField.WIND_DIRECTION.value: WeatherField.WIND_SPEED.value,
    WeatherField.WIND_GUST_DIRECTION.value: WeatherField.WIND_GUST.value,
}

# Below this resultant length the mean direction is undefined.
_VECTOR_EPSILON = 1e-9


def rain_delta(previous: float, current: float) -> float:
    """
    Rain fallen between two readings of a cumulative counter.

    A decrease means the counter was reset (reboot, period rollover); the
    current value is then the amount accumulated since the reset.
    """
    if current >= previous:
        return current - previous
    return current


def vector_mean(sin_sum: float, cos_sum: float) -> float | None:
    """Mean direction in degrees [0, 360) of summed unit vectors; None if they cancel out."""
    if math.hypot(sin_sum, cos_sum) < _VECTOR_EPSILON:
        return None
    return round(math.degrees(math.atan2(sin_sum, cos_sum)), 6) % 360.0


def circular_mean(directions: Iterable[float], weights: Iterable[float] | None = None) -> float | None:
    """Circular mean of compass directions (degrees)."""
    directions = list(directions)
    weights = [1.0] * len(directions) if weights is None else list(weights)
    sin_sum = sum(w * math.sin(math.radians(d)) for d, w in zip(directions, weights))
    cos_sum = sum(w * math.cos(math.radians(d)) for d, w in zip(directions, weights))
    return vector_mean(sin_sum, cos_sum)


@dataclass
class ScalarAccumulator:
    """
    Running min/max/sum/count.

    With ``counter=True`` the values are readings of a cumulative counter:
    only min/max are reported, since summing readings is meaningless.
    """

    count: int = 0
    min: float | None = None
    max: float | None = None
    sum: float = 0.0
    counter: bool = False

    def add(self, value: float) -> None:
        self.count += 1
        self.sum += value
        self.min = value if self.min is None else min(self.min, value)
        self.max = value if self.max is None else max(self.max, value)

    def to_aggregate(self) -> Aggregate | None:
        if self.count == 0:
            return None
        if self.counter:
            return Aggregate(count=self.count, min=self.min, max=self.max)
        return Aggregate(
            count=self.count,
            min=self.min,
            max=self.max,
            avg=self.sum / self.count,
            sum=self.sum,
        )


@dataclass
class VectorAccumulator:
    """
    Circular accumulator for compass directions.

    Keeps both a speed-weighted and an unweighted resultant; the weighted one
    is preferred and the unweighted one is the fallback when all weights were
    zero (calm) or missing.
    """

    weighted: bool = True
    count: int = 0
    sin_sum: float = 0.0
    cos_sum: float = 0.0
    weighted_sin_sum: float = 0.0
    weighted_cos_sum: float = 0.0

    def add(self, degrees: float, weight: float | None = None) -> None:
        radians = math.radians(degrees)
        sin_v, cos_v = math.sin(radians), math.cos(radians)
        self.count += 1
        self.sin_sum += sin_v
        self.cos_sum += cos_v
        if weight is not None and weight > 0:
            self.weighted_sin_sum += weight * sin_v
            self.weighted_cos_sum += weight * cos_v

    def resultant(self) -> tuple[float, float]:
        if self.weighted and math.hypot(self.weighted_sin_sum, self.weighted_cos_sum) >= _VECTOR_EPSILON:
            return self.weighted_sin_sum, self.weighted_cos_sum
        return self.sin_sum, self.cos_sum

    def to_aggregate(self) -> Aggregate | None:
        if self.count == 0:
            return None
        sin_sum, cos_sum = self.resultant()
        return Aggregate(
            count=self.count,
            avg=vector_mean(sin_sum, cos_sum),
            vector_sin=sin_sum,
            vector_cos=cos_sum,
        )


@dataclass
class RainAccumulatorState:
    """
    Last-seen cumulative rain counters for one station.

    The longest-horizon counter present in an observation drives the delta.
    Its first reading only sets the baseline and contributes nothing.
    """

    last_values: dict[str, float] = field(default_factory=dict)

    def update(self, observation: Observation) -> float | None:
        """
        Fold an observation's counters into the state.

        Returns:
            The rain delta, or None when no counter could produce one
        """
        driving = next((name for name in RAIN_COUNTER_PRIORITY if observation.has(name)), None)
        delta = None
        if driving is not None:
            previous = self.last_values.get(driving)
            if previous is not None:
                delta = rain_delta(previous, observation.value(driving))

        for name in RAIN_COUNTER_PRIORITY:
            value = observation.value(name)
            if value is not None:
                self.last_values[name] = value
        return delta

    @staticmethod
    def reports_counter(observation: Observation) -> bool:
        return any(observation.has(name) for name in RAIN_COUNTER_PRIORITY)


class WindowAccumulator:
    """All metric accumulators for one station window ``[start, start + size)``."""

    def __init__(self, station_id: str, start_epoch: int, size_seconds: int, *, weight_vectors: bool = True):
        self.station_id = station_id
        self.start_epoch = start_epoch
        self.size_seconds = size_seconds
        self.weight_vectors = weight_vectors
        self.observation_count = 0
        self.scalars: dict[str, ScalarAccumulator] = {}
        self.vectors: dict[str, VectorAccumulator] = {}
        self.rain = ScalarAccumulator()

    @property
    def end_epoch(self) -> int:
        return self.start_epoch + self.size_seconds

    def add(self, observation: Observation, rain_amount: float | None = None) -> None:
        """
        Fold one observation into the window.

        ``rain_amount`` is the precomputed counter delta; explicit per-report
        ``rain`` values are used only when the station reports no counter.
        """
        self.observation_count += 1
        for name, measurement in observation.measurements.items():
            spec = get_metric_spec(name)
            if spec is None or spec.kind == AggregationKind.DELTA:
                continue
            if spec.kind == AggregationKind.VECTOR:
                weight_metric = VECTOR_WEIGHTS.get(name)
                weight = observation.value(weight_metric) if weight_metric else None
                self.vectors.setdefault(name, VectorAccumulator(weighted=self.weight_vectors)).add(
                    measurement.value, weight
                )
                continue
            accumulator = self.scalars.get(name)
            if accumulator is None:
                accumulator = self.scalars[name] = ScalarAccumulator(counter=spec.kind == AggregationKind.CUMULATIVE)
            accumulator.add(measurement.value)

        if rain_amount is None and not RainAccumulatorState.reports_counter(observation):
            rain_amount = observation.value(RAIN_METRIC)
        if rain_amount is not None:
            self.rain.add(rain_amount)

    def to_record(self) -> ArchiveRecord:
        aggregates: dict[str, Aggregate] = {}
        for name, accumulator in self.scalars.items():
            aggregate = accumulator.to_aggregate()
            if aggregate is not None:
                aggregates[name] = aggregate
        for name, accumulator in self.vectors.items():
            aggregate = accumulator.to_aggregate()
            if aggregate is not None:
                aggregates[name] = aggregate
        rain = self.rain.to_aggregate()
        if rain is not None:
            aggregates[RAIN_METRIC] = rain

        return ArchiveRecord(
            station_id=self.station_id,
            window_start=from_epoch(self.start_epoch),
            window_end=from_epoch(self.end_epoch),
            interval_seconds=self.size_seconds,
            observation_count=self.observation_count,
            aggregates=aggregates,
        )


def window_start(epoch: int, size_seconds: int) -> int:
    return (epoch // size_seconds) * size_seconds
