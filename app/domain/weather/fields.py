"""
Weather metric registry.

Maps every metric name an Observation may carry to its physical quantity,
how the aggregation engine accumulates it, and its sanity range. Numbered
auxiliary channels (``temperature_1``, ``soil_moisture_3`` ...) resolve by
pattern.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from app.domain.weather.units import Quantity, Unit, canonical_unit


class WeatherField(str, Enum):
    """Standardized observation metric names."""

    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    PRESSURE = "pressure"
    PRESSURE_ABSOLUTE = "pressure_absolute"
    WIND_SPEED = "wind_speed"
    WIND_GUST = "wind_gust"
    WIND_DIRECTION = "wind_direction"
    WIND_GUST_DIRECTION = "wind_gust_direction"
    MAX_DAILY_GUST = "max_daily_gust"
    RAIN = "rain"
    RAIN_RATE = "rain_rate"
    RAIN_EVENT = "rain_event"
    RAIN_HOURLY = "rain_hourly"
    RAIN_DAILY = "rain_daily"
    RAIN_WEEKLY = "rain_weekly"
    RAIN_MONTHLY = "rain_monthly"
    RAIN_YEARLY = "rain_yearly"
    RAIN_TOTAL = "rain_total"
    SOLAR_RADIATION = "solar_radiation"
    UV_INDEX = "uv_index"
    INDOOR_TEMPERATURE = "indoor_temperature"
    INDOOR_HUMIDITY = "indoor_humidity"
    SOIL_TEMPERATURE = "soil_temperature"
    SOIL_MOISTURE = "soil_moisture"
    PM25 = "pm25"
    PM10 = "pm10"
    DEW_POINT = "dew_point"
    HEAT_INDEX = "heat_index"
    WIND_CHILL = "wind_chill"
    FEELS_LIKE = "feels_like"


class AggregationKind(str, Enum):
    """How a metric is folded into a window."""

    SCALAR = "scalar"  # min/max/avg/sum
    VECTOR = "vector"  # circular mean
    CUMULATIVE = "cumulative"  # monotonic counter, rain delta
    DELTA = "delta"  # already a per-report amount, summed


@dataclass(frozen=True)
class MetricSpec:
    name: str
    quantity: Quantity
    kind: AggregationKind = AggregationKind.SCALAR
    min_value: float | None = None
    max_value: float | None = None
    max_exclusive: bool = False

    @property
    def unit(self) -> Unit:
        return canonical_unit(self.quantity)

    def in_range(self, value: float) -> bool:
        if self.min_value is not None and value < self.min_value:
            return False
        if self.max_value is not None:
            if value > self.max_value or (self.max_exclusive and value == self.max_value):
                return False
        return True


def _percent(name: str) -> MetricSpec:
    return MetricSpec(name, Quantity.PERCENT, min_value=0.0, max_value=100.0)


def _direction(name: str, kind: AggregationKind = AggregationKind.VECTOR) -> MetricSpec:
    return MetricSpec(name, Quantity.DIRECTION, kind, min_value=0.0, max_value=360.0, max_exclusive=True)


_F = WeatherField
_K = AggregationKind

METRICS: dict[str, MetricSpec] = {
    spec.name: spec
    for spec in (
        MetricSpec(_F.TEMPERATURE.value, Quantity.TEMPERATURE),
        _percent(_F.HUMIDITY.value),
        MetricSpec(_F.PRESSURE.value, Quantity.PRESSURE),
        MetricSpec(_F.PRESSURE_ABSOLUTE.value, Quantity.PRESSURE),
        MetricSpec(_F.WIND_SPEED.value, Quantity.SPEED),
        MetricSpec(_F.WIND_GUST.value, Quantity.SPEED),
        _direction(_F.WIND_DIRECTION.value),
        _direction(_F.WIND_GUST_DIRECTION.value),
        MetricSpec(_F.MAX_DAILY_GUST.value, Quantity.SPEED),
        MetricSpec(_F.RAIN.value, Quantity.ACCUMULATION, _K.DELTA),
        MetricSpec(_F.RAIN_RATE.value, Quantity.RAIN_RATE),
        MetricSpec(_F.RAIN_EVENT.value, Quantity.ACCUMULATION, _K.CUMULATIVE),
        MetricSpec(_F.RAIN_HOURLY.value, Quantity.ACCUMULATION, _K.CUMULATIVE),
        MetricSpec(_F.RAIN_DAILY.value, Quantity.ACCUMULATION, _K.CUMULATIVE),
        MetricSpec(_F.RAIN_WEEKLY.value, Quantity.ACCUMULATION, _K.CUMULATIVE),
        MetricSpec(_F.RAIN_MONTHLY.value, Quantity.ACCUMULATION, _K.CUMULATIVE),
        MetricSpec(_F.RAIN_YEARLY.value, Quantity.ACCUMULATION, _K.CUMULATIVE),
        MetricSpec(_F.RAIN_TOTAL.value, Quantity.ACCUMULATION, _K.CUMULATIVE),
        MetricSpec(_F.SOLAR_RADIATION.value, Quantity.IRRADIANCE),
        MetricSpec(_F.UV_INDEX.value, Quantity.INDEX),
        MetricSpec(_F.INDOOR_TEMPERATURE.value, Quantity.TEMPERATURE),
        _percent(_F.INDOOR_HUMIDITY.value),
        MetricSpec(_F.SOIL_TEMPERATURE.value, Quantity.TEMPERATURE),
        _percent(_F.SOIL_MOISTURE.value),
        MetricSpec(_F.PM25.value, Quantity.CONCENTRATION),
        MetricSpec(_F.PM10.value, Quantity.CONCENTRATION),
        MetricSpec(_F.DEW_POINT.value, Quantity.TEMPERATURE),
        MetricSpec(_F.HEAT_INDEX.value, Quantity.TEMPERATURE),
        MetricSpec(_F.WIND_CHILL.value, Quantity.TEMPERATURE),
        MetricSpec(_F.FEELS_LIKE.value, Quantity.TEMPERATURE),
    )
}

# Numbered auxiliary channels reuse the base metric's spec.
_CHANNEL_BASES = ("temperature", "humidity", "soil_moisture", "soil_temperature", "leaf_wetness")
_CHANNEL_PATTERN = re.compile(r"^(%s)_(\d{1,2})$" % "|".join(_CHANNEL_BASES))
_CHANNEL_SPECS: dict[str, MetricSpec] = {
    "temperature": MetricSpec("temperature", Quantity.TEMPERATURE),
    "humidity": _percent("humidity"),
    "soil_moisture": _percent("soil_moisture"),
    "soil_temperature": MetricSpec("soil_temperature", Quantity.TEMPERATURE),
    "leaf_wetness": _percent("leaf_wetness"),
}

# Longest horizon first: the engine derives window rain from the first
# counter in this list that a station reports.
RAIN_COUNTER_PRIORITY: tuple[str, ...] = (
    _F.RAIN_TOTAL.value,
    _F.RAIN_YEARLY.value,
    _F.RAIN_MONTHLY.value,
    _F.RAIN_WEEKLY.value,
    _F.RAIN_DAILY.value,
    _F.RAIN_EVENT.value,
    _F.RAIN_HOURLY.value,
)


def channel_name(base: str, channel: int | str) -> str:
    return f"{base}_{int(channel)}"


def get_metric_spec(name: str) -> MetricSpec | None:
    """
    Return the spec for a metric name, or None if the name is unknown.

    Numbered channels (``temperature_2``) resolve to a spec named after the
    channel with the base metric's quantity and range.
    """
    spec = METRICS.get(name)
    if spec is not None:
        return spec
    match = _CHANNEL_PATTERN.match(name)
    if not match:
        return None
    base = _CHANNEL_SPECS[match.group(1)]
    return MetricSpec(
        name,
        base.quantity,
        base.kind,
        min_value=base.min_value,
        max_value=base.max_value,
        max_exclusive=base.max_exclusive,
    )


def is_known_metric(name: str) -> bool:
    return get_metric_spec(name) is not None
