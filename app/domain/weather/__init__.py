"""
Weather domain: units, metric registry and the value objects that flow
through the ingest pipeline.
"""

from app.domain.weather.archive import Aggregate, ArchiveRecord, DailySummary
from app.domain.weather.calibration import CalibrationType, MetricCalibration
from app.domain.weather.fields import (
    RAIN_COUNTER_PRIORITY,
    AggregationKind,
    MetricSpec,
    WeatherField,
    get_metric_spec,
)
from app.domain.weather.observation import Observation
from app.domain.weather.units import Measurement, Quantity, Unit, canonical_unit, convert

__all__ = [
    "Aggregate",
    "AggregationKind",
    "ArchiveRecord",
    "CalibrationType",
    "DailySummary",
    "Measurement",
    "MetricCalibration",
    "MetricSpec",
    "Observation",
    "Quantity",
    "RAIN_COUNTER_PRIORITY",
    "Unit",
    "WeatherField",
    "canonical_unit",
    "convert",
    "get_metric_spec",
]
