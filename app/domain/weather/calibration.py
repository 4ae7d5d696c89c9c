"""
Calibration Data
================
Per-station, per-metric corrections applied to canonical values.

Entries come from ``WXHUB_CALIBRATIONS``, for example::

    [{"metric": "temperature", "type": "offset", "offset": -0.4, "station_id": "GW2000A"},
     {"metric": "humidity", "type": "lookup_table", "lookup_table": {"0": 0, "90": 95, "100": 100}}]

Parameters are checked when the calibration is built so a bad entry fails at
startup instead of on the first observation.
"""
from bisect import bisect_right
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple


class CalibrationType(str, Enum):
    OFFSET = "offset"  # y = x + b
    LINEAR = "linear"  # y = mx + b
    POLYNOMIAL = "polynomial"  # y = a0 + a1*x + a2*x^2 + ...
    LOOKUP_TABLE = "lookup_table"  # piecewise-linear, clamped
    CUSTOM = "custom"  # callable, code-only


@dataclass(frozen=True)
class MetricCalibration:
    """
    Calibration for one metric. ``station_id=None`` applies to every station.

    Raises:
        ValueError: If the parameters required by ``calibration_type`` are missing
    """

    metric: str
    calibration_type: CalibrationType
    station_id: Optional[str] = None
    slope: Optional[float] = None
    offset: Optional[float] = None
    coefficients: Optional[List[float]] = None
    lookup_table: Optional[Dict[float, float]] = None
    custom_function: Optional[Callable[[float], float]] = field(default=None, repr=False, compare=False)
    notes: Optional[str] = None
    _points: Tuple[Tuple[float, float], ...] = field(default=(), init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        kind = CalibrationType(self.calibration_type)
        object.__setattr__(self, "calibration_type", kind)
        missing = {
            CalibrationType.OFFSET: self.offset is None,
            CalibrationType.LINEAR: self.slope is None or self.offset is None,
            CalibrationType.POLYNOMIAL: not self.coefficients,
            CalibrationType.LOOKUP_TABLE: not self.lookup_table,
            CalibrationType.CUSTOM: self.custom_function is None,
        }[kind]
        if missing:
            raise ValueError(f"{kind.value} calibration for {self.metric} is missing its parameters")
        if self.lookup_table:
            object.__setattr__(self, "_points", tuple(sorted(self.lookup_table.items())))

    def applies_to(self, station_id: str) -> bool:
        return self.station_id is None or self.station_id == station_id

    def apply(self, raw_value: float) -> float:
        kind = self.calibration_type
        if kind is CalibrationType.OFFSET:
            return raw_value + self.offset
        if kind is CalibrationType.LINEAR:
            return raw_value * self.slope + self.offset
        if kind is CalibrationType.POLYNOMIAL:
            # Horner's rule, highest power first
            result = 0.0
            for coef in reversed(self.coefficients):
                result = result * raw_value + coef
            return result
        if kind is CalibrationType.LOOKUP_TABLE:
            return self._interpolate(raw_value)
        return self.custom_function(raw_value)

    def _interpolate(self, value: float) -> float:
        points = self._points
        if value <= points[0][0]:
            return points[0][1]
        if value >= points[-1][0]:
            return points[-1][1]
        index = bisect_right([x for x, _ in points], value)
        (x1, y1), (x2, y2) = points[index - 1], points[index]
        return y1 + (y2 - y1) * (value - x1) / (x2 - x1)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetricCalibration":
        table = data.get("lookup_table")
        coefficients = data.get("coefficients")
        return cls(
            metric=str(data["metric"]),
            calibration_type=CalibrationType(data.get("type", CalibrationType.OFFSET.value)),
            station_id=data.get("station_id"),
            slope=None if data.get("slope") is None else float(data["slope"]),
            offset=None if data.get("offset") is None else float(data["offset"]),
            coefficients=[float(c) for c in coefficients] if coefficients else None,
            lookup_table={float(k): float(v) for k, v in table.items()} if table else None,
            notes=data.get("notes"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Config-shaped mapping (a custom function is not serializable)."""
        return {
            "metric": self.metric,
            "type": self.calibration_type.value,
            "station_id": self.station_id,
            "slope": self.slope,
            "offset": self.offset,
            "coefficients": self.coefficients,
            "lookup_table": self.lookup_table,
            "notes": self.notes,
        }
