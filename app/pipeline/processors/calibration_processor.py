"""
Calibration Processor
=====================
Applies per-station, per-metric calibration to canonical values.
"""

import logging
from typing import Any, Iterable

from app.domain.exceptions import ConfigurationError
from app.domain.weather.calibration import MetricCalibration
from app.domain.weather.observation import Observation
from app.domain.weather.units import Measurement

from .base_processor import IObservationProcessor

logger = logging.getLogger(__name__)


class CalibrationProcessor(IObservationProcessor):
    """
    Applies calibration to numeric measurements.

    Supports multiple calibration methods:
    - Offset (y = x + b)
    - Linear (y = mx + b)
    - Polynomial
    - Lookup table
    - Custom functions

    A station-specific calibration wins over a global one for the same metric.
    """

    name = "calibration"

    def __init__(self, calibrations: Iterable[MetricCalibration] = ()):
        self.calibrations: list[MetricCalibration] = list(calibrations)

    @classmethod
    def from_config(cls, entries: Iterable[dict[str, Any]]) -> "CalibrationProcessor":
        """Build from the WXHUB_CALIBRATIONS list."""
        try:
            return cls([MetricCalibration.from_dict(entry) for entry in entries])
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid WXHUB_CALIBRATIONS entry: {exc}") from exc

    def add(self, calibration: MetricCalibration) -> None:
        self.calibrations.append(calibration)

    def _calibration_for(self, station_id: str, metric: str) -> MetricCalibration | None:
        fallback = None
        for calibration in self.calibrations:
            if calibration.metric != metric or not calibration.applies_to(station_id):
                continue
            if calibration.station_id is not None:
                return calibration
            fallback = fallback or calibration
        return fallback

    def process(self, observation: Observation) -> Observation | None:
        if not self.calibrations:
            return observation

        updates: dict[str, Measurement] = {}
        for metric, measurement in observation.measurements.items():
            calibration = self._calibration_for(observation.station_id, metric)
            if calibration is None:
                continue
            try:
                calibrated_value = float(calibration.apply(measurement.value))
            except (ValueError, TypeError, ArithmeticError) as e:
                # Keep original value on error
                logger.error("Failed to calibrate %s for %s: %s", metric, observation.station_id, e)
                continue
            updates[metric] = Measurement(calibrated_value, measurement.unit)
            logger.debug("Calibrated %s: %s -> %s", metric, measurement.value, calibrated_value)

        if not updates:
            return observation
        return observation.with_measurements(updates)
