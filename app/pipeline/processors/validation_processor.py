"""
Validation Processor
====================
Validates observations using configurable rules.

Range failures are field-scoped: the offending measurement is removed and the
rest of the observation continues. Only rules marked critical reject the whole
observation.
"""
import fnmatch
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

from app.domain.weather.observation import Observation
from app.domain.weather.units import Measurement

from .base_processor import IObservationProcessor, ProcessorError

logger = logging.getLogger(__name__)


class ValidationType(str, Enum):
    """Types of validation rules"""
    REQUIRED_FIELDS = "required_fields"
    RANGE_CHECK = "range_check"
    CUSTOM = "custom"


@dataclass
class ValidationRule:
    """
    A single validation rule.

    ``field`` is a glob pattern (``temperature*`` matches ``temperature`` and
    ``temperature_2``) for range checks.
    """
    name: str
    validation_type: ValidationType
    params: Dict[str, Any]
    error_message: str
    is_critical: bool = False  # If False, drop the field instead of the observation

    def matches(self, metric: str) -> bool:
        pattern = self.params.get("field")
        return bool(pattern) and fnmatch.fnmatchcase(metric, pattern)


@dataclass
class ValidationResult:
    """Result of validation"""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    dropped_fields: List[str] = field(default_factory=list)


# Plausible surface-weather limits in canonical units. Tighter than the
# registry's physical ranges, which only reject impossible values.
DEFAULT_LIMITS: Dict[str, tuple] = {
    "temperature*": (-90.0, 65.0),
    "humidity*": (0.0, 100.0),
    "indoor_humidity": (0.0, 100.0),
    "soil_moisture*": (0.0, 100.0),
    "leaf_wetness*": (0.0, 100.0),
    "indoor_temperature": (-40.0, 70.0),
    "soil_temperature*": (-50.0, 70.0),
    "dew_point": (-100.0, 50.0),
    "pressure": (850.0, 1090.0),
    "pressure_absolute": (500.0, 1090.0),
    "wind_speed": (0.0, 115.0),
    "wind_gust": (0.0, 115.0),
    "max_daily_gust": (0.0, 115.0),
    "rain_rate": (0.0, 2000.0),
    "rain": (0.0, 500.0),
    "solar_radiation": (0.0, 1800.0),
    "uv_index": (0.0, 25.0),
    "pm25": (0.0, 1000.0),
    "pm10": (0.0, 2000.0),
}

# Compass fields are wrapped into [0, 360) instead of range-checked
WRAPPED_FIELDS = ("wind_direction", "wind_gust_direction")


class ValidationProcessor(IObservationProcessor):
    """
    Validates observations using a chain of validation rules.

    Supports:
    - Required field validation
    - Range validation (min/max)
    - Custom validation functions
    """

    name = "validation"

    def __init__(self, limits: Dict[str, Any] | None = None, *, use_defaults: bool = True):
        """
        Initialize validation processor.

        Args:
            limits: Extra ``{pattern: [min, max]}`` range rules; override defaults
            use_defaults: Install DEFAULT_LIMITS first
        """
        self.rules: List[ValidationRule] = []
        merged: Dict[str, Any] = dict(DEFAULT_LIMITS) if use_defaults else {}
        merged.update(limits or {})
        for pattern, bounds in merged.items():
            low, high = bounds
            self.add_range_rule(pattern, low, high)

    def add_range_rule(self, pattern: str, min_value: float | None, max_value: float | None,
                       critical: bool = False) -> None:
        """Add (or replace) a range rule for a field pattern"""
        self.rules = [r for r in self.rules
                      if not (r.validation_type == ValidationType.RANGE_CHECK and r.params.get("field") == pattern)]
        self.add_rule(ValidationRule(
            name=f"{pattern}_range",
            validation_type=ValidationType.RANGE_CHECK,
            params={"field": pattern, "min": min_value, "max": max_value},
            error_message=f"{pattern} out of range ({min_value} to {max_value})",
            is_critical=critical,
        ))

    def add_required_rule(self, fields: List[str]) -> None:
        self.add_rule(ValidationRule(
            name="required_" + "_".join(fields),
            validation_type=ValidationType.REQUIRED_FIELDS,
            params={"fields": list(fields)},
            error_message=f"Missing required fields: {', '.join(fields)}",
            is_critical=True,
        ))

    def add_rule(self, rule: ValidationRule):
        """Add a validation rule to the chain"""
        self.rules.append(rule)

    def validate(self, observation: Observation) -> ValidationResult:
        """
        Evaluate every rule against an observation.

        Raises:
            ProcessorError: If a misconfigured custom rule cannot be evaluated
        """
        result = ValidationResult(is_valid=True)

        for rule in self.rules:
            if rule.validation_type == ValidationType.RANGE_CHECK:
                for metric, measurement in observation.measurements.items():
                    if not rule.matches(metric) or metric in result.dropped_fields:
                        continue
                    if self._in_range(measurement.value, rule.params):
                        continue
                    message = f"{rule.error_message}: {metric}={measurement.value}"
                    if rule.is_critical:
                        result.errors.append(message)
                    else:
                        result.warnings.append(message)
                        result.dropped_fields.append(metric)
                continue

            if not self._apply_rule(rule, observation):
                if rule.is_critical:
                    result.errors.append(rule.error_message)
                else:
                    result.warnings.append(rule.error_message)

        result.is_valid = not result.errors
        return result

    def process(self, observation: Observation) -> Observation | None:
        """
        Validate and strip out-of-range fields.

        Raises:
            ProcessorError: If critical validation fails
        """
        observation = self._wrap_directions(observation)
        result = self.validate(observation)

        for warning in result.warnings:
            logger.debug("Validation warning for %s: %s", observation.station_id, warning)

        if result.errors:
            error_msg = f"Validation failed: {'; '.join(result.errors)}"
            logger.warning("%s (station=%s)", error_msg, observation.station_id)
            raise ProcessorError(error_msg, detail={"station_id": observation.station_id})

        if not result.dropped_fields:
            return observation

        cleaned = observation.with_measurements(drop=result.dropped_fields)
        if not cleaned.measurements:
            return None
        return cleaned

    @staticmethod
    def _wrap_directions(observation: Observation) -> Observation:
        updates = {}
        for name in WRAPPED_FIELDS:
            measurement = observation.measurements.get(name)
            if measurement is None or not math.isfinite(measurement.value):
                continue
            wrapped = measurement.value % 360.0
            if wrapped != measurement.value:
                updates[name] = Measurement(wrapped, measurement.unit)
        return observation.with_measurements(updates) if updates else observation

    @staticmethod
    def _in_range(value: float, params: Dict[str, Any]) -> bool:
        if not isinstance(value, (int, float)) or not math.isfinite(value):
            return False
        min_val = params.get("min")
        max_val = params.get("max")
        if min_val is not None and value < min_val:
            return False
        if max_val is not None and value > max_val:
            return False
        return True

    def _apply_rule(self, rule: ValidationRule, observation: Observation) -> bool:
        if rule.validation_type == ValidationType.REQUIRED_FIELDS:
            required = rule.params.get("fields", [])
            return all(observation.has(name) for name in required)

        elif rule.validation_type == ValidationType.CUSTOM:
            func = rule.params.get("function")
            if not callable(func):
                raise ProcessorError(f"Custom validation '{rule.name}' requires callable function")
            return bool(func(observation))

        else:
            logger.warning("Unknown validation type: %s", rule.validation_type)
            return True
