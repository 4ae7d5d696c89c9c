"""
Units & Measurements
====================
Typed measurement values with an explicit unit tag, plus exact conversions
between the units of one physical quantity.

Every quantity has one canonical unit. Adapters convert to canonical units
immediately, so nothing downstream of an adapter ever sees Fahrenheit or
inches of mercury.

Conversions are total: a result below the physical floor of its quantity
(absolute zero, negative speed/pressure/accumulation) is clamped to the floor.
A non-finite result raises ``ConversionOverflow`` so the caller can drop the
field. Asking for a unit of another quantity raises ``UnitMismatchError``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from app.domain.exceptions import ConversionOverflow, UnitMismatchError

# Exact conversion constants
INHG_TO_HPA = 33.8638866667
MMHG_TO_HPA = 1.33322387415
MPH_TO_MPS = 0.44704
KMH_TO_MPS = 1 / 3.6
KNOT_TO_MPS = 0.514444
INCH_TO_MM = 25.4
CM_TO_MM = 10.0
ABSOLUTE_ZERO_C = -273.15


class Quantity(str, Enum):
    """Physical quantities a measurement may carry."""

    TEMPERATURE = "temperature"
    PRESSURE = "pressure"
    SPEED = "speed"
    DIRECTION = "direction"
    ACCUMULATION = "accumulation"
    RAIN_RATE = "rain_rate"
    PERCENT = "percent"
    IRRADIANCE = "irradiance"
    INDEX = "index"
    CONCENTRATION = "concentration"


class Unit(str, Enum):
    """Closed set of unit tags. The value is the wire/display symbol."""

    CELSIUS = "degC"
    FAHRENHEIT = "degF"
    HECTOPASCAL = "hPa"
    INCH_HG = "inHg"
    MILLIMETER_HG = "mmHg"
    METERS_PER_SECOND = "m/s"
    MILES_PER_HOUR = "mph"
    KILOMETERS_PER_HOUR = "km/h"
    KNOTS = "knot"
    DEGREES = "deg"
    MILLIMETER = "mm"
    INCH = "in"
    CENTIMETER = "cm"
    MILLIMETER_PER_HOUR = "mm/h"
    INCH_PER_HOUR = "in/h"
    CENTIMETER_PER_HOUR = "cm/h"
    PERCENT = "%"
    WATTS_PER_SQUARE_METER = "W/m2"
    UV_INDEX = "uvi"
    MICROGRAMS_PER_CUBIC_METER = "ug/m3"

    @property
    def quantity(self) -> Quantity:
        return _UNIT_QUANTITY[self]


_UNIT_QUANTITY: dict[Unit, Quantity] = {
    Unit.CELSIUS: Quantity.TEMPERATURE,
    Unit.FAHRENHEIT: Quantity.TEMPERATURE,
    Unit.HECTOPASCAL: Quantity.PRESSURE,
    Unit.INCH_HG: Quantity.PRESSURE,
    Unit.MILLIMETER_HG: Quantity.PRESSURE,
    Unit.METERS_PER_SECOND: Quantity.SPEED,
    Unit.MILES_PER_HOUR: Quantity.SPEED,
    Unit.KILOMETERS_PER_HOUR: Quantity.SPEED,
    Unit.KNOTS: Quantity.SPEED,
    Unit.DEGREES: Quantity.DIRECTION,
    Unit.MILLIMETER: Quantity.ACCUMULATION,
    Unit.INCH: Quantity.ACCUMULATION,
    Unit.CENTIMETER: Quantity.ACCUMULATION,
    Unit.MILLIMETER_PER_HOUR: Quantity.RAIN_RATE,
    Unit.INCH_PER_HOUR: Quantity.RAIN_RATE,
    Unit.CENTIMETER_PER_HOUR: Quantity.RAIN_RATE,
    Unit.PERCENT: Quantity.PERCENT,
    Unit.WATTS_PER_SQUARE_METER: Quantity.IRRADIANCE,
    Unit.UV_INDEX: Quantity.INDEX,
    Unit.MICROGRAMS_PER_CUBIC_METER: Quantity.CONCENTRATION,
}

CANONICAL_UNITS: dict[Quantity, Unit] = {
    Quantity.TEMPERATURE: Unit.CELSIUS,
    Quantity.PRESSURE: Unit.HECTOPASCAL,
    Quantity.SPEED: Unit.METERS_PER_SECOND,
    Quantity.DIRECTION: Unit.DEGREES,
    Quantity.ACCUMULATION: Unit.MILLIMETER,
    Quantity.RAIN_RATE: Unit.MILLIMETER_PER_HOUR,
    Quantity.PERCENT: Unit.PERCENT,
    Quantity.IRRADIANCE: Unit.WATTS_PER_SQUARE_METER,
    Quantity.INDEX: Unit.UV_INDEX,
    Quantity.CONCENTRATION: Unit.MICROGRAMS_PER_CUBIC_METER,
}

# Lowest physically meaningful canonical value per quantity.
_CANONICAL_FLOOR: dict[Quantity, float] = {
    Quantity.TEMPERATURE: ABSOLUTE_ZERO_C,
    Quantity.PRESSURE: 0.0,
    Quantity.SPEED: 0.0,
    Quantity.ACCUMULATION: 0.0,
    Quantity.RAIN_RATE: 0.0,
    Quantity.IRRADIANCE: 0.0,
    Quantity.INDEX: 0.0,
    Quantity.CONCENTRATION: 0.0,
}


# =============================================================================
# Scalar conversion helpers
# =============================================================================


def fahrenheit_to_celsius(value: float) -> float:
    return (value - 32.0) * 5.0 / 9.0


def celsius_to_fahrenheit(value: float) -> float:
    return value * 9.0 / 5.0 + 32.0


def inhg_to_hpa(value: float) -> float:
    return value * INHG_TO_HPA


def hpa_to_inhg(value: float) -> float:
    return value / INHG_TO_HPA


def mph_to_mps(value: float) -> float:
    return value * MPH_TO_MPS


def mps_to_mph(value: float) -> float:
    return value / MPH_TO_MPS


def inch_to_mm(value: float) -> float:
    return value * INCH_TO_MM


def mm_to_inch(value: float) -> float:
    return value / INCH_TO_MM


def _identity(value: float) -> float:
    return value


def _scale(factor: float) -> tuple[Callable[[float], float], Callable[[float], float]]:
    return (lambda v: v * factor), (lambda v: v / factor)


# unit -> (to_canonical, from_canonical)
_CONVERTERS: dict[Unit, tuple[Callable[[float], float], Callable[[float], float]]] = {
    Unit.CELSIUS: (_identity, _identity),
    Unit.FAHRENHEIT: (fahrenheit_to_celsius, celsius_to_fahrenheit),
    Unit.HECTOPASCAL: (_identity, _identity),
    Unit.INCH_HG: (inhg_to_hpa, hpa_to_inhg),
    Unit.MILLIMETER_HG: _scale(MMHG_TO_HPA),
    Unit.METERS_PER_SECOND: (_identity, _identity),
    Unit.MILES_PER_HOUR: (mph_to_mps, mps_to_mph),
    Unit.KILOMETERS_PER_HOUR: _scale(KMH_TO_MPS),
    Unit.KNOTS: _scale(KNOT_TO_MPS),
    Unit.DEGREES: (_identity, _identity),
    Unit.MILLIMETER: (_identity, _identity),
    Unit.INCH: (inch_to_mm, mm_to_inch),
    Unit.CENTIMETER: _scale(CM_TO_MM),
    Unit.MILLIMETER_PER_HOUR: (_identity, _identity),
    Unit.INCH_PER_HOUR: (inch_to_mm, mm_to_inch),
    Unit.CENTIMETER_PER_HOUR: _scale(CM_TO_MM),
    Unit.PERCENT: (_identity, _identity),
    Unit.WATTS_PER_SQUARE_METER: (_identity, _identity),
    Unit.UV_INDEX: (_identity, _identity),
    Unit.MICROGRAMS_PER_CUBIC_METER: (_identity, _identity),
}


def canonical_unit(quantity: Quantity) -> Unit:
    return CANONICAL_UNITS[quantity]


def convert(value: float, from_unit: Unit, to_unit: Unit, *, field: str = "") -> float:
    """
    Convert ``value`` between two units of the same quantity.

    Args:
        value: Numeric value expressed in ``from_unit``
        from_unit: Source unit
        to_unit: Target unit
        field: Optional field name, attached to raised errors

    Returns:
        Converted value, clamped at the quantity's physical floor

    Raises:
        UnitMismatchError: Units belong to different quantities
        ConversionOverflow: Input or result is not finite
    """
    quantity = from_unit.quantity
    if to_unit.quantity is not quantity:
        raise UnitMismatchError(f"Cannot convert {from_unit.value} to {to_unit.value}")

    if not math.isfinite(value):
        raise ConversionOverflow(field or quantity.value, "non-finite input", raw=value)

    try:
        canonical = _CONVERTERS[from_unit][0](float(value))
    except OverflowError as exc:
        raise ConversionOverflow(field or quantity.value, str(exc), raw=value) from None

    floor = _CANONICAL_FLOOR.get(quantity)
    if floor is not None and canonical < floor:
        canonical = floor

    result = canonical if to_unit is canonical_unit(quantity) else _CONVERTERS[to_unit][1](canonical)
    if not math.isfinite(result):
        raise ConversionOverflow(field or quantity.value, "non-finite result", raw=value)
    return result


@dataclass(frozen=True)
class Measurement:
    """Immutable value with its unit tag."""

    value: float
    unit: Unit

    @property
    def quantity(self) -> Quantity:
        return self.unit.quantity

    @property
    def is_canonical(self) -> bool:
        return self.unit is canonical_unit(self.quantity)

    def to(self, unit: Unit) -> "Measurement":
        """Return this measurement expressed in ``unit``."""
        if unit is self.unit:
            return self
        return Measurement(convert(self.value, self.unit, unit), unit)

    def canonical(self) -> "Measurement":
        return self.to(canonical_unit(self.quantity))

    def __str__(self) -> str:
        return f"{self.value:g} {self.unit.value}"
