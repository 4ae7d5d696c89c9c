"""
Psychrometric Calculations
==========================

Pure utility functions for derived weather metrics.

Functions:
- calculate_heat_index_f / calculate_heat_index_c: Heat index (Rothfusz)
- calculate_dew_point_c: Dew point temperature (Magnus-Tetens)
- calculate_wind_chill_f / calculate_wind_chill_c: Wind chill (NWS 2001)
- calculate_feels_like_c: Apparent temperature
- calculate_svp_kpa: Saturation vapor pressure (helper)

Each function returns its input temperature unchanged outside the formula's
validity range, so the result is always defined when inputs are present.
"""
from __future__ import annotations

import math
from typing import Dict, Optional

from app.domain.weather.units import (
    celsius_to_fahrenheit,
    fahrenheit_to_celsius,
    mps_to_mph,
)

# Magnus constants
MAGNUS_A = 17.27
MAGNUS_B = 237.3

# Rothfusz regression coefficients
_HI_C1 = -42.379
_HI_C2 = 2.04901523
_HI_C3 = 10.14333127
_HI_C4 = -0.22475541
_HI_C5 = -0.00683783
_HI_C6 = -0.05481717
_HI_C7 = 0.00122874
_HI_C8 = 0.00085282
_HI_C9 = -0.00000199

HEAT_INDEX_MIN_TEMP_F = 80.0
HEAT_INDEX_MIN_HUMIDITY = 40.0
WIND_CHILL_MAX_TEMP_F = 50.0
WIND_CHILL_MIN_SPEED_MPH = 3.0


def calculate_svp_kpa(temperature_c: float) -> float:
    """
    Calculate Saturation Vapor Pressure (SVP) in kPa using Magnus formula.

    SVP = 0.6108 × exp(17.27 × T / (T + 237.3))
    """
    return 0.6108 * math.exp((MAGNUS_A * temperature_c) / (temperature_c + MAGNUS_B))


def calculate_heat_index_f(temperature_f: float, relative_humidity: float) -> float:
    """
    Heat index in Fahrenheit using the Rothfusz regression (NOAA).

    Applies the polynomial only when ``T >= 80°F`` and ``RH >= 40%``; below
    either threshold the input temperature is returned unchanged.

    Args:
        temperature_f: Temperature in Fahrenheit
        relative_humidity: Relative humidity percentage (0-100)

    Returns:
        Heat index in Fahrenheit, rounded to 2 decimals when the formula applies
    """
    t = float(temperature_f)
    h = float(relative_humidity)
    if t < HEAT_INDEX_MIN_TEMP_F or h < HEAT_INDEX_MIN_HUMIDITY:
        return t

    hi = (
        _HI_C1
        + _HI_C2 * t
        + _HI_C3 * h
        + _HI_C4 * t * h
        + _HI_C5 * t ** 2
        + _HI_C6 * h ** 2
        + _HI_C7 * t ** 2 * h
        + _HI_C8 * t * h ** 2
        + _HI_C9 * t ** 2 * h ** 2
    )
    return round(hi, 2)


def calculate_heat_index_c(temperature_c: Optional[float], relative_humidity: Optional[float]) -> Optional[float]:
    """
    Heat index in Celsius. Converts to Fahrenheit, applies the Rothfusz
    regression and converts back.

    Returns:
        Heat index in Celsius, or None if inputs are None
    """
    if temperature_c is None or relative_humidity is None:
        return None

    temp_c = float(temperature_c)
    temp_f = celsius_to_fahrenheit(temp_c)
    if temp_f < HEAT_INDEX_MIN_TEMP_F or float(relative_humidity) < HEAT_INDEX_MIN_HUMIDITY:
        return temp_c
    return round(fahrenheit_to_celsius(calculate_heat_index_f(temp_f, relative_humidity)), 2)


def calculate_dew_point_c(temperature_c: Optional[float], relative_humidity: Optional[float]) -> Optional[float]:
    """
    Calculate dew point temperature in Celsius using Magnus-Tetens approximation.

    Formula:
        gamma = (a * T) / (b + T) + ln(RH/100)
        Td = (b * gamma) / (a - gamma)

    Where a = 17.27, b = 237.3 (Magnus constants)

    Saturated air (RH >= 100) returns the temperature unchanged. Air with no
    moisture (RH <= 0) has no dew point.

    Returns:
        Dew point in Celsius, or None if inputs are None or RH <= 0
    """
    if temperature_c is None or relative_humidity is None:
        return None

    temp_c = float(temperature_c)
    humidity = float(relative_humidity)

    if humidity <= 0:
        return None
    if humidity >= 100.0:
        return temp_c

    gamma = (MAGNUS_A * temp_c) / (MAGNUS_B + temp_c) + math.log(humidity / 100.0)
    dew_point = (MAGNUS_B * gamma) / (MAGNUS_A - gamma)

    return round(dew_point, 2)


def calculate_wind_chill_f(temperature_f: float, wind_speed_mph: float) -> float:
    """
    Wind chill in Fahrenheit (NWS 2001 formula).

        WC = 35.74 + 0.6215 T - 35.75 V^0.16 + 0.4275 T V^0.16

    Valid for ``T <= 50°F`` and ``V > 3 mph``; otherwise the temperature is
    returned unchanged.
    """
    t = float(temperature_f)
    v = float(wind_speed_mph)
    if t > WIND_CHILL_MAX_TEMP_F or v <= WIND_CHILL_MIN_SPEED_MPH:
        return t
    factor = v ** 0.16
    return round(35.74 + 0.6215 * t - 35.75 * factor + 0.4275 * t * factor, 2)


def calculate_wind_chill_c(temperature_c: Optional[float], wind_speed_mps: Optional[float]) -> Optional[float]:
    """Wind chill in Celsius from canonical inputs (°C, m/s)."""
    if temperature_c is None or wind_speed_mps is None:
        return None

    temp_c = float(temperature_c)
    temp_f = celsius_to_fahrenheit(temp_c)
    speed_mph = mps_to_mph(float(wind_speed_mps))
    if temp_f > WIND_CHILL_MAX_TEMP_F or speed_mph <= WIND_CHILL_MIN_SPEED_MPH:
        return temp_c
    return round(fahrenheit_to_celsius(calculate_wind_chill_f(temp_f, speed_mph)), 2)


def calculate_feels_like_c(
    temperature_c: Optional[float],
    relative_humidity: Optional[float] = None,
    wind_speed_mps: Optional[float] = None,
) -> Optional[float]:
    """
    Apparent temperature: heat index in hot humid air, wind chill in cold
    wind, the air temperature otherwise.
    """
    if temperature_c is None:
        return None

    temp_c = float(temperature_c)
    temp_f = celsius_to_fahrenheit(temp_c)
    if relative_humidity is not None and temp_f >= HEAT_INDEX_MIN_TEMP_F:
        return calculate_heat_index_c(temp_c, relative_humidity)
    if wind_speed_mps is not None and temp_f <= WIND_CHILL_MAX_TEMP_F:
        return calculate_wind_chill_c(temp_c, wind_speed_mps)
    return temp_c


def compute_derived_metrics(
    temperature_c: Optional[float],
    relative_humidity: Optional[float],
    wind_speed_mps: Optional[float] = None,
) -> Dict[str, Optional[float]]:
    """
    Compute all derived metrics from canonical temperature, humidity and wind.

    This is the main entry point for enrichment processors.

    Returns:
        Dictionary with keys: dew_point, heat_index, wind_chill, feels_like.
        Values are None if their inputs are missing.
    """
    return {
        "dew_point": calculate_dew_point_c(temperature_c, relative_humidity),
        "heat_index": calculate_heat_index_c(temperature_c, relative_humidity),
        "wind_chill": calculate_wind_chill_c(temperature_c, wind_speed_mps),
        "feels_like": calculate_feels_like_c(temperature_c, relative_humidity, wind_speed_mps),
    }
