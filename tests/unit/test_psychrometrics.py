"""
Unit tests for app.utils.psychrometrics module.

Tests the derived metric calculations used by enrichment:
- Dew Point
- Heat Index
- Wind Chill
- Feels Like
"""

import pytest

from app.utils.psychrometrics import (
    calculate_dew_point_c,
    calculate_feels_like_c,
    calculate_heat_index_c,
    calculate_heat_index_f,
    calculate_svp_kpa,
    calculate_wind_chill_c,
    calculate_wind_chill_f,
    compute_derived_metrics,
)


class TestSaturationVaporPressure:
    """Test saturation vapor pressure calculation (Magnus formula)."""

    def test_svp_at_0c(self):
        """SVP at 0°C should be approximately 0.611 kPa."""
        svp = calculate_svp_kpa(0)
        assert 0.60 < svp < 0.62

    def test_svp_at_20c(self):
        """SVP at 20°C should be approximately 2.34 kPa."""
        svp = calculate_svp_kpa(20)
        assert 2.3 < svp < 2.4


class TestDewPoint:
    """Test dew point calculation."""

    def test_dew_point_100_percent_humidity_equals_temp(self):
        assert calculate_dew_point_c(25, 100) == 25

    def test_dew_point_lower_than_temp(self):
        dew_point = calculate_dew_point_c(25, 60)
        assert dew_point < 25

    def test_dew_point_typical_conditions(self):
        """20°C at 50% RH gives a dew point near 9.3°C."""
        assert calculate_dew_point_c(20, 50) == pytest.approx(9.26, abs=0.1)

    def test_dew_point_rounded_to_two_places(self):
        dew_point = calculate_dew_point_c(21.3, 47)
        assert dew_point == round(dew_point, 2)

    def test_dew_point_zero_humidity_is_undefined(self):
        assert calculate_dew_point_c(20, 0) is None

    def test_dew_point_none_inputs(self):
        assert calculate_dew_point_c(None, 50) is None
        assert calculate_dew_point_c(20, None) is None


class TestHeatIndex:
    """Heat index only applies in hot, humid air."""

    def test_below_threshold_returns_temperature(self):
        assert calculate_heat_index_c(20, 80) == 20

    def test_dry_air_returns_temperature(self):
        assert calculate_heat_index_c(32, 30) == 32

    def test_hot_humid_air_feels_hotter(self):
        """32°C (~90°F) at 70% RH reads about 41°C."""
        heat_index = calculate_heat_index_c(32, 70)
        assert heat_index > 32
        assert heat_index == pytest.approx(41, abs=1.5)


class TestWindChill:
    def test_fahrenheit_formula(self):
        """NWS table: 0°F with 15 mph wind reads -19°F."""
        assert calculate_wind_chill_f(0, 15) == pytest.approx(-19, abs=0.5)

    def test_calm_wind_returns_temperature(self):
        assert calculate_wind_chill_c(0, 1.0) == 0

    def test_warm_air_returns_temperature(self):
        assert calculate_wind_chill_c(15, 10.0) == 15

    def test_cold_wind_feels_colder(self):
        assert calculate_wind_chill_c(-5, 8.0) < -5


class TestFeelsLike:
    def test_hot_uses_heat_index(self):
        assert calculate_feels_like_c(32, 70, 1.0) == calculate_heat_index_c(32, 70)

    def test_cold_uses_wind_chill(self):
        assert calculate_feels_like_c(-5, 70, 8.0) == calculate_wind_chill_c(-5, 8.0)

    def test_mild_returns_temperature(self):
        assert calculate_feels_like_c(18, 50, 2.0) == 18


def test_compute_derived_metrics_keys():
    derived = compute_derived_metrics(20, 50, 2.0)
    assert set(derived) == {"dew_point", "heat_index", "wind_chill", "feels_like"}
    assert derived["dew_point"] is not None


def test_compute_derived_metrics_without_humidity():
    derived = compute_derived_metrics(20, None)
    assert derived["dew_point"] is None
    assert derived["heat_index"] is None
    assert derived["wind_chill"] is None
    assert derived["feels_like"] == 20


def _rothfusz(t, h):
    return (
        -42.379
        + 2.04901523 * t
        + 10.14333127 * h
        - 0.22475541 * t * h
        - 0.00683783 * t * t
        - 0.05481717 * h * h
        + 0.00122874 * t * t * h
        + 0.00085282 * t * h * h
        - 0.00000199 * t * t * h * h
    )


def test_heat_index_f_matches_rothfusz_polynomial():
    result = calculate_heat_index_f(95, 70)
    assert result == round(_rothfusz(95.0, 70.0), 2)
    assert result == pytest.approx(122.61, abs=0.005)


def test_heat_index_f_below_threshold_is_temperature():
    assert calculate_heat_index_f(60, 70) == 60.00
    assert calculate_heat_index_f(90, 30) == 90.00
