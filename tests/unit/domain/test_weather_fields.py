from app.domain.weather.fields import (
    RAIN_COUNTER_PRIORITY,
    AggregationKind,
    WeatherField,
    channel_name,
    get_metric_spec,
    is_known_metric,
)
from app.domain.weather.units import Quantity, Unit


def test_wind_direction_is_vector_with_exclusive_max():
    spec = get_metric_spec(WeatherField.WIND_DIRECTION.value)
    assert spec.kind is AggregationKind.VECTOR
    assert spec.in_range(0.0)
    assert spec.in_range(359.9)
    assert not spec.in_range(360.0)


def test_humidity_range():
    spec = get_metric_spec("humidity")
    assert spec.unit is Unit.PERCENT
    assert spec.in_range(100.0)
    assert not spec.in_range(100.1)
    assert not spec.in_range(-1.0)


def test_rain_counters_are_cumulative():
    for name in RAIN_COUNTER_PRIORITY:
        assert get_metric_spec(name).kind is AggregationKind.CUMULATIVE
    assert RAIN_COUNTER_PRIORITY[0] == "rain_total"
    assert get_metric_spec("rain").kind is AggregationKind.DELTA


def test_numbered_channels_resolve_to_base_spec():
    name = channel_name("temperature", "3")
    assert name == "temperature_3"
    spec = get_metric_spec(name)
    assert spec.name == "temperature_3"
    assert spec.quantity is Quantity.TEMPERATURE

    humidity = get_metric_spec("humidity_2")
    assert humidity.max_value == 100.0


def test_unknown_metric():
    assert get_metric_spec("banana") is None
    assert not is_known_metric("temperature_x")
    assert is_known_metric("pm25")
