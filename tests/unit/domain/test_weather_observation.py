from datetime import datetime, timezone

import pytest

from app.domain.weather.observation import Observation
from app.domain.weather.units import Measurement, Unit


def test_naive_timestamp_is_treated_as_utc():
    obs = Observation("ST1", datetime(2026, 3, 1, 12, 0, 0))
    assert obs.timestamp.tzinfo == timezone.utc
    assert obs.epoch == 1772366400


def test_measurements_are_read_only(make_obs):
    obs = make_obs(temperature=20.0)
    with pytest.raises(TypeError):
        obs.measurements["temperature"] = Measurement(1.0, Unit.CELSIUS)


def test_missing_metric_is_not_zero(make_obs):
    obs = make_obs(temperature=20.0)
    assert not obs.has("humidity")
    assert obs.value("humidity") is None
    assert obs.value("humidity", 0.0) == 0.0


def test_with_measurements_returns_new_instance(make_obs):
    obs = make_obs(temperature=20.0, humidity=50.0)
    updated = obs.with_measurements({"dew_point": Measurement(9.3, Unit.CELSIUS)}, drop=["humidity"])

    assert updated is not obs
    assert obs.has("humidity")
    assert not updated.has("humidity")
    assert updated.value("dew_point") == 9.3
    assert updated.timestamp == obs.timestamp


def test_to_dict(make_obs):
    data = make_obs(temperature=20.0, pressure=1013.2, meta={"interval": 60}).to_dict()
    assert data["station_id"] == "ST1"
    assert data["timestamp"] == "2026-03-01T12:00:00+00:00"
    assert data["measurements"] == {"pressure": 1013.2, "temperature": 20.0}
    assert data["units"] == {"pressure": "hPa", "temperature": "degC"}
    assert data["meta"] == {"interval": 60}
