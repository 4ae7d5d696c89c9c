import pytest

from app.services.pipeline.accumulators import (
    RainAccumulatorState,
    ScalarAccumulator,
    VectorAccumulator,
    WindowAccumulator,
    circular_mean,
    rain_delta,
    window_start,
)


def test_rain_delta_monotonic():
    assert rain_delta(1.0, 1.5) == pytest.approx(0.5)
    assert rain_delta(1.0, 1.0) == 0.0


def test_rain_delta_after_counter_reset():
    # Counter dropped from 12.0 to 0.4: 0.4 fell since the reset
    assert rain_delta(12.0, 0.4) == 0.4


@pytest.mark.parametrize(
    "previous, current, expected",
    [(4.50, 4.75, 0.25), (4.50, 0.10, 0.10)],
)
def test_rain_delta_examples(previous, current, expected):
    assert rain_delta(previous, current) == pytest.approx(expected)


def test_circular_mean_wraps_north():
    mean = circular_mean([350.0, 10.0])
    assert min(mean, 360.0 - mean) < 1e-6


def test_circular_mean_is_undefined_for_opposites():
    assert circular_mean([0.0, 180.0]) is None


def test_circular_mean_weighted():
    assert circular_mean([90.0, 180.0], [3.0, 1.0]) == pytest.approx(108.435, abs=0.01)
    assert circular_mean([90.0, 180.0], [1.0, 0.0]) == pytest.approx(90.0)


def test_scalar_accumulator():
    acc = ScalarAccumulator()
    assert acc.to_aggregate() is None
    for value in (3.0, 1.0, 2.0):
        acc.add(value)
    aggregate = acc.to_aggregate()
    assert (aggregate.count, aggregate.min, aggregate.max, aggregate.avg, aggregate.sum) == (3, 1.0, 3.0, 2.0, 6.0)


def test_vector_accumulator_prefers_speed_weighting():
    acc = VectorAccumulator()
    acc.add(90.0, weight=10.0)
    acc.add(180.0, weight=0.0)
    assert acc.to_aggregate().avg == pytest.approx(90.0)


def test_vector_accumulator_falls_back_when_calm():
    acc = VectorAccumulator()
    acc.add(90.0, weight=0.0)
    acc.add(180.0, weight=0.0)
    aggregate = acc.to_aggregate()
    assert aggregate.avg == pytest.approx(135.0)
    assert aggregate.is_vector


def test_vector_accumulator_unweighted_mode():
    acc = VectorAccumulator(weighted=False)
    acc.add(90.0, weight=10.0)
    acc.add(180.0, weight=0.0)
    assert acc.to_aggregate().avg == pytest.approx(135.0)


def test_rain_state_first_reading_is_baseline(make_obs):
    state = RainAccumulatorState()
    assert state.update(make_obs(rain_daily=5.0)) is None
    assert state.update(make_obs(offset=60, rain_daily=5.5)) == pytest.approx(0.5)


def test_rain_state_uses_longest_counter(make_obs):
    state = RainAccumulatorState()
    state.update(make_obs(rain_total=100.0, rain_daily=2.0))
    # Daily counter rolled over at midnight, the total kept counting
    delta = state.update(make_obs(offset=60, rain_total=100.4, rain_daily=0.0))
    assert delta == pytest.approx(0.4)


def test_window_accumulator_record(make_obs):
    start = window_start(make_obs().epoch, 300)
    window = WindowAccumulator("ST1", start, 300)
    window.add(make_obs(offset=0, temperature=10.0, wind_speed=2.0, wind_direction=350.0))
    window.add(make_obs(offset=60, temperature=20.0, wind_speed=2.0, wind_direction=10.0), rain_amount=0.2)

    record = window.to_record()
    assert record.observation_count == 2
    assert record.interval_seconds == 300
    assert record.get("temperature").avg == 15.0
    direction = record.get("wind_direction").avg
    assert min(direction, 360.0 - direction) < 1e-6
    assert record.get("rain").sum == pytest.approx(0.2)
    assert (record.window_end - record.window_start).total_seconds() == 300


def test_explicit_rain_only_without_counters(make_obs):
    window = WindowAccumulator("ST1", 0, 300)
    window.add(make_obs(rain=0.2))
    window.add(make_obs(rain=0.3))
    assert window.to_record().get("rain").sum == pytest.approx(0.5)

    counted = WindowAccumulator("ST1", 0, 300)
    counted.add(make_obs(rain=0.2, rain_daily=1.0), rain_amount=None)
    assert counted.to_record().get("rain") is None


def test_window_start_alignment():
    assert window_start(1772366599, 300) == 1772366400
    assert window_start(1772366700, 300) == 1772366700


def test_counter_readings_carry_no_sum(make_obs):
    window = WindowAccumulator("ST1", 0, 300)
    window.add(make_obs(rain_daily=1.0, rain_total=40.0, temperature=10.0))
    window.add(make_obs(offset=60, rain_daily=1.5, rain_total=40.5, temperature=12.0))

    record = window.to_record()

    for name in ("rain_daily", "rain_total"):
        aggregate = record.get(name)
        assert aggregate.sum is None
        assert aggregate.avg is None
    assert (record.get("rain_daily").min, record.get("rain_daily").max) == (1.0, 1.5)
    assert record.get("temperature").sum == pytest.approx(22.0)
