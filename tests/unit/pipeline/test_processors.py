import pytest

from app.domain.exceptions import ConfigurationError
from app.domain.weather.calibration import CalibrationType, MetricCalibration
from app.pipeline.processors import (
    CalibrationProcessor,
    EnrichmentProcessor,
    IObservationProcessor,
    ProcessorChain,
    ProcessorError,
    SpikeRejectionProcessor,
    ValidationProcessor,
    ValidationRule,
    ValidationType,
)
from app.utils.metrics import PipelineCounters


# ---------------------------------------------------------------------------
# Calibration
# ---------------------------------------------------------------------------


def test_calibration_from_config(make_obs):
    processor = CalibrationProcessor.from_config(
        [{"metric": "temperature", "type": "offset", "offset": -1.5}]
    )
    result = processor.process(make_obs(temperature=20.0, humidity=50.0))
    assert result.value("temperature") == pytest.approx(18.5)
    assert result.value("humidity") == 50.0


def test_station_specific_calibration_wins(make_obs):
    processor = CalibrationProcessor([
        MetricCalibration("temperature", CalibrationType.OFFSET, offset=1.0),
        MetricCalibration("temperature", CalibrationType.OFFSET, station_id="ST2", offset=5.0),
    ])
    assert processor.process(make_obs("ST1", temperature=10.0)).value("temperature") == 11.0
    assert processor.process(make_obs("ST2", temperature=10.0)).value("temperature") == 15.0


def test_broken_calibration_keeps_value(make_obs):
    broken = MetricCalibration("temperature", CalibrationType.CUSTOM, custom_function=lambda value: value / 0)
    processor = CalibrationProcessor([broken])
    obs = make_obs(temperature=10.0)
    assert processor.process(obs) is obs


def test_invalid_calibration_config_fails_at_build():
    with pytest.raises(ConfigurationError):
        CalibrationProcessor.from_config([{"metric": "temperature", "type": "linear", "slope": 2.0}])


def test_no_calibrations_passes_through(make_obs):
    obs = make_obs(temperature=10.0)
    assert CalibrationProcessor().process(obs) is obs


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def test_out_of_range_field_is_dropped(make_obs):
    processor = ValidationProcessor()
    result = processor.process(make_obs(temperature=80.0, humidity=50.0))
    assert not result.has("temperature")
    assert result.value("humidity") == 50.0


def test_channel_pattern_applies(make_obs):
    processor = ValidationProcessor()
    result = processor.process(make_obs(temperature_2=-120.0, humidity=50.0))
    assert not result.has("temperature_2")


def test_configured_limits_override_defaults(make_obs):
    processor = ValidationProcessor({"temperature*": [-10.0, 40.0]})
    result = processor.process(make_obs(temperature=45.0, humidity=50.0))
    assert not result.has("temperature")


def test_calibrated_humidity_above_saturation_is_dropped(make_obs):
    chain = ProcessorChain([
        CalibrationProcessor.from_config([{"metric": "humidity", "type": "offset", "offset": 5.0}]),
        ValidationProcessor(),
    ])
    result = chain.process(make_obs(humidity=98.0, humidity_2=90.0, indoor_humidity=101.0, temperature=20.0))
    assert not result.has("humidity")
    assert not result.has("indoor_humidity")
    assert result.value("humidity_2") == 90.0


def test_wind_direction_is_wrapped(make_obs):
    result = ValidationProcessor().process(make_obs(wind_direction=365.0, wind_gust_direction=-10.0))
    assert result.value("wind_direction") == pytest.approx(5.0)
    assert result.value("wind_gust_direction") == pytest.approx(350.0)

    untouched = make_obs(wind_direction=180.0)
    assert ValidationProcessor().process(untouched) is untouched


def test_all_fields_invalid_drops_observation(make_obs):
    assert ValidationProcessor().process(make_obs(pressure=500.0)) is None


def test_critical_rule_rejects_observation(make_obs):
    processor = ValidationProcessor(use_defaults=False)
    processor.add_required_rule(["temperature"])
    with pytest.raises(ProcessorError):
        processor.process(make_obs(humidity=50.0))


def test_custom_rule(make_obs):
    processor = ValidationProcessor(use_defaults=False)
    processor.add_rule(ValidationRule(
        name="not_test_station",
        validation_type=ValidationType.CUSTOM,
        params={"function": lambda obs: obs.station_id != "TEST"},
        error_message="test station",
        is_critical=True,
    ))
    assert processor.validate(make_obs("ST1", temperature=1.0)).is_valid
    assert not processor.validate(make_obs("TEST", temperature=1.0)).is_valid


# ---------------------------------------------------------------------------
# Spike rejection
# ---------------------------------------------------------------------------


def test_spike_is_removed(make_obs):
    processor = SpikeRejectionProcessor()
    processor.process(make_obs(offset=0, temperature=20.0, humidity=50.0))
    result = processor.process(make_obs(offset=60, temperature=35.0, humidity=52.0))
    assert not result.has("temperature")
    assert result.value("humidity") == 52.0


def test_spike_does_not_update_reference(make_obs):
    processor = SpikeRejectionProcessor({"temperature": 5.0})
    processor.process(make_obs(offset=0, temperature=20.0))
    assert processor.process(make_obs(offset=60, temperature=30.0)) is None
    # Compared to 20, not to the rejected 30
    assert processor.process(make_obs(offset=120, temperature=24.0)).value("temperature") == 24.0


def test_spike_accepted_after_gap(make_obs):
    processor = SpikeRejectionProcessor({"temperature": 5.0}, max_gap_seconds=300)
    processor.process(make_obs(offset=0, temperature=20.0))
    assert processor.process(make_obs(offset=600, temperature=30.0)).value("temperature") == 30.0


def test_spike_state_is_per_station(make_obs):
    processor = SpikeRejectionProcessor({"temperature": 5.0})
    processor.process(make_obs("ST1", offset=0, temperature=20.0))
    assert processor.process(make_obs("ST2", offset=60, temperature=30.0)) is not None


def test_spike_reset(make_obs):
    processor = SpikeRejectionProcessor({"temperature": 5.0})
    processor.process(make_obs(offset=0, temperature=20.0))
    processor.reset("ST1")
    assert processor.process(make_obs(offset=60, temperature=30.0)) is not None


# ---------------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------------


def test_enrichment_adds_derived_metrics(make_obs):
    result = EnrichmentProcessor().process(make_obs(temperature=20.0, humidity=50.0, wind_speed=2.0))
    assert result.value("dew_point") == pytest.approx(9.26, abs=0.1)
    assert result.value("feels_like") == 20.0
    assert result.get("dew_point").unit.value == "degC"


def test_enrichment_keeps_reported_values(make_obs):
    result = EnrichmentProcessor().process(make_obs(temperature=20.0, humidity=50.0, dew_point=8.0))
    assert result.value("dew_point") == 8.0


def test_enrichment_without_temperature(make_obs):
    obs = make_obs(humidity=50.0)
    assert EnrichmentProcessor().process(obs) is obs


# ---------------------------------------------------------------------------
# Chain
# ---------------------------------------------------------------------------


class _Boom(IObservationProcessor):
    name = "boom"

    def process(self, observation):
        raise RuntimeError("kaboom")


class _Filter(IObservationProcessor):
    name = "filter"

    def process(self, observation):
        return None


def test_chain_runs_stages_in_order(make_obs):
    chain = ProcessorChain([
        CalibrationProcessor.from_config([{"metric": "temperature", "type": "offset", "offset": 1.0}]),
        ValidationProcessor(),
        EnrichmentProcessor(),
    ])
    result = chain.process(make_obs(temperature=20.0, humidity=50.0))
    assert result.value("temperature") == 21.0
    assert result.has("dew_point")


def test_chain_counts_filtered_and_errors(make_obs):
    counters = PipelineCounters()
    assert ProcessorChain([_Filter()], counters).process(make_obs(temperature=1.0)) is None
    assert ProcessorChain([_Boom()], counters).process(make_obs(temperature=1.0)) is None

    assert counters.get("processor_dropped", stage="filter", reason="filtered") == 1
    assert counters.get("processor_dropped", stage="boom", reason="error") == 1


def test_chain_append_is_fluent():
    chain = ProcessorChain().append(EnrichmentProcessor())
    assert [p.name for p in chain.processors] == ["enrichment"]
