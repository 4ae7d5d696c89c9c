import time
from unittest.mock import MagicMock

from app.enums.events import PipelineEvent, RuntimeEvent
from app.services.pipeline.runtime import PipelineRuntime, build_processor_chain
from infrastructure.sinks.memory import MemorySink

REPORT = "PASSKEY=ST9&dateutc=2026-03-01+12:00:00&tempf=68&humidity=50&winddir=90&windspeedmph=10"


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


def test_processor_chain_order(pipeline_config):
    pipeline_config.enable_derived_metrics = True
    chain = build_processor_chain(pipeline_config)
    assert [type(p).__name__ for p in chain.processors] == [
        "CalibrationProcessor",
        "ValidationProcessor",
        "SpikeRejectionProcessor",
        "EnrichmentProcessor",
    ]


def test_http_report_flows_to_sinks_and_archives_on_shutdown(pipeline_config):
    memory = MemorySink()
    bus = MagicMock()
    runtime = PipelineRuntime(pipeline_config, [memory], event_bus=bus).start()
    assert runtime.running

    outcome = runtime.ecowitt.submit(REPORT)
    assert outcome.accepted
    assert _wait_for(lambda: memory.latest("ST9") is not None)
    assert memory.latest("ST9").value("temperature") == 20.0

    assert runtime.shutdown() is True
    assert not runtime.running

    [record] = memory.archives("ST9")
    assert record.observation_count == 1
    [summary] = memory.daily_summaries("ST9")
    assert summary.archive_count == 1

    counters = runtime.counters()
    assert counters["ingested"] == 1
    assert counters["processed"] == 1
    assert counters["archives_emitted"] == 1
    assert counters["sinks"]["memory"]["delivered"] == 3

    published = [call.args[0] for call in bus.publish.call_args_list]
    assert published[0] == RuntimeEvent.STARTED
    assert PipelineEvent.OBSERVATION_PROCESSED in published
    assert PipelineEvent.ARCHIVE_CLOSED in published
    assert published[-1] == RuntimeEvent.STOPPED


def test_rejected_report_is_counted(pipeline_config):
    runtime = PipelineRuntime(pipeline_config, [MemorySink()]).start()
    try:
        runtime.ecowitt.submit("PASSKEY=ST9&tempf=abc")
    finally:
        runtime.shutdown()
    assert runtime.counters()["rejected"] == 1
    assert runtime.counters()["ingested"] == 0
    assert runtime.counters()["field_errors"] == 1


def test_shutdown_is_idempotent_and_stops_intake(pipeline_config, make_obs):
    runtime = PipelineRuntime(pipeline_config, [MemorySink()]).start()
    assert runtime.shutdown() is True
    assert runtime.shutdown() is True
    assert runtime.emit(make_obs(temperature=1.0)) is False


def test_build_uses_configured_sinks(pipeline_config):
    pipeline_config.sinks = ["filesystem"]
    runtime = PipelineRuntime.build(pipeline_config)
    assert runtime.dispatcher.sink_names == ["memory", "filesystem"]
    assert runtime.source("ecowitt") is runtime.ecowitt
    assert runtime.source("wunderground") is runtime.wunderground
    assert runtime.source("udp") is None
