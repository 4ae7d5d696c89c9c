from pathlib import Path

import pytest

from app.domain.exceptions import ConfigurationError
from infrastructure.sinks.factory import build_sinks
from infrastructure.sinks.filesystem import FilesystemSink
from infrastructure.sinks.memory import MemorySink
from infrastructure.sinks.pubsub import PubSubSink
from infrastructure.sinks.sqlite import SqliteSink


def test_memory_sink_is_always_first(pipeline_config):
    pipeline_config.sinks = ["filesystem"]
    sinks = build_sinks(pipeline_config)
    assert [type(s) for s in sinks] == [MemorySink, FilesystemSink]
    assert sinks[1].directory == Path(pipeline_config.fs_sink_dir)


def test_aliases_are_deduplicated(pipeline_config):
    pipeline_config.sinks = ["memory", "mqtt", "pubsub", "sqlite"]
    sinks = build_sinks(pipeline_config)
    assert [type(s) for s in sinks] == [MemorySink, PubSubSink, SqliteSink]
    sinks[2].close()


def test_unknown_sink_name(pipeline_config):
    pipeline_config.sinks = ["memory", "carrier-pigeon"]
    with pytest.raises(ConfigurationError):
        build_sinks(pipeline_config)
