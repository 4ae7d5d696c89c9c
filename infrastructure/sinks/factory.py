"""Builds the configured sink set from ``WXHUB_SINKS``."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from app.domain.exceptions import ConfigurationError
from app.pipeline.interfaces import ISink
from infrastructure.sinks.filesystem import FilesystemSink
from infrastructure.sinks.memory import MemorySink
from infrastructure.sinks.pubsub import PubSubSink
from infrastructure.sinks.sqlite import SqliteSink
from infrastructure.sinks.timeseries import TimeSeriesSink

if TYPE_CHECKING:
    from app.config import AppConfig

logger = logging.getLogger(__name__)


def _memory(config: "AppConfig") -> ISink:
    return MemorySink(config.history_capacity)


def _filesystem(config: "AppConfig") -> ISink:
    return FilesystemSink(config.fs_sink_dir)


def _sqlite(config: "AppConfig") -> ISink:
    return SqliteSink(config.sqlite_path)


def _timeseries(config: "AppConfig") -> ISink:
    return TimeSeriesSink(
        config.influx_url,
        config.influx_org,
        config.influx_bucket,
        config.influx_token,
        measurement=config.influx_measurement,
        timeout=config.sink_timeout_seconds,
    )


def _pubsub(config: "AppConfig") -> ISink:
    return PubSubSink(
        config.mqtt_broker_host,
        config.mqtt_broker_port,
        topic_prefix=config.mqtt_topic_prefix,
        qos=config.mqtt_qos,
        username=config.mqtt_username or None,
        password=config.mqtt_password or None,
    )


SINK_BUILDERS: dict[str, Callable[["AppConfig"], ISink]] = {
    "memory": _memory,
    "filesystem": _filesystem,
    "sqlite": _sqlite,
    "timeseries": _timeseries,
    "influx": _timeseries,
    "pubsub": _pubsub,
    "mqtt": _pubsub,
}


def build_sinks(config: "AppConfig") -> list[ISink]:
    """
    Instantiate every sink named in ``config.sinks``, in order.

    The memory sink is always present because the current/history API reads
    from it.

    Raises:
        ConfigurationError: For an unknown sink name
    """
    sinks: list[ISink] = []
    seen: set[str] = set()
    for name in config.sinks:
        builder = SINK_BUILDERS.get(name)
        if builder is None:
            raise ConfigurationError(f"Unknown sink '{name}'. Expected one of {sorted(SINK_BUILDERS)}")
        sink = builder(config)
        if sink.name in seen:
            continue
        seen.add(sink.name)
        sinks.append(sink)

    if "memory" not in seen:
        sinks.insert(0, MemorySink(config.history_capacity))

    logger.info("Configured sinks: %s", ", ".join(sink.name for sink in sinks))
    return sinks
