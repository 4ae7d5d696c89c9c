"""
Pub/sub sink publishing each unit as JSON over MQTT.

Topics follow ``<prefix>/<kind>/<station_id>`` where kind is one of
``observation``, ``archive`` or ``daily``. Daily summaries are published
retained so late subscribers see the current day immediately.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

import paho.mqtt.client as mqtt

from app.domain.exceptions import SinkUnavailable
from app.domain.weather.archive import DailySummary
from app.pipeline.interfaces import ISink, OutputUnit, SinkResult, unit_kind
from infrastructure.mqtt.client_factory import connect_mqtt_client

logger = logging.getLogger(__name__)

ClientFactory = Callable[..., Any]


class PubSubSink(ISink):
    """Connects lazily on first write and reconnects after a failed publish."""

    name = "pubsub"

    def __init__(
        self,
        host: str,
        port: int = 1883,
        *,
        topic_prefix: str = "wxhub",
        qos: int = 1,
        username: str | None = None,
        password: str | None = None,
        client_id: str = "wxhub-sink",
        client_factory: ClientFactory = connect_mqtt_client,
    ) -> None:
        self.host = host
        self.port = int(port)
        self.topic_prefix = topic_prefix.strip("/")
        self.qos = qos
        self.username = username
        self.password = password
        self.client_id = client_id
        self._client_factory = client_factory
        self._client: Any | None = None

    def topic_for(self, unit: OutputUnit) -> str:
        return f"{self.topic_prefix}/{unit_kind(unit)}/{unit.station_id}"

    def _ensure_client(self) -> Any:
        if self._client is None:
            self._client = self._client_factory(
                self.host,
                self.port,
                client_id=self.client_id,
                username=self.username,
                password=self.password,
            )
        return self._client

    def _drop_client(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            client.loop_stop()
            client.disconnect()
        except Exception as exc:
            logger.debug("Ignoring MQTT disconnect error: %s", exc)

    def write(self, unit: OutputUnit) -> SinkResult:
        topic = self.topic_for(unit)
        payload = json.dumps(unit.to_dict(), sort_keys=True, separators=(",", ":"))

        try:
            client = self._ensure_client()
        except (OSError, ValueError) as exc:
            logger.warning("MQTT broker %s:%s unreachable: %s", self.host, self.port, exc)
            return SinkResult.failure(SinkUnavailable(f"mqtt connect failed: {exc}"))

        try:
            msg_info = client.publish(topic, payload, qos=self.qos, retain=isinstance(unit, DailySummary))
        except (OSError, ValueError) as exc:
            self._drop_client()
            return SinkResult.failure(SinkUnavailable(f"mqtt publish to {topic} failed: {exc}"))

        if msg_info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error("Failed to publish to %s. MQTT result code: %s", topic, msg_info.rc)
            self._drop_client()
            return SinkResult.failure(SinkUnavailable(f"mqtt publish to {topic} returned rc={msg_info.rc}"))

        logger.debug("Published to %s", topic)
        return SinkResult.success()

    def close(self) -> None:
        self._drop_client()
