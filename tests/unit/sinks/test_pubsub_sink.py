import json
from unittest.mock import MagicMock

import paho.mqtt.client as mqtt

from app.services.pipeline.aggregation_engine import AggregationEngine
from infrastructure.sinks.pubsub import PubSubSink


class FakeClientFactory:
    """Hands out MagicMock clients and remembers how it was called."""

    def __init__(self, rc=mqtt.MQTT_ERR_SUCCESS, fail_connect=False):
        self.rc = rc
        self.fail_connect = fail_connect
        self.clients = []
        self.calls = []

    def __call__(self, host, port, **kwargs):
        self.calls.append((host, port, kwargs))
        if self.fail_connect:
            raise OSError("connection refused")
        client = MagicMock()
        client.publish.return_value = MagicMock(rc=self.rc)
        self.clients.append(client)
        return client


def test_publishes_observation_json(make_obs):
    factory = FakeClientFactory()
    sink = PubSubSink("broker", 1884, topic_prefix="/wx/", qos=0, client_factory=factory)
    obs = make_obs(temperature=20.0)

    assert sink.write(obs).ok
    assert sink.write(make_obs(offset=60, temperature=21.0)).ok

    assert len(factory.clients) == 1
    assert factory.calls[0][:2] == ("broker", 1884)
    client = factory.clients[0]
    topic, payload = client.publish.call_args_list[0].args
    assert topic == "wx/observation/ST1"
    assert json.loads(payload)["measurements"]["temperature"] == 20.0
    assert client.publish.call_args_list[0].kwargs == {"qos": 0, "retain": False}


def test_daily_summary_is_retained(make_obs):
    engine = AggregationEngine(300)
    engine.add(make_obs(temperature=20.0))
    record, summary = engine.flush_all()
    factory = FakeClientFactory()
    sink = PubSubSink("broker", client_factory=factory)

    sink.write(record)
    sink.write(summary)

    archive_call, daily_call = factory.clients[0].publish.call_args_list
    assert archive_call.args[0] == "wxhub/archive/ST1"
    assert archive_call.kwargs["retain"] is False
    assert daily_call.args[0] == "wxhub/daily/ST1"
    assert daily_call.kwargs["retain"] is True


def test_failed_publish_reconnects_on_next_write(make_obs):
    factory = FakeClientFactory(rc=mqtt.MQTT_ERR_NO_CONN)
    sink = PubSubSink("broker", client_factory=factory)

    result = sink.write(make_obs(temperature=1.0))
    assert not result.ok
    assert result.error_kind == "SinkUnavailable"
    factory.clients[0].disconnect.assert_called_once()

    factory.rc = mqtt.MQTT_ERR_SUCCESS
    assert sink.write(make_obs(temperature=1.0)).ok
    assert len(factory.clients) == 2


def test_unreachable_broker_is_unavailable(make_obs):
    sink = PubSubSink("broker", client_factory=FakeClientFactory(fail_connect=True))
    result = sink.write(make_obs(temperature=1.0))
    assert result.error_kind == "SinkUnavailable"
    assert result.error.retryable


def test_close_disconnects(make_obs):
    factory = FakeClientFactory()
    sink = PubSubSink("broker", client_factory=factory)
    sink.write(make_obs(temperature=1.0))
    sink.close()
    factory.clients[0].loop_stop.assert_called_once()
    factory.clients[0].disconnect.assert_called_once()
