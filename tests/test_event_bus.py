import unittest

from app.enums.events import SinkEvent
from app.schemas.events import SinkSaturatedPayload
from app.utils.event_bus import EventBus


class TestEventBus(unittest.TestCase):
    """Unit tests for the EventBus module."""

    def setUp(self):
        self.event_bus = EventBus()
        self.event_bus.clear_subscribers()
        self.received = []

    def tearDown(self):
        self.event_bus.drain(timeout=1.0)
        self.event_bus.clear_subscribers()

    def test_singleton(self):
        self.assertIs(EventBus(), self.event_bus)

    def test_subscribe_and_publish(self):
        self.event_bus.subscribe("test_event", self.received.append)
        self.event_bus.publish("test_event", {"key": "value"})

        self.assertTrue(self.event_bus.drain(timeout=1.0))
        self.assertEqual(self.received, [{"key": "value"}])

    def test_multiple_subscribers(self):
        other = []
        self.event_bus.subscribe("multi_event", self.received.append)
        self.event_bus.subscribe("multi_event", other.append)
        self.event_bus.publish("multi_event", {"message": "Hello"})

        self.event_bus.drain(timeout=1.0)
        self.assertEqual(self.received, [{"message": "Hello"}])
        self.assertEqual(other, [{"message": "Hello"}])

    def test_no_subscribers(self):
        self.event_bus.publish("nobody_listens", {"x": 1})
        self.assertTrue(self.event_bus.drain(timeout=1.0))

    def test_unsubscribe(self):
        unsubscribe = self.event_bus.subscribe("test_event", self.received.append)
        unsubscribe()
        unsubscribe()
        self.event_bus.publish("test_event", 1)

        self.event_bus.drain(timeout=1.0)
        self.assertEqual(self.received, [])

    def test_enum_topic_and_model_payload(self):
        self.event_bus.subscribe(SinkEvent.SINK_SATURATED.value, self.received.append)
        payload = SinkSaturatedPayload(
            sink="sqlite", kind="archive", station_id="ST1", queue_size=4, timestamp="2026-03-01T12:00:00+00:00"
        )
        self.event_bus.publish(SinkEvent.SINK_SATURATED, payload)

        self.event_bus.drain(timeout=1.0)
        self.assertEqual(len(self.received), 1)
        self.assertIsInstance(self.received[0], dict)
        self.assertEqual(self.received[0]["sink"], "sqlite")

    def test_failing_subscriber_does_not_block_others(self):
        def broken(_data):
            raise RuntimeError("boom")

        self.event_bus.subscribe("mixed", broken)
        self.event_bus.subscribe("mixed", self.received.append)
        self.event_bus.publish("mixed", "ok")

        self.event_bus.drain(timeout=1.0)
        self.assertEqual(self.received, ["ok"])
        self.assertGreaterEqual(self.event_bus.get_metrics()["subscriber_errors"], 1)

    def test_metrics(self):
        self.event_bus.subscribe("test_event", self.received.append)
        metrics = self.event_bus.get_metrics()
        self.assertEqual(metrics["subscribers"], 1)
        self.assertIn("dropped_events", metrics)


if __name__ == "__main__":
    unittest.main()
