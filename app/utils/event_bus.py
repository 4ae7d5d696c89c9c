"""
EventBus singleton carrying pipeline, sink and lifecycle events.

Key invariants (enforced by call sites + tests):
  - Topics come from the enums in app.enums.events; raw strings are accepted
    for ad-hoc listeners.
  - Payloads published as Pydantic models reach subscribers as JSON-safe
    dicts, so a subscriber can forward them to MQTT or a log unchanged.
  - Publishing never blocks the data path: a full queue drops the event and
    counts it per topic.
  - A failing subscriber is logged and counted; it never stops delivery to
    the others.
"""
import logging
import threading
import time
from collections import defaultdict
from dataclasses import asdict, is_dataclass
from enum import Enum
from queue import Full, Queue
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel

from app.config import load_config
from app.enums.events import EventType

logger = logging.getLogger(__name__)

Subscriber = Callable[[Any], None]

# A drop summary is logged after this many drops, at most once per interval
_DROP_WARNING_THRESHOLD = 10
_DROP_WARNING_INTERVAL_SECONDS = 60


def topic_name(topic: EventType | str) -> str:
    return topic.value if isinstance(topic, Enum) else str(topic)


def to_payload(data: Any) -> Any:
    """Normalize a published object into what subscribers receive."""
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if is_dataclass(data) and not isinstance(data, type):
        return asdict(data)
    return data


class _DropTracker:
    """Counts dropped events and rate-limits the warning about them."""

    def __init__(self, queue_size: int) -> None:
        self.queue_size = queue_size
        self.total = 0
        self.by_topic: Dict[str, int] = defaultdict(int)
        self._since_warning = 0
        self._last_warning = 0.0
        self._lock = threading.Lock()

    def record(self, topic: str) -> None:
        with self._lock:
            self.total += 1
            self.by_topic[topic] += 1
            self._since_warning += 1
            now = time.monotonic()
            if self._since_warning < _DROP_WARNING_THRESHOLD:
                return
            if self._last_warning and now - self._last_warning < _DROP_WARNING_INTERVAL_SECONDS:
                return
            recent, self._since_warning, self._last_warning = self._since_warning, 0, now
            top = ", ".join(f"{k}:{v}" for k, v in self.top(5).items())

        logger.warning(
            "EventBus dropping events! queue_size=%d, total_dropped=%d, recent_drops=%d, top=[%s]. "
            "Consider increasing WXHUB_EVENTBUS_QUEUE_SIZE.",
            self.queue_size,
            self.total,
            recent,
            top,
        )

    def top(self, count: int) -> Dict[str, int]:
        return dict(sorted(self.by_topic.items(), key=lambda item: item[1], reverse=True)[:count])

    @property
    def dropping(self) -> bool:
        return self._since_warning > 0


class EventBus:
    """
    Process-wide publish/subscribe hub.

    Singleton so the runtime, the dispatcher and the health blueprint share
    one routing table. Callbacks run on a small daemon worker pool fed by a
    bounded queue.
    """

    _instance: Optional["EventBus"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "EventBus":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    instance = super(EventBus, cls).__new__(cls)
                    instance._setup()
                    cls._instance = instance
        return cls._instance

    def _setup(self) -> None:
        config = load_config()
        self.subscribers: Dict[str, List[Subscriber]] = defaultdict(list)
        self.lock = threading.Lock()
        self._queue: "Queue[Tuple[str, Subscriber, Any]]" = Queue(maxsize=config.eventbus_queue_size)
        self._drops = _DropTracker(config.eventbus_queue_size)
        self._subscriber_errors = 0
        self._workers: list[threading.Thread] = []
        for index in range(max(1, config.eventbus_worker_count)):
            worker = threading.Thread(target=self._worker_loop, name=f"EventBus-{index}", daemon=True)
            worker.start()
            self._workers.append(worker)
        logger.info(
            "EventBus workers started (pool=%s queue=%s)",
            len(self._workers),
            config.eventbus_queue_size,
        )

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, topic: EventType | str, callback: Subscriber) -> Callable[[], None]:
        """
        Register ``callback`` for ``topic``.

        Returns:
            A function that removes the subscription (safe to call twice).
        """
        name = topic_name(topic)
        with self.lock:
            self.subscribers[name].append(callback)

        def unsubscribe() -> None:
            with self.lock:
                callbacks = self.subscribers.get(name, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def clear_subscribers(self) -> None:
        with self.lock:
            self.subscribers.clear()

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def publish(self, topic: EventType | str, data: Any | None = None) -> None:
        """Queue ``data`` for every subscriber of ``topic``. Never blocks."""
        name = topic_name(topic)
        with self.lock:
            callbacks = list(self.subscribers.get(name, ()))
        if not callbacks:
            return

        payload = to_payload(data)
        for callback in callbacks:
            try:
                self._queue.put_nowait((name, callback, payload))
            except Full:
                self._drops.record(name)
                break

    def _worker_loop(self) -> None:
        while True:
            name, callback, payload = self._queue.get()
            try:
                callback(payload)
            except Exception as exc:
                self._subscriber_errors += 1
                logger.error("Subscriber %r failed on %s: %s", callback, name, exc)
            finally:
                self._queue.task_done()

    def drain(self, timeout: float = 1.0) -> bool:
        """Wait until every queued callback has run. Returns False on timeout."""
        deadline = time.monotonic() + timeout
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._queue.all_tasks_done.wait(remaining)
        return True

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """Queue depth, drops and subscriber counts for the health blueprint."""
        with self.lock:
            subscriber_count = sum(len(values) for values in self.subscribers.values())
        return {
            "queue_depth": self._queue.qsize(),
            "queue_size": self._drops.queue_size,
            "dropped_events": self._drops.total,
            "drops_by_event_top5": self._drops.top(5),
            "subscriber_errors": self._subscriber_errors,
            "subscribers": subscriber_count,
            "is_dropping": self._drops.dropping,
        }
