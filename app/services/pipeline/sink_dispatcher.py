"""
Sink Dispatcher
===============
Delivers every output unit to every configured sink with per-sink failure
isolation.

Each sink gets a ``SinkChannel``:

- a bounded queue (a full queue drops the unit for that sink only)
- one delivery worker thread, so a sink sees units in submission order
- a single-thread call executor, so a hung ``write`` turns into a
  ``SinkTimeout`` for the worker instead of blocking it

Failed attempts are retried with capped exponential backoff
(``base * 2**(n-1)``, at most ``backoff_max``) until ``max_attempts``; then
the unit is dropped for that sink, counted, logged and published on the
EventBus error channel. Other sinks never wait on a failing one.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass
from queue import Empty, Full, Queue
from typing import Any, Iterable

from app.domain.exceptions import SinkError, SinkTimeout, SinkUnavailable
from app.enums.events import SinkEvent
from app.pipeline.interfaces import ISink, OutputUnit, SinkResult, unit_kind
from app.schemas.events import SinkDeliveryFailedPayload, SinkSaturatedPayload
from app.utils.metrics import NoOpMetrics
from app.utils.time import iso_now

logger = logging.getLogger(__name__)

_STOP = object()


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_base_seconds: float = 0.5
    backoff_max_seconds: float = 30.0
    timeout_seconds: float = 10.0

    def backoff(self, attempt: int) -> float:
        """Delay after failed attempt number ``attempt`` (1-based)."""
        return min(self.backoff_max_seconds, self.backoff_base_seconds * (2 ** max(0, attempt - 1)))


@dataclass(frozen=True)
class SinkOutcome:
    """Final result of delivering one unit to one sink."""

    sink: str
    ok: bool
    attempts: int
    elapsed_seconds: float = 0.0
    error_kind: str | None = None
    error: str | None = None
    skipped: bool = False

    @property
    def dropped(self) -> bool:
        return not self.ok


class SinkChannel:
    """Bounded delivery lane for one sink."""

    def __init__(
        self,
        sink: ISink,
        *,
        policy: RetryPolicy | None = None,
        queue_size: int = 512,
        metrics: NoOpMetrics | None = None,
        event_bus: Any | None = None,
    ) -> None:
        self.sink = sink
        self.name = sink.name
        self.policy = policy or RetryPolicy()
        self.metrics = metrics or NoOpMetrics()
        self.event_bus = event_bus
        self._queue: Queue = Queue(maxsize=max(1, queue_size))
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"sink-{self.name}")
        self._inflight: Future | None = None
        self._abort = threading.Event()
        self._closed = False
        self._closing_lock = threading.Lock()
        self._worker = threading.Thread(target=self._worker_loop, name=f"SinkChannel-{self.name}", daemon=True)
        self._worker.start()

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def offer(self, unit: OutputUnit) -> Future:
        """Queue a unit without blocking. The future resolves to a SinkOutcome."""
        future: Future = Future()
        if not self.sink.accepts(unit):
            future.set_result(SinkOutcome(self.name, ok=True, attempts=0, skipped=True))
            return future
        # Checked and enqueued under one lock so nothing lands behind _STOP
        with self._closing_lock:
            closed = self._closed
            saturated = False
            if not closed:
                try:
                    self._queue.put_nowait((unit, future))
                except Full:
                    saturated = True
        if closed:
            future.set_result(SinkOutcome(self.name, ok=False, attempts=0, error_kind="SinkUnavailable",
                                          error="channel closed"))
            return future
        if saturated:
            self.metrics.inc("saturated", sink=self.name)
            logger.warning("Sink %s channel full (size=%d); dropping %s for %s",
                           self.name, self._queue.maxsize, unit_kind(unit), unit.station_id)
            self._publish(SinkEvent.SINK_SATURATED, SinkSaturatedPayload(
                sink=self.name,
                kind=unit_kind(unit),
                station_id=unit.station_id,
                queue_size=self._queue.maxsize,
                timestamp=iso_now(),
            ))
            future.set_result(SinkOutcome(self.name, ok=False, attempts=0, error_kind="QueueSaturated",
                                          error="sink channel full"))
        return future

    def depth(self) -> int:
        return self._queue.qsize()

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _worker_loop(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                unit, future = item
                if self._abort.is_set():
                    future.set_result(SinkOutcome(self.name, ok=False, attempts=0,
                                                  error_kind="SinkUnavailable", error="shutdown deadline passed"))
                    continue
                try:
                    outcome = self.deliver(unit)
                except Exception as exc:  # pragma: no cover - dispatcher bug
                    logger.exception("Sink %s delivery crashed: %s", self.name, exc)
                    outcome = SinkOutcome(self.name, ok=False, attempts=0, error_kind=type(exc).__name__,
                                          error=str(exc))
                future.set_result(outcome)
            finally:
                self._queue.task_done()

    def deliver(self, unit: OutputUnit) -> SinkOutcome:
        """Deliver one unit with retries. Runs on the channel worker."""
        started = time.monotonic()
        result = SinkResult.failure(SinkUnavailable("not attempted"))
        attempts = 0

        for attempt in range(1, self.policy.max_attempts + 1):
            attempts = attempt
            result = self._attempt(unit)
            if result.ok:
                elapsed = time.monotonic() - started
                self.metrics.inc("delivered", sink=self.name)
                self.metrics.observe("sink_latency_seconds", elapsed, sink=self.name)
                return SinkOutcome(self.name, ok=True, attempts=attempt, elapsed_seconds=elapsed)

            error = result.error
            retryable = error is None or getattr(error, "retryable", True)
            logger.debug("Sink %s attempt %d/%d failed: %s", self.name, attempt, self.policy.max_attempts, error)
            if not retryable or attempt >= self.policy.max_attempts:
                break
            self.metrics.inc("retries", sink=self.name)
            if self._abort.wait(self.policy.backoff(attempt)):
                break

        elapsed = time.monotonic() - started
        return self._give_up(unit, result, attempts, elapsed)

    def _attempt(self, unit: OutputUnit) -> SinkResult:
        inflight = self._inflight
        if inflight is not None and not inflight.done():
            # Never stack a call behind a hung one
            return SinkResult.failure(SinkTimeout(f"{self.name}: previous write still running"))

        try:
            future = self._executor.submit(self._safe_write, unit)
        except RuntimeError as exc:
            return SinkResult.failure(SinkUnavailable(f"{self.name}: {exc}"))
        self._inflight = future
        try:
            return future.result(timeout=self.policy.timeout_seconds)
        except FuturesTimeout:
            return SinkResult.failure(
                SinkTimeout(f"{self.name}: write exceeded {self.policy.timeout_seconds:.1f}s")
            )

    def _safe_write(self, unit: OutputUnit) -> SinkResult:
        try:
            result = self.sink.write(unit)
        except SinkError as exc:
            return SinkResult.failure(exc)
        except Exception as exc:
            logger.error("Sink %s raised %s: %s", self.name, type(exc).__name__, exc)
            return SinkResult.failure(SinkUnavailable(f"{type(exc).__name__}: {exc}"))
        if not isinstance(result, SinkResult):
            return SinkResult.failure(SinkUnavailable(f"{self.name} returned {type(result).__name__}"))
        return result

    def _give_up(self, unit: OutputUnit, result: SinkResult, attempts: int, elapsed: float) -> SinkOutcome:
        error_kind = result.error_kind or "SinkUnavailable"
        error_text = str(result.error) if result.error is not None else None
        self.metrics.inc("failed", sink=self.name)
        logger.warning(
            "Sink %s dropped %s for %s after %d attempt(s): %s",
            self.name,
            unit_kind(unit),
            unit.station_id,
            attempts,
            error_text,
        )
        self._publish(SinkEvent.SINK_DELIVERY_FAILED, SinkDeliveryFailedPayload(
            sink=self.name,
            kind=unit_kind(unit),
            station_id=unit.station_id,
            attempts=attempts,
            error_kind=error_kind,
            error=error_text,
            timestamp=iso_now(),
        ))
        return SinkOutcome(self.name, ok=False, attempts=attempts, elapsed_seconds=elapsed,
                           error_kind=error_kind, error=error_text)

    def _publish(self, event: SinkEvent, payload: Any) -> None:
        if self.event_bus is None:
            return
        self.event_bus.publish(event, payload)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self, timeout: float | None = None) -> bool:
        """
        Drain the channel, then flush and close the sink.

        Returns:
            True if everything finished before ``timeout``
        """
        with self._closing_lock:
            self._closed = True
        deadline = None if timeout is None else time.monotonic() + timeout

        def remaining() -> float | None:
            return None if deadline is None else max(0.0, deadline - time.monotonic())

        try:
            self._queue.put(_STOP, timeout=remaining())
        except Full:
            logger.warning("Sink %s channel still full at shutdown", self.name)
        self._worker.join(remaining())
        clean = not self._worker.is_alive()
        if not clean:
            self._abort.set()
            self._fail_pending()
            logger.warning("Sink %s did not drain before the shutdown deadline", self.name)

        if clean:
            for hook in (self.sink.flush, self.sink.close):
                try:
                    self._executor.submit(hook).result(timeout=remaining())
                except FuturesTimeout:
                    clean = False
                    logger.warning("Sink %s %s timed out", self.name, hook.__name__)
                    break
                except Exception as exc:
                    logger.error("Sink %s %s failed: %s", self.name, hook.__name__, exc)
        self._executor.shutdown(wait=False)
        return clean

    def _fail_pending(self) -> None:
        while True:
            try:
                item = self._queue.get_nowait()
            except Empty:
                return
            if item is not _STOP:
                _, future = item
                if not future.done():
                    future.set_result(SinkOutcome(self.name, ok=False, attempts=0,
                                                  error_kind="SinkUnavailable", error="shutdown deadline passed"))
            self._queue.task_done()


class SinkDispatcher:
    """Fans each output unit out to every sink channel."""

    def __init__(
        self,
        sinks: Iterable[ISink] = (),
        *,
        policy: RetryPolicy | None = None,
        queue_size: int = 512,
        metrics: NoOpMetrics | None = None,
        event_bus: Any | None = None,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self.metrics = metrics or NoOpMetrics()
        self.channels: list[SinkChannel] = []
        names: set[str] = set()
        for sink in sinks:
            if sink.name in names:
                raise ValueError(f"Duplicate sink name: {sink.name}")
            names.add(sink.name)
            self.channels.append(SinkChannel(
                sink,
                policy=self.policy,
                queue_size=queue_size,
                metrics=self.metrics,
                event_bus=event_bus,
            ))
        logger.info("Sink dispatcher ready: %s", ", ".join(sorted(names)) or "no sinks")

    @property
    def sink_names(self) -> list[str]:
        return [channel.name for channel in self.channels]

    def submit(self, unit: OutputUnit) -> list[Future]:
        """Queue a unit for every sink; never blocks."""
        return [channel.offer(unit) for channel in self.channels]

    def dispatch(self, unit: OutputUnit, timeout: float | None = None) -> list[SinkOutcome]:
        """Deliver a unit to every sink concurrently and wait for each outcome."""
        futures = self.submit(unit)
        return [future.result(timeout=timeout) for future in futures]

    def stats(self) -> dict[str, dict[str, int]]:
        return {
            channel.name: {
                "queued": channel.depth(),
                "delivered": self.metrics.get("delivered", sink=channel.name),
                "failed": self.metrics.get("failed", sink=channel.name),
                "saturated": self.metrics.get("saturated", sink=channel.name),
            }
            for channel in self.channels
        }

    def close(self, timeout: float | None = None) -> bool:
        """Drain and close every channel; all channels share one deadline."""
        deadline = None if timeout is None else time.monotonic() + timeout
        clean = True
        for channel in self.channels:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            clean = channel.close(remaining) and clean
        return clean
