"""
Observation Sources
===================
Producers feeding the ingest queue.

- HttpIngestSource: push source used by the Flask ingest routes
- UdpSource: socket loop for local-network broadcast datagrams
- ReplaySource: replays a fixed sequence (tests, backfills)
- SimulatorSource: synthetic station for demos and smoke tests
"""

from __future__ import annotations

import logging
import random
import socket
import threading
from datetime import datetime
from typing import Any, Callable, Iterable

from app.domain.weather.observation import Observation
from app.ingest.adapters.base import IProtocolAdapter, ParseOutcome
from app.ingest.adapters.broadcast import METRICWX_UNITS, BroadcastAdapter
from app.pipeline.interfaces import Emit, IObservationSource
from app.utils.metrics import NoOpMetrics
from app.utils.time import to_epoch, utc_now

logger = logging.getLogger(__name__)


class PayloadParser:
    """Parses raw payloads with an adapter and emits the results."""

    def __init__(self, adapter: IProtocolAdapter, *, name: str | None = None, metrics: NoOpMetrics | None = None):
        self.adapter = adapter
        self.name = name or adapter.protocol_name
        self.metrics = metrics or NoOpMetrics()

    def ingest(self, payload: Any, emit: Emit | None) -> ParseOutcome:
        """
        Parse one raw payload and emit the resulting observation, if any.

        Never raises for malformed input; problems are counted and returned
        as diagnostics.
        """
        outcome = self.adapter.parse_with_diagnostics(payload)
        for issue in outcome.issues:
            self.metrics.inc("field_errors", source=self.name, kind=issue.kind)

        if outcome.observation is None:
            self.metrics.inc("rejected", source=self.name)
            return outcome
        if emit is None:
            logger.warning("%s source not started; discarding observation from %s",
                           self.name, outcome.observation.station_id)
            self.metrics.inc("rejected", source=self.name)
            return outcome

        emit(outcome.observation)
        return outcome


class HttpIngestSource(PayloadParser, IObservationSource):
    """
    Push source: the web framework owns the transport loop.

    ``run`` only binds the emit callback; each request then calls ``submit``
    from its own request thread.
    """

    def __init__(self, adapter: IProtocolAdapter, *, name: str | None = None, metrics: NoOpMetrics | None = None):
        super().__init__(adapter, name=name, metrics=metrics)
        self._emit: Emit | None = None

    def run(self, emit: Emit, stop_event: threading.Event) -> None:
        self._emit = emit

    def submit(self, payload: Any) -> ParseOutcome:
        return self.ingest(payload, self._emit)

    def close(self) -> None:
        self._emit = None


class UdpSource(PayloadParser, IObservationSource):
    """Listens for broadcast datagrams; one datagram is at most one observation."""

    def __init__(
        self,
        adapter: IProtocolAdapter | None = None,
        *,
        host: str = "0.0.0.0",
        port: int = 9999,
        recv_timeout: float = 1.0,
        buffer_size: int = 4096,
        metrics: NoOpMetrics | None = None,
    ):
        super().__init__(adapter or BroadcastAdapter(), name="udp", metrics=metrics)
        self.host = host
        self.port = port
        self.recv_timeout = recv_timeout
        self.buffer_size = buffer_size
        self._sock: socket.socket | None = None
        self._bound = threading.Event()

    @property
    def address(self) -> tuple[str, int] | None:
        """Actual bound address (useful with ``port=0``)."""
        if self._sock is None:
            return None
        return self._sock.getsockname()

    def wait_until_bound(self, timeout: float | None = None) -> bool:
        return self._bound.wait(timeout)

    def run(self, emit: Emit, stop_event: threading.Event) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.settimeout(self.recv_timeout)
        try:
            sock.bind((self.host, self.port))
        except OSError as e:
            logger.error("UDP listener could not bind %s:%s: %s", self.host, self.port, e)
            sock.close()
            raise

        self._sock = sock
        self._bound.set()
        logger.info("UDP listener on %s:%s", *sock.getsockname()[:2])

        try:
            while not stop_event.is_set():
                try:
                    data, addr = sock.recvfrom(self.buffer_size)
                except socket.timeout:
                    continue
                except OSError as e:
                    if stop_event.is_set():
                        break
                    logger.warning("UDP receive failed: %s", e)
                    continue
                try:
                    outcome = self.ingest(data, emit)
                except Exception as e:
                    logger.error("Datagram from %s could not be processed: %s", addr[0], e, exc_info=True)
                    self.metrics.inc("rejected", source=self.name)
                    continue
                if not outcome.accepted:
                    logger.debug("Datagram from %s rejected: %s", addr[0], outcome.issue_kinds())
        finally:
            self.close()
            logger.info("UDP listener stopped")

    def close(self) -> None:
        sock, self._sock = self._sock, None
        if sock is not None:
            sock.close()


class ReplaySource(IObservationSource):
    """
    Replays a fixed sequence.

    Items may be Observations (emitted as-is) or raw payloads, which need an
    adapter.
    """

    def __init__(
        self,
        items: Iterable[Any],
        *,
        adapter: IProtocolAdapter | None = None,
        interval_seconds: float = 0.0,
        name: str = "replay",
        metrics: NoOpMetrics | None = None,
    ):
        self.items = list(items)
        self.name = name
        self.interval_seconds = interval_seconds
        self._parser = PayloadParser(adapter, name=name, metrics=metrics) if adapter is not None else None
        self.emitted = 0

    def run(self, emit: Emit, stop_event: threading.Event) -> None:
        for item in self.items:
            if stop_event.is_set():
                break
            if isinstance(item, Observation):
                emit(item)
            elif self._parser is not None:
                if self._parser.ingest(item, emit).observation is None:
                    continue
            else:
                raise TypeError(f"ReplaySource needs an adapter for {type(item).__name__} items")
            self.emitted += 1
            if self.interval_seconds > 0:
                stop_event.wait(self.interval_seconds)


class SimulatorSource(IObservationSource):
    """Synthetic station producing a weewx-style packet every ``interval_seconds``."""

    name = "simulator"

    def __init__(
        self,
        *,
        station_id: str = "simulator",
        interval_seconds: float = 60.0,
        base_temperature: float = 20.0,
        seed: int | None = None,
        clock: Callable[[], datetime] = utc_now,
        adapter: BroadcastAdapter | None = None,
        metrics: NoOpMetrics | None = None,
    ):
        self.station_id = station_id
        self.interval_seconds = interval_seconds
        self.base_temperature = base_temperature
        self._random = random.Random(seed)
        self._clock = clock
        self._parser = PayloadParser(adapter or BroadcastAdapter(clock=clock), name=self.name, metrics=metrics)

    def generate_packet(self) -> dict[str, Any]:
        """One packet in the METRICWX unit system."""
        now = self._clock()
        variation = self._random.uniform(-5.0, 5.0)
        rain = round(max(0.0, self._random.gauss(0.0, 0.2)), 2)
        return {
            "dateTime": to_epoch(now),
            "station": self.station_id,
            "interval": int(self.interval_seconds),
            "usUnits": METRICWX_UNITS,
            "outTemp": round(self.base_temperature + variation, 2),
            "outHumidity": round(min(100.0, max(0.0, 65.0 + variation * 2.0)), 1),
            "barometer": round(1013.25 + variation * 2.0, 2),
            "windSpeed": round(5.0 + abs(variation), 2),
            "windDir": float(to_epoch(now) % 360),
            "rain": rain,
        }

    def run(self, emit: Emit, stop_event: threading.Event) -> None:
        logger.info("Simulator started (station=%s, interval=%ss)", self.station_id, self.interval_seconds)
        while not stop_event.is_set():
            self._parser.ingest(self.generate_packet(), emit)
            stop_event.wait(self.interval_seconds)
        logger.info("Simulator stopped")
