"""
Pipeline Runtime
================
Owns every long-lived pipeline component and the threads that drive them.

Data path::

    sources --emit--> ObservationQueue --worker--> ProcessorChain
                                                    |--> SinkDispatcher (observation)
                                                    `--> AggregationEngine --> SinkDispatcher (archive, daily)

``ArchiveTimer`` closes idle windows on the wall clock. ``shutdown`` stops
everything in dependency order under one deadline.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Iterable, Optional

from app.config import AppConfig
from app.domain.exceptions import InvariantViolation
from app.domain.weather.archive import ArchiveRecord, DailySummary
from app.domain.weather.observation import Observation
from app.enums.events import PipelineEvent, RuntimeEvent
from app.ingest.adapters import BroadcastAdapter, EcowittAdapter, WundergroundAdapter
from app.ingest.sources import HttpIngestSource, SimulatorSource, UdpSource
from app.pipeline.interfaces import IObservationSource, ISink, OutputUnit
from app.pipeline.processors import (
    CalibrationProcessor,
    EnrichmentProcessor,
    ProcessorChain,
    SpikeRejectionProcessor,
    ValidationProcessor,
)
from app.pipeline.queue import ObservationQueue
from app.schemas.events import ArchiveClosedPayload, IngestSaturatedPayload, RuntimeLifecyclePayload
from app.services.pipeline.aggregation_engine import AggregationEngine
from app.services.pipeline.archive_timer import ArchiveTimer
from app.services.pipeline.sink_dispatcher import RetryPolicy, SinkDispatcher
from app.utils.metrics import PipelineCounters
from app.utils.time import iso_now

logger = logging.getLogger(__name__)

_WORKER_POLL_SECONDS = 0.2


def build_processor_chain(config: AppConfig, metrics: PipelineCounters | None = None) -> ProcessorChain:
    """Calibration -> validation -> spike rejection -> enrichment."""
    chain = ProcessorChain(metrics=metrics)
    chain.append(CalibrationProcessor.from_config(config.calibrations))
    chain.append(ValidationProcessor(config.validation_limits))
    chain.append(SpikeRejectionProcessor(config.spike_limits or None))
    if config.enable_derived_metrics:
        chain.append(EnrichmentProcessor())
    return chain


class PipelineRuntime:
    """Composition root for the ingest pipeline."""

    def __init__(
        self,
        config: AppConfig,
        sinks: Iterable[ISink],
        *,
        sources: Iterable[IObservationSource] = (),
        chain: ProcessorChain | None = None,
        metrics: PipelineCounters | None = None,
        event_bus: Any | None = None,
    ) -> None:
        self.config = config
        self.metrics = metrics or PipelineCounters()
        self.event_bus = event_bus
        self.sinks = list(sinks)

        self.queue = ObservationQueue(
            config.queue_capacity,
            shards=config.worker_count,
            put_timeout=config.enqueue_timeout_seconds,
            metrics=self.metrics,
        )
        self.chain = chain or build_processor_chain(config, self.metrics)
        self.engine = AggregationEngine(
            config.archive_interval_seconds,
            allowed_lateness_seconds=config.allowed_lateness_seconds,
            close_delay_seconds=config.archive_close_delay_seconds,
            max_future_skew_seconds=config.max_future_skew_seconds,
            timezone=config.station_timezone,
            weight_wind_direction=config.weight_wind_direction,
            metrics=self.metrics,
        )
        self.dispatcher = SinkDispatcher(
            self.sinks,
            policy=RetryPolicy(
                max_attempts=config.sink_max_attempts,
                backoff_base_seconds=config.sink_backoff_base_seconds,
                backoff_max_seconds=config.sink_backoff_max_seconds,
                timeout_seconds=config.sink_timeout_seconds,
            ),
            queue_size=config.sink_queue_size,
            metrics=self.metrics,
            event_bus=event_bus,
        )
        self.timer = ArchiveTimer(self.engine, self.dispatch_output, tick_seconds=config.archive_tick_seconds)

        adapter_options = {
            "default_station_id": config.default_station_id,
            "duplicate_policy": config.duplicate_key_policy.lower(),
        }
        self.ecowitt = HttpIngestSource(EcowittAdapter(**adapter_options), metrics=self.metrics)
        self.wunderground = HttpIngestSource(WundergroundAdapter(**adapter_options), metrics=self.metrics)
        self.sources: list[IObservationSource] = [self.ecowitt, self.wunderground, *sources]
        if config.udp_enabled:
            self.sources.append(UdpSource(
                BroadcastAdapter(**adapter_options),
                host=config.udp_host,
                port=config.udp_port,
                metrics=self.metrics,
            ))
        if config.simulator_enabled:
            self.sources.append(SimulatorSource(
                station_id=config.default_station_id,
                interval_seconds=config.simulator_interval_seconds,
                metrics=self.metrics,
            ))

        self._stop_event = threading.Event()
        self._workers_stop = threading.Event()
        self._workers: list[threading.Thread] = []
        self._source_threads: list[threading.Thread] = []
        self._state_lock = threading.Lock()
        self._started = False
        self._stopped = False

    @classmethod
    def build(cls, config: AppConfig, *, sinks: Optional[Iterable[ISink]] = None, **kwargs: Any) -> "PipelineRuntime":
        """Build a runtime with the sinks named in ``config.sinks``."""
        if sinks is None:
            from infrastructure.sinks.factory import build_sinks

            sinks = build_sinks(config)
        return cls(config, sinks, **kwargs)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._started and not self._stopped

    def start(self) -> "PipelineRuntime":
        with self._state_lock:
            if self._started:
                return self
            self._started = True

        for shard in range(self.queue.shard_count):
            worker = threading.Thread(target=self._worker_loop, args=(shard,), name=f"PipelineWorker-{shard}", daemon=True)
            worker.start()
            self._workers.append(worker)

        self.timer.start()

        for source in self.sources:
            if isinstance(source, HttpIngestSource):
                source.run(self.emit, self._stop_event)
                continue
            thread = threading.Thread(target=self._run_source, args=(source,), name=f"Source-{source.name}", daemon=True)
            thread.start()
            self._source_threads.append(thread)

        logger.info(
            "Pipeline runtime started: %d worker(s), sources=[%s], sinks=[%s]",
            len(self._workers),
            ", ".join(s.name for s in self.sources),
            ", ".join(self.dispatcher.sink_names),
        )
        self._publish(RuntimeEvent.STARTED, self._lifecycle_payload("started"))
        return self

    def shutdown(self, timeout: float | None = None) -> bool:
        """
        Stop sources, drain the queue, flush open windows and close sinks.

        Every step shares one deadline (``shutdown_deadline_seconds`` by
        default). Past it the runtime stops waiting; worker and channel
        threads are daemons and die with the process.

        Returns:
            True if every queued observation and sink delivery completed
        """
        with self._state_lock:
            if self._stopped:
                return True
            self._stopped = True

        timeout = self.config.shutdown_deadline_seconds if timeout is None else timeout
        deadline = time.monotonic() + timeout

        def remaining() -> float:
            return max(0.0, deadline - time.monotonic())

        logger.info("Pipeline runtime stopping (deadline %.1fs)", timeout)
        self._publish(RuntimeEvent.STOPPING, self._lifecycle_payload("stopping"))

        # 1. Sources
        self._stop_event.set()
        for thread in self._source_threads:
            thread.join(timeout=remaining())
            if thread.is_alive():
                logger.warning("Source thread %s still running at shutdown", thread.name)
        for source in self.sources:
            try:
                source.close()
            except OSError as exc:
                logger.warning("Error closing source %s: %s", source.name, exc)

        # 2. Queue
        self.queue.close()
        drained = self.queue.join(timeout=remaining())
        if not drained:
            logger.warning("Ingest queue not drained before deadline (%d left)", self.queue.depth())
        self._workers_stop.set()
        for worker in self._workers:
            worker.join(timeout=remaining())

        # 3. Aggregation
        self.timer.stop(timeout=remaining())
        self.dispatch_output(self.engine.flush_all())

        # 4. Sinks
        sinks_clean = self.dispatcher.close(timeout=remaining())
        clean = drained and sinks_clean

        self._publish(RuntimeEvent.STOPPED, self._lifecycle_payload("stopped", clean=clean))
        logger.info("Pipeline runtime stopped (clean=%s)", clean)
        return clean

    # ------------------------------------------------------------------
    # Data path
    # ------------------------------------------------------------------

    def emit(self, observation: Observation) -> bool:
        """Entry point for every source."""
        accepted = self.queue.put(observation)
        if not accepted and self.queue.accepting:
            self._publish(PipelineEvent.INGEST_SATURATED, IngestSaturatedPayload(
                station_id=observation.station_id,
                capacity=self.queue.capacity,
                dropped_total=self.queue.dropped,
                timestamp=iso_now(),
            ))
        return accepted

    def process(self, observation: Observation) -> None:
        """Run one observation through the chain, the dispatcher and the engine."""
        processed = self.chain.process(observation)
        if processed is None:
            return
        self.dispatcher.submit(processed)
        self.metrics.inc("processed")
        self._publish(PipelineEvent.OBSERVATION_PROCESSED, {
            "station_id": processed.station_id,
            "timestamp": processed.timestamp.isoformat(),
            "source": processed.source,
        })
        self.dispatch_output(self.engine.add(processed))

    def dispatch_output(self, output: Iterable[OutputUnit]) -> None:
        for unit in output:
            self.dispatcher.submit(unit)
            if isinstance(unit, ArchiveRecord):
                self._publish(PipelineEvent.ARCHIVE_CLOSED, ArchiveClosedPayload(
                    station_id=unit.station_id,
                    window_start=unit.window_start.isoformat(),
                    window_end=unit.window_end.isoformat(),
                    observation_count=unit.observation_count,
                    metrics=sorted(unit.aggregates),
                ))
            elif isinstance(unit, DailySummary):
                self._publish(PipelineEvent.DAILY_SUMMARY_UPDATED, unit.to_dict())

    def _worker_loop(self, shard: int) -> None:
        while True:
            observation = self.queue.get(shard, timeout=_WORKER_POLL_SECONDS)
            if observation is None:
                if self._workers_stop.is_set():
                    break
                continue
            try:
                self.process(observation)
            except InvariantViolation:
                logger.critical("Invariant violated while processing %s", observation.station_id, exc_info=True)
                raise
            except Exception as exc:
                self.metrics.inc("worker_errors")
                logger.exception("Worker %d failed on observation from %s: %s", shard, observation.station_id, exc)
            finally:
                self.queue.task_done(shard)

    def _run_source(self, source: IObservationSource) -> None:
        try:
            source.run(self.emit, self._stop_event)
        except Exception as exc:
            logger.error("Source %s stopped with error: %s", source.name, exc, exc_info=True)
        else:
            logger.info("Source %s finished", source.name)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def find_sink(self, sink_type: type) -> ISink | None:
        return next((sink for sink in self.sinks if isinstance(sink, sink_type)), None)

    def source(self, name: str) -> IObservationSource | None:
        return next((s for s in self.sources if s.name == name), None)

    def counters(self) -> dict[str, Any]:
        """Core counters for the health blueprint."""
        total: Callable[[str], int] = self.metrics.total
        return {
            "ingested": total("ingested"),
            "dropped": total("dropped"),
            "rejected": total("rejected"),
            "field_errors": total("field_errors"),
            "processed": total("processed"),
            "processor_dropped": total("processor_dropped"),
            "late_dropped": total("late_dropped"),
            "future_dropped": total("future_dropped"),
            "archives_emitted": total("archives_emitted"),
            "daily_summaries_emitted": total("daily_summaries_emitted"),
            "queue": self.queue.stats(),
            "sinks": self.dispatcher.stats(),
        }

    def _lifecycle_payload(self, state: str, clean: bool | None = None) -> RuntimeLifecyclePayload:
        return RuntimeLifecyclePayload(
            state=state,
            sources=[s.name for s in self.sources],
            sinks=self.dispatcher.sink_names,
            timestamp=iso_now(),
            clean=clean,
        )

    def _publish(self, event: Any, payload: Any) -> None:
        if self.event_bus is None:
            return
        try:
            self.event_bus.publish(event, payload)
        except Exception as e:
            logger.error("Failed to publish %s: %s", event, e)
