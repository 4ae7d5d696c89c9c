"""
Processor Chain
===============
Chains multiple processors into a single pipeline stage.

Pipeline (default order): calibrate -> validate -> reject spikes -> enrich
"""

from __future__ import annotations

import logging
from typing import Iterable

from app.domain.weather.observation import Observation
from app.utils.metrics import NoOpMetrics

from .base_processor import IObservationProcessor, ProcessorError

logger = logging.getLogger(__name__)


class ProcessorChain(IObservationProcessor):
    """
    Composite processor applying its stages in order.

    A stage returning None drops the observation; a stage raising
    ProcessorError drops it too. Both are counted as ``processor_dropped``
    with the stage name and reason as labels. ``process`` itself never raises
    for a single bad observation, so one malformed report cannot stop a worker.
    """

    name = "chain"

    def __init__(self, processors: Iterable[IObservationProcessor] = (), metrics: NoOpMetrics | None = None):
        self.processors: list[IObservationProcessor] = list(processors)
        self.metrics = metrics or NoOpMetrics()

    def append(self, processor: IObservationProcessor) -> "ProcessorChain":
        self.processors.append(processor)
        return self

    def process(self, observation: Observation) -> Observation | None:
        current: Observation | None = observation
        for processor in self.processors:
            try:
                current = self._run_stage(processor, current)
            except ProcessorError as e:
                logger.warning("Processor %s rejected observation from %s: %s",
                               processor.name, observation.station_id, e)
                self.metrics.inc("processor_dropped", stage=processor.name, reason="error")
                return None
            if current is None:
                logger.debug("Processor %s filtered observation from %s", processor.name, observation.station_id)
                self.metrics.inc("processor_dropped", stage=processor.name, reason="filtered")
                return None
        return current

    @staticmethod
    def _run_stage(processor: IObservationProcessor, observation: Observation) -> Observation | None:
        try:
            return processor.process(observation)
        except ProcessorError:
            raise
        except Exception as e:
            logger.error("Processor %s failed for station %s: %s", processor.name, observation.station_id, e)
            raise ProcessorError(f"Processing failed: {e}") from e
