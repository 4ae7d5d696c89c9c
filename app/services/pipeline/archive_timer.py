"""
Archive Timer
=============
Background thread that asks the aggregation engine to close windows whose
deadline has passed, so idle stations still produce archives on schedule.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from app.services.pipeline.aggregation_engine import AggregationEngine, AggregationOutput

logger = logging.getLogger(__name__)


class ArchiveTimer:
    """Periodic ``engine.close_expired()`` driver."""

    def __init__(
        self,
        engine: AggregationEngine,
        on_output: Callable[[AggregationOutput], None],
        *,
        tick_seconds: float = 1.0,
    ) -> None:
        self.engine = engine
        self.on_output = on_output
        self.tick_seconds = max(0.05, float(tick_seconds))
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="ArchiveTimer", daemon=True)
        self._thread.start()
        logger.info("Archive timer started (tick=%.2fs)", self.tick_seconds)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Archive timer did not stop within %.1fs", timeout)
        self._thread = None

    def tick(self) -> AggregationOutput:
        """Run one close pass and hand any output on."""
        output = self.engine.close_expired()
        if output:
            self.on_output(output)
        return output

    def _loop(self) -> None:
        while not self._stop_event.wait(self.tick_seconds):
            try:
                self.tick()
            except Exception as exc:
                logger.exception("Archive timer tick failed: %s", exc)
