"""
Aggregation Engine
==================
Folds processed observations into fixed-size windows per station and emits
an ArchiveRecord for each closed window, followed by the recomputed
DailySummary of that window's local day.

Window lifecycle per station::

    Open(accumulator) --(watermark or timer passes end)--> Closing --> ArchiveRecord

- A window ``[start, start + size)`` closes when an observation with
  ``timestamp >= end + allowed_lateness`` arrives for the station, when the
  archive timer sees ``now >= end + allowed_lateness + close_delay``, or on
  ``flush_all``.
- After a window closes, observations that fall into it (or earlier) are
  late: counted as ``late_dropped`` and discarded, never merged.
- Observations stamped more than ``max_future_skew_seconds`` ahead of the
  clock are counted as ``future_dropped`` and never move the watermark.

All public methods take the engine lock, so the ingest workers and the
archive timer never touch the state concurrently.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, List, Union

from app.domain.exceptions import InvariantViolation
from app.domain.weather.archive import ArchiveRecord, DailySummary
from app.domain.weather.observation import Observation
from app.services.pipeline.accumulators import RainAccumulatorState, WindowAccumulator, window_start
from app.services.pipeline.daily_summary import build_daily_summary
from app.utils.metrics import NoOpMetrics
from app.utils.time import local_date, resolve_timezone, to_epoch, utc_now

logger = logging.getLogger(__name__)

AggregationOutput = List[Union[ArchiveRecord, DailySummary]]


@dataclass
class _StationState:
    windows: dict[int, WindowAccumulator] = field(default_factory=dict)
    closed_until: int | None = None  # end epoch of the newest closed window
    watermark: int | None = None  # newest observation epoch seen
    rain: RainAccumulatorState = field(default_factory=RainAccumulatorState)
    archives: dict[date, list[ArchiveRecord]] = field(default_factory=dict)


class AggregationEngine:
    """Windowed rollups with late-arrival policy and daily recomputation."""

    def __init__(
        self,
        interval_seconds: int = 300,
        *,
        allowed_lateness_seconds: int = 0,
        close_delay_seconds: float = 5.0,
        max_future_skew_seconds: float = 600.0,
        timezone: str = "UTC",
        weight_wind_direction: bool = True,
        metrics: NoOpMetrics | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if allowed_lateness_seconds < 0:
            raise ValueError("allowed_lateness_seconds must be >= 0")
        self.interval_seconds = int(interval_seconds)
        self.allowed_lateness_seconds = int(allowed_lateness_seconds)
        self.close_delay_seconds = float(close_delay_seconds)
        self.max_future_skew_seconds = float(max_future_skew_seconds)
        self.timezone_name = timezone or "UTC"
        self.tz = resolve_timezone(self.timezone_name)
        self.weight_wind_direction = weight_wind_direction
        self.metrics = metrics or NoOpMetrics()
        self._clock = clock
        self._stations: dict[str, _StationState] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    def add(self, observation: Observation) -> AggregationOutput:
        """
        Fold one observation in.

        Returns:
            ArchiveRecords (each followed by its DailySummary) for every window
            this observation's watermark closed
        """
        with self._lock:
            state = self._stations.setdefault(observation.station_id, _StationState())
            epoch = observation.epoch
            if self._too_far_ahead(epoch):
                self.metrics.inc("future_dropped")
                logger.warning(
                    "Observation for %s stamped %s is ahead of the clock; dropped",
                    observation.station_id,
                    observation.timestamp.isoformat(),
                )
                return []
            start = window_start(epoch, self.interval_seconds)

            if state.closed_until is not None and start < state.closed_until:
                self.metrics.inc("late_dropped")
                logger.debug(
                    "Late observation for %s at %s dropped (closed until %s)",
                    observation.station_id,
                    observation.timestamp.isoformat(),
                    state.closed_until,
                )
                return []

            window = state.windows.get(start)
            if window is None:
                window = WindowAccumulator(
                    observation.station_id,
                    start,
                    self.interval_seconds,
                    weight_vectors=self.weight_wind_direction,
                )
                state.windows[start] = window
            window.add(observation, state.rain.update(observation))

            state.watermark = epoch if state.watermark is None else max(state.watermark, epoch)
            threshold = state.watermark - self.allowed_lateness_seconds
            return self._close_where(observation.station_id, state, lambda w: w.end_epoch <= threshold)

    # ------------------------------------------------------------------
    # Timer / shutdown
    # ------------------------------------------------------------------

    def close_expired(self, now: datetime | None = None) -> AggregationOutput:
        """Close windows whose deadline passed on the wall clock, even without new data."""
        now_epoch = to_epoch(now or self._clock())
        grace = self.allowed_lateness_seconds + self.close_delay_seconds
        output: AggregationOutput = []
        with self._lock:
            for station_id, state in self._stations.items():
                output.extend(self._close_where(station_id, state, lambda w: w.end_epoch + grace <= now_epoch))
        return output

    def flush_all(self) -> AggregationOutput:
        """Close every open window (shutdown)."""
        output: AggregationOutput = []
        with self._lock:
            for station_id, state in self._stations.items():
                output.extend(self._close_where(station_id, state, lambda w: True))
        return output

    def close_window(self, station_id: str, start: datetime | int) -> AggregationOutput:
        """
        Close one specific open window.

        Raises:
            InvariantViolation: If that window was never opened (or already closed)
        """
        start_epoch = start if isinstance(start, int) else to_epoch(start)
        with self._lock:
            state = self._stations.get(station_id)
            if state is None or start_epoch not in state.windows:
                raise InvariantViolation(
                    f"No open window for {station_id} at {start_epoch}",
                    detail={"station_id": station_id, "window_start": start_epoch},
                )
            return self._close_where(station_id, state, lambda w: w.start_epoch <= start_epoch)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def open_windows(self) -> dict[str, list[int]]:
        with self._lock:
            return {sid: sorted(state.windows) for sid, state in self._stations.items() if state.windows}

    def archives_for(self, station_id: str, day: date) -> list[ArchiveRecord]:
        with self._lock:
            state = self._stations.get(station_id)
            if state is None:
                return []
            return list(state.archives.get(day, []))

    def daily_summary(self, station_id: str, day: date) -> DailySummary | None:
        """Recompute the summary for a retained day on demand."""
        return build_daily_summary(station_id, day, self.timezone_name, self.archives_for(station_id, day))

    # ------------------------------------------------------------------
    # Internals (lock held)
    # ------------------------------------------------------------------

    def _too_far_ahead(self, epoch: int) -> bool:
        if self.max_future_skew_seconds <= 0:
            return False
        return epoch > to_epoch(self._clock()) + self.max_future_skew_seconds

    def _close_where(self, station_id: str, state: _StationState, predicate) -> AggregationOutput:
        output: AggregationOutput = []
        for start in sorted(state.windows):
            window = state.windows[start]
            if not predicate(window):
                # Windows close strictly in order
                break
            output.extend(self._close(station_id, state, start))
        return output

    def _close(self, station_id: str, state: _StationState, start: int) -> AggregationOutput:
        window = state.windows.pop(start, None)
        if window is None:
            raise InvariantViolation(
                f"Closing window {start} for {station_id} that was never opened",
                detail={"station_id": station_id, "window_start": start},
            )
        if window.observation_count == 0:
            raise InvariantViolation(f"Empty window {start} for {station_id}")

        record = window.to_record()
        state.closed_until = window.end_epoch if state.closed_until is None else max(state.closed_until, window.end_epoch)
        self.metrics.inc("archives_emitted")
        logger.debug("Closed window %s for %s (%d observations)", record.window_start.isoformat(),
                     station_id, record.observation_count)

        day = local_date(record.window_start, self.tz)
        state.archives.setdefault(day, []).append(record)
        self._prune(state, max(state.archives))

        summary = build_daily_summary(station_id, day, self.timezone_name, state.archives[day])
        output: AggregationOutput = [record]
        if summary is not None:
            self.metrics.inc("daily_summaries_emitted")
            output.append(summary)
        return output

    @staticmethod
    def _prune(state: _StationState, newest: date) -> None:
        """Keep records of the newest local day and the day before only."""
        keep_from = newest - timedelta(days=1)
        for day in [d for d in state.archives if d < keep_from]:
            del state.archives[day]
