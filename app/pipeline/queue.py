"""
Bounded ingest queue.

All ingest paths push into one logical queue that is split into one shard
per worker. A station always hashes to the same shard, so observations of one
station are processed in receipt order while different stations proceed in
parallel.

When a shard is full, ``put`` waits up to ``put_timeout`` seconds, then drops
the observation and counts it. Memory use never grows past ``capacity``.
"""

from __future__ import annotations

import logging
import threading
import time
import zlib
from queue import Empty, Full, Queue

from app.domain.exceptions import QueueSaturated
from app.domain.weather.observation import Observation
from app.utils.metrics import NoOpMetrics

logger = logging.getLogger(__name__)

# Drop warning configuration
_DROP_WARNING_THRESHOLD = 10  # Log summary every N drops
_DROP_WARNING_INTERVAL_SECONDS = 60  # Minimum seconds between drop summaries


class ObservationQueue:
    """Sharded bounded queue with a drop counter."""

    def __init__(
        self,
        capacity: int = 1024,
        *,
        shards: int = 1,
        put_timeout: float = 0.5,
        metrics: NoOpMetrics | None = None,
    ) -> None:
        self.capacity = max(1, int(capacity))
        self.shard_count = max(1, int(shards))
        self.put_timeout = max(0.0, float(put_timeout))
        self.metrics = metrics or NoOpMetrics()

        per_shard = max(1, self.capacity // self.shard_count)
        self._shards: list[Queue] = [Queue(maxsize=per_shard) for _ in range(self.shard_count)]
        self._accepting = threading.Event()
        self._accepting.set()

        self._drop_lock = threading.Lock()
        self._dropped = 0
        self._drops_since_last_warning = 0
        self._last_drop_warning_time = 0.0

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def shard_for(self, station_id: str) -> int:
        return zlib.crc32(station_id.encode("utf-8")) % self.shard_count

    def put(self, observation: Observation) -> bool:
        """
        Enqueue an observation.

        Returns:
            True if queued, False if dropped (closed queue or saturation)
        """
        if not self._accepting.is_set():
            self.metrics.inc("rejected")
            return False

        shard = self._shards[self.shard_for(observation.station_id)]
        try:
            if self.put_timeout > 0:
                shard.put(observation, timeout=self.put_timeout)
            else:
                shard.put_nowait(observation)
        except Full:
            self._record_drop(observation)
            return False

        self.metrics.inc("ingested")
        return True

    def put_or_raise(self, observation: Observation) -> None:
        """Like ``put`` but raises QueueSaturated on a drop."""
        if not self.put(observation):
            raise QueueSaturated(
                f"Observation from {observation.station_id} dropped",
                detail={"station_id": observation.station_id, "capacity": self.capacity},
            )

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def get(self, shard: int, timeout: float | None = None) -> Observation | None:
        try:
            return self._shards[shard].get(timeout=timeout)
        except Empty:
            return None

    def task_done(self, shard: int) -> None:
        self._shards[shard].task_done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def accepting(self) -> bool:
        return self._accepting.is_set()

    def close(self) -> None:
        """Stop accepting new observations. Queued items stay drainable."""
        self._accepting.clear()

    def join(self, timeout: float | None = None) -> bool:
        """
        Wait until every queued observation has been marked done.

        Returns:
            True if drained, False if the timeout expired first
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        for shard in self._shards:
            with shard.all_tasks_done:
                while shard.unfinished_tasks:
                    if deadline is None:
                        shard.all_tasks_done.wait()
                        continue
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return False
                    shard.all_tasks_done.wait(remaining)
        return True

    def depth(self) -> int:
        return sum(shard.qsize() for shard in self._shards)

    @property
    def dropped(self) -> int:
        return self._dropped

    def stats(self) -> dict[str, int]:
        return {
            "capacity": self.capacity,
            "shards": self.shard_count,
            "depth": self.depth(),
            "dropped": self._dropped,
        }

    def _record_drop(self, observation: Observation) -> None:
        """Record a dropped observation and log periodic warnings."""
        self.metrics.inc("dropped")
        with self._drop_lock:
            self._dropped += 1
            self._drops_since_last_warning += 1

            now = time.time()
            should_warn = (
                self._drops_since_last_warning >= _DROP_WARNING_THRESHOLD
                and (now - self._last_drop_warning_time) >= _DROP_WARNING_INTERVAL_SECONDS
            )
            if not should_warn:
                return
            recent = self._drops_since_last_warning
            self._drops_since_last_warning = 0
            self._last_drop_warning_time = now

        logger.warning(
            "Ingest queue saturated! capacity=%d, total_dropped=%d, recent_drops=%d, last_station=%s. "
            "Consider increasing WXHUB_QUEUE_CAPACITY or WXHUB_WORKER_COUNT.",
            self.capacity,
            self._dropped,
            recent,
            observation.station_id,
        )
