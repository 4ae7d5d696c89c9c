"""
In-process counters for the pipeline.

Both classes implement the metrics interface used by services
(``inc``/``observe``). ``PipelineCounters`` keeps totals in memory so the
health blueprint (or a future exporter) can read them; ``NoOpMetrics`` is the
default where nobody is listening.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import Any


def _series_key(name: str, labels: dict[str, Any]) -> str:
    if not labels:
        return name
    rendered = ",".join(f"{key}={labels[key]}" for key in sorted(labels))
    return f"{name}{{{rendered}}}"


class NoOpMetrics:
    """Default no-op implementation for the metrics interface."""

    def inc(self, name: str, value: int = 1, **labels: Any) -> None:
        """No-op increment."""
        return

    def observe(self, name: str, value: float, **labels: Any) -> None:
        """No-op observation."""
        return

    def get(self, name: str, **labels: Any) -> int:
        return 0

    def snapshot(self) -> dict[str, Any]:
        return {}


class PipelineCounters(NoOpMetrics):
    """Thread-safe counters and simple latency summaries."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[str, int] = defaultdict(int)
        self._observations: dict[str, dict[str, float]] = {}

    def inc(self, name: str, value: int = 1, **labels: Any) -> None:
        key = _series_key(name, labels)
        with self._lock:
            self._counters[key] += value

    def observe(self, name: str, value: float, **labels: Any) -> None:
        key = _series_key(name, labels)
        with self._lock:
            summary = self._observations.get(key)
            if summary is None:
                summary = {"count": 0, "sum": 0.0, "max": value}
                self._observations[key] = summary
            summary["count"] += 1
            summary["sum"] += value
            summary["max"] = max(summary["max"], value)

    def get(self, name: str, **labels: Any) -> int:
        with self._lock:
            return self._counters.get(_series_key(name, labels), 0)

    def total(self, name: str) -> int:
        """Sum of a counter across all label sets."""
        prefix = name + "{"
        with self._lock:
            return sum(v for k, v in self._counters.items() if k == name or k.startswith(prefix))

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(sorted(self._counters.items())),
                "latency": {k: dict(v) for k, v in sorted(self._observations.items())},
            }
