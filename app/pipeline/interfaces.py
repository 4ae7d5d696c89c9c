"""
Pipeline Interfaces
===================
Capability contracts for the three pipeline roles.

- Source: produces Observations and hands each one to ``emit``.
- Processor: one Observation in, zero or one Observation out
  (see ``app.pipeline.processors``).
- Sink: consumes one output unit for a side effect and reports a typed
  ``SinkResult``. Expected failures (connectivity, timeouts) are returned,
  never raised.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Union

from app.domain.exceptions import SinkError, SinkUnavailable
from app.domain.weather.archive import ArchiveRecord, DailySummary
from app.domain.weather.observation import Observation

OutputUnit = Union[Observation, ArchiveRecord, DailySummary]
Emit = Callable[[Observation], bool]


def unit_kind(unit: OutputUnit) -> str:
    """Short label used in logs, topics and file names."""
    if isinstance(unit, Observation):
        return "observation"
    if isinstance(unit, ArchiveRecord):
        return "archive"
    if isinstance(unit, DailySummary):
        return "daily"
    raise TypeError(f"Unsupported output unit {type(unit).__name__}")


class IObservationSource(ABC):
    """
    Abstract interface for observation sources.

    ``run`` blocks until ``stop_event`` is set or the source is exhausted.
    Push-based sources (HTTP) never run a loop and return immediately.
    """

    name: str = "source"

    @abstractmethod
    def run(self, emit: Emit, stop_event: threading.Event) -> None:
        """Produce observations until stopped or exhausted."""
        raise NotImplementedError()

    def close(self) -> None:
        """Release transport resources (optional override)."""
        return None


@dataclass(frozen=True)
class SinkResult:
    """Outcome of one ``ISink.write`` call."""

    ok: bool
    error: SinkError | None = None

    @classmethod
    def success(cls) -> "SinkResult":
        return cls(True)

    @classmethod
    def failure(cls, error: SinkError | str) -> "SinkResult":
        if isinstance(error, str):
            error = SinkUnavailable(error)
        return cls(False, error)

    @property
    def error_kind(self) -> str | None:
        return type(self.error).__name__ if self.error is not None else None


class ISink(ABC):
    """
    Abstract interface for persistence/forwarding backends.

    Each sink owns its connection state exclusively. The dispatcher calls
    ``write`` from a single thread per sink, so implementations do not need
    their own locking for that path.
    """

    name: str = "sink"

    @abstractmethod
    def write(self, unit: OutputUnit) -> SinkResult:
        """Persist or forward one unit. Never raises for expected failures."""
        raise NotImplementedError()

    def accepts(self, unit: OutputUnit) -> bool:
        """Whether this sink wants ``unit`` at all (optional override)."""
        return True

    def flush(self) -> None:
        """Push buffered data out (optional override)."""
        return None

    def close(self) -> None:
        """Release connections/handles (optional override)."""
        return None
