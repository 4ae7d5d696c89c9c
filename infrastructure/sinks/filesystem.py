"""
JSON Lines sink.

One file per output kind and UTC day::

    <directory>/observation-2024-05-01.jsonl
    <directory>/archive-2024-05-01.jsonl
    <directory>/daily-2024-05-01.jsonl

Daily summaries are appended each time they are recomputed; readers keep the
last line per ``(station_id, date)``.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import timezone
from pathlib import Path

from app.domain.exceptions import SinkUnavailable
from app.domain.weather.archive import ArchiveRecord, DailySummary
from app.domain.weather.observation import Observation
from app.pipeline.interfaces import ISink, OutputUnit, SinkResult, unit_kind

logger = logging.getLogger(__name__)


def _file_day(unit: OutputUnit) -> str:
    if isinstance(unit, Observation):
        return unit.timestamp.astimezone(timezone.utc).date().isoformat()
    if isinstance(unit, ArchiveRecord):
        return unit.window_start.astimezone(timezone.utc).date().isoformat()
    if isinstance(unit, DailySummary):
        return unit.date.isoformat()
    raise TypeError(f"Unsupported output unit {type(unit).__name__}")


class FilesystemSink(ISink):
    """Appends each unit as one JSON line."""

    name = "filesystem"

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self._lock = threading.Lock()

    def path_for(self, unit: OutputUnit) -> Path:
        return self.directory / f"{unit_kind(unit)}-{_file_day(unit)}.jsonl"

    def write(self, unit: OutputUnit) -> SinkResult:
        line = json.dumps(unit.to_dict(), sort_keys=True, separators=(",", ":"))
        path = self.path_for(unit)
        try:
            with self._lock:
                self.directory.mkdir(parents=True, exist_ok=True)
                with path.open("a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
        except OSError as exc:
            logger.warning("Filesystem sink could not write %s: %s", path, exc)
            return SinkResult.failure(SinkUnavailable(f"{path}: {exc}"))
        return SinkResult.success()
