"""SQLite sink: idempotent upserts into ``observations``, ``archive`` and ``daily_summary``."""

from __future__ import annotations

import logging

from app.domain.exceptions import SinkUnavailable
from app.domain.weather.archive import ArchiveRecord, DailySummary
from app.domain.weather.observation import Observation
from app.pipeline.interfaces import ISink, OutputUnit, SinkResult, unit_kind
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler

logger = logging.getLogger(__name__)


class SqliteSink(ISink):
    """Persists every unit kind through the shared database handler."""

    name = "sqlite"

    def __init__(self, database: SQLiteDatabaseHandler | str) -> None:
        if isinstance(database, str):
            database = SQLiteDatabaseHandler(database)
        self.database = database
        self.database.create_tables()

    def write(self, unit: OutputUnit) -> SinkResult:
        if isinstance(unit, Observation):
            ok = self.database.upsert_observation(unit)
        elif isinstance(unit, ArchiveRecord):
            ok = self.database.upsert_archive(unit)
        elif isinstance(unit, DailySummary):
            ok = self.database.upsert_daily_summary(unit)
        else:
            raise TypeError(f"Unsupported output unit {type(unit).__name__}")

        if ok:
            return SinkResult.success()
        return SinkResult.failure(
            SinkUnavailable(f"sqlite write of {unit_kind(unit)} failed ({self.database.database_path})")
        )

    def close(self) -> None:
        # Runs on the channel's executor thread, which owns the write connection
        self.database.close()
