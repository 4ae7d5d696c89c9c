from __future__ import annotations

import json
import logging
import sqlite3
from datetime import date
from typing import Any

from app.domain.weather.archive import ArchiveRecord, DailySummary
from app.domain.weather.observation import Observation
from app.utils.time import iso_now, to_epoch

logger = logging.getLogger(__name__)


def _dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


class WeatherOperations:
    """Database operations for observations, archives and daily summaries.

    Writes are idempotent on the natural keys, so redelivering a unit after a
    retry replaces the row instead of duplicating it.
    """

    # --- Writes ----------------------------------------------------------------
    def upsert_observation(self, observation: Observation) -> bool:
        data = observation.to_dict()
        try:
            with self.connection() as db:
                db.execute(
                    """
                    INSERT OR REPLACE INTO observations
                        (station_id, epoch, timestamp, source, station_type, measurements, units, meta)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        observation.station_id,
                        observation.epoch,
                        data["timestamp"],
                        observation.source,
                        observation.station_type,
                        _dumps(data["measurements"]),
                        _dumps(data["units"]),
                        _dumps(data["meta"]),
                    ),
                )
            return True
        except sqlite3.Error as exc:
            logger.warning("WeatherOperations.upsert_observation failed: %s", exc)
            return False

    def upsert_archive(self, record: ArchiveRecord) -> bool:
        data = record.to_dict()
        try:
            with self.connection() as db:
                db.execute(
                    """
                    INSERT OR REPLACE INTO archive
                        (station_id, window_start, window_end, interval_seconds, observation_count, aggregates)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.station_id,
                        to_epoch(record.window_start),
                        to_epoch(record.window_end),
                        record.interval_seconds,
                        record.observation_count,
                        _dumps(data["aggregates"]),
                    ),
                )
            return True
        except sqlite3.Error as exc:
            logger.warning("WeatherOperations.upsert_archive failed: %s", exc)
            return False

    def upsert_daily_summary(self, summary: DailySummary) -> bool:
        data = summary.to_dict()
        try:
            with self.connection() as db:
                db.execute(
                    """
                    INSERT INTO daily_summary
                        (station_id, date, timezone, archive_count, observation_count,
                         first_window_start, last_window_end, aggregates, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(station_id, date) DO UPDATE SET
                        timezone = excluded.timezone,
                        archive_count = excluded.archive_count,
                        observation_count = excluded.observation_count,
                        first_window_start = excluded.first_window_start,
                        last_window_end = excluded.last_window_end,
                        aggregates = excluded.aggregates,
                        updated_at = excluded.updated_at
                    """,
                    (
                        summary.station_id,
                        data["date"],
                        summary.timezone,
                        summary.archive_count,
                        summary.observation_count,
                        data["first_window_start"],
                        data["last_window_end"],
                        _dumps(data["aggregates"]),
                        iso_now(),
                    ),
                )
            return True
        except sqlite3.Error as exc:
            logger.warning("WeatherOperations.upsert_daily_summary failed: %s", exc)
            return False

    # --- Reads -----------------------------------------------------------------
    def get_latest_observation(self, station_id: str | None = None) -> dict[str, Any] | None:
        rows = self.get_observations(station_id, limit=1)
        return rows[0] if rows else None

    def get_observations(self, station_id: str | None = None, limit: int = 100) -> list[dict[str, Any]]:
        try:
            db = self.get_db()
            if station_id:
                cur = db.execute(
                    "SELECT * FROM observations WHERE station_id = ? ORDER BY epoch DESC LIMIT ?",
                    (station_id, int(limit)),
                )
            else:
                cur = db.execute("SELECT * FROM observations ORDER BY epoch DESC LIMIT ?", (int(limit),))
            return [self._observation_row(row) for row in cur.fetchall()]
        except sqlite3.Error as exc:
            logger.debug("WeatherOperations.get_observations failed: %s", exc)
            return []

    def get_archives(self, station_id: str, start_epoch: int | None = None, end_epoch: int | None = None) -> list[dict[str, Any]]:
        conditions = ["station_id = ?"]
        params: list[Any] = [station_id]
        if start_epoch is not None:
            conditions.append("window_start >= ?")
            params.append(int(start_epoch))
        if end_epoch is not None:
            conditions.append("window_start < ?")
            params.append(int(end_epoch))
        query = "SELECT * FROM archive WHERE " + " AND ".join(conditions) + " ORDER BY window_start"
        try:
            cur = self.get_db().execute(query, params)
            rows = []
            for row in cur.fetchall():
                item = dict(row)
                item["aggregates"] = json.loads(item["aggregates"])
                rows.append(item)
            return rows
        except sqlite3.Error as exc:
            logger.debug("WeatherOperations.get_archives failed: %s", exc)
            return []

    def get_daily_summary(self, station_id: str, day: date | str) -> dict[str, Any] | None:
        key = day.isoformat() if isinstance(day, date) else str(day)
        try:
            cur = self.get_db().execute(
                "SELECT * FROM daily_summary WHERE station_id = ? AND date = ?",
                (station_id, key),
            )
            row = cur.fetchone()
        except sqlite3.Error as exc:
            logger.debug("WeatherOperations.get_daily_summary failed: %s", exc)
            return None
        if row is None:
            return None
        item = dict(row)
        item["aggregates"] = json.loads(item["aggregates"])
        return item

    def count_rows(self, table: str) -> int:
        if table not in ("observations", "archive", "daily_summary"):
            raise ValueError(f"Unknown table {table}")
        try:
            return int(self.get_db().execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0])
        except sqlite3.Error:
            return 0

    @staticmethod
    def _observation_row(row: sqlite3.Row) -> dict[str, Any]:
        item = dict(row)
        for key in ("measurements", "units", "meta"):
            item[key] = json.loads(item[key]) if item.get(key) else {}
        return item
