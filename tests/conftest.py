"""
Shared test fixtures for the WXHub test suite.

Provides:
- In-memory SQLite database with all tables created
- Observation factory building canonical observations from plain values
- A Mock event bus for components that publish lifecycle events
- Pipeline config tuned for fast tests

Usage:
    def test_example(make_obs, db_handler):
        obs = make_obs(temperature=21.5, humidity=40)
        assert obs.value("temperature") == 21.5
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from unittest.mock import MagicMock

import pytest

from app.config import AppConfig
from app.domain.weather.fields import get_metric_spec
from app.domain.weather.observation import Observation
from app.domain.weather.units import Measurement, Unit
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler

# ---------------------------------------------------------------------------
# Logging: keep test output clean
# ---------------------------------------------------------------------------
logging.getLogger("infrastructure").setLevel(logging.WARNING)
logging.getLogger("app").setLevel(logging.WARNING)

BASE_TIME = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


# ========================== Database Fixtures ==============================


@pytest.fixture()
def db_handler():
    """In-memory SQLite database with all tables created.

    Each test gets a fresh database.
    """
    handler = SQLiteDatabaseHandler(":memory:")
    handler.create_tables()
    yield handler
    handler.close()


# ========================== Domain Fixtures ================================


def _measurement(name: str, value: float) -> Measurement:
    spec = get_metric_spec(name)
    unit = spec.unit if spec is not None else Unit.PERCENT
    return Measurement(float(value), unit)


@pytest.fixture()
def make_obs():
    """Factory for canonical observations.

    ``make_obs(temperature=20, offset=60)`` builds an observation for station
    ``ST1`` stamped ``offset`` seconds after BASE_TIME.
    """

    def _make(
        station_id: str = "ST1",
        offset: float = 0,
        *,
        timestamp: datetime | None = None,
        source: str = "test",
        meta: dict[str, Any] | None = None,
        **values: float,
    ) -> Observation:
        ts = timestamp or datetime.fromtimestamp(BASE_TIME.timestamp() + offset, tz=timezone.utc)
        return Observation(
            station_id=station_id,
            timestamp=ts,
            measurements={name: _measurement(name, value) for name, value in values.items()},
            source=source,
            meta=meta or {},
        )

    return _make


@pytest.fixture()
def base_time() -> datetime:
    return BASE_TIME


# ========================== Service Fixtures ===============================


@pytest.fixture()
def mock_event_bus():
    """Mock EventBus recording publish calls."""
    bus = MagicMock()
    bus.publish = MagicMock()
    bus.subscribe = MagicMock(return_value=lambda: None)
    return bus


@pytest.fixture()
def pipeline_config(tmp_path):
    """AppConfig with small windows, no network sinks and no log file."""
    config = AppConfig()
    config.log_path = None
    config.sinks = ["memory"]
    config.udp_enabled = False
    config.simulator_enabled = False
    config.archive_interval_seconds = 300
    config.archive_tick_seconds = 0.05
    config.archive_close_delay_seconds = 0.0
    config.worker_count = 2
    config.queue_capacity = 100
    config.sink_max_attempts = 2
    config.sink_backoff_base_seconds = 0.01
    config.sink_backoff_max_seconds = 0.05
    config.sink_timeout_seconds = 1.0
    config.shutdown_deadline_seconds = 5.0
    config.fs_sink_dir = str(tmp_path / "archive")
    config.sqlite_path = str(tmp_path / "wxhub.db")
    return config
