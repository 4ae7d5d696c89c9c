"""
Time-series sink speaking the InfluxDB v2 line protocol over HTTP.

Observations go to ``<measurement>``, archive records to
``<measurement>_archive`` and daily summaries to ``<measurement>_daily``.
Every line is tagged with ``station``; archive and daily fields are
flattened as ``<metric>_avg``, ``<metric>_min`` and so on. Daily lines are
stamped with local midnight so a recomputed summary overwrites its
predecessor.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, time
from typing import Iterable

import requests

from app.domain.exceptions import SinkRejected, SinkTimeout, SinkUnavailable
from app.domain.weather.archive import Aggregate, ArchiveRecord, DailySummary
from app.domain.weather.observation import Observation
from app.pipeline.interfaces import ISink, OutputUnit, SinkResult
from app.utils.time import resolve_timezone

logger = logging.getLogger(__name__)

_AGGREGATE_FIELDS = ("avg", "min", "max", "sum")


def escape_key(value: str) -> str:
    """Escape a measurement name, tag key/value or field key."""
    return value.replace("\\", "\\\\").replace(",", "\\,").replace("=", "\\=").replace(" ", "\\ ")


def _format_value(value: float | int) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"{value}i"
    return repr(float(value))


def format_line(measurement: str, tags: dict[str, str], fields: Iterable[tuple[str, float | int]], epoch: int) -> str | None:
    """Render one line; returns None when no finite field is left."""
    rendered = [
        f"{escape_key(key)}={_format_value(value)}"
        for key, value in fields
        if value is not None and (isinstance(value, int) or math.isfinite(value))
    ]
    if not rendered:
        return None
    tag_str = "".join(f",{escape_key(k)}={escape_key(v)}" for k, v in sorted(tags.items()) if v)
    return f"{escape_key(measurement)}{tag_str} {','.join(rendered)} {int(epoch)}"


def _aggregate_fields(aggregates: dict[str, Aggregate] | object) -> list[tuple[str, float | int]]:
    fields: list[tuple[str, float | int]] = []
    for metric in sorted(aggregates):  # type: ignore[arg-type]
        aggregate = aggregates[metric]  # type: ignore[index]
        for attr in _AGGREGATE_FIELDS:
            value = getattr(aggregate, attr)
            if value is not None:
                fields.append((f"{metric}_{attr}", float(value)))
    return fields


class TimeSeriesSink(ISink):
    """Writes one line per unit to ``{url}/api/v2/write``."""

    name = "timeseries"

    def __init__(
        self,
        url: str,
        org: str,
        bucket: str,
        token: str = "",
        *,
        measurement: str = "weather",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        if not url or not org or not bucket:
            raise ValueError("TimeSeriesSink requires url, org and bucket")
        self.url = url.rstrip("/")
        self.org = org
        self.bucket = bucket
        self.measurement = measurement
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "text/plain; charset=utf-8"})
        if token:
            self.session.headers.update({"Authorization": f"Bearer {token}"})

    @property
    def write_url(self) -> str:
        return f"{self.url}/api/v2/write"

    def to_line(self, unit: OutputUnit) -> str | None:
        if isinstance(unit, Observation):
            fields = [(name, float(m.value)) for name, m in sorted(unit.measurements.items())]
            interval = unit.meta.get("interval")
            if isinstance(interval, int) and not isinstance(interval, bool):
                fields.append(("interval", interval))
            return format_line(self.measurement, {"station": unit.station_id}, fields, unit.epoch)

        if isinstance(unit, ArchiveRecord):
            fields = _aggregate_fields(unit.aggregates)
            fields.append(("observation_count", int(unit.observation_count)))
            return format_line(
                f"{self.measurement}_archive",
                {"station": unit.station_id},
                fields,
                int(unit.window_start.timestamp()),
            )

        if isinstance(unit, DailySummary):
            fields = _aggregate_fields(unit.aggregates)
            fields.append(("archive_count", int(unit.archive_count)))
            fields.append(("observation_count", int(unit.observation_count)))
            midnight = datetime.combine(unit.date, time(0), tzinfo=resolve_timezone(unit.timezone))
            return format_line(
                f"{self.measurement}_daily",
                {"station": unit.station_id},
                fields,
                int(midnight.timestamp()),
            )

        raise TypeError(f"Unsupported output unit {type(unit).__name__}")

    def write(self, unit: OutputUnit) -> SinkResult:
        line = self.to_line(unit)
        if line is None:
            return SinkResult.success()

        params = {"org": self.org, "bucket": self.bucket, "precision": "s"}
        try:
            response = self.session.post(self.write_url, params=params, data=line.encode("utf-8"), timeout=self.timeout)
        except requests.exceptions.Timeout:
            return SinkResult.failure(SinkTimeout(f"time-series write timed out after {self.timeout}s"))
        except requests.exceptions.ConnectionError as exc:
            return SinkResult.failure(SinkUnavailable(f"time-series backend unreachable: {exc}"))
        except requests.exceptions.RequestException as exc:
            return SinkResult.failure(SinkUnavailable(f"time-series request failed: {exc}"))

        status = response.status_code
        if 200 <= status < 300:
            return SinkResult.success()

        message = f"time-series write failed: {status} {response.text[:200]}"
        if status == 429 or status >= 500:
            return SinkResult.failure(SinkUnavailable(message, detail={"status": status}))
        logger.error("Time-series backend rejected %s line: %s", type(unit).__name__, message)
        return SinkResult.failure(SinkRejected(message, detail={"status": status}))

    def close(self) -> None:
        self.session.close()
