"""
Base Protocol Adapter
=====================
Shared parsing contract for every wire format.

An adapter maps one inbound message to zero or one Observation. It never
raises on malformed input: bad fields are dropped one by one and reported as
diagnostics, and a message with no usable measurement produces nothing.

Subclasses declare which payload keys they understand and the unit each key
arrives in. Conversion to canonical units and range sanity happen here, once,
for every protocol.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Mapping

from app.domain.exceptions import ConversionOverflow, FieldError, InvariantViolation, ParseError, ValidationError
from app.domain.weather.fields import get_metric_spec
from app.domain.weather.observation import Observation
from app.domain.weather.units import Measurement, Unit, convert
from app.ingest.adapters.payload import DuplicateKeyPolicy, normalize_payload
from app.utils.time import parse_station_timestamp, utc_now

logger = logging.getLogger(__name__)

# Firmware placeholders for "sensor not fitted"
MISSING_SENTINELS = frozenset({"", "-9999", "-9999.0", "-9999.00", "n/a", "na", "null", "none", "--"})

FieldUnits = Mapping[str, tuple[str, Unit]]


@dataclass
class ParseOutcome:
    """Result of one adapter run: the observation (if any) plus every field issue."""

    observation: Observation | None
    issues: list[FieldError] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return self.observation is not None

    def issue_kinds(self) -> list[str]:
        return [issue.kind for issue in self.issues]


@dataclass(frozen=True)
class ChannelField:
    """Numbered sensor channel, e.g. ``temp3f`` -> ``temperature_3`` in °F."""

    pattern: re.Pattern
    metric: str
    unit: Unit

    def match(self, key: str) -> str | None:
        found = self.pattern.match(key)
        if not found:
            return None
        return f"{self.metric}_{int(found.group(1))}"


class MeasurementCollector:
    """
    Accumulates canonical measurements for one message.

    The first key that fills a metric wins, so adapters list preferred keys
    first (``baromrelin`` before ``baromin``).
    """

    def __init__(self, issues: list[FieldError]) -> None:
        self.issues = issues
        self.measurements: dict[str, Measurement] = {}

    def number(self, key: str, raw: str | None) -> float | None:
        if raw is None:
            return None
        text = raw.strip()
        if text.lower() in MISSING_SENTINELS:
            return None
        try:
            return float(text)
        except ValueError:
            self.issues.append(ParseError(key, f"not a number: {text!r}", raw=text))
            return None

    def add(self, metric: str, value: float | None, unit: Unit, *, key: str) -> bool:
        if value is None or metric in self.measurements:
            return False

        spec = get_metric_spec(metric)
        if spec is None:
            raise InvariantViolation(f"Adapter mapped {key!r} to unregistered metric {metric!r}")

        try:
            measurement = Measurement(convert(value, unit, spec.unit, field=metric), spec.unit)
        except ConversionOverflow as exc:
            self.issues.append(exc)
            return False

        if not spec.in_range(measurement.value):
            self.issues.append(
                ValidationError(metric, f"{measurement.value:g} outside [{spec.min_value}, {spec.max_value}]", raw=value)
            )
            return False

        self.measurements[metric] = measurement
        return True


class IProtocolAdapter(ABC):
    """
    Abstract interface for wire-format adapters.

    Required:
        - resolve_station_id(): Pick the station identity from the payload

    Optional hooks:
        - decode(): Turn the transport payload into a flat mapping
        - accepts(): Reject whole messages (e.g. wrong WU action)
        - field_units(): Per-message unit table (UDP usUnits)
        - extract_meta(): Non-numeric metadata
    """

    protocol_name: str = "unknown"
    FIELD_UNITS: FieldUnits = {}
    CHANNEL_FIELDS: tuple[ChannelField, ...] = ()
    META_KEYS: frozenset[str] = frozenset()
    META_PATTERN: re.Pattern | None = None
    TIMESTAMP_KEY: str = "dateutc"
    STATION_TYPE_KEY: str | None = None

    def __init__(
        self,
        *,
        default_station_id: str = "default",
        duplicate_policy: DuplicateKeyPolicy | str = DuplicateKeyPolicy.LAST_WINS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.default_station_id = default_station_id
        self.duplicate_policy = DuplicateKeyPolicy(duplicate_policy)
        self._clock = clock

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def resolve_station_id(self, fields: Mapping[str, str]) -> str | None:
        """Return the station id carried by the payload, or None."""
        raise NotImplementedError()

    def decode(self, payload: Any) -> dict[str, str]:
        """Flatten the transport payload. Raise ParseError if it is unreadable."""
        return normalize_payload(payload, self.duplicate_policy)

    def accepts(self, fields: Mapping[str, str]) -> bool:
        return True

    def field_units(self, fields: Mapping[str, str]) -> FieldUnits:
        return self.FIELD_UNITS

    def extract_meta(self, fields: Mapping[str, str]) -> dict[str, Any]:
        meta: dict[str, Any] = {}
        for key, value in fields.items():
            if key in self.META_KEYS or (self.META_PATTERN is not None and self.META_PATTERN.search(key)):
                meta[key] = value
        return meta

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse(self, payload: Any) -> Observation | None:
        """Map one message to zero or one Observation."""
        return self.parse_with_diagnostics(payload).observation

    def parse_with_diagnostics(self, payload: Any) -> ParseOutcome:
        received_at = self._clock()
        issues: list[FieldError] = []

        try:
            fields = self.decode(payload)
        except ParseError as exc:
            logger.debug("%s payload undecodable: %s", self.protocol_name, exc)
            return ParseOutcome(None, [exc])

        if not fields or not self.accepts(fields):
            return ParseOutcome(None, issues)

        collector = MeasurementCollector(issues)
        for key, (metric, unit) in self.field_units(fields).items():
            if key in fields:
                collector.add(metric, collector.number(key, fields[key]), unit, key=key)

        for key, raw in fields.items():
            for channel_field in self.CHANNEL_FIELDS:
                metric = channel_field.match(key)
                if metric is not None:
                    collector.add(metric, collector.number(key, raw), channel_field.unit, key=key)
                    break

        if issues:
            logger.debug(
                "%s dropped %d field(s): %s",
                self.protocol_name,
                len(issues),
                ", ".join(f"{i.field}:{i.kind}" for i in issues),
            )

        if not collector.measurements:
            return ParseOutcome(None, issues)

        observation = Observation(
            station_id=self.resolve_station_id(fields) or self.default_station_id,
            timestamp=parse_station_timestamp(fields.get(self.TIMESTAMP_KEY), received_at),
            measurements=collector.measurements,
            source=self.protocol_name,
            station_type=fields.get(self.STATION_TYPE_KEY) if self.STATION_TYPE_KEY else None,
            meta=self.extract_meta(fields),
            received_at=received_at,
        )
        return ParseOutcome(observation, issues)


def channel(pattern: str, metric: str, unit: Unit) -> ChannelField:
    return ChannelField(re.compile(pattern), metric, unit)
