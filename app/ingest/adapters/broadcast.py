"""
Broadcast (UDP) Adapter
=======================

Decodes one datagram from a local-network device into at most one
Observation. Two framings are understood:

JSON packet (weewx-style, as emitted by interceptor bridges)::

    {"dateTime": 1714564800, "station": "backyard", "interval": 60,
     "usUnits": 1, "outTemp": 72.5, "outHumidity": 45, "barometer": 29.92,
     "windSpeed": 3.4, "windDir": 180, "rain": 0.01}

``usUnits`` selects the unit system: 1 = US, 16 = METRIC, 17 = METRICWX.

Compact binary frame (big-endian)::

    offset  size  field
    0       2     magic  b"WX"
    2       1     version (1)
    3       1     field count N
    4       16    station id, ASCII, NUL padded
    20      4     epoch seconds (u32)
    24      5*N   N x (field id u8, value i32 scaled by 100)

Binary values are already in canonical units; ``0x7FFFFFFF`` marks an absent
field and unknown field ids are skipped.
"""

from __future__ import annotations

import json
import logging
import struct
from datetime import datetime
from typing import Any, Mapping

from app.domain.exceptions import ParseError
from app.domain.weather.fields import WeatherField as F
from app.domain.weather.fields import get_metric_spec
from app.domain.weather.units import Unit
from app.ingest.adapters.base import FieldUnits, IProtocolAdapter
from app.utils.time import to_epoch

logger = logging.getLogger(__name__)

FRAME_MAGIC = b"WX"
FRAME_VERSION = 1
FRAME_HEADER = struct.Struct(">2sBB16sI")
FRAME_ENTRY = struct.Struct(">Bi")
FRAME_SCALE = 100.0
FRAME_ABSENT = 0x7FFFFFFF

# Binary field ids -> metric (canonical units)
FRAME_FIELDS: dict[int, str] = {
    1: F.TEMPERATURE.value,
    2: F.HUMIDITY.value,
    3: F.PRESSURE.value,
    4: F.WIND_SPEED.value,
    5: F.WIND_GUST.value,
    6: F.WIND_DIRECTION.value,
    7: F.RAIN_RATE.value,
    8: F.RAIN_DAILY.value,
    9: F.RAIN_TOTAL.value,
    10: F.SOLAR_RADIATION.value,
    11: F.UV_INDEX.value,
    12: F.INDOOR_TEMPERATURE.value,
    13: F.INDOOR_HUMIDITY.value,
    14: F.RAIN.value,
    15: F.PRESSURE_ABSOLUTE.value,
}
FRAME_IDS: dict[str, int] = {metric: field_id for field_id, metric in FRAME_FIELDS.items()}

US_UNITS = 1
METRIC_UNITS = 16
METRICWX_UNITS = 17

# weewx observation type -> (metric, quantity slot)
_PACKET_FIELDS: dict[str, tuple[str, str]] = {
    "outtemp": (F.TEMPERATURE.value, "temperature"),
    "outhumidity": (F.HUMIDITY.value, "percent"),
    "barometer": (F.PRESSURE.value, "pressure"),
    "pressure": (F.PRESSURE_ABSOLUTE.value, "pressure"),
    "windspeed": (F.WIND_SPEED.value, "speed"),
    "windgust": (F.WIND_GUST.value, "speed"),
    "winddir": (F.WIND_DIRECTION.value, "direction"),
    "windgustdir": (F.WIND_GUST_DIRECTION.value, "direction"),
    "rain": (F.RAIN.value, "rain"),
    "rainrate": (F.RAIN_RATE.value, "rain_rate"),
    "dayrain": (F.RAIN_DAILY.value, "rain"),
    "radiation": (F.SOLAR_RADIATION.value, "irradiance"),
    "uv": (F.UV_INDEX.value, "index"),
    "intemp": (F.INDOOR_TEMPERATURE.value, "temperature"),
    "inhumidity": (F.INDOOR_HUMIDITY.value, "percent"),
    "dewpoint": (F.DEW_POINT.value, "temperature"),
    "soiltemp1": ("soil_temperature_1", "temperature"),
    "soilmoist1": ("soil_moisture_1", "percent"),
}

_UNIT_SYSTEMS: dict[int, dict[str, Unit]] = {
    US_UNITS: {
        "temperature": Unit.FAHRENHEIT,
        "pressure": Unit.INCH_HG,
        "speed": Unit.MILES_PER_HOUR,
        "rain": Unit.INCH,
        "rain_rate": Unit.INCH_PER_HOUR,
    },
    METRIC_UNITS: {
        "temperature": Unit.CELSIUS,
        "pressure": Unit.HECTOPASCAL,
        "speed": Unit.KILOMETERS_PER_HOUR,
        "rain": Unit.CENTIMETER,
        "rain_rate": Unit.CENTIMETER_PER_HOUR,
    },
    METRICWX_UNITS: {
        "temperature": Unit.CELSIUS,
        "pressure": Unit.HECTOPASCAL,
        "speed": Unit.METERS_PER_SECOND,
        "rain": Unit.MILLIMETER,
        "rain_rate": Unit.MILLIMETER_PER_HOUR,
    },
}
_FIXED_UNITS = {
    "percent": Unit.PERCENT,
    "direction": Unit.DEGREES,
    "irradiance": Unit.WATTS_PER_SQUARE_METER,
    "index": Unit.UV_INDEX,
}

_FORMAT_KEY = "__format__"


def _packet_units(system: int) -> FieldUnits:
    units = {**_FIXED_UNITS, **_UNIT_SYSTEMS[system]}
    return {key: (metric, units[slot]) for key, (metric, slot) in _PACKET_FIELDS.items()}


_PACKET_UNITS: dict[int, FieldUnits] = {system: _packet_units(system) for system in _UNIT_SYSTEMS}
_FRAME_UNITS: FieldUnits = {metric: (metric, get_metric_spec(metric).unit) for metric in FRAME_FIELDS.values()}


class BroadcastAdapter(IProtocolAdapter):
    """UDP datagram adapter (JSON packet or compact binary frame)."""

    protocol_name = "broadcast"
    TIMESTAMP_KEY = "datetime"
    META_KEYS = frozenset({"interval", "usunits"})

    def decode(self, payload: Any) -> dict[str, str]:
        if isinstance(payload, Mapping):
            return self._decode_packet(dict(payload))
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        if not isinstance(payload, (bytes, bytearray)):
            raise ParseError("datagram", f"unsupported payload type {type(payload).__name__}")

        data = bytes(payload)
        if data.startswith(FRAME_MAGIC):
            return self._decode_frame(data)
        if data.lstrip().startswith(b"{"):
            try:
                packet = json.loads(data.decode("utf-8"))
            except (UnicodeDecodeError, ValueError) as exc:
                raise ParseError("datagram", f"invalid JSON packet: {exc}") from None
            except RecursionError:
                raise ParseError("datagram", "JSON packet nested too deeply") from None
            if not isinstance(packet, dict):
                raise ParseError("datagram", "JSON packet is not an object")
            return self._decode_packet(packet)
        raise ParseError("datagram", "unrecognized datagram framing")

    def field_units(self, fields: Mapping[str, str]) -> FieldUnits:
        if fields.get(_FORMAT_KEY) == "binary":
            return _FRAME_UNITS
        try:
            system = int(float(fields.get("usunits", US_UNITS)))
        except (ValueError, OverflowError):
            system = US_UNITS
        if system not in _PACKET_UNITS:
            logger.debug("Unknown usUnits %s, assuming US units", system)
            system = US_UNITS
        return _PACKET_UNITS[system]

    def resolve_station_id(self, fields: Mapping[str, str]) -> str | None:
        return fields.get("station") or None

    # ------------------------------------------------------------------

    def _decode_packet(self, packet: dict[str, Any]) -> dict[str, str]:
        fields = {
            str(key).strip().lower(): str(value).strip()
            for key, value in packet.items()
            if value is not None and not isinstance(value, (dict, list))
        }
        fields[_FORMAT_KEY] = "json"
        return fields

    def _decode_frame(self, data: bytes) -> dict[str, str]:
        if len(data) < FRAME_HEADER.size:
            raise ParseError("datagram", f"frame too short ({len(data)} bytes)")

        magic, version, count, raw_station, epoch = FRAME_HEADER.unpack_from(data, 0)
        if version != FRAME_VERSION:
            raise ParseError("version", f"unsupported frame version {version}", raw=version)
        expected = FRAME_HEADER.size + count * FRAME_ENTRY.size
        if len(data) < expected:
            raise ParseError("datagram", f"frame truncated: {len(data)} < {expected} bytes")

        station = raw_station.rstrip(b"\x00").decode("ascii", errors="replace").strip()
        fields: dict[str, str] = {_FORMAT_KEY: "binary", "datetime": str(epoch)}
        if station:
            fields["station"] = station

        offset = FRAME_HEADER.size
        for _ in range(count):
            field_id, raw_value = FRAME_ENTRY.unpack_from(data, offset)
            offset += FRAME_ENTRY.size
            metric = FRAME_FIELDS.get(field_id)
            if metric is None or raw_value == FRAME_ABSENT:
                continue
            fields[metric] = repr(raw_value / FRAME_SCALE)
        return fields


def encode_broadcast_frame(station_id: str, timestamp: datetime, values: Mapping[str, float]) -> bytes:
    """Build a binary frame. Values must be canonical; unknown metrics raise KeyError."""
    entries = [
        FRAME_ENTRY.pack(FRAME_IDS[metric], FRAME_ABSENT if value is None else int(round(value * FRAME_SCALE)))
        for metric, value in values.items()
    ]
    station = station_id.encode("ascii", errors="replace")[:16].ljust(16, b"\x00")
    header = FRAME_HEADER.pack(FRAME_MAGIC, FRAME_VERSION, len(entries), station, to_epoch(timestamp))
    return header + b"".join(entries)
