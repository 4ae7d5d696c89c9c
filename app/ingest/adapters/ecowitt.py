"""
Ecowitt Adapter
===============

Parses the "customized upload" form posted by Ecowitt/Fine Offset gateways
(GW1000/GW2000, HP2551 ...). Values arrive in imperial units.

Example payload::

    PASSKEY=ABC123&stationtype=GW2000A_V2.1.4&dateutc=2024-05-01+12:00:00
    &tempf=72.5&humidity=45&baromrelin=29.92&windspeedmph=3.4&winddir=180
    &dailyrainin=0.12&temp1f=70.1&soilmoisture1=33&wh65batt=0
"""

from __future__ import annotations

import re
from typing import Mapping

from app.domain.weather.fields import WeatherField as F
from app.domain.weather.units import Unit
from app.ingest.adapters.base import IProtocolAdapter, channel


class EcowittAdapter(IProtocolAdapter):
    """Ecowitt-style query string / form adapter."""

    protocol_name = "ecowitt"
    STATION_TYPE_KEY = "stationtype"

    # Preferred key first when two keys fill one metric.
    FIELD_UNITS = {
        "tempf": (F.TEMPERATURE.value, Unit.FAHRENHEIT),
        "humidity": (F.HUMIDITY.value, Unit.PERCENT),
        "baromrelin": (F.PRESSURE.value, Unit.INCH_HG),
        "baromin": (F.PRESSURE.value, Unit.INCH_HG),
        "baromabsin": (F.PRESSURE_ABSOLUTE.value, Unit.INCH_HG),
        "windspeedmph": (F.WIND_SPEED.value, Unit.MILES_PER_HOUR),
        "windgustmph": (F.WIND_GUST.value, Unit.MILES_PER_HOUR),
        "maxdailygust": (F.MAX_DAILY_GUST.value, Unit.MILES_PER_HOUR),
        "winddir": (F.WIND_DIRECTION.value, Unit.DEGREES),
        "rainratein": (F.RAIN_RATE.value, Unit.INCH_PER_HOUR),
        # Older firmware reports the current rate as plain "rainin"
        "rainin": (F.RAIN_RATE.value, Unit.INCH_PER_HOUR),
        "eventrainin": (F.RAIN_EVENT.value, Unit.INCH),
        "hourlyrainin": (F.RAIN_HOURLY.value, Unit.INCH),
        "dailyrainin": (F.RAIN_DAILY.value, Unit.INCH),
        "weeklyrainin": (F.RAIN_WEEKLY.value, Unit.INCH),
        "monthlyrainin": (F.RAIN_MONTHLY.value, Unit.INCH),
        "yearlyrainin": (F.RAIN_YEARLY.value, Unit.INCH),
        "totalrainin": (F.RAIN_TOTAL.value, Unit.INCH),
        "solarradiation": (F.SOLAR_RADIATION.value, Unit.WATTS_PER_SQUARE_METER),
        "uv": (F.UV_INDEX.value, Unit.UV_INDEX),
        "tempinf": (F.INDOOR_TEMPERATURE.value, Unit.FAHRENHEIT),
        "humidityin": (F.INDOOR_HUMIDITY.value, Unit.PERCENT),
        "pm25_ch1": (F.PM25.value, Unit.MICROGRAMS_PER_CUBIC_METER),
        "pm10_ch1": (F.PM10.value, Unit.MICROGRAMS_PER_CUBIC_METER),
    }

    CHANNEL_FIELDS = (
        channel(r"^temp(\d{1,2})f$", "temperature", Unit.FAHRENHEIT),
        channel(r"^humidity(\d{1,2})$", "humidity", Unit.PERCENT),
        channel(r"^soilmoisture(\d{1,2})$", "soil_moisture", Unit.PERCENT),
        channel(r"^tf_ch(\d{1,2})$", "soil_temperature", Unit.FAHRENHEIT),
        channel(r"^leafwetness_ch(\d{1,2})$", "leaf_wetness", Unit.PERCENT),
    )

    META_KEYS = frozenset({"stationtype", "model", "freq", "runtime", "heap", "interval"})
    META_PATTERN = re.compile(r"batt")

    def resolve_station_id(self, fields: Mapping[str, str]) -> str | None:
        return fields.get("passkey") or fields.get("stationtype") or None
