"""
Weather Underground Adapter
===========================

Parses the classic WU "updateraw" protocol many consoles and bridges speak
(``/weatherstation/updateweatherstation.php``). The station password is
checked by nothing and stored nowhere.
"""

from __future__ import annotations

import re
from typing import Mapping

from app.domain.weather.fields import WeatherField as F
from app.domain.weather.units import Unit
from app.ingest.adapters.base import IProtocolAdapter, channel


class WundergroundAdapter(IProtocolAdapter):
    """Weather-Underground-style query string adapter."""

    protocol_name = "wunderground"
    ACCEPTED_ACTIONS = frozenset({"updateraw"})

    FIELD_UNITS = {
        "tempf": (F.TEMPERATURE.value, Unit.FAHRENHEIT),
        "tempc": (F.TEMPERATURE.value, Unit.CELSIUS),
        "humidity": (F.HUMIDITY.value, Unit.PERCENT),
        "dewptf": (F.DEW_POINT.value, Unit.FAHRENHEIT),
        "baromin": (F.PRESSURE.value, Unit.INCH_HG),
        "baromhpa": (F.PRESSURE.value, Unit.HECTOPASCAL),
        "windspeedmph": (F.WIND_SPEED.value, Unit.MILES_PER_HOUR),
        "windgustmph": (F.WIND_GUST.value, Unit.MILES_PER_HOUR),
        "winddir": (F.WIND_DIRECTION.value, Unit.DEGREES),
        "windgustdir": (F.WIND_GUST_DIRECTION.value, Unit.DEGREES),
        # WU "rainin" is the accumulation over the past hour
        "rainin": (F.RAIN_HOURLY.value, Unit.INCH),
        "dailyrainin": (F.RAIN_DAILY.value, Unit.INCH),
        "weeklyrainin": (F.RAIN_WEEKLY.value, Unit.INCH),
        "monthlyrainin": (F.RAIN_MONTHLY.value, Unit.INCH),
        "yearlyrainin": (F.RAIN_YEARLY.value, Unit.INCH),
        "solarradiation": (F.SOLAR_RADIATION.value, Unit.WATTS_PER_SQUARE_METER),
        "uv": (F.UV_INDEX.value, Unit.UV_INDEX),
        "indoortempf": (F.INDOOR_TEMPERATURE.value, Unit.FAHRENHEIT),
        "indoorhumidity": (F.INDOOR_HUMIDITY.value, Unit.PERCENT),
        "soiltempf": (F.SOIL_TEMPERATURE.value, Unit.FAHRENHEIT),
        "soilmoisture": (F.SOIL_MOISTURE.value, Unit.PERCENT),
        "aqpm2.5": (F.PM25.value, Unit.MICROGRAMS_PER_CUBIC_METER),
        "aqpm10": (F.PM10.value, Unit.MICROGRAMS_PER_CUBIC_METER),
    }

    CHANNEL_FIELDS = (
        channel(r"^temp(\d{1,2})f$", "temperature", Unit.FAHRENHEIT),
        channel(r"^soiltemp(\d{1,2})f$", "soil_temperature", Unit.FAHRENHEIT),
        channel(r"^soilmoisture(\d{1,2})$", "soil_moisture", Unit.PERCENT),
        channel(r"^leafwetness(\d{1,2})$", "leaf_wetness", Unit.PERCENT),
    )

    META_KEYS = frozenset({"softwaretype", "realtime", "rtfreq"})
    META_PATTERN = re.compile(r"batt")

    def accepts(self, fields: Mapping[str, str]) -> bool:
        action = fields.get("action")
        return action is None or action.lower() in self.ACCEPTED_ACTIONS

    def resolve_station_id(self, fields: Mapping[str, str]) -> str | None:
        return fields.get("id") or None
