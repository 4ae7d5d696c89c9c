"""
Weather Query API
=================

Read-only views over the in-memory sink.

Routes:
- GET /api/v1/current?station_id= - Latest observation (204 when none yet)
- GET /api/v1/history?limit=&station_id= - Most recent observations, oldest first (limit <= 1000)
- GET /api/v1/archives?station_id= - Recently closed archive windows
- GET /api/v1/daily?station_id= - Current daily summaries
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response, request

from app.blueprints.api._common import get_memory_sink, parse_limit, success as _success
from app.utils.http import no_content, safe_route

logger = logging.getLogger("weather_api")

weather_api = Blueprint("weather_api", __name__, url_prefix="/api/v1")


def _station_filter() -> str | None:
    return request.args.get("station_id") or None


@weather_api.get("/current")
@safe_route("Failed to get current observation")
def get_current() -> Response:
    observation = get_memory_sink().latest(_station_filter())
    if observation is None:
        return no_content()
    return _success(observation.to_dict())


@weather_api.get("/history")
@safe_route("Failed to get observation history")
def get_history() -> Response:
    limit = parse_limit(request.args.get("limit"))
    observations = get_memory_sink().history(limit, _station_filter())
    return _success([obs.to_dict() for obs in observations])


@weather_api.get("/archives")
@safe_route("Failed to get archive records")
def get_archives() -> Response:
    limit = parse_limit(request.args.get("limit"))
    records = get_memory_sink().archives(_station_filter())
    records = records[-limit:] if limit else []
    return _success([record.to_dict() for record in records])


@weather_api.get("/daily")
@safe_route("Failed to get daily summaries")
def get_daily() -> Response:
    summaries = get_memory_sink().daily_summaries(_station_filter())
    return _success([summary.to_dict() for summary in summaries])
