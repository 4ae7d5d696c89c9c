"""
System Health Endpoints
=======================

Core pipeline health endpoints.
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response

from app.blueprints.api._common import (
    fail as _fail,
    get_runtime as _runtime,
    success as _success,
)
from app.utils.event_bus import EventBus
from app.utils.http import safe_route
from app.utils.time import iso_now

logger = logging.getLogger("health_api")


def register_system_routes(health_api: Blueprint):
    """Register system health routes on the blueprint."""

    @health_api.get("/ping")
    @safe_route("Failed to handle ping request")
    def ping() -> Response:
        """
        Basic liveness check for monitoring tools.

        Returns:
            {"status": "ok", "timestamp": "..."}
        """
        return _success({"status": "ok", "timestamp": iso_now()})

    @health_api.get("/ready")
    @safe_route("Failed to get readiness")
    def ready() -> Response:
        """503 until the runtime is started and the ingest queue accepts data."""
        runtime = _runtime()
        accepting = runtime.running and runtime.queue.accepting
        data = {
            "status": "ready" if accepting else "not_ready",
            "sources": [source.name for source in runtime.sources],
            "sinks": runtime.dispatcher.sink_names,
            "timestamp": iso_now(),
        }
        if not accepting:
            return _fail("Pipeline not accepting observations", 503, details=data)
        return _success(data)

    @health_api.get("/counters")
    @safe_route("Failed to get pipeline counters")
    def counters() -> Response:
        """
        Pipeline counters.

        Returns:
            {
                "ingested": 120, "dropped": 0, "rejected": 2,
                "processor_dropped": 1, "late_dropped": 0, "archives_emitted": 4,
                "queue": {...},
                "sinks": {"memory": {"delivered": ..., "failed": ..., "saturated": ...}},
                "event_bus": {...},
                "timestamp": "..."
            }
        """
        data = _runtime().counters()
        data["event_bus"] = EventBus().get_metrics()
        data["timestamp"] = iso_now()
        return _success(data)
