"""
Health API Blueprint
====================

Liveness, readiness and pipeline counters.

Routes:
- GET /api/health/ping - Basic liveness check
- GET /api/health/ready - Runtime accepting observations
- GET /api/health/counters - Ingest, processor, aggregation and per-sink counters
"""

from __future__ import annotations

import logging

from flask import Blueprint

logger = logging.getLogger("health_api")

health_api = Blueprint("health_api", __name__, url_prefix="/api/health")

from app.blueprints.api.health.system import register_system_routes

register_system_routes(health_api)

__all__ = ["health_api"]
