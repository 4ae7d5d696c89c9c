"""
Blueprint Common Utilities
==========================

Shared helper functions for all API blueprints.

Usage:
    from app.blueprints.api._common import get_runtime, success, fail, parse_limit
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from flask import current_app

from app.domain.exceptions import ConfigurationError
from app.utils.http import error_response, success_response

if TYPE_CHECKING:
    from app.services.pipeline.runtime import PipelineRuntime
    from infrastructure.sinks.memory import MemorySink

logger = logging.getLogger("api._common")

MAX_HISTORY_LIMIT = 1000
DEFAULT_HISTORY_LIMIT = 100


# ============================================================================
# RUNTIME ACCESS
# ============================================================================

def get_runtime() -> "PipelineRuntime":
    """
    Get the pipeline runtime from Flask app config.

    Raises:
        ConfigurationError: If the runtime is not configured
    """
    runtime = current_app.config.get("RUNTIME")
    if runtime is None:
        raise ConfigurationError("PipelineRuntime not found in app config")
    return runtime


def get_memory_sink() -> "MemorySink":
    """The in-memory sink serving current/history queries."""
    from infrastructure.sinks.memory import MemorySink

    sink = get_runtime().find_sink(MemorySink)
    if sink is None:
        raise ConfigurationError("Memory sink is not configured")
    return sink


# ============================================================================
# REQUEST HELPERS
# ============================================================================

def parse_limit(raw: str | None, default: int = DEFAULT_HISTORY_LIMIT, maximum: int = MAX_HISTORY_LIMIT) -> int:
    """
    Parse a ``limit`` query parameter, clamped to ``[0, maximum]``.

    Raises:
        ValueError: If ``raw`` is not an integer
    """
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"Invalid limit: {raw}. Expected an integer.") from None
    return max(0, min(value, maximum))


# ============================================================================
# RESPONSE HELPERS
# ============================================================================

def success(data: dict | list | None = None, status: int = 200, *, message: str | None = None):
    """Response with format: {"ok": true, "data": ..., "error": null}"""
    return success_response(data, status, message=message)


def fail(message: str, status: int = 400, *, details: dict | None = None):
    """Response with format: {"ok": false, "data": null, "error": {...}}"""
    return error_response(message, status, details=details)
