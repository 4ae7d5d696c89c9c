"""
HTTP response helpers shared by every blueprint.

JSON envelope::

    {"ok": true,  "data": ..., "error": null}
    {"ok": false, "data": null, "error": {"message": ..., "timestamp": ...}}

Station ingest routes answer plain text instead (see ``text_response``).
"""
from __future__ import annotations

import functools
import logging
from typing import Any, Callable

from flask import Response, jsonify, make_response
from werkzeug.exceptions import HTTPException

from app.utils.time import iso_now

_log = logging.getLogger(__name__)

# Sent instead of the exception text for 5xx responses
_GENERIC_MESSAGES: dict[int, str] = {
    400: "Invalid request",
    404: "Resource not found",
    405: "Method not allowed",
    503: "Service unavailable",
    500: "An internal error occurred",
}


def status_for_error(exc: BaseException) -> int:
    """HTTP status for an exception raised inside a route."""
    from app.domain.exceptions import ConfigurationError, FieldError, QueueSaturated

    if isinstance(exc, HTTPException):
        return int(exc.code or 500)
    if isinstance(exc, (FieldError, ValueError)):
        return 400
    if isinstance(exc, (QueueSaturated, ConfigurationError)):
        return 503
    return 500


def success_response(
    data: dict | list | None = None,
    status: int = 200,
    *,
    message: str | None = None,
) -> Response:
    body: dict[str, Any] = {"ok": True, "data": data, "error": None}
    if message is not None:
        body["message"] = message
    response = jsonify(body)
    response.status_code = status
    return response


def error_response(
    message: str,
    status: int = 500,
    *,
    details: dict | None = None,
) -> Response:
    error: dict[str, Any] = {"message": message, "timestamp": iso_now()}
    if details:
        error["details"] = details
    response = jsonify({"ok": False, "data": None, "error": error})
    response.status_code = status
    return response


def no_content() -> Response:
    return Response(status=204)


def text_response(body: str, status: int = 200) -> Response:
    response = make_response(body, status)
    response.mimetype = "text/plain"
    return response


def safe_error(exc: BaseException, status: int = 500, *, context: str = "") -> Response:
    """Log ``exc`` with its traceback and answer with a generic message only."""
    _log.error("API error [%s] %s: %s", status, context, exc, exc_info=exc)
    return error_response(_GENERIC_MESSAGES.get(status, _GENERIC_MESSAGES[500]), status)


def error_for_exception(exc: BaseException, *, context: str = "", fallback_status: int = 500) -> Response:
    """
    Map any exception to an error response.

    Client errors carry the exception text; server errors are logged and
    answered generically. Exceptions with no known mapping use
    ``fallback_status``.
    """
    from app.domain.exceptions import WxHubError

    known = isinstance(exc, (HTTPException, WxHubError, ValueError))
    status = status_for_error(exc) if known else fallback_status
    if status >= 500:
        return safe_error(exc, status, context=context)
    if isinstance(exc, HTTPException):
        message = exc.description or _GENERIC_MESSAGES.get(status, context)
    else:
        message = str(exc) or context or _GENERIC_MESSAGES.get(status, "Request failed")
    return error_response(message, status)


def safe_route(
    error_message: str = "An internal error occurred",
    *,
    error_status: int = 500,
) -> Callable:
    """Wrap a route so every exception becomes a JSON error response.

    Field errors and ``ValueError`` from argument parsing map to 400,
    saturation and missing configuration to 503. Anything else is logged and
    answered with ``error_status``.

    Usage::

        @weather_api.get("/current")
        @safe_route("Failed to get current observation")
        def get_current():
            ...
    """

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Response:
            try:
                return fn(*args, **kwargs)
            except Exception as exc:
                return error_for_exception(exc, context=error_message, fallback_status=error_status)

        return wrapper

    return decorator
