"""
Station Ingest Blueprint
========================

HTTP endpoints that consoles and gateways post to. The paths are fixed by
the station firmware, so the blueprint has no URL prefix.

Routes:
- GET|POST /data/report/, GET|POST /ingest/ecowitt, POST /data - Ecowitt protocol
- GET|POST /weatherstation/updateweatherstation.php, GET|POST /ingest/wu - Weather Underground protocol

Every request answers ``200 success``: stations retry forever on an error
status, so bad data is counted and discarded instead of rejected.
"""

from __future__ import annotations

import logging
from typing import Any

from flask import Blueprint, Response, request

from app.blueprints.api._common import get_runtime
from app.utils.http import text_response

logger = logging.getLogger("ingest_api")

ingest_api = Blueprint("ingest_api", __name__)

_ACK_BODY = "success"


def _request_payload() -> Any:
    """Query string plus form fields; raw body text when neither is present."""
    if request.values:
        return request.values
    body = request.get_data(cache=False, as_text=True)
    return body or None


def _ack() -> Response:
    return text_response(_ACK_BODY)


def _ingest(source_name: str) -> Response:
    try:
        source = get_runtime().source(source_name)
        if source is None:
            logger.warning("Ingest source %s is not configured", source_name)
            return _ack()
        outcome = source.submit(_request_payload())
        if not outcome.accepted:
            logger.debug("%s report from %s discarded: %s", source_name, request.remote_addr, outcome.issue_kinds())
    except Exception as exc:
        logger.error("Ingest via %s failed: %s", source_name, exc, exc_info=True)
    return _ack()


@ingest_api.route("/data/report/", methods=["GET", "POST"])
@ingest_api.route("/ingest/ecowitt", methods=["GET", "POST"])
@ingest_api.post("/data")
def ecowitt_report() -> Response:
    return _ingest("ecowitt")


@ingest_api.route("/weatherstation/updateweatherstation.php", methods=["GET", "POST"])
@ingest_api.route("/ingest/wu", methods=["GET", "POST"])
def wunderground_report() -> Response:
    return _ingest("wunderground")
