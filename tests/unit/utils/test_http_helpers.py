import pytest
from flask import Flask
from werkzeug.exceptions import NotFound

from app.domain.exceptions import ConfigurationError, ParseError, QueueSaturated
from app.utils.http import error_for_exception, safe_route, status_for_error, success_response


@pytest.fixture
def flask_app():
    return Flask(__name__)


@pytest.mark.parametrize(
    "exc, status",
    [
        (ParseError("tempf", "not a number"), 400),
        (ValueError("bad limit"), 400),
        (QueueSaturated("full"), 503),
        (ConfigurationError("no runtime"), 503),
        (NotFound(), 404),
        (RuntimeError("boom"), 500),
    ],
)
def test_status_for_error(exc, status):
    assert status_for_error(exc) == status


def test_success_envelope(flask_app):
    with flask_app.app_context():
        body = success_response({"a": 1}).get_json()
    assert body == {"ok": True, "data": {"a": 1}, "error": None}


def test_server_errors_hide_exception_text(flask_app):
    with flask_app.app_context():
        response = error_for_exception(RuntimeError("secret path /etc"), context="test")
    assert response.status_code == 500
    assert "secret" not in response.get_data(as_text=True)
    assert response.get_json()["error"]["message"] == "An internal error occurred"


def test_safe_route_maps_value_error(flask_app):
    @safe_route("Failed")
    def handler():
        raise ValueError("Invalid limit: x")

    with flask_app.app_context():
        response = handler()
    assert response.status_code == 400
    assert response.get_json()["error"]["message"] == "Invalid limit: x"


def test_safe_route_fallback_status(flask_app):
    @safe_route("Failed", error_status=503)
    def handler():
        raise KeyError("x")

    with flask_app.app_context():
        assert handler().status_code == 503
