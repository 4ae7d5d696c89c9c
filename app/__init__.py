from __future__ import annotations

import atexit
import contextlib
import logging
import signal
import threading
from typing import Any, TYPE_CHECKING

from flask import Flask, request
from werkzeug.exceptions import HTTPException

from app.blueprints.api.health import health_api
from app.blueprints.api.ingest import ingest_api
from app.blueprints.api.weather import weather_api
from app.config import load_config, setup_logging

if TYPE_CHECKING:
    from app.services.pipeline.runtime import PipelineRuntime


def create_app(
    config_overrides: dict[str, Any] | None = None,
    *,
    runtime: "PipelineRuntime | None" = None,
    start_runtime: bool = True,
    install_shutdown_hooks: bool = True,
) -> Flask:
    """
    Build the Flask app and the pipeline runtime behind it.

    Args:
        config_overrides: ``AppConfig`` attribute overrides (tests, embedding)
        runtime: Pre-built runtime; built from config when omitted
        start_runtime: Start worker, timer and source threads immediately
        install_shutdown_hooks: Register atexit and SIGINT/SIGTERM shutdown
    """
    config = load_config()
    if config_overrides:
        for key, value in config_overrides.items():
            setattr(config, key if hasattr(config, key) else key.lower(), value)

    # Configure logging early so sink connection errors during build are visible
    setup_logging(debug=config.DEBUG, log_path=config.log_path, level=config.log_level)

    flask_app = Flask(__name__)
    flask_app.config.update(config.as_flask_config())
    flask_app.config["WXHUB_CONFIG"] = config

    if runtime is None:
        from app.services.pipeline.runtime import PipelineRuntime
        from app.utils.event_bus import EventBus

        runtime = PipelineRuntime.build(config, event_bus=EventBus())
    flask_app.config["RUNTIME"] = runtime

    # ── Graceful shutdown handlers ──────────────────────────────────
    _shutdown_lock = threading.Lock()
    _shutdown_done = False

    def _graceful_shutdown(reason: str = "unknown") -> None:
        nonlocal _shutdown_done
        with _shutdown_lock:
            if _shutdown_done:
                return
            _shutdown_done = True
        logging.info("Graceful shutdown initiated (%s)", reason)
        try:
            runtime.shutdown()
        except Exception as exc:
            logging.warning("Error during graceful shutdown: %s", exc)

    def _signal_handler(signum: int, _frame: object) -> None:
        sig_name = signal.Signals(signum).name
        logging.info("Received %s, shutting down", sig_name)
        _graceful_shutdown(sig_name)
        raise SystemExit(0)

    flask_app.extensions["wxhub_shutdown"] = _graceful_shutdown

    if install_shutdown_hooks:
        # Register atexit (covers normal interpreter exit)
        atexit.register(_graceful_shutdown, "atexit")

        # Register OS signal handlers (SIGINT=Ctrl-C, SIGTERM=container/systemd stop)
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(OSError, ValueError):
                signal.signal(sig, _signal_handler)

    # Global JSON error handler for /api/ routes. Ingest routes never raise.
    @flask_app.errorhandler(Exception)
    def _handle_unhandled(exc):
        if not request.path.startswith("/api/"):
            if isinstance(exc, HTTPException):
                return exc
            raise exc
        from app.utils.http import error_for_exception

        return error_for_exception(exc, context=f"{request.method} {request.path}")

    flask_app.register_blueprint(ingest_api)
    flask_app.register_blueprint(weather_api)
    flask_app.register_blueprint(health_api)

    for bp_name in flask_app.blueprints:
        logging.debug("Registered blueprint: %s", bp_name)

    if start_runtime:
        runtime.start()
    else:
        logging.info("Skipping runtime start (start_runtime=False)")

    logger = logging.getLogger(__name__)
    logger.info("WXHub application initialized successfully.")

    return flask_app


__all__ = ["create_app"]
