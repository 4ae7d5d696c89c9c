import logging

import pytest

from app.config import AppConfig, load_config, setup_logging


def test_defaults(monkeypatch):
    for name in ("WXHUB_SINKS", "WXHUB_ARCHIVE_INTERVAL_SECONDS", "WXHUB_CALIBRATIONS"):
        monkeypatch.delenv(name, raising=False)
    config = load_config()
    assert config.sinks == ["memory"]
    assert config.archive_interval_seconds == 300
    assert config.calibrations == []
    assert config.duplicate_key_policy == "last_wins"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("WXHUB_SINKS", " Memory, sqlite ,,PUBSUB")
    monkeypatch.setenv("WXHUB_WORKER_COUNT", "4")
    monkeypatch.setenv("WXHUB_UDP_ENABLED", "yes")
    monkeypatch.setenv("WXHUB_SINK_BACKOFF_BASE_SECONDS", "0.25")
    monkeypatch.setenv("WXHUB_VALIDATION_LIMITS", '{"temperature": [-40, 60]}')

    config = AppConfig()

    assert config.sinks == ["memory", "sqlite", "pubsub"]
    assert config.worker_count == 4
    assert config.udp_enabled is True
    assert config.sink_backoff_base_seconds == 0.25
    assert config.validation_limits == {"temperature": [-40, 60]}


@pytest.mark.parametrize(
    "name, value",
    [
        ("WXHUB_HTTP_PORT", "eighty"),
        ("WXHUB_SINK_TIMEOUT_SECONDS", "soon"),
        ("WXHUB_CALIBRATIONS", "{not json"),
        ("WXHUB_ARCHIVE_INTERVAL_SECONDS", "0"),
        ("WXHUB_ALLOWED_LATENESS_SECONDS", "-1"),
        ("WXHUB_DUPLICATE_KEY_POLICY", "random"),
    ],
)
def test_invalid_values_raise(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError):
        AppConfig()


def test_flask_config():
    flask_config = AppConfig(environment="production", DEBUG=False).as_flask_config()
    assert flask_config["ENV"] == "production"
    assert flask_config["DEBUG"] is False


def test_setup_logging_adds_rotating_file_handler_once(tmp_path):
    root = logging.getLogger()
    previous_level = root.level
    log_path = tmp_path / "logs" / "wxhub.log"
    try:
        setup_logging(log_path=str(log_path), level="warning")
        setup_logging(log_path=str(log_path), level="warning")

        file_handlers = [h for h in root.handlers if getattr(h, "name", "") == "wxhub_file"]
        assert len(file_handlers) == 1
        assert root.level == logging.WARNING
        assert log_path.parent.is_dir()
    finally:
        for handler in [h for h in root.handlers if getattr(h, "name", "") == "wxhub_file"]:
            root.removeHandler(handler)
            handler.close()
        root.setLevel(previous_level)
