"""
Configuration for WXHub
=======================
Runtime settings for the ingest server, the pipeline and every sink.
All values come from ``WXHUB_*`` environment variables with sensible
defaults for a single-station home install.
``setup_logging`` wires console and rotating-file handlers.
"""

import json
import os
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer.") from None


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number.") from None


def _env_list(name: str, default: str = "") -> list[str]:
    value = os.getenv(name, default)
    return [item.strip() for item in value.split(",") if item.strip()]


def _env_json(name: str, default: Any) -> Any:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return json.loads(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be valid JSON.") from None


@dataclass
class AppConfig:
    """Runtime configuration loaded from environment variables."""

    environment: str = field(default_factory=lambda: os.getenv("WXHUB_ENV", "development"))
    DEBUG: bool = field(default_factory=lambda: _env_bool("WXHUB_DEBUG", False))
    log_level: str = field(default_factory=lambda: os.getenv("WXHUB_LOG_LEVEL", "INFO"))
    log_path: str = field(default_factory=lambda: os.getenv("WXHUB_LOG_PATH", "logs/wxhub.log"))
    default_station_id: str = field(default_factory=lambda: os.getenv("WXHUB_DEFAULT_STATION_ID", "default"))

    # HTTP / UDP transports
    http_host: str = field(default_factory=lambda: os.getenv("WXHUB_HTTP_HOST", "0.0.0.0"))
    http_port: int = field(default_factory=lambda: _env_int("WXHUB_HTTP_PORT", 8080))
    udp_enabled: bool = field(default_factory=lambda: _env_bool("WXHUB_UDP_ENABLED", False))
    udp_host: str = field(default_factory=lambda: os.getenv("WXHUB_UDP_HOST", "0.0.0.0"))
    udp_port: int = field(default_factory=lambda: _env_int("WXHUB_UDP_PORT", 9999))
    simulator_enabled: bool = field(default_factory=lambda: _env_bool("WXHUB_SIMULATOR_ENABLED", False))
    simulator_interval_seconds: float = field(
        default_factory=lambda: _env_float("WXHUB_SIMULATOR_INTERVAL_SECONDS", 5.0)
    )

    # Adapters
    duplicate_key_policy: str = field(default_factory=lambda: os.getenv("WXHUB_DUPLICATE_KEY_POLICY", "last_wins"))

    # Ingest queue / workers
    queue_capacity: int = field(default_factory=lambda: _env_int("WXHUB_QUEUE_CAPACITY", 1024))
    worker_count: int = field(default_factory=lambda: _env_int("WXHUB_WORKER_COUNT", 1))
    enqueue_timeout_seconds: float = field(default_factory=lambda: _env_float("WXHUB_ENQUEUE_TIMEOUT_SECONDS", 0.5))

    # Aggregation
    archive_interval_seconds: int = field(default_factory=lambda: _env_int("WXHUB_ARCHIVE_INTERVAL_SECONDS", 300))
    allowed_lateness_seconds: int = field(default_factory=lambda: _env_int("WXHUB_ALLOWED_LATENESS_SECONDS", 0))
    archive_close_delay_seconds: float = field(
        default_factory=lambda: _env_float("WXHUB_ARCHIVE_CLOSE_DELAY_SECONDS", 5.0)
    )
    max_future_skew_seconds: float = field(
        default_factory=lambda: _env_float("WXHUB_MAX_FUTURE_SKEW_SECONDS", 600.0)
    )
    archive_tick_seconds: float = field(default_factory=lambda: _env_float("WXHUB_ARCHIVE_TICK_SECONDS", 1.0))
    station_timezone: str = field(default_factory=lambda: os.getenv("WXHUB_TIMEZONE", "UTC"))
    weight_wind_direction: bool = field(default_factory=lambda: _env_bool("WXHUB_WEIGHT_WIND_DIRECTION", True))

    # Processors
    enable_derived_metrics: bool = field(default_factory=lambda: _env_bool("WXHUB_ENABLE_DERIVED_METRICS", True))
    validation_limits: dict[str, list[float]] = field(default_factory=lambda: _env_json("WXHUB_VALIDATION_LIMITS", {}))
    spike_limits: dict[str, float] = field(default_factory=lambda: _env_json("WXHUB_SPIKE_LIMITS", {}))
    calibrations: list[dict[str, Any]] = field(default_factory=lambda: _env_json("WXHUB_CALIBRATIONS", []))

    # Sink dispatcher
    sinks: list[str] = field(default_factory=lambda: _env_list("WXHUB_SINKS", "memory"))
    sink_queue_size: int = field(default_factory=lambda: _env_int("WXHUB_SINK_QUEUE_SIZE", 512))
    sink_max_attempts: int = field(default_factory=lambda: _env_int("WXHUB_SINK_MAX_ATTEMPTS", 3))
    sink_backoff_base_seconds: float = field(default_factory=lambda: _env_float("WXHUB_SINK_BACKOFF_BASE_SECONDS", 0.5))
    sink_backoff_max_seconds: float = field(default_factory=lambda: _env_float("WXHUB_SINK_BACKOFF_MAX_SECONDS", 30.0))
    sink_timeout_seconds: float = field(default_factory=lambda: _env_float("WXHUB_SINK_TIMEOUT_SECONDS", 10.0))
    shutdown_deadline_seconds: float = field(default_factory=lambda: _env_float("WXHUB_SHUTDOWN_DEADLINE_SECONDS", 15.0))

    # Filesystem sink
    fs_sink_dir: str = field(default_factory=lambda: os.getenv("WXHUB_FS_SINK_DIR", "data/archive"))

    # SQLite sink
    sqlite_path: str = field(default_factory=lambda: os.getenv("WXHUB_SQLITE_PATH", "database/wxhub.db"))

    # Time-series sink (InfluxDB v2 line protocol)
    influx_url: str = field(default_factory=lambda: os.getenv("WXHUB_INFLUX_URL", "http://localhost:8086"))
    influx_org: str = field(default_factory=lambda: os.getenv("WXHUB_INFLUX_ORG", "wxhub"))
    influx_bucket: str = field(default_factory=lambda: os.getenv("WXHUB_INFLUX_BUCKET", "weather"))
    influx_token: str = field(default_factory=lambda: os.getenv("WXHUB_INFLUX_TOKEN", ""))
    influx_measurement: str = field(default_factory=lambda: os.getenv("WXHUB_INFLUX_MEASUREMENT", "weather"))

    # Pub/sub sink (MQTT)
    mqtt_broker_host: str = field(default_factory=lambda: os.getenv("WXHUB_MQTT_HOST", "localhost"))
    mqtt_broker_port: int = field(default_factory=lambda: _env_int("WXHUB_MQTT_PORT", 1883))
    mqtt_topic_prefix: str = field(default_factory=lambda: os.getenv("WXHUB_MQTT_TOPIC_PREFIX", "wxhub"))
    mqtt_qos: int = field(default_factory=lambda: _env_int("WXHUB_MQTT_QOS", 1))
    mqtt_username: str = field(default_factory=lambda: os.getenv("WXHUB_MQTT_USERNAME", ""))
    mqtt_password: str = field(default_factory=lambda: os.getenv("WXHUB_MQTT_PASSWORD", ""))

    # Memory sink (current/history API)
    history_capacity: int = field(default_factory=lambda: _env_int("WXHUB_HISTORY_CAPACITY", 1000))

    eventbus_queue_size: int = field(default_factory=lambda: _env_int("WXHUB_EVENTBUS_QUEUE_SIZE", 1024))
    eventbus_worker_count: int = field(default_factory=lambda: _env_int("WXHUB_EVENTBUS_WORKER_COUNT", 2))

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self.sinks = [name.strip().lower() for name in self.sinks if name and name.strip()]
        if self.archive_interval_seconds <= 0:
            raise ValueError("WXHUB_ARCHIVE_INTERVAL_SECONDS must be positive.")
        if self.allowed_lateness_seconds < 0:
            raise ValueError("WXHUB_ALLOWED_LATENESS_SECONDS must not be negative.")
        if self.queue_capacity <= 0:
            raise ValueError("WXHUB_QUEUE_CAPACITY must be positive.")
        if self.worker_count <= 0:
            raise ValueError("WXHUB_WORKER_COUNT must be positive.")
        if self.sink_max_attempts <= 0:
            raise ValueError("WXHUB_SINK_MAX_ATTEMPTS must be positive.")
        if self.duplicate_key_policy.lower() not in {"last_wins", "first_wins"}:
            raise ValueError("WXHUB_DUPLICATE_KEY_POLICY must be 'last_wins' or 'first_wins'.")

    def as_flask_config(self) -> dict[str, Any]:
        """Render configuration values for Flask application."""
        return {
            "ENV": self.environment,
            "DEBUG": self.DEBUG,
            "JSON_SORT_KEYS": False,
            "WXHUB_DEFAULT_STATION_ID": self.default_station_id,
            "WXHUB_HISTORY_CAPACITY": self.history_capacity,
        }


def setup_logging(debug: bool = False, log_path: str | None = "logs/wxhub.log", level: str | None = None) -> None:
    """Setup logging configuration."""
    import logging
    import sys
    from logging.handlers import RotatingFileHandler

    log_level = logging.DEBUG if debug else logging.getLevelName((level or "INFO").upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    # Root logger
    root = logging.getLogger()
    root.setLevel(log_level)

    # Keep existing handlers but avoid adding duplicates when create_app is called multiple times
    has_console = any(getattr(h, "name", "") == "wxhub_console" for h in root.handlers)
    has_file = any(getattr(h, "name", "") == "wxhub_file" for h in root.handlers)
    added_handler = False

    # Console handler (force UTF-8 to avoid UnicodeEncodeError on Windows terminals)
    stream = sys.stdout
    with suppress(AttributeError, ValueError):
        stream.reconfigure(encoding="utf-8", errors="replace")
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if not has_console:
        console_handler = logging.StreamHandler(stream=stream)
        console_handler.name = "wxhub_console"
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)
        added_handler = True

    # File handler
    if not has_file and log_path:
        os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.name = "wxhub_file"
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
        added_handler = True

    # Ensure handler levels follow the desired log level
    for handler in root.handlers:
        if getattr(handler, "name", "") in {"wxhub_console", "wxhub_file"}:
            handler.setLevel(log_level)

    if added_handler:
        root.info("Logging initialized at level: %s", logging.getLevelName(log_level))

    # Stations report every few seconds; request lines would drown the log
    if _env_bool("WXHUB_SILENCE_WERKZEUG", True):
        logging.getLogger("werkzeug").setLevel(logging.WARNING)


def load_config() -> AppConfig:
    """Helper for callers to load and validate configuration."""
    return AppConfig()
