"""
MQTT client construction shared by the publish sink.

paho-mqtt 2.x requires a callback API version argument that 1.x does not
accept. The factory asks for the v3.1.1-style callbacks when the enum exists
and falls back to the plain constructor on older installations.
"""
from __future__ import annotations

import logging
from typing import Any, Dict

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)

_CALLBACK_API_NAMES = ("VERSION1", "V1", "V311", "v311")


def _legacy_callback_api() -> Any | None:
    """The paho 2.x enum member for v1 callbacks, or None on paho 1.x."""
    callback_api_version = getattr(mqtt, "CallbackAPIVersion", None)
    if callback_api_version is None:
        return None
    for attr in _CALLBACK_API_NAMES:
        if hasattr(callback_api_version, attr):
            return getattr(callback_api_version, attr)
    return None


def create_mqtt_client(client_id: str = "", **kwargs: Any) -> mqtt.Client:
    """
    Build an MQTT client that works with paho-mqtt 1.x and 2.x.

    Args:
        client_id: Optional client identifier.
        kwargs: Extra keyword arguments forwarded to the client constructor.
    """
    client_kwargs: Dict[str, Any] = {"client_id": client_id or ""}
    # MQTT v3.1.1 by default for broker compatibility
    client_kwargs["protocol"] = kwargs.pop("protocol", getattr(mqtt, "MQTTv311", 4))
    client_kwargs.update(kwargs)

    callback_value = _legacy_callback_api()
    if callback_value is not None:
        client_kwargs["callback_api_version"] = callback_value

    try:
        return mqtt.Client(**client_kwargs)
    except TypeError:
        # Older paho versions do not support callback_api_version
        client_kwargs.pop("callback_api_version", None)
        return mqtt.Client(**client_kwargs)


def connect_mqtt_client(
    host: str,
    port: int = 1883,
    *,
    client_id: str = "",
    username: str | None = None,
    password: str | None = None,
    keepalive: int = 60,
) -> mqtt.Client:
    """
    Create a client, connect it and start its network loop thread.

    Raises:
        OSError: If the broker cannot be reached
    """
    client = create_mqtt_client(client_id)
    if username:
        client.username_pw_set(username, password or None)
    client.connect(host, int(port), keepalive)
    client.loop_start()
    logger.info("MQTT client %s connected to %s:%s", client_id or "<anon>", host, port)
    return client
