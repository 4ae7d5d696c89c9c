"""
Payload normalization shared by the HTTP adapters.

Turns whatever the transport hands over (a werkzeug MultiDict, a plain dict,
a list of pairs or a raw query string) into one flat ``{key: str}`` mapping
with lower-cased keys. Repeated keys resolve through ``DuplicateKeyPolicy``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterator, Mapping
from urllib.parse import parse_qsl


class DuplicateKeyPolicy(str, Enum):
    """Which occurrence of a repeated key is kept."""

    LAST_WINS = "last_wins"
    FIRST_WINS = "first_wins"


def iter_pairs(payload: Any) -> Iterator[tuple[str, Any]]:
    """Yield every (key, value) pair in arrival order, repeats included."""
    if payload is None:
        return
    if isinstance(payload, (bytes, bytearray)):
        payload = bytes(payload).decode("utf-8", errors="replace")
    if isinstance(payload, str):
        yield from parse_qsl(payload.lstrip("?"), keep_blank_values=True)
        return
    # werkzeug MultiDict / CombinedMultiDict
    if hasattr(payload, "getlist") and hasattr(payload, "items"):
        yield from payload.items(multi=True)
        return
    if isinstance(payload, Mapping):
        for key, value in payload.items():
            if isinstance(value, (list, tuple)):
                for item in value:
                    yield key, item
            else:
                yield key, value
        return
    for key, value in payload:
        yield key, value


def normalize_payload(
    payload: Any,
    policy: DuplicateKeyPolicy = DuplicateKeyPolicy.LAST_WINS,
) -> dict[str, str]:
    """
    Flatten a transport payload into ``{lower_key: str_value}``.

    ``None`` values are skipped so that absent stays absent.
    """
    fields: dict[str, str] = {}
    for raw_key, raw_value in iter_pairs(payload):
        if raw_value is None:
            continue
        key = str(raw_key).strip().lower()
        if not key:
            continue
        if policy is DuplicateKeyPolicy.FIRST_WINS and key in fields:
            continue
        fields[key] = str(raw_value).strip()
    return fields
