"""
Protocol Adapters
=================
One stateless parser per supported wire format.
"""

from app.ingest.adapters.base import IProtocolAdapter, ParseOutcome
from app.ingest.adapters.broadcast import BroadcastAdapter, encode_broadcast_frame
from app.ingest.adapters.ecowitt import EcowittAdapter
from app.ingest.adapters.payload import DuplicateKeyPolicy, normalize_payload
from app.ingest.adapters.wunderground import WundergroundAdapter

__all__ = [
    "BroadcastAdapter",
    "DuplicateKeyPolicy",
    "EcowittAdapter",
    "IProtocolAdapter",
    "ParseOutcome",
    "WundergroundAdapter",
    "encode_broadcast_frame",
    "normalize_payload",
]
