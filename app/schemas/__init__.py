"""
Schemas Module
==============

Pydantic models for event payloads and API responses.
"""

from app.schemas.events import (
    ArchiveClosedPayload,
    IngestSaturatedPayload,
    RuntimeLifecyclePayload,
    SinkDeliveryFailedPayload,
    SinkSaturatedPayload,
)

__all__ = [
    "ArchiveClosedPayload",
    "IngestSaturatedPayload",
    "RuntimeLifecyclePayload",
    "SinkDeliveryFailedPayload",
    "SinkSaturatedPayload",
]
