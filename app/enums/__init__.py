"""
Enums Module
============

Enumeration types for event topics. Domain enums (units, metrics) live next
to their types in ``app.domain.weather``.
"""

from app.enums.events import EventType, PipelineEvent, RuntimeEvent, SinkEvent

__all__ = ["EventType", "PipelineEvent", "RuntimeEvent", "SinkEvent"]
