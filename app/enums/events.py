from enum import Enum
from typing import TypeAlias


class PipelineEvent(str, Enum):
    """Data-path events published by the runtime services."""

    OBSERVATION_PROCESSED = "pipeline.observation_processed"
    ARCHIVE_CLOSED = "pipeline.archive_closed"
    DAILY_SUMMARY_UPDATED = "pipeline.daily_summary_updated"
    INGEST_SATURATED = "pipeline.ingest_saturated"


class SinkEvent(str, Enum):
    """Error channel for sink delivery."""

    SINK_DELIVERY_FAILED = "sink.delivery_failed"
    SINK_SATURATED = "sink.saturated"


class RuntimeEvent(str, Enum):
    """Lifecycle events."""

    STARTED = "runtime.started"
    STOPPING = "runtime.stopping"
    STOPPED = "runtime.stopped"


EventType: TypeAlias = PipelineEvent | SinkEvent | RuntimeEvent
