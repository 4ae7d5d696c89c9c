from typing import Literal

from pydantic import BaseModel, Field

OutputKind = Literal["observation", "archive", "daily"]


class SinkDeliveryFailedPayload(BaseModel):
    """A unit was given up on for one sink after its retry budget ran out."""

    schema_version: int = Field(default=1)

    sink: str
    kind: OutputKind
    station_id: str
    attempts: int = Field(ge=0)
    error_kind: str | None = None
    error: str | None = None
    timestamp: str


class SinkSaturatedPayload(BaseModel):
    """A sink channel was full and the unit was dropped for that sink only."""

    schema_version: int = Field(default=1)

    sink: str
    kind: OutputKind
    station_id: str
    queue_size: int
    timestamp: str


class IngestSaturatedPayload(BaseModel):
    """The ingest queue dropped an observation."""

    schema_version: int = Field(default=1)

    station_id: str
    capacity: int
    dropped_total: int
    timestamp: str


class ArchiveClosedPayload(BaseModel):
    """A window closed and its ArchiveRecord was handed to the dispatcher."""

    schema_version: int = Field(default=1)

    station_id: str
    window_start: str
    window_end: str
    observation_count: int
    metrics: list[str] = Field(default_factory=list)


class RuntimeLifecyclePayload(BaseModel):
    schema_version: int = Field(default=1)

    state: Literal["started", "stopping", "stopped"]
    sources: list[str] = Field(default_factory=list)
    sinks: list[str] = Field(default_factory=list)
    timestamp: str
    clean: bool | None = None
