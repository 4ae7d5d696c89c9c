"""
Pipeline Core
=============
Source -> Processor chain -> Sink contracts plus the bounded ingest queue.
"""

from app.pipeline.interfaces import IObservationSource, ISink, OutputUnit, SinkResult, unit_kind
from app.pipeline.queue import ObservationQueue

__all__ = [
    "IObservationSource",
    "ISink",
    "ObservationQueue",
    "OutputUnit",
    "SinkResult",
    "unit_kind",
]
