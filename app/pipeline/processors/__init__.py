"""
Observation Processors
======================
Stateless (or self-locking) transformations applied between ingest and
fan-out.
"""

from .base_processor import IObservationProcessor, ProcessorError
from .calibration_processor import CalibrationProcessor
from .chain import ProcessorChain
from .enrichment_processor import EnrichmentProcessor
from .spike_processor import SpikeRejectionProcessor
from .validation_processor import ValidationProcessor, ValidationRule, ValidationType

__all__ = [
    "CalibrationProcessor",
    "EnrichmentProcessor",
    "IObservationProcessor",
    "ProcessorChain",
    "ProcessorError",
    "SpikeRejectionProcessor",
    "ValidationProcessor",
    "ValidationRule",
    "ValidationType",
]
