"""
Base Observation Processor Interface
====================================
Abstract interface for all observation processors.

A processor maps one Observation to zero or one Observation:

- return a (possibly new) Observation to pass it on
- return None to filter it out
- raise ProcessorError when it cannot be processed at all
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from app.domain.exceptions import WxHubError
from app.domain.weather.observation import Observation


class ProcessorError(WxHubError):
    """Exception raised by observation processors."""

    pass


class IObservationProcessor(ABC):
    """
    Abstract interface for observation processors.

    Processors never mutate their input; they derive a new Observation via
    ``Observation.with_measurements``. Stateful processors (spike rejection)
    must guard their state themselves because several ingest workers may call
    ``process`` at once.
    """

    name: str = "processor"

    @abstractmethod
    def process(self, observation: Observation) -> Observation | None:
        """
        Process one observation.

        Args:
            observation: Normalized observation in canonical units

        Returns:
            The processed observation, or None to drop it

        Raises:
            ProcessorError: If processing fails
        """
        raise NotImplementedError()
