"""
Enrichment Processor

Adds derived metrics to observations.

Features:
- Computes dew point, heat index, wind chill and feels-like using the
  psychrometrics module
- Never overwrites a value the station reported itself
"""
import logging

from app.domain.weather.fields import WeatherField
from app.domain.weather.observation import Observation
from app.domain.weather.units import Measurement, Quantity, canonical_unit
from app.utils.psychrometrics import compute_derived_metrics

from .base_processor import IObservationProcessor

logger = logging.getLogger(__name__)

_CELSIUS = canonical_unit(Quantity.TEMPERATURE)


class EnrichmentProcessor(IObservationProcessor):
    """Enriches observations with computed temperature-derived values."""

    name = "enrichment"

    def process(self, observation: Observation) -> Observation:
        """
        Enrich an observation with derived metrics.

        Requires temperature; humidity and wind speed widen what can be
        derived. Returns the input unchanged when nothing new was computed.
        """
        temp = observation.value(WeatherField.TEMPERATURE.value)
        if temp is None:
            return observation

        derived = compute_derived_metrics(
            temp,
            observation.value(WeatherField.HUMIDITY.value),
            observation.value(WeatherField.WIND_SPEED.value),
        )

        updates = {
            name: Measurement(value, _CELSIUS)
            for name, value in derived.items()
            if value is not None and not observation.has(name)
        }
        if not updates:
            return observation

        logger.debug("Derived %s for %s", sorted(updates), observation.station_id)
        return observation.with_measurements(updates)
