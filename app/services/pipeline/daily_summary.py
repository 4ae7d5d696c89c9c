"""
Daily summary rollup.

A DailySummary is always rebuilt from the full list of that day's
ArchiveRecords, never patched incrementally, so rebuilding it twice from the
same records gives the same value and the same serialized bytes.
"""

from __future__ import annotations

from datetime import date
from typing import Iterable

from app.domain.exceptions import InvariantViolation
from app.domain.weather.archive import Aggregate, ArchiveRecord, DailySummary
from app.services.pipeline.accumulators import vector_mean


def combine_aggregates(parts: list[Aggregate]) -> Aggregate | None:
    """Merge per-window aggregates of one metric, weighting averages by count."""
    parts = [part for part in parts if part.count > 0]
    if not parts:
        return None

    count = sum(part.count for part in parts)
    if all(part.is_vector for part in parts):
        sin_sum = sum(part.vector_sin for part in parts)
        cos_sum = sum(part.vector_cos for part in parts)
        return Aggregate(
            count=count,
            avg=vector_mean(sin_sum, cos_sum),
            vector_sin=sin_sum,
            vector_cos=cos_sum,
        )

    sums = [part.sum for part in parts if part.sum is not None]
    total = sum(sums) if sums else None
    minimums = [part.min for part in parts if part.min is not None]
    maximums = [part.max for part in parts if part.max is not None]
    return Aggregate(
        count=count,
        min=min(minimums) if minimums else None,
        max=max(maximums) if maximums else None,
        avg=total / count if total is not None else None,
        sum=total,
    )


def build_daily_summary(
    station_id: str,
    day: date,
    timezone_name: str,
    records: Iterable[ArchiveRecord],
) -> DailySummary | None:
    """
    Recompute a station's summary for one local day.

    Returns:
        None when there are no records for the day

    Raises:
        InvariantViolation: If a record belongs to a different station
    """
    ordered = sorted(records, key=lambda record: record.window_start)
    if not ordered:
        return None

    for record in ordered:
        if record.station_id != station_id:
            raise InvariantViolation(
                f"Archive for {record.station_id} mixed into daily summary of {station_id}",
                detail={"date": day.isoformat()},
            )

    metrics = sorted({name for record in ordered for name in record.aggregates})
    aggregates: dict[str, Aggregate] = {}
    for name in metrics:
        combined = combine_aggregates([record.aggregates[name] for record in ordered if name in record.aggregates])
        if combined is not None:
            aggregates[name] = combined

    return DailySummary(
        station_id=station_id,
        date=day,
        timezone=timezone_name,
        archive_count=len(ordered),
        observation_count=sum(record.observation_count for record in ordered),
        first_window_start=ordered[0].window_start,
        last_window_end=ordered[-1].window_end,
        aggregates=aggregates,
    )
