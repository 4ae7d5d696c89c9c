from datetime import timedelta

from app.services.pipeline.aggregation_engine import AggregationEngine
from infrastructure.sinks.memory import MemorySink


def test_latest_per_station_ignores_older_reports(make_obs):
    sink = MemorySink()
    newer = make_obs("ST1", offset=60, temperature=21.0)
    sink.write(newer)
    sink.write(make_obs("ST1", offset=0, temperature=20.0))
    sink.write(make_obs("ST2", offset=30, temperature=5.0))

    assert sink.latest("ST1") is newer
    assert sink.latest() is newer
    assert sink.latest("nope") is None
    assert sink.stations() == ["ST1", "ST2"]


def test_empty_sink():
    sink = MemorySink()
    assert sink.latest() is None
    assert sink.history(10) == []


def test_history_is_capped_and_oldest_first(make_obs):
    sink = MemorySink(capacity=3)
    for i in range(5):
        sink.write(make_obs(offset=i, temperature=float(i)))

    history = sink.history()
    assert [obs.value("temperature") for obs in history] == [2.0, 3.0, 4.0]
    assert [obs.value("temperature") for obs in sink.history(2)] == [3.0, 4.0]
    assert sink.history(0) == []


def test_history_station_filter(make_obs):
    sink = MemorySink()
    sink.write(make_obs("ST1", temperature=1.0))
    sink.write(make_obs("ST2", temperature=2.0))
    assert [obs.station_id for obs in sink.history(10, "ST2")] == ["ST2"]


def test_recomputed_daily_summary_replaces_previous(make_obs):
    engine = AggregationEngine(300)
    sink = MemorySink()
    engine.add(make_obs(offset=0, temperature=10.0))
    for unit in engine.add(make_obs(offset=300, temperature=12.0)) + engine.flush_all():
        sink.write(unit)

    assert len(sink.archives("ST1")) == 2
    [summary] = sink.daily_summaries()
    assert summary.archive_count == 2
    assert sink.stats() == {"stations": 0, "observations": 0, "archives": 2, "daily_summaries": 1}


def test_daily_summaries_keep_newest_days_per_station(make_obs, base_time):
    engine = AggregationEngine(300)
    sink = MemorySink(daily_retention=2)
    for station_id in ("ST1", "ST2"):
        for days in range(4):
            engine.add(make_obs(station_id, timestamp=base_time + timedelta(days=days), temperature=10.0))
            for unit in engine.flush_all():
                sink.write(unit)

    dates = [summary.key for summary in sink.daily_summaries()]
    assert dates == [
        ("ST1", "2026-03-03"),
        ("ST1", "2026-03-04"),
        ("ST2", "2026-03-03"),
        ("ST2", "2026-03-04"),
    ]
