import json

from app.services.pipeline.aggregation_engine import AggregationEngine
from infrastructure.sinks.filesystem import FilesystemSink


def test_writes_one_json_line_per_unit(tmp_path, make_obs):
    sink = FilesystemSink(tmp_path / "out")
    obs = make_obs(temperature=20.0)

    assert sink.write(obs).ok
    assert sink.write(make_obs(offset=60, temperature=21.0)).ok

    path = tmp_path / "out" / "observation-2026-03-01.jsonl"
    assert sink.path_for(obs) == path
    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    first = json.loads(lines[0])
    assert first["station_id"] == "ST1"
    assert first["measurements"]["temperature"] == 20.0


def test_archive_and_daily_files(tmp_path, make_obs):
    engine = AggregationEngine(300)
    engine.add(make_obs(temperature=20.0))
    record, summary = engine.flush_all()
    sink = FilesystemSink(tmp_path)

    sink.write(record)
    sink.write(summary)

    assert (tmp_path / "archive-2026-03-01.jsonl").exists()
    daily = (tmp_path / "daily-2026-03-01.jsonl").read_text(encoding="utf-8").strip()
    assert daily == summary.to_json()


def test_unwritable_directory_is_unavailable(tmp_path, make_obs):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")
    result = FilesystemSink(blocker).write(make_obs(temperature=1.0))

    assert not result.ok
    assert result.error_kind == "SinkUnavailable"
