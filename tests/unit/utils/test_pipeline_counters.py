from app.utils.metrics import NoOpMetrics, PipelineCounters


def test_counters_by_label_set():
    counters = PipelineCounters()
    counters.inc("sink_writes", sink="sqlite", outcome="ok")
    counters.inc("sink_writes", 2, outcome="ok", sink="sqlite")
    counters.inc("sink_writes", sink="memory", outcome="ok")
    counters.inc("observations_received")

    assert counters.get("sink_writes", sink="sqlite", outcome="ok") == 3
    assert counters.get("sink_writes", sink="pubsub", outcome="ok") == 0
    assert counters.total("sink_writes") == 4
    assert counters.total("observations_received") == 1
    assert counters.total("sink") == 0


def test_snapshot_includes_latency_summary():
    counters = PipelineCounters()
    counters.observe("sink_write_seconds", 0.5, sink="sqlite")
    counters.observe("sink_write_seconds", 1.5, sink="sqlite")

    snapshot = counters.snapshot()
    latency = snapshot["latency"]["sink_write_seconds{sink=sqlite}"]
    assert latency == {"count": 2, "sum": 2.0, "max": 1.5}
    assert snapshot["counters"] == {}


def test_noop_metrics():
    metrics = NoOpMetrics()
    metrics.inc("anything", sink="x")
    metrics.observe("anything", 1.0)
    assert metrics.get("anything") == 0
    assert metrics.snapshot() == {}
