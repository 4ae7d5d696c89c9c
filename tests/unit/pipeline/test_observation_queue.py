import threading

from app.domain.exceptions import QueueSaturated
from app.pipeline.queue import ObservationQueue
from app.utils.metrics import PipelineCounters

import pytest


def test_put_and_get(make_obs):
    queue = ObservationQueue(capacity=4)
    obs = make_obs(temperature=20.0)

    assert queue.put(obs)
    assert queue.depth() == 1
    assert queue.get(0, timeout=0.1) is obs
    queue.task_done(0)
    assert queue.join(timeout=0.1)


def test_full_queue_drops_and_counts(make_obs):
    counters = PipelineCounters()
    queue = ObservationQueue(capacity=2, put_timeout=0, metrics=counters)

    results = [queue.put(make_obs(temperature=float(i))) for i in range(3)]

    assert results == [True, True, False]
    assert queue.dropped == 1
    assert counters.get("dropped") == 1
    assert counters.get("ingested") == 2
    assert queue.stats()["depth"] == 2


def test_put_or_raise(make_obs):
    queue = ObservationQueue(capacity=1, put_timeout=0)
    queue.put_or_raise(make_obs(temperature=1.0))
    with pytest.raises(QueueSaturated):
        queue.put_or_raise(make_obs(temperature=2.0))


def test_station_always_maps_to_same_shard(make_obs):
    queue = ObservationQueue(capacity=16, shards=4)
    shard = queue.shard_for("ST1")
    for i in range(3):
        queue.put(make_obs("ST1", offset=i, temperature=20.0))
    assert queue.get(shard, timeout=0.1).epoch < queue.get(shard, timeout=0.1).epoch


def test_closed_queue_rejects_but_drains(make_obs):
    counters = PipelineCounters()
    queue = ObservationQueue(capacity=4, metrics=counters)
    queue.put(make_obs(temperature=1.0))
    queue.close()

    assert not queue.accepting
    assert not queue.put(make_obs(temperature=2.0))
    assert counters.get("rejected") == 1
    assert queue.dropped == 0
    assert queue.get(0, timeout=0.1) is not None


def test_join_times_out_with_pending_work(make_obs):
    queue = ObservationQueue(capacity=4)
    queue.put(make_obs(temperature=1.0))
    assert not queue.join(timeout=0.05)


def test_join_waits_for_consumer(make_obs):
    queue = ObservationQueue(capacity=4)
    queue.put(make_obs(temperature=1.0))

    def consume():
        queue.get(0, timeout=1.0)
        queue.task_done(0)

    worker = threading.Thread(target=consume)
    worker.start()
    assert queue.join(timeout=2.0)
    worker.join()
