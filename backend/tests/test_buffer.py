"""
test_buffer.py — bounded, insertion-ordered, oldest-evicted event store.
"""

import random

import pytest

from attackmap.ingest.buffer import RollingBuffer
from attackmap.ingest.validate import validate_event
from conftest import attack


def _events(ids):
    return [validate_event(attack(id_=str(i))) for i in ids]


def test_append_under_capacity():
    buf = RollingBuffer(capacity=5)
    evicted = buf.append(_events(range(3)))
    assert evicted == []
    assert [e.id for e in buf.snapshot()] == ["0", "1", "2"]


def test_oldest_evicted_first():
    buf = RollingBuffer(capacity=3)
    buf.append(_events(range(2)))
    evicted = buf.append(_events(range(2, 5)))
    assert [e.id for e in evicted] == ["0", "1"]
    assert [e.id for e in buf.snapshot()] == ["2", "3", "4"]


def test_batch_larger_than_capacity():
    buf = RollingBuffer(capacity=2)
    evicted = buf.append(_events(range(5)))
    assert [e.id for e in evicted] == ["0", "1", "2"]
    assert [e.id for e in buf.snapshot()] == ["3", "4"]


def test_snapshot_is_not_live():
    buf = RollingBuffer(capacity=3)
    buf.append(_events([1]))
    snap = buf.snapshot()
    buf.append(_events([2]))
    assert len(snap) == 1
    assert len(buf) == 2


def test_random_batches_keep_most_recent():
    rng = random.Random(7)
    buf = RollingBuffer(capacity=50)
    appended = []
    next_id = 0
    for _ in range(200):
        n = rng.randint(0, 20)
        ids = list(range(next_id, next_id + n))
        next_id += n
        appended.extend(str(i) for i in ids)
        buf.append(_events(ids))
        assert len(buf.snapshot()) <= buf.capacity
        assert [e.id for e in buf.snapshot()] == appended[-buf.capacity:]


def test_recent():
    buf = RollingBuffer(capacity=10)
    buf.append(_events(range(6)))
    assert [e.id for e in buf.recent(2)] == ["4", "5"]
    assert len(buf.recent(100)) == 6
    assert buf.recent(0) == []


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        RollingBuffer(capacity=0)
