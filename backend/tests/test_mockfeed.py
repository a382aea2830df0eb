"""
test_mockfeed.py — synthetic feed messages must be accepted by the ingestion path.
"""

import json
import random
from collections import Counter

from attackmap.ingest.connection import ConnectionManager
from attackmap.ingest.validate import validate_batch
from attackmap.mockfeed import CENTROIDS, make_attack, make_batch, make_stats_today
from conftest import ManualTimers


def test_mock_attack_is_valid():
    rng = random.Random(1)
    ev = make_attack(rng)
    assert ev["src_geo"]["country"] != ev["dst_geo"]["country"]
    assert ev["src_geo"]["country"] in CENTROIDS
    result = validate_batch([ev])
    assert result.rejected == 0


def test_mock_batch_size_bounds():
    rng = random.Random(2)
    sizes = {len(make_batch(rng, 5)) for _ in range(200)}
    assert sizes <= set(range(1, 6))
    assert len(make_batch(rng, 0)) == 1


def test_mock_is_deterministic_with_seed():
    a = make_attack(random.Random(9))
    b = make_attack(random.Random(9))
    assert a["id"] == b["id"]
    assert a["src_geo"] == b["src_geo"]


def test_mock_stats_today_feeds_overlay():
    msg = make_stats_today(Counter({"US": 3, "CN": 5}))
    assert msg["payload"]["total"] == 8
    assert msg["payload"]["countries"][0] == {"country": "CN", "count": 5}

    m = ConnectionManager("ws://feed.test", timers=ManualTimers())
    m.handle_message(json.dumps(msg))
    assert m.today.total == 8
    assert [c.country for c in m.today.countries] == ["CN", "US"]
