"""
Shared fixtures for the attackmap test-suite.

Nothing here touches the network:
  - ManualTimers replaces the asyncio timer with a manual clock, so reconnect
    delays and animation phases can be time-travelled with advance().
  - FakeFeed is a drop-in transport for ConnectionManager; every connect()
    opens a FakeSession the test can push messages into, drop, or fail.
"""

import asyncio
import heapq
import itertools
import json
from contextlib import asynccontextmanager

import pytest

_CLOSE = object()


# ── Manual clock ──────────────────────────────────────────────────────────────

class ManualHandle:
    def __init__(self, when, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualTimers:
    def __init__(self, start=0.0):
        self._now = float(start)
        self._heap = []
        self._seq = itertools.count()

    def now(self):
        return self._now

    def call_later(self, delay_ms, callback):
        handle = ManualHandle(self._now + max(0.0, delay_ms), callback)
        heapq.heappush(self._heap, (handle.when, next(self._seq), handle))
        return handle

    @property
    def pending(self):
        return [h for _, _, h in self._heap if not h.cancelled]

    def advance(self, ms):
        target = self._now + ms
        while self._heap and self._heap[0][0] <= target:
            when, _, handle = heapq.heappop(self._heap)
            if handle.cancelled:
                continue
            self._now = when
            handle.callback()
        self._now = target


# ── Fake feed transport ───────────────────────────────────────────────────────

class FakeSession:
    def __init__(self):
        self.queue = asyncio.Queue()
        self.closed = False

    def push(self, raw):
        self.queue.put_nowait(raw)

    def push_json(self, obj):
        self.push(json.dumps(obj))

    def drop(self):
        self.queue.put_nowait(_CLOSE)

    def fail(self, exc):
        self.queue.put_nowait(exc)

    async def messages(self):
        while True:
            item = await self.queue.get()
            if item is _CLOSE:
                return
            if isinstance(item, BaseException):
                raise item
            yield item


class FakeFeed:
    def __init__(self):
        self.sessions = []
        self.urls = []
        self.refuse = False
        self.script = []  # messages pre-loaded into every new session

    @asynccontextmanager
    async def connect(self, url):
        self.urls.append(url)
        if self.refuse:
            raise ConnectionRefusedError("feed down")
        session = FakeSession()
        for raw in self.script:
            session.push(raw)
        self.sessions.append(session)
        try:
            yield session.messages()
        finally:
            session.closed = True

    @property
    def current(self):
        return self.sessions[-1]


async def settle(rounds=5):
    """Let freshly created tasks run up to their next real suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def attack(src=(2.0, 1.0, "A"), dst=(4.0, 3.0, "B"), type_="ddos", id_="1", **extra):
    """Build a wire-shaped attack dict; points are (lon, lat, country)."""
    src_geo = {"lon": src[0], "lat": src[1]}
    dst_geo = {"lon": dst[0], "lat": dst[1]}
    if len(src) > 2 and src[2] is not None:
        src_geo["country"] = src[2]
    if len(dst) > 2 and dst[2] is not None:
        dst_geo["country"] = dst[2]
    ev = {
        "id": id_,
        "timestamp": "2024-01-01T00:00:00Z",
        "src_ip": "1.2.3.4",
        "dst_ip": "5.6.7.8",
        "src_geo": src_geo,
        "dst_geo": dst_geo,
        "type": type_,
    }
    ev.update(extra)
    return ev


@pytest.fixture()
def timers():
    return ManualTimers()


@pytest.fixture()
def feed():
    return FakeFeed()
