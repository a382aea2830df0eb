# backend/attackmap/ingest/buffer.py
from collections import deque
from typing import Deque, Iterable

from ..schemas import AttackEvent

DEFAULT_CAPACITY = 1000


class RollingBuffer:
    """Ultimi N eventi validi in ordine di arrivo; i più vecchi escono per primi.

    Scritto solo dal percorso di ingestione del ConnectionManager.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity <= 0:
            raise ValueError("capacity deve essere > 0")
        self.capacity = capacity
        self._items: Deque[AttackEvent] = deque()

    def append(self, events: Iterable[AttackEvent]) -> list[AttackEvent]:
        """Accoda il batch e tronca dalla testa; ritorna gli eventi espulsi (dal più vecchio)."""
        self._items.extend(events)
        evicted = []
        # O(eccedenza), non O(capacity)
        while len(self._items) > self.capacity:
            evicted.append(self._items.popleft())
        return evicted

    def snapshot(self) -> tuple[AttackEvent, ...]:
        return tuple(self._items)

    def recent(self, limit: int) -> list[AttackEvent]:
        if limit <= 0:
            return []
        n = min(limit, len(self._items))
        return [self._items[i] for i in range(len(self._items) - n, len(self._items))]

    def __len__(self) -> int:
        return len(self._items)
