# backend/attackmap/stats.py
"""Aggregazione statistiche sul contenuto del RollingBuffer.

Due strade con lo stesso output:
- compute(): ricalcolo completo, funzione pura di (snapshot, observation_start, now)
- IncrementalAggregator: aggiornato su append/evict dal percorso di ingestione

Ordinamento dei gruppi: count decrescente, a parità vince il gruppo visto per
primo tra gli eventi attualmente nel buffer.
"""
from collections import deque
from itertools import count as _counter
from typing import Callable, Deque, Dict, Iterable, Optional, Sequence

from .schemas import AttackEvent, CountryCount, StatsSnapshot, TodayOverlay, TypeCount

UNKNOWN = "Unknown"

# (nome dimensione, estrattore etichetta)
DIMENSIONS: Dict[str, Callable[[AttackEvent], str]] = {
    "src": lambda ev: ev.src_geo.country or UNKNOWN,
    "dst": lambda ev: ev.dst_geo.country or UNKNOWN,
    "type": lambda ev: ev.type or UNKNOWN,
}


def attacks_per_minute(total: int, observation_start: float, now: float) -> float:
    elapsed_min = (now - observation_start) / 60.0
    # clock skew o nessun tempo trascorso ⇒ 0
    if elapsed_min <= 0:
        return 0.0
    return total / elapsed_min


def _build(total: int, ranked: Dict[str, list[tuple[str, int]]], observation_start: float,
           now: float, overlay: Optional[TodayOverlay]) -> StatsSnapshot:
    return StatsSnapshot(
        total_attacks=total,
        attacks_per_minute=attacks_per_minute(total, observation_start, now),
        top_source_countries=[CountryCount(country=k, count=c) for k, c in ranked["src"]],
        top_target_countries=[CountryCount(country=k, count=c) for k, c in ranked["dst"]],
        attack_types=[TypeCount(type=k, count=c) for k, c in ranked["type"]],
        today_total=overlay.total if overlay is not None else None,
        today_by_country=list(overlay.countries) if overlay is not None else None,
    )


def compute(snapshot: Sequence[AttackEvent], observation_start: float, now: float,
            overlay: Optional[TodayOverlay] = None) -> StatsSnapshot:
    ranked = {}
    for dim, label_of in DIMENSIONS.items():
        counts: Dict[str, int] = {}  # dict conserva l'ordine di prima apparizione
        for ev in snapshot:
            label = label_of(ev)
            counts[label] = counts.get(label, 0) + 1
        # sorted è stabile: i pari merito restano in ordine di prima apparizione
        ranked[dim] = sorted(counts.items(), key=lambda kv: -kv[1])
    return _build(len(snapshot), ranked, observation_start, now, overlay)


class IncrementalAggregator:
    """Stessi gruppi di compute(), mantenuti per delta.

    Per ogni gruppo teniamo la coda dei numeri di sequenza dei suoi eventi nel
    buffer: la lunghezza è il count, la testa è la "prima apparizione".
    L'espulsione avviene sempre dalla testa del buffer, quindi l'evento espulso
    è sempre il più vecchio del suo gruppo.
    """

    def __init__(self):
        self._seq = _counter()
        self._total = 0
        self._groups: Dict[str, Dict[str, Deque[int]]] = {dim: {} for dim in DIMENSIONS}

    def add(self, events: Iterable[AttackEvent]) -> None:
        for ev in events:
            n = next(self._seq)
            self._total += 1
            for dim, label_of in DIMENSIONS.items():
                self._groups[dim].setdefault(label_of(ev), deque()).append(n)

    def evict(self, events: Iterable[AttackEvent]) -> None:
        for ev in events:
            self._total -= 1
            for dim, label_of in DIMENSIONS.items():
                groups = self._groups[dim]
                label = label_of(ev)
                seqs = groups[label]
                seqs.popleft()
                if not seqs:
                    del groups[label]

    def snapshot(self, observation_start: float, now: float,
                 overlay: Optional[TodayOverlay] = None) -> StatsSnapshot:
        ranked = {}
        for dim, groups in self._groups.items():
            items = sorted(groups.items(), key=lambda kv: (-len(kv[1]), kv[1][0]))
            ranked[dim] = [(label, len(seqs)) for label, seqs in items]
        return _build(self._total, ranked, observation_start, now, overlay)

    def __len__(self) -> int:
        return self._total
