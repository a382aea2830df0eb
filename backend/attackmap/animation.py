# backend/attackmap/animation.py
"""Ciclo di vita delle animazioni sulla mappa.

Ogni evento valido diventa un AnimatedElement con una timeline a fasi:
DRAWING → FADING_OUT → TERMINAL. Un solo timer pendente per elemento (il
prossimo confine di fase); lo stato visivo in un istante si ottiene
campionando l'elemento con frame(now).
"""
import enum
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .geo.projection import DEFAULT_SCALE, project
from .geo.viewport import ViewportTracker
from .schemas import AttackEvent
from .timers import TimerHandle, Timers

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

# ---- Timeline (ms dalla creazione) -------------------------------------------

DRAW_MS = 2000
FADE_MS = 3000
LINE_OPACITY = 0.8

SRC_RADIUS = 3.0
SRC_GROW = (0, 500)         # 0 → 3 px
SRC_SHRINK = (2500, 1000)   # 3 → 0 px (inizio, durata)

DST_RADIUS = 2.0
DST_GROW = (1500, 500)      # compare a metà disegno
DST_SHRINK = (4000, 1000)


class Phase(str, enum.Enum):
    DRAWING = "drawing"
    FADING_OUT = "fading_out"
    TERMINAL = "terminal"


def _progress(t: float, start: float, duration: float) -> float:
    if duration <= 0:
        return 1.0 if t >= start else 0.0
    return min(1.0, max(0.0, (t - start) / duration))


def _marker_radius(t: float, radius: float, grow: Tuple[int, int], shrink: Tuple[int, int]) -> float:
    if t < shrink[0]:
        return radius * _progress(t, grow[0], grow[1])
    return radius * (1.0 - _progress(t, shrink[0], shrink[1]))


@dataclass
class AnimatedElement:
    id: int
    event: AttackEvent
    start: Point
    end: Point
    created_at: float
    draw_ms: float = DRAW_MS
    fade_ms: float = FADE_MS
    phase: Phase = Phase.DRAWING
    _timer: Optional[TimerHandle] = field(default=None, repr=False)

    def frame(self, now: float) -> Dict[str, Any]:
        """Stato di rendering all'istante `now` (ms)."""
        t = max(0.0, now - self.created_at)
        k = _progress(t, 0, self.draw_ms)
        x = self.start[0] + (self.end[0] - self.start[0]) * k
        y = self.start[1] + (self.end[1] - self.start[1]) * k
        if t <= self.draw_ms:
            opacity = LINE_OPACITY
        else:
            opacity = LINE_OPACITY * (1.0 - _progress(t, self.draw_ms, self.fade_ms))
        if self.phase is Phase.TERMINAL:
            opacity = 0.0
        return {
            "id": self.id,
            "phase": self.phase.value,
            "x1": self.start[0], "y1": self.start[1],
            "x2": x, "y2": y,
            "opacity": round(opacity, 4),
            "srcRadius": round(_marker_radius(t, SRC_RADIUS, SRC_GROW, SRC_SHRINK), 4),
            "dstRadius": round(_marker_radius(t, DST_RADIUS, DST_GROW, DST_SHRINK), 4),
            "type": self.event.type,
        }


PhaseListener = Callable[[AnimatedElement, Phase], None]


class AnimationScheduler:
    def __init__(self, timers: Timers, viewport: ViewportTracker,
                 draw_ms: float = DRAW_MS, fade_ms: float = FADE_MS,
                 scale_factor: float = DEFAULT_SCALE):
        self.timers = timers
        self.viewport = viewport
        self.draw_ms = draw_ms
        self.fade_ms = fade_ms
        self.scale_factor = scale_factor
        self.skipped = 0
        self._ids = itertools.count(1)
        self._active: Dict[int, AnimatedElement] = {}
        self._listeners: List[PhaseListener] = []
        self._disposed = False

    # ---- Osservatori ----------------------------------------------------------

    def subscribe(self, listener: PhaseListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def _notify(self, el: AnimatedElement) -> None:
        for listener in list(self._listeners):
            try:
                listener(el, el.phase)
            except Exception:
                logger.exception("listener animazione fallito")

    # ---- API ------------------------------------------------------------------

    @property
    def active(self) -> List[AnimatedElement]:
        return list(self._active.values())

    def submit(self, events: Iterable[AttackEvent]) -> List[AnimatedElement]:
        """Crea un elemento per evento; gli eventi non proiettabili vengono saltati."""
        if self._disposed:
            return []
        vp = self.viewport.current
        created = []
        for ev in events:
            start = project(ev.src_geo.lon, ev.src_geo.lat, vp.width, vp.height, self.scale_factor)
            end = project(ev.dst_geo.lon, ev.dst_geo.lat, vp.width, vp.height, self.scale_factor)
            if start is None or end is None:
                self.skipped += 1
                logger.debug("evento %r fuori dominio di proiezione, saltato", ev.id)
                continue
            el = AnimatedElement(
                id=next(self._ids), event=ev, start=start, end=end,
                created_at=self.timers.now(), draw_ms=self.draw_ms, fade_ms=self.fade_ms,
            )
            self._active[el.id] = el
            el._timer = self.timers.call_later(self.draw_ms, lambda el=el: self._advance(el))
            created.append(el)
            self._notify(el)
        return created

    def frames(self, now: Optional[float] = None) -> List[Dict[str, Any]]:
        t = self.timers.now() if now is None else now
        return [el.frame(t) for el in self._active.values()]

    def dispose(self) -> None:
        """Cancella tutti i timer e rilascia subito ogni elemento, senza completare il fade."""
        self._disposed = True
        for el in self._active.values():
            if el._timer is not None:
                el._timer.cancel()
                el._timer = None
            el.phase = Phase.TERMINAL
        self._active.clear()
        self._listeners.clear()

    # ---- Macchina a stati -----------------------------------------------------

    def _advance(self, el: AnimatedElement) -> None:
        el._timer = None
        if self._disposed or el.id not in self._active:
            return
        if el.phase is Phase.DRAWING:
            el.phase = Phase.FADING_OUT
            el._timer = self.timers.call_later(self.fade_ms, lambda: self._advance(el))
        elif el.phase is Phase.FADING_OUT:
            el.phase = Phase.TERMINAL
            del self._active[el.id]
        self._notify(el)
