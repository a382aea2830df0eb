# backend/attackmap/geo/viewport.py
import logging
from dataclasses import dataclass
from typing import Any, Callable, List

logger = logging.getLogger(__name__)

FALLBACK_WIDTH = 1200
FALLBACK_HEIGHT = 800


@dataclass(frozen=True)
class Viewport:
    width: int
    height: int


def _measure(v: Any, fallback: int) -> int:
    # non misurabile (assente, zero, negativo, non numerico) ⇒ fallback
    if isinstance(v, bool):
        return fallback
    try:
        n = int(v)
    except (TypeError, ValueError, OverflowError):
        return fallback
    return n if n > 0 else fallback


class ViewportTracker:
    """Dimensioni correnti della superficie di disegno; ripubblica ad ogni resize."""

    def __init__(self, fallback_width: int = FALLBACK_WIDTH, fallback_height: int = FALLBACK_HEIGHT):
        self.fallback = Viewport(fallback_width, fallback_height)
        self._current = self.fallback
        self._listeners: List[Callable[[Viewport], None]] = []

    @property
    def current(self) -> Viewport:
        return self._current

    def subscribe(self, listener: Callable[[Viewport], None]) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def update(self, width: Any = None, height: Any = None) -> Viewport:
        vp = Viewport(_measure(width, self.fallback.width), _measure(height, self.fallback.height))
        self._current = vp
        for listener in list(self._listeners):
            try:
                listener(vp)
            except Exception:
                logger.exception("listener viewport fallito")
        return vp
