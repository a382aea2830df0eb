# backend/attackmap/ingest/validate.py
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from ..schemas import AttackEvent

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    valid: list[AttackEvent] = field(default_factory=list)
    rejected: int = 0

    @property
    def empty(self) -> bool:
        return not self.valid


def _is_coord(v: Any) -> bool:
    # bool è sottoclasse di int: va escluso esplicitamente
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        return False
    try:
        return math.isfinite(v)
    except OverflowError:
        # intero JSON troppo grande per un float
        return False


def _geo_ok(geo: Any) -> bool:
    return isinstance(geo, dict) and _is_coord(geo.get("lat")) and _is_coord(geo.get("lon"))


def _opaque(v: Any) -> Optional[str]:
    """Etichetta opaca: stringhe così come sono, scalari stringificati, il resto None."""
    if v is None or isinstance(v, str):
        return v
    if isinstance(v, (bool, int, float)):
        return str(v)
    return None


def _normalize_geo(geo: dict) -> dict:
    out = dict(geo)
    for key in ("country", "city"):
        out[key] = _opaque(out.get(key)) or None
    return out


def validate_event(candidate: Any) -> Optional[AttackEvent]:
    """Ritorna un AttackEvent tipizzato o None se il candidato non è strutturalmente valido.

    Solo le quattro coordinate decidono; gli altri campi vengono normalizzati.
    """
    if not isinstance(candidate, dict):
        return None
    if not (_geo_ok(candidate.get("src_geo")) and _geo_ok(candidate.get("dst_geo"))):
        return None

    data = dict(candidate)
    # campi opachi: il feed a volte manda numeri, null o peggio
    for key in ("id", "timestamp", "src_ip", "dst_ip", "type"):
        value = _opaque(data.get(key))
        if value is None or (key == "type" and value == ""):
            data.pop(key, None)
        else:
            data[key] = value
    data["src_geo"] = _normalize_geo(data["src_geo"])
    data["dst_geo"] = _normalize_geo(data["dst_geo"])
    try:
        return AttackEvent.model_validate(data)
    except ValidationError as e:
        logger.debug("evento scartato: %s", e.errors(include_url=False))
        return None


def validate_batch(items: Iterable[Any]) -> BatchResult:
    """Valida un batch evento per evento; gli invalidi vengono solo contati."""
    result = BatchResult()
    for item in items:
        ev = validate_event(item)
        if ev is None:
            result.rejected += 1
        else:
            result.valid.append(ev)
    if result.rejected:
        logger.debug("batch: %d validi, %d scartati", len(result.valid), result.rejected)
    return result
