# backend/attackmap/geo/projection.py
import math
from typing import Optional, Tuple

DEFAULT_SCALE = 0.15


def _natural_earth(lam: float, phi: float) -> Tuple[float, float]:
    # Natural Earth I (Šavrič et al.), coefficienti polinomiali
    phi2 = phi * phi
    phi4 = phi2 * phi2
    x = lam * (0.8707 - 0.131979 * phi2 + phi4 * (-0.013791 + phi4 * (0.003971 * phi2 - 0.001529 * phi4)))
    y = phi * (1.007226 + phi2 * (0.015085 + phi4 * (-0.044475 + 0.028874 * phi2 - 0.005916 * phi4)))
    return x, y


def project(lon: float, lat: float, width: float, height: float,
            scale_factor: float = DEFAULT_SCALE) -> Optional[Tuple[float, float]]:
    """(lon, lat) in gradi → (x, y) in pixel, centrato sul viewport.

    None se le coordinate sono fuori dominio o non finite.
    """
    try:
        lon = float(lon)
        lat = float(lat)
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(lon) and math.isfinite(lat)):
        return None
    if not (-180.0 <= lon <= 180.0 and -90.0 <= lat <= 90.0):
        return None

    scale = min(width, height) * scale_factor
    x, y = _natural_earth(math.radians(lon), math.radians(lat))
    # asse y dello schermo verso il basso
    return (width / 2 + scale * x, height / 2 - scale * y)
