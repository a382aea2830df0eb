from .projection import project
from .viewport import Viewport, ViewportTracker

__all__ = ["project", "Viewport", "ViewportTracker"]
