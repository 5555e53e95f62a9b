"""Reference scene + renderer used to paint and capture mask frames.

Any object offering the same capture operations can stand in for
``RasterRenderer``; mask sheets only rely on that duck-typed surface.
"""

from .renderer import Mask, RasterRenderer, SheetHandle, rasterize
from .scene import Bounds, DisplayObject, Group, ImageObject, Rect, Stage, new_rect

__all__ = [
    "Bounds",
    "DisplayObject",
    "Group",
    "ImageObject",
    "Mask",
    "RasterRenderer",
    "Rect",
    "SheetHandle",
    "Stage",
    "new_rect",
    "rasterize",
]
