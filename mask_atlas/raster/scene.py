"""Retained-mode scene objects for the reference raster renderer.

A deliberately small display list:
    - ``Rect``: solid luminance rectangle
    - ``ImageObject``: uint8 luminance pixels (captures, reloaded sheets)
    - ``Group``: ordered children drawn back to front
    - ``Stage``: root group with the visible canvas size

Coordinates are pixels, +Y down, and every object is anchored at its
top-left corner.  ``x``/``y`` are relative to the parent group;
``content_bounds`` is in stage coordinates.

Luminance convention: ``fill`` is in [0, 1], 0 = black (masked out),
1 = white (shown).

Teardown: ``remove_self()`` detaches an object, tears down its children and
then fires the object's teardown callbacks exactly once.  Resources that an
object depends on (e.g. a temp snapshot file behind an ImageObject) are
released from there.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterator

import numpy as np


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Bounds:
    """Axis-aligned pixel bounds, ``max`` edges exclusive."""

    x_min: float
    y_min: float
    x_max: float
    y_max: float

    @property
    def width(self) -> float:
        return self.x_max - self.x_min

    @property
    def height(self) -> float:
        return self.y_max - self.y_min

    def translated(self, dx: float, dy: float) -> Bounds:
        return Bounds(self.x_min + dx, self.y_min + dy, self.x_max + dx, self.y_max + dy)

    def union(self, other: Bounds) -> Bounds:
        return Bounds(
            min(self.x_min, other.x_min),
            min(self.y_min, other.y_min),
            max(self.x_max, other.x_max),
            max(self.y_max, other.y_max),
        )

    def contains(self, other: Bounds) -> bool:
        """True if ``other`` lies entirely inside these bounds."""
        return (
            other.x_min >= self.x_min
            and other.y_min >= self.y_min
            and other.x_max <= self.x_max
            and other.y_max <= self.y_max
        )


# ---------------------------------------------------------------------------
# Display objects
# ---------------------------------------------------------------------------


class DisplayObject:
    """Base display object: position, size, fill, visibility, mask fields."""

    def __init__(
        self,
        x: float = 0.0,
        y: float = 0.0,
        width: float = 0.0,
        height: float = 0.0,
        fill: float = 1.0,
    ) -> None:
        self.x = x
        self.y = y
        self.width = width
        self.height = height
        self.fill = fill
        self.is_visible = True
        self.parent: Group | None = None
        self.removed = False

        # Stencil mask as applied by MaskSheet.set()
        self.mask: Any = None
        self.mask_x = 0.0
        self.mask_y = 0.0
        self.mask_scale_x = 1.0
        self.mask_scale_y = 1.0

        self._teardown: list[Callable[[DisplayObject], None]] = []

    # -- appearance ------------------------------------------------------

    def set_fill_color(self, gray: float) -> None:
        self.fill = float(gray)

    def set_mask(self, mask: Any) -> None:
        """Attach a stencil mask; ``None`` clears it and resets its transform."""
        self.mask = mask
        if mask is None:
            self.mask_x = self.mask_y = 0.0
            self.mask_scale_x = self.mask_scale_y = 1.0

    def move_to(self, x: float = 0.0, y: float = 0.0) -> None:
        """Place the top-left corner at (x, y) in parent space."""
        self.x, self.y = x, y

    # -- geometry ----------------------------------------------------------

    def stage_origin(self) -> tuple[float, float]:
        """Top-left of this object's parent space, in stage coordinates."""
        ox = oy = 0.0
        node = self.parent
        while node is not None:
            ox += node.x
            oy += node.y
            node = node.parent
        return ox, oy

    @property
    def content_bounds(self) -> Bounds:
        ox, oy = self.stage_origin()
        return Bounds(ox + self.x, oy + self.y, ox + self.x + self.width, oy + self.y + self.height)

    # -- lifecycle ---------------------------------------------------------

    def add_teardown(self, callback: Callable[[DisplayObject], None]) -> None:
        """Run ``callback(self)`` once when this object is removed."""
        self._teardown.append(callback)

    def to_back(self) -> None:
        if self.parent is not None:
            self.parent.children.remove(self)
            self.parent.children.insert(0, self)

    def remove_self(self) -> None:
        if self.removed:
            return
        if self.parent is not None:
            self.parent.children.remove(self)
            self.parent = None
        self.removed = True

        callbacks, self._teardown = self._teardown, []
        for callback in callbacks:
            callback(self)


class Rect(DisplayObject):
    """Solid rectangle."""

    def __repr__(self) -> str:
        return f"Rect(x={self.x}, y={self.y}, w={self.width}, h={self.height}, fill={self.fill})"


class ImageObject(DisplayObject):
    """Luminance image; size follows the pixel buffer."""

    def __init__(self, pixels: np.ndarray, x: float = 0.0, y: float = 0.0) -> None:
        if pixels.ndim != 2:
            raise ValueError(f"ImageObject expects (H, W) luminance pixels, got shape {pixels.shape}")
        super().__init__(x, y, pixels.shape[1], pixels.shape[0])
        self.pixels = pixels.astype(np.uint8, copy=False)

    def __repr__(self) -> str:
        return f"ImageObject(x={self.x}, y={self.y}, w={self.width}, h={self.height})"


class Group(DisplayObject):
    """Ordered container; children are drawn first to last."""

    def __init__(self, x: float = 0.0, y: float = 0.0) -> None:
        super().__init__(x, y)
        self.children: list[DisplayObject] = []

    def insert(self, obj: DisplayObject) -> DisplayObject:
        """Append ``obj`` (re-parenting it if needed) and return it."""
        if obj.parent is not None:
            obj.parent.children.remove(obj)
        obj.parent = self
        self.children.append(obj)
        return obj

    @property
    def num_children(self) -> int:
        return len(self.children)

    def __getitem__(self, index: int) -> DisplayObject:
        return self.children[index]

    def __iter__(self) -> Iterator[DisplayObject]:
        return iter(list(self.children))

    @property
    def content_bounds(self) -> Bounds:
        ox, oy = self.stage_origin()
        left, top = ox + self.x, oy + self.y
        if not self.children:
            return Bounds(left, top, left, top)

        bounds = self.children[0].content_bounds
        for child in self.children[1:]:
            bounds = bounds.union(child.content_bounds)
        return bounds

    def remove_self(self) -> None:
        if self.removed:
            return
        for child in list(self.children):
            child.remove_self()
        super().remove_self()


class Stage(Group):
    """Root of the scene; its size is the visible canvas."""

    def __init__(self, content_width: int = 1024, content_height: int = 768) -> None:
        super().__init__()
        self.content_width = content_width
        self.content_height = content_height

    @property
    def visible_bounds(self) -> Bounds:
        return Bounds(0, 0, self.content_width, self.content_height)


def new_rect(
    group: Group | None,
    x: float,
    y: float,
    w: float,
    h: float,
    fill: float | None = None,
) -> Rect:
    """Create a top-left aligned rect, inserted into ``group`` when given."""
    rect = Rect(x, y, w, h)
    if fill is not None:
        rect.set_fill_color(fill)
    if group is not None:
        group.insert(rect)
    return rect
