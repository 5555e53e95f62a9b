"""Built-in frame painters.

A painter is called as ``painter(group, fill, frame_w, frame_h, key)`` and
draws the frame's shapes into ``group`` (already holding the background)
using luminance ``fill``.  The factories below return such callables:

    fill_painter(0.25)           left 25% of the frame
    diagonal_painter()           triangle below the top-right/bottom-left diagonal
    rect_painter((x, y, w, h))   one explicit rectangle
    blank_painter()              background only
"""

from __future__ import annotations

from typing import Any, Callable, Hashable

from mask_atlas.raster.scene import Group, new_rect

Painter = Callable[[Group, float, int, int, Hashable], Any]


def fill_painter(fraction: float) -> Painter:
    if not 0.0 <= fraction <= 1.0:
        raise ValueError(f"Fill fraction must be in [0, 1], got {fraction}")

    def paint(group: Group, fill: float, frame_w: int, frame_h: int, key: Hashable) -> None:
        width = int(round(frame_w * fraction))
        if width > 0:
            new_rect(group, 0, 0, width, frame_h, fill)

    return paint


def diagonal_painter() -> Painter:
    def paint(group: Group, fill: float, frame_w: int, frame_h: int, key: Hashable) -> None:
        # one row strip per scanline, widening toward the bottom
        for row in range(frame_h):
            width = int(round(frame_w * (row + 1) / frame_h))
            if width > 0:
                new_rect(group, 0, row, width, 1, fill)

    return paint


def rect_painter(rect: tuple[int, int, int, int]) -> Painter:
    x, y, w, h = rect

    def paint(group: Group, fill: float, frame_w: int, frame_h: int, key: Hashable) -> None:
        new_rect(group, x, y, w, h, fill)

    return paint


def blank_painter() -> Painter:
    def paint(group: Group, fill: float, frame_w: int, frame_h: int, key: Hashable) -> None:
        pass

    return paint


def painter_for(spec: Any) -> Painter:
    """Painter described by a :class:`~mask_atlas.utils.validators.FrameSpecV1`."""
    if spec.painter == "fill":
        return fill_painter(spec.fraction)
    if spec.painter == "diagonal":
        return diagonal_painter()
    if spec.painter == "rect":
        return rect_painter(spec.rect)
    if spec.painter == "blank":
        return blank_painter()
    raise ValueError(f"Unknown painter {spec.painter!r}")
