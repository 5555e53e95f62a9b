"""Reference Renderer/Capture Service: rasterizes scene groups with numpy.

Implements the renderer operations mask sheets rely on:
    capture_bounds(bounds)                     -> ImageObject (stage content, visible only)
    capture_group(group)                       -> ImageObject (one group, clipped to stage)
    snapshot_to_file(group, filename, dir)     -> Path (full group bounds, PNG)
    build_single_frame_sheet(filename, dir, r) -> SheetHandle
    instantiate_from_sheet(parent, sheet, i)   -> ImageObject
    load_mask(filename, dir)                   -> Mask

Direct captures only see what is on the stage: anything outside
``[0, content_width) x [0, content_height)`` comes back black.  That is the
behaviour the capture strategy's off-screen fallback works around, while
``snapshot_to_file`` renders a group's full bounds regardless of the stage.

Buffers are (H, W) uint8 luminance, background black (0).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

from mask_atlas.raster.scene import Bounds, DisplayObject, Group, ImageObject, Rect, Stage
from mask_atlas.utils import fs

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Handles
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SheetHandle:
    """Image file plus frame rectangles ``(x, y, w, h)`` within it."""

    path: Path
    frames: tuple[tuple[int, int, int, int], ...]


@dataclass(frozen=True, eq=False)
class Mask:
    """Loaded stencil image."""

    path: Path
    pixels: np.ndarray = field(repr=False)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


# ---------------------------------------------------------------------------
# Rasterization
# ---------------------------------------------------------------------------


def _pixel_region(bounds: Bounds) -> tuple[int, int, int, int]:
    """Integer (x0, y0, x1, y1) covering ``bounds``."""
    return (
        math.floor(bounds.x_min),
        math.floor(bounds.y_min),
        math.ceil(bounds.x_max),
        math.ceil(bounds.y_max),
    )


def _gray(fill: float) -> int:
    return int(round(min(max(fill, 0.0), 1.0) * 255))


def _draw(buf: np.ndarray, origin: tuple[int, int], obj: DisplayObject, ox: float, oy: float) -> None:
    """Draw ``obj`` (parent space origin at stage ``(ox, oy)``) into ``buf``."""
    if not obj.is_visible:
        return

    left, top = ox + obj.x, oy + obj.y

    if isinstance(obj, Group):
        for child in obj.children:
            _draw(buf, origin, child, left, top)
        return

    height, width = buf.shape
    x0 = int(round(left)) - origin[0]
    y0 = int(round(top)) - origin[1]

    if isinstance(obj, ImageObject):
        src = obj.pixels
        x1, y1 = x0 + src.shape[1], y0 + src.shape[0]
    elif isinstance(obj, Rect):
        src = None
        x1 = x0 + int(round(obj.width))
        y1 = y0 + int(round(obj.height))
    else:
        return

    cx0, cy0 = max(x0, 0), max(y0, 0)
    cx1, cy1 = min(x1, width), min(y1, height)
    if cx0 >= cx1 or cy0 >= cy1:
        return

    if src is None:
        buf[cy0:cy1, cx0:cx1] = _gray(obj.fill)
    else:
        buf[cy0:cy1, cx0:cx1] = src[cy0 - y0:cy1 - y0, cx0 - x0:cx1 - x0]


def rasterize(obj: DisplayObject, region: Bounds, force_visible: bool = True) -> np.ndarray:
    """Render ``obj`` over ``region`` (stage coordinates) to an (H, W) uint8 buffer.

    ``force_visible`` draws ``obj`` itself even if it (or an ancestor) is
    hidden; descendants still honour their own ``is_visible``.
    """
    x0, y0, x1, y1 = _pixel_region(region)
    buf = np.zeros((max(y1 - y0, 0), max(x1 - x0, 0)), dtype=np.uint8)

    ox, oy = obj.stage_origin()
    was_visible = obj.is_visible
    if force_visible:
        obj.is_visible = True
    try:
        _draw(buf, (x0, y0), obj, ox, oy)
    finally:
        obj.is_visible = was_visible
    return buf


def _clip(bounds: Bounds, limit: Bounds) -> Bounds:
    x_min, y_min = max(bounds.x_min, limit.x_min), max(bounds.y_min, limit.y_min)
    x_max, y_max = min(bounds.x_max, limit.x_max), min(bounds.y_max, limit.y_max)
    return Bounds(x_min, y_min, max(x_min, x_max), max(y_min, y_max))


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------


class RasterRenderer:
    """numpy/Pillow renderer over a :class:`Stage`.

    Parameters
    ----------
    stage : Stage | None
        Scene root; a default 1024x768 stage is created when omitted.
    """

    def __init__(self, stage: Stage | None = None) -> None:
        self.stage = stage or Stage()

    @property
    def content_width(self) -> int:
        return self.stage.content_width

    @property
    def content_height(self) -> int:
        return self.stage.content_height

    # -- captures ----------------------------------------------------------

    def capture_bounds(self, bounds: Bounds) -> ImageObject:
        """Capture whatever is visible on the stage inside ``bounds``."""
        buf = np.zeros((int(round(bounds.height)), int(round(bounds.width))), dtype=np.uint8)
        visible = _clip(bounds, self.stage.visible_bounds)
        if visible.width > 0 and visible.height > 0:
            part = rasterize(self.stage, visible)
            dx = int(round(visible.x_min - bounds.x_min))
            dy = int(round(visible.y_min - bounds.y_min))
            buf[dy:dy + part.shape[0], dx:dx + part.shape[1]] = part
        return ImageObject(buf)

    def capture_group(self, group: Group) -> ImageObject:
        """Capture one group (even if hidden), clipped to the stage."""
        region = _clip(group.content_bounds, self.stage.visible_bounds)
        return ImageObject(rasterize(group, region))

    def snapshot_to_file(self, group: Group, filename: str, directory: str | Path | None) -> Path:
        """Render the group's full content bounds and save it as PNG."""
        path = fs.resolve_path(filename, directory)
        fs.atomic_save_image(rasterize(group, group.content_bounds), path)
        logger.debug("Saved snapshot %s (%s)", path, group.content_bounds)
        return path

    # -- image sheets ------------------------------------------------------

    def build_single_frame_sheet(
        self,
        filename: str,
        directory: str | Path | None,
        frame_rect: tuple[int, int, int, int],
    ) -> SheetHandle:
        """Describe ``filename`` as a sheet holding one ``(x, y, w, h)`` frame."""
        path = fs.resolve_path(filename, directory)
        if not path.is_file():
            raise FileNotFoundError(f"Sheet image not found: {path}")
        return SheetHandle(path=path, frames=(tuple(int(v) for v in frame_rect),))

    def instantiate_from_sheet(self, parent: Group | None, sheet: SheetHandle, frame_index: int) -> ImageObject:
        """Load frame ``frame_index`` (0-based) of ``sheet`` as an image in ``parent``."""
        x, y, w, h = sheet.frames[frame_index]
        pixels = fs.load_image(sheet.path, mode="L")

        frame = np.zeros((h, w), dtype=np.uint8)
        part = pixels[max(y, 0):y + h, max(x, 0):x + w]
        frame[:part.shape[0], :part.shape[1]] = part

        image = ImageObject(frame)
        if parent is not None:
            parent.insert(image)
        return image

    # -- masks ---------------------------------------------------------------

    def load_mask(self, filename: str, directory: str | Path | None) -> Mask:
        path = fs.resolve_path(filename, directory)
        return Mask(path=path, pixels=fs.load_image(path, mode="L"))
