"""Plain rectangular masks: a white ``w x h`` interior inside a black border.

Mask images need dimensions that are multiples of 4 and at least 3 px of
black on every side, so each axis is padded by::

    padding = 9 - (n + 9) % 4        # total = n + padding, a multiple of 4, >= n + 6

Half of the even part of the padding goes to each side; an odd remainder
widens the interior by one pixel.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

import numpy as np

from mask_atlas.mask_sheet.grid import BORDER
from mask_atlas.utils import fs

logger = logging.getLogger(__name__)

# Border on both sides plus 3 to round up to the next multiple of 4
ROUNDING = 2 * BORDER + 3

_PLACEHOLDER = re.compile(r"%[id]")


def extra(n: int) -> tuple[int, int]:
    """Per-side padding and odd remainder for an ``n`` px interior."""
    padding = ROUNDING - (n + ROUNDING) % 4
    odd = padding % 2
    return (padding - odd) // 2, odd


def format_mask_name(name: str, w: int, h: int) -> str:
    """Fill up to two ``%i``/``%d`` placeholders with ``(w, h)``."""
    count = len(_PLACEHOLDER.findall(name))
    if count == 0:
        return name
    return name % (w, h)[:count]


def rect_mask_pixels(w: int, h: int) -> np.ndarray:
    """(H, W) uint8 buffer of the padded rectangular mask."""
    if w <= 0 or h <= 0:
        raise ValueError(f"Mask dimensions must be positive, got {w}x{h}")

    xpad, ew = extra(w)
    ypad, eh = extra(h)

    buf = np.zeros((h + eh + 2 * ypad, w + ew + 2 * xpad), dtype=np.uint8)
    buf[ypad:ypad + h + eh, xpad:xpad + w + ew] = 255
    return buf


def new_mask(w: int, h: int, name: str | None = None, directory: str | Path | None = None) -> str:
    """Build (or reuse) a rectangular mask image.

    Parameters
    ----------
    w, h : int
        Interior size in pixels.
    name : str | None
        File name, optionally with ``%i`` placeholders for ``w`` and ``h``;
        a fresh unused name is generated when omitted.
    directory : str | Path | None
        Target directory; :func:`fs.cache_dir` by default.

    Returns
    -------
    str
        The mask file name (relative to ``directory``).
    """
    directory = Path(directory) if directory is not None else fs.cache_dir()

    if name is None:
        name = fs.unused_filename(directory)
    else:
        name = format_mask_name(name, w, h)
        if fs.file_exists(name, directory):
            return name

    fs.atomic_save_image(rect_mask_pixels(w, h), fs.resolve_path(name, directory))
    logger.debug("Built %dx%d rect mask %s", w, h, name)
    return name
