"""Frame registry: raw placements collected while building, corrected at commit.

Placements are stored flattened as ``[key, x, y, key, x, y, ...]``, the same
layout the metadata is persisted in.  At commit the raw top-left grid
coordinates are rewritten in place into offsets relative to the frame's
center as seen from the atlas center::

    corr_x = (xdim - frame_w + 1) // 2 - raw_x
    corr_y = (ydim - frame_h + 1) // 2 - raw_y

Correction freezes the registry.  ``to_map()`` is the one-time conversion
to a key -> (x, y) lookup used when masks are applied.
"""

from __future__ import annotations

import math
from typing import Hashable, Sequence

from mask_atlas.mask_sheet.errors import SheetStateError


def to_frame_map(frames: Sequence) -> dict[Hashable, tuple[int, int]]:
    """Convert flattened ``(key, x, y)`` triples into a key -> (x, y) map."""
    return {frames[i]: (frames[i + 1], frames[i + 2]) for i in range(0, len(frames), 3)}


def check_frame_key(key: Hashable) -> None:
    """Frame keys must survive a JSON round trip: int, finite float or str."""
    if isinstance(key, bool) or not isinstance(key, (int, float, str)):
        raise TypeError(f"Frame key must be an int, float or str, got {type(key).__name__}")
    if isinstance(key, float) and not math.isfinite(key):
        raise ValueError(f"Frame key must be finite, got {key!r}")


def center_correction(atlas_dim: int, frame_dim: int) -> int:
    """Offset of the centered frame origin along one axis."""
    return (atlas_dim - frame_dim + 1) // 2


class FrameRegistry:
    """Append-only list of frame placements; immutable once corrected."""

    def __init__(self) -> None:
        self._frames: list = []
        self._frozen = False

    def __len__(self) -> int:
        return len(self._frames) // 3

    def __contains__(self, key: Hashable) -> bool:
        return key in self._frames[0::3]

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def frames(self) -> list:
        """Copy of the flattened triples."""
        return list(self._frames)

    def check(self, key: Hashable) -> None:
        """Raise unless ``key`` could be recorded now."""
        if self._frozen:
            raise SheetStateError("Mask already created")
        check_frame_key(key)
        if key in self:
            raise ValueError(f"Frame key {key!r} already recorded")

    def record(self, key: Hashable, x: int, y: int) -> None:
        """Append the raw top-left placement of frame ``key``."""
        self.check(key)
        self._frames.extend((key, x, y))

    def corrected(self, atlas_xdim: int, atlas_ydim: int, frame_w: int, frame_h: int) -> list:
        """Center-relative triples for the given atlas size; the registry is unchanged."""
        xcorr = center_correction(atlas_xdim, frame_w)
        ycorr = center_correction(atlas_ydim, frame_h)

        frames = list(self._frames)
        for i in range(1, len(frames), 3):
            frames[i], frames[i + 1] = xcorr - frames[i], ycorr - frames[i + 1]
        return frames

    def correct(self, atlas_xdim: int, atlas_ydim: int, frame_w: int, frame_h: int) -> list:
        """Rewrite every placement into a center-relative offset and freeze.

        Returns
        -------
        list
            The corrected flattened triples.
        """
        if self._frozen:
            raise SheetStateError("Mask already created")

        self._frames = self.corrected(atlas_xdim, atlas_ydim, frame_w, frame_h)
        self._frozen = True
        return list(self._frames)

    def to_map(self) -> dict[Hashable, tuple[int, int]]:
        """Key -> corrected (x, y); only meaningful after :meth:`correct`."""
        if not self._frozen:
            raise SheetStateError("Frames not corrected yet")
        return to_frame_map(self._frames)
