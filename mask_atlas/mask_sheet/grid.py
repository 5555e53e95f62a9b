"""Dimension & grid planning for mask atlases.

Every frame gets a fixed cell: the frame plus a 3 px black border on each
side, so the cell pitch is ``frame + 6``.  Cells are filled row-major,
left to right, top to bottom, starting 3 px in from the atlas edge.

Final atlas dimensions are rounded up to a multiple of 4, which the mask
image format requires.  The width is that of the widest row actually used:
a sheet that never completed a row is only as wide as its partial row.

Example (64x64 frames on a 512x512 canvas bound)::

    plan = grid_counts(64, 64, 512, 512)   # pitch 70, ncols = nrows = (512 + 3) // 70 = 7
    cursor = GridCursor()
    for _ in range(3):
        cursor = cursor.advance(plan)      # frames at x = 3, 73, 143
    final_dims(cursor, plan)               # (216, 76)
"""

from __future__ import annotations

from dataclasses import dataclass, replace

# Black border reserved around each frame, per side (px)
BORDER = 3

# Extra cell size per axis: one border on each side
CELL_PADDING = 2 * BORDER

# Margin kept between the visible canvas edge and capturable content (px)
CANVAS_MARGIN = 2 * BORDER


def next_mult4(x: int) -> int:
    """Round ``x`` up to the next multiple of 4."""
    over = x % 4
    return x + (4 - over if over else 0)


def canvas_bound(content_width: int, content_height: int) -> tuple[int, int]:
    """Usable capture canvas for a visible area of the given size."""
    return content_width - CANVAS_MARGIN, content_height - CANVAS_MARGIN


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GridPlan:
    """Cell pitch and how many whole cells fit on the canvas."""

    ncols: int
    nrows: int
    pitch_x: int
    pitch_y: int

    @property
    def capacity(self) -> int:
        return self.ncols * self.nrows


def grid_counts(frame_w: int, frame_h: int, canvas_w: int, canvas_h: int) -> GridPlan:
    """Plan the grid for ``frame_w x frame_h`` frames on a bounded canvas.

    ``(canvas + 3) // pitch`` cells fit per axis: the last cell's trailing
    border may run up to the canvas margin.
    """
    if frame_w <= 0 or frame_h <= 0:
        raise ValueError(f"Frame dimensions must be positive, got {frame_w}x{frame_h}")

    pitch_x = frame_w + CELL_PADDING
    pitch_y = frame_h + CELL_PADDING

    return GridPlan(
        ncols=max((canvas_w + BORDER) // pitch_x, 0),
        nrows=max((canvas_h + BORDER) // pitch_y, 0),
        pitch_x=pitch_x,
        pitch_y=pitch_y,
    )


# ---------------------------------------------------------------------------
# Cursor
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GridCursor:
    """Placement position for the next frame.

    Parameters
    ----------
    col, row : int
        Cells already filled in the current row / rows completed.
    x, y : int
        Top-left of the next frame in atlas pixels.
    end_x : int | None
        Right edge of the first completed row; ``None`` until a row wraps.
    """

    col: int = 0
    row: int = 0
    x: int = BORDER
    y: int = BORDER
    end_x: int | None = None

    def has_room(self, plan: GridPlan) -> bool:
        return plan.ncols > 0 and self.row < plan.nrows

    def advance(self, plan: GridPlan) -> GridCursor:
        """Cursor after placing one frame at the current position."""
        col, x = self.col + 1, self.x + plan.pitch_x

        if col == plan.ncols:
            return replace(
                self,
                col=0,
                row=self.row + 1,
                x=BORDER,
                y=self.y + plan.pitch_y,
                end_x=self.end_x if self.end_x is not None else x,
            )
        return replace(self, col=col, x=x)

    @property
    def position(self) -> tuple[int, int]:
        return self.x, self.y


def final_dims(cursor: GridCursor, plan: GridPlan) -> tuple[int, int]:
    """Atlas (width, height) once placement has stopped at ``cursor``.

    The current row only counts toward the height if it holds a frame.
    """
    width = cursor.end_x if cursor.end_x is not None else cursor.x
    height = cursor.y + (plan.pitch_y if cursor.col > 0 else 0)
    return next_mult4(width), next_mult4(height)
