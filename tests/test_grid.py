"""Tests for grid planning.

Covers:
    - next_mult4 rounding
    - Cell pitch and per-axis counts on a bounded canvas
    - Row-major cursor advance with row wrap and remembered row width
    - Final atlas dimensions for partial and wrapped rows
"""

from __future__ import annotations

import pytest

from mask_atlas.mask_sheet.grid import (
    BORDER,
    GridCursor,
    canvas_bound,
    final_dims,
    grid_counts,
    next_mult4,
)


# ---------------------------------------------------------------------------
# Rounding
# ---------------------------------------------------------------------------


class TestNextMult4:
    @pytest.mark.parametrize("x,expected", [(0, 0), (1, 4), (4, 4), (5, 8), (70, 72), (216, 216)])
    def test_values(self, x: int, expected: int) -> None:
        assert next_mult4(x) == expected

    def test_padded_frame_always_fits(self) -> None:
        for d in range(1, 200):
            total = next_mult4(d + 6)
            assert total % 4 == 0
            assert d + 6 <= total < d + 10


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


class TestGridCounts:
    def test_reference_scenario(self) -> None:
        plan = grid_counts(64, 64, 512, 512)
        assert (plan.pitch_x, plan.pitch_y) == (70, 70)
        assert plan.ncols == 7
        assert plan.nrows == 7
        assert plan.capacity == 49

    def test_rectangular_frames(self) -> None:
        plan = grid_counts(10, 30, 100, 100)
        assert (plan.pitch_x, plan.pitch_y) == (16, 36)
        assert plan.ncols == 103 // 16
        assert plan.nrows == 103 // 36

    def test_frame_too_large_gives_zero(self) -> None:
        plan = grid_counts(600, 64, 512, 512)
        assert plan.ncols == 0
        assert plan.capacity == 0
        assert not GridCursor().has_room(plan)

    def test_exact_fit_with_trailing_border(self) -> None:
        # one cell of pitch 70 fits a 67 px canvas since the trailing border may overhang
        assert grid_counts(64, 64, 67, 67).ncols == 1
        assert grid_counts(64, 64, 66, 66).ncols == 0

    @pytest.mark.parametrize("w,h", [(0, 10), (10, 0), (-1, 5)])
    def test_non_positive_frame_rejected(self, w: int, h: int) -> None:
        with pytest.raises(ValueError, match="positive"):
            grid_counts(w, h, 512, 512)

    def test_canvas_bound_margin(self) -> None:
        assert canvas_bound(1024, 768) == (1018, 762)


# ---------------------------------------------------------------------------
# Cursor
# ---------------------------------------------------------------------------


class TestGridCursor:
    def test_starts_inside_border(self) -> None:
        assert GridCursor().position == (BORDER, BORDER)

    def test_advance_is_pure(self) -> None:
        plan = grid_counts(64, 64, 512, 512)
        cursor = GridCursor()
        nxt = cursor.advance(plan)
        assert cursor.position == (3, 3)
        assert nxt.position == (73, 3)

    def test_row_major_positions(self) -> None:
        plan = grid_counts(64, 64, 512, 512)
        cursor = GridCursor()
        positions = []
        for _ in range(8):
            positions.append(cursor.position)
            cursor = cursor.advance(plan)

        assert positions[:3] == [(3, 3), (73, 3), (143, 3)]
        assert positions[6] == (423, 3)
        # eighth frame wraps to the second row
        assert positions[7] == (3, 73)
        assert cursor.row == 1
        assert cursor.end_x == 3 + 7 * 70

    def test_end_x_set_once(self) -> None:
        plan = grid_counts(10, 10, 50, 200)
        cursor = GridCursor()
        for _ in range(plan.ncols * 3):
            cursor = cursor.advance(plan)
        assert cursor.end_x == BORDER + plan.ncols * plan.pitch_x

    def test_room_runs_out_after_capacity(self) -> None:
        plan = grid_counts(64, 64, 150, 150)
        cursor = GridCursor()
        placed = 0
        while cursor.has_room(plan):
            cursor = cursor.advance(plan)
            placed += 1
        assert placed == plan.capacity == 4


# ---------------------------------------------------------------------------
# Final dimensions
# ---------------------------------------------------------------------------


class TestFinalDims:
    def test_partial_first_row(self) -> None:
        plan = grid_counts(64, 64, 512, 512)
        cursor = GridCursor()
        for _ in range(3):
            cursor = cursor.advance(plan)
        assert final_dims(cursor, plan) == (216, 76)

    def test_wrapped_rows_use_widest_row(self) -> None:
        plan = grid_counts(64, 64, 512, 512)
        cursor = GridCursor()
        for _ in range(8):
            cursor = cursor.advance(plan)
        # full row of 7 plus one frame on the second row
        assert final_dims(cursor, plan) == (next_mult4(493), next_mult4(3 + 70 + 70))

    def test_exactly_full_row_adds_no_empty_row(self) -> None:
        plan = grid_counts(64, 64, 512, 512)
        cursor = GridCursor()
        for _ in range(7):
            cursor = cursor.advance(plan)
        assert final_dims(cursor, plan) == (next_mult4(493), next_mult4(73))

    def test_dims_are_multiples_of_4(self) -> None:
        plan = grid_counts(13, 7, 300, 300)
        cursor = GridCursor()
        for _ in range(25):
            cursor = cursor.advance(plan)
            w, h = final_dims(cursor, plan)
            assert w % 4 == 0 and h % 4 == 0
