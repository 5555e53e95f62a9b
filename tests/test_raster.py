"""Tests for the reference scene graph and raster renderer."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from mask_atlas.raster import (
    Bounds,
    DisplayObject,
    Group,
    ImageObject,
    RasterRenderer,
    Stage,
    new_rect,
    rasterize,
)
from mask_atlas.utils import fs


@pytest.fixture
def renderer() -> RasterRenderer:
    return RasterRenderer(Stage(32, 24))


# ---------------------------------------------------------------------------
# Scene
# ---------------------------------------------------------------------------


class TestBounds:
    def test_size_and_translate(self) -> None:
        b = Bounds(1, 2, 5, 8)
        assert (b.width, b.height) == (4, 6)
        assert b.translated(-1, 3) == Bounds(0, 5, 4, 11)

    def test_union_and_contains(self) -> None:
        a, b = Bounds(0, 0, 4, 4), Bounds(2, -1, 6, 3)
        assert a.union(b) == Bounds(0, -1, 6, 4)
        assert a.union(b).contains(a)
        assert not a.contains(b)
        assert a.contains(a)


class TestDisplayObject:
    def test_teardown_runs_once(self) -> None:
        calls: list[DisplayObject] = []
        obj = DisplayObject()
        obj.add_teardown(calls.append)

        obj.remove_self()
        obj.remove_self()

        assert calls == [obj]
        assert obj.removed

    def test_group_removal_tears_down_children(self) -> None:
        group = Group()
        child = new_rect(group, 0, 0, 2, 2)
        torn: list[DisplayObject] = []
        child.add_teardown(torn.append)

        group.remove_self()

        assert torn == [child]
        assert group.num_children == 0

    def test_set_mask_none_resets_transform(self) -> None:
        obj = DisplayObject()
        obj.set_mask(object())
        obj.mask_x, obj.mask_scale_y = 4.0, 0.5
        obj.set_mask(None)
        assert obj.mask is None
        assert (obj.mask_x, obj.mask_y, obj.mask_scale_x, obj.mask_scale_y) == (0.0, 0.0, 1.0, 1.0)

    def test_image_requires_2d(self) -> None:
        with pytest.raises(ValueError, match="luminance"):
            ImageObject(np.zeros((2, 2, 3), dtype=np.uint8))


class TestGroup:
    def test_insert_reparents(self) -> None:
        a, b = Group(), Group()
        rect = new_rect(a, 0, 0, 1, 1)
        b.insert(rect)
        assert a.num_children == 0
        assert rect.parent is b and b[0] is rect

    def test_content_bounds_nested(self) -> None:
        outer = Group(10, 5)
        inner = outer.insert(Group(1, 1))
        new_rect(inner, 1, 2, 3, 4)
        new_rect(outer, -2, 0, 1, 1)
        assert inner.content_bounds == Bounds(12, 8, 15, 12)
        assert outer.content_bounds == Bounds(8, 5, 15, 12)

    def test_empty_bounds(self) -> None:
        assert Group(3, 4).content_bounds == Bounds(3, 4, 3, 4)

    def test_to_back(self) -> None:
        group = Group()
        first = new_rect(group, 0, 0, 1, 1)
        last = new_rect(group, 0, 0, 1, 1)
        last.to_back()
        assert list(group) == [last, first]


# ---------------------------------------------------------------------------
# Rasterization
# ---------------------------------------------------------------------------


class TestRasterize:
    def test_draw_order_and_gray(self) -> None:
        group = Group()
        new_rect(group, 0, 0, 4, 2, 1.0)
        new_rect(group, 2, 0, 2, 2, 0.5)
        buf = rasterize(group, Bounds(0, 0, 4, 2))
        assert buf.tolist() == [[255, 255, 128, 128], [255, 255, 128, 128]]

    def test_hidden_children_skipped(self) -> None:
        group = Group()
        new_rect(group, 0, 0, 2, 2).is_visible = False
        assert rasterize(group, Bounds(0, 0, 2, 2)).max() == 0

    def test_force_visible_restores_flag(self) -> None:
        group = Group()
        group.is_visible = False
        new_rect(group, 0, 0, 2, 2)
        assert rasterize(group, Bounds(0, 0, 2, 2)).min() == 255
        assert group.is_visible is False
        assert rasterize(group, Bounds(0, 0, 2, 2), force_visible=False).max() == 0


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------


class TestCaptures:
    def test_capture_bounds_clips_to_stage(self, renderer: RasterRenderer) -> None:
        new_rect(renderer.stage, 0, 0, 2, 2)
        image = renderer.capture_bounds(Bounds(-4, -4, 4, 4))
        assert image.pixels.shape == (8, 8)
        assert (image.pixels[4:6, 4:6] == 255).all()
        assert int((image.pixels == 255).sum()) == 4

    def test_capture_bounds_skips_hidden(self, renderer: RasterRenderer) -> None:
        new_rect(renderer.stage, 0, 0, 4, 4).is_visible = False
        assert renderer.capture_bounds(Bounds(0, 0, 4, 4)).pixels.max() == 0

    def test_capture_group_hidden(self, renderer: RasterRenderer) -> None:
        group = renderer.stage.insert(Group())
        group.is_visible = False
        new_rect(group, -2, 0, 4, 2)
        image = renderer.capture_group(group)
        assert image.pixels.shape == (2, 2)
        assert image.pixels.min() == 255

    def test_snapshot_renders_offstage(self, renderer: RasterRenderer, tmp_path: Path) -> None:
        group = renderer.stage.insert(Group())
        new_rect(group, -10, -10, 4, 3)
        path = renderer.snapshot_to_file(group, "snap.png", tmp_path)
        assert path == tmp_path / "snap.png"
        pixels = fs.load_image(path)
        assert pixels.shape == (3, 4)
        assert pixels.min() == 255


class TestSheets:
    @pytest.fixture
    def sheet_png(self, tmp_path: Path) -> Path:
        pixels = np.arange(24, dtype=np.uint8).reshape(4, 6)
        path = tmp_path / "sheet.png"
        fs.atomic_save_image(pixels, path)
        return path

    def test_missing_sheet(self, renderer: RasterRenderer, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="Sheet image not found"):
            renderer.build_single_frame_sheet("nope.png", tmp_path, (0, 0, 1, 1))

    def test_instantiate_frame(self, renderer: RasterRenderer, sheet_png: Path) -> None:
        sheet = renderer.build_single_frame_sheet(sheet_png.name, sheet_png.parent, (1, 1, 2, 2))
        parent = Group()
        image = renderer.instantiate_from_sheet(parent, sheet, 0)
        assert image.parent is parent
        assert image.pixels.tolist() == [[7, 8], [13, 14]]

    def test_instantiate_pads_outside_image(self, renderer: RasterRenderer, sheet_png: Path) -> None:
        sheet = renderer.build_single_frame_sheet(sheet_png.name, sheet_png.parent, (5, 3, 2, 2))
        image = renderer.instantiate_from_sheet(None, sheet, 0)
        assert image.pixels.tolist() == [[23, 0], [0, 0]]

    def test_load_mask(self, renderer: RasterRenderer, sheet_png: Path) -> None:
        mask = renderer.load_mask(sheet_png.name, sheet_png.parent)
        assert (mask.width, mask.height) == (6, 4)
        assert mask.path == sheet_png
