"""Tests for plain rectangular masks."""

from __future__ import annotations

from pathlib import Path

import pytest

from mask_atlas.mask_sheet.rect_mask import extra, format_mask_name, new_mask, rect_mask_pixels
from mask_atlas.utils import fs


class TestExtra:
    @pytest.mark.parametrize("n,expected", [(20, (4, 0)), (21, (3, 1)), (2, (3, 0)), (3, (4, 1))])
    def test_values(self, n: int, expected: tuple) -> None:
        assert extra(n) == expected

    def test_total_is_padded_multiple_of_4(self) -> None:
        for n in range(1, 120):
            pad, odd = extra(n)
            total = n + odd + 2 * pad
            assert total % 4 == 0
            assert pad >= 3
            assert total >= n + 6


class TestPixels:
    def test_layout(self) -> None:
        buf = rect_mask_pixels(20, 10)
        assert buf.shape == (16, 28)
        assert (buf[3:13, 4:24] == 255).all()
        assert buf[:3].max() == 0 and buf[13:].max() == 0
        assert buf[:, :4].max() == 0 and buf[:, 24:].max() == 0

    def test_odd_interior_widened(self) -> None:
        buf = rect_mask_pixels(21, 21)
        assert buf.shape == (28, 28)
        assert int((buf[14] == 255).sum()) == 22

    def test_rejects_empty(self) -> None:
        with pytest.raises(ValueError, match="positive"):
            rect_mask_pixels(0, 5)


class TestNewMask:
    def test_named_with_placeholders(self, tmp_path: Path) -> None:
        name = new_mask(20, 10, "rect_%ix%i.png", tmp_path)
        assert name == "rect_20x10.png"
        assert fs.load_image(tmp_path / name).shape == (16, 28)

    def test_existing_file_reused(self, tmp_path: Path) -> None:
        (tmp_path / "keep.png").write_bytes(b"placeholder")
        assert new_mask(20, 10, "keep.png", tmp_path) == "keep.png"
        assert (tmp_path / "keep.png").read_bytes() == b"placeholder"

    def test_generated_name(self, tmp_path: Path) -> None:
        name = new_mask(8, 8, directory=tmp_path)
        assert name.endswith(".png")
        assert (tmp_path / name).is_file()

    def test_default_directory_is_cache(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(fs.CACHE_DIR_ENV, str(tmp_path / "cache"))
        name = new_mask(8, 8, "m.png")
        assert (tmp_path / "cache" / name).is_file()

    def test_format_single_placeholder(self) -> None:
        assert format_mask_name("m_%i.png", 5, 6) == "m_5.png"
        assert format_mask_name("plain.png", 5, 6) == "plain.png"
