"""Tests for backend/pixel_ops.py: border fill removal and content crop."""

from __future__ import annotations

import numpy as np

from pixel_ops import crop_to_content, dominant_border_color, make_border_color_transparent

FILL = (200, 200, 200, 255)
DATA = (10, 60, 220, 255)


def _raster(h=20, w=30, fill=FILL):
    rgba = np.zeros((h, w, 4), dtype=np.uint8)
    rgba[:] = fill
    return rgba


def test_dominant_border_color_picks_most_frequent_edge_rgb():
    rgba = _raster()
    rgba[0, :5] = (1, 2, 3, 255)
    assert dominant_border_color(rgba) == (200, 200, 200)


def test_dominant_border_color_ignores_transparent_edges():
    rgba = _raster(fill=(0, 0, 0, 0))
    rgba[0, 3] = (9, 9, 9, 255)
    assert dominant_border_color(rgba) == (9, 9, 9)


def test_dominant_border_color_tie_goes_to_first_seen():
    rgba = np.zeros((2, 2, 4), dtype=np.uint8)
    rgba[0, 0] = (50, 0, 0, 255)
    rgba[1, 0] = (0, 50, 0, 255)
    rgba[0, 1] = (0, 50, 0, 255)
    rgba[1, 1] = (50, 0, 0, 255)
    # scan order: (0,top) (0,bottom) (1,top) (1,bottom) ...; red is seen first
    assert dominant_border_color(rgba) == (50, 0, 0)


def test_dominant_border_color_all_transparent_is_none():
    assert dominant_border_color(np.zeros((4, 4, 4), dtype=np.uint8)) is None


def test_border_transparency_clears_fill_everywhere_within_tolerance():
    rgba = _raster()
    rgba[5:10, 5:10] = DATA
    rgba[12, 12] = (205, 195, 209, 255)  # interior but within tolerance of the fill
    rgba[13, 13] = (215, 200, 200, 255)  # red channel 15 away -> kept

    out, bg, cleared = make_border_color_transparent(rgba, tolerance=10)

    assert bg == (200, 200, 200)
    assert out[0, 0, 3] == 0
    assert out[12, 12, 3] == 0
    assert out[13, 13, 3] == 255
    assert np.all(out[5:10, 5:10, 3] == 255)
    assert cleared == 20 * 30 - 25 - 1
    # RGB untouched, input untouched
    assert tuple(out[13, 13, :3]) == (215, 200, 200)
    assert rgba[0, 0, 3] == 255


def test_border_transparency_is_idempotent():
    rgba = _raster()
    rgba[4:12, 6:20] = DATA
    once, bg, _ = make_border_color_transparent(rgba)

    twice, bg2, cleared2 = make_border_color_transparent(once)
    assert bg2 is None
    assert cleared2 == 0
    assert np.array_equal(once, twice)

    again, _, cleared3 = make_border_color_transparent(once, background=bg)
    assert cleared3 == 0
    assert np.array_equal(once, again)


def test_border_transparency_noop_without_opaque_edges():
    rgba = np.zeros((6, 6, 4), dtype=np.uint8)
    rgba[2:4, 2:4] = DATA
    out, bg, cleared = make_border_color_transparent(rgba)
    assert bg is None and cleared == 0
    assert np.array_equal(out, rgba)


def test_crop_returns_exact_opaque_rectangle():
    rgba = np.zeros((40, 50, 4), dtype=np.uint8)
    region = np.random.default_rng(3).integers(0, 255, size=(12, 17, 4), dtype=np.uint8)
    region[..., 3] = 255
    rgba[7:19, 21:38] = region

    crop = crop_to_content(rgba)

    assert crop is not None and crop.cropped
    assert (crop.min_x, crop.min_y, crop.max_x, crop.max_y) == (21, 7, 37, 18)
    assert (crop.width, crop.height) == (50, 40)
    assert np.array_equal(crop.rgba, region)


def test_crop_empty_raster_reports_none():
    assert crop_to_content(np.zeros((10, 10, 4), dtype=np.uint8)) is None


def test_crop_full_raster_is_not_copied():
    rgba = _raster(h=5, w=7)
    crop = crop_to_content(rgba)
    assert not crop.cropped
    assert (crop.min_x, crop.min_y, crop.max_x, crop.max_y) == (0, 0, 6, 4)
    assert crop.rgba is rgba


def test_crop_respects_alpha_threshold():
    rgba = np.zeros((10, 10, 4), dtype=np.uint8)
    rgba[1, 1] = (255, 0, 0, 3)
    rgba[5:7, 5:8] = (255, 0, 0, 200)
    crop = crop_to_content(rgba, alpha_threshold=10)
    assert (crop.min_x, crop.min_y, crop.max_x, crop.max_y) == (5, 5, 7, 6)
    assert crop.rgba.shape == (2, 3, 4)
