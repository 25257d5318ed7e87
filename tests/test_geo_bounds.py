"""Tests for backend/geo_bounds.py: crop rectangle -> lat/lon bounds."""

from __future__ import annotations

import math

import pytest

from geo_bounds import bounds_from_crop, geotransform_looks_geographic, mercator_to_lonlat

R = 6378137.0
GEO_GT = [-5.5, 0.05, 0.0, 51.5, 0.0, -0.05]
# EPSG:3857 raster with its top-left corner at (-5.5E, 51.5N)
MERC_GT = [
    R * math.radians(-5.5), 2000.0, 0.0,
    R * math.log(math.tan(math.pi / 4 + math.radians(51.5) / 2)), 0.0, -2000.0,
]


def test_geographic_heuristic():
    assert geotransform_looks_geographic(GEO_GT)
    assert not geotransform_looks_geographic(MERC_GT)
    assert not geotransform_looks_geographic([-5.5, 0.0, 0.0, 51.5, 0.0, -0.05])
    assert not geotransform_looks_geographic([-5.5, 6.0, 0.0, 51.5, 0.0, -6.0])


def test_geographic_bounds_match_hand_computation():
    # cols 10..39, rows 20..59
    bounds = bounds_from_crop(GEO_GT, 10, 20, 39, 59)
    (s, w), (n, e) = bounds
    assert w == pytest.approx(-5.5 + 10 * 0.05)
    assert e == pytest.approx(-5.5 + 40 * 0.05)
    assert n == pytest.approx(51.5 - 20 * 0.05)
    assert s == pytest.approx(51.5 - 60 * 0.05)
    assert s < n and w < e


def test_mercator_bounds_are_inverted_to_degrees():
    (s, w), (n, e) = bounds_from_crop(MERC_GT, 0, 0, 599, 499)
    assert -85 <= s < n <= 85
    assert -180 <= w < e <= 180
    assert w == pytest.approx(-5.5, abs=1e-6)
    assert n == pytest.approx(51.5, abs=1e-6)
    assert e == pytest.approx(-5.5 + math.degrees(600 * 2000.0 / R), abs=1e-6)


def test_mercator_inverse_known_points():
    assert mercator_to_lonlat(0.0, 0.0) == pytest.approx((0.0, 0.0))
    lon, lat = mercator_to_lonlat(20037508.342789244, 20037508.342789244)
    assert lon == pytest.approx(180.0)
    assert lat == pytest.approx(85.0511287798, abs=1e-6)


def test_short_geotransform_rejected():
    with pytest.raises(ValueError):
        bounds_from_crop([0.0, 1.0, 0.0], 0, 0, 1, 1)
