"""Geotransform + pixel crop -> geographic bounds for Leaflet image overlays."""

from __future__ import annotations

import math
from typing import Sequence

from constants import EARTH_RADIUS_M


def mercator_to_lonlat(x: float, y: float) -> tuple[float, float]:
    """Spherical Mercator (EPSG:3857 metres) -> (lon, lat) degrees."""
    lon = math.degrees(x / EARTH_RADIUS_M)
    lat = math.degrees(2.0 * math.atan(math.exp(y / EARTH_RADIUS_M)) - math.pi / 2.0)
    return lon, lat


def geotransform_looks_geographic(gt: Sequence[float]) -> bool:
    """Heuristic CRS check on a GDAL geotransform.

    Lon/lat grids have an origin in degrees and pixel sizes well below 5 degrees;
    EPSG:3857 rasters have origins in the millions of metres. gdalinfo's CRS
    metadata for wgrib2 NetCDF output is not reliable enough to use instead.
    """
    x0, px_w, y0, px_h = gt[0], gt[1], gt[3], gt[5]
    return (
        abs(x0) <= 360
        and abs(y0) <= 180
        and 0 < abs(px_w) <= 5
        and 0 < abs(px_h) <= 5
    )


def crop_extent(gt: Sequence[float], min_col: int, min_row: int, max_col: int, max_row: int) -> tuple[float, float, float, float]:
    """Coordinate-space (min_x, min_y, max_x, max_y) of an inclusive pixel rectangle.

    px_h is negative for north-up rasters, so min_row maps to max_y.
    """
    x0, px_w, y0, px_h = gt[0], gt[1], gt[3], gt[5]
    min_x = x0 + min_col * px_w
    max_x = x0 + (max_col + 1) * px_w
    max_y = y0 + min_row * px_h
    min_y = y0 + (max_row + 1) * px_h
    return min_x, min_y, max_x, max_y


def bounds_from_crop(gt: Sequence[float], min_col: int, min_row: int, max_col: int, max_row: int) -> list[list[float]]:
    """[[south, west], [north, east]] of the cropped raster."""
    if len(gt) < 6:
        raise ValueError(f"geotransform needs 6 terms, got {len(gt)}")
    min_x, min_y, max_x, max_y = crop_extent(gt, min_col, min_row, max_col, max_row)

    if geotransform_looks_geographic(gt):
        return [
            [min(min_y, max_y), min(min_x, max_x)],
            [max(min_y, max_y), max(min_x, max_x)],
        ]

    ll_lon, ll_lat = mercator_to_lonlat(min_x, min_y)
    ur_lon, ur_lat = mercator_to_lonlat(max_x, max_y)
    return [
        [min(ll_lat, ur_lat), min(ll_lon, ur_lon)],
        [max(ll_lat, ur_lat), max(ll_lon, ur_lon)],
    ]
