"""Pure RGBA raster post-processing: border fill removal and content crop.

Rasters are numpy uint8 arrays shaped (height, width, 4).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from constants import BORDER_COLOR_TOLERANCE, CROP_ALPHA_THRESHOLD


@dataclass
class CropResult:
    min_x: int
    min_y: int
    max_x: int
    max_y: int
    width: int
    height: int
    rgba: np.ndarray
    cropped: bool


def _edge_samples(rgba: np.ndarray) -> np.ndarray:
    """Edge pixels in scan order: (x, top), (x, bottom) per column, then (left, y), (right, y) per row."""
    h, w = rgba.shape[:2]
    rows = np.stack([rgba[0, :], rgba[h - 1, :]], axis=1).reshape(-1, 4)
    cols = np.stack([rgba[:, 0], rgba[:, w - 1]], axis=1).reshape(-1, 4)
    return np.concatenate([rows, cols], axis=0)


def dominant_border_color(rgba: np.ndarray) -> Optional[Tuple[int, int, int]]:
    """Most frequent exact RGB among non-transparent edge pixels; ties go to the first seen."""
    h, w = rgba.shape[:2]
    if not h or not w:
        return None
    edge = _edge_samples(rgba)
    edge = edge[edge[:, 3] != 0]
    if not len(edge):
        return None
    rgb = edge[:, :3].astype(np.int32)
    keys = (rgb[:, 0] << 16) | (rgb[:, 1] << 8) | rgb[:, 2]
    uniq, first_idx, counts = np.unique(keys, return_index=True, return_counts=True)
    best = counts.max()
    winners = np.where(counts == best)[0]
    pick = winners[np.argmin(first_idx[winners])]
    k = int(uniq[pick])
    return (k >> 16) & 255, (k >> 8) & 255, k & 255


def make_border_color_transparent(
    rgba: np.ndarray,
    tolerance: int = BORDER_COLOR_TOLERANCE,
    background: Optional[Tuple[int, int, int]] = None,
) -> Tuple[np.ndarray, Optional[Tuple[int, int, int]], int]:
    """Zero the alpha of every pixel within `tolerance` (per channel) of the border fill colour.

    Returns (raster, background colour used, number of pixels cleared). The input
    array is not modified.
    """
    out = np.array(rgba, dtype=np.uint8, copy=True)
    bg = background if background is not None else dominant_border_color(out)
    if bg is None:
        return out, None, 0

    diff = np.abs(out[..., :3].astype(np.int16) - np.array(bg, dtype=np.int16))
    mask = (out[..., 3] != 0) & np.all(diff <= int(tolerance), axis=-1)
    out[..., 3][mask] = 0
    return out, bg, int(np.count_nonzero(mask))


def crop_to_content(rgba: np.ndarray, alpha_threshold: int = CROP_ALPHA_THRESHOLD) -> Optional[CropResult]:
    """Crop to the bounding box of pixels with alpha >= alpha_threshold.

    Returns None when no pixel qualifies.
    """
    h, w = rgba.shape[:2]
    opaque = rgba[..., 3] >= alpha_threshold
    if not np.any(opaque):
        return None

    ys = np.where(np.any(opaque, axis=1))[0]
    xs = np.where(np.any(opaque, axis=0))[0]
    min_y, max_y = int(ys[0]), int(ys[-1])
    min_x, max_x = int(xs[0]), int(xs[-1])

    if (max_x - min_x + 1) == w and (max_y - min_y + 1) == h:
        return CropResult(min_x, min_y, max_x, max_y, w, h, rgba, False)

    sub = np.ascontiguousarray(rgba[min_y:max_y + 1, min_x:max_x + 1])
    return CropResult(min_x, min_y, max_x, max_y, w, h, sub, True)
