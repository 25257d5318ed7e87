"""Procedural placeholder overlay used when the real pipeline cannot run."""

from __future__ import annotations

import numpy as np
from starlette.concurrency import run_in_threadpool

from constants import SYNTHETIC_SIZE
from png_io import publish_png

# (amplitude, centre x, centre y, spread) in normalised image coordinates
HOT_SPOTS = (
    (1.2, 0.55, 0.45, 0.02),
    (0.8, 0.25, 0.70, 0.015),
    (0.6, 0.80, 0.20, 0.01),
)


def synthetic_rgba(seed: float, size: int = SYNTHETIC_SIZE) -> np.ndarray:
    """Deterministic RGBA raster for a given seed (the entry's updatedAt)."""
    axis = np.arange(size, dtype=np.float64) / (size - 1)
    nx, ny = np.meshgrid(axis, axis)

    v = np.zeros((size, size), dtype=np.float64)
    for amp, cx, cy, spread in HOT_SPOTS:
        v += amp * np.exp(-((nx - cx) ** 2 + (ny - cy) ** 2) / spread)
    v = np.clip(v, 0.0, 1.0)

    wave = 0.15 * np.sin(10 * nx + seed * 0.001) * np.cos(8 * ny - seed * 0.001)
    intensity = np.clip(v + wave, 0.0, 1.0)

    rgba = np.zeros((size, size, 4), dtype=np.uint8)
    rgba[..., 0] = np.round(255 * np.clip(intensity * 1.2, 0.0, 1.0))
    rgba[..., 1] = np.round(255 * np.clip(np.maximum(0.0, intensity - 0.25) * 1.3, 0.0, 1.0))
    rgba[..., 2] = np.round(255 * np.clip(np.maximum(0.0, intensity - 0.55) * 1.5, 0.0, 1.0))
    rgba[..., 3] = np.round(220 * intensity)
    return rgba


async def write_synthetic_png(tmp_path: str, final_path: str, seed: float, size: int = SYNTHETIC_SIZE) -> None:
    rgba = await run_in_threadpool(synthetic_rgba, seed, size)
    await publish_png(rgba, tmp_path, final_path)
