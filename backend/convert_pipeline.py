"""GRIB -> georeferenced PNG conversion through wgrib2 and GDAL.

extract (wgrib2 -match -> NetCDF) -> reproject (gdalwarp) -> render (gdaldem
color-relief) -> border fill removal -> content crop -> bounds -> atomic publish.
Match expressions are tried in order; the first one that survives the whole
chain wins.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional, Sequence

from starlette.concurrency import run_in_threadpool

from constants import MIN_EXTRACT_BYTES
from geo_bounds import bounds_from_crop
from overlay_keys import ArtifactPaths
from pixel_ops import crop_to_content, make_border_color_transparent
from png_io import publish_png, read_png_with_retry
from settings import OverlaySettings
from toolchain import error_details, run_cmd, run_cmd_json


class PipelineError(RuntimeError):
    pass


class PaletteMissingError(PipelineError):
    pass


@dataclass
class ConversionResult:
    bounds: List[List[float]]
    match_expr: str
    cropped: bool = False


def _remove_if_exists(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def _file_size(path: str) -> int:
    try:
        return os.stat(path).st_size
    except FileNotFoundError:
        return 0


async def ensure_non_empty_file(path: str, min_bytes: int, label: str) -> None:
    size = await run_in_threadpool(_file_size, path)
    if size < min_bytes:
        raise PipelineError(f"{label} empty or missing: {path} ({size} bytes)")


async def _convert_one(
    grib_path: str,
    match_expr: str,
    paths: ArtifactPaths,
    settings: OverlaySettings,
    logger,
) -> ConversionResult:
    timeout = settings.command_timeout_s
    await run_in_threadpool(_remove_if_exists, paths.grid_nc)
    await run_in_threadpool(os.makedirs, os.path.dirname(paths.grid_nc) or ".", exist_ok=True)

    await run_cmd([settings.wgrib2_exe, grib_path, "-match", match_expr, "-netcdf", paths.grid_nc], timeout)
    await ensure_non_empty_file(paths.grid_nc, MIN_EXTRACT_BYTES, f"wgrib2 ({match_expr}) netcdf")

    await run_cmd([settings.gdalwarp_exe, "-overwrite", "-t_srs", settings.target_srs, paths.grid_nc, paths.warped_tif], timeout)
    await run_cmd([settings.gdaldem_exe, "color-relief", paths.warped_tif, settings.palette_file, paths.overlay_tmp_png, "-alpha"], timeout)

    rgba = await read_png_with_retry(
        paths.overlay_tmp_png,
        attempts=settings.png_read_retries,
        delay_ms=settings.png_read_retry_delay_ms,
    )
    rgba, bg, cleared = await run_in_threadpool(
        make_border_color_transparent, rgba, settings.border_color_tolerance,
    )
    logger.debug(f"border fill {bg} cleared on {cleared} px ({match_expr})")

    info = await run_cmd_json([settings.gdalinfo_exe, "-json", paths.warped_tif], timeout)
    gt = info.get("geoTransform")
    if not isinstance(gt, list) or len(gt) < 6:
        raise PipelineError("gdalinfo: geoTransform missing")

    crop = await run_in_threadpool(crop_to_content, rgba, settings.crop_alpha_threshold)
    if crop is None:
        await publish_png(rgba, paths.overlay_tmp_png, paths.overlay_png)
        return ConversionResult(bounds=[list(p) for p in settings.default_bounds], match_expr=match_expr)

    bounds = bounds_from_crop(gt, crop.min_x, crop.min_y, crop.max_x, crop.max_y)
    await publish_png(crop.rgba, paths.overlay_tmp_png, paths.overlay_png)
    return ConversionResult(bounds=bounds, match_expr=match_expr, cropped=crop.cropped)


async def convert_grib_to_png(
    grib_path: str,
    match_exprs: Optional[Sequence[str]],
    paths: ArtifactPaths,
    *,
    settings: OverlaySettings,
    logger,
) -> ConversionResult:
    """Run the pipeline for each candidate in order; raise PipelineError if all fail."""
    if not await run_in_threadpool(os.path.exists, settings.palette_file):
        raise PaletteMissingError(f"Palette missing: {settings.palette_file}")

    matches = list(match_exprs) if match_exprs else list(settings.fallback_matches)
    last_err: Exception | None = None
    for match_expr in matches:
        try:
            result = await _convert_one(grib_path, match_expr, paths, settings, logger)
            logger.info(f"Converted {os.path.basename(grib_path)} via {match_expr} -> {paths.overlay_png}")
            return result
        except Exception as exc:
            last_err = exc
            logger.warning(f"Pipeline candidate {match_expr} failed for {grib_path}: {error_details(exc, 200)}")

    raise PipelineError(
        f"No field matched via -match. Tried: {', '.join(matches)}. Last error: {error_details(last_err)}"
    )
