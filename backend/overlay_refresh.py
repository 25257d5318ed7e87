"""Refresh decision procedure for overlay artifacts.

Every meta/overlay request runs `ensure_overlay_up_to_date` first. It probes the
toolchain, stats the source grid and decides whether to run the conversion
pipeline, write a synthetic placeholder, or leave the current artifact alone.
Refreshes are single-flight per key: the first caller starts a task, everyone
else arriving while it runs awaits that same task.
"""

from __future__ import annotations

import asyncio
import os
import time
from typing import Awaitable, Callable, Optional, Sequence

from starlette.concurrency import run_in_threadpool

from cache_state import CacheEntry, OverlayCacheStore
from constants import SOURCE_SYNTHETIC, SOURCE_TOOLCHAIN
from convert_pipeline import ConversionResult
from overlay_keys import ArtifactPaths, OverlayRequest
from settings import OverlaySettings
from synthetic import write_synthetic_png
from toolchain import ToolchainStatus, error_details

ACTION_PIPELINE = "pipeline"
ACTION_SOURCE_MISSING = "source_missing"
ACTION_TOOLCHAIN_UNAVAILABLE = "toolchain_unavailable"

ProbeFn = Callable[[], Awaitable[ToolchainStatus]]
ConvertFn = Callable[[str, Sequence[str], ArtifactPaths], Awaitable[ConversionResult]]


def now_ms() -> int:
    return int(time.time() * 1000)


async def source_mtime_ms(path: str) -> Optional[float]:
    try:
        st = await run_in_threadpool(os.stat, path)
    except OSError:
        return None
    return st.st_mtime_ns / 1e6


def decide_refresh(
    entry: CacheEntry,
    *,
    grib_mtime: Optional[float],
    available: bool,
    just_available: bool,
    artifact_exists: bool,
    now: int,
    settings: OverlaySettings,
) -> Optional[str]:
    """Pick the refresh action for one request, or None to serve the current artifact."""
    stale = (
        entry.updated_at == 0
        or now - entry.updated_at > settings.synthetic_refresh_ms
        or not artifact_exists
    )

    if grib_mtime is not None and available:
        cap = settings.max_consecutive_failures
        retry_after_error = (
            entry.source != SOURCE_TOOLCHAIN
            and bool(entry.last_error_at)
            and now - entry.last_error_at >= settings.retry_interval_ms
            and (cap <= 0 or entry.failure_count < cap)
        )
        if entry.source_mtime != grib_mtime or retry_after_error or just_available or not artifact_exists:
            return ACTION_PIPELINE
        return None

    if grib_mtime is None and stale:
        return ACTION_SOURCE_MISSING
    if grib_mtime is not None and not available and stale:
        return ACTION_TOOLCHAIN_UNAVAILABLE
    return None


async def _publish_synthetic(
    entry: CacheEntry,
    paths: ArtifactPaths,
    store: OverlayCacheStore,
    settings: OverlaySettings,
    now_fn: Callable[[], int],
    **fields,
) -> None:
    now = now_fn()
    await write_synthetic_png(paths.overlay_tmp_png, paths.overlay_png, seed=now)
    store.metrics["syntheticWrites"] += 1
    entry.updated_at = now
    entry.bounds = [list(p) for p in settings.default_bounds]
    entry.source = SOURCE_SYNTHETIC
    for name, value in fields.items():
        setattr(entry, name, value)


async def _run_pipeline(
    req: OverlayRequest,
    entry: CacheEntry,
    grib_mtime: float,
    *,
    store: OverlayCacheStore,
    settings: OverlaySettings,
    convert_fn: ConvertFn,
    now_fn: Callable[[], int],
    logger,
) -> None:
    if entry.source_mtime != grib_mtime:
        entry.failure_count = 0
    store.metrics["conversions"] += 1
    try:
        res = await convert_fn(req.grib_path, req.match_exprs, req.paths)
    except Exception as exc:
        details = error_details(exc)
        store.metrics["conversionFailures"] += 1
        logger.warning(f"Pipeline failed for {req.key}, serving synthetic overlay: {details}")
        now = now_fn()
        await _publish_synthetic(
            entry, req.paths, store, settings, now_fn,
            message=f"Pipeline error: {details}",
            source_mtime=grib_mtime,
            last_error_at=now,
            failure_count=entry.failure_count + 1,
        )
        return

    entry.updated_at = now_fn()
    entry.bounds = res.bounds
    entry.source = SOURCE_TOOLCHAIN
    entry.message = (
        f"OK: {req.var} wgrib2 ({res.match_expr or ','.join(req.match_exprs)}) "
        f"-> gdalwarp {settings.target_srs} -> gdaldem color-relief"
    )
    entry.source_mtime = grib_mtime
    entry.last_error_at = 0
    entry.failure_count = 0
    logger.info(f"Overlay {req.key} refreshed from {os.path.basename(req.grib_path)} ({res.match_expr})")


async def _refresh(
    req: OverlayRequest,
    action: str,
    grib_mtime: Optional[float],
    missing_tools: list,
    *,
    store: OverlayCacheStore,
    settings: OverlaySettings,
    convert_fn: ConvertFn,
    now_fn: Callable[[], int],
    logger,
) -> None:
    entry = store.entry(req.key)
    try:
        if action == ACTION_PIPELINE:
            await _run_pipeline(
                req, entry, grib_mtime,
                store=store, settings=settings, convert_fn=convert_fn, now_fn=now_fn, logger=logger,
            )
        elif action == ACTION_SOURCE_MISSING:
            logger.info(f"Source grid missing for {req.key}: {req.grib_path}")
            await _publish_synthetic(
                entry, req.paths, store, settings, now_fn,
                message=f"GRIB missing: place a file at {req.grib_path}",
                source_mtime=None,
            )
        elif action == ACTION_TOOLCHAIN_UNAVAILABLE:
            logger.info(f"Toolchain unavailable for {req.key}: missing {', '.join(missing_tools)}")
            await _publish_synthetic(
                entry, req.paths, store, settings, now_fn,
                message=f"GRIB found but tools unavailable ({', '.join(missing_tools)}). Synthetic fallback.",
                source_mtime=grib_mtime,
            )
    finally:
        store.release(req.key, asyncio.current_task())


def _log_task_failure(logger):
    def _done(task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Overlay refresh task failed: {task.exception()!r}")
    return _done


async def ensure_overlay_up_to_date(
    req: OverlayRequest,
    *,
    store: OverlayCacheStore,
    settings: OverlaySettings,
    probe_fn: ProbeFn,
    convert_fn: ConvertFn,
    logger,
    now_fn: Callable[[], int] = now_ms,
) -> CacheEntry:
    """Bring the artifact for `req` up to date and return its cache entry."""
    entry = store.entry(req.key)

    prev_available = entry.pipeline_available
    status = await probe_fn()
    entry.pipeline_available = status.available
    just_available = status.available and prev_available is False

    grib_mtime = await source_mtime_ms(req.grib_path)

    # No await from here until the task is registered. The artifact check runs
    # inline so it cannot predate a refresh that finished while we were suspended.
    action = decide_refresh(
        entry,
        grib_mtime=grib_mtime,
        available=status.available,
        just_available=just_available,
        artifact_exists=os.path.exists(req.paths.overlay_png),
        now=now_fn(),
        settings=settings,
    )
    if action is None:
        return entry

    task = store.inflight(req.key)
    if task is not None:
        store.metrics["singleflightWaits"] += 1
        logger.debug(f"Singleflight wait: {req.key}")
        await asyncio.shield(task)
        return entry

    task = asyncio.create_task(_refresh(
        req, action, grib_mtime, list(status.missing),
        store=store, settings=settings, convert_fn=convert_fn, now_fn=now_fn, logger=logger,
    ))
    task.add_done_callback(_log_task_failure(logger))
    store.register(req.key, task)
    await asyncio.shield(task)
    return entry
