"""Precipitation overlay endpoints: meta + PNG.

Handler bodies close over injected app-level dependencies (settings, cache
store, toolchain probe, converter) so tests can build the router with fakes.
"""
from __future__ import annotations

import os
from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse, Response

from overlay_keys import resolve_overlay_request
from overlay_refresh import ensure_overlay_up_to_date
from png_io import read_png_bytes_with_retry
from response_headers import build_meta_headers, build_overlay_headers


def build_overlay_router(
    *,
    settings,
    store,
    probe_fn,
    convert_fn,
    logger,
):
    router = APIRouter()

    async def _ensure(hour, var):
        req = resolve_overlay_request(hour, var, settings)
        entry = await ensure_overlay_up_to_date(
            req,
            store=store,
            settings=settings,
            probe_fn=probe_fn,
            convert_fn=convert_fn,
            logger=logger,
        )
        return req, entry

    @router.get("/api/precip/meta")
    async def api_precip_meta(
        hour: Optional[str] = Query(None),
        var: Optional[str] = Query(None),
    ):
        req, entry = await _ensure(hour, var)
        return JSONResponse(
            content={
                "hour": req.hour,
                "var": req.var,
                "gribFile": os.path.basename(req.grib_path),
                "updatedAt": entry.updated_at,
                "bounds": entry.bounds,
                "source": entry.source,
                "message": entry.message,
            },
            headers=build_meta_headers(),
        )

    @router.get("/api/precip/overlay.png")
    async def api_precip_overlay(
        hour: Optional[str] = Query(None),
        var: Optional[str] = Query(None),
    ):
        req, entry = await _ensure(hour, var)
        png = await read_png_bytes_with_retry(
            req.paths.overlay_png,
            attempts=settings.png_read_retries,
            delay_ms=settings.png_read_retry_delay_ms,
        )
        return Response(
            content=png,
            media_type="image/png",
            headers=build_overlay_headers(
                var=req.var,
                hour=req.hour,
                source=entry.source,
                updated_at=entry.updated_at,
                bounds=entry.bounds,
            ),
        )

    return router
