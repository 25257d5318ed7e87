#!/usr/bin/env python3
"""GRIB overlay FastAPI backend: serves cached, georeferenced precipitation PNGs for the Leaflet frontend."""

import os
import sys
import time
import atexit
import uuid

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Add backend dir to path so flat module imports work when run as a script
sys.path.insert(0, os.path.dirname(__file__))
from logging_config import setup_logging
from settings import load_settings
from cache_state import OverlayCacheStore
from toolchain import probe_toolchain
from convert_pipeline import convert_grib_to_png
from routers.core import build_core_router
from routers.overlay import build_overlay_router

logger = setup_logging(__name__, level=os.environ.get("GRIBVIEW_LOG_LEVEL", "INFO"))

SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
PID_FILE = os.path.join(SCRIPT_DIR, "logs", "gribview.pid")

settings = load_settings()
overlay_store = OverlayCacheStore(default_bounds=settings.default_bounds)
api_error_counters = {"4xx": 0, "5xx": 0}


async def probe_required_tools():
    return await probe_toolchain(settings.tool_paths())


async def convert_overlay(grib_path, match_exprs, paths):
    return await convert_grib_to_png(grib_path, match_exprs, paths, settings=settings, logger=logger)


app = FastAPI(title="GRIB Overlay API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    rid = getattr(request.state, "request_id", None) or uuid.uuid4().hex[:12]
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, "requestId": rid}, headers={"X-Request-Id": rid})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = getattr(request.state, "request_id", None) or uuid.uuid4().hex[:12]
    logger.exception(f"Unhandled error rid={rid}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error", "requestId": rid}, headers={"X-Request-Id": rid})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log API requests with method, path, and response time."""
    start_time = time.time()
    request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex[:12]
    request.state.request_id = request_id

    response = await call_next(request)

    duration_ms = (time.time() - start_time) * 1000
    response.headers["X-Request-Id"] = request_id

    if 400 <= response.status_code < 500:
        api_error_counters["4xx"] += 1
    elif response.status_code >= 500:
        api_error_counters["5xx"] += 1

    # Overlay polling is constant during animation; only log it at debug unless it fails
    if request.url.path != "/api/precip/overlay.png" or response.status_code >= 400:
        logger.info(
            f"{request.method} {request.url.path} - {response.status_code} - {duration_ms:.2f}ms - rid={request_id}"
        )
    else:
        logger.debug(f"{request.method} {request.url.path} - {response.status_code} - {duration_ms:.2f}ms")

    return response


@app.on_event("startup")
async def startup_event():
    """Log server startup information."""
    logger.info("GRIB overlay server starting")
    logger.info(f"Data directory: {settings.data_dir}")
    logger.info(f"Cache directory: {settings.cache_dir}")
    logger.info(f"Default GRIB file: {settings.default_grib_file}")
    os.makedirs(settings.cache_dir, exist_ok=True)

    if not os.path.exists(settings.palette_file):
        logger.warning(f"Palette file missing: {settings.palette_file} (pipeline will fall back to synthetic)")

    status = await probe_required_tools()
    if status.available:
        logger.info("Toolchain available: wgrib2, gdalwarp, gdaldem")
    else:
        logger.warning(f"Toolchain incomplete, missing: {', '.join(status.missing)}")


app.include_router(build_overlay_router(
    settings=settings,
    store=overlay_store,
    probe_fn=probe_required_tools,
    convert_fn=convert_overlay,
    logger=logger,
))
app.include_router(build_core_router(
    store=overlay_store,
    probe_fn=probe_required_tools,
    api_error_counters=api_error_counters,
))


def _acquire_single_instance_or_exit(pid_file: str):
    """PID-file guard: overlay cache state and single-flight are per process."""
    os.makedirs(os.path.dirname(pid_file), exist_ok=True)

    if os.path.exists(pid_file):
        try:
            with open(pid_file, "r") as f:
                old_pid = int(f.read().strip())
            if old_pid > 0:
                os.kill(old_pid, 0)  # check process exists
                raise SystemExit(f"GRIB overlay backend already running with pid {old_pid} (pid file: {pid_file})")
        except ProcessLookupError:
            # stale pid file -> continue and overwrite
            pass
        except ValueError:
            # malformed pid file -> overwrite
            pass

    with open(pid_file, "w") as f:
        f.write(str(os.getpid()))

    def _cleanup_pid_file():
        try:
            if os.path.exists(pid_file):
                with open(pid_file, "r") as pf:
                    cur = pf.read().strip()
                if cur == str(os.getpid()):
                    os.remove(pid_file)
        except OSError:
            pass

    atexit.register(_cleanup_pid_file)


if __name__ == "__main__":
    _acquire_single_instance_or_exit(PID_FILE)
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
