"""Shared pytest fixtures for the GRIB overlay backend."""

from __future__ import annotations

import asyncio
import os
import sys
import tempfile

import numpy as np
import pytest
import requests

BACKEND_DIR = os.path.join(os.path.dirname(__file__), "..", "backend")
SCRIPTS_DIR = os.path.join(os.path.dirname(__file__), "..", "scripts")
sys.path.insert(0, BACKEND_DIR)

# Keep test runs from writing into backend/logs
os.environ.setdefault("GRIBVIEW_LOG_DIR", tempfile.mkdtemp(prefix="gribview-logs-"))

from cache_state import OverlayCacheStore  # noqa: E402
from convert_pipeline import ConversionResult  # noqa: E402
from logging_config import setup_logging  # noqa: E402
from settings import OverlaySettings  # noqa: E402
from toolchain import ToolchainStatus  # noqa: E402

GRIBVIEW_BASE = os.environ.get("GRIBVIEW_BASE", "http://127.0.0.1:3001")

DEFAULT_BOUNDS = [[41.0, -5.5], [51.5, 9.8]]


def _reachable(url: str, timeout: float = 3.0) -> bool:
    try:
        r = requests.get(url + "/api/health", timeout=timeout)
        return r.status_code == 200
    except requests.RequestException:
        return False


@pytest.fixture(scope="session")
def gribview_base():
    """URL of a running overlay backend. Skip session if not reachable."""
    if not _reachable(GRIBVIEW_BASE):
        pytest.skip(f"GRIB overlay server not reachable at {GRIBVIEW_BASE}; set GRIBVIEW_BASE or start backend.")
    return GRIBVIEW_BASE


@pytest.fixture
def settings(tmp_path):
    data_dir = tmp_path / "data"
    cache_dir = tmp_path / "cache"
    data_dir.mkdir()
    cache_dir.mkdir()
    return OverlaySettings(
        data_dir=str(data_dir),
        cache_dir=str(cache_dir),
        default_grib_file=str(data_dir / "precip.grib2"),
        palette_file=str(data_dir / "palette.txt"),
        png_read_retry_delay_ms=5,
    )


@pytest.fixture
def store():
    return OverlayCacheStore(default_bounds=DEFAULT_BOUNDS)


@pytest.fixture
def logger():
    return setup_logging("gribview.tests", level="DEBUG")


class FakeProbe:
    def __init__(self, missing=()):
        self.missing = list(missing)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return ToolchainStatus(missing=list(self.missing))


class FakeConverter:
    """Stands in for convert_grib_to_png; writes a small real PNG to the final path."""

    def __init__(self, bounds=None, delay=0.0, fail=False, match_expr=":PRATE:"):
        self.bounds = bounds or [[44.0, -1.0], [48.0, 4.0]]
        self.delay = delay
        self.fail = fail
        self.match_expr = match_expr
        self.calls = 0
        self.release = None

    async def __call__(self, grib_path, match_exprs, paths):
        from png_io import publish_png

        self.calls += 1
        if self.release is not None:
            await self.release.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("wgrib2: no match for :RPRATE:\n  database empty")
        rgba = np.zeros((8, 8, 4), dtype=np.uint8)
        rgba[2:6, 2:6] = (20, 80, 220, 255)
        await publish_png(rgba, paths.overlay_tmp_png, paths.overlay_png)
        return ConversionResult(bounds=self.bounds, match_expr=self.match_expr, cropped=True)


@pytest.fixture
def fake_probe():
    return FakeProbe()


@pytest.fixture
def fake_converter():
    return FakeConverter()


def write_grib(path, mtime_s: float | None = None) -> str:
    with open(path, "wb") as f:
        f.write(b"GRIB" + b"\0" * 512)
    if mtime_s is not None:
        os.utime(path, (mtime_s, mtime_s))
    return str(path)
