"""Shared constants for the GRIB overlay backend.

Keep fixed domain values and frequently reused defaults in one place.
"""

from __future__ import annotations

# Whole-region default overlay bounds [[south, west], [north, east]] (metropolitan France)
DEFAULT_BOUNDS: list[list[float]] = [[41.0, -5.5], [51.5, 9.8]]

# Artifact provenance
SOURCE_TOOLCHAIN: str = "toolchain"
SOURCE_SYNTHETIC: str = "synthetic"

# Executables probed before every refresh decision; gdalinfo is only needed once these run
REQUIRED_TOOLS: tuple[str, ...] = ("wgrib2", "gdalwarp", "gdaldem")

# Per-variable wgrib2 -match candidates, in priority order
VAR_MATCH_EXPRS: dict[str, list[str]] = {
    "CAPE": [":CAPE:"],
    "RPRATE": [":RPRATE:", ":PRATE:", ":APCP:"],
    "SPRATE": [":SPRATE:"],
    "GPRATE": [":GPRATE:"],
    "LCDC": [":LCDC:"],
    "PRES": [":PRES:"],
}
FALLBACK_MATCH_EXPRS: list[str] = [":RPRATE:", ":PRATE:", ":APCP:"]
DEFAULT_VAR: str = "RPRATE"

# Hour slots served by the front end (inclusive)
HOUR_MIN: int = 8
HOUR_MAX: int = 15
DEFAULT_TIME_KEY: str = "default"
GRIB_SUFFIX: str = "H.grib2"

# Refresh policy (milliseconds)
RETRY_INTERVAL_MS: int = 15_000
SYNTHETIC_REFRESH_MS: int = 30_000

# Pixel post-processing
BORDER_COLOR_TOLERANCE: int = 10
CROP_ALPHA_THRESHOLD: int = 1

# Pipeline output sanity
MIN_EXTRACT_BYTES: int = 200
ERROR_DETAIL_MAX_CHARS: int = 600
TARGET_SRS: str = "EPSG:3857"

# Per-command wall clock limit for wgrib2/GDAL (seconds)
COMMAND_TIMEOUT_S: float = 120.0

# Artifact read stability check
PNG_READ_RETRIES: int = 5
PNG_READ_RETRY_DELAY_MS: int = 80
PNG_SIZE_SETTLE_MS: int = 25

# Synthetic placeholder raster edge length (pixels)
SYNTHETIC_SIZE: int = 512

# Spherical Mercator earth radius (m)
EARTH_RADIUS_M: float = 6378137.0
