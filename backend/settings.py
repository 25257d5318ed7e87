"""Overlay service configuration: YAML defaults overlaid with GRIBVIEW_* environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

import yaml

from constants import (
    BORDER_COLOR_TOLERANCE,
    COMMAND_TIMEOUT_S,
    CROP_ALPHA_THRESHOLD,
    DEFAULT_BOUNDS,
    DEFAULT_VAR,
    FALLBACK_MATCH_EXPRS,
    HOUR_MAX,
    HOUR_MIN,
    PNG_READ_RETRIES,
    PNG_READ_RETRY_DELAY_MS,
    REQUIRED_TOOLS,
    RETRY_INTERVAL_MS,
    SYNTHETIC_REFRESH_MS,
    TARGET_SRS,
    VAR_MATCH_EXPRS,
)

SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
CONFIG_PATH = os.path.join(SCRIPT_DIR, "overlay_config.yaml")


@dataclass(frozen=True)
class OverlaySettings:
    data_dir: str
    cache_dir: str
    default_grib_file: str
    palette_file: str
    default_var: str = DEFAULT_VAR
    fallback_matches: List[str] = field(default_factory=lambda: list(FALLBACK_MATCH_EXPRS))
    var_matches: Dict[str, List[str]] = field(default_factory=lambda: {k: list(v) for k, v in VAR_MATCH_EXPRS.items()})
    hour_min: int = HOUR_MIN
    hour_max: int = HOUR_MAX
    default_bounds: List[List[float]] = field(default_factory=lambda: [list(p) for p in DEFAULT_BOUNDS])
    wgrib2_exe: str = "wgrib2"
    gdalwarp_exe: str = "gdalwarp"
    gdaldem_exe: str = "gdaldem"
    gdalinfo_exe: str = "gdalinfo"
    target_srs: str = TARGET_SRS
    command_timeout_s: float = COMMAND_TIMEOUT_S
    retry_interval_ms: int = RETRY_INTERVAL_MS
    synthetic_refresh_ms: int = SYNTHETIC_REFRESH_MS
    max_consecutive_failures: int = 0
    border_color_tolerance: int = BORDER_COLOR_TOLERANCE
    crop_alpha_threshold: int = CROP_ALPHA_THRESHOLD
    png_read_retries: int = PNG_READ_RETRIES
    png_read_retry_delay_ms: int = PNG_READ_RETRY_DELAY_MS
    port: int = 3001

    @property
    def allowed_vars(self) -> List[str]:
        return list(self.var_matches.keys())

    def tool_paths(self) -> Dict[str, str]:
        """Executables probed before each refresh decision, in report order."""
        return {name: getattr(self, f"{name}_exe") for name in REQUIRED_TOOLS}


def load_config(path: str = CONFIG_PATH) -> dict:
    """Load overlay configuration from YAML (empty dict if the file is absent)."""
    if not os.path.exists(path):
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def split_matches(raw: Optional[str]) -> List[str]:
    """Split a comma-separated match list, dropping blanks."""
    if not raw:
        return []
    return [s.strip() for s in str(raw).split(",") if s.strip()]


def _resolve_dir(base_dir: str, value: Optional[str], default: str) -> str:
    p = value or default
    if not os.path.isabs(p):
        p = os.path.normpath(os.path.join(base_dir, p))
    return p


def load_settings(env: Optional[Mapping[str, str]] = None, config_path: Optional[str] = None) -> OverlaySettings:
    """Build OverlaySettings from the YAML file and environment overrides."""
    env = os.environ if env is None else env
    config_path = config_path or env.get("GRIBVIEW_CONFIG") or CONFIG_PATH
    cfg = load_config(config_path)
    base_dir = os.path.dirname(os.path.abspath(config_path))

    tools = cfg.get("tools") or {}
    refresh = cfg.get("refresh") or {}
    post = cfg.get("postprocess") or {}
    png_read = cfg.get("png_read") or {}
    hours = cfg.get("hours") or {}

    data_dir = _resolve_dir(base_dir, env.get("GRIBVIEW_DATA_DIR") or cfg.get("data_dir"), "../data")
    cache_dir = _resolve_dir(base_dir, env.get("GRIBVIEW_CACHE_DIR") or cfg.get("cache_dir"), "../cache")

    default_grib = env.get("GRIBVIEW_GRIB_FILE") or os.path.join(data_dir, cfg.get("default_grib_file", "precip.grib2"))
    palette = env.get("GRIBVIEW_PALETTE_FILE") or os.path.join(data_dir, cfg.get("palette_file", "palette.txt"))

    var_matches = {str(k).upper(): [str(m) for m in v] for k, v in (cfg.get("variables") or VAR_MATCH_EXPRS).items()}
    fallback = split_matches(env.get("GRIBVIEW_GRIB_MATCHES") or cfg.get("fallback_matches")) or list(FALLBACK_MATCH_EXPRS)

    return OverlaySettings(
        data_dir=data_dir,
        cache_dir=cache_dir,
        default_grib_file=default_grib,
        palette_file=palette,
        default_var=str(env.get("GRIBVIEW_DEFAULT_VAR") or cfg.get("default_var") or DEFAULT_VAR).strip().upper(),
        fallback_matches=fallback,
        var_matches=var_matches,
        hour_min=int(hours.get("min", HOUR_MIN)),
        hour_max=int(hours.get("max", HOUR_MAX)),
        default_bounds=[list(map(float, p)) for p in (cfg.get("default_bounds") or DEFAULT_BOUNDS)],
        wgrib2_exe=env.get("GRIBVIEW_WGRIB2_EXE") or tools.get("wgrib2", "wgrib2"),
        gdalwarp_exe=env.get("GRIBVIEW_GDALWARP_EXE") or tools.get("gdalwarp", "gdalwarp"),
        gdaldem_exe=env.get("GRIBVIEW_GDALDEM_EXE") or tools.get("gdaldem", "gdaldem"),
        gdalinfo_exe=env.get("GRIBVIEW_GDALINFO_EXE") or tools.get("gdalinfo", "gdalinfo"),
        target_srs=env.get("GRIBVIEW_TARGET_SRS") or tools.get("target_srs", TARGET_SRS),
        command_timeout_s=float(env.get("GRIBVIEW_COMMAND_TIMEOUT_S") or tools.get("command_timeout_s", COMMAND_TIMEOUT_S)),
        retry_interval_ms=int(env.get("GRIBVIEW_RETRY_INTERVAL_MS") or refresh.get("retry_interval_ms", RETRY_INTERVAL_MS)),
        synthetic_refresh_ms=int(env.get("GRIBVIEW_SYNTHETIC_REFRESH_MS") or refresh.get("synthetic_refresh_ms", SYNTHETIC_REFRESH_MS)),
        max_consecutive_failures=int(env.get("GRIBVIEW_MAX_CONSECUTIVE_FAILURES") or refresh.get("max_consecutive_failures", 0)),
        border_color_tolerance=int(env.get("GRIBVIEW_BORDER_COLOR_TOLERANCE") or post.get("border_color_tolerance", BORDER_COLOR_TOLERANCE)),
        crop_alpha_threshold=int(env.get("GRIBVIEW_CROP_ALPHA_THRESHOLD") or post.get("crop_alpha_threshold", CROP_ALPHA_THRESHOLD)),
        png_read_retries=int(env.get("GRIBVIEW_PNG_READ_RETRIES") or png_read.get("retries", PNG_READ_RETRIES)),
        png_read_retry_delay_ms=int(env.get("GRIBVIEW_PNG_READ_RETRY_DELAY_MS") or png_read.get("retry_delay_ms", PNG_READ_RETRY_DELAY_MS)),
        port=int(env.get("GRIBVIEW_PORT") or 3001),
    )
