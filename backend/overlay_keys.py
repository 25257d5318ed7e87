"""Query normalisation, cache keys and artifact path derivation."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import List, Optional

from constants import DEFAULT_TIME_KEY, GRIB_SUFFIX
from settings import OverlaySettings

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_HOUR_RE = re.compile(r"^\d{1,2}$")


@dataclass(frozen=True)
class ArtifactPaths:
    grid_nc: str
    warped_tif: str
    overlay_png: str
    overlay_tmp_png: str


@dataclass(frozen=True)
class OverlayRequest:
    hour: Optional[str]
    var: str
    time_key: str
    key: str
    grib_path: str
    paths: ArtifactPaths
    match_exprs: List[str]


def safe_key(key) -> str:
    return _UNSAFE_CHARS.sub("", str(key))


def normalize_hour(hour, hour_min: int, hour_max: int) -> Optional[str]:
    """'8', '08', '08h' -> '08'; anything unparseable or out of range -> None."""
    if hour is None or hour == "":
        return None
    s = str(hour).strip().upper()
    if s.endswith("H"):
        s = s[:-1]
    if not _HOUR_RE.match(s):
        return None
    n = int(s)
    if n < hour_min or n > hour_max:
        return None
    return f"{n:02d}"


def normalize_var(var, allowed) -> Optional[str]:
    if var is None or var == "":
        return None
    s = str(var).strip().upper()
    if s not in allowed:
        return None
    return s


def match_exprs_for_var(var: str, settings: OverlaySettings) -> List[str]:
    return list(settings.var_matches.get(var) or settings.fallback_matches)


def grib_path_for_hour(hour: Optional[str], settings: OverlaySettings) -> str:
    if hour is None:
        return settings.default_grib_file
    return os.path.join(settings.data_dir, f"{hour}{GRIB_SUFFIX}")


def artifact_paths(var: str, time_key: str, cache_dir: str) -> ArtifactPaths:
    v = safe_key(str(var or "var").lower())
    k = safe_key(time_key)
    return ArtifactPaths(
        grid_nc=os.path.join(cache_dir, f"{v}_{k}.nc"),
        warped_tif=os.path.join(cache_dir, f"{v}_{k}_3857.tif"),
        overlay_png=os.path.join(cache_dir, f"{v}_{k}_color.png"),
        overlay_tmp_png=os.path.join(cache_dir, f"{v}_{k}_color.tmp.png"),
    )


def resolve_overlay_request(hour, var, settings: OverlaySettings) -> OverlayRequest:
    """Resolve raw query parameters to the key, source file and artifact paths they address."""
    hh = normalize_hour(hour, settings.hour_min, settings.hour_max)
    var_key = normalize_var(var, settings.allowed_vars) or settings.default_var
    time_key = f"{hh}H" if hh else DEFAULT_TIME_KEY
    return OverlayRequest(
        hour=hh,
        var=var_key,
        time_key=time_key,
        key=safe_key(f"{var_key}_{time_key}"),
        grib_path=grib_path_for_hour(hh, settings),
        paths=artifact_paths(var_key, time_key, settings.cache_dir),
        match_exprs=match_exprs_for_var(var_key, settings),
    )
