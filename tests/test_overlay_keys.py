"""Tests for backend/overlay_keys.py and backend/settings.py."""

from __future__ import annotations

import os

import pytest

from overlay_keys import artifact_paths, normalize_hour, normalize_var, resolve_overlay_request, safe_key
from settings import load_settings, split_matches


@pytest.mark.parametrize("raw,expected", [
    ("8", "08"),
    ("08", "08"),
    ("08h", "08"),
    (" 15H ", "15"),
    ("7", None),
    ("16", None),
    ("abc", None),
    ("123", None),
    ("", None),
    (None, None),
])
def test_normalize_hour(raw, expected):
    assert normalize_hour(raw, 8, 15) == expected


def test_normalize_var_is_case_insensitive():
    allowed = ["CAPE", "RPRATE"]
    assert normalize_var("rprate", allowed) == "RPRATE"
    assert normalize_var(" cape ", allowed) == "CAPE"
    assert normalize_var("TMP", allowed) is None
    assert normalize_var(None, allowed) is None


def test_safe_key_strips_path_characters():
    assert safe_key("../RPRATE_08H/..") == "RPRATE_08H"
    assert safe_key("a b;c") == "abc"


def test_artifact_paths_layout(tmp_path):
    paths = artifact_paths("RPRATE", "08H", str(tmp_path))
    assert os.path.basename(paths.grid_nc) == "rprate_08H.nc"
    assert os.path.basename(paths.warped_tif) == "rprate_08H_3857.tif"
    assert os.path.basename(paths.overlay_png) == "rprate_08H_color.png"
    assert os.path.basename(paths.overlay_tmp_png) == "rprate_08H_color.tmp.png"


def test_resolve_request_for_hour(settings):
    req = resolve_overlay_request("08", "rprate", settings)
    assert req.hour == "08"
    assert req.var == "RPRATE"
    assert req.key == "RPRATE_08H"
    assert req.grib_path == os.path.join(settings.data_dir, "08H.grib2")
    assert req.match_exprs == [":RPRATE:", ":PRATE:", ":APCP:"]


def test_resolve_request_defaults(settings):
    req = resolve_overlay_request("42", "bogus", settings)
    assert req.hour is None
    assert req.var == settings.default_var
    assert req.time_key == "default"
    assert req.grib_path == settings.default_grib_file
    assert req.paths.overlay_png.endswith("rprate_default_color.png")


def test_split_matches():
    assert split_matches(" :A:, ,:B: ,") == [":A:", ":B:"]
    assert split_matches(None) == []


def test_load_settings_yaml_and_env_overrides(tmp_path):
    cfg = tmp_path / "overlay.yaml"
    cfg.write_text(
        "data_dir: data\n"
        "cache_dir: cache\n"
        "default_var: cape\n"
        "variables:\n"
        "  CAPE: [':CAPE:']\n"
        "  TMP: [':TMP:2 m above ground:']\n"
        "refresh:\n"
        "  retry_interval_ms: 1000\n"
    )
    env = {
        "GRIBVIEW_GRIB_MATCHES": ":X:,:Y:",
        "GRIBVIEW_BORDER_COLOR_TOLERANCE": "4",
    }
    s = load_settings(env=env, config_path=str(cfg))

    assert s.data_dir == str(tmp_path / "data")
    assert s.default_grib_file == str(tmp_path / "data" / "precip.grib2")
    assert s.default_var == "CAPE"
    assert s.allowed_vars == ["CAPE", "TMP"]
    assert s.fallback_matches == [":X:", ":Y:"]
    assert s.retry_interval_ms == 1000
    assert s.border_color_tolerance == 4
    assert s.synthetic_refresh_ms == 30000


def test_bundled_config_loads():
    s = load_settings(env={})
    assert s.default_var == "RPRATE"
    assert (s.hour_min, s.hour_max) == (8, 15)
    assert s.default_bounds == [[41.0, -5.5], [51.5, 9.8]]
    assert set(s.tool_paths()) == {"wgrib2", "gdalwarp", "gdaldem"}
    assert s.command_timeout_s == 120.0
