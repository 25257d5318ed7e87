#!/usr/bin/env python3
"""GRIB overlay smoke checks against a running backend (non-visual).

Usage:
  python3 scripts/qa_smoke.py [--base http://127.0.0.1:3001]
"""

from __future__ import annotations

import argparse
import sys

import requests

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


def assert_ok(cond: bool, msg: str):
    if not cond:
        raise AssertionError(msg)


def check_meta(base: str, hour: str | None, var: str) -> dict:
    params = {"var": var}
    if hour:
        params["hour"] = hour
    r = requests.get(base + "/api/precip/meta", params=params, timeout=120)
    assert_ok(r.status_code == 200, f"meta {var}/{hour} returned {r.status_code}")
    meta = r.json()
    for k in ("hour", "var", "gribFile", "updatedAt", "bounds", "source", "message"):
        assert_ok(k in meta, f"meta {var}/{hour} missing {k}")
    assert_ok(meta["source"] in ("toolchain", "synthetic"), f"unexpected source {meta['source']}")
    (s, w), (n, e) = meta["bounds"]
    assert_ok(-90 <= s < n <= 90 and -180 <= w < e <= 180, f"implausible bounds {meta['bounds']}")
    assert_ok(meta["updatedAt"] > 0, f"meta {var}/{hour} never populated")
    return meta


def check_overlay(base: str, hour: str | None, var: str):
    params = {"var": var}
    if hour:
        params["hour"] = hour
    r = requests.get(base + "/api/precip/overlay.png", params=params, timeout=120)
    assert_ok(r.status_code == 200, f"overlay {var}/{hour} returned {r.status_code}")
    assert_ok(r.content.startswith(PNG_MAGIC), f"overlay {var}/{hour} is not a PNG")
    assert_ok(r.headers.get("Cache-Control") == "no-store", "overlay must not be cacheable")


def main() -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--base", default="http://127.0.0.1:3001")
    ap.add_argument("--var", default="RPRATE")
    args = ap.parse_args()
    base = args.base.rstrip("/")

    # 1) Core endpoints
    for ep in ("/api/health", "/api/status"):
        r = requests.get(base + ep, timeout=20)
        assert_ok(r.status_code == 200, f"{ep} returned {r.status_code}")

    # 2) Default file + every hour slot
    check_meta(base, None, args.var)
    check_overlay(base, None, args.var)
    for hh in range(8, 16):
        check_meta(base, f"{hh:02d}", args.var)
        check_overlay(base, f"{hh:02d}", args.var)

    # 3) Invalid inputs fall back instead of failing
    meta = check_meta(base, "99", "NOPE")
    assert_ok(meta["hour"] is None, "out-of-range hour should resolve to default file")

    st = requests.get(base + "/api/status", timeout=20).json()
    assert_ok(st.get("cache", {}).get("items", 0) >= 9, "status should list the warmed keys")

    print("PASS")
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except AssertionError as e:
        print(f"FAIL: {e}")
        sys.exit(1)
