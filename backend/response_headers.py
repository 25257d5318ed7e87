"""Shared HTTP response header builders for overlay responses."""

from __future__ import annotations


def _expose(headers: dict, names) -> None:
    expose = [x.strip() for x in headers.get("Access-Control-Expose-Headers", "").split(",") if x.strip()]
    for k in names:
        if k not in expose and k not in ("Cache-Control",):
            expose.append(k)
    headers["Access-Control-Expose-Headers"] = ", ".join(expose)


def build_overlay_headers(*, var: str, hour: str | None, source: str, updated_at: int, bounds, extra: dict | None = None) -> dict:
    (s, w), (n, e) = bounds
    headers = {
        "Cache-Control": "no-store",
        "X-Overlay-Var": var,
        "X-Overlay-Hour": hour or "default",
        "X-Overlay-Source": source,
        "X-Updated-At": str(updated_at),
        "X-Bounds": f"{s},{w},{n},{e}",
    }
    names = [k for k in headers if k != "Cache-Control"]
    if extra:
        headers.update(extra)
        names.extend(extra.keys())
    _expose(headers, names)
    return headers


def build_meta_headers() -> dict:
    return {"Cache-Control": "no-store"}
