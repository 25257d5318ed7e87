"""Status/health payload assembly helpers."""

from __future__ import annotations

from datetime import datetime, timezone

from cache_state import OverlayCacheStore
from constants import SOURCE_SYNTHETIC, SOURCE_TOOLCHAIN


def _age_seconds(updated_at_ms: int, now: datetime):
    if not updated_at_ms:
        return None
    return round(now.timestamp() - updated_at_ms / 1000.0, 1)


def build_health_payload(*, store: OverlayCacheStore, toolchain_status) -> dict:
    return {
        "status": "ok",
        "toolchain": {
            "available": toolchain_status.available,
            "missing": list(toolchain_status.missing),
        },
        "entries": len(store),
    }


def build_status_payload(*, store: OverlayCacheStore, toolchain_status, api_error_counters: dict) -> dict:
    """Per-key cache entries, in-flight refreshes and counters."""
    now = datetime.now(timezone.utc)
    entries = {}
    by_source = {SOURCE_TOOLCHAIN: 0, SOURCE_SYNTHETIC: 0}
    for key in sorted(store.entries):
        entry = store.entries[key]
        row = entry.to_payload()
        row["ageSeconds"] = _age_seconds(entry.updated_at, now)
        entries[key] = row
        by_source[entry.source] = by_source.get(entry.source, 0) + 1

    m = store.metrics
    conversions = m["conversions"]
    return {
        "generatedAt": now.isoformat().replace("+00:00", "Z"),
        "toolchain": {
            "available": toolchain_status.available,
            "missing": list(toolchain_status.missing),
        },
        "cache": {
            "items": len(store),
            "bySource": by_source,
            "inflight": store.inflight_keys(),
            "entries": entries,
        },
        "metrics": {
            **m,
            "conversionFailureRate": (m["conversionFailures"] / conversions) if conversions else None,
        },
        "errors": dict(api_error_counters),
    }
