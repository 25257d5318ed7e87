"""Per-key overlay cache entries, in-flight refresh registry and counters."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from constants import DEFAULT_BOUNDS, SOURCE_SYNTHETIC


@dataclass
class CacheEntry:
    """Refresh state for one overlay key, reported per key by /api/status.

    `failure_count` (`failureCount` in the payload) counts consecutive pipeline
    failures since the last success or new source data. It is what the
    `max_consecutive_failures` setting (refresh.max_consecutive_failures in
    overlay_config.yaml, 0 = retry indefinitely) is compared against before a
    backoff retry.
    """

    updated_at: int = 0  # epoch ms of the last artifact write, 0 = never
    bounds: List[List[float]] = field(default_factory=lambda: [list(p) for p in DEFAULT_BOUNDS])
    source: str = SOURCE_SYNTHETIC
    message: str = "synthetic"
    source_mtime: Optional[float] = None
    pipeline_available: Optional[bool] = None
    last_error_at: int = 0
    failure_count: int = 0

    def to_payload(self) -> dict:
        return {
            "updatedAt": self.updated_at,
            "bounds": self.bounds,
            "source": self.source,
            "message": self.message,
            "sourceMtime": self.source_mtime,
            "pipelineAvailable": self.pipeline_available,
            "lastErrorAt": self.last_error_at,
            "failureCount": self.failure_count,
        }


class OverlayCacheStore:
    """Process-wide overlay state: one entry per key plus the single-flight registry.

    Only touched from the event loop, so no locking; callers must not await
    between checking `inflight()` and calling `register()`.
    """

    def __init__(self, default_bounds: Optional[List[List[float]]] = None):
        self._default_bounds = [list(p) for p in (default_bounds or DEFAULT_BOUNDS)]
        self.entries: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        self.metrics = {
            "conversions": 0,
            "conversionFailures": 0,
            "syntheticWrites": 0,
            "singleflightWaits": 0,
        }

    def entry(self, key: str) -> CacheEntry:
        item = self.entries.get(key)
        if item is None:
            item = CacheEntry(bounds=[list(p) for p in self._default_bounds])
            self.entries[key] = item
        return item

    def inflight(self, key: str) -> Optional[asyncio.Task]:
        return self._inflight.get(key)

    def register(self, key: str, task: asyncio.Task) -> None:
        if key in self._inflight:
            raise RuntimeError(f"refresh already in flight for {key}")
        self._inflight[key] = task

    def release(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    def inflight_keys(self) -> List[str]:
        return sorted(self._inflight.keys())

    def __len__(self) -> int:
        return len(self.entries)
