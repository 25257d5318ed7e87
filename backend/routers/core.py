from __future__ import annotations

from fastapi import APIRouter

from status_ops import build_health_payload, build_status_payload


def build_core_router(
    *,
    store,
    probe_fn,
    api_error_counters: dict,
):
    router = APIRouter()

    @router.get("/api/health")
    async def health():
        return build_health_payload(store=store, toolchain_status=await probe_fn())

    @router.get("/api/status")
    async def api_status():
        """Per-key overlay cache state, in-flight refreshes and error counters."""
        return build_status_payload(
            store=store,
            toolchain_status=await probe_fn(),
            api_error_counters=api_error_counters,
        )

    return router
