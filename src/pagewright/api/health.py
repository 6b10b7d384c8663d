"""Health check endpoints."""

from __future__ import annotations

import time
from typing import Any

from fastapi import APIRouter, Request

from pagewright.providers.health import HealthState

router = APIRouter(tags=["health"])

_START_TIME = time.monotonic()


@router.get("/api/health")
async def health() -> dict[str, str]:
    """Basic health check -- always returns quickly."""
    return {"status": "ok"}


@router.get("/api/health/detailed")
async def health_detailed(request: Request, probe: bool = False) -> dict[str, Any]:
    """Provider health; ``probe=true`` sends a probe to every available provider."""
    from pagewright import __version__

    pm = request.app.state.provider_manager
    available = pm.get_available_providers()
    if probe:
        await pm.check_all_health()

    providers: dict[str, dict[str, Any]] = {}
    for pid, status in pm.health_statuses().items():
        if pid not in available:
            continue
        tracker = pm.get_health_tracker(pid)
        providers[pid] = {
            **status.to_dict(),
            "available": True,
            "metrics": tracker.get_health_metrics().to_dict(),
        }

    overall = "ok"
    if not available:
        overall = "degraded"
    elif all(s["state"] == HealthState.UNHEALTHY.value for s in providers.values()):
        overall = "degraded"

    return {
        "status": overall,
        "version": __version__,
        "uptime_seconds": round(time.monotonic() - _START_TIME, 1),
        "providers": providers,
    }
