"""System endpoints — health and cache stats."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from intelgate import __version__
from intelgate.api.app import get_services, get_uptime
from intelgate.services import Services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])


@router.get("/health")
async def health(services: Services = Depends(get_services)):
    settings = services.settings

    db_ok = False
    try:
        await services.cache.stats()
        db_ok = True
    except Exception as exc:
        logger.warning("[health] database check failed: %s", exc)

    return {
        "status": "ok" if db_ok else "degraded",
        "version": __version__,
        "uptime_seconds": round(get_uptime(), 1),
        "mock_mode": settings.mock_mode,
        "components": {"db": db_ok},
        "provider": {"name": services.provider.name, "kind": services.provider.kind.value},
        "gate_threshold": settings.gate_threshold,
        "phases": {name: [k.value for k in kinds] for name, kinds in settings.phases.items()},
    }


@router.get("/cache/stats")
async def cache_stats(subject: str | None = None, services: Services = Depends(get_services)):
    return await services.cache.stats(subject)
