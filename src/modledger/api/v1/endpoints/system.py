"""System endpoints for operational status."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from modledger.api.v1.dependencies import ServiceDep
from modledger.core.settings import settings

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/health")
def get_health(service: ServiceDep) -> dict[str, Any]:
    """Report whether the cache is being bypassed, plus its counters."""
    cache = service.health()
    return {
        "app": {"name": settings.app_name, "version": settings.app_version},
        "cache_degraded": cache["degraded"],
        "cache": cache,
    }
