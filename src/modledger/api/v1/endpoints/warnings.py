"""Warning endpoints for the moderation ledger API."""

from __future__ import annotations

from datetime import datetime, timedelta

from fastapi import APIRouter, Query

from modledger.api.v1.dependencies import ServiceDep
from modledger.schemas.warning import WarningRecord

router = APIRouter(prefix="/warnings", tags=["warnings"])


@router.get("/count")
def count_recent_warnings(
    service: ServiceDep,
    community_id: int,
    user_id: int,
    window_seconds: int | None = Query(
        None, ge=1, description="Defaults to the community's warn window"
    ),
) -> dict[str, int]:
    """Count a user's warnings in the sliding window ending now."""
    if window_seconds is None:
        window = service.get_escalation_config(community_id).warn_window
    else:
        window = timedelta(seconds=window_seconds)
    count = service.ledger.count_recent_warnings(community_id, user_id, window)
    return {"count": count, "window_seconds": int(window.total_seconds())}


@router.get("", response_model=list[WarningRecord])
def list_warnings(
    service: ServiceDep,
    community_id: int,
    user_id: int,
    since: datetime | None = Query(None),
    limit: int = Query(50, ge=1),
) -> list[WarningRecord]:
    """List a user's warnings, newest first."""
    return service.ledger.list_warnings(community_id, user_id, since=since, limit=limit)
