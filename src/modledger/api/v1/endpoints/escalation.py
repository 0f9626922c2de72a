"""Escalation policy endpoints for the moderation ledger API."""

from __future__ import annotations

from fastapi import APIRouter

from modledger.api.v1.dependencies import ServiceDep
from modledger.schemas.escalation import EscalationConfigResponse, EscalationConfigUpdate

router = APIRouter(prefix="/escalation", tags=["escalation"])


@router.get("/{community_id}", response_model=EscalationConfigResponse)
def get_escalation_config(community_id: int, service: ServiceDep) -> EscalationConfigResponse:
    """Return the community's policy, creating defaults on first access."""
    return EscalationConfigResponse.from_config(service.get_escalation_config(community_id))


@router.put("/{community_id}", response_model=EscalationConfigResponse)
def update_escalation_config(
    community_id: int,
    body: EscalationConfigUpdate,
    service: ServiceDep,
) -> EscalationConfigResponse:
    """Update some or all policy fields."""
    config = service.update_escalation_config(community_id, body)
    return EscalationConfigResponse.from_config(config)


@router.delete("/{community_id}", response_model=EscalationConfigResponse)
def reset_escalation_config(community_id: int, service: ServiceDep) -> EscalationConfigResponse:
    """Restore the default policy."""
    return EscalationConfigResponse.from_config(service.reset_escalation_config(community_id))
