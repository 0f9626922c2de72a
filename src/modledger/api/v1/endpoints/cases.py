"""Case endpoints for the moderation ledger API."""

from __future__ import annotations

from fastapi import APIRouter, Query, Response, status

from modledger.api.v1.dependencies import ServiceDep
from modledger.models.case import CaseKind
from modledger.schemas.case import (
    ActionRequest,
    CaseEventRecord,
    CaseRecord,
    EscalationResultResponse,
    NoteRequest,
    ReasonRequest,
    ReverseRequest,
    WarnRequest,
    WarnResponse,
)

router = APIRouter(prefix="/cases", tags=["cases"])


@router.post("/warnings", response_model=WarnResponse, status_code=status.HTTP_201_CREATED)
def record_warning(body: WarnRequest, service: ServiceDep) -> WarnResponse:
    """Warn a user and run automatic escalation."""
    outcome = service.warn(body.community_id, body.user_id, body.moderator_id, body.reason)
    return WarnResponse(
        warning=outcome.warning,
        case=outcome.case,
        escalation=EscalationResultResponse(
            outcome=outcome.escalation.outcome.value,
            case=outcome.escalation.case,
        ),
    )


@router.post("/actions", response_model=CaseRecord, status_code=status.HTTP_201_CREATED)
def record_action(body: ActionRequest, service: ServiceDep) -> CaseRecord:
    """Record a ban, kick or timeout."""
    return service.record_action(
        body.community_id,
        body.user_id,
        body.moderator_id,
        body.kind,
        body.reason,
        body.duration_seconds,
    )


@router.get("", response_model=list[CaseRecord])
def list_cases(
    service: ServiceDep,
    community_id: int,
    user_id: int | None = Query(None),
    actor_id: int | None = Query(None),
    kind: CaseKind | None = Query(None),
    limit: int = Query(50, ge=1),
    before: int | None = Query(None, description="Return cases with a smaller id"),
) -> list[CaseRecord]:
    """List a community's cases, newest first."""
    return service.ledger.list_cases(
        community_id,
        user_id=user_id,
        actor_id=actor_id,
        kind=kind,
        limit=limit,
        before=before,
    )


@router.get("/by-label/{label}", response_model=CaseRecord)
def get_case_by_label(label: str, service: ServiceDep, community_id: int) -> CaseRecord:
    """Look a case up by its community label, such as `W3` or `AT1`."""
    return service.ledger.get_case_by_label(community_id, label)


@router.get("/{case_id}", response_model=CaseRecord)
def get_case(case_id: int, service: ServiceDep) -> CaseRecord:
    return service.ledger.get_case(case_id)


@router.get("/{case_id}/events", response_model=list[CaseEventRecord])
def get_case_events(case_id: int, service: ServiceDep) -> list[CaseEventRecord]:
    """Return the audit trail of a case."""
    return service.ledger.get_case_events(case_id)


@router.post("/{case_id}/reverse", response_model=CaseRecord)
def reverse_case(case_id: int, body: ReverseRequest, service: ServiceDep) -> CaseRecord:
    """Reverse an active case. Reversing twice returns 409."""
    return service.ledger.reverse_case(case_id, body.actor_id)


@router.put("/{case_id}/note", response_model=CaseRecord)
def annotate_case(case_id: int, body: NoteRequest, service: ServiceDep) -> CaseRecord:
    return service.ledger.annotate(case_id, body.note, actor_id=body.actor_id)


@router.put("/{case_id}/reason", response_model=CaseRecord)
def update_case_reason(case_id: int, body: ReasonRequest, service: ServiceDep) -> CaseRecord:
    return service.ledger.update_case_reason(case_id, body.actor_id, body.reason)


@router.post(
    "/{case_id}/expire",
    response_model=CaseRecord,
    responses={204: {"description": "Nothing to expire"}},
)
def expire_case(case_id: int, service: ServiceDep) -> CaseRecord | Response:
    """Expire a lapsed timeout. Returns 204 when there is nothing to expire."""
    case = service.ledger.expire_if_due(case_id)
    if case is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return case
