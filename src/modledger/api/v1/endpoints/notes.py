"""User note endpoints for the moderation ledger API."""

from __future__ import annotations

from fastapi import APIRouter, Response, status

from modledger.api.v1.dependencies import ServiceDep
from modledger.schemas.note import UserNoteCreate, UserNoteEdit, UserNoteRecord

router = APIRouter(prefix="/notes", tags=["notes"])


@router.post("", response_model=UserNoteRecord, status_code=status.HTTP_201_CREATED)
def add_user_note(body: UserNoteCreate, service: ServiceDep) -> UserNoteRecord:
    return service.ledger.add_user_note(
        body.community_id, body.user_id, body.author_id, body.content
    )


@router.get("", response_model=list[UserNoteRecord])
def list_user_notes(service: ServiceDep, community_id: int, user_id: int) -> list[UserNoteRecord]:
    """List a user's notes, newest first."""
    return service.ledger.list_user_notes(community_id, user_id)


@router.delete("")
def clear_user_notes(service: ServiceDep, community_id: int, user_id: int) -> dict[str, int]:
    """Delete every note about a user."""
    return {"cleared": service.ledger.clear_user_notes(community_id, user_id)}


@router.get("/{note_id}", response_model=UserNoteRecord)
def get_user_note(note_id: int, service: ServiceDep, community_id: int) -> UserNoteRecord:
    return service.ledger.get_user_note(community_id, note_id)


@router.put("/{note_id}", response_model=UserNoteRecord)
def edit_user_note(note_id: int, body: UserNoteEdit, service: ServiceDep) -> UserNoteRecord:
    return service.ledger.edit_user_note(body.community_id, note_id, body.content)


@router.delete("/{note_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user_note(note_id: int, service: ServiceDep, community_id: int) -> Response:
    service.ledger.delete_user_note(community_id, note_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
