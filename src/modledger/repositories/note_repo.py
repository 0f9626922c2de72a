"""Data access helpers for user notes."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import ColumnElement, select, update
from sqlalchemy.orm import Session

from modledger.models.note import UserNote

__all__ = ["NoteRepository"]


class NoteRepository:
    """Thin wrapper around database access for user notes.

    Deleted notes stay in the table and are hidden from every read.
    """

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    def add(
        self,
        *,
        community_id: int,
        target_user_id: int,
        author_id: int,
        content: str,
        created_at: datetime,
    ) -> UserNote:
        note = UserNote(
            community_id=community_id,
            target_user_id=target_user_id,
            author_id=author_id,
            content=content,
            created_at=created_at,
            updated_at=created_at,
        )
        self.session.add(note)
        self.session.flush()
        return note

    def get_live(self, community_id: int, note_id: int) -> UserNote | None:
        """Return a note that has not been deleted."""
        stmt = select(UserNote).where(
            UserNote.community_id == community_id,
            UserNote.id == note_id,
            UserNote.deleted_at.is_(None),
        )
        return self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def list_for_user(self, community_id: int, target_user_id: int) -> list[UserNote]:
        """Return a user's live notes, newest first."""
        stmt = (
            select(UserNote)
            .where(
                UserNote.community_id == community_id,
                UserNote.target_user_id == target_user_id,
                UserNote.deleted_at.is_(None),
            )
            .order_by(UserNote.created_at.desc(), UserNote.id.desc())
        )
        return list(self.session.execute(stmt).scalars())

    def edit(self, community_id: int, note_id: int, content: str, *, now: datetime) -> bool:
        """Replace the content of a live note. Returns False when there is none."""
        return self._update_live(
            [UserNote.id == note_id],
            community_id,
            {"content": content, "updated_at": now},
        ) > 0

    def soft_delete(self, community_id: int, note_id: int, *, now: datetime) -> bool:
        return self._update_live(
            [UserNote.id == note_id],
            community_id,
            {"deleted_at": now, "updated_at": now},
        ) > 0

    def clear(self, community_id: int, target_user_id: int, *, now: datetime) -> int:
        """Soft-delete every live note about a user and return how many were hidden."""
        return self._update_live(
            [UserNote.target_user_id == target_user_id],
            community_id,
            {"deleted_at": now, "updated_at": now},
        )

    def _update_live(
        self,
        criteria: list[ColumnElement[bool]],
        community_id: int,
        values: dict[str, Any],
    ) -> int:
        stmt = (
            update(UserNote)
            .where(
                UserNote.community_id == community_id,
                UserNote.deleted_at.is_(None),
                *criteria,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return int(self.session.execute(stmt).rowcount or 0)
