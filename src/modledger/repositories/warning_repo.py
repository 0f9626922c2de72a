"""Data access helpers for the warning log."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import and_, exists, func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from modledger.models.case import CaseKind, CaseStatus, ModerationCase
from modledger.models.warning import WarningEntry

__all__ = ["WarningRepository"]


class WarningRepository:
    """Thin wrapper around database access for warning rows."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    def add(
        self,
        *,
        community_id: int,
        user_id: int,
        moderator_id: int,
        reason: str,
        warned_at: datetime,
    ) -> WarningEntry:
        """Insert a warning and flush so the id is assigned."""
        warning = WarningEntry(
            community_id=community_id,
            user_id=user_id,
            moderator_id=moderator_id,
            reason=reason,
            warned_at=warned_at,
        )
        self.session.add(warning)
        self.session.flush()
        return warning

    def window_ids(
        self,
        community_id: int,
        user_id: int,
        since: datetime,
        *,
        exclude_reversed: bool = False,
    ) -> Select[tuple[int]]:
        """Return a selectable of warning ids inside the sliding window."""
        stmt = select(WarningEntry.id).where(
            WarningEntry.community_id == community_id,
            WarningEntry.user_id == user_id,
            WarningEntry.warned_at >= since,
        )
        if exclude_reversed:
            stmt = stmt.where(~self._reversed_clause())
        return stmt

    def count_since(
        self,
        community_id: int,
        user_id: int,
        since: datetime,
        *,
        exclude_reversed: bool = False,
    ) -> tuple[int, datetime | None, int | None]:
        """Count warnings at or after ``since``.

        Returns:
            The count, the timestamp of the oldest counted warning and its id.
        """
        filters = [
            WarningEntry.community_id == community_id,
            WarningEntry.user_id == user_id,
            WarningEntry.warned_at >= since,
        ]
        if exclude_reversed:
            filters.append(~self._reversed_clause())

        count = self.session.execute(
            select(func.count()).select_from(WarningEntry).where(*filters)
        ).scalar_one()
        if not count:
            return 0, None, None

        oldest = self.session.execute(
            select(WarningEntry.warned_at, WarningEntry.id)
            .where(*filters)
            .order_by(WarningEntry.warned_at.asc(), WarningEntry.id.asc())
            .limit(1)
        ).first()
        if oldest is None:  # pragma: no cover - deleted between statements
            return int(count), None, None
        return int(count), oldest.warned_at, int(oldest.id)

    def list_for_user(
        self,
        community_id: int,
        user_id: int,
        *,
        since: datetime | None = None,
        limit: int = 50,
    ) -> list[WarningEntry]:
        """Return a user's warnings, newest first."""
        stmt = select(WarningEntry).where(
            WarningEntry.community_id == community_id,
            WarningEntry.user_id == user_id,
        )
        if since is not None:
            stmt = stmt.where(WarningEntry.warned_at >= since)
        stmt = stmt.order_by(WarningEntry.id.desc()).limit(limit)
        return list(self.session.execute(stmt).scalars())

    @staticmethod
    def _reversed_clause():  # type: ignore[no-untyped-def]
        # A warning is reversed when the warn case that recorded it was reversed.
        return (
            exists()
            .where(
                and_(
                    ModerationCase.source_warning_id == WarningEntry.id,
                    ModerationCase.kind == CaseKind.WARN.value,
                    ModerationCase.status == CaseStatus.REVERSED.value,
                )
            )
            .correlate(WarningEntry)
        )
