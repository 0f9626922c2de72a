"""Data access helpers for moderation cases and their audit trail."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import and_, exists, func, select, update
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from modledger.models.case import (
    CASE_CODES,
    CaseEvent,
    CaseEventType,
    CaseKind,
    CaseStatus,
    ModerationCase,
)

__all__ = ["CaseRepository"]


class CaseRepository:
    """Thin wrapper around database access for case entities."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    def get_by_id(self, case_id: int) -> ModerationCase | None:
        """Return a case by identifier, bypassing stale identity-map state."""
        return self.session.get(ModerationCase, case_id, populate_existing=True)

    def create(
        self,
        *,
        community_id: int,
        kind: CaseKind,
        target_user_id: int,
        actor_id: int,
        reason: str,
        created_at: datetime,
        duration_seconds: int | None = None,
        expires_at: datetime | None = None,
        source_warning_id: int | None = None,
        escalation_anchor_id: int | None = None,
    ) -> ModerationCase:
        """Insert a case plus its ``created`` audit entry.

        Case numbers are assigned here, inside the caller's transaction. The
        flush may raise ``IntegrityError`` when ``escalation_anchor_id``
        collides with an existing escalation for the same user.
        """
        self._lock_community(community_id)
        case_code = CASE_CODES[kind]
        case = ModerationCase(
            community_id=community_id,
            case_number=self._next_number(ModerationCase.community_id == community_id),
            case_code=case_code,
            action_case_number=self._next_number(
                ModerationCase.community_id == community_id,
                ModerationCase.case_code == case_code,
                column=ModerationCase.action_case_number,
            ),
            kind=kind.value,
            target_user_id=target_user_id,
            actor_id=actor_id,
            reason=reason,
            status=CaseStatus.ACTIVE.value,
            duration_seconds=duration_seconds,
            expires_at=expires_at,
            created_at=created_at,
            source_warning_id=source_warning_id,
            escalation_anchor_id=escalation_anchor_id,
        )
        self.session.add(case)
        self.session.flush()
        self.add_event(
            case,
            CaseEventType.CREATED,
            actor_id=actor_id,
            created_at=created_at,
            note="Case created",
        )
        return case

    def get_by_label(
        self, community_id: int, case_code: str, action_case_number: int
    ) -> ModerationCase | None:
        """Return a case by its per-community label parts, e.g. ``("W", 3)``."""
        stmt = select(ModerationCase).where(
            ModerationCase.community_id == community_id,
            ModerationCase.case_code == case_code,
            ModerationCase.action_case_number == action_case_number,
        )
        return self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _lock_community(self, community_id: int) -> None:
        # Serializes case numbering per community until the transaction ends.
        if self.session.get_bind().dialect.name == "postgresql":
            self.session.execute(select(func.pg_advisory_xact_lock(community_id)))

    def _next_number(self, *criteria: Any, column: Any = ModerationCase.case_number) -> int:
        stmt = select(func.coalesce(func.max(column), 0) + 1).where(*criteria)
        return int(self.session.execute(stmt).scalar_one())

    def add_event(
        self,
        case: ModerationCase,
        event_type: CaseEventType,
        *,
        actor_id: int,
        created_at: datetime,
        note: str | None = None,
        old_reason: str | None = None,
        new_reason: str | None = None,
    ) -> CaseEvent:
        """Append an audit entry for ``case``."""
        event = CaseEvent(
            case_id=case.id,
            community_id=case.community_id,
            event_type=event_type.value,
            actor_id=actor_id,
            note=note,
            old_reason=old_reason,
            new_reason=new_reason,
            created_at=created_at,
        )
        self.session.add(event)
        self.session.flush()
        return event

    def list_events(self, case_id: int) -> list[CaseEvent]:
        """Return the audit trail of a case, oldest first."""
        stmt = (
            select(CaseEvent)
            .where(CaseEvent.case_id == case_id)
            .order_by(CaseEvent.created_at.asc(), CaseEvent.id.asc())
        )
        return list(self.session.execute(stmt).scalars())

    def list_recent(
        self,
        community_id: int,
        *,
        limit: int,
        target_user_id: int | None = None,
        actor_id: int | None = None,
        kind: CaseKind | None = None,
        before: int | None = None,
    ) -> list[ModerationCase]:
        """Return cases sorted by descending id, starting below ``before``."""
        stmt = select(ModerationCase).where(ModerationCase.community_id == community_id)
        if target_user_id is not None:
            stmt = stmt.where(ModerationCase.target_user_id == target_user_id)
        if actor_id is not None:
            stmt = stmt.where(ModerationCase.actor_id == actor_id)
        if kind is not None:
            stmt = stmt.where(ModerationCase.kind == kind.value)
        if before is not None:
            stmt = stmt.where(ModerationCase.id < before)
        stmt = stmt.order_by(ModerationCase.id.desc()).limit(limit)
        return list(self.session.execute(stmt).scalars())

    def transition(
        self,
        case_id: int,
        *,
        values: dict[str, Any],
        due_before: datetime | None = None,
        kinds: frozenset[str] | None = None,
    ) -> bool:
        """Apply a lifecycle transition if and only if the case is still active.

        The status check and the write happen in one conditional UPDATE so two
        concurrent transitions cannot both succeed.

        Returns:
            True when a row was transitioned.
        """
        stmt = update(ModerationCase).where(
            ModerationCase.id == case_id,
            ModerationCase.status == CaseStatus.ACTIVE.value,
        )
        if kinds is not None:
            stmt = stmt.where(ModerationCase.kind.in_(sorted(kinds)))
        if due_before is not None:
            stmt = stmt.where(
                ModerationCase.expires_at.is_not(None),
                ModerationCase.expires_at <= due_before,
            )
        result = self.session.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    def escalation_exists(
        self,
        community_id: int,
        target_user_id: int,
        *,
        since: datetime,
        counted_warning_ids: Select[tuple[int]],
    ) -> bool:
        """Return True if an auto-timeout was already issued for the counted warnings."""
        stmt = select(
            exists().where(
                ModerationCase.community_id == community_id,
                ModerationCase.target_user_id == target_user_id,
                ModerationCase.kind == CaseKind.AUTO_TIMEOUT.value,
                ModerationCase.created_at >= since,
                ModerationCase.source_warning_id.in_(counted_warning_ids),
            )
        )
        return bool(self.session.execute(stmt).scalar())

    def release_escalation_anchor(
        self,
        community_id: int,
        target_user_id: int,
        anchor_id: int,
        *,
        since: datetime,
        counted_warning_ids: Select[tuple[int]],
    ) -> int:
        """Detach ``anchor_id`` from escalations that no longer cover the counted warnings.

        An escalation keeps its anchor only while its source warning is still
        part of the counted set, so the anchor index never blocks a burst that
        ``escalation_exists`` allows.

        Returns:
            The number of escalations released.
        """
        stmt = (
            update(ModerationCase)
            .where(
                ModerationCase.community_id == community_id,
                ModerationCase.target_user_id == target_user_id,
                ModerationCase.escalation_anchor_id == anchor_id,
                ~and_(
                    ModerationCase.created_at >= since,
                    ModerationCase.source_warning_id.in_(counted_warning_ids),
                ),
            )
            .values(escalation_anchor_id=None)
            .execution_options(synchronize_session=False)
        )
        return int(self.session.execute(stmt).rowcount or 0)

    def count_timeouts_since(
        self,
        community_id: int,
        target_user_id: int,
        since: datetime,
    ) -> int:
        """Count manual and automatic timeouts issued at or after ``since``."""
        stmt = select(func.count()).select_from(ModerationCase).where(
            ModerationCase.community_id == community_id,
            ModerationCase.target_user_id == target_user_id,
            ModerationCase.created_at >= since,
            ModerationCase.kind.in_([CaseKind.TIMEOUT.value, CaseKind.AUTO_TIMEOUT.value]),
        )
        return int(self.session.execute(stmt).scalar_one())
