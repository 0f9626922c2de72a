# src/modledger/services/ledger.py
"""Case ledger: the only writer of cases, warnings, user notes and the case audit trail."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterator, Sequence
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError

from modledger.core.errors import InvalidStateError, NotFoundError, ValidationError
from modledger.db.session import SessionFactory, transaction
from modledger.db.time import utcnow
from modledger.models.case import BOUNDED_KINDS, CaseEventType, CaseKind, CaseStatus
from modledger.models.note import NOTE_MAX_LENGTH
from modledger.repositories.case_repo import CaseRepository
from modledger.repositories.note_repo import NoteRepository
from modledger.repositories.warning_repo import WarningRepository
from modledger.schemas.case import CaseEventRecord, CaseRecord
from modledger.schemas.note import UserNoteRecord
from modledger.schemas.warning import WarningRecord
from modledger.services.coordinator import ConsistencyCoordinator
from modledger.utils.labels import parse_case_label
from modledger.utils.time import format_compact_duration

logger = logging.getLogger(__name__)

# Kinds a moderator may record directly; warnings and escalations have their own paths.
MANUAL_KINDS = frozenset({CaseKind.BAN, CaseKind.KICK, CaseKind.TIMEOUT})


def _require_text(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} must not be empty")
    return text


def _require_note(content: str | None) -> str:
    content = _require_text(content, "note")
    if len(content) > NOTE_MAX_LENGTH:
        raise ValidationError(f"note must be at most {NOTE_MAX_LENGTH} characters")
    return content


class CaseLedger:
    """Records moderation actions as cases and drives their lifecycle."""

    def __init__(
        self,
        session_factory: SessionFactory,
        coordinator: ConsistencyCoordinator,
        *,
        system_actor_id: int = 0,
        page_limit_max: int = 200,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self.coordinator = coordinator
        self.system_actor_id = system_actor_id
        self.page_limit_max = max(1, page_limit_max)
        self._clock = clock

    # --- Recording -------------------------------------------------------------------
    def record_warning(
        self,
        community_id: int,
        user_id: int,
        moderator_id: int,
        reason: str,
    ) -> tuple[WarningRecord, CaseRecord]:
        """Persist a warning and its ``warn`` case in a single transaction."""
        reason = _require_text(reason, "reason")
        now = self._clock()
        with transaction(self._session_factory) as db:
            warning = WarningRepository(db).add(
                community_id=community_id,
                user_id=user_id,
                moderator_id=moderator_id,
                reason=reason,
                warned_at=now,
            )
            case = CaseRepository(db).create(
                community_id=community_id,
                kind=CaseKind.WARN,
                target_user_id=user_id,
                actor_id=moderator_id,
                reason=reason,
                created_at=now,
                source_warning_id=warning.id,
            )
            warning_record = WarningRecord.model_validate(warning)
            case_record = CaseRecord.model_validate(case)

        self.coordinator.invalidate_warning_counts(community_id, user_id)
        logger.info(
            "Recorded warning %s (case %s) for user %s in community %s",
            warning_record.id,
            case_record.id,
            user_id,
            community_id,
        )
        return warning_record, case_record

    def record_action(
        self,
        community_id: int,
        user_id: int,
        moderator_id: int,
        kind: CaseKind | str,
        reason: str,
        duration: timedelta | None = None,
    ) -> CaseRecord:
        """Record a ban, kick or timeout. Timeouts require a positive duration."""
        try:
            kind = CaseKind(kind)
        except ValueError as exc:
            raise ValidationError(f"unknown case kind `{kind}`") from exc
        if kind not in MANUAL_KINDS:
            raise ValidationError(f"`{kind.value}` cases cannot be recorded directly")
        reason = _require_text(reason, "reason")

        duration_seconds: int | None = None
        if kind is CaseKind.TIMEOUT:
            if duration is None or duration.total_seconds() <= 0:
                raise ValidationError("timeout duration must be positive")
            # Whole seconds, rounded up.
            duration_seconds = math.ceil(duration.total_seconds())
        elif duration is not None:
            raise ValidationError("duration only applies to timeouts")

        now = self._clock()
        expires_at = (
            now + timedelta(seconds=duration_seconds) if duration_seconds is not None else None
        )
        with transaction(self._session_factory) as db:
            case = CaseRepository(db).create(
                community_id=community_id,
                kind=kind,
                target_user_id=user_id,
                actor_id=moderator_id,
                reason=reason,
                created_at=now,
                duration_seconds=duration_seconds,
                expires_at=expires_at,
            )
            record = CaseRecord.model_validate(case)

        logger.info(
            "Recorded %s case %s for user %s in community %s",
            kind.value,
            record.id,
            user_id,
            community_id,
        )
        return record

    def record_auto_timeout(
        self,
        community_id: int,
        user_id: int,
        *,
        source_warning_id: int,
        warn_threshold: int,
        warn_window: timedelta,
        timeout_window: timedelta,
        tiers: Sequence[timedelta] = (),
    ) -> CaseRecord | None:
        """Create the automatic timeout for a warning burst, at most once.

        Returns None when the threshold is no longer met or the burst was
        already escalated, including by a concurrent writer.
        """
        now = self._clock()
        try:
            with transaction(self._session_factory) as db:
                claim = self.coordinator.claim_escalation(
                    db,
                    community_id=community_id,
                    user_id=user_id,
                    threshold=warn_threshold,
                    window=warn_window,
                    now=now,
                )
                if claim is None:
                    return None

                cases = CaseRepository(db)
                duration = timeout_window
                if tiers:
                    prior = cases.count_timeouts_since(community_id, user_id, now - timeout_window)
                    duration = tiers[min(prior, len(tiers) - 1)]
                duration_seconds = int(duration.total_seconds())

                case = cases.create(
                    community_id=community_id,
                    kind=CaseKind.AUTO_TIMEOUT,
                    target_user_id=user_id,
                    actor_id=self.system_actor_id,
                    reason=(
                        f"Auto-escalation: {claim.warning_count} warning(s) in "
                        f"{format_compact_duration(warn_window)}"
                    ),
                    created_at=now,
                    duration_seconds=duration_seconds,
                    expires_at=now + timedelta(seconds=duration_seconds),
                    source_warning_id=source_warning_id,
                    escalation_anchor_id=claim.anchor_warning_id,
                )
                record = CaseRecord.model_validate(case)
        except IntegrityError:
            logger.info(
                "Escalation for user %s in community %s already recorded concurrently",
                user_id,
                community_id,
            )
            return None
        return record

    # --- Lifecycle -------------------------------------------------------------------
    def reverse_case(self, case_id: int, actor_id: int) -> CaseRecord:
        """Move an active case to ``reversed``.

        Raises:
            NotFoundError: unknown case.
            InvalidStateError: the case is already reversed or expired.
        """
        now = self._clock()
        with transaction(self._session_factory) as db:
            cases = CaseRepository(db)
            transitioned = cases.transition(
                case_id,
                values={
                    "status": CaseStatus.REVERSED.value,
                    "reversed_by": actor_id,
                    "reversed_at": now,
                },
            )
            case = cases.get_by_id(case_id)
            if case is None:
                raise NotFoundError(f"case {case_id} not found")
            if not transitioned:
                raise InvalidStateError(f"case {case_id} is already {case.status}")
            cases.add_event(case, CaseEventType.REVERSED, actor_id=actor_id, created_at=now)
            record = CaseRecord.model_validate(case)

        if record.kind is CaseKind.WARN:
            # Counts may exclude reversed warnings.
            self.coordinator.invalidate_warning_counts(record.community_id, record.target_user_id)
        logger.info("Case %s reversed by %s", case_id, actor_id)
        return record

    def expire_if_due(self, case_id: int) -> CaseRecord | None:
        """Expire a bounded-duration case whose duration has elapsed.

        Returns None when there is nothing to do: the case is terminal, not
        yet due, or not a timeout. Safe to call repeatedly.
        """
        now = self._clock()
        with transaction(self._session_factory) as db:
            cases = CaseRepository(db)
            transitioned = cases.transition(
                case_id,
                values={"status": CaseStatus.EXPIRED.value},
                due_before=now,
                kinds=BOUNDED_KINDS,
            )
            case = cases.get_by_id(case_id)
            if case is None:
                raise NotFoundError(f"case {case_id} not found")
            if not transitioned:
                return None
            cases.add_event(
                case,
                CaseEventType.EXPIRED,
                actor_id=self.system_actor_id,
                created_at=now,
            )
            record = CaseRecord.model_validate(case)

        logger.info("Case %s expired", case_id)
        return record

    def annotate(self, case_id: int, note: str, *, actor_id: int | None = None) -> CaseRecord:
        """Set the note of any case, terminal or not. Status is never touched."""
        note = _require_text(note, "note")
        actor = self.system_actor_id if actor_id is None else actor_id
        now = self._clock()
        with transaction(self._session_factory) as db:
            cases = CaseRepository(db)
            case = cases.get_by_id(case_id)
            if case is None:
                raise NotFoundError(f"case {case_id} not found")
            case.note = note
            cases.add_event(case, CaseEventType.NOTE_ADDED, actor_id=actor, created_at=now, note=note)
            record = CaseRecord.model_validate(case)
        return record

    def update_case_reason(self, case_id: int, actor_id: int, reason: str) -> CaseRecord:
        """Replace a case's reason, keeping the old value in the audit trail."""
        reason = _require_text(reason, "reason")
        now = self._clock()
        with transaction(self._session_factory) as db:
            cases = CaseRepository(db)
            case = cases.get_by_id(case_id)
            if case is None:
                raise NotFoundError(f"case {case_id} not found")
            old_reason = case.reason
            case.reason = reason
            cases.add_event(
                case,
                CaseEventType.REASON_UPDATED,
                actor_id=actor_id,
                created_at=now,
                old_reason=old_reason,
                new_reason=reason,
            )
            record = CaseRecord.model_validate(case)
        return record

    # --- Queries ---------------------------------------------------------------------
    def get_case(self, case_id: int) -> CaseRecord:
        with transaction(self._session_factory) as db:
            case = CaseRepository(db).get_by_id(case_id)
            if case is None:
                raise NotFoundError(f"case {case_id} not found")
            return CaseRecord.model_validate(case)

    def get_case_by_label(self, community_id: int, label: str) -> CaseRecord:
        """Look a case up by its community label, e.g. ``W3``. Case-insensitive."""
        parsed = parse_case_label(label)
        if parsed is None:
            raise ValidationError(f"invalid case label `{label}`")
        case_code, number = parsed
        with transaction(self._session_factory) as db:
            case = CaseRepository(db).get_by_label(community_id, case_code, number)
            if case is None:
                raise NotFoundError(f"case {case_code}{number} not found")
            return CaseRecord.model_validate(case)

    def get_case_events(self, case_id: int) -> list[CaseEventRecord]:
        """Return the audit trail of a case, oldest first."""
        with transaction(self._session_factory) as db:
            cases = CaseRepository(db)
            if cases.get_by_id(case_id) is None:
                raise NotFoundError(f"case {case_id} not found")
            return [CaseEventRecord.model_validate(event) for event in cases.list_events(case_id)]

    def list_cases(
        self,
        community_id: int,
        *,
        user_id: int | None = None,
        actor_id: int | None = None,
        kind: CaseKind | None = None,
        limit: int = 50,
        before: int | None = None,
    ) -> list[CaseRecord]:
        """Return one page of cases, newest first.

        Pass the smallest id of a page as ``before`` to fetch the next one.
        """
        limit = max(1, min(limit, self.page_limit_max))
        with transaction(self._session_factory) as db:
            rows = CaseRepository(db).list_recent(
                community_id,
                limit=limit,
                target_user_id=user_id,
                actor_id=actor_id,
                kind=kind,
                before=before,
            )
            return [CaseRecord.model_validate(row) for row in rows]

    def iter_cases(
        self,
        community_id: int,
        *,
        user_id: int | None = None,
        actor_id: int | None = None,
        kind: CaseKind | None = None,
        page_size: int = 50,
    ) -> Iterator[CaseRecord]:
        """Lazily walk every matching case, re-querying one page at a time."""
        before: int | None = None
        while True:
            page = self.list_cases(
                community_id,
                user_id=user_id,
                actor_id=actor_id,
                kind=kind,
                limit=page_size,
                before=before,
            )
            yield from page
            if len(page) < max(1, min(page_size, self.page_limit_max)):
                return
            before = page[-1].id

    def list_warnings(
        self,
        community_id: int,
        user_id: int,
        *,
        since: datetime | None = None,
        limit: int = 50,
    ) -> list[WarningRecord]:
        """Return a user's warnings, newest first."""
        limit = max(1, min(limit, self.page_limit_max))
        with transaction(self._session_factory) as db:
            rows = WarningRepository(db).list_for_user(
                community_id, user_id, since=since, limit=limit
            )
            return [WarningRecord.model_validate(row) for row in rows]

    def count_recent_warnings(self, community_id: int, user_id: int, window: timedelta) -> int:
        """Count the user's warnings within ``window`` of now."""
        return self.coordinator.count_recent_warnings(community_id, user_id, window)

    # --- User notes ------------------------------------------------------------------
    def add_user_note(
        self, community_id: int, user_id: int, author_id: int, content: str
    ) -> UserNoteRecord:
        content = _require_note(content)
        with transaction(self._session_factory) as db:
            note = NoteRepository(db).add(
                community_id=community_id,
                target_user_id=user_id,
                author_id=author_id,
                content=content,
                created_at=self._clock(),
            )
            record = UserNoteRecord.model_validate(note)
        logger.info("Added note %s for user %s in community %s", record.id, user_id, community_id)
        return record

    def list_user_notes(self, community_id: int, user_id: int) -> list[UserNoteRecord]:
        """Return a user's notes, newest first. Deleted notes are omitted."""
        with transaction(self._session_factory) as db:
            rows = NoteRepository(db).list_for_user(community_id, user_id)
            return [UserNoteRecord.model_validate(row) for row in rows]

    def get_user_note(self, community_id: int, note_id: int) -> UserNoteRecord:
        with transaction(self._session_factory) as db:
            note = NoteRepository(db).get_live(community_id, note_id)
            if note is None:
                raise NotFoundError(f"note {note_id} not found")
            return UserNoteRecord.model_validate(note)

    def edit_user_note(self, community_id: int, note_id: int, content: str) -> UserNoteRecord:
        """Replace a note's content.

        Raises:
            NotFoundError: the note does not exist in the community or was deleted.
        """
        content = _require_note(content)
        with transaction(self._session_factory) as db:
            notes = NoteRepository(db)
            if not notes.edit(community_id, note_id, content, now=self._clock()):
                raise NotFoundError(f"note {note_id} not found")
            note = notes.get_live(community_id, note_id)
            record = UserNoteRecord.model_validate(note)
        return record

    def delete_user_note(self, community_id: int, note_id: int) -> None:
        with transaction(self._session_factory) as db:
            if not NoteRepository(db).soft_delete(community_id, note_id, now=self._clock()):
                raise NotFoundError(f"note {note_id} not found")
        logger.info("Deleted note %s in community %s", note_id, community_id)

    def clear_user_notes(self, community_id: int, user_id: int) -> int:
        """Delete every note about a user and return how many were removed."""
        with transaction(self._session_factory) as db:
            cleared = NoteRepository(db).clear(community_id, user_id, now=self._clock())
        logger.info("Cleared %d note(s) for user %s in community %s", cleared, user_id, community_id)
        return cleared
