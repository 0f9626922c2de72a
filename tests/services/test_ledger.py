"""Tests for the case ledger: recording, lifecycle transitions and listing."""

from __future__ import annotations

from datetime import timedelta

import pytest

from modledger.core.errors import InvalidStateError, NotFoundError, ValidationError
from modledger.models.case import CaseEventType, CaseKind, CaseStatus
from modledger.services.moderation import ModerationService
from tests.conftest import COMMUNITY_ID, MODERATOR_ID, USER_ID, Clock


def _warn(service: ModerationService, user_id: int = USER_ID, reason: str = "spam"):
    return service.ledger.record_warning(COMMUNITY_ID, user_id, MODERATOR_ID, reason)


def test_record_warning_creates_warning_and_case(service: ModerationService) -> None:
    warning, case = _warn(service)

    assert warning.reason == "spam"
    assert case.kind is CaseKind.WARN
    assert case.status is CaseStatus.ACTIVE
    assert case.source_warning_id == warning.id
    assert case.created_at == warning.warned_at
    assert [w.id for w in service.ledger.list_warnings(COMMUNITY_ID, USER_ID)] == [warning.id]


@pytest.mark.parametrize("reason", ["", "   "])
def test_record_warning_rejects_empty_reason(service: ModerationService, reason: str) -> None:
    with pytest.raises(ValidationError):
        _warn(service, reason=reason)

    assert service.ledger.list_warnings(COMMUNITY_ID, USER_ID) == []
    assert service.ledger.list_cases(COMMUNITY_ID) == []


def test_record_timeout_sets_expiry(service: ModerationService, clock: Clock) -> None:
    case = service.ledger.record_action(
        COMMUNITY_ID, USER_ID, MODERATOR_ID, CaseKind.TIMEOUT, "flooding", timedelta(minutes=10)
    )

    assert case.kind is CaseKind.TIMEOUT
    assert case.duration_seconds == 600
    assert case.expires_at == clock.now + timedelta(minutes=10)


@pytest.mark.parametrize("duration", [None, timedelta(0), timedelta(seconds=-5)])
def test_timeout_requires_positive_duration(
    service: ModerationService, duration: timedelta | None
) -> None:
    with pytest.raises(ValidationError):
        service.ledger.record_action(
            COMMUNITY_ID, USER_ID, MODERATOR_ID, CaseKind.TIMEOUT, "flooding", duration
        )


@pytest.mark.parametrize("kind", [CaseKind.WARN, CaseKind.AUTO_TIMEOUT, "mute"])
def test_record_action_rejects_other_kinds(service: ModerationService, kind: object) -> None:
    with pytest.raises(ValidationError):
        service.ledger.record_action(COMMUNITY_ID, USER_ID, MODERATOR_ID, kind, "reason")


def test_ban_and_kick_have_no_duration(service: ModerationService) -> None:
    ban = service.ledger.record_action(COMMUNITY_ID, USER_ID, MODERATOR_ID, "ban", "raid")
    kick = service.ledger.record_action(COMMUNITY_ID, USER_ID, MODERATOR_ID, CaseKind.KICK, "raid")

    assert ban.kind is CaseKind.BAN and ban.duration_seconds is None
    assert kick.expires_at is None
    with pytest.raises(ValidationError):
        service.ledger.record_action(
            COMMUNITY_ID, USER_ID, MODERATOR_ID, CaseKind.BAN, "raid", timedelta(hours=1)
        )


def test_reverse_case_succeeds_once(service: ModerationService, clock: Clock) -> None:
    case = service.ledger.record_action(COMMUNITY_ID, USER_ID, MODERATOR_ID, "ban", "raid")
    clock.advance(minutes=5)

    reversed_case = service.ledger.reverse_case(case.id, actor_id=42)

    assert reversed_case.status is CaseStatus.REVERSED
    assert reversed_case.reversed_by == 42
    assert reversed_case.reversed_at == clock.now
    with pytest.raises(InvalidStateError):
        service.ledger.reverse_case(case.id, actor_id=42)
    assert service.ledger.get_case(case.id).reversed_by == 42


def test_reverse_unknown_case(service: ModerationService) -> None:
    with pytest.raises(NotFoundError):
        service.ledger.reverse_case(999_999, actor_id=1)


def test_expire_if_due(service: ModerationService, clock: Clock) -> None:
    case = service.ledger.record_action(
        COMMUNITY_ID, USER_ID, MODERATOR_ID, "timeout", "flooding", timedelta(minutes=10)
    )

    assert service.ledger.expire_if_due(case.id) is None
    clock.advance(minutes=10)
    expired = service.ledger.expire_if_due(case.id)

    assert expired is not None
    assert expired.status is CaseStatus.EXPIRED
    assert service.ledger.expire_if_due(case.id) is None
    with pytest.raises(InvalidStateError):
        service.ledger.reverse_case(case.id, actor_id=1)


def test_expire_ignores_unbounded_and_reversed_cases(
    service: ModerationService, clock: Clock
) -> None:
    ban = service.ledger.record_action(COMMUNITY_ID, USER_ID, MODERATOR_ID, "ban", "raid")
    timeout = service.ledger.record_action(
        COMMUNITY_ID, USER_ID, MODERATOR_ID, "timeout", "flooding", timedelta(minutes=1)
    )
    service.ledger.reverse_case(timeout.id, actor_id=MODERATOR_ID)
    clock.advance(hours=1)

    assert service.ledger.expire_if_due(ban.id) is None
    assert service.ledger.expire_if_due(timeout.id) is None
    assert service.ledger.get_case(timeout.id).status is CaseStatus.REVERSED
    with pytest.raises(NotFoundError):
        service.ledger.expire_if_due(123_456)


def test_annotate_keeps_status_on_terminal_case(service: ModerationService) -> None:
    case = service.ledger.record_action(COMMUNITY_ID, USER_ID, MODERATOR_ID, "kick", "spam")
    service.ledger.reverse_case(case.id, actor_id=MODERATOR_ID)

    annotated = service.ledger.annotate(case.id, "appealed via email", actor_id=7)
    annotated = service.ledger.annotate(case.id, "appeal accepted", actor_id=7)

    assert annotated.note == "appeal accepted"
    assert annotated.status is CaseStatus.REVERSED
    with pytest.raises(ValidationError):
        service.ledger.annotate(case.id, "")
    with pytest.raises(NotFoundError):
        service.ledger.annotate(999, "note")


def test_update_reason_records_audit_trail(service: ModerationService) -> None:
    _, case = _warn(service, reason="spam")

    updated = service.ledger.update_case_reason(case.id, 9, "spam in #general")
    events = service.ledger.get_case_events(case.id)

    assert updated.reason == "spam in #general"
    assert [e.event_type for e in events] == [
        CaseEventType.CREATED,
        CaseEventType.REASON_UPDATED,
    ]
    assert events[-1].old_reason == "spam"
    assert events[-1].new_reason == "spam in #general"
    assert events[-1].actor_id == 9


def test_case_events_cover_lifecycle(service: ModerationService, clock: Clock) -> None:
    case = service.ledger.record_action(
        COMMUNITY_ID, USER_ID, MODERATOR_ID, "timeout", "flooding", timedelta(minutes=1)
    )
    service.ledger.annotate(case.id, "second offence", actor_id=MODERATOR_ID)
    clock.advance(minutes=2)
    service.ledger.expire_if_due(case.id)

    events = service.ledger.get_case_events(case.id)

    assert [e.event_type for e in events] == [
        CaseEventType.CREATED,
        CaseEventType.NOTE_ADDED,
        CaseEventType.EXPIRED,
    ]
    with pytest.raises(NotFoundError):
        service.ledger.get_case_events(424242)


def test_case_ids_increase_with_creation_time(service: ModerationService, clock: Clock) -> None:
    cases = []
    for _ in range(4):
        cases.append(_warn(service)[1])
        clock.advance(minutes=1)

    ids = [c.id for c in cases]
    assert ids == sorted(ids)
    assert [c.created_at for c in cases] == sorted(c.created_at for c in cases)


def test_list_cases_pages_are_stable(service: ModerationService) -> None:
    created = [_warn(service, reason=f"r{i}")[1].id for i in range(7)]

    seen: list[int] = []
    before = None
    while True:
        page = service.ledger.list_cases(COMMUNITY_ID, limit=3, before=before)
        if not page:
            break
        seen.extend(c.id for c in page)
        before = page[-1].id

    assert seen == sorted(created, reverse=True)
    assert len(seen) == len(set(seen))


def test_list_cases_filters(service: ModerationService) -> None:
    _warn(service, user_id=1)
    _warn(service, user_id=2)
    ban = service.ledger.record_action(COMMUNITY_ID, 2, 77, "ban", "raid")
    service.ledger.record_action(COMMUNITY_ID + 1, 2, 77, "ban", "other community")

    assert [c.target_user_id for c in service.ledger.list_cases(COMMUNITY_ID, user_id=1)] == [1]
    assert [c.id for c in service.ledger.list_cases(COMMUNITY_ID, actor_id=77)] == [ban.id]
    assert [c.id for c in service.ledger.list_cases(COMMUNITY_ID, kind=CaseKind.BAN)] == [ban.id]
    assert len(service.ledger.list_cases(COMMUNITY_ID)) == 3


def test_list_cases_clamps_limit(build_service, cache) -> None:
    service = build_service(cache, cases_page_limit_max=2)
    for i in range(3):
        _warn(service, reason=f"r{i}")

    assert len(service.ledger.list_cases(COMMUNITY_ID, limit=50)) == 2
    assert len(service.ledger.list_cases(COMMUNITY_ID, limit=0)) == 1


def test_iter_cases_walks_every_page(service: ModerationService) -> None:
    created = [_warn(service, reason=f"r{i}")[1].id for i in range(5)]

    walked = [c.id for c in service.ledger.iter_cases(COMMUNITY_ID, page_size=2)]

    assert walked == sorted(created, reverse=True)


def test_list_warnings_since(service: ModerationService, clock: Clock) -> None:
    _warn(service, reason="old")
    clock.advance(hours=2)
    recent, _ = _warn(service, reason="new")

    warnings = service.ledger.list_warnings(
        COMMUNITY_ID, USER_ID, since=clock.now - timedelta(hours=1)
    )

    assert [w.id for w in warnings] == [recent.id]
    assert [w.reason for w in service.ledger.list_warnings(COMMUNITY_ID, USER_ID)] == [
        "new",
        "old",
    ]


def test_count_recent_warnings_slides_with_time(service: ModerationService, clock: Clock) -> None:
    _warn(service)
    clock.advance(hours=1)
    _warn(service)

    window = timedelta(hours=24)
    assert service.ledger.count_recent_warnings(COMMUNITY_ID, USER_ID, window) == 2
    clock.advance(hours=23, minutes=30)
    assert service.ledger.count_recent_warnings(COMMUNITY_ID, USER_ID, window) == 1
    clock.advance(hours=1)
    assert service.ledger.count_recent_warnings(COMMUNITY_ID, USER_ID, window) == 0


def test_sub_second_timeout_rounds_up_and_expires(
    service: ModerationService, clock: Clock
) -> None:
    case = service.ledger.record_action(
        COMMUNITY_ID, USER_ID, MODERATOR_ID, "timeout", "flooding", timedelta(milliseconds=500)
    )

    assert case.duration_seconds == 1
    assert case.expires_at == clock.now + timedelta(seconds=1)
    clock.advance(days=1)
    expired = service.ledger.expire_if_due(case.id)
    assert expired is not None
    assert expired.status is CaseStatus.EXPIRED


def test_case_numbers_are_per_community_and_per_kind(service: ModerationService) -> None:
    _, first_warn = _warn(service)
    ban = service.ledger.record_action(COMMUNITY_ID, USER_ID, MODERATOR_ID, "ban", "raid")
    _, second_warn = _warn(service)
    elsewhere = service.ledger.record_action(COMMUNITY_ID + 1, USER_ID, MODERATOR_ID, "kick", "x")

    assert [c.case_number for c in (first_warn, ban, second_warn)] == [1, 2, 3]
    assert [c.label for c in (first_warn, ban, second_warn)] == ["W1", "B1", "W2"]
    assert (elsewhere.case_number, elsewhere.label) == (1, "K1")


def test_get_case_by_label(service: ModerationService) -> None:
    _warn(service)
    _, second = _warn(service)

    assert service.ledger.get_case_by_label(COMMUNITY_ID, "W2").id == second.id
    assert service.ledger.get_case_by_label(COMMUNITY_ID, " w2 ").id == second.id
    with pytest.raises(NotFoundError):
        service.ledger.get_case_by_label(COMMUNITY_ID, "W3")
    with pytest.raises(NotFoundError):
        service.ledger.get_case_by_label(COMMUNITY_ID + 1, "W2")
    for label in ("", "W", "42", "W0", "W-1"):
        with pytest.raises(ValidationError):
            service.ledger.get_case_by_label(COMMUNITY_ID, label)
