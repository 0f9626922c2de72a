"""Tests for cache/store consistency and degraded mode."""

from __future__ import annotations

from datetime import timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError

from modledger.schemas.escalation import EscalationConfig
from modledger.services.cache import CacheService
from modledger.services.coordinator import CacheHealth, CacheMode
from modledger.services.moderation import ModerationService
from tests.conftest import COMMUNITY_ID, MODERATOR_ID, USER_ID, Clock, FakeRedis

WINDOW = timedelta(hours=24)


def _warn(service: ModerationService, user_id: int = USER_ID) -> None:
    service.ledger.record_warning(COMMUNITY_ID, user_id, MODERATOR_ID, "spam")


def _count(service: ModerationService, window: timedelta = WINDOW) -> int:
    return service.ledger.count_recent_warnings(COMMUNITY_ID, USER_ID, window)


def test_count_served_from_cache_after_first_read(
    service: ModerationService, cache: CacheService
) -> None:
    _warn(service)

    assert _count(service) == 1
    assert _count(service) == 1

    stats = cache.stats_snapshot()
    assert stats.hit == 1
    assert stats.set == 1
    assert stats.fallback_load == 1


def test_write_invalidates_cached_count(service: ModerationService, cache: CacheService) -> None:
    _warn(service)
    assert _count(service) == 1

    _warn(service)

    assert _count(service) == 2
    assert cache.stats_snapshot().invalidate == 2


def test_cache_transparency(
    build_service, service: ModerationService, clock: Clock
) -> None:
    uncached = build_service()
    assert not uncached.coordinator.cache.enabled

    for step in range(6):
        _warn(service)
        clock.advance(hours=5)
        for window in (timedelta(hours=1), timedelta(hours=12), WINDOW):
            assert _count(service, window) == _count(uncached, window), (step, window)


def test_cached_count_expires_when_oldest_warning_leaves_window(
    service: ModerationService, clock: Clock, fake_redis: FakeRedis
) -> None:
    _warn(service)
    clock.advance(minutes=30)
    window = timedelta(hours=1)

    assert _count(service, window) == 1
    count_keys = [k for k in fake_redis.ttls if ":window:3600" in k]
    assert [fake_redis.ttls[k] for k in count_keys] == [30 * 60]

    clock.advance(minutes=31)

    # No write happened, yet the cached entry must not outlive the oldest warning.
    assert _count(service, window) == 0


def test_cache_failure_falls_back_to_store(
    service: ModerationService, cache: CacheService, fake_redis: FakeRedis
) -> None:
    _warn(service)
    fake_redis.fail = True

    assert _count(service) == 1
    assert cache.stats_snapshot().error >= 1
    assert service.cache_degraded() is False


def test_repeated_failures_enter_degraded_mode(
    service: ModerationService,
    health: CacheHealth,
    fake_redis: FakeRedis,
    ticks: list[float],
) -> None:
    _warn(service)
    fake_redis.fail = True

    for _ in range(3):
        assert _count(service) == 1

    assert service.cache_degraded() is True
    calls = fake_redis.calls
    assert _count(service) == 1
    assert fake_redis.calls == calls, "cache must be bypassed while degraded"

    fake_redis.fail = False
    ticks[0] += 31.0

    assert _count(service) == 1
    assert health.mode is CacheMode.HEALTHY
    assert service.cache_degraded() is False


def test_failed_recovery_attempt_returns_to_degraded(
    service: ModerationService,
    health: CacheHealth,
    fake_redis: FakeRedis,
    ticks: list[float],
) -> None:
    fake_redis.fail = True
    for _ in range(3):
        _count(service)
    assert health.mode is CacheMode.DEGRADED

    ticks[0] += 31.0
    assert health.allow() is True
    assert health.mode is CacheMode.PROBING
    health.record_failure()

    assert health.mode is CacheMode.DEGRADED
    assert health.allow() is False


def test_missed_invalidation_is_retried_before_next_read(
    service: ModerationService, fake_redis: FakeRedis
) -> None:
    _warn(service)
    assert _count(service) == 1

    fake_redis.fail = True
    _warn(service)
    fake_redis.fail = False

    assert _count(service) == 2


def test_evicted_generation_counter_never_resurrects_stale_counts(
    service: ModerationService, fake_redis: FakeRedis
) -> None:
    _warn(service)
    assert _count(service) == 1
    gen_keys = [k for k in fake_redis.data if k.endswith(":warnings:gen")]
    assert gen_keys

    _warn(service)
    for key in gen_keys:
        del fake_redis.data[key]

    assert _count(service) == 2


def test_config_created_lazily_with_defaults(service: ModerationService) -> None:
    config = service.get_escalation_config(COMMUNITY_ID)

    assert config == EscalationConfig.defaults(COMMUNITY_ID)
    assert config.enabled is False
    assert config.warn_threshold == 3
    assert config.warn_window == timedelta(hours=24)
    assert config.timeout_window == timedelta(days=7)


def test_set_config_is_visible_immediately(
    service: ModerationService, cache: CacheService
) -> None:
    assert service.get_escalation_config(COMMUNITY_ID).enabled is False
    assert service.get_escalation_config(COMMUNITY_ID).enabled is False
    assert cache.stats_snapshot().hit == 1

    written = EscalationConfig(
        community_id=COMMUNITY_ID,
        enabled=True,
        warn_threshold=5,
        warn_window=timedelta(hours=6),
        timeout_window=timedelta(hours=1),
    )
    service.set_escalation_config(written)

    assert service.get_escalation_config(COMMUNITY_ID) == written


def test_set_config_with_cache_down_is_not_served_stale(
    service: ModerationService, fake_redis: FakeRedis
) -> None:
    service.get_escalation_config(COMMUNITY_ID)

    fake_redis.fail = True
    service.set_escalation_config(EscalationConfig(community_id=COMMUNITY_ID, enabled=True))
    fake_redis.fail = False

    assert service.get_escalation_config(COMMUNITY_ID).enabled is True


def test_reset_config_restores_defaults(service: ModerationService) -> None:
    service.set_escalation_config(
        EscalationConfig(community_id=COMMUNITY_ID, enabled=True, warn_threshold=9)
    )

    reset = service.reset_escalation_config(COMMUNITY_ID)

    assert reset == EscalationConfig.defaults(COMMUNITY_ID)
    assert service.get_escalation_config(COMMUNITY_ID) == reset


def test_store_is_read_when_cache_disabled(build_service) -> None:
    service = build_service()
    _warn(service)

    assert _count(service) == 1
    assert service.cache_degraded() is False
    assert service.coordinator.cache.stats_snapshot().fallback_load == 1


@pytest.mark.parametrize("window", [timedelta(0), timedelta(seconds=-1)])
def test_non_positive_window_counts_nothing(service: ModerationService, window) -> None:
    _warn(service)

    assert _count(service, window) == 0


def test_fractional_windows_do_not_share_cached_counts(
    service: ModerationService, clock: Clock
) -> None:
    coordinator = service.coordinator
    short, long = timedelta(seconds=10.2), timedelta(seconds=10.9)
    assert coordinator.warning_count_key(COMMUNITY_ID, USER_ID, 1, short) != (
        coordinator.warning_count_key(COMMUNITY_ID, USER_ID, 1, long)
    )
    assert coordinator.warning_count_key(COMMUNITY_ID, USER_ID, 1, WINDOW).endswith(
        ":window:86400"
    )

    _warn(service)
    clock.advance(seconds=10.5)

    assert _count(service, short) == 0
    assert _count(service, long) == 1


@pytest.mark.parametrize("field", ["warn_window", "timeout_window"])
def test_config_windows_must_be_whole_seconds(field: str) -> None:
    with pytest.raises(PydanticValidationError):
        EscalationConfig(community_id=COMMUNITY_ID, **{field: timedelta(seconds=1.5)})
