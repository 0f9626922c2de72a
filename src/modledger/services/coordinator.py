"""Consistency coordinator between the durable store and the cache layer.

Reads try the cache first and fall back to the store on a miss or on any
cache failure. Writes go to the store first; afterwards the affected cache
scope is invalidated by bumping its generation counter, which makes every
projection cached under the old generation unreachable.

A reader fetches the generation *before* loading from the store, so a value
computed from pre-write state is always filed under the pre-write generation
and can never be served after the writer's bump.

Cache failures never reach the caller. Repeated failures put the coordinator
into degraded mode: the cache is bypassed for a cooldown period and all
traffic is served by the store.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from threading import Lock
from typing import Any, TypeVar

from sqlalchemy.orm import Session

from modledger.core.errors import CacheError
from modledger.db.session import SessionFactory, transaction
from modledger.db.time import as_utc, utcnow
from modledger.repositories.case_repo import CaseRepository
from modledger.repositories.escalation_repo import EscalationConfigRepository
from modledger.repositories.warning_repo import WarningRepository
from modledger.schemas.escalation import EscalationConfig
from modledger.schemas.warning import WarningCount
from modledger.services.cache import CacheService

# Configure logger for this module
logger = logging.getLogger(__name__)

T = TypeVar("T")


def _window_token(window: timedelta) -> str:
    # Exact to the microsecond; whole-second windows keep the plain `3600` form.
    micros = window // timedelta(microseconds=1)
    seconds, rest = divmod(micros, 1_000_000)
    return str(seconds) if not rest else f"{micros}us"


class CacheMode(Enum):
    """Degraded-mode states for one cache instance."""

    HEALTHY = "healthy"      # Cache used normally
    DEGRADED = "degraded"    # Cache bypassed until the cooldown elapses
    PROBING = "probing"      # Cooldown elapsed; next call decides recovery


class CacheHealth:
    """Tracks consecutive cache failures and the degraded-mode cooldown."""

    def __init__(
        self,
        failure_threshold: int = 3,
        cooldown_seconds: float = 30.0,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failure_threshold = max(1, failure_threshold)
        self.cooldown_seconds = cooldown_seconds
        self._monotonic = monotonic
        self._mode = CacheMode.HEALTHY
        self._failures = 0
        self._degraded_since = 0.0
        self._lock = Lock()

    @property
    def mode(self) -> CacheMode:
        with self._lock:
            return self._mode

    @property
    def degraded(self) -> bool:
        return self.mode is CacheMode.DEGRADED

    def allow(self) -> bool:
        """Return True if a cache operation may be attempted now."""
        with self._lock:
            if self._mode is CacheMode.DEGRADED:
                if self._monotonic() - self._degraded_since < self.cooldown_seconds:
                    return False
                self._mode = CacheMode.PROBING
                logger.info("Cache cooldown elapsed; probing cache")
            return True

    def record_success(self) -> None:
        with self._lock:
            if self._mode is not CacheMode.HEALTHY:
                logger.info("Cache recovered; leaving degraded mode")
            self._mode = CacheMode.HEALTHY
            self._failures = 0

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._mode is CacheMode.PROBING or self._failures >= self.failure_threshold:
                if self._mode is not CacheMode.DEGRADED:
                    logger.info(
                        "Entering cache degraded mode after %d failure(s); bypassing for %.1fs",
                        self._failures,
                        self.cooldown_seconds,
                    )
                self._mode = CacheMode.DEGRADED
                self._degraded_since = self._monotonic()


@dataclass(frozen=True)
class EscalationClaim:
    """Store-side facts that justify one automatic escalation."""

    warning_count: int
    anchor_warning_id: int
    since: datetime


class _Unavailable:
    """Sentinel returned when a cache call was skipped or failed."""


_UNAVAILABLE = _Unavailable()


class ConsistencyCoordinator:
    """Mediates cacheable reads and invalidation for the case ledger."""

    def __init__(
        self,
        session_factory: SessionFactory,
        cache: CacheService,
        *,
        config_ttl_seconds: int = 900,
        exclude_reversed_warnings: bool = False,
        health: CacheHealth | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self.cache = cache
        self.config_ttl_seconds = config_ttl_seconds
        self.exclude_reversed_warnings = exclude_reversed_warnings
        self.health = health or CacheHealth()
        self._clock = clock
        self._pending: set[str] = set()
        self._pending_lock = Lock()

    # --- Health ----------------------------------------------------------------------
    def cache_degraded(self) -> bool:
        """Return True while the cache is being bypassed."""
        return self.health.degraded

    # --- Keys ------------------------------------------------------------------------
    def warning_scope_key(self, community_id: int, user_id: int) -> str:
        return self.cache.key(f"guild:{community_id}:user:{user_id}:warnings:gen")

    def warning_count_key(
        self, community_id: int, user_id: int, generation: int, window: timedelta
    ) -> str:
        token = _window_token(window)
        return self.cache.key(
            f"guild:{community_id}:user:{user_id}:warnings:g{generation}:window:{token}"
        )

    def config_scope_key(self, community_id: int) -> str:
        return self.cache.key(f"guild:{community_id}:config:escalation:gen")

    def config_key(self, community_id: int, generation: int) -> str:
        return self.cache.key(f"guild:{community_id}:config:escalation:g{generation}")

    # --- Read paths ------------------------------------------------------------------
    def count_recent_warnings(self, community_id: int, user_id: int, window: timedelta) -> int:
        """Count warnings in ``[now - window, now]`` through the cache."""
        if window.total_seconds() <= 0:
            return 0
        now = self._clock()
        scope = self.warning_scope_key(community_id, user_id)
        generation = self._cached(lambda: self._generation(scope))

        if not isinstance(generation, _Unavailable):
            key = self.warning_count_key(community_id, user_id, generation, window)
            cached = self._cached(lambda: self.cache.get_model(key, WarningCount))
            if isinstance(cached, WarningCount) and self._still_fresh(cached, now):
                logger.debug("Warning count cache hit for %s", key)
                return cached.count

        self.cache.record("fallback_load")
        loaded = self._load_warning_count(community_id, user_id, window, now)

        if not isinstance(generation, _Unavailable):
            ttl = self._count_ttl(loaded, window, now)
            if ttl >= 1:
                self._cached(lambda: self.cache.set_model(key, loaded, ttl))
        return loaded.count

    def get_escalation_config(self, community_id: int) -> EscalationConfig:
        """Return the community's policy, creating the default row on first access."""
        scope = self.config_scope_key(community_id)
        generation = self._cached(lambda: self._generation(scope))

        if not isinstance(generation, _Unavailable):
            key = self.config_key(community_id, generation)
            cached = self._cached(lambda: self.cache.get_model(key, EscalationConfig))
            if isinstance(cached, EscalationConfig):
                return cached

        self.cache.record("fallback_load")
        with transaction(self._session_factory) as db:
            repo = EscalationConfigRepository(db)
            config = repo.to_config(repo.get_or_create(community_id))

        if not isinstance(generation, _Unavailable):
            self._cached(lambda: self.cache.set_model(key, config, self.config_ttl_seconds))
        return config

    # --- Write paths -----------------------------------------------------------------
    def set_escalation_config(self, config: EscalationConfig) -> EscalationConfig:
        """Persist ``config`` and invalidate the cached copy."""
        with transaction(self._session_factory) as db:
            repo = EscalationConfigRepository(db)
            stored = repo.to_config(repo.save(config))
        self.invalidate_escalation_config(config.community_id)
        return stored

    def invalidate_warning_counts(self, community_id: int, user_id: int) -> None:
        """Invalidate every cached window count for the user."""
        self._invalidate(self.warning_scope_key(community_id, user_id))

    def invalidate_escalation_config(self, community_id: int) -> None:
        self._invalidate(self.config_scope_key(community_id))

    # --- Escalation guard ------------------------------------------------------------
    def claim_escalation(
        self,
        db: Session,
        *,
        community_id: int,
        user_id: int,
        threshold: int,
        window: timedelta,
        now: datetime,
    ) -> EscalationClaim | None:
        """Check, inside the caller's transaction, that an escalation is due.

        Recounts from the store, then verifies no auto-timeout already covers
        a warning of the counted set. The returned anchor (oldest counted
        warning) is written on the escalation row, where a unique index turns
        concurrent claims for the same burst into a single successful insert.
        Older escalations that no longer cover the counted set give up the
        anchor first.
        """
        since = now - window
        warnings = WarningRepository(db)
        count, _, anchor_id = warnings.count_since(
            community_id,
            user_id,
            since,
            exclude_reversed=self.exclude_reversed_warnings,
        )
        if count < threshold or anchor_id is None:
            return None

        counted = warnings.window_ids(
            community_id,
            user_id,
            since,
            exclude_reversed=self.exclude_reversed_warnings,
        )
        cases = CaseRepository(db)
        if cases.escalation_exists(
            community_id,
            user_id,
            since=since,
            counted_warning_ids=counted,
        ):
            return None
        released = cases.release_escalation_anchor(
            community_id,
            user_id,
            anchor_id,
            since=since,
            counted_warning_ids=counted,
        )
        if released:
            logger.debug(
                "Released stale escalation anchor %s for user %s in community %s",
                anchor_id,
                user_id,
                community_id,
            )
        return EscalationClaim(warning_count=count, anchor_warning_id=anchor_id, since=since)

    # --- Internals -------------------------------------------------------------------
    def _load_warning_count(
        self, community_id: int, user_id: int, window: timedelta, now: datetime
    ) -> WarningCount:
        with transaction(self._session_factory) as db:
            count, oldest_at, _ = WarningRepository(db).count_since(
                community_id,
                user_id,
                now - window,
                exclude_reversed=self.exclude_reversed_warnings,
            )
        fresh_until = as_utc(oldest_at) + window if oldest_at is not None else None
        return WarningCount(count=count, fresh_until=fresh_until)

    @staticmethod
    def _count_ttl(loaded: WarningCount, window: timedelta, now: datetime) -> int:
        # Expire no later than the moment the oldest counted warning leaves the window.
        if loaded.fresh_until is None:
            return int(window.total_seconds())
        return math.floor((loaded.fresh_until - now).total_seconds())

    @staticmethod
    def _still_fresh(cached: WarningCount, now: datetime) -> bool:
        return cached.fresh_until is None or now < as_utc(cached.fresh_until)

    def _generation(self, scope_key: str) -> int:
        self._flush_pending()
        return self.cache.current_generation(scope_key, time.time_ns())

    def _invalidate(self, scope_key: str) -> None:
        if not self.cache.enabled:
            return
        result = self._cached(lambda: self.cache.bump_generation(scope_key, time.time_ns()))
        if isinstance(result, _Unavailable):
            # Retried before the next cached read.
            with self._pending_lock:
                self._pending.add(scope_key)

    def _flush_pending(self) -> None:
        with self._pending_lock:
            pending = sorted(self._pending)
        for scope_key in pending:
            self.cache.bump_generation(scope_key, time.time_ns())
            with self._pending_lock:
                self._pending.discard(scope_key)

    def _cached(self, operation: Callable[[], T]) -> T | _Unavailable:
        """Run one cache operation, converting failures into ``_UNAVAILABLE``."""
        if not self.cache.enabled or not self.health.allow():
            return _UNAVAILABLE
        try:
            result = operation()
        except CacheError as exc:
            logger.warning("Cache operation failed; serving from durable store: %s", exc)
            self.health.record_failure()
            return _UNAVAILABLE
        self.health.record_success()
        return result


def describe_cache(coordinator: ConsistencyCoordinator) -> dict[str, Any]:
    """Return cache health details for status endpoints."""
    stats = coordinator.cache.stats_snapshot()
    return {
        "enabled": coordinator.cache.enabled,
        "degraded": coordinator.cache_degraded(),
        "mode": coordinator.health.mode.value,
        "stats": {
            "hit": stats.hit,
            "miss": stats.miss,
            "set": stats.set,
            "invalidate": stats.invalidate,
            "error": stats.error,
            "fallback_load": stats.fallback_load,
        },
    }
