# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
import redis
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("CACHE_ENABLED", "false")

from modledger.api.v1.dependencies import get_moderation_service_dep
from modledger.core.settings import Settings
from modledger.db.session import Base
from modledger.main import app as fastapi_app
from modledger.schemas.escalation import EscalationConfig
from modledger.services.cache import CacheService, RedisCacheStore
from modledger.services.coordinator import CacheHealth
from modledger.services.moderation import ModerationService

TEST_DB_URL = "sqlite://"
COMMUNITY_ID = 1001
USER_ID = 2002
MODERATOR_ID = 3003
START = datetime(2026, 1, 1, tzinfo=UTC)


class Clock:
    """Controllable wall clock injected into the ledger and coordinator."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeRedis:
    """In-memory stand-in for the subset of redis-py the cache adapter uses.

    Set ``fail = True`` to make every command raise ``ConnectionError``.
    """

    def __init__(self) -> None:
        self.data: dict[str, bytes] = {}
        self.ttls: dict[str, int] = {}
        self.fail = False
        self.calls = 0

    def _check(self) -> None:
        self.calls += 1
        if self.fail:
            raise redis.exceptions.ConnectionError("connection refused")

    def get(self, key: str) -> bytes | None:
        self._check()
        return self.data.get(key)

    def set(self, key: str, value: Any, ex: int | None = None, nx: bool = False) -> bool | None:
        self._check()
        if nx and key in self.data:
            return None
        self.data[key] = value if isinstance(value, bytes) else str(value).encode()
        if ex is not None:
            self.ttls[key] = ex
        return True

    def incr(self, key: str) -> int:
        self._check()
        value = int(self.data.get(key, b"0")) + 1
        self.data[key] = str(value).encode()
        return value

    def ping(self) -> bool:
        self._check()
        return True

    def pipeline(self) -> _FakePipeline:
        return _FakePipeline(self)


class _FakePipeline:
    def __init__(self, client: FakeRedis) -> None:
        self._client = client
        self._ops: list[Callable[[], Any]] = []

    def set(self, key: str, value: Any, ex: int | None = None, nx: bool = False) -> None:
        self._ops.append(lambda: self._client.set(key, value, ex=ex, nx=nx))

    def get(self, key: str) -> None:
        self._ops.append(lambda: self._client.get(key))

    def incr(self, key: str) -> None:
        self._ops.append(lambda: self._client.incr(key))

    def execute(self) -> list[Any]:
        ops, self._ops = self._ops, []
        return [op() for op in ops]


@pytest.fixture()
def engine() -> Iterator[Engine]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def file_session_factory(tmp_path) -> Iterator[sessionmaker[Session]]:
    """File-backed SQLite store shared by several threads.

    Every transaction starts with ``BEGIN IMMEDIATE`` so concurrent writers
    queue on the database lock instead of failing to upgrade a read lock.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):  # type: ignore[no-untyped-def]
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    finally:
        engine.dispose()


@pytest.fixture()
def clock() -> Clock:
    return Clock()


@pytest.fixture()
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture()
def cache(fake_redis: FakeRedis) -> CacheService:
    return CacheService(RedisCacheStore(fake_redis), "test")


@pytest.fixture()
def test_settings() -> Settings:
    """Settings with library defaults, independent of the environment."""
    return Settings(
        CACHE_ENABLED=True,
        CACHE_FAILURE_THRESHOLD=3,
        CACHE_COOLDOWN_SECONDS=30.0,
        ESCALATION_EXCLUDE_REVERSED_WARNINGS=False,
        ESCALATION_TIERED_TIMEOUTS=False,
        ESCALATION_SYSTEM_ACTOR_ID=0,
        CASES_PAGE_LIMIT_MAX=200,
    )


@pytest.fixture()
def ticks() -> list[float]:
    """Monotonic time source for degraded-mode cooldowns."""
    return [0.0]


@pytest.fixture()
def health(test_settings: Settings, ticks: list[float]) -> CacheHealth:
    return CacheHealth(
        test_settings.cache_failure_threshold,
        test_settings.cache_cooldown_seconds,
        monotonic=lambda: ticks[0],
    )


@pytest.fixture()
def build_service(
    session_factory: sessionmaker[Session],
    clock: Clock,
    test_settings: Settings,
) -> Callable[..., ModerationService]:
    """Return a factory for services sharing the test store and clock."""

    def _build(
        cache: CacheService | None = None,
        *,
        health: CacheHealth | None = None,
        **overrides: Any,
    ) -> ModerationService:
        config = test_settings.model_copy(update=overrides) if overrides else test_settings
        return ModerationService(
            session_factory,
            cache or CacheService.disabled("test"),
            config=config,
            clock=clock,
            health=health,
        )

    return _build


@pytest.fixture()
def service(
    build_service: Callable[..., ModerationService],
    cache: CacheService,
    health: CacheHealth,
) -> ModerationService:
    return build_service(cache, health=health)


@pytest.fixture()
def escalation_enabled(service: ModerationService) -> EscalationConfig:
    """Enable escalation for the test community: 3 warnings in 24h -> 7d timeout."""
    return service.set_escalation_config(
        EscalationConfig(
            community_id=COMMUNITY_ID,
            enabled=True,
            warn_threshold=3,
            warn_window=timedelta(hours=24),
            timeout_window=timedelta(days=7),
        )
    )


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def client(app: FastAPI, service: ModerationService) -> Iterator[TestClient]:
    app.dependency_overrides[get_moderation_service_dep] = lambda: service
    try:
        with TestClient(app, base_url="http://test") as test_client:
            yield test_client
    finally:
        app.dependency_overrides.pop(get_moderation_service_dep, None)
