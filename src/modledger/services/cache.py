"""Cache layer: an optional, never-authoritative key/value accelerator.

Two backends share a tiny store protocol:

- ``RedisCacheStore`` wraps a redis-py client with finite socket timeouts.
- ``NoopCacheStore`` is used when caching is disabled; every read misses.

``CacheService`` adds the key namespace, JSON serialization of pydantic
models and hit/miss/error counters. Backend failures surface as
``CacheError``; deciding what to do about them is the coordinator's job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Any, Protocol, TypeVar

import redis
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from modledger.core.errors import CacheError
from modledger.core.settings import Settings, settings

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class CacheStore(Protocol):
    """Minimal operations the coordinator needs from a cache backend."""

    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes, ttl_seconds: int) -> None: ...

    def current_generation(self, key: str, seed: int) -> int: ...

    def incr_generation(self, key: str, seed: int) -> int: ...

    def ping(self) -> None: ...


class NoopCacheStore:
    """Backend used when caching is disabled."""

    def get(self, key: str) -> bytes | None:
        return None

    def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        return None

    def current_generation(self, key: str, seed: int) -> int:
        return seed

    def incr_generation(self, key: str, seed: int) -> int:
        return seed

    def ping(self) -> None:
        return None


class RedisCacheStore:
    """Redis-backed store. Every redis failure is re-raised as ``CacheError``."""

    def __init__(self, client: Any) -> None:
        self._redis = client

    @classmethod
    def from_url(cls, url: str, *, socket_timeout: float) -> RedisCacheStore:
        client = redis.Redis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    def get(self, key: str) -> bytes | None:
        try:
            value = self._redis.get(key)
        except redis.exceptions.RedisError as exc:
            raise CacheError(f"redis GET failed for key `{key}`: {exc}") from exc
        if value is None:
            return None
        return value if isinstance(value, bytes) else str(value).encode()

    def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        try:
            self._redis.set(key, value, ex=max(1, int(ttl_seconds)))
        except redis.exceptions.RedisError as exc:
            raise CacheError(f"redis SET failed for key `{key}`: {exc}") from exc

    def current_generation(self, key: str, seed: int) -> int:
        try:
            # Seed a missing (evicted) counter above every earlier generation
            pipe = self._redis.pipeline()
            pipe.set(key, seed, nx=True)
            pipe.get(key)
            _, generation = pipe.execute()
        except redis.exceptions.RedisError as exc:
            raise CacheError(f"redis GET failed for key `{key}`: {exc}") from exc
        try:
            return int(generation)
        except (TypeError, ValueError) as exc:
            raise CacheError(f"corrupt generation counter `{key}`") from exc

    def incr_generation(self, key: str, seed: int) -> int:
        try:
            pipe = self._redis.pipeline()
            pipe.set(key, seed, nx=True)
            pipe.incr(key)
            _, generation = pipe.execute()
        except redis.exceptions.RedisError as exc:
            raise CacheError(f"redis INCR failed for key `{key}`: {exc}") from exc
        return int(generation)

    def ping(self) -> None:
        try:
            self._redis.ping()
        except redis.exceptions.RedisError as exc:
            raise CacheError(f"redis PING failed: {exc}") from exc


@dataclass(frozen=True)
class CacheStatsSnapshot:
    """Point-in-time copy of the cache counters."""

    hit: int = 0
    miss: int = 0
    set: int = 0
    invalidate: int = 0
    error: int = 0
    fallback_load: int = 0


class CacheService:
    """Namespaced, model-aware facade over a ``CacheStore``."""

    def __init__(self, store: CacheStore, key_prefix: str, *, enabled: bool = True) -> None:
        self.store = store
        self.key_prefix = key_prefix
        self.enabled = enabled
        self._counters = dict.fromkeys(CacheStatsSnapshot.__dataclass_fields__, 0)
        self._lock = Lock()

    @classmethod
    def disabled(cls, key_prefix: str) -> CacheService:
        return cls(NoopCacheStore(), key_prefix, enabled=False)

    @classmethod
    def redis(cls, url: str, key_prefix: str, *, socket_timeout: float) -> CacheService:
        return cls(RedisCacheStore.from_url(url, socket_timeout=socket_timeout), key_prefix)

    def key(self, suffix: str) -> str:
        return f"{self.key_prefix}:{suffix}"

    def get_model(self, key: str, model: type[ModelT]) -> ModelT | None:
        try:
            payload = self.store.get(key)
        except CacheError:
            self.record("error")
            raise
        if payload is None:
            self.record("miss")
            return None
        try:
            value = model.model_validate_json(payload)
        except PydanticValidationError as exc:
            self.record("error")
            raise CacheError(f"failed to deserialize cache value for `{key}`: {exc}") from exc
        self.record("hit")
        return value

    def set_model(self, key: str, value: BaseModel, ttl_seconds: int) -> None:
        try:
            self.store.set(key, value.model_dump_json().encode(), ttl_seconds)
        except CacheError:
            self.record("error")
            raise
        self.record("set")

    def current_generation(self, key: str, seed: int) -> int:
        try:
            return self.store.current_generation(key, seed)
        except CacheError:
            self.record("error")
            raise

    def bump_generation(self, key: str, seed: int) -> int:
        try:
            generation = self.store.incr_generation(key, seed)
        except CacheError:
            self.record("error")
            raise
        self.record("invalidate")
        return generation

    def ping(self) -> None:
        self.store.ping()

    def record(self, counter: str) -> None:
        with self._lock:
            self._counters[counter] += 1

    def stats_snapshot(self) -> CacheStatsSnapshot:
        with self._lock:
            return CacheStatsSnapshot(**self._counters)


def build_cache_service(config: Settings = settings) -> CacheService:
    """Return the cache service described by ``config``."""
    if not config.cache_enabled:
        return CacheService.disabled(config.cache_key_prefix)
    return CacheService.redis(
        config.redis_url,
        config.cache_key_prefix,
        socket_timeout=config.cache_socket_timeout_seconds,
    )
