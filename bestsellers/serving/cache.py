"""
Result Cache

TTL cache for ranked query responses with:
- Expired entries treated as misses, never as stale hits
- Introspection (size, keys, per-entry age) and manual invalidation
- A soft cap that only logs a warning
- Two interchangeable backends: in-process memory and Redis

Cache instances are created at service start and injected into the query
service; there is no module-level cache.
"""

import asyncio
import copy
import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from bestsellers.config.settings import CacheSettings, RedisSettings
from bestsellers.ranking.exceptions import DataSourceError
from bestsellers.ranking.schemas import CacheEntryStats, CacheStats

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CacheHit:
    """A live cache entry as seen by a reader"""
    payload: Any
    age_seconds: float


class ResultCache(Protocol):
    """Operations every cache backend provides"""

    ttl_seconds: int

    async def get(self, key: str) -> Optional[CacheHit]: ...

    async def put(self, key: str, payload: Any, ttl: Optional[int] = None) -> None: ...

    async def invalidate(self, key: Optional[str] = None) -> int: ...

    async def stats(self) -> CacheStats: ...

    async def sweep(self) -> int: ...

    async def close(self) -> None: ...


@dataclass(frozen=True)
class _Entry:
    payload: Any
    created_at: float
    ttl: int


class InMemoryResultCache:
    """
    Process-local cache guarded by a lock.

    Concurrent misses on one key may each recompute and put; the last put
    wins.

    Example:
        cache = InMemoryResultCache(ttl_seconds=600)
        await cache.put("best-sellers:all:10:0:all:all:1", payload)
        hit = await cache.get("best-sellers:all:10:0:all:all:1")
    """

    def __init__(
        self,
        ttl_seconds: int = 600,
        soft_cap: int = 80,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.soft_cap = soft_cap
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def _is_expired(self, entry: _Entry, now: float) -> bool:
        return now - entry.created_at >= entry.ttl

    async def get(self, key: str) -> Optional[CacheHit]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._is_expired(entry, now):
                del self._entries[key]
                logger.debug("Cache entry expired", key=key)
                return None
        return CacheHit(payload=copy.deepcopy(entry.payload), age_seconds=now - entry.created_at)

    async def put(self, key: str, payload: Any, ttl: Optional[int] = None) -> None:
        entry = _Entry(
            payload=copy.deepcopy(payload),
            created_at=self._clock(),
            ttl=self.ttl_seconds if ttl is None else ttl,
        )
        with self._lock:
            self._entries[key] = entry
            size = len(self._entries)

        if size > self.soft_cap:
            logger.warning("Cache size above soft cap", size=size, soft_cap=self.soft_cap)

    async def invalidate(self, key: Optional[str] = None) -> int:
        with self._lock:
            if key is None:
                removed = len(self._entries)
                self._entries.clear()
            else:
                removed = 1 if self._entries.pop(key, None) is not None else 0

        logger.info("Cache invalidated", key=key or "*", removed=removed)
        return removed

    async def stats(self) -> CacheStats:
        now = self._clock()
        with self._lock:
            live = {k: e for k, e in self._entries.items() if not self._is_expired(e, now)}

        keys = sorted(live)
        entries = [
            CacheEntryStats(
                key=k,
                age_seconds=round(now - live[k].created_at, 3),
                expires_in_seconds=round(live[k].created_at + live[k].ttl - now, 3),
            )
            for k in keys
        ]
        return CacheStats(
            size=len(keys),
            keys=keys,
            entries=entries,
            soft_cap=self.soft_cap,
            over_soft_cap=len(keys) > self.soft_cap,
            ttl_seconds=self.ttl_seconds,
        )

    async def sweep(self) -> int:
        """Evict every expired entry"""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if self._is_expired(e, now)]
            for k in expired:
                del self._entries[k]

        if expired:
            logger.debug("Expired cache entries evicted", evicted=len(expired))
        return len(expired)

    async def close(self) -> None:
        with self._lock:
            self._entries.clear()


class RedisResultCache:
    """
    Redis-backed cache with namespaced keys and native expiry.

    Each value is an envelope {created_at, ttl, payload} so readers can report
    the entry age. Redis failures degrade to misses.
    """

    def __init__(
        self,
        client: Redis,
        ttl_seconds: int = 600,
        namespace: str = "best-sellers",
        soft_cap: int = 80,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.namespace = namespace
        self.soft_cap = soft_cap
        self._clock = clock

    def _key(self, key: str) -> str:
        """Generate namespaced key"""
        return f"{self.namespace}:{key}"

    async def _namespaced_keys(self) -> List[str]:
        return [k async for k in self.client.scan_iter(match=f"{self.namespace}:*")]

    def _decode(self, key: str, raw: Optional[str]) -> Optional[Dict[str, Any]]:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Undecodable cache entry", key=key)
            return None

    async def get(self, key: str) -> Optional[CacheHit]:
        try:
            raw = await self.client.get(self._key(key))
        except RedisError as e:
            logger.warning("Redis get failed, treating as miss", key=key, error=str(e))
            return None

        envelope = self._decode(key, raw)
        if envelope is None:
            return None

        age = self._clock() - envelope["created_at"]
        # expiry in redis is second-granular; never hand out an aged entry
        if age >= envelope["ttl"]:
            return None
        return CacheHit(payload=envelope["payload"], age_seconds=age)

    async def put(self, key: str, payload: Any, ttl: Optional[int] = None) -> None:
        ttl = self.ttl_seconds if ttl is None else ttl
        envelope = {"created_at": self._clock(), "ttl": ttl, "payload": payload}

        try:
            serialized = json.dumps(envelope, default=str)
        except (TypeError, ValueError) as e:
            logger.warning("Failed to serialize value for cache", key=key, error=str(e))
            return

        try:
            await self.client.setex(self._key(key), ttl, serialized)
        except RedisError as e:
            logger.warning("Redis set failed", key=key, error=str(e))

    async def invalidate(self, key: Optional[str] = None) -> int:
        """
        Raises:
            DataSourceError: If redis cannot be reached
        """
        try:
            if key is not None:
                removed = await self.client.delete(self._key(key))
            else:
                keys = await self._namespaced_keys()
                removed = await self.client.delete(*keys) if keys else 0
        except RedisError as e:
            logger.error("Redis invalidation failed", key=key or "*", error=str(e))
            raise DataSourceError(f"Cache invalidation failed: {e}") from e

        logger.info("Cache invalidated", key=key or "*", removed=removed)
        return removed

    async def stats(self) -> CacheStats:
        """
        Raises:
            DataSourceError: If redis cannot be reached
        """
        prefix = f"{self.namespace}:"
        try:
            full_keys = sorted(await self._namespaced_keys())
            values = await self.client.mget(full_keys) if full_keys else []
        except RedisError as e:
            logger.error("Redis stats failed", error=str(e))
            raise DataSourceError(f"Cache stats failed: {e}") from e

        now = self._clock()
        entries = []
        for full_key, raw in zip(full_keys, values):
            key = full_key[len(prefix):]
            envelope = self._decode(key, raw)
            # expired between scan and read
            if envelope is None:
                continue
            age = now - envelope["created_at"]
            entries.append(
                CacheEntryStats(
                    key=key,
                    age_seconds=round(age, 3),
                    expires_in_seconds=round(max(envelope["ttl"] - age, 0), 3),
                )
            )

        keys = [entry.key for entry in entries]
        return CacheStats(
            size=len(keys),
            keys=keys,
            entries=entries,
            soft_cap=self.soft_cap,
            over_soft_cap=len(keys) > self.soft_cap,
            ttl_seconds=self.ttl_seconds,
        )

    async def sweep(self) -> int:
        # redis evicts expired keys itself
        return 0

    async def close(self) -> None:
        await self.client.aclose()


def create_redis_client(settings: RedisSettings) -> Redis:
    """Redis client with a bounded connection pool"""
    return Redis.from_url(
        settings.get_url(),
        max_connections=settings.max_connections,
        socket_timeout=settings.socket_timeout,
        decode_responses=True,
    )


def build_result_cache(cache_settings: CacheSettings, redis_settings: RedisSettings) -> ResultCache:
    """Instantiate the configured cache backend"""
    if cache_settings.backend == "redis":
        logger.info("Using redis result cache", namespace=cache_settings.namespace)
        return RedisResultCache(
            create_redis_client(redis_settings),
            ttl_seconds=cache_settings.ttl_seconds,
            namespace=cache_settings.namespace,
            soft_cap=cache_settings.soft_cap,
        )

    logger.info("Using in-memory result cache", ttl_seconds=cache_settings.ttl_seconds)
    return InMemoryResultCache(
        ttl_seconds=cache_settings.ttl_seconds,
        soft_cap=cache_settings.soft_cap,
    )


async def sweep_periodically(cache: ResultCache, interval_seconds: int) -> None:
    """Evict expired entries every interval_seconds until cancelled"""
    while True:
        await asyncio.sleep(interval_seconds)
        await cache.sweep()
