"""
Unit Tests - Result Cache
"""
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from bestsellers.config.settings import CacheSettings, RedisSettings
from bestsellers.ranking.exceptions import DataSourceError
from bestsellers.serving.cache import (
    InMemoryResultCache,
    RedisResultCache,
    build_result_cache,
)

KEY = "best-sellers:all:10:0:all:all:1"


class TestInMemoryResultCache:
    """Tests for InMemoryResultCache"""

    async def test_put_then_get(self, memory_cache, clock):
        await memory_cache.put(KEY, {"items": [1, 2]})
        clock.advance(42)

        hit = await memory_cache.get(KEY)

        assert hit.payload == {"items": [1, 2]}
        assert hit.age_seconds == 42

    async def test_missing_key(self, memory_cache):
        assert await memory_cache.get("nope") is None

    async def test_expired_entry_is_a_miss(self, memory_cache, clock):
        await memory_cache.put(KEY, {"items": []})
        clock.advance(600)

        assert await memory_cache.get(KEY) is None
        assert (await memory_cache.stats()).size == 0

    async def test_entry_just_before_ttl_is_served(self, memory_cache, clock):
        await memory_cache.put(KEY, {"items": []})
        clock.advance(599.9)

        assert await memory_cache.get(KEY) is not None

    async def test_zero_ttl_is_not_the_default(self, memory_cache):
        await memory_cache.put(KEY, {"items": []}, ttl=0)

        assert await memory_cache.get(KEY) is None

    async def test_ttl_override(self, memory_cache, clock):
        await memory_cache.put(KEY, {"items": []}, ttl=10)
        clock.advance(11)

        assert await memory_cache.get(KEY) is None

    async def test_put_replaces_by_key(self, memory_cache, clock):
        await memory_cache.put(KEY, {"v": 1})
        clock.advance(500)
        await memory_cache.put(KEY, {"v": 2})
        clock.advance(200)

        hit = await memory_cache.get(KEY)

        assert hit.payload == {"v": 2}
        assert hit.age_seconds == 200

    async def test_payload_is_isolated_from_caller(self, memory_cache):
        payload = {"items": [1]}
        await memory_cache.put(KEY, payload)
        payload["items"].append(2)

        hit = await memory_cache.get(KEY)
        hit.payload["items"].append(3)

        assert (await memory_cache.get(KEY)).payload == {"items": [1]}

    async def test_invalidate_single_key(self, memory_cache):
        await memory_cache.put("a", 1)
        await memory_cache.put("b", 2)

        assert await memory_cache.invalidate("a") == 1
        assert await memory_cache.invalidate("a") == 0
        assert (await memory_cache.stats()).keys == ["b"]

    async def test_invalidate_all(self, memory_cache):
        for key in ("a", "b", "c"):
            await memory_cache.put(key, key)

        assert await memory_cache.invalidate() == 3
        assert (await memory_cache.stats()).size == 0

    async def test_stats(self, memory_cache):
        await memory_cache.put("b", 1)
        await memory_cache.put("a", 2)

        stats = await memory_cache.stats()

        assert stats.size == 2
        assert stats.keys == ["a", "b"]
        assert stats.ttl_seconds == 600
        assert stats.over_soft_cap is False

    async def test_stats_report_entry_age(self, memory_cache, clock):
        await memory_cache.put("a", 1)
        clock.advance(100)
        await memory_cache.put("b", 2, ttl=60)
        clock.advance(20)

        entries = {e.key: e for e in (await memory_cache.stats()).entries}

        assert (entries["a"].age_seconds, entries["a"].expires_in_seconds) == (120, 480)
        assert (entries["b"].age_seconds, entries["b"].expires_in_seconds) == (20, 40)

    async def test_soft_cap_only_flags(self, clock):
        cache = InMemoryResultCache(ttl_seconds=600, soft_cap=2, clock=clock)
        for key in ("a", "b", "c"):
            await cache.put(key, key)

        stats = await cache.stats()

        assert stats.size == 3
        assert stats.over_soft_cap is True

    async def test_sweep_evicts_only_expired(self, memory_cache, clock):
        await memory_cache.put("old", 1)
        clock.advance(590)
        await memory_cache.put("new", 2)
        clock.advance(20)

        assert await memory_cache.sweep() == 1
        assert (await memory_cache.stats()).keys == ["new"]


class TestRedisResultCache:
    """Tests for RedisResultCache with a mocked client"""

    @pytest.fixture
    def redis_client(self):
        client = MagicMock()
        client.get = AsyncMock(return_value=None)
        client.setex = AsyncMock()
        client.delete = AsyncMock(return_value=1)
        client.mget = AsyncMock(return_value=[])
        client.aclose = AsyncMock()
        return client

    @pytest.fixture
    def redis_cache(self, redis_client, clock):
        return RedisResultCache(redis_client, ttl_seconds=600, namespace="bs", clock=clock)

    async def test_put_uses_setex_with_namespace(self, redis_cache, redis_client, clock):
        await redis_cache.put(KEY, {"items": []})

        key, ttl, raw = redis_client.setex.call_args.args
        assert key == f"bs:{KEY}"
        assert ttl == 600
        assert json.loads(raw) == {"created_at": clock.now, "ttl": 600, "payload": {"items": []}}

    async def test_get_reports_age(self, redis_cache, redis_client, clock):
        redis_client.get.return_value = json.dumps(
            {"created_at": clock.now - 30, "ttl": 600, "payload": {"items": [1]}}
        )

        hit = await redis_cache.get(KEY)

        redis_client.get.assert_awaited_once_with(f"bs:{KEY}")
        assert hit.payload == {"items": [1]}
        assert hit.age_seconds == 30

    async def test_aged_envelope_is_a_miss(self, redis_cache, redis_client, clock):
        redis_client.get.return_value = json.dumps(
            {"created_at": clock.now - 601, "ttl": 600, "payload": {}}
        )

        assert await redis_cache.get(KEY) is None

    async def test_redis_failure_degrades_to_miss(self, redis_cache, redis_client):
        redis_client.get.side_effect = RedisConnectionError("down")

        assert await redis_cache.get(KEY) is None

    async def test_invalidate_all_scans_namespace(self, redis_cache, redis_client):
        async def scan_iter(match):
            assert match == "bs:*"
            for key in ("bs:a", "bs:b"):
                yield key

        redis_client.scan_iter = scan_iter
        redis_client.delete.return_value = 2

        assert await redis_cache.invalidate() == 2
        redis_client.delete.assert_awaited_once_with("bs:a", "bs:b")

    async def test_stats_strips_namespace_and_reports_age(self, redis_cache, redis_client, clock):
        async def scan_iter(match):
            for key in ("bs:b", "bs:a"):
                yield key

        redis_client.scan_iter = scan_iter
        redis_client.mget.return_value = [
            json.dumps({"created_at": clock.now - 100, "ttl": 600, "payload": {}}),
            json.dumps({"created_at": clock.now - 10, "ttl": 600, "payload": {}}),
        ]

        stats = await redis_cache.stats()

        redis_client.mget.assert_awaited_once_with(["bs:a", "bs:b"])
        assert stats.keys == ["a", "b"]
        assert stats.size == 2
        assert [(e.key, e.age_seconds, e.expires_in_seconds) for e in stats.entries] == [
            ("a", 100, 500),
            ("b", 10, 590),
        ]

    async def test_stats_skips_keys_gone_before_read(self, redis_cache, redis_client, clock):
        async def scan_iter(match):
            for key in ("bs:a", "bs:b"):
                yield key

        redis_client.scan_iter = scan_iter
        redis_client.mget.return_value = [
            None,
            json.dumps({"created_at": clock.now, "ttl": 600, "payload": {}}),
        ]

        stats = await redis_cache.stats()

        assert stats.keys == ["b"]

    async def test_stats_failure_maps_to_data_source_error(self, redis_cache, redis_client):
        async def scan_iter(match):
            raise RedisConnectionError("down")
            yield

        redis_client.scan_iter = scan_iter

        with pytest.raises(DataSourceError):
            await redis_cache.stats()

    async def test_invalidate_failure_maps_to_data_source_error(self, redis_cache, redis_client):
        redis_client.delete.side_effect = RedisConnectionError("down")

        with pytest.raises(DataSourceError):
            await redis_cache.invalidate(KEY)

    async def test_explicit_ttl_is_honoured(self, redis_cache, redis_client):
        await redis_cache.put(KEY, {}, ttl=5)

        _, ttl, raw = redis_client.setex.call_args.args
        assert ttl == 5
        assert json.loads(raw)["ttl"] == 5

    async def test_close_releases_client(self, redis_cache, redis_client):
        await redis_cache.close()

        redis_client.aclose.assert_awaited_once()


class TestBuildResultCache:
    """Tests for backend selection"""

    def test_memory_backend_by_default(self):
        cache = build_result_cache(CacheSettings(), RedisSettings())

        assert isinstance(cache, InMemoryResultCache)
        assert cache.ttl_seconds == 600

    def test_redis_backend(self):
        cache = build_result_cache(
            CacheSettings(backend="redis", namespace="bs"),
            RedisSettings(host="cache.internal"),
        )

        assert isinstance(cache, RedisResultCache)
        assert cache.namespace == "bs"

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValueError):
            CacheSettings(backend="memcached")
