"""Tests for KV store backends and binding resolution."""

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import RedisError

from mcm_snapshot.config import Settings
from mcm_snapshot.errors import CacheUnavailableError, ConfigurationError
from mcm_snapshot.storage.kv_store import MemoryKVStore, RedisKVStore, build_kv_store


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class TestMemoryKVStore:
    @pytest.mark.asyncio
    async def test_text_round_trip(self):
        kv = MemoryKVStore()
        await kv.put("a", "hello")
        assert await kv.get("a") == "hello"
        assert await kv.get("missing") is None

    @pytest.mark.asyncio
    async def test_json_read(self):
        kv = MemoryKVStore()
        await kv.put("a", '{"baseline": 1.5}')
        assert await kv.get("a", "json") == {"baseline": 1.5}

    @pytest.mark.asyncio
    async def test_undecodable_json_is_absent(self):
        kv = MemoryKVStore()
        await kv.put("a", "not json")
        assert await kv.get("a", "json") is None
        assert await kv.get("a", "text") == "not json"

    @pytest.mark.asyncio
    async def test_expiry(self):
        clock = FakeClock()
        kv = MemoryKVStore(clock=clock)
        await kv.put("a", "v", expiration_ttl=315)
        assert kv.ttl("a") == 315
        clock.now += 314
        assert await kv.get("a") == "v"
        clock.now += 1
        assert await kv.get("a") is None
        assert "a" not in kv.keys()

    @pytest.mark.asyncio
    async def test_expired_keys_evicted_on_write(self):
        clock = FakeClock()
        kv = MemoryKVStore(clock=clock)
        await kv.put("mcm:baseline:MSFT", "388.0")
        for bucket in range(200):
            await kv.put(f"mcm:snapshot:2024-01-16:RTH:{bucket}:MSFT", "{}", expiration_ttl=315)
            clock.now += 400
        # Only the last bucket written, plus the non-expiring baseline, remain
        assert sorted(kv.keys()) == ["mcm:baseline:MSFT", "mcm:snapshot:2024-01-16:RTH:199:MSFT"]

    @pytest.mark.asyncio
    async def test_no_expiry(self):
        clock = FakeClock()
        kv = MemoryKVStore(clock=clock)
        await kv.put("a", "v")
        clock.now += 10 ** 9
        assert await kv.get("a") == "v"
        assert kv.ttl("a") is None

    @pytest.mark.asyncio
    async def test_delete_and_ping(self):
        kv = MemoryKVStore()
        await kv.put("a", "v")
        await kv.delete("a")
        await kv.delete("a")
        assert await kv.get("a") is None
        assert await kv.ping() is True


class TestRedisKVStore:
    @pytest.fixture
    def store(self):
        return RedisKVStore("redis://localhost:6379/0")

    @pytest.mark.asyncio
    async def test_put_with_ttl(self, store):
        store.redis.set = AsyncMock(return_value=True)
        await store.put("k", "v", expiration_ttl=315)
        store.redis.set.assert_awaited_once_with("k", "v", ex=315)

    @pytest.mark.asyncio
    async def test_put_without_ttl(self, store):
        store.redis.set = AsyncMock(return_value=True)
        await store.put("k", "v")
        store.redis.set.assert_awaited_once_with("k", "v")

    @pytest.mark.asyncio
    async def test_read_failure_raises(self, store):
        store.redis.get = AsyncMock(side_effect=RedisError("connection refused"))
        with pytest.raises(CacheUnavailableError):
            await store.get("k")

    @pytest.mark.asyncio
    async def test_write_failure_raises(self, store):
        store.redis.set = AsyncMock(side_effect=RedisError("connection refused"))
        with pytest.raises(CacheUnavailableError):
            await store.put("k", "v", expiration_ttl=10)

    @pytest.mark.asyncio
    async def test_ping_failure_is_false(self, store):
        store.redis.ping = AsyncMock(side_effect=RedisError("down"))
        assert await store.ping() is False


class TestBuildKVStore:
    def test_memory(self):
        assert isinstance(build_kv_store(Settings(_env_file=None, kv_backend="memory")), MemoryKVStore)

    def test_backend_case_insensitive(self):
        assert isinstance(build_kv_store(Settings(_env_file=None, kv_backend=" Memory ")), MemoryKVStore)

    def test_redis_requires_url(self):
        with pytest.raises(ConfigurationError, match="MCM_KV_URL"):
            build_kv_store(Settings(_env_file=None, kv_backend="redis", mcm_kv_url=None))

    def test_redis_with_url(self):
        store = build_kv_store(Settings(_env_file=None, kv_backend="redis", mcm_kv_url="redis://localhost:6379/0"))
        assert isinstance(store, RedisKVStore)

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError):
            build_kv_store(Settings(_env_file=None, kv_backend="dynamo"))
