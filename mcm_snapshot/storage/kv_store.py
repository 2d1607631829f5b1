"""
MCM Snapshot - Durable Key-Value Store
Async get/put interface over Redis (deployed) or an in-process dict (local runs, tests).

The store binding is explicit configuration (settings.kv_backend + MCM_KV_URL);
a missing binding is a ConfigurationError, and a failing read/write raises
CacheUnavailableError rather than being skipped.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from mcm_snapshot.config import Settings
from mcm_snapshot.errors import CacheUnavailableError, ConfigurationError

log = logging.getLogger(__name__)


class KVStore(ABC):
    """Base interface for the durable key-value store"""

    @abstractmethod
    async def get_text(self, key: str) -> Optional[str]:
        """Raw stored string, or None when absent/expired"""

    @abstractmethod
    async def put(self, key: str, value: str, expiration_ttl: Optional[int] = None) -> None:
        """Store a string; expiration_ttl in seconds, None means no expiry"""

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass

    @abstractmethod
    async def ping(self) -> bool:
        pass

    async def close(self) -> None:
        pass

    async def get(self, key: str, type: str = "text") -> Any:
        """
        Read a key.

        Args:
            key: Store key
            type: "text" returns the raw string, "json" parses it

        Returns:
            Stored value or None when absent. Undecodable JSON reads as None.
        """
        raw = await self.get_text(key)
        if raw is None or type != "json":
            return raw
        try:
            return json.loads(raw)
        except ValueError:
            log.warning(f"⚠️ Undecodable JSON under {key}, treating as absent")
            return None


class RedisKVStore(KVStore):
    """Redis-backed store (redis.asyncio). Expiry maps to SET ... EX."""

    def __init__(self, url: str, max_connections: int = 20):
        self.url = url
        self.redis = aioredis.Redis.from_url(
            url,
            decode_responses=True,
            max_connections=max_connections,
            retry_on_timeout=True,
            socket_keepalive=True,
        )
        log.info("✅ Redis KV store configured")

    async def get_text(self, key: str) -> Optional[str]:
        try:
            return await self.redis.get(key)
        except RedisError as e:
            log.error(f"Redis GET error for key {key}: {e}")
            raise CacheUnavailableError(f"KV read failed for {key}: {e}") from e

    async def put(self, key: str, value: str, expiration_ttl: Optional[int] = None) -> None:
        try:
            if expiration_ttl:
                await self.redis.set(key, value, ex=int(expiration_ttl))
            else:
                await self.redis.set(key, value)
        except RedisError as e:
            log.error(f"Redis SET error for key {key}: {e}")
            raise CacheUnavailableError(f"KV write failed for {key}: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self.redis.delete(key)
        except RedisError as e:
            log.error(f"Redis DELETE error for key {key}: {e}")
            raise CacheUnavailableError(f"KV delete failed for {key}: {e}") from e

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except RedisError as e:
            log.warning(f"Redis PING failed: {e}")
            return False

    async def close(self) -> None:
        await self.redis.aclose()


class MemoryKVStore(KVStore):
    """In-process store with per-key expiry. Single process only; nothing survives a restart."""

    def __init__(self, clock=time.monotonic):
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._clock = clock

    async def get_text(self, key: str) -> Optional[str]:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def put(self, key: str, value: str, expiration_ttl: Optional[int] = None) -> None:
        now = self._clock()
        self._evict_expired(now)
        expires_at = now + expiration_ttl if expiration_ttl else None
        self._data[key] = (value, expires_at)

    def _evict_expired(self, now: float) -> None:
        """Drop every expired entry; bucketed snapshot keys are never read again once stale"""
        expired = [k for k, (_, exp) in self._data.items() if exp is not None and exp <= now]
        for k in expired:
            del self._data[k]

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def ping(self) -> bool:
        return True

    def ttl(self, key: str) -> Optional[float]:
        """Seconds left before key expires (None: no expiry or absent)"""
        item = self._data.get(key)
        if item is None or item[1] is None:
            return None
        return item[1] - self._clock()

    def keys(self):
        return list(self._data.keys())


def build_kv_store(settings: Settings) -> KVStore:
    """
    Resolve the durable store binding from settings.

    Raises:
        ConfigurationError: backend unknown, or redis selected without MCM_KV_URL
    """
    backend = settings.kv_backend
    if backend == "memory":
        log.info("💾 Using in-memory KV store (single process, not durable)")
        return MemoryKVStore()
    if backend == "redis":
        if not settings.mcm_kv_url:
            raise ConfigurationError("Missing KV binding (expected env.MCM_KV_URL)")
        return RedisKVStore(settings.mcm_kv_url)
    raise ConfigurationError(f"Unknown KV backend: {backend!r} (expected 'redis' or 'memory')")
