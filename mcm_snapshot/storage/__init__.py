"""MCM Snapshot - Storage Package"""

from .baseline_repo import BaselineRepository
from .kv_store import KVStore, MemoryKVStore, RedisKVStore, build_kv_store

__all__ = ["BaselineRepository", "KVStore", "MemoryKVStore", "RedisKVStore", "build_kv_store"]
