"""Redis-backed helpers: connection manager and inbound dedup window."""

from src.cache.client import RedisManager
from src.cache.dedup import DedupStore, InMemoryDedupStore, RedisDedupStore

__all__ = [
    "DedupStore",
    "InMemoryDedupStore",
    "RedisDedupStore",
    "RedisManager",
]
