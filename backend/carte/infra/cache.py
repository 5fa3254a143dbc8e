"""Local cache capability used as the offline shadow of the remote store.

Values are opaque text (JSON in practice), one record per logical key. The
backend is selected once at startup; the core never branches on platform.
"""

from __future__ import annotations

from typing import Dict, Optional, Protocol

from carte.infra.redis import redis_client
from carte.settings import settings


class LocalCache(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...


class RedisLocalCache:
    """Cache records stored as plain Redis strings under a namespace prefix."""

    def __init__(self, prefix: Optional[str] = None) -> None:
        self._prefix = prefix or settings.local_cache_prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def get(self, key: str) -> Optional[str]:
        return await redis_client.get(self._key(key))

    async def set(self, key: str, value: str) -> None:
        await redis_client.set(self._key(key), value)

    async def remove(self, key: str) -> None:
        await redis_client.delete(self._key(key))


class MemoryLocalCache:
    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)


def build_local_cache(backend: Optional[str] = None) -> LocalCache:
    kind = (backend or settings.local_cache_backend).lower()
    if kind == "redis":
        return RedisLocalCache()
    if kind == "memory":
        return MemoryLocalCache()
    raise ValueError(f"unknown local cache backend: {kind!r}")
