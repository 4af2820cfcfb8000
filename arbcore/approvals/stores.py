"""Backing stores for the approval cache."""

from __future__ import annotations

import json
import os
import time
from collections.abc import Callable

import redis.asyncio as redis

from arbcore.core.logging import get_logger
from arbcore.models.approval import CachedApproval

log = get_logger(__name__)

KEY_PREFIX = "arbcore:"


class MemoryApprovalStore:
    """Process-local store. Every mutation is a single synchronous step."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[CachedApproval, float]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> CachedApproval | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        approval, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return approval

    async def set(self, key: str, approval: CachedApproval, ttl: int) -> None:
        self._entries[key] = (approval, self._clock() + ttl)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def delete_prefix(self, prefix: str) -> int:
        doomed = [k for k in self._entries if k.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)


class RedisApprovalStore:
    """Async Redis store with JSON serialization and key prefixing.

    Reads URL from REDIS_URL env var when none is given.
    """

    def __init__(
        self,
        url: str | None = None,
        prefix: str = KEY_PREFIX,
        socket_timeout: float = 5.0,
        socket_connect_timeout: float = 5.0,
        retry_on_timeout: bool = True,
        health_check_interval: int = 30,
    ) -> None:
        self._url = url or os.environ.get("REDIS_URL", "redis://localhost:6379/0")
        self._prefix = prefix
        self._socket_timeout = socket_timeout
        self._socket_connect_timeout = socket_connect_timeout
        self._retry_on_timeout = retry_on_timeout
        self._health_check_interval = health_check_interval
        self._redis: redis.Redis | None = None

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def _get_redis(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(  # type: ignore[no-untyped-call]
                self._url,
                decode_responses=True,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_connect_timeout,
                retry_on_timeout=self._retry_on_timeout,
                health_check_interval=self._health_check_interval,
            )
        return self._redis

    async def ping(self) -> bool:
        """Check Redis connectivity. Returns True if healthy."""
        try:
            r = await self._get_redis()
            return bool(await r.ping())
        except Exception:
            return False

    async def get(self, key: str) -> CachedApproval | None:
        r = await self._get_redis()
        raw = await r.get(self._key(key))
        if raw is None:
            return None
        try:
            return CachedApproval.model_validate(json.loads(raw))
        except ValueError:
            log.warning("approval_store.corrupt_entry", key=key)
            await r.delete(self._key(key))
            return None

    async def set(self, key: str, approval: CachedApproval, ttl: int) -> None:
        r = await self._get_redis()
        await r.set(self._key(key), approval.model_dump_json(), ex=ttl)

    async def delete(self, key: str) -> None:
        r = await self._get_redis()
        await r.delete(self._key(key))

    async def delete_prefix(self, prefix: str) -> int:
        r = await self._get_redis()
        keys = [k async for k in r.scan_iter(match=f"{self._key(prefix)}*")]
        if not keys:
            return 0
        return int(await r.delete(*keys))

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
