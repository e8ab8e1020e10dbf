"""
Dispatch lock.

Serializes "pick a claim and dial it" across every trigger (worker sweep,
cron endpoint, webhook, manual start). With Redis configured the lock is
shared across processes; otherwise it only covers this process.

Holders get a ``DispatchLease``. A Redis lease expires after its TTL, so
the dialer calls ``refresh()`` before each slow provider step: it pushes
the expiry out again and reports False once someone else owns the key.
"""

from __future__ import annotations

import asyncio
import uuid
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import AsyncIterator, Optional, Protocol

import redis.asyncio as aioredis

from claimchaser.logging_config import get_logger

logger = get_logger(__name__)

DISPATCH_LOCK_KEY = "claimchaser:dispatch:lock"

# Delete the key only if we still own it
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

# Reset the expiry only if we still own the key
_REFRESH_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("expire", KEYS[1], ARGV[2])
else
    return 0
end
"""


class DispatchLease:
    """Handle returned by ``DispatchLock.hold``."""

    def __init__(self, acquired: bool) -> None:
        self.acquired = acquired

    async def refresh(self) -> bool:
        return self.acquired


class RedisDispatchLease(DispatchLease):
    def __init__(
        self,
        redis: Optional[aioredis.Redis] = None,
        key: str = DISPATCH_LOCK_KEY,
        token: str = "",
        ttl_seconds: int = 0,
    ) -> None:
        super().__init__(acquired=bool(token))
        self._redis = redis
        self._key = key
        self._token = token
        self._ttl = ttl_seconds

    async def refresh(self) -> bool:
        if not self.acquired or self._redis is None:
            return False
        owned = bool(await self._redis.eval(_REFRESH_SCRIPT, 1, self._key, self._token, self._ttl))
        if not owned:
            self.acquired = False
            logger.warning("dispatch_lock_lost", key=self._key)
        return owned


class DispatchLock(Protocol):
    def hold(self) -> AbstractAsyncContextManager[DispatchLease]: ...

    async def close(self) -> None: ...


class RedisDispatchLock:
    """``SET NX EX`` lock with token-checked refresh and release."""

    def __init__(self, redis: aioredis.Redis, ttl_seconds: int = 150, key: str = DISPATCH_LOCK_KEY):
        self._redis = redis
        self._ttl = ttl_seconds
        self._key = key

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int = 150) -> "RedisDispatchLock":
        return cls(aioredis.from_url(url, decode_responses=True), ttl_seconds)

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[DispatchLease]:
        """Yield an acquired lease, or an unacquired one if someone else holds the lock."""
        token = uuid.uuid4().hex
        if not await self._redis.set(self._key, token, nx=True, ex=self._ttl):
            logger.info("dispatch_lock_busy", key=self._key)
            yield RedisDispatchLease()
            return

        try:
            yield RedisDispatchLease(self._redis, self._key, token, self._ttl)
        finally:
            try:
                await self._redis.eval(_RELEASE_SCRIPT, 1, self._key, token)
            except aioredis.RedisError as e:
                # Key expires on its own after the TTL
                logger.warning("dispatch_lock_release_failed", key=self._key, error=str(e))

    async def close(self) -> None:
        await self._redis.aclose()


class LocalDispatchLock:
    """In-process fallback used when no Redis URL is configured."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[DispatchLease]:
        if self._lock.locked():
            logger.info("dispatch_lock_busy", key="local")
            yield DispatchLease(acquired=False)
            return

        async with self._lock:
            yield DispatchLease(acquired=True)

    async def close(self) -> None:
        return None


def create_dispatch_lock(redis_url: str, ttl_seconds: int = 150) -> DispatchLock:
    if redis_url:
        logger.info("dispatch_lock_configured", backend="redis", ttl_seconds=ttl_seconds)
        return RedisDispatchLock.from_url(redis_url, ttl_seconds)
    logger.info("dispatch_lock_configured", backend="local")
    return LocalDispatchLock()
