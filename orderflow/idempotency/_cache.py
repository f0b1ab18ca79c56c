"""
Shared cache — typed protocol plus Redis and in-memory backends.

Every method returns Result for explicit error handling.
set_if_absent MUST be a single atomic primitive on the backend.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from kungfu import Result, Ok, Error
from redis.asyncio import Redis
from redis.exceptions import RedisError, TimeoutError as RedisTimeoutError, WatchError

from orderflow.idempotency._types import CacheError, CacheErrorKind


# ═══════════════════════════════════════════════════════════════════════════════
# Cache Protocol
# ═══════════════════════════════════════════════════════════════════════════════


class Cache(Protocol):
    """
    Shared cache protocol.

    Note: Must be visible to every server instance.
    Почему: duplicate checkout taps may land on different processes.
    """

    async def get(self, key: str) -> Result[str | None, CacheError]:
        """Get value. Returns Ok(None) on miss."""
        ...

    async def set(
        self, key: str, value: str, ttl: timedelta | None
    ) -> Result[None, CacheError]:
        """Set value unconditionally."""
        ...

    async def set_if_absent(
        self, key: str, value: str, ttl: timedelta | None
    ) -> Result[bool, CacheError]:
        """
        Atomically set value if key is absent.

        Returns Ok(True) if set, Ok(False) if already exists.
        """
        ...

    async def delete(self, key: str) -> Result[bool, CacheError]:
        """Delete key. Returns Ok(True) if existed."""
        ...

    async def replace_if_equals(
        self, key: str, expected: str, value: str, ttl: timedelta | None
    ) -> Result[bool, CacheError]:
        """
        Atomically overwrite key only while it still holds `expected`.

        Returns Ok(False) if the key is gone or holds something else.
        """
        ...

    async def delete_if_equals(self, key: str, expected: str) -> Result[bool, CacheError]:
        """Atomically delete key only while it still holds `expected`."""
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Redis Cache — Production
# ═══════════════════════════════════════════════════════════════════════════════


def _redis_error(op: str, e: RedisError) -> CacheError:
    kind = (
        CacheErrorKind.TIMEOUT
        if isinstance(e, RedisTimeoutError)
        else CacheErrorKind.CONNECTION
    )
    return CacheError(kind, f"redis {op} failed: {e}", e)


class RedisCache:
    """
    Redis-backed cache.

    set_if_absent is `SET key value NX PX ttl` — one round trip, one command.

    Example:
        cache = RedisCache.from_url("redis://localhost:6379/0", timeout=2.0)
    """

    def __init__(self, client: Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, timeout: float = 2.0) -> RedisCache:
        client = Redis.from_url(
            url,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
            decode_responses=True,
        )
        return cls(client)

    async def get(self, key: str) -> Result[str | None, CacheError]:
        try:
            value = await self._client.get(key)
        except RedisError as e:
            return Error(_redis_error("get", e))
        if value is None:
            return Ok(None)
        return Ok(value.decode() if isinstance(value, bytes) else str(value))

    async def set(
        self, key: str, value: str, ttl: timedelta | None
    ) -> Result[None, CacheError]:
        try:
            await self._client.set(key, value, px=_millis(ttl))
        except RedisError as e:
            return Error(_redis_error("set", e))
        return Ok(None)

    async def set_if_absent(
        self, key: str, value: str, ttl: timedelta | None
    ) -> Result[bool, CacheError]:
        try:
            created = await self._client.set(key, value, px=_millis(ttl), nx=True)
        except RedisError as e:
            return Error(_redis_error("setnx", e))
        return Ok(bool(created))

    async def delete(self, key: str) -> Result[bool, CacheError]:
        try:
            removed = await self._client.delete(key)
        except RedisError as e:
            return Error(_redis_error("delete", e))
        return Ok(removed > 0)

    async def replace_if_equals(
        self, key: str, expected: str, value: str, ttl: timedelta | None
    ) -> Result[bool, CacheError]:
        return await self._swap_if_equals(key, expected, value, ttl, "replace")

    async def delete_if_equals(self, key: str, expected: str) -> Result[bool, CacheError]:
        return await self._swap_if_equals(key, expected, None, None, "delete")

    async def _swap_if_equals(
        self,
        key: str,
        expected: str,
        value: str | None,
        ttl: timedelta | None,
        op: str,
    ) -> Result[bool, CacheError]:
        """WATCH key → GET → MULTI/EXEC. A concurrent write aborts the EXEC."""
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                current = await pipe.get(key)
                if isinstance(current, bytes):
                    current = current.decode()
                if current != expected:
                    await pipe.unwatch()
                    return Ok(False)
                pipe.multi()
                if value is None:
                    pipe.delete(key)
                else:
                    pipe.set(key, value, px=_millis(ttl))
                await pipe.execute()
        except WatchError:
            return Ok(False)
        except RedisError as e:
            return Error(_redis_error(op, e))
        return Ok(True)

    async def close(self) -> None:
        await self._client.aclose()


def _millis(ttl: timedelta | None) -> int | None:
    if ttl is None:
        return None
    return max(1, int(ttl.total_seconds() * 1000))


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Cache — For Testing
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass
class _Entry:
    value: str
    expires_at: datetime | None

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and datetime.now() > self.expires_at


class MemoryCache:
    """
    In-memory cache.

    Note: Только для single-instance / тестов.
    Почему: asyncio.Lock covers one event loop, not a fleet.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is not None and entry.is_expired:
            del self._entries[key]
            return None
        return entry

    async def get(self, key: str) -> Result[str | None, CacheError]:
        async with self._lock:
            entry = self._live(key)
            return Ok(entry.value if entry is not None else None)

    async def set(
        self, key: str, value: str, ttl: timedelta | None
    ) -> Result[None, CacheError]:
        async with self._lock:
            self._entries[key] = _Entry(value, datetime.now() + ttl if ttl else None)
            return Ok(None)

    async def set_if_absent(
        self, key: str, value: str, ttl: timedelta | None
    ) -> Result[bool, CacheError]:
        async with self._lock:
            if self._live(key) is not None:
                return Ok(False)
            self._entries[key] = _Entry(value, datetime.now() + ttl if ttl else None)
            return Ok(True)

    async def delete(self, key: str) -> Result[bool, CacheError]:
        async with self._lock:
            if self._live(key) is None:
                return Ok(False)
            del self._entries[key]
            return Ok(True)

    async def replace_if_equals(
        self, key: str, expected: str, value: str, ttl: timedelta | None
    ) -> Result[bool, CacheError]:
        async with self._lock:
            entry = self._live(key)
            if entry is None or entry.value != expected:
                return Ok(False)
            self._entries[key] = _Entry(value, datetime.now() + ttl if ttl else None)
            return Ok(True)

    async def delete_if_equals(self, key: str, expected: str) -> Result[bool, CacheError]:
        async with self._lock:
            entry = self._live(key)
            if entry is None or entry.value != expected:
                return Ok(False)
            del self._entries[key]
            return Ok(True)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Cache",
    "RedisCache",
    "MemoryCache",
)
