"""
Expiring key-value cache backed by Redis.

Every operation here is a single round-trip to Redis. Callers rely on that
for their single-use guarantees, so nothing in this module may be rewritten
as a read followed by a separate write.
"""
import logging
from typing import List, Optional, Tuple

from redis.asyncio import Redis

from pollara.core.config import settings


logger = logging.getLogger(__name__)


# Deletes KEYS[1] only when it holds ARGV[1]; always returns the prior value.
_COMPARE_AND_DELETE = """
local current = redis.call('GET', KEYS[1])
if current and current == ARGV[1] then
    redis.call('DEL', KEYS[1])
end
return current
"""


def get_otp_key(purpose: str, identity: str) -> str:
    return f"otp:{purpose}:{identity}"


def get_otp_superseded_key(purpose: str, identity: str) -> str:
    return f"otp-superseded:{purpose}:{identity}"


def get_vote_token_key(token_hash: str) -> str:
    return f"vote-token:{token_hash}"


def get_face_reference_key(user_id: str) -> str:
    return f"face-reference:{user_id}"


class ExpiringCache:
    """Thin TTL store over an async Redis client."""

    def __init__(self, client: Redis):
        self.client = client
        self._compare_and_delete = client.register_script(_COMPARE_AND_DELETE)

    @classmethod
    def from_url(cls, url: str) -> "ExpiringCache":
        return cls(Redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        await self.client.set(key, value, ex=ttl_seconds)

    async def swap(self, key: str, value: str, ttl_seconds: int) -> Tuple[Optional[str], int]:
        """
        Replace the value under ``key`` in one transaction.

        Returns the previous value (None if absent) and the seconds it had left.
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.get(key)
            pipe.ttl(key)
            pipe.set(key, value, ex=ttl_seconds)
            previous, remaining, _ = await pipe.execute()
        return previous, max(remaining, 0)

    async def delete(self, key: str) -> bool:
        """Delete ``key``. Returns True only for the caller that removed it."""
        return bool(await self.client.delete(key))

    async def delete_if_equals(self, key: str, expected: str) -> Optional[str]:
        """
        Atomically delete ``key`` if it currently holds ``expected``.

        Returns the value the key held before the call (None if absent), so
        the caller can tell "missing" from "held something else".
        """
        return await self._compare_and_delete(keys=[key], args=[expected])

    async def push_bounded(self, key: str, value: str, ttl_seconds: int, limit: int) -> None:
        """Prepend ``value`` to the list at ``key``, keeping the newest ``limit`` entries."""
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.lpush(key, value)
            pipe.ltrim(key, 0, limit - 1)
            pipe.expire(key, ttl_seconds)
            await pipe.execute()

    async def members(self, key: str) -> List[str]:
        return await self.client.lrange(key, 0, -1)

    async def close(self) -> None:
        await self.client.aclose()


_cache: Optional[ExpiringCache] = None


def init_cache() -> ExpiringCache:
    """Create the process-wide cache client."""
    global _cache
    if _cache is None:
        _cache = ExpiringCache.from_url(settings.REDIS_URL)
        logger.info("Redis cache client initialised")
    return _cache


async def close_cache() -> None:
    global _cache
    if _cache is not None:
        await _cache.close()
        _cache = None


def get_cache() -> ExpiringCache:
    """FastAPI dependency returning the shared cache."""
    return init_cache()
