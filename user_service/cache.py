"""Redis cache store for user lookups."""

import json
from typing import Any, Optional
from redis import asyncio as aioredis
from .config import settings
from .exceptions import CacheUnavailableError
from .logger import logger

# ==================== Cache Key Utilities ====================


def make_cache_key(prefix: str, identifier: Any) -> str:
    """Per-entity cache key: the prefix followed directly by the identifier.

    make_cache_key("user_", 42) -> "user_42"
    """
    return f"{prefix}{identifier}"

# ==================== Cache Manager ====================


class CacheManager:
    """Redis-backed key-value store with millisecond TTLs.

    Values are stored as JSON. With fail_open=False (default) Redis errors
    propagate and calls on a disconnected manager raise
    CacheUnavailableError; with fail_open=True errors are logged, get()
    reports a miss and set()/delete() return False.
    """

    def __init__(self, url: str = settings.REDIS_URL, fail_open: bool = settings.CACHE_FAIL_OPEN):
        self.url = url
        self.fail_open = fail_open
        self._redis: Optional[aioredis.Redis] = None

    @property
    def is_connected(self) -> bool:
        return self._redis is not None

    async def connect(self):
        """Create the client and verify it with PING; stays disconnected on failure."""
        if self._redis is not None:
            return
        client = aioredis.from_url(
            self.url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
        )
        try:
            await client.ping()
        except Exception as e:
            logger.error(f"[cache] Failed to connect to Redis at {self.url}: {e}")
            await client.aclose()
            return
        self._redis = client
        logger.info("[cache] Connected to Redis")

    async def disconnect(self):
        """Close the connection pool at shutdown."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("[cache] Disconnected from Redis")

    def _client(self, operation: str, key: str) -> Optional[aioredis.Redis]:
        if self._redis is None and not self.fail_open:
            raise CacheUnavailableError(operation, key)
        return self._redis

    def _handle_error(self, operation: str, key: str, error: Exception) -> None:
        logger.error(f"[cache] Error on {operation} {key}: {error}")
        if not self.fail_open:
            raise error

    async def get(self, key: str) -> Any | None:
        """Decoded value for key, or None on a miss."""
        client = self._client("get", key)
        if client is None:
            return None

        try:
            raw = await client.get(key)
        except Exception as e:
            self._handle_error("get", key, e)
            return None

        if raw is None:
            logger.debug(f"[cache] MISS: {key}")
            return None
        logger.debug(f"[cache] HIT: {key}")
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl_ms: int) -> bool:
        """Store value as JSON with a TTL in milliseconds (PSETEX)."""
        client = self._client("set", key)
        if client is None:
            return False

        try:
            await client.psetex(key, ttl_ms, json.dumps(value, default=str))
        except Exception as e:
            self._handle_error("set", key, e)
            return False
        logger.debug(f"[cache] SET: {key} (TTL={ttl_ms}ms)")
        return True

    async def delete(self, key: str) -> bool:
        """Remove key; deleting a missing key is not an error."""
        client = self._client("delete", key)
        if client is None:
            return False

        try:
            await client.delete(key)
        except Exception as e:
            self._handle_error("delete", key, e)
            return False
        logger.debug(f"[cache] DELETE: {key}")
        return True

    async def health_check(self) -> bool:
        """True if Redis answers PING."""
        if not self._redis:
            return False

        try:
            await self._redis.ping()
            return True
        except Exception:
            return False

# ==================== Global Instance ====================

cache_manager = CacheManager()
