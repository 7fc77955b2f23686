"""Best-effort Redis cache used in front of catalog reads."""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections.abc import Callable
from typing import Any

import redis.asyncio as redis  # type: ignore[import]
from redis.exceptions import RedisError  # type: ignore[import]

from storefront.config import settings

logger = logging.getLogger(__name__)


def make_key_digest(params: dict[str, Any]) -> str:
    """Deterministic digest of query parameters, independent of key order."""
    raw = json.dumps(params, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


class CacheClient:
    """Namespaced JSON cache that degrades to misses when Redis is unavailable.

    The client never raises on backend failures. After a failure it stays
    offline for ``retry_interval`` seconds and then tries again lazily on the
    next call.

    Read-through keys carry the namespace generation. ``invalidate`` bumps the
    generation before deleting, so a value loaded before the bump is written
    under a key nobody reads any more. An invalidation that cannot reach Redis
    is remembered and replayed before the next read or write is served.
    """

    def __init__(
        self,
        *,
        url: str | None = None,
        client: redis.Redis | None = None,
        namespace: str | None = None,
        default_ttl: int | None = None,
        retry_interval: float | None = None,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._url = url or settings.REDIS_URL
        self._client = client
        self.namespace = namespace or settings.CACHE_NAMESPACE
        self.default_ttl = default_ttl or settings.CACHE_TTL_SECONDS
        self._retry_interval = (
            settings.CACHE_RETRY_INTERVAL_SECONDS
            if retry_interval is None
            else retry_interval
        )
        self.enabled = enabled
        self._clock = clock
        self._offline_until = 0.0
        self._flush_pending = False

    def key(self, scope: str, *parts: str) -> str:
        return ":".join((self.namespace, scope, *parts))

    @property
    def generation_key(self) -> str:
        return f"{self.namespace}:generation"

    @property
    def available(self) -> bool:
        return self.enabled and self._clock() >= self._offline_until

    async def connect(self) -> bool:
        """Create the client and check it answers. Returns False when offline."""
        if not self.enabled:
            logger.info("Catalog cache disabled by configuration")
            return False
        client = self._ensure_client()
        try:
            await client.ping()
        except (RedisError, OSError) as exc:
            self._mark_offline(exc)
            return False
        logger.info("Catalog cache connected", extra={"namespace": self.namespace})
        return True

    async def ping(self) -> bool:
        if not self.enabled:
            return False
        try:
            return bool(await self._ensure_client().ping())
        except (RedisError, OSError) as exc:
            logger.debug("Cache ping failed: %s", exc)
            return False

    async def close(self) -> None:
        if self._client is None:
            return
        try:
            await self._client.aclose()
        except (RedisError, OSError) as exc:
            logger.debug("Ignoring error while closing cache client: %s", exc)
        self._client = None

    async def versioned_key(self, scope: str, *parts: str) -> str | None:
        """Key bound to the current generation, or None when the cache is offline.

        Take the key before loading from the database and write the loaded
        value under that same key.
        """
        if not await self._ready():
            return None
        try:
            generation = await self._ensure_client().get(self.generation_key)
        except (RedisError, OSError) as exc:
            self._mark_offline(exc)
            return None
        return self.key(scope, f"g{generation or 0}", *parts)

    async def get(self, key: str) -> Any | None:
        """Return the cached value, or None on a miss or when Redis is down."""
        if not await self._ready():
            return None
        try:
            raw = await self._ensure_client().get(key)
        except (RedisError, OSError) as exc:
            self._mark_offline(exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Discarding undecodable cache entry %s", key)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        if value is None or not await self._ready():
            return False
        try:
            payload = json.dumps(value, default=str)
            await self._ensure_client().set(
                key, payload, ex=ttl_seconds or self.default_ttl
            )
        except (RedisError, OSError) as exc:
            self._mark_offline(exc)
            return False
        return True

    async def invalidate(self, scope: str | None = None) -> int:
        """Delete every key of the namespace, or of one scope inside it.

        Runs even while the client is backing off. If Redis cannot be reached
        a full flush stays pending until it can.
        """
        if not self.enabled:
            return 0
        try:
            removed = await self._delete_matching(scope)
        except (RedisError, OSError) as exc:
            self._flush_pending = True
            self._mark_offline(exc)
            logger.warning(
                "Cache invalidation deferred until Redis is reachable",
                extra={"namespace": self.namespace},
            )
            return 0
        if scope is None:
            self._flush_pending = False
        return removed

    async def _delete_matching(self, scope: str | None) -> int:
        client = self._ensure_client()
        if scope is None:
            await client.incr(self.generation_key)
        pattern = f"{self.key(scope)}:*" if scope else f"{self.namespace}:*"
        removed = 0
        batch: list[str] = []
        async for key in client.scan_iter(match=pattern, count=500):
            if key == self.generation_key:
                continue
            batch.append(key)
            if len(batch) >= 500:
                removed += await client.delete(*batch)
                batch = []
        if batch:
            removed += await client.delete(*batch)
        logger.debug("Invalidated %d cache keys matching %s", removed, pattern)
        return removed

    async def _ready(self) -> bool:
        if not self.available:
            return False
        if not self._flush_pending:
            return True
        try:
            await self._delete_matching(None)
        except (RedisError, OSError) as exc:
            self._mark_offline(exc)
            return False
        self._flush_pending = False
        logger.info("Replayed deferred cache invalidation", extra={"namespace": self.namespace})
        return True

    def _ensure_client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(
                self._url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=settings.CACHE_CONNECT_TIMEOUT_SECONDS,
                socket_timeout=settings.CACHE_CONNECT_TIMEOUT_SECONDS,
                health_check_interval=30,
            )
        return self._client

    def _mark_offline(self, exc: Exception) -> None:
        if self._offline_until <= self._clock():
            logger.warning(
                "Catalog cache unavailable, serving from the database: %s", exc
            )
        self._offline_until = self._clock() + self._retry_interval


def create_cache_client() -> CacheClient:
    """Factory function to create the catalog cache client."""
    return CacheClient(enabled=settings.CACHE_ENABLED)
