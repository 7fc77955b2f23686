"""Redis-backed queue for invoice email jobs."""

from __future__ import annotations

import logging

import redis.asyncio as redis

from storefront.config import settings
from storefront.models.invoice import InvoiceJob

logger = logging.getLogger(__name__)


def create_redis_client(
    url: str | None = None, socket_timeout: float | None = None
) -> redis.Redis:
    """Return a Redis client for stream operations.

    Blocking stream reads need ``socket_timeout`` left unset or longer than
    their block time.
    """

    return redis.from_url(
        url or settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=settings.REDIS_CONNECT_TIMEOUT_SECONDS,
        socket_timeout=socket_timeout,
        health_check_interval=30,
    )


class InvoiceQueue:
    """High-level queue facade used by the order pipeline."""

    def __init__(self, client: redis.Redis, stream_key: str | None = None) -> None:
        self._client = client
        self._stream_key = stream_key or settings.INVOICE_STREAM_KEY

    @property
    def stream_key(self) -> str:
        return self._stream_key

    async def enqueue(self, job: InvoiceJob) -> str:
        """Push the job onto the Redis stream and return its entry id."""

        entry_id = await self._client.xadd(
            name=self._stream_key,
            fields={"payload": job.model_dump_json()},
            id="*",
        )
        logger.info(
            "Queued invoice job",
            extra={"order_id": job.order_id, "attempt": job.attempt},
        )
        return entry_id
