"""Redis stream plus delayed-retry set backing the invoice job queue."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import redis.asyncio as redis  # type: ignore[import]
from redis.exceptions import ResponseError  # type: ignore[import]

from storefront.config import settings
from storefront.services.queue.invoice_queue import create_redis_client

logger = logging.getLogger(__name__)

StreamBatch = list[tuple[str, Sequence[tuple[str, dict[str, str]]]]]


class RedisStreamService:
    """Consumer-group access to one job stream and its retry schedule."""

    def __init__(self, client: redis.Redis, stream_key: str, group_name: str):
        self.client = client
        self.stream_key = stream_key
        self.group_name = group_name

    async def ensure_consumer_group(self) -> None:
        try:
            await self.client.xgroup_create(
                name=self.stream_key,
                groupname=self.group_name,
                id="0",
                mkstream=True,
            )
        except ResponseError as exc:
            if "BUSYGROUP" not in str(exc):
                logger.error("Failed to create consumer group: %s", exc, exc_info=True)
                raise
            return
        logger.info(
            "Created consumer group %s on %s", self.group_name, self.stream_key
        )

    async def read_batch(
        self,
        consumer_name: str,
        count: int = 10,
        block_ms: int = 5000,
    ) -> StreamBatch:
        """Read entries never delivered to this group.

        The group is recreated once if it disappeared, e.g. after the stream
        key was deleted by hand.
        """
        for recreated in (False, True):
            try:
                return await self.client.xreadgroup(
                    groupname=self.group_name,
                    consumername=consumer_name,
                    streams={self.stream_key: ">"},
                    count=count,
                    block=block_ms,
                )
            except ResponseError as exc:
                if recreated or "NOGROUP" not in str(exc):
                    raise
                logger.warning("Consumer group %s vanished, recreating", self.group_name)
                await self.ensure_consumer_group()
        return []

    async def claim_stale(
        self, consumer_name: str, min_idle_ms: int, count: int = 10
    ) -> StreamBatch:
        """Take over entries another consumer read but never acknowledged."""
        result = await self.client.xautoclaim(
            self.stream_key,
            self.group_name,
            consumer_name,
            min_idle_time=min_idle_ms,
            start_id="0-0",
            count=count,
        )
        # entries deleted while pending come back without fields
        messages = [(entry_id, fields) for entry_id, fields in result[1] if fields]
        if messages:
            logger.info(
                "Claimed %d stale entries from %s", len(messages), self.stream_key
            )
            return [(self.stream_key, messages)]
        return []

    async def complete(self, message_ids: list[str]) -> None:
        """Acknowledge and drop finished entries in one round trip."""
        if not message_ids:
            return
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.xack(self.stream_key, self.group_name, *message_ids)
            pipe.xdel(self.stream_key, *message_ids)
            await pipe.execute()

    async def publish(self, fields: dict[str, str], stream_key: str | None = None) -> str:
        return await self.client.xadd(stream_key or self.stream_key, fields)

    async def schedule(self, member: str, due_at: float, key: str) -> None:
        """Park a message in a sorted set until ``due_at`` (epoch seconds)."""
        await self.client.zadd(key, {member: due_at})

    async def promote_due(self, key: str, now: float, limit: int = 100) -> int:
        """Move parked messages whose time has come back onto the stream.

        ZREM decides ownership, so with several workers each message is
        promoted exactly once.
        """
        members = await self.client.zrangebyscore(key, 0, now, start=0, num=limit)
        promoted = 0
        for member in members:
            if await self.client.zrem(key, member):
                await self.publish({"payload": member})
                promoted += 1
        return promoted


def create_redis_stream_service(
    stream_key: str | None = None,
    group_name: str | None = None,
) -> RedisStreamService:
    """Factory function to create the invoice stream service."""
    return RedisStreamService(
        create_redis_client(),
        stream_key or settings.INVOICE_STREAM_KEY,
        group_name or settings.INVOICE_CONSUMER_GROUP,
    )
