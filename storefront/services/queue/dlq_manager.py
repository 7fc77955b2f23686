"""Dead letter stream for invoice jobs that will not succeed by retrying."""

from __future__ import annotations

import logging

from storefront.config import settings
from storefront.services.queue.redis_stream import RedisStreamService

logger = logging.getLogger(__name__)


class DLQManager:
    """Records failed jobs together with the reason they were given up on."""

    def __init__(self, redis_service: RedisStreamService, dlq_stream: str | None = None):
        self.redis_service = redis_service
        self.dlq_stream = dlq_stream or settings.INVOICE_DLQ_STREAM_KEY

    async def send_to_dlq(
        self,
        entry_id: str,
        payload: str,
        error: Exception,
        original_stream: str | None = None,
        attempts: int | None = None,
    ) -> None:
        """Write the job to the dead letter stream; failures here are only logged."""
        record = {
            "payload": payload,
            "error": str(error),
            "error_type": type(error).__name__,
            "entry_id": entry_id,
            "original_stream": original_stream or self.redis_service.stream_key,
        }
        if attempts is not None:
            record["attempts"] = str(attempts)

        try:
            await self.redis_service.publish(record, stream_key=self.dlq_stream)
        except Exception as dlq_error:
            logger.error(
                "Could not dead-letter entry %s: %s",
                entry_id,
                dlq_error,
                extra={"original_error": str(error)},
                exc_info=True,
            )
            return
        logger.warning(
            "Invoice job dead-lettered",
            extra={
                "entry_id": entry_id,
                "dlq_stream": self.dlq_stream,
                "error_type": record["error_type"],
                "attempts": attempts,
            },
        )


def create_dlq_manager(redis_service: RedisStreamService) -> DLQManager:
    return DLQManager(redis_service)
