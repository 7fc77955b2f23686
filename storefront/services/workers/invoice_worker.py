"""Stream consumer that renders and mails order invoices."""

from __future__ import annotations

import asyncio
import logging
import signal
import time
from collections.abc import Callable

from pydantic import ValidationError

from storefront.config import settings
from storefront.errors import OrderNotFoundError
from storefront.models.invoice import InvoiceJob
from storefront.models.order import OrderStatus
from storefront.services.mail.invoice import render_invoice
from storefront.services.mail.mailer import Mailer, create_mailer
from storefront.services.orders.order_store import OrderStore
from storefront.services.queue.dlq_manager import DLQManager, create_dlq_manager
from storefront.services.queue.redis_stream import (
    RedisStreamService,
    StreamBatch,
    create_redis_stream_service,
)
from storefront.services.storage.mongo import ORDERS, create_mongo_client, get_database
from storefront.services.workers.base import BaseWorker

logger = logging.getLogger(__name__)


class MissingRecipientError(Exception):
    """Raised when an order has no e-mail address to send the invoice to."""


PERMANENT_ERRORS = (OrderNotFoundError, MissingRecipientError, ValidationError)


class InvoiceWorker(BaseWorker):
    """Consumes invoice jobs, retries failures with exponential backoff.

    Failed jobs are parked in a sorted set scored by their due time and pushed
    back onto the stream once due. Jobs that exhaust their attempts, or fail
    in a way a retry cannot fix, go to the dead letter stream.
    """

    def __init__(
        self,
        *,
        redis_service: RedisStreamService,
        dlq_manager: DLQManager,
        orders: OrderStore,
        mailer: Mailer,
        consumer_name: str | None = None,
        max_attempts: int | None = None,
        backoff_base_ms: int | None = None,
        retry_key: str | None = None,
        claim_idle_ms: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(consumer_name)
        self.redis_service = redis_service
        self.dlq_manager = dlq_manager
        self.orders = orders
        self.mailer = mailer
        self.max_attempts = max_attempts or settings.INVOICE_MAX_ATTEMPTS
        self.backoff_base_ms = backoff_base_ms or settings.INVOICE_BACKOFF_BASE_MS
        self.retry_key = retry_key or settings.INVOICE_RETRY_KEY
        self.claim_idle_ms = claim_idle_ms or settings.INVOICE_CLAIM_IDLE_MS
        self.batch_size = settings.BATCH_MAX_MESSAGES
        self.block_ms = settings.BATCH_MAX_WAIT_MS
        self._clock = clock

    async def run_forever(self) -> None:
        """Main worker loop."""
        await self.redis_service.ensure_consumer_group()

        logger.info(
            "Invoice worker started",
            extra={
                "stream": self.redis_service.stream_key,
                "group": self.redis_service.group_name,
                "consumer": self.consumer_name,
            },
        )
        await self._recover_stale()

        try:
            while not self.is_shutdown_requested():
                try:
                    await self.redis_service.promote_due(self.retry_key, self._clock())
                    entries = await self.redis_service.read_batch(
                        consumer_name=self.consumer_name,
                        count=self.batch_size,
                        block_ms=self.block_ms,
                    )
                except Exception as exc:
                    logger.error(
                        "Failed to read from Redis stream: %s", exc, exc_info=True
                    )
                    await self.pause(1)
                    continue

                if not entries:
                    continue

                await self._process_entries(entries)
        except asyncio.CancelledError:
            logger.info("Invoice worker %s cancelled", self.consumer_name)
            raise

    async def _process_entries(self, entries: StreamBatch) -> None:
        """Process a batch of stream entries."""
        ack_ids: list[str] = []

        for _stream, messages in entries:
            for message_id, data in messages:
                payload = data.get("payload")
                if payload is None:
                    logger.warning("Missing payload for entry %s", message_id)
                    ack_ids.append(message_id)
                    continue

                job: InvoiceJob | None = None
                try:
                    job = InvoiceJob.model_validate_json(payload)
                    await self._handle_job(job)
                except Exception as exc:
                    logger.exception("Failed to process invoice job %s", message_id)
                    await self._handle_failure(message_id, payload, job, exc)
                ack_ids.append(message_id)

        try:
            await self.redis_service.complete(ack_ids)
        except Exception as ack_exc:
            logger.error("Failed to ack/delete messages %s: %s", ack_ids, ack_exc)

    async def _recover_stale(self) -> None:
        """Process entries a crashed consumer read but never finished."""
        try:
            entries = await self.redis_service.claim_stale(
                self.consumer_name, self.claim_idle_ms, count=self.batch_size
            )
        except Exception as exc:
            logger.warning("Could not claim stale invoice jobs: %s", exc)
            return
        if entries:
            await self._process_entries(entries)

    async def _handle_job(self, job: InvoiceJob) -> None:
        """Render and mail the invoice for one order."""
        order = await self.orders.get(job.order_id)
        if order is None:
            raise OrderNotFoundError(job.order_id)
        if order.status is OrderStatus.CANCELLED:
            logger.info("Skipping invoice for cancelled order %s", order.id)
            return
        if not order.customer.email:
            raise MissingRecipientError(f"Order {order.id} has no customer e-mail")

        invoice = render_invoice(order, settings.STORE_NAME)
        await self.mailer.send(
            order.customer.email, invoice.subject, invoice.text, invoice.html
        )
        logger.info(
            "Invoice sent",
            extra={
                "order_id": order.id,
                "order_number": order.order_number,
                "attempt": job.attempt,
            },
        )

    async def _handle_failure(
        self,
        message_id: str,
        payload: str,
        job: InvoiceJob | None,
        error: Exception,
    ) -> None:
        retryable = job is not None and not isinstance(error, PERMANENT_ERRORS)
        if retryable and job.attempt < self.max_attempts:
            delay = self.backoff_seconds(job.attempt)
            try:
                await self.redis_service.schedule(
                    job.next_attempt().model_dump_json(),
                    self._clock() + delay,
                    self.retry_key,
                )
                logger.warning(
                    "Invoice job scheduled for retry",
                    extra={
                        "order_id": job.order_id,
                        "next_attempt": job.attempt + 1,
                        "delay_seconds": delay,
                    },
                )
                return
            except Exception as schedule_exc:
                logger.error(
                    "Failed to schedule retry for %s: %s", message_id, schedule_exc
                )

        await self.dlq_manager.send_to_dlq(
            message_id,
            payload,
            error,
            attempts=job.attempt if job is not None else None,
        )

    def backoff_seconds(self, attempt: int) -> float:
        """Delay before attempt ``attempt + 1``: base, 2x base, 4x base..."""
        return self.backoff_base_ms * (2 ** (attempt - 1)) / 1000


def create_invoice_worker() -> InvoiceWorker:
    """Factory function to create an invoice worker with all dependencies."""
    mailer = create_mailer()
    if mailer is None:
        raise RuntimeError(
            "Mail transport is not configured. Set SMTP_HOST and EMAIL_FROM.",
        )

    redis_service = create_redis_stream_service()
    dlq_manager = create_dlq_manager(redis_service)
    db = get_database(create_mongo_client())

    return InvoiceWorker(
        redis_service=redis_service,
        dlq_manager=dlq_manager,
        orders=OrderStore(db[ORDERS]),
        mailer=mailer,
    )


async def run_worker(concurrency: int | None = None) -> None:
    """Run one or more invoice workers until a termination signal arrives."""
    worker_count = concurrency or max(1, settings.WORKER_CONCURRENCY)
    workers = [create_invoice_worker() for _ in range(worker_count)]

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda: [w.shutdown() for w in workers])
        except NotImplementedError:
            logger.debug("Signal handlers not supported on this platform")

    tasks = [asyncio.create_task(worker.run_forever()) for worker in workers]
    await asyncio.gather(*tasks, return_exceptions=True)


def main() -> None:
    """CLI entry point."""
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        logger.info("Invoice worker interrupted, shutting down")


if __name__ == "__main__":
    main()
