"""Models used by the invoice queue and worker."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field


class InvoiceJob(BaseModel):
    """A request to render and mail the invoice of one order."""

    order_id: str = Field(..., min_length=1)
    attempt: int = Field(
        default=1,
        ge=1,
        description="1-based delivery attempt, incremented on every scheduled retry",
    )
    trace_id: str | None = Field(
        default=None,
        description="Optional trace identifier propagated from the checkout request",
    )
    enqueued_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def next_attempt(self) -> InvoiceJob:
        return self.model_copy(update={"attempt": self.attempt + 1})
