"""Stripe webhook event log model for auditing and debugging."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .enums import ProcessingResult


class WebhookEventLog(BaseModel):
    """Log of a received Stripe webhook event.

    Used for:
    - Auditing: track all webhook deliveries, including redeliveries
    - Debugging: investigate payment issues from the raw payload

    Not used for idempotency; that is enforced on payment sessions,
    subscriptions and donations themselves.
    """

    model_config = ConfigDict(strict=True)

    event_id: str = Field(
        ...,
        description="Stripe event ID (evt_xxx)",
        examples=["evt_1ABC123DEF456"],
    )
    event_type: str = Field(
        ...,
        description="Stripe event type",
        examples=["checkout.session.completed", "invoice.payment_succeeded"],
    )
    received_at: datetime = Field(..., description="When the event first arrived")
    payload_hash: str = Field(
        ...,
        description="SHA-256 hash of the raw payload",
    )
    payload: str = Field(..., description="Raw payload as received")
    delivery_count: int = Field(default=1, ge=1)
    processing_result: str | None = Field(
        default=None,
        description="success, already_completed, skipped, ignored or error",
    )
    error_message: str | None = Field(default=None)


class WebhookAck(BaseModel):
    """Acknowledgement returned to Stripe once an event has been dispatched."""

    received: bool = True
    event_id: str | None = None
    event_type: str | None = None
    processing_result: ProcessingResult
    message: str | None = None
