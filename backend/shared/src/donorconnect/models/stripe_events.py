"""Typed Stripe webhook events.

Stripe delivers a loosely typed JSON envelope. decode_event() turns it into
one of a closed set of variants keyed by the event type; any type not in the
registry becomes UnrecognizedEvent, which the reconciler acknowledges
without touching state.
"""

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field


def _ref_id(value: Any) -> str | None:
    """Return the ID of a Stripe reference that may be a string or expanded object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        return value.get("id")
    return None


def _str_metadata(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items() if v is not None}


class StripeEvent(BaseModel):
    """Fields shared by every Stripe event."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    event_type: ClassVar[str] = ""

    event_id: str
    type: str
    created: int | None = None
    livemode: bool = False

    @classmethod
    def _envelope(cls, event: dict[str, Any]) -> dict[str, Any]:
        return {
            "event_id": event.get("id", ""),
            "type": event.get("type", ""),
            "created": event.get("created"),
            "livemode": bool(event.get("livemode", False)),
        }

    @classmethod
    def from_event(cls, event: dict[str, Any]) -> "StripeEvent":
        return cls(**cls._envelope(event))


class CheckoutSessionEvent(StripeEvent):
    """An event whose data object is a Checkout Session."""

    session_id: str
    mode: str = "payment"
    payment_status: str | None = None
    payment_intent_id: str | None = None
    customer_id: str | None = None
    subscription_id: str | None = None
    amount_total: int | None = None
    currency: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def is_subscription(self) -> bool:
        return self.mode == "subscription"

    @property
    def is_paid(self) -> bool:
        return self.payment_status in ("paid", "no_payment_required")

    @classmethod
    def from_event(cls, event: dict[str, Any]) -> "CheckoutSessionEvent":
        session = event.get("data", {}).get("object", {})
        return cls(
            **cls._envelope(event),
            session_id=session.get("id", ""),
            mode=session.get("mode") or "payment",
            payment_status=session.get("payment_status"),
            payment_intent_id=_ref_id(session.get("payment_intent")),
            customer_id=_ref_id(session.get("customer")),
            subscription_id=_ref_id(session.get("subscription")),
            amount_total=session.get("amount_total"),
            currency=session.get("currency"),
            metadata=_str_metadata(session.get("metadata")),
        )


class CheckoutSessionCompleted(CheckoutSessionEvent):
    event_type: ClassVar[str] = "checkout.session.completed"


class CheckoutSessionAsyncPaymentSucceeded(CheckoutSessionEvent):
    event_type: ClassVar[str] = "checkout.session.async_payment_succeeded"


class CheckoutSessionAsyncPaymentFailed(CheckoutSessionEvent):
    event_type: ClassVar[str] = "checkout.session.async_payment_failed"


class CheckoutSessionExpired(CheckoutSessionEvent):
    event_type: ClassVar[str] = "checkout.session.expired"


class PaymentIntentFailed(StripeEvent):
    event_type: ClassVar[str] = "payment_intent.payment_failed"

    payment_intent_id: str
    failure_message: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_event(cls, event: dict[str, Any]) -> "PaymentIntentFailed":
        intent = event.get("data", {}).get("object", {})
        last_error = intent.get("last_payment_error") or {}
        return cls(
            **cls._envelope(event),
            payment_intent_id=intent.get("id", ""),
            failure_message=last_error.get("message"),
            metadata=_str_metadata(intent.get("metadata")),
        )


class SubscriptionEvent(StripeEvent):
    """An event whose data object is a Subscription."""

    subscription_id: str
    customer_id: str | None = None
    status: str | None = None
    cancel_at_period_end: bool = False
    current_period_start: int | None = None
    current_period_end: int | None = None
    price_id: str | None = None
    unit_amount: int | None = None
    currency: str | None = None
    interval: str | None = None

    @classmethod
    def from_event(cls, event: dict[str, Any]) -> "SubscriptionEvent":
        subscription = event.get("data", {}).get("object", {})
        items = (subscription.get("items") or {}).get("data") or [{}]
        first_item = items[0]
        price = first_item.get("price") or {}
        recurring = price.get("recurring") or {}

        # Newer API versions moved the billing period onto subscription items
        period_start = subscription.get("current_period_start", first_item.get("current_period_start"))
        period_end = subscription.get("current_period_end", first_item.get("current_period_end"))

        return cls(
            **cls._envelope(event),
            subscription_id=subscription.get("id", ""),
            customer_id=_ref_id(subscription.get("customer")),
            status=subscription.get("status"),
            cancel_at_period_end=bool(subscription.get("cancel_at_period_end", False)),
            current_period_start=period_start,
            current_period_end=period_end,
            price_id=price.get("id"),
            unit_amount=price.get("unit_amount"),
            currency=price.get("currency"),
            interval=recurring.get("interval"),
        )


class SubscriptionCreated(SubscriptionEvent):
    event_type: ClassVar[str] = "customer.subscription.created"


class SubscriptionUpdated(SubscriptionEvent):
    event_type: ClassVar[str] = "customer.subscription.updated"


class SubscriptionDeleted(SubscriptionEvent):
    event_type: ClassVar[str] = "customer.subscription.deleted"


class InvoicePaymentSucceeded(StripeEvent):
    event_type: ClassVar[str] = "invoice.payment_succeeded"

    invoice_id: str
    subscription_id: str | None = None
    customer_id: str | None = None
    payment_intent_id: str | None = None
    billing_reason: str | None = None
    amount_paid: int = 0
    currency: str | None = None

    @property
    def is_initial_invoice(self) -> bool:
        return self.billing_reason == "subscription_create"

    @classmethod
    def from_event(cls, event: dict[str, Any]) -> "InvoicePaymentSucceeded":
        invoice = event.get("data", {}).get("object", {})
        subscription_ref = invoice.get("subscription")
        if subscription_ref is None:
            details = (invoice.get("parent") or {}).get("subscription_details") or {}
            subscription_ref = details.get("subscription")
        return cls(
            **cls._envelope(event),
            invoice_id=invoice.get("id", ""),
            subscription_id=_ref_id(subscription_ref),
            customer_id=_ref_id(invoice.get("customer")),
            payment_intent_id=_ref_id(invoice.get("payment_intent")),
            billing_reason=invoice.get("billing_reason"),
            amount_paid=int(invoice.get("amount_paid") or 0),
            currency=invoice.get("currency"),
        )


class UnrecognizedEvent(StripeEvent):
    """Any event type the reconciler does not act on."""


EVENT_TYPES: dict[str, type[StripeEvent]] = {
    cls.event_type: cls
    for cls in (
        CheckoutSessionCompleted,
        CheckoutSessionAsyncPaymentSucceeded,
        CheckoutSessionAsyncPaymentFailed,
        CheckoutSessionExpired,
        PaymentIntentFailed,
        SubscriptionCreated,
        SubscriptionUpdated,
        SubscriptionDeleted,
        InvoicePaymentSucceeded,
    )
}


def decode_event(event: dict[str, Any]) -> StripeEvent:
    """Decode a verified Stripe event envelope into its typed variant.

    Args:
        event: Parsed JSON event (id, type, data.object, ...)

    Returns:
        The matching StripeEvent subclass, or UnrecognizedEvent.
    """
    event_cls = EVENT_TYPES.get(event.get("type", ""), UnrecognizedEvent)
    return event_cls.from_event(event)
