"""Pydantic models for DonorConnect payment data entities."""

from .donation import Donation, DonationReceipt, Notification
from .enums import (
    BillingInterval,
    DonationItemType,
    DonationStatus,
    PaymentCadence,
    PaymentSessionStatus,
    ProcessingResult,
    SubscriptionStatus,
    TargetType,
)
from .errors import (
    DonationError,
    ERROR_MESSAGES,
    ERROR_RECOVERY,
    ErrorCode,
    ErrorResponse,
    STRIPE_ERROR_MESSAGES,
    STRIPE_RETRYABLE_ERRORS,
    get_user_friendly_stripe_message,
    is_stripe_error_retryable,
)
from .payment_session import CheckoutRequest, CheckoutResult, PaymentSession
from .stripe_events import StripeEvent, UnrecognizedEvent, decode_event
from .subscription import Subscription
from .webhook_event import WebhookAck, WebhookEventLog

__all__ = [
    # Enums
    "BillingInterval",
    "DonationItemType",
    "DonationStatus",
    "PaymentCadence",
    "PaymentSessionStatus",
    "ProcessingResult",
    "SubscriptionStatus",
    "TargetType",
    # Payment sessions
    "CheckoutRequest",
    "CheckoutResult",
    "PaymentSession",
    # Subscriptions
    "Subscription",
    # Donations
    "Donation",
    "DonationReceipt",
    "Notification",
    # Errors
    "DonationError",
    "ErrorCode",
    "ErrorResponse",
    "ERROR_MESSAGES",
    "ERROR_RECOVERY",
    "STRIPE_ERROR_MESSAGES",
    "STRIPE_RETRYABLE_ERRORS",
    "get_user_friendly_stripe_message",
    "is_stripe_error_retryable",
    # Stripe
    "StripeEvent",
    "UnrecognizedEvent",
    "WebhookAck",
    "WebhookEventLog",
    "decode_event",
]
