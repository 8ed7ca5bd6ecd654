"""Enumeration types for DonorConnect payment models."""

from enum import Enum


class TargetType(str, Enum):
    """Kind of organization receiving a donation."""

    NGO = "ngo"
    CAMPAIGN = "campaign"


class PaymentCadence(str, Enum):
    """Whether a donation is charged once or on a schedule."""

    ONE_TIME = "one_time"
    RECURRING = "recurring"


class DonationItemType(str, Enum):
    """What is being donated. Only money goes through Stripe checkout."""

    MONEY = "money"
    BOOKS = "books"
    CLOTHES = "clothes"
    FOOD = "food"
    MEDICAL_SUPPLIES = "medical_supplies"


class PaymentSessionStatus(str, Enum):
    """Lifecycle status of a payment session.

    pending -> completed | expired | failed. Terminal states never revert.
    """

    PENDING = "pending"
    COMPLETED = "completed"
    EXPIRED = "expired"
    FAILED = "failed"


class SubscriptionStatus(str, Enum):
    """Status of a recurring donation agreement."""

    ACTIVE = "active"
    CANCELLED = "cancelled"
    PAST_DUE = "past_due"
    PAUSED = "paused"


class BillingInterval(str, Enum):
    """Billing interval of a recurring donation."""

    MONTHLY = "monthly"
    YEARLY = "yearly"


class DonationStatus(str, Enum):
    """Status of a donation record."""

    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ProcessingResult(str, Enum):
    """Outcome of reconciling a single webhook event."""

    SUCCESS = "success"
    ALREADY_COMPLETED = "already_completed"
    SKIPPED = "skipped"
    IGNORED = "ignored"
    ERROR = "error"
