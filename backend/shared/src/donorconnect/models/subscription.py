"""Subscription model for recurring donations."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import BillingInterval, SubscriptionStatus, TargetType
from .payment_session import _parse_datetime


class Subscription(BaseModel):
    """A recurring donation agreement backed by a Stripe subscription.

    At most one row exists per Stripe subscription ID; the table is keyed on it.
    """

    model_config = ConfigDict(strict=True)

    stripe_subscription_id: str = Field(
        ...,
        description="Stripe Subscription ID (sub_xxx)",
        examples=["sub_1PqRsT2uVwXyZ"],
    )
    owner_id: str = Field(..., description="Donor user ID")
    target_type: TargetType
    target_id: str
    stripe_customer_id: str = Field(..., description="Stripe Customer ID (cus_xxx)")
    stripe_price_id: str = Field(..., description="Stripe Price ID (price_xxx)")
    amount: int = Field(..., gt=0, description="Amount per billing period, minor units")
    currency: str = Field(default="INR")
    interval: BillingInterval = Field(default=BillingInterval.MONTHLY)
    status: SubscriptionStatus = Field(default=SubscriptionStatus.ACTIVE)
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False
    created_at: datetime
    updated_at: datetime | None = None

    def to_item(self) -> dict[str, Any]:
        """Convert to a DynamoDB item."""
        item: dict[str, Any] = {
            "stripe_subscription_id": self.stripe_subscription_id,
            "owner_id": self.owner_id,
            "target_type": self.target_type.value,
            "target_id": self.target_id,
            "stripe_customer_id": self.stripe_customer_id,
            "stripe_price_id": self.stripe_price_id,
            "amount": self.amount,
            "currency": self.currency,
            "interval": self.interval.value,
            "status": self.status.value,
            "cancel_at_period_end": self.cancel_at_period_end,
            "created_at": self.created_at.isoformat(),
        }
        if self.current_period_start:
            item["current_period_start"] = self.current_period_start.isoformat()
        if self.current_period_end:
            item["current_period_end"] = self.current_period_end.isoformat()
        if self.updated_at:
            item["updated_at"] = self.updated_at.isoformat()
        return item

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "Subscription":
        """Build a Subscription from a DynamoDB item."""
        return cls(
            stripe_subscription_id=item["stripe_subscription_id"],
            owner_id=item["owner_id"],
            target_type=TargetType(item["target_type"]),
            target_id=item["target_id"],
            stripe_customer_id=item["stripe_customer_id"],
            stripe_price_id=item["stripe_price_id"],
            amount=int(item["amount"]),
            currency=item.get("currency", "INR"),
            interval=BillingInterval(item.get("interval", "monthly")),
            status=SubscriptionStatus(item.get("status", "active")),
            current_period_start=_parse_datetime(item.get("current_period_start")),
            current_period_end=_parse_datetime(item.get("current_period_end")),
            cancel_at_period_end=bool(item.get("cancel_at_period_end", False)),
            created_at=_parse_datetime(item["created_at"]),
            updated_at=_parse_datetime(item.get("updated_at")),
        )
