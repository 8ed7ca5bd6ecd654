"""Payment session model: one attempt to collect a donation via Stripe Checkout."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import DonationItemType, PaymentCadence, PaymentSessionStatus, TargetType


def _parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO timestamp stored in DynamoDB."""
    if not value:
        return None
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


class PaymentSession(BaseModel):
    """A payment attempt, keyed by its Stripe checkout session ID.

    Amounts are integers in minor currency units (paise for INR).
    Rows are never deleted; they form the audit trail of payment attempts.
    """

    model_config = ConfigDict(strict=True)

    payment_session_id: str = Field(
        ...,
        description="Internal payment session ID",
        examples=["PS-3F2A9C01B7D4"],
    )
    owner_id: str = Field(..., description="User who initiated the donation")
    target_type: TargetType = Field(..., description="Kind of donation target")
    target_id: str = Field(..., description="NGO or campaign ID")
    target_name: str | None = Field(default=None, description="Display name of the target")
    stripe_session_id: str = Field(
        ...,
        description="Stripe Checkout Session ID (cs_xxx)",
        examples=["cs_test_a1B2c3D4"],
    )
    amount: int = Field(..., gt=0, description="Amount in minor currency units")
    currency: str = Field(default="INR", description="ISO currency code")
    cadence: PaymentCadence = Field(..., description="one_time or recurring")
    item_type: DonationItemType = Field(
        default=DonationItemType.MONEY, description="Donated item kind"
    )
    status: PaymentSessionStatus = Field(..., description="Lifecycle status")
    stripe_payment_intent_id: str | None = Field(
        default=None,
        description="Stripe PaymentIntent ID (pi_xxx), set on completion",
    )
    stripe_customer_id: str | None = Field(
        default=None, description="Stripe Customer ID (cus_xxx)"
    )
    stripe_subscription_id: str | None = Field(
        default=None, description="Stripe Subscription ID (sub_xxx) for recurring sessions"
    )
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime | None = Field(default=None, description="Last update timestamp")
    completed_at: datetime | None = Field(default=None, description="Completion timestamp")

    def to_item(self) -> dict[str, Any]:
        """Convert to a DynamoDB item, omitting unset optional fields."""
        item: dict[str, Any] = {
            "stripe_session_id": self.stripe_session_id,
            "payment_session_id": self.payment_session_id,
            "owner_id": self.owner_id,
            "target_type": self.target_type.value,
            "target_id": self.target_id,
            "amount": self.amount,
            "currency": self.currency,
            "cadence": self.cadence.value,
            "item_type": self.item_type.value,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
        }
        if self.target_name:
            item["target_name"] = self.target_name
        if self.stripe_payment_intent_id:
            item["stripe_payment_intent_id"] = self.stripe_payment_intent_id
        if self.stripe_customer_id:
            item["stripe_customer_id"] = self.stripe_customer_id
        if self.stripe_subscription_id:
            item["stripe_subscription_id"] = self.stripe_subscription_id
        if self.updated_at:
            item["updated_at"] = self.updated_at.isoformat()
        if self.completed_at:
            item["completed_at"] = self.completed_at.isoformat()
        return item

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "PaymentSession":
        """Build a PaymentSession from a DynamoDB item."""
        return cls(
            payment_session_id=item["payment_session_id"],
            owner_id=item["owner_id"],
            target_type=TargetType(item["target_type"]),
            target_id=item["target_id"],
            target_name=item.get("target_name"),
            stripe_session_id=item["stripe_session_id"],
            amount=int(item["amount"]),
            currency=item.get("currency", "INR"),
            cadence=PaymentCadence(item["cadence"]),
            item_type=DonationItemType(item.get("item_type", "money")),
            status=PaymentSessionStatus(item["status"]),
            stripe_payment_intent_id=item.get("stripe_payment_intent_id"),
            stripe_customer_id=item.get("stripe_customer_id"),
            stripe_subscription_id=item.get("stripe_subscription_id"),
            created_at=_parse_datetime(item["created_at"]),
            updated_at=_parse_datetime(item.get("updated_at")),
            completed_at=_parse_datetime(item.get("completed_at")),
        )


class CheckoutRequest(BaseModel):
    """Validated donation intent passed to the session initiator."""

    model_config = ConfigDict(strict=True)

    amount: int = Field(..., description="Amount in minor currency units")
    target_type: TargetType
    target_id: str = Field(..., min_length=1)
    target_name: str | None = None
    cadence: PaymentCadence
    item_type: DonationItemType = DonationItemType.MONEY


class CheckoutResult(BaseModel):
    """Result of initiating a checkout: where to send the donor."""

    model_config = ConfigDict(strict=True)

    payment_session_id: str
    stripe_session_id: str
    redirect_url: str = Field(
        ...,
        description="Stripe-hosted checkout URL",
        examples=["https://checkout.stripe.com/c/pay/cs_test_a1B2c3D4"],
    )
