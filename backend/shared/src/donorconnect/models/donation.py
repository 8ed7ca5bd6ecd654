"""Donation, receipt and notification records produced by completed payments."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import DonationItemType, DonationStatus


class Donation(BaseModel):
    """A completed donation attributed to an NGO and optionally a campaign.

    The ID is derived from the payment that produced it (checkout session or
    renewal invoice), so re-running a handler targets the same row.
    """

    model_config = ConfigDict(strict=True)

    donation_id: str = Field(..., examples=["DON-cs_test_a1B2c3D4"])
    donor_id: str = Field(..., description="Donor user ID")
    ngo_id: str | None = Field(default=None, description="NGO credited with the donation")
    campaign_id: str | None = Field(default=None)
    donation_type: DonationItemType = DonationItemType.MONEY
    amount: int = Field(..., ge=0, description="Amount in minor currency units")
    currency: str = "INR"
    status: DonationStatus = DonationStatus.COMPLETED
    stripe_session_id: str | None = None
    stripe_payment_intent_id: str | None = None
    stripe_subscription_id: str | None = None
    stripe_invoice_id: str | None = None
    donation_date: datetime
    created_at: datetime

    def to_item(self) -> dict[str, Any]:
        """Convert to a DynamoDB item."""
        item: dict[str, Any] = {
            "donation_id": self.donation_id,
            "donor_id": self.donor_id,
            "donation_type": self.donation_type.value,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status.value,
            "tax_receipt_generated": False,
            "donation_date": self.donation_date.isoformat(),
            "created_at": self.created_at.isoformat(),
        }
        optional = {
            "ngo_id": self.ngo_id,
            "campaign_id": self.campaign_id,
            "stripe_session_id": self.stripe_session_id,
            "stripe_payment_intent_id": self.stripe_payment_intent_id,
            "stripe_subscription_id": self.stripe_subscription_id,
            "stripe_invoice_id": self.stripe_invoice_id,
        }
        item.update({k: v for k, v in optional.items() if v})
        return item


class DonationReceipt(BaseModel):
    """Receipt issued to the donor for a completed donation."""

    model_config = ConfigDict(strict=True)

    receipt_id: str
    receipt_number: str = Field(..., examples=["DCR-1767225600000-a1B2c3"])
    donor_id: str
    donation_id: str
    amount: int
    currency: str
    donation_type: str
    target_name: str
    email_sent: bool = False
    generated_at: datetime


class Notification(BaseModel):
    """In-app notification shown on the donor dashboard."""

    model_config = ConfigDict(strict=True)

    notification_id: str
    user_id: str
    title: str
    message: str
    type: str = "donation"
    read: bool = False
    created_at: datetime
