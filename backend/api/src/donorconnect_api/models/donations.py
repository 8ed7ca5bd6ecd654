"""API models for donation checkout and webhook endpoints.

Request and response bodies use the camelCase field names of the web client.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, StrictInt

from donorconnect.models import (
    CheckoutRequest,
    DonationItemType,
    PaymentCadence,
    PaymentSession,
    ProcessingResult,
    TargetType,
)


class CheckoutRequestBody(BaseModel):
    """Request to start a donation checkout."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "amount": 50000,
                    "targetType": "ngo",
                    "targetId": "NGO-001",
                    "targetName": "Helping Hands",
                    "donationType": "one_time",
                    "itemType": "money",
                }
            ]
        },
    )

    amount: StrictInt = Field(
        ...,
        description="Amount in minor currency units (paise for INR)",
        examples=[50000],
    )
    target_type: TargetType = Field(..., alias="targetType")
    target_id: str = Field(..., alias="targetId", min_length=1)
    target_name: str | None = Field(default=None, alias="targetName")
    cadence: PaymentCadence = Field(
        ...,
        alias="donationType",
        description="one_time or recurring (monthly)",
    )
    item_type: DonationItemType = Field(default=DonationItemType.MONEY, alias="itemType")

    def to_checkout_request(self) -> CheckoutRequest:
        return CheckoutRequest(
            amount=self.amount,
            target_type=self.target_type,
            target_id=self.target_id,
            target_name=self.target_name,
            cadence=self.cadence,
            item_type=self.item_type,
        )


class CheckoutResponse(BaseModel):
    """Where to send the donor to pay."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(
        ...,
        alias="sessionId",
        description="Stripe Checkout Session ID",
        examples=["cs_test_a1B2c3D4"],
    )
    redirect_url: str = Field(
        ...,
        alias="redirectUrl",
        description="Stripe-hosted checkout URL",
    )


class PaymentSessionResponse(BaseModel):
    """Status of a donor's payment session, shown on the success page."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId")
    status: str
    amount: int
    currency: str
    cadence: str = Field(..., alias="donationType")
    target_type: str = Field(..., alias="targetType")
    target_id: str = Field(..., alias="targetId")
    target_name: str | None = Field(default=None, alias="targetName")
    completed_at: datetime | None = Field(default=None, alias="completedAt")

    @classmethod
    def from_session(cls, session: PaymentSession) -> "PaymentSessionResponse":
        return cls(
            session_id=session.stripe_session_id,
            status=session.status.value,
            amount=session.amount,
            currency=session.currency,
            cadence=session.cadence.value,
            target_type=session.target_type.value,
            target_id=session.target_id,
            target_name=session.target_name,
            completed_at=session.completed_at,
        )


class WebhookResponse(BaseModel):
    """Standard webhook response."""

    received: bool
    event_id: str | None = None
    event_type: str | None = None
    processing_result: ProcessingResult
    message: str | None = None
