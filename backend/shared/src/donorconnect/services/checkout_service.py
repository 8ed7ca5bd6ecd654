"""Checkout service: opens a Stripe Checkout session and its local payment session.

The Stripe call happens first. The local pending row is written only after
Stripe returns, so a processor failure leaves nothing behind, while a local
write failure leaves a Stripe session without a row and is logged as a
reconciliation gap.
"""

import datetime as dt
import uuid
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from ..config import Settings
from ..models import (
    CheckoutRequest,
    CheckoutResult,
    DonationError,
    DonationItemType,
    ErrorCode,
    PaymentCadence,
    PaymentSession,
    PaymentSessionStatus,
    get_user_friendly_stripe_message,
    is_stripe_error_retryable,
)
from ..utils.logging import get_logger, log_payment_operation, log_reconciliation_gap
from .dynamodb import DynamoDBService
from .stripe_service import StripeService, StripeServiceError

logger = get_logger(__name__)


class CheckoutService:
    """Starts donations for authenticated donors."""

    def __init__(
        self,
        db: DynamoDBService,
        stripe_service: StripeService,
        settings: Settings,
    ) -> None:
        """Initialize checkout service.

        Args:
            db: DynamoDB service instance
            stripe_service: Stripe gateway
            settings: Runtime settings (amount bounds, currency, redirect base)
        """
        self.db = db
        self.stripe = stripe_service
        self.settings = settings

    def _generate_payment_session_id(self) -> str:
        """Generate an internal payment session ID like PS-3F2A9C01B7D4."""
        return f"PS-{uuid.uuid4().hex[:12].upper()}"

    def _validate_amount(self, amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise DonationError(ErrorCode.INVALID_AMOUNT, {"amount": str(amount)})
        if not self.settings.min_amount <= amount <= self.settings.max_amount:
            raise DonationError(
                ErrorCode.INVALID_AMOUNT,
                {
                    "amount": str(amount),
                    "min_amount": str(self.settings.min_amount),
                    "max_amount": str(self.settings.max_amount),
                },
            )

    def _validate_item_type(self, item_type: DonationItemType) -> None:
        # In-kind donations are coordinated offline and never reach Stripe
        if item_type != DonationItemType.MONEY:
            raise DonationError(
                ErrorCode.INVALID_REQUEST,
                {"item_type": item_type.value, "message": "Only money donations use checkout"},
            )

    def _resolve_target(self, request: CheckoutRequest) -> dict[str, Any]:
        target = self.db.get_target(request.target_type.value, request.target_id)
        if not target:
            raise DonationError(
                ErrorCode.TARGET_NOT_FOUND,
                {"target_type": request.target_type.value, "target_id": request.target_id},
            )
        return target

    def initiate_checkout(
        self,
        owner: dict[str, Any],
        request: CheckoutRequest,
        origin: str | None = None,
    ) -> CheckoutResult:
        """Create the Stripe session, then record it locally as pending.

        Args:
            owner: Authenticated user record (user_id, email)
            request: Validated donation intent
            origin: Frontend origin for redirect URLs; defaults to APP_BASE_URL

        Returns:
            CheckoutResult with the Stripe session ID and hosted checkout URL

        Raises:
            DonationError: INVALID_AMOUNT, INVALID_REQUEST, TARGET_NOT_FOUND, STRIPE_API_ERROR
                or LOCAL_PERSISTENCE_FAILED
        """
        self._validate_amount(request.amount)
        self._validate_item_type(request.item_type)
        target = self._resolve_target(request)

        owner_id = owner["user_id"]
        target_name = (
            request.target_name
            or target.get("name")
            or target.get("title")
            or request.target_id
        )
        payment_session_id = self._generate_payment_session_id()
        currency = self.settings.currency
        base_url = (origin or self.settings.app_base_url).rstrip("/")

        metadata = {
            "owner_id": owner_id,
            "payment_session_id": payment_session_id,
            "target_type": request.target_type.value,
            "target_id": request.target_id,
            "target_name": target_name[:500],
            "cadence": request.cadence.value,
            "item_type": request.item_type.value,
        }

        try:
            customer_id = None
            if request.cadence == PaymentCadence.RECURRING:
                customer_id = self.stripe.find_or_create_customer(
                    owner.get("email") or owner_id, owner_id
                )
                price_id = self.stripe.create_recurring_price(
                    amount=request.amount,
                    currency=currency,
                    product_name=f"Monthly donation to {target_name}",
                    metadata={"payment_session_id": payment_session_id},
                )
                mode = "subscription"
                line_items: list[dict[str, Any]] = [{"price": price_id, "quantity": 1}]
            else:
                mode = "payment"
                line_items = [
                    {
                        "price_data": {
                            "currency": currency.lower(),
                            "unit_amount": request.amount,
                            "product_data": {"name": f"Donation to {target_name}"},
                        },
                        "quantity": 1,
                    }
                ]

            session = self.stripe.create_checkout_session(
                mode=mode,
                line_items=line_items,
                metadata=metadata,
                success_url=f"{base_url}/donation/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{base_url}/donation/cancelled",
                idempotency_key=f"checkout_{payment_session_id}",
                customer_id=customer_id,
                expires_at=int(dt.datetime.now(dt.UTC).timestamp())
                + self.settings.checkout_session_ttl_seconds,
            )
        except StripeServiceError as e:
            log_payment_operation(
                logger,
                "create_checkout_session",
                payment_session_id=payment_session_id,
                amount=request.amount,
                error=str(e),
                stripe_error_code=e.stripe_error_code,
            )
            raise DonationError(
                ErrorCode.STRIPE_API_ERROR,
                {
                    "message": get_user_friendly_stripe_message(e.stripe_error_code),
                    "retryable": str(is_stripe_error_retryable(e.stripe_error_code)).lower(),
                },
            ) from e

        stripe_session_id = session["session_id"]
        payment_session = PaymentSession(
            payment_session_id=payment_session_id,
            owner_id=owner_id,
            target_type=request.target_type,
            target_id=request.target_id,
            target_name=target_name,
            stripe_session_id=stripe_session_id,
            amount=request.amount,
            currency=currency,
            cadence=request.cadence,
            item_type=request.item_type,
            status=PaymentSessionStatus.PENDING,
            stripe_customer_id=customer_id,
            created_at=dt.datetime.now(dt.UTC),
        )

        try:
            created = self.db.create_payment_session(payment_session.to_item())
        except (BotoCoreError, ClientError) as e:
            log_reconciliation_gap(
                logger,
                f"stripe session created but local write failed: {e}",
                payment_session_id=payment_session_id,
                stripe_session_id=stripe_session_id,
            )
            raise DonationError(ErrorCode.LOCAL_PERSISTENCE_FAILED) from e

        if not created:
            log_reconciliation_gap(
                logger,
                "stripe session created but a local row already exists",
                payment_session_id=payment_session_id,
                stripe_session_id=stripe_session_id,
            )
            raise DonationError(ErrorCode.LOCAL_PERSISTENCE_FAILED)

        log_payment_operation(
            logger,
            "create_checkout_session",
            payment_session_id=payment_session_id,
            stripe_session_id=stripe_session_id,
            amount=request.amount,
            status=PaymentSessionStatus.PENDING.value,
            cadence=request.cadence.value,
        )

        return CheckoutResult(
            payment_session_id=payment_session_id,
            stripe_session_id=stripe_session_id,
            redirect_url=session["checkout_url"],
        )

    def get_session_status(self, owner_id: str, stripe_session_id: str) -> PaymentSession:
        """Get a payment session owned by the caller.

        Raises:
            DonationError: PAYMENT_SESSION_NOT_FOUND if missing or owned by someone else
        """
        item = self.db.get_payment_session(stripe_session_id)
        if not item or item.get("owner_id") != owner_id:
            raise DonationError(
                ErrorCode.PAYMENT_SESSION_NOT_FOUND,
                {"session_id": stripe_session_id},
            )
        return PaymentSession.from_item(item)
