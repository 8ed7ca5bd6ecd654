"""Webhook reconciler: applies Stripe events to local payment state.

Stripe may deliver an event more than once, out of order, or concurrently
with a redelivery of itself. Every handler here computes its effect from the
persisted state and applies it through a conditional write or a transaction,
so re-running a handler is always safe and side effects fire once.

Separated from HTTP routing so it can be unit tested and reused by other
transports.
"""

import datetime as dt
from typing import Any, Callable

from botocore.exceptions import BotoCoreError, ClientError

from ..config import Settings, get_settings
from ..models import (
    BillingInterval,
    Donation,
    DonationError,
    DonationItemType,
    ErrorCode,
    PaymentSession,
    PaymentSessionStatus,
    ProcessingResult,
    Subscription,
    SubscriptionStatus,
    TargetType,
    WebhookAck,
    WebhookEventLog,
    decode_event,
)
from ..models.stripe_events import (
    CheckoutSessionAsyncPaymentFailed,
    CheckoutSessionAsyncPaymentSucceeded,
    CheckoutSessionCompleted,
    CheckoutSessionEvent,
    CheckoutSessionExpired,
    InvoicePaymentSucceeded,
    PaymentIntentFailed,
    StripeEvent,
    SubscriptionCreated,
    SubscriptionDeleted,
    SubscriptionEvent,
    SubscriptionUpdated,
)
from ..utils.logging import get_logger, log_reconciliation_gap, log_webhook_event
from .dynamodb import DynamoDBService
from .receipt_service import ReceiptService
from .stripe_service import StripeCredentialsError, StripeService, StripeServiceError

logger = get_logger(__name__)

HandlerResult = tuple[ProcessingResult, str | None]

# Stripe subscription status -> local status
_SUBSCRIPTION_STATUS = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.ACTIVE,
    "incomplete": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "paused": SubscriptionStatus.PAUSED,
    "canceled": SubscriptionStatus.CANCELLED,
    "incomplete_expired": SubscriptionStatus.CANCELLED,
}


def _timestamp(value: int | None) -> dt.datetime | None:
    if value is None:
        return None
    return dt.datetime.fromtimestamp(value, dt.UTC)


def _iso(value: int | None) -> str | None:
    stamp = _timestamp(value)
    return stamp.isoformat() if stamp else None


class WebhookReconciler:
    """Verifies, logs and dispatches Stripe webhook events."""

    def __init__(
        self,
        db: DynamoDBService,
        stripe_service: StripeService,
        receipts: ReceiptService | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the reconciler.

        Args:
            db: DynamoDB service instance
            stripe_service: Stripe gateway (signature checks and lookups)
            receipts: Receipt/notification writer; defaults to one backed by db
            settings: Runtime settings. Defaults to get_settings().
        """
        self._db = db
        self._stripe = stripe_service
        self._receipts = receipts or ReceiptService(db)
        self._settings = settings or get_settings()
        self._handlers: dict[type[StripeEvent], Callable[[Any], HandlerResult]] = {
            CheckoutSessionCompleted: self._handle_checkout_completed,
            CheckoutSessionAsyncPaymentSucceeded: self._handle_checkout_completed,
            CheckoutSessionAsyncPaymentFailed: self._handle_async_payment_failed,
            CheckoutSessionExpired: self._handle_checkout_expired,
            PaymentIntentFailed: self._handle_payment_failed,
            SubscriptionCreated: self._handle_subscription_created,
            SubscriptionUpdated: self._handle_subscription_updated,
            SubscriptionDeleted: self._handle_subscription_deleted,
            InvoicePaymentSucceeded: self._handle_invoice_paid,
        }

    # =========================================================================
    # Entry point
    # =========================================================================

    def handle_event(self, payload: bytes, signature: str | None) -> WebhookAck:
        """Verify and apply one webhook delivery.

        Args:
            payload: Raw request body, exactly as received
            signature: Stripe-Signature header value

        Returns:
            WebhookAck describing the outcome

        Raises:
            DonationError: INVALID_WEBHOOK_SIGNATURE before any state is touched,
                or WEBHOOK_PROCESSING_FAILED so Stripe redelivers the event
        """
        if not signature:
            logger.warning("Webhook request missing Stripe-Signature header")
            raise DonationError(
                ErrorCode.INVALID_WEBHOOK_SIGNATURE,
                {"message": "Missing Stripe-Signature header"},
            )

        try:
            raw_event = self._stripe.verify_webhook_signature(payload, signature)
        except StripeCredentialsError as e:
            # SSM outage, not a forged request; a 5xx makes Stripe redeliver
            logger.error("Webhook signing secret unavailable: %s", e)
            raise DonationError(
                ErrorCode.WEBHOOK_PROCESSING_FAILED,
                {"message": "Webhook signing secret unavailable"},
            ) from e
        except StripeServiceError as e:
            logger.warning("Webhook signature verification failed: %s", e)
            raise DonationError(
                ErrorCode.INVALID_WEBHOOK_SIGNATURE,
                {"message": "Invalid webhook signature"},
            ) from e

        event = decode_event(raw_event)
        log_webhook_event(logger, event.type, event.event_id, result="received")
        self._record_event(event, payload)

        handler = self._handlers.get(type(event))
        if handler is None:
            result, message = ProcessingResult.IGNORED, f"Event type '{event.type}' not handled"
        else:
            try:
                result, message = handler(event)
            except DonationError as e:
                self._fail(event, str(e.details or e.message))
                if e.code == ErrorCode.WEBHOOK_PROCESSING_FAILED:
                    raise
                raise DonationError(
                    ErrorCode.WEBHOOK_PROCESSING_FAILED,
                    {"cause": e.code.value, **(e.details or {})},
                ) from e
            except (StripeServiceError, BotoCoreError, ClientError) as e:
                self._fail(event, str(e))
                raise DonationError(
                    ErrorCode.WEBHOOK_PROCESSING_FAILED, {"message": str(e)}
                ) from e

        self._mark_processed(event.event_id, result, message)
        log_webhook_event(
            logger,
            event.type,
            event.event_id,
            stripe_session_id=getattr(event, "session_id", None),
            result=result.value,
        )
        return WebhookAck(
            event_id=event.event_id,
            event_type=event.type,
            processing_result=result,
            message=message,
        )

    # =========================================================================
    # Event log (observability only, never blocks processing)
    # =========================================================================

    def _record_event(self, event: StripeEvent, payload: bytes) -> None:
        entry = WebhookEventLog(
            event_id=event.event_id,
            event_type=event.type,
            received_at=dt.datetime.now(dt.UTC),
            payload_hash=StripeService.compute_payload_hash(payload),
            payload=payload.decode("utf-8"),
        )
        try:
            if not self._db.put_webhook_event(entry.model_dump(mode="json", exclude_none=True)):
                self._db.record_webhook_redelivery(event.event_id)
                log_webhook_event(logger, event.type, event.event_id, result="duplicate")
        except (BotoCoreError, ClientError) as e:
            logger.warning("Failed to log webhook event %s: %s", event.event_id, e)

    def _mark_processed(
        self, event_id: str, result: ProcessingResult, message: str | None
    ) -> None:
        try:
            self._db.mark_webhook_event_processed(
                event_id,
                result.value,
                message if result == ProcessingResult.ERROR else None,
            )
        except (BotoCoreError, ClientError) as e:
            logger.warning("Failed to update webhook event %s: %s", event_id, e)

    def _fail(self, event: StripeEvent, message: str) -> None:
        log_webhook_event(logger, event.type, event.event_id, result="error", error=message)
        self._mark_processed(event.event_id, ProcessingResult.ERROR, message)

    # =========================================================================
    # Checkout sessions
    # =========================================================================

    def _handle_checkout_completed(self, event: CheckoutSessionEvent) -> HandlerResult:
        """pending -> completed, applied at most once per Stripe session."""
        if not event.is_paid:
            # Delayed payment methods complete via async_payment_succeeded
            return (
                ProcessingResult.SKIPPED,
                f"Payment status is '{event.payment_status}', not 'paid'",
            )

        item = self._db.get_payment_session(event.session_id)
        if not item:
            log_reconciliation_gap(
                logger,
                "completed checkout session has no local payment session",
                payment_session_id=event.metadata.get("payment_session_id"),
                stripe_session_id=event.session_id,
            )
            raise DonationError(
                ErrorCode.PAYMENT_SESSION_NOT_FOUND, {"session_id": event.session_id}
            )

        session = PaymentSession.from_item(item)
        if session.status == PaymentSessionStatus.COMPLETED:
            return ProcessingResult.ALREADY_COMPLETED, "Payment session already completed"
        if session.status == PaymentSessionStatus.EXPIRED:
            log_reconciliation_gap(
                logger,
                "payment received for an expired payment session",
                payment_session_id=session.payment_session_id,
                stripe_session_id=session.stripe_session_id,
            )
            return ProcessingResult.SKIPPED, "Payment session is expired"

        subscription_id = event.subscription_id or session.stripe_subscription_id
        if event.is_subscription:
            if not subscription_id:
                raise DonationError(
                    ErrorCode.WEBHOOK_PROCESSING_FAILED,
                    {"message": "Subscription checkout without a subscription"},
                )
            self._ensure_subscription(session, event, subscription_id)

        now = dt.datetime.now(dt.UTC)
        ngo_id, campaign_id, target_name, stat_updates = self._attribution(
            session.target_type.value, session.target_id, session.amount
        )
        donation = Donation(
            donation_id=f"DON-{session.stripe_session_id}",
            donor_id=session.owner_id,
            ngo_id=ngo_id,
            campaign_id=campaign_id,
            donation_type=session.item_type,
            amount=session.amount,
            currency=session.currency,
            stripe_session_id=session.stripe_session_id,
            stripe_payment_intent_id=event.payment_intent_id,
            stripe_subscription_id=subscription_id,
            donation_date=now,
            created_at=now,
        )

        completed = self._db.transact_write(
            [
                self._db.build_payment_session_transition(
                    session.stripe_session_id,
                    PaymentSessionStatus.COMPLETED.value,
                    [PaymentSessionStatus.PENDING.value, PaymentSessionStatus.FAILED.value],
                    extra={
                        "completed_at": now.isoformat(),
                        "stripe_payment_intent_id": event.payment_intent_id,
                        "stripe_customer_id": event.customer_id,
                        "stripe_subscription_id": subscription_id,
                    },
                ),
                self._db.build_put(
                    DynamoDBService.DONATIONS_TABLE,
                    donation.to_item(),
                    condition_expression="attribute_not_exists(donation_id)",
                ),
                *stat_updates,
            ]
        )
        if not completed:
            current = self._db.get_payment_session(session.stripe_session_id) or {}
            if current.get("status") == PaymentSessionStatus.COMPLETED.value:
                return ProcessingResult.ALREADY_COMPLETED, "Payment session already completed"
            raise DonationError(
                ErrorCode.WEBHOOK_PROCESSING_FAILED,
                {"message": "Completion transaction was cancelled"},
            )

        self._issue_receipt(donation, session.target_name or target_name)
        return ProcessingResult.SUCCESS, None

    def _handle_checkout_expired(self, event: CheckoutSessionExpired) -> HandlerResult:
        return self._transition(
            event.session_id, PaymentSessionStatus.EXPIRED, [PaymentSessionStatus.PENDING]
        )

    def _handle_async_payment_failed(
        self, event: CheckoutSessionAsyncPaymentFailed
    ) -> HandlerResult:
        return self._transition(
            event.session_id, PaymentSessionStatus.FAILED, [PaymentSessionStatus.PENDING]
        )

    def _handle_payment_failed(self, event: PaymentIntentFailed) -> HandlerResult:
        """Best effort: lookup misses and Stripe errors are acknowledged."""
        try:
            found = self._stripe.find_checkout_session_for_payment_intent(
                event.payment_intent_id
            )
        except StripeServiceError as e:
            logger.warning(
                "Could not look up checkout session for %s: %s", event.payment_intent_id, e
            )
            return ProcessingResult.SKIPPED, "Checkout session lookup failed"

        if not found:
            return ProcessingResult.SKIPPED, "No checkout session for payment intent"

        return self._transition(
            found["session_id"], PaymentSessionStatus.FAILED, [PaymentSessionStatus.PENDING]
        )

    def _transition(
        self,
        stripe_session_id: str,
        new_status: PaymentSessionStatus,
        expected: list[PaymentSessionStatus],
    ) -> HandlerResult:
        updated = self._db.update_payment_session_status(
            stripe_session_id, new_status.value, [s.value for s in expected]
        )
        if updated is not None:
            return ProcessingResult.SUCCESS, None

        current = self._db.get_payment_session(stripe_session_id)
        if current is None:
            logger.warning("No payment session for Stripe session %s", stripe_session_id)
            return ProcessingResult.SKIPPED, "Payment session not found"
        return ProcessingResult.SKIPPED, f"Payment session is {current['status']}"

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def _ensure_subscription(
        self,
        session: PaymentSession,
        event: CheckoutSessionEvent,
        subscription_id: str,
    ) -> None:
        """Insert the Subscription row unless it already exists."""
        if self._db.get_subscription(subscription_id):
            return

        details = self._stripe.retrieve_subscription(subscription_id)
        subscription = Subscription(
            stripe_subscription_id=subscription_id,
            owner_id=event.metadata.get("owner_id") or session.owner_id,
            target_type=TargetType(event.metadata.get("target_type") or session.target_type.value),
            target_id=event.metadata.get("target_id") or session.target_id,
            stripe_customer_id=details["customer_id"] or event.customer_id or "",
            stripe_price_id=details["price_id"],
            amount=int(details["amount"] or session.amount),
            currency=(details["currency"] or session.currency).upper(),
            interval=(
                BillingInterval.YEARLY if details["interval"] == "year" else BillingInterval.MONTHLY
            ),
            status=_SUBSCRIPTION_STATUS.get(details["status"] or "", SubscriptionStatus.ACTIVE),
            current_period_start=_timestamp(details["current_period_start"]),
            current_period_end=_timestamp(details["current_period_end"]),
            cancel_at_period_end=details["cancel_at_period_end"],
            created_at=dt.datetime.now(dt.UTC),
        )
        if self._db.create_subscription_if_absent(subscription.to_item()):
            logger.info(
                "Subscription %s recorded for user %s", subscription_id, subscription.owner_id
            )

    def _handle_subscription_created(self, event: SubscriptionCreated) -> HandlerResult:
        return ProcessingResult.SKIPPED, "Subscriptions are recorded on checkout completion"

    def _handle_subscription_updated(self, event: SubscriptionUpdated) -> HandlerResult:
        """Refresh billing period fields on an existing Subscription.

        May arrive before the checkout completion that creates the row; that
        case is a no-op.
        """
        found = self._stripe.find_checkout_session_for_subscription(event.subscription_id)
        if not found or not found["metadata"].get("owner_id"):
            return ProcessingResult.SKIPPED, "No originating checkout session metadata"

        # TODO: apply price/quantity changes once plan switching is supported
        updated = self._db.update_subscription(
            event.subscription_id, self._subscription_fields(event)
        )
        if updated is None:
            return ProcessingResult.SKIPPED, "Subscription not recorded yet"
        return ProcessingResult.SUCCESS, None

    def _handle_subscription_deleted(self, event: SubscriptionDeleted) -> HandlerResult:
        updated = self._db.update_subscription(
            event.subscription_id,
            {
                "status": SubscriptionStatus.CANCELLED.value,
                "cancelled_at": dt.datetime.now(dt.UTC).isoformat(),
            },
        )
        if updated is None:
            return ProcessingResult.SKIPPED, "Subscription not recorded"
        return ProcessingResult.SUCCESS, None

    @staticmethod
    def _subscription_fields(event: SubscriptionEvent) -> dict[str, Any]:
        status = _SUBSCRIPTION_STATUS.get(event.status or "")
        return {
            "status": status.value if status else None,
            "cancel_at_period_end": event.cancel_at_period_end,
            "current_period_start": _iso(event.current_period_start),
            "current_period_end": _iso(event.current_period_end),
        }

    # =========================================================================
    # Invoices (renewals)
    # =========================================================================

    def _handle_invoice_paid(self, event: InvoicePaymentSucceeded) -> HandlerResult:
        """Record one donation per paid renewal invoice."""
        if event.is_initial_invoice:
            return ProcessingResult.SKIPPED, "Initial invoice is recorded via checkout"
        if not event.subscription_id:
            return ProcessingResult.IGNORED, "Invoice is not for a subscription"
        if event.amount_paid <= 0:
            return ProcessingResult.SKIPPED, "Nothing was paid"

        context = self._renewal_context(event.subscription_id)
        if context is None:
            logger.warning(
                "No context for renewal of subscription %s (invoice %s)",
                event.subscription_id,
                event.invoice_id,
            )
            return ProcessingResult.SKIPPED, "Subscription context not found"

        now = dt.datetime.now(dt.UTC)
        ngo_id, campaign_id, target_name, stat_updates = self._attribution(
            context["target_type"], context["target_id"], event.amount_paid
        )
        donation = Donation(
            donation_id=f"DON-{event.invoice_id}",
            donor_id=context["owner_id"],
            ngo_id=ngo_id,
            campaign_id=campaign_id,
            donation_type=DonationItemType(context.get("item_type") or "money"),
            amount=event.amount_paid,
            currency=(
                event.currency or context.get("currency") or self._settings.currency
            ).upper(),
            stripe_payment_intent_id=event.payment_intent_id,
            stripe_subscription_id=event.subscription_id,
            stripe_invoice_id=event.invoice_id,
            donation_date=now,
            created_at=now,
        )

        recorded = self._db.transact_write(
            [
                self._db.build_put(
                    DynamoDBService.DONATIONS_TABLE,
                    donation.to_item(),
                    condition_expression="attribute_not_exists(donation_id)",
                ),
                *stat_updates,
            ]
        )
        if not recorded:
            if self._db.get_donation(donation.donation_id):
                return ProcessingResult.ALREADY_COMPLETED, "Renewal already recorded"
            raise DonationError(
                ErrorCode.WEBHOOK_PROCESSING_FAILED,
                {"message": "Renewal transaction was cancelled"},
            )

        self._issue_receipt(donation, context.get("target_name") or target_name)
        return ProcessingResult.SUCCESS, None

    def _renewal_context(self, subscription_id: str) -> dict[str, str] | None:
        """Owner and target of a subscription, from the local row or session metadata."""
        row = self._db.get_subscription(subscription_id)
        if row:
            return {
                "owner_id": row["owner_id"],
                "target_type": row["target_type"],
                "target_id": row["target_id"],
                "currency": row.get("currency", ""),
            }

        found = self._stripe.find_checkout_session_for_subscription(subscription_id)
        metadata = found["metadata"] if found else {}
        if not all(metadata.get(k) for k in ("owner_id", "target_type", "target_id")):
            return None
        return metadata

    # =========================================================================
    # Shared helpers
    # =========================================================================

    def _attribution(
        self, target_type: str, target_id: str, amount: int
    ) -> tuple[str | None, str | None, str, list[dict[str, Any]]]:
        """Resolve NGO/campaign credit and build the stat increments.

        Returns:
            (ngo_id, campaign_id, target_name, transaction update entries)
        """
        updates: list[dict[str, Any]] = []
        ngo_id: str | None = None
        campaign_id: str | None = None
        target_name = target_id

        if target_type == TargetType.CAMPAIGN.value:
            campaign_id = target_id
            campaign = self._db.get_campaign(target_id)
            if campaign:
                target_name = campaign.get("title") or campaign.get("name") or target_id
                ngo_id = campaign.get("ngo_id")
                updates.append(
                    self._db.build_update(
                        DynamoDBService.CAMPAIGNS_TABLE,
                        {"campaign_id": target_id},
                        "ADD raised_amount :amount, total_donors :one",
                        {":amount": amount, ":one": 1},
                    )
                )
        else:
            ngo_id = target_id

        ngo = self._db.get_ngo(ngo_id) if ngo_id else None
        if ngo:
            if target_type == TargetType.NGO.value:
                target_name = ngo.get("name") or target_id
            updates.append(
                self._db.build_update(
                    DynamoDBService.NGOS_TABLE,
                    {"ngo_id": ngo_id},
                    "ADD total_donations_received :one, total_amount_raised :amount",
                    {":amount": amount, ":one": 1},
                )
            )

        return ngo_id, campaign_id, target_name, updates

    def _issue_receipt(self, donation: Donation, target_name: str) -> None:
        """Fire-and-forget: a receipt failure never undoes the donation."""
        try:
            self._receipts.issue_receipt(donation, target_name)
        except Exception as e:
            logger.error(
                "Failed to issue receipt for donation %s: %s", donation.donation_id, e
            )
