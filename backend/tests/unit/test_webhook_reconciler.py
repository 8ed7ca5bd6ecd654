"""Unit tests for WebhookReconciler.

Events are signed with the test webhook secret and go through real signature
verification. DynamoDB is mocked with moto so the guarded writes and
transactions run against the same condition semantics as production.
"""

import datetime as dt
from typing import Any, Callable
from unittest.mock import MagicMock, patch

import pytest
import stripe
from botocore.exceptions import ClientError

from donorconnect.config import Settings
from donorconnect.models import (
    DonationError,
    ErrorCode,
    PaymentCadence,
    PaymentSession,
    PaymentSessionStatus,
    ProcessingResult,
    TargetType,
)
from donorconnect.services.dynamodb import DynamoDBService
from donorconnect.services.ssm_service import SSMServiceError
from donorconnect.services.webhook_reconciler import WebhookReconciler

SESSION_ID = "cs_test_abc123"
SUBSCRIPTION_ID = "sub_test_1"

METADATA = {
    "owner_id": "user-123",
    "payment_session_id": "PS-3F2A9C01B7D4",
    "target_type": "ngo",
    "target_id": "N1",
    "target_name": "Helping Hands",
    "cadence": "one_time",
    "item_type": "money",
}


# === Fixtures ===


@pytest.fixture
def reconciler(db, stripe_service) -> WebhookReconciler:
    return WebhookReconciler(db=db, stripe_service=stripe_service)


@pytest.fixture
def deliver(reconciler, make_event, encode, sign_payload) -> Callable[..., Any]:
    """Sign and deliver an event; returns the WebhookAck."""

    def _deliver(event_type: str, data_object: dict[str, Any], event_id: str = "evt_test_1"):
        payload = encode(make_event(event_type, data_object, event_id))
        return reconciler.handle_event(payload, sign_payload(payload))

    return _deliver


@pytest.fixture
def pending_session(db, sample_user, sample_ngo) -> Callable[..., PaymentSession]:
    """Write a pending payment session the way CheckoutService does."""

    def _create(
        stripe_session_id: str = SESSION_ID,
        *,
        amount: int = 500,
        cadence: PaymentCadence = PaymentCadence.ONE_TIME,
        target_type: TargetType = TargetType.NGO,
        target_id: str = "N1",
    ) -> PaymentSession:
        session = PaymentSession(
            payment_session_id="PS-3F2A9C01B7D4",
            owner_id="user-123",
            target_type=target_type,
            target_id=target_id,
            target_name="Helping Hands",
            stripe_session_id=stripe_session_id,
            amount=amount,
            cadence=cadence,
            status=PaymentSessionStatus.PENDING,
            created_at=dt.datetime.now(dt.UTC),
        )
        assert db.create_payment_session(session.to_item())
        return session

    return _create


@pytest.fixture
def stripe_subscription() -> dict[str, Any]:
    return {
        "id": SUBSCRIPTION_ID,
        "object": "subscription",
        "customer": "cus_test_123",
        "status": "active",
        "cancel_at_period_end": False,
        "items": {
            "data": [
                {
                    "price": {
                        "id": "price_test_123",
                        "unit_amount": 200,
                        "currency": "inr",
                        "recurring": {"interval": "month"},
                    },
                    "current_period_start": 1767225600,
                    "current_period_end": 1769904000,
                }
            ]
        },
    }


def _scan(table, name: str) -> list[dict[str, Any]]:
    return table(name).scan()["Items"]


def _session_row(db) -> dict[str, Any]:
    return db.get_payment_session(SESSION_ID)


# === One-time completion ===


class TestCheckoutCompleted:
    def test_completes_pending_session(
        self, deliver, pending_session, checkout_session_object, db, table
    ):
        pending_session()

        ack = deliver(
            "checkout.session.completed",
            checkout_session_object(metadata=METADATA),
        )

        assert ack.processing_result == ProcessingResult.SUCCESS
        row = _session_row(db)
        assert row["status"] == "completed"
        assert row["completed_at"]
        assert row["stripe_payment_intent_id"] == "pi_test_456"

        donations = _scan(table, DynamoDBService.DONATIONS_TABLE)
        assert len(donations) == 1
        assert donations[0]["donation_id"] == f"DON-{SESSION_ID}"
        assert donations[0]["amount"] == 500
        assert donations[0]["ngo_id"] == "N1"
        assert donations[0]["tax_receipt_generated"] is True

        assert len(_scan(table, DynamoDBService.RECEIPTS_TABLE)) == 1
        assert len(_scan(table, DynamoDBService.NOTIFICATIONS_TABLE)) == 1

        ngo = db.get_ngo("N1")
        assert ngo["total_donations_received"] == 1
        assert ngo["total_amount_raised"] == 500

    def test_double_delivery_has_single_effect(
        self, deliver, pending_session, checkout_session_object, db, table
    ):
        pending_session()
        session_object = checkout_session_object(metadata=METADATA)

        first = deliver("checkout.session.completed", session_object)
        second = deliver("checkout.session.completed", session_object)

        assert first.processing_result == ProcessingResult.SUCCESS
        assert second.processing_result == ProcessingResult.ALREADY_COMPLETED
        assert len(_scan(table, DynamoDBService.DONATIONS_TABLE)) == 1
        assert len(_scan(table, DynamoDBService.RECEIPTS_TABLE)) == 1
        assert len(_scan(table, DynamoDBService.NOTIFICATIONS_TABLE)) == 1
        assert db.get_ngo("N1")["total_amount_raised"] == 500

        log = table(DynamoDBService.WEBHOOK_EVENTS_TABLE).get_item(
            Key={"event_id": "evt_test_1"}
        )["Item"]
        assert log["delivery_count"] == 2
        assert log["processing_result"] == "already_completed"

    def test_equivalent_events_with_new_ids_have_single_effect(
        self, deliver, pending_session, checkout_session_object, table
    ):
        pending_session()
        session_object = checkout_session_object(metadata=METADATA)

        deliver("checkout.session.completed", session_object, event_id="evt_a")
        ack = deliver("checkout.session.async_payment_succeeded", session_object, event_id="evt_b")

        assert ack.processing_result == ProcessingResult.ALREADY_COMPLETED
        assert len(_scan(table, DynamoDBService.DONATIONS_TABLE)) == 1
        assert len(_scan(table, DynamoDBService.WEBHOOK_EVENTS_TABLE)) == 2

    def test_concurrent_completion_loses_the_guard(
        self, reconciler, deliver, pending_session, checkout_session_object, db, table
    ):
        """A handler that read 'pending' but lost the race applies nothing."""
        pending_session()
        stale = dict(_session_row(db))
        deliver("checkout.session.completed", checkout_session_object(metadata=METADATA))
        current = _session_row(db)

        with patch.object(db, "get_payment_session", side_effect=[stale, current]):
            ack = deliver(
                "checkout.session.completed",
                checkout_session_object(metadata=METADATA),
                event_id="evt_test_race",
            )

        assert ack.processing_result == ProcessingResult.ALREADY_COMPLETED
        assert len(_scan(table, DynamoDBService.DONATIONS_TABLE)) == 1
        assert len(_scan(table, DynamoDBService.RECEIPTS_TABLE)) == 1
        assert db.get_ngo("N1")["total_donations_received"] == 1

    def test_unpaid_session_is_skipped(
        self, deliver, pending_session, checkout_session_object, db
    ):
        pending_session()

        ack = deliver(
            "checkout.session.completed",
            checkout_session_object(payment_status="unpaid", metadata=METADATA),
        )

        assert ack.processing_result == ProcessingResult.SKIPPED
        assert _session_row(db)["status"] == "pending"

    def test_campaign_donation_credits_campaign_and_ngo(
        self, deliver, pending_session, sample_campaign, checkout_session_object, db
    ):
        pending_session(target_type=TargetType.CAMPAIGN, target_id="C1")

        deliver("checkout.session.completed", checkout_session_object(metadata=METADATA))

        campaign = db.get_campaign("C1")
        assert campaign["raised_amount"] == 500
        assert campaign["total_donors"] == 1
        assert db.get_ngo("N1")["total_amount_raised"] == 500
        donation = db.get_donation(f"DON-{SESSION_ID}")
        assert donation["campaign_id"] == "C1"
        assert donation["ngo_id"] == "N1"

    def test_missing_local_session_is_a_reconciliation_gap(
        self, deliver, sample_ngo, checkout_session_object, caplog
    ):
        with pytest.raises(DonationError) as exc_info:
            deliver("checkout.session.completed", checkout_session_object(metadata=METADATA))

        assert exc_info.value.code == ErrorCode.WEBHOOK_PROCESSING_FAILED
        assert exc_info.value.details["cause"] == ErrorCode.PAYMENT_SESSION_NOT_FOUND.value
        assert any(getattr(r, "reconciliation_gap", False) for r in caplog.records)

    def test_receipt_failure_does_not_undo_completion(
        self, db, stripe_service, make_event, encode, sign_payload, pending_session,
        checkout_session_object,
    ):
        receipts = MagicMock()
        receipts.issue_receipt.side_effect = RuntimeError("SES unavailable")
        reconciler = WebhookReconciler(db=db, stripe_service=stripe_service, receipts=receipts)
        pending_session()
        payload = encode(
            make_event("checkout.session.completed", checkout_session_object(metadata=METADATA))
        )

        ack = reconciler.handle_event(payload, sign_payload(payload))

        assert ack.processing_result == ProcessingResult.SUCCESS
        assert _session_row(db)["status"] == "completed"
        receipts.issue_receipt.assert_called_once()

    def test_event_log_failure_does_not_block_processing(
        self, deliver, pending_session, checkout_session_object, db
    ):
        pending_session()
        failure = ClientError(
            {"Error": {"Code": "InternalServerError", "Message": "boom"}}, "PutItem"
        )

        with patch.object(db, "put_webhook_event", side_effect=failure):
            ack = deliver("checkout.session.completed", checkout_session_object(metadata=METADATA))

        assert ack.processing_result == ProcessingResult.SUCCESS
        assert _session_row(db)["status"] == "completed"


# === Recurring completion and subscriptions ===


class TestSubscriptionCheckout:
    def _recurring_object(self, checkout_session_object):
        return checkout_session_object(
            mode="subscription",
            payment_intent=None,
            customer="cus_test_123",
            subscription=SUBSCRIPTION_ID,
            amount_total=200,
            metadata={**METADATA, "cadence": "recurring"},
        )

    def test_creates_one_subscription_row(
        self, deliver, pending_session, checkout_session_object, mock_stripe_client,
        stripe_subscription, db, table,
    ):
        pending_session(amount=200, cadence=PaymentCadence.RECURRING)
        mock_stripe_client.subscriptions.retrieve.return_value = stripe_subscription
        session_object = self._recurring_object(checkout_session_object)

        deliver("checkout.session.completed", session_object)
        deliver("checkout.session.completed", session_object)

        rows = _scan(table, DynamoDBService.SUBSCRIPTIONS_TABLE)
        assert len(rows) == 1
        assert rows[0]["stripe_subscription_id"] == SUBSCRIPTION_ID
        assert rows[0]["interval"] == "monthly"
        assert rows[0]["amount"] == 200
        assert rows[0]["owner_id"] == "user-123"
        assert rows[0]["status"] == "active"
        mock_stripe_client.subscriptions.retrieve.assert_called_once_with(SUBSCRIPTION_ID)

        row = _session_row(db)
        assert row["status"] == "completed"
        assert row["stripe_subscription_id"] == SUBSCRIPTION_ID
        assert len(_scan(table, DynamoDBService.RECEIPTS_TABLE)) == 1

    def test_update_before_completion_is_a_no_op(
        self, deliver, pending_session, checkout_session_object, mock_stripe_client,
        stripe_subscription, db, table,
    ):
        pending_session(amount=200, cadence=PaymentCadence.RECURRING)
        mock_stripe_client.checkout.sessions.list.return_value = {
            "data": [{"id": SESSION_ID, "metadata": {**METADATA, "cadence": "recurring"}}]
        }
        updated_object = {**stripe_subscription, "cancel_at_period_end": True}

        early = deliver("customer.subscription.updated", updated_object, event_id="evt_update_1")

        assert early.processing_result == ProcessingResult.SKIPPED
        assert _scan(table, DynamoDBService.SUBSCRIPTIONS_TABLE) == []

        mock_stripe_client.subscriptions.retrieve.return_value = stripe_subscription
        deliver("checkout.session.completed", self._recurring_object(checkout_session_object))
        created = db.get_subscription(SUBSCRIPTION_ID)
        assert created["cancel_at_period_end"] is False

        late = deliver("customer.subscription.updated", updated_object, event_id="evt_update_2")

        assert late.processing_result == ProcessingResult.SUCCESS
        refreshed = db.get_subscription(SUBSCRIPTION_ID)
        assert refreshed["cancel_at_period_end"] is True
        assert refreshed["current_period_end"].startswith("2026-02-01")

    def test_update_without_originating_session_is_a_no_op(
        self, deliver, stripe_subscription, sample_ngo
    ):
        ack = deliver("customer.subscription.updated", stripe_subscription)

        assert ack.processing_result == ProcessingResult.SKIPPED

    def test_deleted_marks_subscription_cancelled(
        self, deliver, pending_session, checkout_session_object, mock_stripe_client,
        stripe_subscription, db,
    ):
        pending_session(amount=200, cadence=PaymentCadence.RECURRING)
        mock_stripe_client.subscriptions.retrieve.return_value = stripe_subscription
        deliver("checkout.session.completed", self._recurring_object(checkout_session_object))

        ack = deliver(
            "customer.subscription.deleted",
            {**stripe_subscription, "status": "canceled"},
            event_id="evt_deleted",
        )

        assert ack.processing_result == ProcessingResult.SUCCESS
        assert db.get_subscription(SUBSCRIPTION_ID)["status"] == "cancelled"

    def test_deleted_unknown_subscription_is_skipped(
        self, deliver, stripe_subscription, sample_ngo
    ):
        ack = deliver("customer.subscription.deleted", stripe_subscription)

        assert ack.processing_result == ProcessingResult.SKIPPED

    def test_created_event_is_acknowledged_without_writes(
        self, deliver, stripe_subscription, sample_ngo, table
    ):
        ack = deliver("customer.subscription.created", stripe_subscription)

        assert ack.processing_result == ProcessingResult.SKIPPED
        assert _scan(table, DynamoDBService.SUBSCRIPTIONS_TABLE) == []


# === Renewal invoices ===


class TestInvoicePaymentSucceeded:
    def _invoice(self, billing_reason: str = "subscription_cycle") -> dict[str, Any]:
        return {
            "id": "in_test_renewal",
            "object": "invoice",
            "subscription": SUBSCRIPTION_ID,
            "customer": "cus_test_123",
            "payment_intent": "pi_test_renewal",
            "billing_reason": billing_reason,
            "amount_paid": 200,
            "currency": "inr",
        }

    @pytest.fixture
    def active_subscription(
        self, deliver, pending_session, checkout_session_object, mock_stripe_client,
        stripe_subscription,
    ) -> None:
        pending_session(amount=200, cadence=PaymentCadence.RECURRING)
        mock_stripe_client.subscriptions.retrieve.return_value = stripe_subscription
        deliver(
            "checkout.session.completed",
            checkout_session_object(
                mode="subscription",
                payment_intent=None,
                subscription=SUBSCRIPTION_ID,
                metadata={**METADATA, "cadence": "recurring"},
            ),
            event_id="evt_checkout",
        )

    def test_renewal_records_one_donation(self, deliver, active_subscription, db, table):
        first = deliver("invoice.payment_succeeded", self._invoice(), event_id="evt_inv")
        second = deliver("invoice.payment_succeeded", self._invoice(), event_id="evt_inv")

        assert first.processing_result == ProcessingResult.SUCCESS
        assert second.processing_result == ProcessingResult.ALREADY_COMPLETED
        renewal = db.get_donation("DON-in_test_renewal")
        assert renewal["amount"] == 200
        assert renewal["stripe_subscription_id"] == SUBSCRIPTION_ID
        assert len(_scan(table, DynamoDBService.DONATIONS_TABLE)) == 2
        assert len(_scan(table, DynamoDBService.RECEIPTS_TABLE)) == 2
        assert db.get_ngo("N1")["total_donations_received"] == 2

    def test_initial_invoice_is_skipped(self, deliver, active_subscription, table):
        ack = deliver(
            "invoice.payment_succeeded",
            self._invoice(billing_reason="subscription_create"),
            event_id="evt_inv_initial",
        )

        assert ack.processing_result == ProcessingResult.SKIPPED
        assert len(_scan(table, DynamoDBService.DONATIONS_TABLE)) == 1

    def test_renewal_falls_back_to_session_metadata(
        self, deliver, sample_user, sample_ngo, mock_stripe_client, db
    ):
        mock_stripe_client.checkout.sessions.list.return_value = {
            "data": [{"id": SESSION_ID, "metadata": {**METADATA, "cadence": "recurring"}}]
        }

        ack = deliver("invoice.payment_succeeded", self._invoice())

        assert ack.processing_result == ProcessingResult.SUCCESS
        assert db.get_donation("DON-in_test_renewal")["donor_id"] == "user-123"

    def test_renewal_without_context_is_skipped(self, deliver, sample_ngo, db):
        ack = deliver("invoice.payment_succeeded", self._invoice())

        assert ack.processing_result == ProcessingResult.SKIPPED
        assert db.get_donation("DON-in_test_renewal") is None

    def _deliver_with(self, reconciler, make_event, encode, sign_payload, invoice) -> Any:
        payload = encode(make_event("invoice.payment_succeeded", invoice, "evt_inv"))
        return reconciler.handle_event(payload, sign_payload(payload))

    def test_renewal_without_currency_uses_subscription_currency(
        self, active_subscription, db, stripe_service, make_event, encode, sign_payload
    ):
        reconciler = WebhookReconciler(
            db=db, stripe_service=stripe_service, settings=Settings(currency="USD")
        )
        invoice = {**self._invoice(), "currency": None}

        ack = self._deliver_with(reconciler, make_event, encode, sign_payload, invoice)

        assert ack.processing_result == ProcessingResult.SUCCESS
        assert db.get_donation("DON-in_test_renewal")["currency"] == "INR"

    def test_renewal_without_any_currency_uses_configured_currency(
        self, sample_user, sample_ngo, mock_stripe_client, db, stripe_service, make_event,
        encode, sign_payload,
    ):
        mock_stripe_client.checkout.sessions.list.return_value = {
            "data": [{"id": SESSION_ID, "metadata": {**METADATA, "cadence": "recurring"}}]
        }
        reconciler = WebhookReconciler(
            db=db, stripe_service=stripe_service, settings=Settings(currency="USD")
        )
        invoice = {**self._invoice(), "currency": None}

        ack = self._deliver_with(reconciler, make_event, encode, sign_payload, invoice)

        assert ack.processing_result == ProcessingResult.SUCCESS
        assert db.get_donation("DON-in_test_renewal")["currency"] == "USD"


# === Expiry and failures ===


class TestSessionExpiryAndFailure:
    def test_expired_moves_pending_to_expired(
        self, deliver, pending_session, checkout_session_object, db
    ):
        pending_session()

        ack = deliver(
            "checkout.session.expired",
            checkout_session_object(payment_status="unpaid", payment_intent=None),
        )

        assert ack.processing_result == ProcessingResult.SUCCESS
        assert _session_row(db)["status"] == "expired"

    def test_expired_does_not_touch_completed_session(
        self, deliver, pending_session, checkout_session_object, db
    ):
        pending_session()
        deliver("checkout.session.completed", checkout_session_object(metadata=METADATA))

        ack = deliver(
            "checkout.session.expired",
            checkout_session_object(payment_status="unpaid"),
            event_id="evt_expired",
        )

        assert ack.processing_result == ProcessingResult.SKIPPED
        assert _session_row(db)["status"] == "completed"

    def test_expired_for_unknown_session_is_skipped(
        self, deliver, checkout_session_object, sample_ngo
    ):
        ack = deliver("checkout.session.expired", checkout_session_object(payment_status="unpaid"))

        assert ack.processing_result == ProcessingResult.SKIPPED

    def test_async_payment_failed_marks_failed(
        self, deliver, pending_session, checkout_session_object, db
    ):
        pending_session()

        ack = deliver(
            "checkout.session.async_payment_failed",
            checkout_session_object(payment_status="unpaid"),
        )

        assert ack.processing_result == ProcessingResult.SUCCESS
        assert _session_row(db)["status"] == "failed"

    def test_payment_intent_failed_marks_session_failed(
        self, deliver, pending_session, mock_stripe_client, db
    ):
        pending_session()
        mock_stripe_client.checkout.sessions.list.return_value = {
            "data": [{"id": SESSION_ID, "metadata": METADATA}]
        }

        ack = deliver(
            "payment_intent.payment_failed",
            {
                "id": "pi_test_456",
                "object": "payment_intent",
                "last_payment_error": {"message": "Your card was declined."},
            },
        )

        assert ack.processing_result == ProcessingResult.SUCCESS
        assert _session_row(db)["status"] == "failed"
        mock_stripe_client.checkout.sessions.list.assert_called_once_with(
            params={"payment_intent": "pi_test_456", "limit": 1}
        )

    def test_failed_session_can_still_complete(
        self, deliver, pending_session, mock_stripe_client, checkout_session_object, db
    ):
        """A declined first attempt followed by a successful retry completes."""
        pending_session()
        mock_stripe_client.checkout.sessions.list.return_value = {
            "data": [{"id": SESSION_ID, "metadata": METADATA}]
        }
        deliver("payment_intent.payment_failed", {"id": "pi_test_456"}, event_id="evt_declined")

        ack = deliver("checkout.session.completed", checkout_session_object(metadata=METADATA))

        assert ack.processing_result == ProcessingResult.SUCCESS
        assert _session_row(db)["status"] == "completed"

    def test_payment_intent_failed_lookup_miss_is_acknowledged(
        self, deliver, sample_ngo
    ):
        ack = deliver("payment_intent.payment_failed", {"id": "pi_unknown"})

        assert ack.processing_result == ProcessingResult.SKIPPED

    def test_payment_intent_failed_stripe_error_is_acknowledged(
        self, deliver, pending_session, mock_stripe_client, db
    ):
        pending_session()
        mock_stripe_client.checkout.sessions.list.side_effect = stripe.StripeError("timeout")

        ack = deliver("payment_intent.payment_failed", {"id": "pi_test_456"})

        assert ack.processing_result == ProcessingResult.SKIPPED
        assert _session_row(db)["status"] == "pending"


# === Authenticity and unknown events ===


class TestSignatureAndDispatch:
    def test_tampered_payload_is_rejected_without_changes(
        self, reconciler, pending_session, make_event, encode, sign_payload,
        checkout_session_object, db, table,
    ):
        pending_session()
        payload = encode(
            make_event("checkout.session.completed", checkout_session_object(metadata=METADATA))
        )
        signature = sign_payload(payload)
        tampered = payload.replace(b'"amount_total": 500', b'"amount_total": 5')

        with pytest.raises(DonationError) as exc_info:
            reconciler.handle_event(tampered, signature)

        assert exc_info.value.code == ErrorCode.INVALID_WEBHOOK_SIGNATURE
        assert _session_row(db)["status"] == "pending"
        assert _scan(table, DynamoDBService.WEBHOOK_EVENTS_TABLE) == []
        assert _scan(table, DynamoDBService.DONATIONS_TABLE) == []

    def test_wrong_secret_is_rejected(
        self, reconciler, make_event, encode, sign_payload, sample_ngo
    ):
        payload = encode(make_event("checkout.session.completed", {"id": SESSION_ID}))

        with pytest.raises(DonationError) as exc_info:
            reconciler.handle_event(payload, sign_payload(payload, secret="whsec_other"))

        assert exc_info.value.code == ErrorCode.INVALID_WEBHOOK_SIGNATURE

    def test_missing_signature_is_rejected(self, reconciler, sample_ngo):
        with pytest.raises(DonationError) as exc_info:
            reconciler.handle_event(b"{}", None)

        assert exc_info.value.code == ErrorCode.INVALID_WEBHOOK_SIGNATURE

    def test_secret_outage_is_a_processing_failure(
        self, reconciler, stripe_service, pending_session, make_event, encode, sign_payload,
        checkout_session_object, db, table,
    ):
        pending_session()
        stripe_service._ssm.get_parameter.side_effect = SSMServiceError("ThrottlingException")
        payload = encode(
            make_event("checkout.session.completed", checkout_session_object(metadata=METADATA))
        )

        with pytest.raises(DonationError) as exc_info:
            reconciler.handle_event(payload, sign_payload(payload))

        assert exc_info.value.code == ErrorCode.WEBHOOK_PROCESSING_FAILED
        assert _session_row(db)["status"] == "pending"
        assert _scan(table, DynamoDBService.WEBHOOK_EVENTS_TABLE) == []

    def test_redelivery_after_secret_outage_succeeds(
        self, reconciler, stripe_service, mock_ssm, pending_session, make_event, encode,
        sign_payload, checkout_session_object, db,
    ):
        pending_session()
        lookup = mock_ssm.get_parameter.side_effect
        mock_ssm.get_parameter.side_effect = SSMServiceError("ThrottlingException")
        payload = encode(
            make_event("checkout.session.completed", checkout_session_object(metadata=METADATA))
        )
        with pytest.raises(DonationError):
            reconciler.handle_event(payload, sign_payload(payload))

        mock_ssm.get_parameter.side_effect = lookup
        ack = reconciler.handle_event(payload, sign_payload(payload))

        assert ack.processing_result == ProcessingResult.SUCCESS
        assert _session_row(db)["status"] == "completed"

    def test_unknown_event_type_is_ignored(self, deliver, table):
        ack = deliver("customer.created", {"id": "cus_test_123"}, event_id="evt_unknown")

        assert ack.processing_result == ProcessingResult.IGNORED
        log = table(DynamoDBService.WEBHOOK_EVENTS_TABLE).get_item(
            Key={"event_id": "evt_unknown"}
        )["Item"]
        assert log["event_type"] == "customer.created"
        assert log["processing_result"] == "ignored"
        assert len(log["payload_hash"]) == 64
