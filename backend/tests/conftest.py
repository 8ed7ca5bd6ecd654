"""Pytest configuration and fixtures for DonorConnect payments tests.

This module provides reusable fixtures for testing:
- DynamoDB mocking with moto (all payment tables)
- Sample users, NGOs and campaigns
- A StripeService wired to a mocked StripeClient, with real webhook signing
"""

import hashlib
import hmac
import json
import os
import time
from typing import Any, Callable, Generator
from unittest.mock import MagicMock

import boto3
import pytest
from moto import mock_aws

# === Environment Setup ===

# Set environment variables for testing before imports
os.environ.setdefault("AWS_DEFAULT_REGION", "ap-south-1")
os.environ.setdefault("DYNAMODB_TABLE_PREFIX", "test-donorconnect")
os.environ.setdefault("ENVIRONMENT", "dev")

# Fake credentials for moto unless real ones are configured
if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

from donorconnect.config import Settings, get_settings  # noqa: E402
from donorconnect.services.dynamodb import DynamoDBService, reset_dynamodb_service  # noqa: E402
from donorconnect.services.ssm_service import SSMService, get_ssm_service  # noqa: E402
from donorconnect.services.stripe_service import StripeService, get_stripe_service  # noqa: E402

TABLE_PREFIX = os.environ["DYNAMODB_TABLE_PREFIX"]
TEST_WEBHOOK_SECRET = "whsec_test_secret_for_testing"
TEST_SECRET_KEY = "sk_test_abc123"

# Table name (without prefix) -> hash key
TABLE_KEYS = {
    DynamoDBService.USERS_TABLE: "user_id",
    DynamoDBService.NGOS_TABLE: "ngo_id",
    DynamoDBService.CAMPAIGNS_TABLE: "campaign_id",
    DynamoDBService.PAYMENT_SESSIONS_TABLE: "stripe_session_id",
    DynamoDBService.SUBSCRIPTIONS_TABLE: "stripe_subscription_id",
    DynamoDBService.DONATIONS_TABLE: "donation_id",
    DynamoDBService.RECEIPTS_TABLE: "receipt_id",
    DynamoDBService.NOTIFICATIONS_TABLE: "notification_id",
    DynamoDBService.WEBHOOK_EVENTS_TABLE: "event_id",
}


# === Singleton Reset ===


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Reset process-wide singletons before and after each test.

    Tests using mock_aws need services created inside the mock context
    rather than ones cached by a previous test.
    """

    def _reset() -> None:
        reset_dynamodb_service()
        get_settings.cache_clear()
        get_stripe_service.cache_clear()
        get_ssm_service.cache_clear()
        SSMService.reset_instance()

    _reset()
    yield
    _reset()


# === DynamoDB Fixtures ===


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS credentials for moto."""
    if not os.environ.get("AWS_PROFILE"):
        os.environ["AWS_ACCESS_KEY_ID"] = "testing"
        os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
        os.environ["AWS_SECURITY_TOKEN"] = "testing"
        os.environ["AWS_SESSION_TOKEN"] = "testing"


@pytest.fixture
def dynamodb_tables(aws_credentials: None) -> Generator[Any, None, None]:
    """Create every payments table inside a moto mock and yield the resource."""
    with mock_aws():
        resource = boto3.resource("dynamodb")
        for table, key in TABLE_KEYS.items():
            resource.create_table(
                TableName=f"{TABLE_PREFIX}-{table}",
                KeySchema=[{"AttributeName": key, "KeyType": "HASH"}],
                AttributeDefinitions=[{"AttributeName": key, "AttributeType": "S"}],
                BillingMode="PAY_PER_REQUEST",
            )
        yield resource


@pytest.fixture
def db(dynamodb_tables: Any) -> DynamoDBService:
    """DynamoDBService bound to the mocked tables."""
    return DynamoDBService()


@pytest.fixture
def table(dynamodb_tables: Any) -> Callable[[str], Any]:
    """Return a raw boto3 Table by unprefixed name, for assertions."""
    return lambda name: dynamodb_tables.Table(f"{TABLE_PREFIX}-{name}")


# === Sample Data ===


@pytest.fixture
def sample_user(db: DynamoDBService) -> dict[str, Any]:
    user = {
        "user_id": "user-123",
        "email": "donor@example.com",
        "name": "Asha Donor",
        "user_type": "donor",
    }
    db.put_item(DynamoDBService.USERS_TABLE, user)
    return user


@pytest.fixture
def sample_ngo(db: DynamoDBService) -> dict[str, Any]:
    ngo = {
        "ngo_id": "N1",
        "name": "Helping Hands",
        "total_donations_received": 0,
        "total_amount_raised": 0,
    }
    db.put_item(DynamoDBService.NGOS_TABLE, ngo)
    return ngo


@pytest.fixture
def sample_campaign(db: DynamoDBService, sample_ngo: dict[str, Any]) -> dict[str, Any]:
    campaign = {
        "campaign_id": "C1",
        "ngo_id": sample_ngo["ngo_id"],
        "title": "Books for All",
        "goal_amount": 1_000_000,
        "raised_amount": 0,
        "total_donors": 0,
    }
    db.put_item(DynamoDBService.CAMPAIGNS_TABLE, campaign)
    return campaign


# === Stripe Fixtures ===


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def mock_stripe_client() -> MagicMock:
    """Mocked StripeClient; responses are plain dicts like StripeObjects."""
    client = MagicMock()
    client.customers.list.return_value = {"data": []}
    client.customers.create.return_value = {"id": "cus_test_123"}
    client.prices.create.return_value = {"id": "price_test_123"}
    client.checkout.sessions.create.return_value = {
        "id": "cs_test_abc123",
        "url": "https://checkout.stripe.com/c/pay/cs_test_abc123",
    }
    client.checkout.sessions.list.return_value = {"data": []}
    return client


@pytest.fixture
def mock_ssm() -> MagicMock:
    ssm = MagicMock()
    ssm.get_parameter.side_effect = lambda name: {
        "/donorconnect/dev/stripe/secret_key": TEST_SECRET_KEY,
        "/donorconnect/dev/stripe/webhook_secret": TEST_WEBHOOK_SECRET,
    }[name]
    return ssm


@pytest.fixture
def stripe_service(
    settings: Settings, mock_ssm: MagicMock, mock_stripe_client: MagicMock
) -> StripeService:
    """StripeService using mocked SSM and StripeClient; signatures are checked for real."""
    service = StripeService(settings=settings)
    service._ssm = mock_ssm
    service._client = mock_stripe_client
    return service


# === Webhook Helpers ===


@pytest.fixture
def sign_payload() -> Callable[..., str]:
    """Build a valid Stripe-Signature header for a payload.

    Stripe signatures use HMAC-SHA256 with format: t={timestamp},v1={signature}
    """

    def _sign(payload: bytes, secret: str = TEST_WEBHOOK_SECRET, timestamp: int | None = None) -> str:
        ts = str(timestamp if timestamp is not None else int(time.time()))
        signed_payload = f"{ts}.{payload.decode('utf-8')}"
        signature = hmac.new(
            secret.encode("utf-8"),
            signed_payload.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return f"t={ts},v1={signature}"

    return _sign


@pytest.fixture
def make_event() -> Callable[..., dict[str, Any]]:
    """Build a Stripe event envelope around a data object."""

    def _make(event_type: str, data_object: dict[str, Any], event_id: str = "evt_test_1") -> dict[str, Any]:
        return {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "created": int(time.time()),
            "livemode": False,
            "data": {"object": data_object},
        }

    return _make


@pytest.fixture
def checkout_session_object() -> Callable[..., dict[str, Any]]:
    """Build a Checkout Session data object."""

    def _session(
        session_id: str = "cs_test_abc123",
        *,
        mode: str = "payment",
        payment_status: str = "paid",
        payment_intent: str | None = "pi_test_456",
        customer: str | None = None,
        subscription: str | None = None,
        amount_total: int = 500,
        metadata: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        return {
            "id": session_id,
            "object": "checkout.session",
            "mode": mode,
            "status": "complete",
            "payment_status": payment_status,
            "payment_intent": payment_intent,
            "customer": customer,
            "subscription": subscription,
            "amount_total": amount_total,
            "currency": "inr",
            "metadata": metadata or {},
        }

    return _session


@pytest.fixture
def encode() -> Callable[[dict[str, Any]], bytes]:
    return lambda event: json.dumps(event).encode("utf-8")
