"""Stripe payment service for customers, prices and checkout sessions.

Provides integration with Stripe using the v8+ StripeClient pattern.
Retrieves API keys from SSM Parameter Store.
"""

import hashlib
import json
import logging
from functools import lru_cache
from typing import Any

import stripe
from stripe import StripeClient

from ..config import Settings, get_settings
from .ssm_service import SSMServiceError, get_ssm_service

logger = logging.getLogger(__name__)


class StripeServiceError(Exception):
    """Raised when a Stripe operation fails."""

    def __init__(self, message: str, stripe_error_code: str | None = None) -> None:
        """Initialize with message and optional Stripe error code.

        Args:
            message: Human-readable error message.
            stripe_error_code: Stripe-specific error code if available.
        """
        super().__init__(message)
        self.stripe_error_code = stripe_error_code


class StripeCredentialsError(StripeServiceError):
    """Raised when the Stripe API key or webhook secret cannot be loaded from SSM."""


def _wrap(action: str, error: stripe.StripeError) -> StripeServiceError:
    error_code = getattr(error, "code", None)
    if error_code is None and isinstance(error, stripe.APIConnectionError):
        # Network failures and client timeouts carry no Stripe code
        error_code = "api_connection_error"
    logger.error("Stripe %s failed: %s (code: %s)", action, str(error), error_code)
    return StripeServiceError(f"Failed to {action}: {error}", stripe_error_code=error_code)


def _ref_id(value: Any) -> str | None:
    if value is None or isinstance(value, str):
        return value
    return value["id"]


class StripeService:
    """Service for Stripe payment operations.

    Handles:
    - Customer lookup/creation by email
    - Per-checkout recurring prices
    - Checkout session creation and lookup
    - Webhook signature validation

    Usage:
        stripe_svc = get_stripe_service()
        session = stripe_svc.create_checkout_session(
            mode="payment",
            line_items=[...],
            metadata={"payment_session_id": "PS-3F2A9C01B7D4"},
            success_url="https://example.com/donation/success",
            cancel_url="https://example.com/donation/cancelled",
            idempotency_key="checkout_PS-3F2A9C01B7D4",
        )
    """

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize Stripe service; credentials are fetched from SSM on first use.

        Args:
            settings: Runtime settings. Defaults to get_settings().
        """
        self._settings = settings or get_settings()
        self._ssm = get_ssm_service()
        self._client: StripeClient | None = None
        self._webhook_secret: str | None = None

    def _get_client(self) -> StripeClient:
        """Get or create the Stripe client (lazy initialization).

        Returns:
            Initialized StripeClient instance.

        Raises:
            StripeCredentialsError: If credentials cannot be retrieved.
        """
        if self._client is None:
            try:
                secret_key = self._ssm.get_parameter(
                    f"{self._settings.ssm_prefix}/stripe/secret_key"
                )
            except SSMServiceError as e:
                raise StripeCredentialsError(f"Failed to initialize Stripe client: {e}") from e
            self._client = StripeClient(
                secret_key,
                http_client=stripe.RequestsClient(
                    timeout=self._settings.stripe_timeout_seconds
                ),
            )
            logger.info(
                "Stripe client initialized for environment: %s",
                self._settings.environment,
            )
        return self._client

    def _get_webhook_secret(self) -> str:
        """Get the webhook signing secret.

        Returns:
            Webhook signing secret.

        Raises:
            StripeCredentialsError: If secret cannot be retrieved.
        """
        if self._webhook_secret is None:
            try:
                self._webhook_secret = self._ssm.get_parameter(
                    f"{self._settings.ssm_prefix}/stripe/webhook_secret"
                )
            except SSMServiceError as e:
                raise StripeCredentialsError(f"Failed to get webhook secret: {e}") from e
        return self._webhook_secret

    def find_or_create_customer(self, email: str, owner_id: str) -> str:
        """Return the Stripe customer for an email, creating one only if none exists.

        Args:
            email: Donor email address.
            owner_id: Internal user ID, stored in customer metadata.

        Returns:
            Stripe customer ID (cus_xxx).

        Raises:
            StripeServiceError: If the lookup or creation fails.
        """
        client = self._get_client()
        try:
            existing = client.customers.list(params={"email": email, "limit": 1})
            if existing["data"]:
                customer_id: str = existing["data"][0]["id"]
                logger.info("Reusing Stripe customer %s for user %s", customer_id, owner_id)
                return customer_id

            customer = client.customers.create(
                params={"email": email, "metadata": {"owner_id": owner_id}}
            )
        except stripe.StripeError as e:
            raise _wrap("resolve customer", e) from e

        logger.info("Created Stripe customer %s for user %s", customer["id"], owner_id)
        return customer["id"]

    def create_recurring_price(
        self,
        *,
        amount: int,
        currency: str,
        product_name: str,
        interval: str = "month",
        metadata: dict[str, str] | None = None,
    ) -> str:
        """Create a recurring price used by a single subscription checkout.

        Args:
            amount: Unit amount in minor currency units.
            currency: ISO currency code.
            product_name: Name of the inline product.
            interval: Billing interval (month or year).
            metadata: Metadata stored on the price.

        Returns:
            Stripe price ID (price_xxx).

        Raises:
            StripeServiceError: If price creation fails.
        """
        client = self._get_client()
        try:
            price = client.prices.create(
                params={
                    "unit_amount": amount,
                    "currency": currency.lower(),
                    "recurring": {"interval": interval},
                    "product_data": {"name": product_name},
                    "metadata": metadata or {},
                }
            )
        except stripe.StripeError as e:
            raise _wrap("create price", e) from e
        return price["id"]

    def create_checkout_session(
        self,
        *,
        mode: str,
        line_items: list[dict[str, Any]],
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        idempotency_key: str,
        customer_id: str | None = None,
        expires_at: int | None = None,
    ) -> dict[str, Any]:
        """Create a Stripe Checkout session.

        Args:
            mode: "payment" or "subscription".
            line_items: Checkout line items.
            metadata: Session metadata echoed back on webhook events.
            success_url: URL to redirect on success (supports {CHECKOUT_SESSION_ID}).
            cancel_url: URL to redirect on cancel.
            idempotency_key: Key that makes SDK retries safe.
            customer_id: Existing Stripe customer (required for subscriptions).
            expires_at: Unix timestamp when the session expires.

        Returns:
            Dict with session details:
                - session_id: Stripe checkout session ID
                - checkout_url: URL to redirect the donor

        Raises:
            StripeServiceError: If session creation fails.
        """
        client = self._get_client()

        params: dict[str, Any] = {
            "mode": mode,
            "line_items": line_items,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
        }
        if customer_id:
            params["customer"] = customer_id
        if expires_at:
            params["expires_at"] = expires_at
        if mode == "subscription":
            # Copy context onto the subscription so renewals can be attributed
            params["subscription_data"] = {"metadata": metadata}
        else:
            params["payment_intent_data"] = {"metadata": metadata}

        try:
            logger.info(
                "Creating Stripe checkout session (%s) with key %s", mode, idempotency_key
            )
            session = client.checkout.sessions.create(
                params=params,
                options={"idempotency_key": idempotency_key},
            )
        except stripe.StripeError as e:
            raise _wrap("create checkout session", e) from e

        logger.info("Checkout session created: %s", session["id"])
        return {"session_id": session["id"], "checkout_url": session["url"]}

    def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        """Retrieve a subscription and flatten the fields stored locally.

        Args:
            subscription_id: Stripe subscription ID (sub_xxx).

        Returns:
            Dict with customer_id, price_id, amount, currency, interval,
            status, cancel_at_period_end, current_period_start/end.

        Raises:
            StripeServiceError: If retrieval fails.
        """
        client = self._get_client()
        try:
            subscription = client.subscriptions.retrieve(subscription_id)
        except stripe.StripeError as e:
            raise _wrap("retrieve subscription", e) from e

        item = subscription["items"]["data"][0]
        price = item["price"]
        recurring = price.get("recurring") or {}
        return {
            "subscription_id": subscription["id"],
            "customer_id": _ref_id(subscription.get("customer")),
            "price_id": price["id"],
            "amount": price.get("unit_amount"),
            "currency": price.get("currency"),
            "interval": recurring.get("interval", "month"),
            "status": subscription.get("status"),
            "cancel_at_period_end": bool(subscription.get("cancel_at_period_end", False)),
            # Newer API versions keep the billing period on the item
            "current_period_start": subscription.get(
                "current_period_start", item.get("current_period_start")
            ),
            "current_period_end": subscription.get(
                "current_period_end", item.get("current_period_end")
            ),
        }

    def find_checkout_session_for_subscription(
        self, subscription_id: str
    ) -> dict[str, Any] | None:
        """Find the checkout session that created a subscription.

        Returns:
            Dict with session_id and metadata, or None if there is none.

        Raises:
            StripeServiceError: If the lookup fails.
        """
        return self._find_checkout_session({"subscription": subscription_id})

    def find_checkout_session_for_payment_intent(
        self, payment_intent_id: str
    ) -> dict[str, Any] | None:
        """Find the checkout session that owns a PaymentIntent.

        Returns:
            Dict with session_id and metadata, or None if there is none.

        Raises:
            StripeServiceError: If the lookup fails.
        """
        return self._find_checkout_session({"payment_intent": payment_intent_id})

    def _find_checkout_session(self, filters: dict[str, str]) -> dict[str, Any] | None:
        client = self._get_client()
        try:
            sessions = client.checkout.sessions.list(params={**filters, "limit": 1})
        except stripe.StripeError as e:
            raise _wrap("list checkout sessions", e) from e

        if not sessions["data"]:
            return None
        session = sessions["data"][0]
        return {
            "session_id": session["id"],
            "metadata": dict(session.get("metadata") or {}),
        }

    def verify_webhook_signature(self, payload: bytes, signature: str) -> dict[str, Any]:
        """Verify a webhook signature and parse the event.

        Args:
            payload: Raw request body bytes.
            signature: Stripe-Signature header value.

        Returns:
            Parsed Stripe event dictionary.

        Raises:
            StripeServiceError: If signature is invalid.
            StripeCredentialsError: If the signing secret cannot be loaded.
        """
        webhook_secret = self._get_webhook_secret()

        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                webhook_secret,
                tolerance=self._settings.webhook_tolerance_seconds,
            )
            event: dict[str, Any] = json.loads(body)
        except (stripe.SignatureVerificationError, ValueError) as e:
            logger.warning("Invalid webhook signature: %s", str(e))
            raise StripeServiceError("Invalid webhook signature") from e

        logger.info("Webhook signature verified for event: %s", event.get("id"))
        return event

    @staticmethod
    def compute_payload_hash(payload: bytes) -> str:
        """Compute SHA-256 hash of webhook payload for the event log.

        Args:
            payload: Raw webhook payload bytes.

        Returns:
            Hex-encoded SHA-256 hash.
        """
        return hashlib.sha256(payload).hexdigest()


@lru_cache(maxsize=1)
def get_stripe_service() -> StripeService:
    """Get the shared StripeService instance (singleton pattern).

    Returns:
        StripeService: Shared service instance.
    """
    return StripeService()
