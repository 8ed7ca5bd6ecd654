"""FastAPI dependency injection providers for shared services.

Services are lazily instantiated once per process and cached with @lru_cache.
They hold clients only, never session or subscription state, so one instance
is safe to share across concurrent requests.

Service Dependency Graph:
    Settings (get_settings)
    DynamoDBService (singleton via get_dynamodb_service)
    StripeService (singleton via get_stripe_service)
        ├── CheckoutService
        └── WebhookReconciler
                └── ReceiptService

Testing:
    Use reset_services() to clear cached instances between tests.
"""

from functools import lru_cache
from typing import Any

from fastapi import Request

from donorconnect.config import get_settings
from donorconnect.models.errors import DonationError, ErrorCode
from donorconnect.services.checkout_service import CheckoutService
from donorconnect.services.dynamodb import get_dynamodb_service
from donorconnect.services.receipt_service import ReceiptService
from donorconnect.services.stripe_service import get_stripe_service
from donorconnect.services.webhook_reconciler import WebhookReconciler

# Set by the API Gateway JWT authorizer from the token's sub claim
USER_SUB_HEADER = "x-user-sub"


@lru_cache
def get_checkout_service() -> CheckoutService:
    """Get cached CheckoutService instance."""
    return CheckoutService(
        db=get_dynamodb_service(),
        stripe_service=get_stripe_service(),
        settings=get_settings(),
    )


@lru_cache
def get_webhook_reconciler() -> WebhookReconciler:
    """Get cached WebhookReconciler instance."""
    db = get_dynamodb_service()
    return WebhookReconciler(
        db=db,
        stripe_service=get_stripe_service(),
        receipts=ReceiptService(db),
    )


def require_user(request: Request) -> dict[str, Any]:
    """Resolve the authenticated donor from the authorizer header.

    Raises:
        DonationError: AUTH_REQUIRED if the header is missing or the user is unknown
    """
    user_sub = request.headers.get(USER_SUB_HEADER)
    if not user_sub:
        raise DonationError(ErrorCode.AUTH_REQUIRED)

    user = get_dynamodb_service().get_user(user_sub)
    if not user:
        raise DonationError(ErrorCode.AUTH_REQUIRED, {"message": "Unknown user"})
    return user


def reset_services() -> None:
    """Clear all cached service instances.

    Call this in test fixtures to ensure clean state between tests.
    Also resets the underlying DynamoDB, Stripe and settings singletons.
    """
    from donorconnect.services.dynamodb import reset_dynamodb_service
    from donorconnect.services.ssm_service import SSMService, get_ssm_service

    get_checkout_service.cache_clear()
    get_webhook_reconciler.cache_clear()
    get_stripe_service.cache_clear()
    get_ssm_service.cache_clear()
    get_settings.cache_clear()
    SSMService.reset_instance()
    reset_dynamodb_service()
