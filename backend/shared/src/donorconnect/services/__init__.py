"""Backend services for DonorConnect payments."""

from .checkout_service import CheckoutService
from .dynamodb import DynamoDBService, get_dynamodb_service, reset_dynamodb_service
from .receipt_service import ReceiptService
from .ssm_service import SSMService, SSMServiceError, get_ssm_service
from .stripe_service import (
    StripeCredentialsError,
    StripeService,
    StripeServiceError,
    get_stripe_service,
)
from .webhook_reconciler import WebhookReconciler

__all__ = [
    "CheckoutService",
    "DynamoDBService",
    "get_dynamodb_service",
    "reset_dynamodb_service",
    "ReceiptService",
    "SSMService",
    "SSMServiceError",
    "get_ssm_service",
    "StripeService",
    "StripeCredentialsError",
    "StripeServiceError",
    "get_stripe_service",
    "WebhookReconciler",
]
