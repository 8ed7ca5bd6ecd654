"""Standard error codes for the DonorConnect payments API.

All services raise DonationError with one of these codes; the API layer maps
codes to HTTP status and renders an ErrorResponse body.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Standard error codes."""

    # Donation request errors (ERR_001-ERR_004)
    INVALID_AMOUNT = "ERR_001"
    INVALID_REQUEST = "ERR_002"
    TARGET_NOT_FOUND = "ERR_003"
    PAYMENT_SESSION_NOT_FOUND = "ERR_004"

    # Authentication error codes
    AUTH_REQUIRED = "ERR_AUTH_001"

    # Stripe/Payment error codes (ERR_STRIPE_001-ERR_STRIPE_004)
    INVALID_WEBHOOK_SIGNATURE = "ERR_STRIPE_001"
    STRIPE_API_ERROR = "ERR_STRIPE_002"
    LOCAL_PERSISTENCE_FAILED = "ERR_STRIPE_003"
    WEBHOOK_PROCESSING_FAILED = "ERR_STRIPE_004"


# Human-readable error messages
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.INVALID_AMOUNT: "Donation amount is outside the allowed range",
    ErrorCode.INVALID_REQUEST: "Donation request is invalid",
    ErrorCode.TARGET_NOT_FOUND: "Donation target not found",
    ErrorCode.PAYMENT_SESSION_NOT_FOUND: "Payment session not found",
    ErrorCode.AUTH_REQUIRED: "Authentication required to perform this action",
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: "Invalid webhook signature",
    ErrorCode.STRIPE_API_ERROR: "Payment processor error occurred",
    ErrorCode.LOCAL_PERSISTENCE_FAILED: "Payment session could not be recorded",
    ErrorCode.WEBHOOK_PROCESSING_FAILED: "Webhook event could not be processed",
}

# Recovery suggestions shown to clients
ERROR_RECOVERY: dict[ErrorCode, str] = {
    ErrorCode.INVALID_AMOUNT: "Choose an amount within the allowed minimum and maximum",
    ErrorCode.INVALID_REQUEST: "Check the donation details and try again",
    ErrorCode.TARGET_NOT_FOUND: "Verify the NGO or campaign still exists",
    ErrorCode.PAYMENT_SESSION_NOT_FOUND: "Verify the checkout session ID",
    ErrorCode.AUTH_REQUIRED: "Sign in again and retry",
    ErrorCode.INVALID_WEBHOOK_SIGNATURE: "Verify webhook secret configuration",
    ErrorCode.STRIPE_API_ERROR: "Try again; no payment was taken",
    ErrorCode.LOCAL_PERSISTENCE_FAILED: "Start a new donation; no payment was taken",
    ErrorCode.WEBHOOK_PROCESSING_FAILED: "The event will be redelivered by Stripe",
}


class ErrorResponse(BaseModel):
    """Standard error response body for API failures."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    error_code: ErrorCode
    message: str
    recovery: str
    details: Optional[dict[str, str]] = None

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ) -> "ErrorResponse":
        """Create an ErrorResponse from an error code.

        Args:
            code: The error code
            details: Optional additional context about the error

        Returns:
            An ErrorResponse with the message and recovery hint for the code.
        """
        return cls(
            error_code=code,
            message=ERROR_MESSAGES[code],
            recovery=ERROR_RECOVERY[code],
            details=details,
        )


class DonationError(Exception):
    """Exception raised by donation and payment operations.

    Can be caught and converted to an ErrorResponse for API responses.
    """

    def __init__(
        self,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ):
        self.code = code
        self.message = ERROR_MESSAGES[code]
        self.recovery = ERROR_RECOVERY[code]
        self.details = details
        super().__init__(self.message)

    def to_error_response(self) -> ErrorResponse:
        """Convert this exception to an ErrorResponse."""
        return ErrorResponse.from_code(self.code, self.details)


# Stripe error code to user-friendly message mapping
STRIPE_ERROR_MESSAGES: dict[str, str] = {
    "amount_too_small": "The donation amount is below the minimum Stripe accepts.",
    "amount_too_large": "The donation amount is above the maximum Stripe accepts.",
    "currency_not_supported": "This currency is not supported for card donations.",
    "email_invalid": "The email address on your account is not valid for payments.",
    "processing_error": "A processing error occurred. Please try again.",
    "rate_limit": "Too many requests. Please wait a moment and try again.",
}

# Stripe error codes that indicate the donor can simply retry
STRIPE_RETRYABLE_ERRORS: set[str] = {
    "processing_error",
    "rate_limit",
    "lock_timeout",
    "api_connection_error",
}


def get_user_friendly_stripe_message(
    stripe_error_code: Optional[str],
    default_message: str = "The donation could not be started. Please try again.",
) -> str:
    """Get a user-friendly message for a Stripe error code.

    Args:
        stripe_error_code: The Stripe error code (e.g., 'amount_too_small').
        default_message: Message to use if error code is unknown.

    Returns:
        User-friendly error message.
    """
    if stripe_error_code and stripe_error_code in STRIPE_ERROR_MESSAGES:
        return STRIPE_ERROR_MESSAGES[stripe_error_code]
    return default_message


def is_stripe_error_retryable(stripe_error_code: Optional[str]) -> bool:
    """Check if a Stripe error is likely transient and retryable."""
    return stripe_error_code in STRIPE_RETRYABLE_ERRORS if stripe_error_code else False
