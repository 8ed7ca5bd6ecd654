"""HTTP-layer error bodies.

Domain models (PaymentSession, Subscription, ...) live in donorconnect.models.
Malformed request bodies are reported with the same envelope as DonationError
responses (success, error_code, message, recovery) plus per-field details.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from donorconnect.models.errors import ERROR_MESSAGES, ERROR_RECOVERY, ErrorCode

__all__ = [
    "ValidationErrorDetail",
    "ValidationErrorResponse",
    "format_validation_errors",
]


class ValidationErrorDetail(BaseModel):
    """One rejected field."""

    model_config = ConfigDict(strict=True)

    field: str = Field(..., description="Request field name as sent", examples=["amount"])
    loc: list[str] = Field(..., examples=[["body", "amount"]])
    msg: str = Field(..., examples=["Input should be a valid integer"])
    type: str = Field(..., examples=["int_type"])


class ValidationErrorResponse(BaseModel):
    """400 body for requests that fail schema validation."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    error_code: str = ErrorCode.INVALID_REQUEST.value
    message: str = ERROR_MESSAGES[ErrorCode.INVALID_REQUEST]
    recovery: str = ERROR_RECOVERY[ErrorCode.INVALID_REQUEST]
    details: list[ValidationErrorDetail] = Field(default_factory=list)


def _field_name(loc: list[str]) -> str:
    # ["body", "amount"] -> "amount"; a bare ["body"] means the whole body
    path = [part for part in loc if part != "body"]
    return ".".join(path) or "body"


def format_validation_errors(errors: list[Any]) -> ValidationErrorResponse:
    """Build the 400 body from RequestValidationError.errors()."""
    details = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", [])]
        details.append(
            ValidationErrorDetail(
                field=_field_name(loc),
                loc=loc,
                msg=str(error.get("msg", "")),
                type=str(error.get("type", "")),
            )
        )
    return ValidationErrorResponse(details=details)
