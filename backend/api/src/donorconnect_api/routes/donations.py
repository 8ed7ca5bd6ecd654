"""Donation checkout endpoints.

Provides REST endpoints for:
- Starting a Stripe Checkout session for a one-time or monthly donation (auth required)
- Reading the status of the caller's payment session (auth required)

The success page is driven by the Stripe redirect, not by webhook
completion; the status endpoint only reports what has been reconciled so far.
"""

from typing import Any

from fastapi import APIRouter, Depends, Request
from starlette.status import HTTP_200_OK

from donorconnect.models.errors import ErrorResponse
from donorconnect.services.checkout_service import CheckoutService
from donorconnect_api.dependencies import get_checkout_service, require_user
from donorconnect_api.models.common import ValidationErrorResponse
from donorconnect_api.models.donations import (
    CheckoutRequestBody,
    CheckoutResponse,
    PaymentSessionResponse,
)

router = APIRouter(tags=["donations"])


# Blocking Stripe and DynamoDB calls: plain def routes run in the threadpool


@router.post(
    "/donations/checkout",
    summary="Start a donation checkout",
    description="""
Create a Stripe Checkout session for a donation and record it as pending.

**Requires JWT authentication.**

**Notes:**
- Amounts are integers in minor currency units (paise for INR)
- `donationType: recurring` creates a monthly subscription checkout
- Redirect the donor to `redirectUrl`; completion arrives by webhook
""",
    response_model=CheckoutResponse,
    status_code=HTTP_200_OK,
    responses={
        400: {"description": "Invalid amount or request body", "model": ValidationErrorResponse},
        401: {"description": "Authentication required", "model": ErrorResponse},
        404: {"description": "Donation target not found", "model": ErrorResponse},
        500: {"description": "Stripe or local persistence failure", "model": ErrorResponse},
    },
)
def create_checkout(
    request: Request,
    body: CheckoutRequestBody,
    user: dict[str, Any] = Depends(require_user),
    checkout_service: CheckoutService = Depends(get_checkout_service),
) -> CheckoutResponse:
    """Start a checkout for the authenticated donor."""
    result = checkout_service.initiate_checkout(
        user,
        body.to_checkout_request(),
        origin=request.headers.get("origin"),
    )
    return CheckoutResponse(
        session_id=result.stripe_session_id,
        redirect_url=result.redirect_url,
    )


@router.get(
    "/donations/sessions/{session_id}",
    summary="Get payment session status",
    description="""
Get the status of one of the caller's payment sessions by Stripe session ID.

**Requires JWT authentication.** Sessions owned by other users return 404.
""",
    response_model=PaymentSessionResponse,
    responses={
        401: {"description": "Authentication required", "model": ErrorResponse},
        404: {"description": "Payment session not found", "model": ErrorResponse},
    },
)
def get_payment_session(
    session_id: str,
    user: dict[str, Any] = Depends(require_user),
    checkout_service: CheckoutService = Depends(get_checkout_service),
) -> PaymentSessionResponse:
    """Return the caller's payment session."""
    session = checkout_service.get_session_status(user["user_id"], session_id)
    return PaymentSessionResponse.from_session(session)
