"""Webhook endpoint for Stripe events.

This endpoint does NOT require JWT authentication; the payload is trusted
only after its Stripe-Signature header is verified against the raw body.
"""

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from donorconnect.models.errors import ErrorResponse
from donorconnect.services.webhook_reconciler import WebhookReconciler
from donorconnect_api.dependencies import get_webhook_reconciler
from donorconnect_api.models.donations import WebhookResponse

router = APIRouter(tags=["webhooks"])


@router.post(
    "/webhooks/stripe",
    summary="Receive Stripe webhook events",
    description="""
Endpoint for Stripe webhook events. Handles:
- checkout.session.completed / async_payment_succeeded: completes the payment session
- checkout.session.expired / async_payment_failed, payment_intent.payment_failed
- customer.subscription.updated / deleted
- invoice.payment_succeeded: records renewal donations

**No authentication required** - signature is verified using Stripe webhook secret.

**Idempotent**: redelivered events return 200 with `already_completed` or `skipped`.
Any 5xx response makes Stripe redeliver the event.
""",
    response_model=WebhookResponse,
    responses={
        200: {"description": "Event received and processed (or acknowledged)"},
        400: {"description": "Invalid signature or missing header", "model": ErrorResponse},
        500: {"description": "Processing failed; Stripe will retry", "model": ErrorResponse},
    },
)
async def handle_stripe_webhook(
    request: Request,
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
) -> WebhookResponse:
    """Verify and reconcile one Stripe event."""
    payload = await request.body()
    signature = request.headers.get("Stripe-Signature")

    ack = await run_in_threadpool(reconciler.handle_event, payload, signature)
    return WebhookResponse(**ack.model_dump())
