"""API routes package.

Routers are organized by domain:

- health: Health check endpoint
- donations: Checkout initiation and payment session status
- webhooks: Stripe webhook receiver

All routers are registered in main.py with /api prefix.
"""

from donorconnect_api.routes.donations import router as donations_router
from donorconnect_api.routes.health import router as health_router
from donorconnect_api.routes.webhooks import router as webhooks_router

__all__ = [
    "donations_router",
    "health_router",
    "webhooks_router",
]
