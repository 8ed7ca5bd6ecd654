"""Health check endpoint."""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter

from donorconnect.config import get_settings

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    summary="Service health",
    description="Liveness probe. Does not call Stripe or DynamoDB.",
)
async def health() -> dict[str, Any]:
    """Report that the API process is up."""
    return {
        "status": "healthy",
        "environment": get_settings().environment,
        "timestamp": datetime.now(UTC).isoformat(),
    }
