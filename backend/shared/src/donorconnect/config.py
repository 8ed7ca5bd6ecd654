"""Runtime settings for the payments core.

Settings are read from environment variables once per process. Secrets
(Stripe keys) are not here; they come from SSM via StripeService.
"""

import os
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Settings(BaseModel):
    """Process-wide configuration."""

    model_config = ConfigDict(frozen=True)

    environment: str = Field(default="dev", description="Deployment environment (dev, prod)")
    currency: str = Field(default="INR", description="Checkout currency (ISO code)")
    min_amount: int = Field(default=100, gt=0, description="Minimum donation, minor units")
    max_amount: int = Field(default=10_000_000, gt=0, description="Maximum donation, minor units")
    app_base_url: str = Field(
        default="http://localhost:3000",
        description="Fallback origin for checkout redirect URLs",
    )
    stripe_timeout_seconds: float = Field(default=10.0, gt=0)
    webhook_tolerance_seconds: int = Field(default=300, gt=0)
    checkout_session_ttl_seconds: int = Field(
        default=1800,
        ge=1800,
        description="Stripe requires checkout sessions to live at least 30 minutes",
    )

    @model_validator(mode="after")
    def _check_amount_bounds(self) -> "Settings":
        if self.min_amount > self.max_amount:
            raise ValueError("DONATION_MIN_AMOUNT must not exceed DONATION_MAX_AMOUNT")
        return self

    @property
    def ssm_prefix(self) -> str:
        return f"/donorconnect/{self.environment}"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, keeping defaults for unset ones."""
        env_map = {
            "environment": "ENVIRONMENT",
            "currency": "DONATION_CURRENCY",
            "min_amount": "DONATION_MIN_AMOUNT",
            "max_amount": "DONATION_MAX_AMOUNT",
            "app_base_url": "APP_BASE_URL",
            "stripe_timeout_seconds": "STRIPE_TIMEOUT_SECONDS",
            "webhook_tolerance_seconds": "STRIPE_WEBHOOK_TOLERANCE_SECONDS",
            "checkout_session_ttl_seconds": "CHECKOUT_SESSION_TTL_SECONDS",
        }
        values = {
            field: os.environ[var] for field, var in env_map.items() if os.environ.get(var)
        }
        return cls.model_validate(values)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the shared Settings instance (call get_settings.cache_clear() in tests)."""
    return Settings.from_env()
