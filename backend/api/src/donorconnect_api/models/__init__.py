"""API-specific request/response models.

Domain models (PaymentSession, Subscription, ...) are in donorconnect.models
and are reused here where appropriate.

Modules:
- common: Validation error bodies
- donations: Checkout, session status and webhook bodies
"""

__all__: list[str] = []
