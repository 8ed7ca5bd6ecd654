"""Structured logging utilities with correlation ID support.

Provides:
- Correlation ID context management for request tracing
- Structured logging formatter for consistent log output
- Helper functions for payment, webhook and reconciliation-gap logging

Usage:
    from donorconnect.utils.logging import get_logger, set_correlation_id

    # In middleware/request handler:
    set_correlation_id(request.headers.get("X-Correlation-ID"))

    # In service code:
    logger = get_logger(__name__)
    logger.info("Creating checkout", extra={"payment_session_id": "PS-123"})
"""

import logging
import os
import uuid
from contextvars import ContextVar
from typing import Any

# Context variable for correlation ID - thread-safe and async-safe
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Results that are normal outcomes of redelivery, not failures
_QUIET_RESULTS = {"duplicate", "skipped", "already_completed"}


def generate_correlation_id() -> str:
    """Generate a new correlation ID.

    Returns:
        UUID-based correlation ID string
    """
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set the correlation ID for the current request context.

    Args:
        correlation_id: Optional existing correlation ID. If None, generates new one.

    Returns:
        The correlation ID that was set
    """
    cid = correlation_id or generate_correlation_id()
    _correlation_id.set(cid)
    return cid


def get_correlation_id() -> str | None:
    """Get the current correlation ID."""
    return _correlation_id.get()


def clear_correlation_id() -> None:
    """Clear the correlation ID context."""
    _correlation_id.set(None)


class CorrelationIdFilter(logging.Filter):
    """Logging filter that adds correlation_id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "no-correlation-id"
        return True


class StructuredFormatter(logging.Formatter):
    """Formatter for structured log output with correlation ID."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with a correlation ID prefix.

        Args:
            record: Log record to format

        Returns:
            Formatted log string
        """
        if not hasattr(record, "correlation_id"):
            record.correlation_id = get_correlation_id() or "no-correlation-id"

        base = super().format(record)

        # Prefix for easy grep/filtering
        return f"[{record.correlation_id}] {base}"


def configure_logging(level: str | None = None) -> None:
    """Install the structured formatter on the root logger.

    Safe to call more than once; the handler is only added the first time.

    Args:
        level: Log level name. Defaults to LOG_LEVEL env var, then INFO.
    """
    root = logging.getLogger()
    root.setLevel((level or os.environ.get("LOG_LEVEL", "INFO")).upper())

    if any(isinstance(h.formatter, StructuredFormatter) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter(LOG_FORMAT))
    handler.addFilter(CorrelationIdFilter())
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with correlation ID support.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
        logger.addFilter(CorrelationIdFilter())

    return logger


def _context(**fields: Any) -> dict[str, Any]:
    """Drop unset fields; zero amounts are kept."""
    return {k: v for k, v in fields.items() if v is not None and v != ""}


def _summary(title: str, context: dict[str, Any], skip: tuple[str, ...]) -> str:
    parts = [title] + [f"{k}={v}" for k, v in context.items() if k not in skip]
    return " | ".join(parts)


def log_payment_operation(
    logger: logging.Logger,
    operation: str,
    *,
    payment_session_id: str | None = None,
    stripe_session_id: str | None = None,
    amount: int | None = None,
    status: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log one step of a checkout or completion at INFO, or ERROR when error is set.

    Extra keyword arguments are attached to the record and the message.
    """
    context = _context(
        operation=operation,
        payment_session_id=payment_session_id,
        stripe_session_id=stripe_session_id,
        amount=amount,
        status=status,
        error=error,
        **extra,
    )
    message = _summary(f"Payment operation: {operation}", context, skip=("operation",))
    logger.log(logging.ERROR if error else logging.INFO, message, extra=context)


def log_webhook_event(
    logger: logging.Logger,
    event_type: str,
    event_id: str,
    *,
    stripe_session_id: str | None = None,
    result: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a webhook delivery and its outcome.

    Redelivery outcomes (duplicate, skipped, already_completed) log at WARNING
    so they stand out from first deliveries without paging anyone.
    """
    context = _context(
        event_type=event_type,
        event_id=event_id,
        stripe_session_id=stripe_session_id,
        result=result,
        error=error,
        **extra,
    )
    message = _summary(
        f"Webhook event: {event_type} ({event_id})",
        context,
        skip=("event_type", "event_id"),
    )

    if result == "error":
        level = logging.ERROR
    elif result in _QUIET_RESULTS:
        level = logging.WARNING
    else:
        level = logging.INFO
    logger.log(level, message, extra=context)


def log_reconciliation_gap(
    logger: logging.Logger,
    reason: str,
    *,
    payment_session_id: str | None = None,
    stripe_session_id: str | None = None,
    **extra: Any,
) -> None:
    """Log a mismatch between Stripe and the local record store.

    Gaps need out-of-band reconciliation and are never retried automatically,
    so records carry reconciliation_gap=True for alert filters.
    """
    context = _context(
        reconciliation_gap=True,
        reason=reason,
        payment_session_id=payment_session_id,
        stripe_session_id=stripe_session_id,
        **extra,
    )
    logger.error(
        "RECONCILIATION GAP: %s | payment_session=%s | stripe_session=%s",
        reason,
        payment_session_id,
        stripe_session_id,
        extra=context,
    )
