"""Structured logging utilities with correlation ID support.

Provides:
- Correlation ID context management for tracing a webhook delivery end to end
- Structured logging formatter for consistent log output
- Helper functions for webhook and fulfillment logging

Usage:
    from shared.utils.logging import get_logger, set_correlation_id

    # In middleware:
    set_correlation_id(request.headers.get("X-Correlation-ID"))

    # In service code:
    logger = get_logger(__name__)
    logger.info("Provisioning stars", extra={"order_id": "ord-123"})
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Any

# Context variable for correlation ID - async-safe, one value per task
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


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
    """Formatter that prefixes every line with the correlation ID."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = get_correlation_id() or "no-correlation-id"

        base = super().format(record)

        # Prefix for easy grep/filtering across one webhook delivery
        return f"[{record.correlation_id}] {base}"


def configure_logging(level: str = "INFO") -> None:
    """Install the structured formatter on the root logger.

    Safe to call more than once; an existing structured handler is reused.

    Args:
        level: Root log level name (e.g. "INFO", "DEBUG")
    """
    root = logging.getLogger()
    root.setLevel(level.upper())

    for handler in root.handlers:
        if isinstance(handler.formatter, StructuredFormatter):
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


def log_fulfillment_operation(
    logger: logging.Logger,
    operation: str,
    *,
    order_id: str | None = None,
    event_id: str | None = None,
    provider: str | None = None,
    quantity: int | None = None,
    recipient: str | None = None,
    external_order_id: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a fulfillment step with structured context.

    Args:
        logger: Logger instance
        operation: Operation name (e.g., "provision_stars", "notify_success")
        order_id: Order identifier if available
        event_id: Provider transaction/notification ID if available
        provider: Payment provider name
        quantity: Number of stars involved
        recipient: Username receiving the stars
        external_order_id: Fragment order ID on success
        error: Error message if the step failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {"operation": operation}

    if order_id:
        context["order_id"] = order_id
    if event_id:
        context["event_id"] = event_id
    if provider:
        context["provider"] = provider
    if quantity is not None:
        context["quantity"] = quantity
    if recipient:
        context["recipient"] = recipient
    if external_order_id:
        context["external_order_id"] = external_order_id
    if error:
        context["error"] = error

    context.update(extra)

    msg_parts = [f"Fulfillment: {operation}"]
    for key, value in context.items():
        if key != "operation":
            msg_parts.append(f"{key}={value}")

    message = " | ".join(msg_parts)

    if error:
        logger.error(message, extra=context)
    else:
        logger.info(message, extra=context)


def log_webhook_event(
    logger: logging.Logger,
    provider: str,
    event_id: str | None,
    *,
    order_id: str | None = None,
    result: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a webhook delivery with structured context.

    Args:
        logger: Logger instance
        provider: Payment provider (wata, kassa, payid19)
        event_id: Provider notification/transaction ID
        order_id: Associated order ID if available
        result: Processing result (received, success, duplicate, skipped, not_found, error)
        error: Error message if processing failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {
        "provider": provider,
        "event_id": event_id,
    }

    if order_id:
        context["order_id"] = order_id
    if result:
        context["result"] = result
    if error:
        context["error"] = error

    context.update(extra)

    msg_parts = [f"Webhook event: {provider} ({event_id})"]
    if result:
        msg_parts.append(f"result={result}")
    if order_id:
        msg_parts.append(f"order={order_id}")
    if error:
        msg_parts.append(f"error={error}")

    message = " | ".join(msg_parts)

    if result == "error":
        logger.error(message, extra=context)
    elif result in ("duplicate", "skipped", "not_found", "rejected"):
        logger.warning(message, extra=context)
    else:
        logger.info(message, extra=context)
