"""Pydantic models for the Telegram Stars payment gateway."""

from .audit import TransactionLog, TransactionStats
from .enums import (
    FulfillmentState,
    PaymentProvider,
    PaymentStatus,
    ProcessingResult,
    TransactionStatus,
)
from .errors import (
    ERROR_MESSAGES,
    ERROR_RECOVERY,
    ConfigurationError,
    ErrorCode,
    ErrorResponse,
    UpstreamGatewayError,
    UpstreamUnavailableError,
    WebhookError,
)
from .events import FulfillmentResult, PaymentEvent, WebhookAck
from .fragment import SenderInfo, StarsOrder, WalletBalance
from .orders import MIN_STARS, OrderIntent, generate_order_id
from .webhooks import (
    KassaWebhookPayload,
    PayID19WebhookPayload,
    ProviderPayload,
    WataWebhookPayload,
    parse_json_body,
    parse_webhook_payload,
)

__all__ = [
    # Enums
    "FulfillmentState",
    "PaymentProvider",
    "PaymentStatus",
    "ProcessingResult",
    "TransactionStatus",
    # Orders
    "MIN_STARS",
    "OrderIntent",
    "generate_order_id",
    # Events
    "FulfillmentResult",
    "PaymentEvent",
    "WebhookAck",
    # Provider webhooks
    "KassaWebhookPayload",
    "PayID19WebhookPayload",
    "ProviderPayload",
    "WataWebhookPayload",
    "parse_json_body",
    "parse_webhook_payload",
    # Fragment
    "SenderInfo",
    "StarsOrder",
    "WalletBalance",
    # Audit
    "TransactionLog",
    "TransactionStats",
    # Errors
    "ConfigurationError",
    "ErrorCode",
    "ErrorResponse",
    "ERROR_MESSAGES",
    "ERROR_RECOVERY",
    "UpstreamGatewayError",
    "UpstreamUnavailableError",
    "WebhookError",
]
