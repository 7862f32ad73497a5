"""Backend services for the Telegram Stars payment gateway.

WebhookHandler is imported from shared.services.webhook_handler directly; it
depends on shared.config, which itself uses the SSM service from this package.
"""

from .dedup import DuplicateSuppressor, InMemoryDuplicateSuppressor
from .fragment_client import FragmentClient
from .fulfillment import FulfillmentOrchestrator, StarsProvisioner
from .notifier import Notifier, TelegramNotifier, UserDirectory
from .order_registry import InMemoryOrderRegistry, OrderStore
from .signatures import (
    WataSignatureVerifier,
    create_kassa_api_signature,
    is_payid19_test_passthrough,
    verify_kassa_webhook_signature,
    verify_payid19_webhook,
    verify_rsa_signature,
)
from .ssm_service import SSMService, SSMServiceError, get_ssm_service
from .transaction_logger import TransactionLogger

__all__ = [
    "DuplicateSuppressor",
    "InMemoryDuplicateSuppressor",
    "FragmentClient",
    "FulfillmentOrchestrator",
    "StarsProvisioner",
    "Notifier",
    "TelegramNotifier",
    "UserDirectory",
    "InMemoryOrderRegistry",
    "OrderStore",
    "WataSignatureVerifier",
    "create_kassa_api_signature",
    "is_payid19_test_passthrough",
    "verify_kassa_webhook_signature",
    "verify_payid19_webhook",
    "verify_rsa_signature",
    "SSMService",
    "SSMServiceError",
    "get_ssm_service",
    "TransactionLogger",
]
