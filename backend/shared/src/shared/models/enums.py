"""Enumeration types for gateway data models."""

from enum import Enum


class PaymentProvider(str, Enum):
    """Payment providers that deliver webhooks."""

    WATA = "wata"
    KASSA = "kassa"
    PAYID19 = "payid19"


class PaymentStatus(str, Enum):
    """Normalized payment outcome reported by a provider."""

    PAID = "paid"
    DECLINED = "declined"


class ProcessingResult(str, Enum):
    """Outcome of handling one webhook delivery, echoed in the acknowledgment."""

    SUCCESS = "success"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"
    NOT_FOUND = "not_found"
    DECLINED = "declined"
    ERROR = "error"


class FulfillmentState(str, Enum):
    """Orchestrator state for one payment event."""

    RECEIVED = "received"
    VERIFIED = "verified"
    DEDUPED = "deduped"
    CORRELATED = "correlated"
    PROVISIONING = "provisioning"
    NOTIFIED_SUCCESS = "notified_success"
    NOTIFIED_FAILURE = "notified_failure"
    UNCORRELATED = "uncorrelated"
    DECLINED = "declined"


class TransactionStatus(str, Enum):
    """Status written to the transaction audit log."""

    PAID = "PAID"
    DECLINED = "DECLINED"
    PENDING = "PENDING"
    ERROR = "ERROR"
    WEBHOOK_SUCCESS = "WEBHOOK_SUCCESS"
    WEBHOOK_FAILED = "WEBHOOK_FAILED"
