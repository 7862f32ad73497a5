"""Provider-agnostic payment event and fulfillment result models."""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import FulfillmentState, PaymentProvider, PaymentStatus, ProcessingResult


class PaymentEvent(BaseModel):
    """Normalized view of one verified provider notification.

    Built by the provider payload models; immutable and never persisted
    beyond the audit log.
    """

    model_config = ConfigDict(frozen=True)

    provider: PaymentProvider = Field(..., description="Provider that sent the webhook")
    transaction_id: str = Field(..., description="Provider transaction/notification ID")
    order_id: str | None = Field(
        default=None,
        description="Order ID echoed back by the provider (may be absent)",
    )
    amount: Decimal = Field(..., description="Amount charged")
    currency: str = Field(..., description="Currency of the amount")
    status: PaymentStatus = Field(..., description="Normalized payment status")
    payment_method: str = Field(..., description="Label used in the audit log")
    commission: Decimal | None = Field(default=None, description="Provider fee")
    error_code: str | None = Field(default=None)
    error_description: str | None = Field(default=None)
    payment_time: str | None = Field(default=None)
    raw_payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Original webhook body, retained for audit",
    )

    @property
    def dedup_key(self) -> str:
        """Suppression key for this notification: provider, notification ID and order ID."""
        return f"{self.provider.value}:{self.transaction_id}:{self.order_id or '-'}"


class FulfillmentResult(BaseModel):
    """Outcome of orchestrating one payment event. Transient."""

    model_config = ConfigDict(frozen=True)

    success: bool
    state: FulfillmentState
    order_id: str | None = None
    recipient: str | None = None
    external_order_id: str | None = Field(
        default=None,
        description="Fragment order ID on success",
    )
    error: str | None = None


class WebhookAck(BaseModel):
    """Acknowledgment body returned to the provider for a processed delivery."""

    received: bool = True
    success: bool
    status: str = Field(default="ok", description="Always 'ok'; P2PKassa expects it")
    provider: PaymentProvider | None = None
    event_id: str | None = None
    order_id: str | None = None
    processing_result: ProcessingResult
    message: str | None = None
