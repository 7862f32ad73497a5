"""Inbound webhook payload models, one per payment provider.

Each model validates the provider's documented shape and converts itself to a
provider-agnostic PaymentEvent. parse_webhook_payload() implements the
shape-based dispatch used by the shared root endpoint.
"""

import json
from decimal import Decimal
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .enums import PaymentProvider, PaymentStatus
from .errors import ErrorCode, WebhookError
from .events import PaymentEvent


def parse_json_body(raw_body: bytes) -> dict[str, Any]:
    """Decode a webhook body into a JSON object.

    Raises:
        WebhookError: MALFORMED_PAYLOAD if the body is not a JSON object
    """
    try:
        data = json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise WebhookError(ErrorCode.MALFORMED_PAYLOAD, {"reason": "Body is not valid JSON"}) from e
    if not isinstance(data, dict):
        raise WebhookError(ErrorCode.MALFORMED_PAYLOAD, {"reason": "Body must be a JSON object"})
    return data


# Provider fields are sometimes numeric, sometimes strings
_PAYLOAD_CONFIG = ConfigDict(
    populate_by_name=True,
    extra="allow",
    coerce_numbers_to_str=True,
)


class WataWebhookPayload(BaseModel):
    """WATA notification (card/SBP). Signed with RSA over the raw body."""

    model_config = _PAYLOAD_CONFIG

    transaction_type: str = Field(..., alias="transactionType", examples=["SBP", "CardCrypto"])
    transaction_id: str = Field(..., alias="transactionId")
    transaction_status: str = Field(..., alias="transactionStatus", examples=["Paid", "Declined"])
    order_id: str | None = Field(default=None, alias="orderId")
    amount: Decimal
    currency: str
    terminal_public_id: str | None = Field(default=None, alias="terminalPublicId")
    terminal_name: str | None = Field(default=None, alias="terminalName")
    order_description: str | None = Field(default=None, alias="orderDescription")
    commission: Decimal | None = None
    payment_time: str | None = Field(default=None, alias="paymentTime")
    error_code: str | None = Field(default=None, alias="errorCode")
    error_description: str | None = Field(default=None, alias="errorDescription")
    email: str | None = None

    @property
    def payment_status(self) -> PaymentStatus | None:
        """Normalized status, or None for intermediate states such as Pending."""
        return {
            "paid": PaymentStatus.PAID,
            "declined": PaymentStatus.DECLINED,
        }.get(self.transaction_status.lower())

    def to_payment_event(self, raw: dict[str, Any]) -> PaymentEvent:
        status = self.payment_status
        if status is None:
            raise ValueError(f"WATA status {self.transaction_status!r} is not terminal")
        return PaymentEvent(
            provider=PaymentProvider.WATA,
            transaction_id=self.transaction_id,
            order_id=self.order_id,
            amount=self.amount,
            currency=self.currency,
            status=status,
            payment_method=self.transaction_type or "WATA",
            commission=self.commission,
            error_code=self.error_code,
            error_description=self.error_description,
            payment_time=self.payment_time,
            raw_payload=raw,
        )


class KassaWebhookPayload(BaseModel):
    """P2PKassa notification. Sent only for successful payments."""

    model_config = _PAYLOAD_CONFIG

    id: str = Field(..., min_length=1, description="Payment UUID in P2PKassa")
    order_id: str = Field(..., min_length=1)
    project_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    currency: str = Field(..., min_length=1)
    sign: str = Field(..., min_length=1, description="SHA-256 signature (hex)")
    amount_pay: Decimal | None = None
    currency_pay: str | None = None
    create_date_time: str | None = Field(default=None, alias="createDateTime")

    def to_payment_event(self, raw: dict[str, Any]) -> PaymentEvent:
        return PaymentEvent(
            provider=PaymentProvider.KASSA,
            transaction_id=self.id,
            order_id=self.order_id,
            amount=self.amount,
            currency=self.currency,
            status=PaymentStatus.PAID,
            payment_method="P2PKassa",
            payment_time=self.create_date_time,
            raw_payload=raw,
        )


class PayID19WebhookPayload(BaseModel):
    """PayID19 crypto invoice notification. Sent only for paid invoices."""

    model_config = _PAYLOAD_CONFIG

    id: str = Field(..., min_length=1, description="Invoice ID")
    order_id: str | None = None
    price_amount: Decimal
    price_currency: str = "USD"
    private_key: str | None = Field(default=None, repr=False)
    amount: Decimal | None = None
    amount_currency: str | None = None
    test: int = 0
    description: str | None = None
    created_at: str | None = None
    ip: str | None = None
    email: str | None = None

    @property
    def is_test(self) -> bool:
        return self.test == 1

    def to_payment_event(self, raw: dict[str, Any]) -> PaymentEvent:
        # Never keep the echoed private key in the audit trail
        audit_payload = {k: v for k, v in raw.items() if k != "private_key"}
        return PaymentEvent(
            provider=PaymentProvider.PAYID19,
            transaction_id=self.id,
            order_id=self.order_id,
            amount=self.price_amount,
            currency=self.price_currency,
            status=PaymentStatus.PAID,
            payment_method="PayID19-Crypto",
            payment_time=self.created_at,
            raw_payload=audit_payload,
        )


ProviderPayload = Union[WataWebhookPayload, KassaWebhookPayload, PayID19WebhookPayload]


def _matches_payid19_root_shape(payload: PayID19WebhookPayload) -> bool:
    # The root endpoint only accepts PayID19 bodies that carry everything
    # needed for verification and correlation
    return bool(payload.order_id and payload.private_key)


def parse_webhook_payload(data: dict[str, Any]) -> ProviderPayload | None:
    """Parse an unlabelled webhook body as the first provider shape that fits.

    Priority order: WATA, P2PKassa, PayID19.

    Args:
        data: Decoded JSON body

    Returns:
        The matching provider payload, or None for an unrecognized shape.
    """
    for model in (WataWebhookPayload, KassaWebhookPayload, PayID19WebhookPayload):
        try:
            payload = model.model_validate(data)
        except ValidationError:
            continue
        if isinstance(payload, PayID19WebhookPayload) and not _matches_payid19_root_shape(payload):
            continue
        return payload
    return None
