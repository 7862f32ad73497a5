"""Transaction audit log records and statistics."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import TransactionStatus


class TransactionLog(BaseModel):
    """One line of the append-only transaction audit log."""

    model_config = ConfigDict(extra="ignore")

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: TransactionStatus
    transaction_id: str
    order_id: str | None = None
    amount: Decimal | None = None
    currency: str | None = None
    payment_method: str | None = None

    requester_id: int | None = None
    chat_id: int | None = None
    recipient_username: str | None = None
    stars: int | None = Field(default=None, description="Star count of the order")
    is_gift: bool | None = None
    gift_username: str | None = None

    error_code: str | None = None
    error_description: str | None = None
    commission: Decimal | None = None

    fragment_order_id: str | None = None
    processing_error: str | None = None

    webhook_data: dict[str, Any] | None = Field(
        default=None,
        description="Raw webhook payload",
    )


class TransactionStats(BaseModel):
    """Aggregate counters over the audit log, served by the admin API."""

    total: int = 0
    paid: int = 0
    declined: int = 0
    pending: int = 0
    error: int = 0
    total_amount: Decimal = Field(default=Decimal("0"), serialization_alias="totalAmount")
    total_stars: int = Field(default=0, serialization_alias="totalStars")
