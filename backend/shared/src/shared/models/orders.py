"""Order intent model: what the requester asked for before paying."""

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Minimum number of stars Fragment accepts for a single order
MIN_STARS = 50


def generate_order_id(prefix: str = "stars") -> str:
    """Generate a globally unique order identifier.

    Args:
        prefix: Short tag identifying the order source

    Returns:
        Order ID like "stars-1f0c9a3e8b2d4c6f"
    """
    return f"{prefix}-{uuid.uuid4().hex[:16]}"


class OrderIntent(BaseModel):
    """A pending stars purchase awaiting a provider webhook.

    Created when a payment link is presented to the requester and owned by the
    order registry until fulfillment succeeds.
    """

    model_config = ConfigDict(frozen=True)

    order_id: str = Field(..., min_length=1, description="Caller-generated order ID")
    requester_id: int = Field(..., description="Telegram user ID of the buyer")
    chat_id: int | None = Field(
        default=None,
        description="Chat to notify; defaults to the requester's private chat",
    )
    quantity: int = Field(..., ge=MIN_STARS, description="Number of stars to buy")
    is_gift: bool = Field(default=False, description="Stars go to someone else")
    gift_username: str | None = Field(
        default=None,
        description="Recipient username for gifts, without '@'",
        examples=["alice"],
    )
    description: str = Field(default="", description="Free-text order description")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the intent was registered",
    )

    @field_validator("gift_username")
    @classmethod
    def _strip_at_sign(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip().lstrip("@")
        return value or None

    @property
    def notify_chat_id(self) -> int:
        """Chat that receives success/failure messages."""
        return self.chat_id if self.chat_id is not None else self.requester_id
