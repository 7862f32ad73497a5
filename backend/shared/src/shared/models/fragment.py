"""Fragment API response models."""

from pydantic import BaseModel, ConfigDict, Field


class SenderInfo(BaseModel):
    """Account that paid for a stars order, shown to the recipient if revealed."""

    model_config = ConfigDict(extra="ignore")

    phone_number: str | None = None
    name: str | None = None


class StarsOrder(BaseModel):
    """Result of POST /order/stars/."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    success: bool = Field(..., description="Whether Fragment accepted the order")
    id: str = Field(..., description="Fragment order ID")
    receiver: str | None = Field(default=None, description="Recipient peer reference")
    goods_quantity: int = Field(..., description="Number of stars delivered")
    username: str = Field(..., description="Recipient username")
    sender: SenderInfo | None = None
    ton_price: str | None = Field(default=None, description="Cost in TON")
    ref_id: str | None = None


class WalletBalance(BaseModel):
    """Result of GET /misc/wallet/."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    balance: str = Field(..., description="TON balance", examples=["12.5"])
    address: str = Field(..., description="Wallet address")
