"""Admin endpoints for operators and the in-process bot.

Provides endpoints for:
- Registering an order intent before a payment link is shown
- Looking up a pending order intent
- Transaction audit statistics
- Fragment wallet balance

Protected by X-Admin-Token when ADMIN_API_TOKEN is configured.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from starlette.status import HTTP_201_CREATED, HTTP_404_NOT_FOUND

from shared.models.audit import TransactionLog, TransactionStats
from shared.models.enums import TransactionStatus
from shared.models.fragment import WalletBalance
from shared.models.orders import MIN_STARS, OrderIntent, generate_order_id
from shared.services.fragment_client import FragmentClient
from shared.services.order_registry import InMemoryOrderRegistry
from shared.services.transaction_logger import TransactionLogger
from shared.utils.logging import get_logger

from api.dependencies import (
    get_fragment_client,
    get_order_registry,
    get_transaction_logger,
    require_admin_token,
)

logger = get_logger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin_token)],
)


# === Request/Response Models ===


class OrderCreateRequest(BaseModel):
    """Order intent registration. order_id is generated when omitted."""

    model_config = ConfigDict(strict=True)

    order_id: str | None = Field(default=None, min_length=1)
    requester_id: int = Field(..., description="Telegram user ID of the buyer")
    chat_id: int | None = None
    quantity: int = Field(..., ge=MIN_STARS, examples=[100])
    is_gift: bool = False
    gift_username: str | None = Field(default=None, examples=["alice"])
    description: str = ""


class TransactionStatsResponse(BaseModel):
    success: bool = True
    data: dict[str, Any]
    message: str = "Transaction statistics retrieved successfully"


# === Orders ===


@router.post(
    "/orders",
    summary="Register a pending order",
    response_model=OrderIntent,
    status_code=HTTP_201_CREATED,
)
async def create_order(
    request: OrderCreateRequest,
    registry: InMemoryOrderRegistry = Depends(get_order_registry),
    audit: TransactionLogger = Depends(get_transaction_logger),
) -> OrderIntent:
    intent = OrderIntent(
        order_id=request.order_id or generate_order_id(),
        requester_id=request.requester_id,
        chat_id=request.chat_id,
        quantity=request.quantity,
        is_gift=request.is_gift,
        gift_username=request.gift_username,
        description=request.description,
    )
    registry.put(intent.order_id, intent)
    audit.log_transaction(
        TransactionLog(
            status=TransactionStatus.PENDING,
            transaction_id=intent.order_id,
            order_id=intent.order_id,
            requester_id=intent.requester_id,
            chat_id=intent.notify_chat_id,
            stars=intent.quantity,
            is_gift=intent.is_gift,
            gift_username=intent.gift_username,
        )
    )
    logger.info(
        "Order intent registered",
        extra={"order_id": intent.order_id, "quantity": intent.quantity, "is_gift": intent.is_gift},
    )
    return intent


@router.get(
    "/orders/{order_id}",
    summary="Get a pending order",
    response_model=OrderIntent,
    responses={404: {"description": "No pending order with this ID"}},
)
async def get_order(
    order_id: str,
    registry: InMemoryOrderRegistry = Depends(get_order_registry),
) -> OrderIntent:
    intent = registry.get(order_id)
    if intent is None:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail=f"Order {order_id} not found")
    return intent


# === Reporting ===


@router.get(
    "/transactions/stats",
    summary="Transaction audit statistics",
    response_model=TransactionStatsResponse,
)
async def transaction_stats(
    audit: TransactionLogger = Depends(get_transaction_logger),
) -> TransactionStatsResponse:
    stats: TransactionStats = audit.get_transaction_stats()
    logger.info("Transaction stats requested")
    return TransactionStatsResponse(data=stats.model_dump(mode="json", by_alias=True))


@router.get(
    "/wallet",
    summary="Fragment wallet balance",
    response_model=WalletBalance,
    responses={
        502: {"description": "Fragment API returned an error"},
        503: {"description": "Fragment API unreachable"},
    },
)
async def wallet_balance(
    fragment: FragmentClient = Depends(get_fragment_client),
) -> WalletBalance:
    return await fragment.get_wallet_balance()
