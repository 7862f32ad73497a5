"""Webhook endpoints for payment providers.

Provides endpoints for:
- WATA (card/SBP), RSA-signed raw body
- P2PKassa (card), SHA-256 "sign" field
- PayID19 (crypto), echoed merchant private key
- POST / for providers configured with the bare service URL

These endpoints do NOT require authentication as they receive signed
payloads from external services. Bodies are read raw so signatures are
checked against the exact bytes the provider sent.
"""

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from shared.models.events import WebhookAck
from shared.services.webhook_handler import WebhookHandler
from shared.utils.logging import get_logger

from api.dependencies import get_webhook_handler

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])

WATA_SIGNATURE_HEADER = "X-Signature"


# === Response Models ===


class WebhookErrorResponse(BaseModel):
    """Error response for rejected webhooks."""

    success: bool = False
    error_code: str
    message: str
    recovery: str | None = None


_RESPONSES = {
    200: {
        "description": "Delivery received and processed (or acknowledged)",
        "model": WebhookAck,
    },
    400: {
        "description": "Invalid signature or malformed payload",
        "model": WebhookErrorResponse,
    },
}


# === Webhook Endpoints ===


@router.post(
    "/webhooks/wata",
    summary="Receive WATA payment notifications",
    description="""
Signature: base64 RSA-SHA512 over the raw body in the `X-Signature` header.

Handles `Paid` (stars are provisioned) and `Declined` (buyer is notified).
Other statuses are acknowledged and skipped.

**Idempotent**: a repeated notification returns 200 with 'duplicate' result.
""",
    response_model=WebhookAck,
    responses=_RESPONSES,
)
async def wata_webhook(
    request: Request,
    handler: WebhookHandler = Depends(get_webhook_handler),
) -> WebhookAck:
    raw_body = await request.body()
    return await handler.handle_wata(raw_body, request.headers.get(WATA_SIGNATURE_HEADER))


@router.post(
    "/webhooks/kassa",
    summary="Receive P2PKassa payment notifications",
    description="""
Signature: SHA-256 of the merchant API key and payment fields in `sign`.

P2PKassa only notifies successful payments. The response carries
`"status": "ok"`, which P2PKassa requires to stop retrying.
""",
    response_model=WebhookAck,
    responses=_RESPONSES,
)
async def kassa_webhook(
    request: Request,
    handler: WebhookHandler = Depends(get_webhook_handler),
) -> WebhookAck:
    return await handler.handle_kassa(await request.body())


@router.post(
    "/webhooks/payid19",
    summary="Receive PayID19 invoice notifications",
    description="""
Authenticated by the merchant private key echoed in the payload.

Test invoices (`test=1`) and invoices without `order_id` are acknowledged
without fulfillment.
""",
    response_model=WebhookAck,
    responses=_RESPONSES,
)
async def payid19_webhook(
    request: Request,
    handler: WebhookHandler = Depends(get_webhook_handler),
) -> WebhookAck:
    return await handler.handle_payid19(await request.body())


@router.post(
    "/",
    summary="Receive a notification from any provider",
    description="""
Routes by payload shape, in order: WATA, P2PKassa, PayID19.
Unrecognized payloads are acknowledged with `success: false`.
""",
    response_model=WebhookAck,
    responses=_RESPONSES,
)
async def root_webhook(
    request: Request,
    handler: WebhookHandler = Depends(get_webhook_handler),
) -> WebhookAck:
    raw_body = await request.body()
    return await handler.dispatch_root(raw_body, request.headers.get(WATA_SIGNATURE_HEADER))
