"""Webhook handler for payment provider notifications.

Provides business logic for handling webhook deliveries separate from
HTTP routing concerns. Each provider path runs the same pipeline:

    parse -> verify -> claim dedup key -> orchestrate -> acknowledge

Rejections at the boundary (bad JSON, wrong shape, bad signature) raise
WebhookError. Everything after verification is acknowledged with a
WebhookAck, including fulfillment failures, so providers do not retry a
delivery that has already been handled.
"""

from typing import Any

from pydantic import BaseModel, ValidationError

from shared.config import Settings
from shared.models.enums import FulfillmentState, PaymentProvider, PaymentStatus, ProcessingResult
from shared.models.errors import ErrorCode, WebhookError
from shared.models.events import FulfillmentResult, PaymentEvent, WebhookAck
from shared.models.webhooks import (
    KassaWebhookPayload,
    PayID19WebhookPayload,
    WataWebhookPayload,
    parse_json_body,
    parse_webhook_payload,
)
from shared.services.dedup import DuplicateSuppressor
from shared.services.fulfillment import FulfillmentOrchestrator
from shared.services.signatures import (
    WataSignatureVerifier,
    is_payid19_test_passthrough,
    verify_kassa_webhook_signature,
    verify_payid19_webhook,
)
from shared.utils.logging import get_logger, log_webhook_event

logger = get_logger(__name__)

# Whether the stars recipient is shown who paid, per provider
REVEAL_SENDER: dict[PaymentProvider, bool] = {
    PaymentProvider.WATA: False,
    PaymentProvider.KASSA: True,
    PaymentProvider.PAYID19: True,
}

_STATE_RESULTS: dict[FulfillmentState, ProcessingResult] = {
    FulfillmentState.NOTIFIED_SUCCESS: ProcessingResult.SUCCESS,
    FulfillmentState.NOTIFIED_FAILURE: ProcessingResult.ERROR,
    FulfillmentState.UNCORRELATED: ProcessingResult.NOT_FOUND,
    FulfillmentState.DEDUPED: ProcessingResult.DUPLICATE,
    FulfillmentState.DECLINED: ProcessingResult.DECLINED,
}

_RESULT_MESSAGES: dict[ProcessingResult, str] = {
    ProcessingResult.SUCCESS: "Stars delivered",
    ProcessingResult.DUPLICATE: "Notification already processed",
    ProcessingResult.NOT_FOUND: "Order not found",
    ProcessingResult.DECLINED: "Payment declined",
}


def _validate(model: type[BaseModel], data: dict[str, Any], provider: PaymentProvider):
    try:
        return model.model_validate(data)
    except ValidationError as e:
        log_webhook_event(logger, provider.value, None, result="rejected", error="malformed payload")
        raise WebhookError(
            ErrorCode.MALFORMED_PAYLOAD,
            {"provider": provider.value, "errors": str(e.error_count())},
        ) from e


def _reject_signature(provider: PaymentProvider, event_id: str | None) -> WebhookError:
    log_webhook_event(logger, provider.value, event_id, result="rejected", error="invalid signature")
    return WebhookError(ErrorCode.INVALID_WEBHOOK_SIGNATURE, {"provider": provider.value})


class WebhookHandler:
    """Handler for processing payment provider webhooks.

    Verifies each delivery, suppresses duplicates and hands verified events
    to the FulfillmentOrchestrator.
    """

    def __init__(
        self,
        settings: Settings,
        suppressor: DuplicateSuppressor,
        orchestrator: FulfillmentOrchestrator,
        wata_verifier: WataSignatureVerifier,
    ) -> None:
        self._settings = settings
        self._suppressor = suppressor
        self._orchestrator = orchestrator
        self._wata = wata_verifier

    # === Provider entry points ===

    async def handle_wata(self, raw_body: bytes, signature: str | None) -> WebhookAck:
        """Handle a WATA delivery.

        The signature covers the exact raw body, so it is checked before the
        body is parsed.

        Raises:
            WebhookError: Invalid signature or malformed payload
        """
        if not await self._wata.verify(raw_body, signature):
            raise _reject_signature(PaymentProvider.WATA, None)
        data = parse_json_body(raw_body)
        payload = _validate(WataWebhookPayload, data, PaymentProvider.WATA)
        return await self._process_wata(payload, data)

    async def handle_kassa(self, raw_body: bytes) -> WebhookAck:
        """Handle a P2PKassa delivery.

        Raises:
            WebhookError: Invalid signature or malformed payload
            ConfigurationError: KASSA_API_KEY is not configured
        """
        data = parse_json_body(raw_body)
        payload = _validate(KassaWebhookPayload, data, PaymentProvider.KASSA)
        return await self._process_kassa(payload, data)

    async def handle_payid19(self, raw_body: bytes) -> WebhookAck:
        """Handle a PayID19 delivery.

        Raises:
            WebhookError: Private key mismatch or malformed payload
            ConfigurationError: PAYID19_PRIVATE_KEY is not configured
        """
        data = parse_json_body(raw_body)
        payload = _validate(PayID19WebhookPayload, data, PaymentProvider.PAYID19)
        return await self._process_payid19(payload, data)

    async def dispatch_root(self, raw_body: bytes, signature: str | None) -> WebhookAck:
        """Handle a delivery to the shared endpoint, routing by payload shape.

        Returns:
            The acknowledgment; success is False when the payload matches
            no provider.
        """
        data = parse_json_body(raw_body)
        payload = parse_webhook_payload(data)

        if isinstance(payload, WataWebhookPayload):
            if not await self._wata.verify(raw_body, signature):
                raise _reject_signature(PaymentProvider.WATA, payload.transaction_id)
            return await self._process_wata(payload, data)
        if isinstance(payload, KassaWebhookPayload):
            return await self._process_kassa(payload, data)
        if isinstance(payload, PayID19WebhookPayload):
            return await self._process_payid19(payload, data)

        logger.warning("Unrecognized webhook payload shape", extra={"keys": sorted(data)[:20]})
        return WebhookAck(
            success=False,
            processing_result=ProcessingResult.SKIPPED,
            message="Unrecognized webhook payload",
        )

    # === Per-provider verification ===

    async def _process_wata(self, payload: WataWebhookPayload, data: dict[str, Any]) -> WebhookAck:
        if payload.payment_status is None:
            log_webhook_event(
                logger,
                PaymentProvider.WATA.value,
                payload.transaction_id,
                order_id=payload.order_id,
                result="skipped",
                status=payload.transaction_status,
            )
            return WebhookAck(
                success=True,
                provider=PaymentProvider.WATA,
                event_id=payload.transaction_id,
                order_id=payload.order_id,
                processing_result=ProcessingResult.SKIPPED,
                message=f"Status '{payload.transaction_status}' not handled",
            )
        return await self._process(payload.to_payment_event(data))

    async def _process_kassa(self, payload: KassaWebhookPayload, data: dict[str, Any]) -> WebhookAck:
        api_key = self._settings.require("kassa_api_key")
        if not verify_kassa_webhook_signature(data, api_key):
            raise _reject_signature(PaymentProvider.KASSA, payload.id)
        return await self._process(payload.to_payment_event(data))

    async def _process_payid19(
        self,
        payload: PayID19WebhookPayload,
        data: dict[str, Any],
    ) -> WebhookAck:
        if is_payid19_test_passthrough(data):
            if not (self._settings.payid19_process_test_webhooks and payload.order_id):
                log_webhook_event(
                    logger,
                    PaymentProvider.PAYID19.value,
                    payload.id,
                    order_id=payload.order_id,
                    result="skipped",
                    test=payload.test,
                )
                return WebhookAck(
                    success=True,
                    provider=PaymentProvider.PAYID19,
                    event_id=payload.id,
                    order_id=payload.order_id,
                    processing_result=ProcessingResult.SKIPPED,
                    message="Test or unattributed invoice acknowledged without fulfillment",
                )
        else:
            private_key = self._settings.require("payid19_private_key")
            if not verify_payid19_webhook(data, private_key):
                raise _reject_signature(PaymentProvider.PAYID19, payload.id)
        return await self._process(payload.to_payment_event(data))

    # === Shared pipeline ===

    async def _process(self, event: PaymentEvent) -> WebhookAck:
        provider = event.provider.value
        log_webhook_event(logger, provider, event.transaction_id, order_id=event.order_id, result="received")

        # Claimed before the first await so concurrent retries see it
        dedup_key = event.dedup_key
        if not self._suppressor.claim(dedup_key):
            log_webhook_event(logger, provider, event.transaction_id, order_id=event.order_id, result="duplicate")
            return self._ack(event, ProcessingResult.DUPLICATE)

        if event.status == PaymentStatus.DECLINED:
            result = await self._orchestrator.handle_declined(event)
        else:
            result = await self._orchestrator.fulfill(event, dedup_key, REVEAL_SENDER[event.provider])

        processing_result = _STATE_RESULTS.get(result.state, ProcessingResult.ERROR)
        log_webhook_event(
            logger,
            provider,
            event.transaction_id,
            order_id=event.order_id,
            result=processing_result.value,
            error=result.error if processing_result == ProcessingResult.ERROR else None,
        )
        return self._ack(event, processing_result, result)

    @staticmethod
    def _ack(
        event: PaymentEvent,
        processing_result: ProcessingResult,
        result: FulfillmentResult | None = None,
    ) -> WebhookAck:
        if processing_result == ProcessingResult.ERROR and result is not None:
            message = f"Fulfillment failed: {result.error}"
        else:
            message = _RESULT_MESSAGES.get(processing_result)
        return WebhookAck(
            success=processing_result != ProcessingResult.ERROR,
            provider=event.provider,
            event_id=event.transaction_id,
            order_id=event.order_id,
            processing_result=processing_result,
            message=message,
        )
