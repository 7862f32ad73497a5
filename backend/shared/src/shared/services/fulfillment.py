"""Fulfillment orchestration for verified payment events.

Turns a paid event into a Fragment stars order for the matching order intent,
then tells the buyer how it went. Each order is provisioned at most once per
process: a per-order claim is taken before the first suspension point, so two
deliveries for the same order (retries, or different providers) cannot both
reach Fragment.

Failures never propagate to the webhook endpoint. A failed order keeps its
intent and has its claims released, so a later delivery can retry it.
"""

from typing import Protocol

from shared.models.audit import TransactionLog
from shared.models.enums import FulfillmentState, TransactionStatus
from shared.models.events import FulfillmentResult, PaymentEvent
from shared.models.fragment import StarsOrder
from shared.models.orders import OrderIntent
from shared.services.dedup import DuplicateSuppressor
from shared.services.notifier import Notifier, UserDirectory
from shared.services.order_registry import OrderStore
from shared.services.transaction_logger import TransactionLogger
from shared.utils.logging import get_logger, log_fulfillment_operation

logger = get_logger(__name__)


class StarsProvisioner(Protocol):
    """Anything that can buy stars for a username (FragmentClient in production)."""

    async def buy_stars(
        self,
        username: str,
        quantity: int,
        show_sender: bool = False,
    ) -> StarsOrder: ...


def order_claim_key(order_id: str) -> str:
    """Suppression key guarding provisioning of a single order."""
    return f"order:{order_id}"


def placeholder_username(requester_id: int) -> str:
    return f"user_{requester_id}"


class FulfillmentOrchestrator:
    """Correlates payment events with order intents and provisions stars."""

    def __init__(
        self,
        orders: OrderStore,
        suppressor: DuplicateSuppressor,
        provisioner: StarsProvisioner,
        notifier: Notifier,
        users: UserDirectory,
        audit: TransactionLogger | None = None,
    ) -> None:
        self._orders = orders
        self._suppressor = suppressor
        self._provisioner = provisioner
        self._notifier = notifier
        self._users = users
        self._audit = audit

    async def fulfill(
        self,
        event: PaymentEvent,
        dedup_key: str,
        reveal_sender: bool,
    ) -> FulfillmentResult:
        """Provision the order a paid event refers to.

        The caller has already verified the event and claimed dedup_key.

        Args:
            event: Verified paid event
            dedup_key: Notification key claimed by the caller; released on failure
            reveal_sender: Whether the recipient sees who paid for the stars

        Returns:
            Result with state NOTIFIED_SUCCESS, NOTIFIED_FAILURE, UNCORRELATED
            (no intent, nothing done) or DEDUPED (order already in progress).
        """
        intent = self._orders.get(event.order_id) if event.order_id else None
        if intent is None:
            return self._uncorrelated(event)

        order_key = order_claim_key(intent.order_id)
        if not self._suppressor.claim(order_key):
            log_fulfillment_operation(
                logger,
                "order_already_claimed",
                order_id=intent.order_id,
                event_id=event.transaction_id,
                provider=event.provider.value,
            )
            # This notification was not processed; let its provider retry it
            self._suppressor.release(dedup_key)
            return FulfillmentResult(
                success=False,
                state=FulfillmentState.DEDUPED,
                order_id=intent.order_id,
                error="Order is already being fulfilled",
            )

        recipient = await self.resolve_recipient(intent)
        log_fulfillment_operation(
            logger,
            "provision_stars",
            order_id=intent.order_id,
            event_id=event.transaction_id,
            provider=event.provider.value,
            quantity=intent.quantity,
            recipient=recipient,
            reveal_sender=reveal_sender,
        )

        try:
            order = await self._provisioner.buy_stars(
                recipient, intent.quantity, show_sender=reveal_sender
            )
            if not order.success:
                raise RuntimeError(f"Fragment did not complete order {order.id}")
        except Exception as e:
            return await self._fail(event, intent, recipient, dedup_key, order_key, str(e))

        return await self._succeed(event, intent, recipient, order)

    async def handle_declined(self, event: PaymentEvent) -> FulfillmentResult:
        """Record a declined payment and tell the buyer, if the order is known.

        The intent is kept so the buyer can pay again for the same order.
        """
        intent = self._orders.get(event.order_id) if event.order_id else None
        reason = event.error_description or event.error_code or "unknown reason"

        self._record(
            TransactionStatus.DECLINED,
            event,
            intent,
            error_code=event.error_code,
            error_description=event.error_description,
        )
        log_fulfillment_operation(
            logger,
            "payment_declined",
            order_id=event.order_id,
            event_id=event.transaction_id,
            provider=event.provider.value,
            reason=reason,
        )

        if intent is not None:
            await self._safe_notify(
                self._notifier.notify_declined(intent.notify_chat_id, reason),
                "notify_declined",
            )
        return FulfillmentResult(
            success=False,
            state=FulfillmentState.DECLINED,
            order_id=event.order_id,
            error=reason,
        )

    async def resolve_recipient(self, intent: OrderIntent) -> str:
        """Username that receives the stars.

        Gift handle if present, otherwise the requester's Telegram username,
        otherwise a user_<id> placeholder.
        """
        if intent.is_gift and intent.gift_username:
            return intent.gift_username
        try:
            username = await self._users.get_username(intent.requester_id)
        except Exception as e:
            logger.warning("Username lookup failed for %s: %s", intent.requester_id, e)
            username = None
        return username or placeholder_username(intent.requester_id)

    # === Terminal states ===

    def _uncorrelated(self, event: PaymentEvent) -> FulfillmentResult:
        logger.warning(
            "No pending order for paid event %s (order %s)",
            event.transaction_id,
            event.order_id,
            extra={"provider": event.provider.value},
        )
        self._record(
            TransactionStatus.WEBHOOK_FAILED,
            event,
            None,
            processing_error="Order not found",
        )
        return FulfillmentResult(
            success=False,
            state=FulfillmentState.UNCORRELATED,
            order_id=event.order_id,
            error="Order not found",
        )

    async def _succeed(
        self,
        event: PaymentEvent,
        intent: OrderIntent,
        recipient: str,
        order: StarsOrder,
    ) -> FulfillmentResult:
        log_fulfillment_operation(
            logger,
            "stars_delivered",
            order_id=intent.order_id,
            event_id=event.transaction_id,
            provider=event.provider.value,
            quantity=intent.quantity,
            recipient=recipient,
            external_order_id=order.id,
        )
        self._record(
            TransactionStatus.PAID,
            event,
            intent,
            recipient=recipient,
            fragment_order_id=order.id,
        )
        self._record(
            TransactionStatus.WEBHOOK_SUCCESS,
            event,
            intent,
            recipient=recipient,
            fragment_order_id=order.id,
        )
        await self._safe_notify(
            self._notifier.notify_success(
                intent.notify_chat_id,
                intent.quantity,
                intent.is_gift,
                recipient,
                order.id,
            ),
            "notify_success",
        )
        self._orders.remove(intent.order_id)
        return FulfillmentResult(
            success=True,
            state=FulfillmentState.NOTIFIED_SUCCESS,
            order_id=intent.order_id,
            recipient=recipient,
            external_order_id=order.id,
        )

    async def _fail(
        self,
        event: PaymentEvent,
        intent: OrderIntent,
        recipient: str,
        dedup_key: str,
        order_key: str,
        error: str,
    ) -> FulfillmentResult:
        log_fulfillment_operation(
            logger,
            "provision_stars",
            order_id=intent.order_id,
            event_id=event.transaction_id,
            provider=event.provider.value,
            quantity=intent.quantity,
            recipient=recipient,
            error=error,
        )
        self._record(
            TransactionStatus.ERROR,
            event,
            intent,
            recipient=recipient,
            processing_error=error,
        )
        self._record(
            TransactionStatus.WEBHOOK_FAILED,
            event,
            intent,
            recipient=recipient,
            processing_error=error,
        )
        await self._safe_notify(
            self._notifier.notify_failure(
                intent.notify_chat_id,
                intent.quantity,
                intent.is_gift,
                error,
            ),
            "notify_failure",
        )
        # Leave the order retryable by a later delivery
        self._suppressor.release(dedup_key)
        self._suppressor.release(order_key)
        return FulfillmentResult(
            success=False,
            state=FulfillmentState.NOTIFIED_FAILURE,
            order_id=intent.order_id,
            recipient=recipient,
            error=error,
        )

    # === Helpers ===

    async def _safe_notify(self, notification, operation: str) -> None:
        try:
            await notification
        except Exception as e:
            log_fulfillment_operation(logger, operation, error=str(e))

    def _record(
        self,
        status: TransactionStatus,
        event: PaymentEvent,
        intent: OrderIntent | None,
        *,
        recipient: str | None = None,
        **fields,
    ) -> None:
        if self._audit is None:
            return
        record = TransactionLog(
            status=status,
            transaction_id=event.transaction_id,
            order_id=event.order_id,
            amount=event.amount,
            currency=event.currency,
            payment_method=event.payment_method,
            commission=event.commission,
            requester_id=intent.requester_id if intent else None,
            chat_id=intent.notify_chat_id if intent else None,
            recipient_username=recipient,
            stars=intent.quantity if intent else None,
            is_gift=intent.is_gift if intent else None,
            gift_username=intent.gift_username if intent else None,
            webhook_data=event.raw_payload or None,
            **fields,
        )
        self._audit.log_transaction(record)
