"""Unit tests for the fulfillment orchestrator.

Fragment and Telegram are replaced by the recording fakes from conftest, so
these tests cover correlation, recipient resolution, claims and audit.
"""

import asyncio
from decimal import Decimal

import pytest

from shared.models.enums import FulfillmentState, PaymentProvider, PaymentStatus, TransactionStatus
from shared.models.errors import UpstreamUnavailableError
from shared.models.events import PaymentEvent
from shared.services.fulfillment import order_claim_key

# === Test Configuration ===

TEST_REQUESTER_ID = 424242


def make_event(
    order_id: str | None,
    *,
    provider: PaymentProvider = PaymentProvider.KASSA,
    transaction_id: str = "pay-1",
    status: PaymentStatus = PaymentStatus.PAID,
    **kwargs,
) -> PaymentEvent:
    return PaymentEvent(
        provider=provider,
        transaction_id=transaction_id,
        order_id=order_id,
        amount=Decimal("150"),
        currency="RUB",
        status=status,
        payment_method="test",
        **kwargs,
    )


async def claim_and_fulfill(orchestrator, suppressor, event, reveal_sender=True):
    assert suppressor.claim(event.dedup_key)
    return await orchestrator.fulfill(event, event.dedup_key, reveal_sender)


# === Paid Path ===


class TestSuccessfulFulfillment:
    @pytest.mark.asyncio
    async def test_self_purchase_uses_requester_username(
        self, orchestrator, suppressor, registry, provisioner, notifier, sample_intent
    ):
        notifier.usernames[TEST_REQUESTER_ID] = "buyer"
        registry.put(sample_intent.order_id, sample_intent)

        result = await claim_and_fulfill(orchestrator, suppressor, make_event(sample_intent.order_id))

        assert result.success is True
        assert result.state == FulfillmentState.NOTIFIED_SUCCESS
        assert result.recipient == "buyer"
        assert result.external_order_id == "frag-1"
        assert provisioner.calls == [{"username": "buyer", "quantity": 100, "show_sender": True}]
        assert notifier.successes == [
            {
                "chat_id": TEST_REQUESTER_ID,
                "quantity": 100,
                "is_gift": False,
                "recipient": "buyer",
                "external_order_id": "frag-1",
            }
        ]
        assert registry.get(sample_intent.order_id) is None

    @pytest.mark.asyncio
    async def test_gift_uses_handle_and_notifies_chat(
        self, orchestrator, suppressor, registry, provisioner, notifier, gift_intent
    ):
        registry.put(gift_intent.order_id, gift_intent)

        result = await claim_and_fulfill(orchestrator, suppressor, make_event(gift_intent.order_id))

        assert result.recipient == "alice"
        assert provisioner.calls[0]["username"] == "alice"
        assert provisioner.calls[0]["quantity"] == 250
        assert notifier.successes[0]["chat_id"] == -1001
        assert notifier.successes[0]["is_gift"] is True

    @pytest.mark.asyncio
    async def test_unknown_username_falls_back_to_placeholder(
        self, orchestrator, suppressor, registry, provisioner, sample_intent
    ):
        registry.put(sample_intent.order_id, sample_intent)

        result = await claim_and_fulfill(orchestrator, suppressor, make_event(sample_intent.order_id))

        assert result.recipient == f"user_{TEST_REQUESTER_ID}"
        assert provisioner.calls[0]["username"] == f"user_{TEST_REQUESTER_ID}"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reveal_sender", [True, False])
    async def test_reveal_sender_is_passed_through(
        self, orchestrator, suppressor, registry, provisioner, sample_intent, reveal_sender
    ):
        registry.put(sample_intent.order_id, sample_intent)

        await claim_and_fulfill(
            orchestrator, suppressor, make_event(sample_intent.order_id), reveal_sender
        )

        assert provisioner.calls[0]["show_sender"] is reveal_sender

    @pytest.mark.asyncio
    async def test_success_is_audited(
        self, orchestrator, suppressor, registry, audit, sample_intent
    ):
        registry.put(sample_intent.order_id, sample_intent)

        await claim_and_fulfill(orchestrator, suppressor, make_event(sample_intent.order_id))

        statuses = [r.status for r in audit.read_transactions()]
        assert statuses == [TransactionStatus.PAID, TransactionStatus.WEBHOOK_SUCCESS]
        paid = audit.read_transactions()[0]
        assert paid.fragment_order_id == "frag-1"
        assert paid.stars == 100

    @pytest.mark.asyncio
    async def test_notifier_failure_does_not_fail_fulfillment(
        self, orchestrator, suppressor, registry, provisioner, notifier, sample_intent
    ):
        notifier.raise_on_notify = True
        registry.put(sample_intent.order_id, sample_intent)

        result = await claim_and_fulfill(orchestrator, suppressor, make_event(sample_intent.order_id))

        assert result.success is True
        assert len(provisioner.calls) == 1
        assert registry.get(sample_intent.order_id) is None


# === Failure Path ===


class TestProvisioningFailure:
    @pytest.mark.asyncio
    async def test_failure_notifies_and_keeps_order_retryable(
        self, orchestrator, suppressor, registry, provisioner, notifier, sample_intent
    ):
        provisioner.error = UpstreamUnavailableError("fragment", "Timed out calling /order/stars/")
        registry.put(sample_intent.order_id, sample_intent)
        event = make_event(sample_intent.order_id)

        result = await claim_and_fulfill(orchestrator, suppressor, event)

        assert result.success is False
        assert result.state == FulfillmentState.NOTIFIED_FAILURE
        assert "Timed out" in result.error
        assert notifier.failures[0]["chat_id"] == TEST_REQUESTER_ID
        assert notifier.successes == []
        # Intent kept, both keys released
        assert registry.get(sample_intent.order_id) == sample_intent
        assert suppressor.claim(event.dedup_key) is True
        assert suppressor.claim(order_claim_key(sample_intent.order_id)) is True

    @pytest.mark.asyncio
    async def test_retry_after_failure_succeeds(
        self, orchestrator, suppressor, registry, provisioner, notifier, sample_intent
    ):
        provisioner.error = UpstreamUnavailableError("fragment", "down")
        registry.put(sample_intent.order_id, sample_intent)
        event = make_event(sample_intent.order_id)
        await claim_and_fulfill(orchestrator, suppressor, event)

        provisioner.error = None
        result = await claim_and_fulfill(orchestrator, suppressor, event)

        assert result.success is True
        assert len(provisioner.calls) == 2
        assert len(notifier.successes) == 1

    @pytest.mark.asyncio
    async def test_unsuccessful_order_response_is_a_failure(
        self, orchestrator, suppressor, registry, provisioner, notifier, sample_intent
    ):
        provisioner.success = False
        registry.put(sample_intent.order_id, sample_intent)

        result = await claim_and_fulfill(orchestrator, suppressor, make_event(sample_intent.order_id))

        assert result.state == FulfillmentState.NOTIFIED_FAILURE
        assert len(notifier.failures) == 1

    @pytest.mark.asyncio
    async def test_failure_is_audited(
        self, orchestrator, suppressor, registry, provisioner, audit, sample_intent
    ):
        provisioner.error = UpstreamUnavailableError("fragment", "down")
        registry.put(sample_intent.order_id, sample_intent)

        await claim_and_fulfill(orchestrator, suppressor, make_event(sample_intent.order_id))

        records = audit.read_transactions()
        assert [r.status for r in records] == [TransactionStatus.ERROR, TransactionStatus.WEBHOOK_FAILED]
        assert "down" in records[0].processing_error


# === Correlation and Claims ===


class TestCorrelation:
    @pytest.mark.asyncio
    async def test_unknown_order_does_nothing(self, orchestrator, suppressor, provisioner, notifier):
        result = await claim_and_fulfill(orchestrator, suppressor, make_event("no-such-order"))

        assert result.state == FulfillmentState.UNCORRELATED
        assert provisioner.calls == []
        assert notifier.successes == notifier.failures == []

    @pytest.mark.asyncio
    async def test_event_without_order_id_is_uncorrelated(self, orchestrator, suppressor, provisioner):
        result = await claim_and_fulfill(orchestrator, suppressor, make_event(None))

        assert result.state == FulfillmentState.UNCORRELATED
        assert provisioner.calls == []

    @pytest.mark.asyncio
    async def test_second_provider_for_same_order_is_deduped_while_in_flight(
        self, orchestrator, suppressor, registry, provisioner, sample_intent
    ):
        registry.put(sample_intent.order_id, sample_intent)
        kassa = make_event(sample_intent.order_id, provider=PaymentProvider.KASSA)
        wata = make_event(sample_intent.order_id, provider=PaymentProvider.WATA, transaction_id="tx-9")

        results = await asyncio.gather(
            claim_and_fulfill(orchestrator, suppressor, kassa),
            claim_and_fulfill(orchestrator, suppressor, wata),
        )

        assert len(provisioner.calls) == 1
        assert sorted(r.state.value for r in results) == sorted(
            [FulfillmentState.NOTIFIED_SUCCESS.value, FulfillmentState.DEDUPED.value]
        )

    @pytest.mark.asyncio
    async def test_deduped_event_releases_its_own_claim(
        self, orchestrator, suppressor, registry, sample_intent
    ):
        registry.put(sample_intent.order_id, sample_intent)
        assert suppressor.claim(order_claim_key(sample_intent.order_id))
        wata = make_event(sample_intent.order_id, provider=PaymentProvider.WATA, transaction_id="tx-9")

        result = await claim_and_fulfill(orchestrator, suppressor, wata)

        assert result.state == FulfillmentState.DEDUPED
        assert suppressor.claim(wata.dedup_key) is True


# === Declined Path ===


class TestDeclined:
    @pytest.mark.asyncio
    async def test_declined_notifies_and_keeps_intent(
        self, orchestrator, registry, provisioner, notifier, audit, sample_intent
    ):
        registry.put(sample_intent.order_id, sample_intent)
        event = make_event(
            sample_intent.order_id,
            provider=PaymentProvider.WATA,
            status=PaymentStatus.DECLINED,
            error_code="InsufficientFunds",
            error_description="Not enough money",
        )

        result = await orchestrator.handle_declined(event)

        assert result.state == FulfillmentState.DECLINED
        assert provisioner.calls == []
        assert notifier.declines == [{"chat_id": TEST_REQUESTER_ID, "reason": "Not enough money"}]
        assert registry.get(sample_intent.order_id) == sample_intent
        record = audit.read_transactions()[0]
        assert record.status == TransactionStatus.DECLINED
        assert record.error_code == "InsufficientFunds"

    @pytest.mark.asyncio
    async def test_declined_unknown_order_is_audited_without_notification(
        self, orchestrator, notifier, audit
    ):
        event = make_event("ghost", provider=PaymentProvider.WATA, status=PaymentStatus.DECLINED)

        await orchestrator.handle_declined(event)

        assert notifier.declines == []
        assert audit.read_transactions()[0].status == TransactionStatus.DECLINED
