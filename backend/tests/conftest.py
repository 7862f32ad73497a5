"""Pytest configuration and fixtures for the stars gateway backend tests.

This module provides reusable fixtures for testing:
- Environment defaults (no real secrets, no SSM unless a test opts in)
- An RSA key pair standing in for the WATA signing key
- Fake Fragment/Telegram collaborators that record calls
- A fully wired WebhookHandler over in-memory stores
"""

import asyncio
import base64
import os
from collections.abc import Callable, Generator
from decimal import Decimal
from typing import Any

import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

# === Environment Setup ===

# Set before any api/shared import resolves settings
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "123456:test-bot-token")
os.environ.setdefault("KASSA_API_KEY", "kassa-test-api-key")
os.environ.setdefault("PAYID19_PRIVATE_KEY", "payid19-test-private-key")
os.environ.pop("SSM_ENABLED", None)

if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

from shared.config import Settings  # noqa: E402
from shared.models.errors import UpstreamGatewayError  # noqa: E402
from shared.models.fragment import StarsOrder  # noqa: E402
from shared.models.orders import OrderIntent  # noqa: E402
from shared.services.dedup import InMemoryDuplicateSuppressor  # noqa: E402
from shared.services.fulfillment import FulfillmentOrchestrator  # noqa: E402
from shared.services.order_registry import InMemoryOrderRegistry  # noqa: E402
from shared.services.signatures import WataSignatureVerifier  # noqa: E402
from shared.services.transaction_logger import TransactionLogger  # noqa: E402
from shared.services.webhook_handler import WebhookHandler  # noqa: E402

# === Test Configuration ===

TEST_KASSA_API_KEY = "kassa-test-api-key"
TEST_PAYID19_PRIVATE_KEY = "payid19-test-private-key"
TEST_WATA_KEY_URL = "https://wata.test/api/h2h/public-key"
TEST_REQUESTER_ID = 424242
TEST_ORDER_ID = "stars-0123456789abcdef"


# === Fake Collaborators ===


class FakeProvisioner:
    """Records buy_stars calls; fails with the configured error if set."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.error: Exception | None = None
        self.success = True

    async def buy_stars(self, username: str, quantity: int, show_sender: bool = False) -> StarsOrder:
        self.calls.append({"username": username, "quantity": quantity, "show_sender": show_sender})
        # Yield so concurrent deliveries interleave like real HTTP calls
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return StarsOrder(
            success=self.success,
            id=f"frag-{len(self.calls)}",
            receiver="peer",
            goods_quantity=quantity,
            username=username,
            ton_price="0.5",
        )


class FakeNotifier:
    """Records notifications; doubles as the username directory."""

    def __init__(self) -> None:
        self.successes: list[dict[str, Any]] = []
        self.failures: list[dict[str, Any]] = []
        self.declines: list[dict[str, Any]] = []
        self.usernames: dict[int, str] = {}
        self.raise_on_notify = False

    async def get_username(self, user_id: int) -> str | None:
        return self.usernames.get(user_id)

    async def notify_success(self, chat_id, quantity, is_gift, recipient, external_order_id) -> None:
        self._maybe_raise()
        self.successes.append(
            {
                "chat_id": chat_id,
                "quantity": quantity,
                "is_gift": is_gift,
                "recipient": recipient,
                "external_order_id": external_order_id,
            }
        )

    async def notify_failure(self, chat_id, quantity, is_gift, error_detail) -> None:
        self._maybe_raise()
        self.failures.append(
            {"chat_id": chat_id, "quantity": quantity, "is_gift": is_gift, "error": error_detail}
        )

    async def notify_declined(self, chat_id, reason) -> None:
        self._maybe_raise()
        self.declines.append({"chat_id": chat_id, "reason": reason})

    def _maybe_raise(self) -> None:
        if self.raise_on_notify:
            raise UpstreamGatewayError("telegram", "chat not found", 400)


# === Signing Fixtures ===


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    """RSA key pair standing in for WATA's signing key."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def rsa_public_pem(rsa_private_key: rsa.RSAPrivateKey) -> str:
    return (
        rsa_private_key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode("ascii")
    )


@pytest.fixture(scope="session")
def wata_sign(rsa_private_key: rsa.RSAPrivateKey) -> Callable[[bytes], str]:
    """Return a function producing the X-Signature value for a body."""

    def sign(body: bytes) -> str:
        signature = rsa_private_key.sign(body, padding.PKCS1v15(), hashes.SHA512())
        return base64.b64encode(signature).decode("ascii")

    return sign


# === Service Fixtures ===


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="test",
        kassa_api_key=TEST_KASSA_API_KEY,
        payid19_private_key=TEST_PAYID19_PRIVATE_KEY,
        telegram_bot_token="123456:test-bot-token",
    )


@pytest.fixture
def registry() -> InMemoryOrderRegistry:
    return InMemoryOrderRegistry()


@pytest.fixture
def suppressor() -> InMemoryDuplicateSuppressor:
    return InMemoryDuplicateSuppressor()


@pytest.fixture
def provisioner() -> FakeProvisioner:
    return FakeProvisioner()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def audit(tmp_path) -> TransactionLogger:
    return TransactionLogger(tmp_path / "logs")


@pytest.fixture
def orchestrator(registry, suppressor, provisioner, notifier, audit) -> FulfillmentOrchestrator:
    return FulfillmentOrchestrator(
        orders=registry,
        suppressor=suppressor,
        provisioner=provisioner,
        notifier=notifier,
        users=notifier,
        audit=audit,
    )


@pytest.fixture
def wata_verifier(rsa_public_pem: str) -> WataSignatureVerifier:
    return WataSignatureVerifier(TEST_WATA_KEY_URL, public_key_pem=rsa_public_pem)


@pytest.fixture
def webhook_handler(settings, suppressor, orchestrator, wata_verifier) -> WebhookHandler:
    return WebhookHandler(
        settings=settings,
        suppressor=suppressor,
        orchestrator=orchestrator,
        wata_verifier=wata_verifier,
    )


# === Sample Data Fixtures ===


@pytest.fixture
def sample_intent() -> OrderIntent:
    """Self-purchase of 100 stars."""
    return OrderIntent(
        order_id=TEST_ORDER_ID,
        requester_id=TEST_REQUESTER_ID,
        quantity=100,
        description="100 stars",
    )


@pytest.fixture
def gift_intent() -> OrderIntent:
    """Gift of 250 stars to @alice."""
    return OrderIntent(
        order_id="stars-gift000000000001",
        requester_id=TEST_REQUESTER_ID,
        chat_id=-1001,
        quantity=250,
        is_gift=True,
        gift_username="@alice",
    )


@pytest.fixture
def wata_paid_payload() -> dict[str, Any]:
    return {
        "transactionType": "CardCrypto",
        "transactionId": "3a16a4f0-27b0-4d6a-9c1b-7c4f0e8b1a01",
        "terminalPublicId": "b3b0c2f4-0000-4000-8000-000000000001",
        "transactionStatus": "Paid",
        "terminalName": "stars-shop",
        "amount": 150.0,
        "currency": "RUB",
        "orderId": TEST_ORDER_ID,
        "orderDescription": "100 stars",
        "commission": 4.5,
        "paymentTime": "2026-03-01T12:00:00Z",
    }


@pytest.fixture
def kassa_payload() -> dict[str, Any]:
    """Correctly signed P2PKassa notification for TEST_ORDER_ID."""
    from shared.services.signatures import compute_kassa_webhook_signature

    payload = {
        "id": "7d3f2c1e-5b4a-4c3d-9e8f-0a1b2c3d4e5f",
        "createDateTime": "2026-03-01 12:00:00",
        "order_id": TEST_ORDER_ID,
        "project_id": 311,
        "amount": 150,
        "currency": "RUB",
        "amount_pay": 150,
        "currency_pay": "RUB",
    }
    payload["sign"] = compute_kassa_webhook_signature(
        TEST_KASSA_API_KEY,
        payload["id"],
        payload["order_id"],
        payload["project_id"],
        Decimal("150"),
        "RUB",
    )
    return payload


@pytest.fixture
def payid19_payload() -> dict[str, Any]:
    return {
        "private_key": TEST_PAYID19_PRIVATE_KEY,
        "id": "98765",
        "order_id": TEST_ORDER_ID,
        "price_amount": 1.87,
        "price_currency": "USD",
        "amount": 1.87,
        "amount_currency": "USDT",
        "description": "100 stars",
        "test": 0,
        "created_at": "2026-03-01 12:00:00",
    }


# === App State ===


@pytest.fixture(autouse=True)
def reset_app_services() -> Generator[None, None, None]:
    """Clear cached API singletons before and after each test."""
    from api.dependencies import reset_services

    reset_services()
    yield
    reset_services()
