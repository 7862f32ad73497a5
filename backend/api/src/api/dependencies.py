"""FastAPI dependency injection providers for shared services.

Services are lazily instantiated on first use and cached with @lru_cache, so
the whole process shares one order registry, one dedup cache and one
Fragment session.

Usage in routes:
    from api.dependencies import get_webhook_handler

    @router.post("/webhooks/kassa")
    async def kassa_webhook(
        request: Request,
        handler: WebhookHandler = Depends(get_webhook_handler),
    ):
        ...

Service Dependency Graph:
    Settings (get_settings: environment, then SSM)
        ├── WataSignatureVerifier
        ├── FragmentClient
        ├── TelegramNotifier
        └── TransactionLogger
    InMemoryOrderRegistry
    InMemoryDuplicateSuppressor
        └── FulfillmentOrchestrator (registry, suppressor, Fragment, Telegram, audit)
                └── WebhookHandler

Testing:
    Use reset_services() to clear cached instances between tests, or
    app.dependency_overrides to swap collaborators.
"""

import hmac
from functools import lru_cache

from fastapi import Header, HTTPException
from starlette.status import HTTP_401_UNAUTHORIZED

from shared.config import get_settings
from shared.services.dedup import InMemoryDuplicateSuppressor
from shared.services.fragment_client import FragmentClient
from shared.services.fulfillment import FulfillmentOrchestrator
from shared.services.notifier import TelegramNotifier
from shared.services.order_registry import InMemoryOrderRegistry
from shared.services.signatures import WataSignatureVerifier
from shared.services.transaction_logger import TransactionLogger
from shared.services.webhook_handler import WebhookHandler
from shared.utils.logging import get_logger

logger = get_logger(__name__)


@lru_cache
def get_order_registry() -> InMemoryOrderRegistry:
    """Get the process-wide order registry."""
    return InMemoryOrderRegistry()


@lru_cache
def get_duplicate_suppressor() -> InMemoryDuplicateSuppressor:
    """Get the process-wide dedup cache, sized by DEDUP_TTL_SECONDS."""
    return InMemoryDuplicateSuppressor(ttl_seconds=get_settings().dedup_ttl_seconds)


@lru_cache
def get_wata_verifier() -> WataSignatureVerifier:
    settings = get_settings()
    return WataSignatureVerifier(
        settings.wata_public_key_url,
        public_key_pem=settings.wata_public_key_pem,
    )


@lru_cache
def get_fragment_client() -> FragmentClient:
    """Get cached FragmentClient.

    Credentials are checked when the first token is needed, not here, so the
    service starts without them when a preset JWT is configured.
    """
    settings = get_settings()
    return FragmentClient(
        settings.fragment_api_url,
        api_key=settings.fragment_api_key,
        phone_number=settings.fragment_phone_number,
        mnemonics=settings.fragment_mnemonics,
        jwt_token=settings.fragment_jwt_token,
    )


@lru_cache
def get_telegram_notifier() -> TelegramNotifier:
    """Get cached TelegramNotifier.

    A missing TELEGRAM_BOT_TOKEN only disables notifications; it is reported
    when a message is sent, so webhooks are still verified and fulfilled.
    """
    settings = get_settings()
    return TelegramNotifier(
        settings.telegram_bot_token,
        api_url=settings.telegram_api_url,
    )


@lru_cache
def get_transaction_logger() -> TransactionLogger:
    return TransactionLogger(get_settings().transaction_log_dir)


@lru_cache
def get_fulfillment_orchestrator() -> FulfillmentOrchestrator:
    notifier = get_telegram_notifier()
    return FulfillmentOrchestrator(
        orders=get_order_registry(),
        suppressor=get_duplicate_suppressor(),
        provisioner=get_fragment_client(),
        notifier=notifier,
        users=notifier,
        audit=get_transaction_logger(),
    )


@lru_cache
def get_webhook_handler() -> WebhookHandler:
    """Get cached WebhookHandler wired to the shared orchestrator."""
    return WebhookHandler(
        settings=get_settings(),
        suppressor=get_duplicate_suppressor(),
        orchestrator=get_fulfillment_orchestrator(),
        wata_verifier=get_wata_verifier(),
    )


async def require_admin_token(
    x_admin_token: str | None = Header(default=None),
) -> None:
    """Guard admin routes when ADMIN_API_TOKEN is configured."""
    expected = get_settings().admin_api_token
    if expected and not hmac.compare_digest(x_admin_token or "", expected):
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Invalid admin token")


async def close_services() -> None:
    """Close the HTTP clients owned by cached services.

    Only services that were actually created are closed.
    """
    if get_fragment_client.cache_info().currsize:
        await get_fragment_client().aclose()
    if get_telegram_notifier.cache_info().currsize:
        await get_telegram_notifier().aclose()
    logger.info("Service HTTP clients closed")


def reset_services() -> None:
    """Clear all cached service instances and settings.

    Call this in test fixtures to ensure clean state between tests.

    Example:
        @pytest.fixture(autouse=True)
        def reset_state():
            yield
            reset_services()
    """
    get_order_registry.cache_clear()
    get_duplicate_suppressor.cache_clear()
    get_wata_verifier.cache_clear()
    get_fragment_client.cache_clear()
    get_telegram_notifier.cache_clear()
    get_transaction_logger.cache_clear()
    get_fulfillment_orchestrator.cache_clear()
    get_webhook_handler.cache_clear()
    get_settings.cache_clear()
