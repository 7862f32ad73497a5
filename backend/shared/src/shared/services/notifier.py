"""Telegram notifications to the buyer.

Message delivery is best-effort: a failed notification is logged and never
affects the outcome of the payment it reports on.
"""

import logging
from typing import Any, Protocol

import httpx

from shared.models.errors import ConfigurationError, UpstreamGatewayError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

SERVICE_NAME = "telegram"
TELEGRAM_TIMEOUT = 10.0


class Notifier(Protocol):
    """Sends fulfillment outcomes to the requester."""

    async def notify_success(
        self,
        chat_id: int,
        quantity: int,
        is_gift: bool,
        recipient: str,
        external_order_id: str | None,
    ) -> None: ...

    async def notify_failure(
        self,
        chat_id: int,
        quantity: int,
        is_gift: bool,
        error_detail: str,
    ) -> None: ...

    async def notify_declined(self, chat_id: int, reason: str) -> None: ...


class UserDirectory(Protocol):
    """Resolves a Telegram user ID to a username."""

    async def get_username(self, user_id: int) -> str | None: ...


def format_success_message(
    quantity: int,
    is_gift: bool,
    recipient: str,
    external_order_id: str | None,
) -> str:
    if is_gift:
        text = f"⭐ Gift sent! {quantity} stars were delivered to @{recipient}."
    else:
        text = f"⭐ Done! {quantity} stars were added to your account."
    if external_order_id:
        text += f"\nOrder: {external_order_id}"
    return text


def format_failure_message(quantity: int, is_gift: bool, error_detail: str) -> str:
    what = f"{quantity} stars" + (" as a gift" if is_gift else "")
    return (
        f"❌ Your payment was received but we could not deliver {what}.\n"
        f"Reason: {error_detail}\n"
        "Please contact support; your order has been kept."
    )


class TelegramNotifier:
    """Notifier and UserDirectory backed by the Telegram Bot API."""

    def __init__(
        self,
        bot_token: str | None,
        *,
        api_url: str = "https://api.telegram.org",
        http_client: httpx.AsyncClient | None = None,
        timeout: float = TELEGRAM_TIMEOUT,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._bot_token = bot_token
        self._http = http_client or httpx.AsyncClient()
        self._timeout = timeout

    async def call(self, method: str, **params: Any) -> Any:
        """Call a Bot API method and return its result.

        Raises:
            UpstreamUnavailableError: Timeout or connection failure
            ConfigurationError: No bot token configured
            UpstreamGatewayError: HTTP error or ok=false
        """
        if not self._bot_token:
            raise ConfigurationError("TELEGRAM_BOT_TOKEN is not configured")
        try:
            response = await self._http.post(
                f"{self._api_url}/bot{self._bot_token}/{method}", json=params, timeout=self._timeout
            )
        except httpx.TimeoutException as e:
            raise UpstreamUnavailableError(SERVICE_NAME, f"{method} timed out") from e
        except httpx.TransportError as e:
            raise UpstreamUnavailableError(SERVICE_NAME, f"{method} failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.is_error or not data.get("ok"):
            description = data.get("description") or response.reason_phrase
            raise UpstreamGatewayError(
                SERVICE_NAME, f"{method}: {description}", response.status_code
            )
        return data.get("result")

    async def send_message(self, chat_id: int, text: str) -> None:
        await self.call("sendMessage", chat_id=chat_id, text=text)

    async def get_username(self, user_id: int) -> str | None:
        """Look up a user's username via getChat; None if unknown or unreachable."""
        try:
            chat = await self.call("getChat", chat_id=user_id)
        except (UpstreamGatewayError, ConfigurationError) as e:
            logger.warning("Could not resolve username for %s: %s", user_id, e)
            return None
        username = (chat or {}).get("username")
        return username or None

    async def notify_success(
        self,
        chat_id: int,
        quantity: int,
        is_gift: bool,
        recipient: str,
        external_order_id: str | None,
    ) -> None:
        text = format_success_message(quantity, is_gift, recipient, external_order_id)
        await self._deliver(chat_id, text, "success")

    async def notify_failure(
        self,
        chat_id: int,
        quantity: int,
        is_gift: bool,
        error_detail: str,
    ) -> None:
        text = format_failure_message(quantity, is_gift, error_detail)
        await self._deliver(chat_id, text, "failure")

    async def notify_declined(self, chat_id: int, reason: str) -> None:
        await self._deliver(chat_id, f"❌ Payment declined: {reason}", "declined")

    async def _deliver(self, chat_id: int, text: str, kind: str) -> None:
        try:
            await self.send_message(chat_id, text)
        except (UpstreamGatewayError, ConfigurationError) as e:
            logger.error(
                "Failed to deliver %s notification",
                kind,
                extra={"chat_id": chat_id, "error": str(e)},
            )
            return
        logger.info("Delivered %s notification", kind, extra={"chat_id": chat_id})

    async def aclose(self) -> None:
        await self._http.aclose()
