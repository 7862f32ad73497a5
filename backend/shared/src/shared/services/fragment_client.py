"""Fragment API client for buying Telegram Stars.

Authenticates with an API key, phone number and wallet mnemonics to obtain a
JWT, then places stars orders paid from the Fragment wallet. The token is
cached; a preset token can be supplied instead of credentials.
"""

import logging
from typing import Any

import httpx

from shared.models.errors import (
    ConfigurationError,
    UpstreamGatewayError,
    UpstreamUnavailableError,
)
from shared.models.fragment import StarsOrder, WalletBalance

logger = logging.getLogger(__name__)

SERVICE_NAME = "fragment"

AUTH_TIMEOUT = 30.0
# Orders are settled on-chain before Fragment answers
ORDER_TIMEOUT = 300.0

_STATUS_MESSAGES = {
    400: "Invalid request parameters",
    401: "JWT token is invalid or expired",
    429: "Fragment API rate limit exceeded",
}


class FragmentClient:
    """Async client for the Fragment stars API.

    Usage:
        client = FragmentClient(base_url, api_key=..., phone_number=..., mnemonics=...)
        order = await client.buy_stars("alice", 100, show_sender=False)
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        phone_number: str | None = None,
        mnemonics: str | None = None,
        jwt_token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        auth_timeout: float = AUTH_TIMEOUT,
        order_timeout: float = ORDER_TIMEOUT,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._phone_number = phone_number
        # Mnemonics are configured as one whitespace-separated string
        self._mnemonics = mnemonics.split() if mnemonics else []
        self._token = jwt_token
        self._http = http_client or httpx.AsyncClient()
        self._auth_timeout = auth_timeout
        self._order_timeout = order_timeout
        if jwt_token:
            logger.info("Using preset Fragment JWT token")

    @property
    def has_token(self) -> bool:
        return self._token is not None

    async def authenticate(self) -> str:
        """Obtain and cache a fresh JWT.

        Returns:
            The new token.

        Raises:
            ConfigurationError: If credentials are not configured
            UpstreamGatewayError: If Fragment rejects the credentials
            UpstreamUnavailableError: On timeout or connection failure
        """
        if not (self._api_key and self._phone_number and self._mnemonics):
            raise ConfigurationError(
                "FRAGMENT_API_KEY, FRAGMENT_PHONE_NUMBER and FRAGMENT_MNEMONICS are required"
            )
        logger.info("Authenticating with Fragment API")
        data = await self._request(
            "POST",
            "/auth/authenticate/",
            json={
                "api_key": self._api_key,
                "phone_number": self._phone_number,
                "mnemonics": self._mnemonics,
            },
            timeout=self._auth_timeout,
            authorized=False,
        )
        token = data.get("token")
        if not token:
            raise UpstreamGatewayError(SERVICE_NAME, "Authentication response had no token")
        self._token = token
        logger.info("Fragment JWT token acquired")
        return token

    async def buy_stars(
        self,
        username: str,
        quantity: int,
        show_sender: bool = False,
    ) -> StarsOrder:
        """Buy stars for a Telegram user.

        Args:
            username: Recipient username without '@'
            quantity: Number of stars (Fragment minimum is 50)
            show_sender: Whether the recipient sees who sent the stars

        Returns:
            The order as reported by Fragment.

        Raises:
            UpstreamGatewayError: Non-2xx response or unexpected body
            UpstreamUnavailableError: Timeout or connection failure
        """
        logger.info(
            "Creating Fragment stars order",
            extra={"username": username, "quantity": quantity, "show_sender": show_sender},
        )
        data = await self._request(
            "POST",
            "/order/stars/",
            json={"username": username, "quantity": quantity, "show_sender": show_sender},
            timeout=self._order_timeout,
        )
        order = self._parse(StarsOrder, data)
        logger.info("Fragment order created: %s", order.id)
        return order

    async def get_wallet_balance(self) -> WalletBalance:
        """Return the TON balance of the Fragment wallet."""
        data = await self._request("GET", "/misc/wallet/", timeout=self._order_timeout)
        return self._parse(WalletBalance, data)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        timeout: float,
        authorized: bool = True,
    ) -> dict[str, Any]:
        headers = {"Accept": "application/json"}
        if authorized:
            if self._token is None:
                await self.authenticate()
            headers["Authorization"] = f"JWT {self._token}"

        url = f"{self._base_url}{path}"
        try:
            response = await self._http.request(
                method, url, json=json, headers=headers, timeout=timeout
            )
        except httpx.TimeoutException as e:
            raise UpstreamUnavailableError(SERVICE_NAME, f"Timed out calling {path}") from e
        except httpx.TransportError as e:
            raise UpstreamUnavailableError(SERVICE_NAME, f"Cannot connect to Fragment API: {e}") from e

        if response.status_code == 401 and authorized:
            # Next call re-authenticates
            self._token = None
        if response.is_error:
            message = _STATUS_MESSAGES.get(
                response.status_code, f"Fragment API returned {response.status_code}"
            )
            logger.error(
                "Fragment request failed",
                extra={"path": path, "status_code": response.status_code, "body": response.text[:500]},
            )
            raise UpstreamGatewayError(
                SERVICE_NAME, f"{message}: {response.text[:200]}", response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamGatewayError(SERVICE_NAME, f"Non-JSON response from {path}") from e
        if not isinstance(data, dict):
            raise UpstreamGatewayError(SERVICE_NAME, f"Unexpected response from {path}")
        return data

    @staticmethod
    def _parse(model, data: dict[str, Any]):
        try:
            return model.model_validate(data)
        except ValueError as e:
            raise UpstreamGatewayError(SERVICE_NAME, f"Unexpected response shape: {e}") from e
