"""Unit tests for the Fragment API client.

Uses httpx.MockTransport to assert on the outgoing requests and to simulate
Fragment responses and transport failures.
"""

import json

import httpx
import pytest

from shared.models.errors import ConfigurationError, UpstreamGatewayError, UpstreamUnavailableError
from shared.services.fragment_client import FragmentClient

# === Test Configuration ===

TEST_BASE_URL = "https://fragment.test/api/v1"
TEST_MNEMONICS = "abandon ability able about above absent"

ORDER_RESPONSE = {
    "success": True,
    "id": "6b0e5c1a-order",
    "receiver": "peer-1",
    "goods_quantity": 100,
    "username": "alice",
    "sender": {"phone_number": "888", "name": "Stars Shop"},
    "ton_price": 0.45,
    "ref_id": None,
}


class FragmentStub:
    """Routes requests by path and records them."""

    def __init__(self, routes: dict[str, httpx.Response | type[Exception]]) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api/v1")
        outcome = self.routes[path]
        if isinstance(outcome, type):
            raise outcome("simulated failure", request=request)
        return outcome

    def paths(self) -> list[str]:
        return [r.url.path.removeprefix("/api/v1") for r in self.requests]


def make_client(stub: FragmentStub, **kwargs) -> FragmentClient:
    options = {"api_key": "frag-key", "phone_number": "+10000000000", "mnemonics": TEST_MNEMONICS}
    options.update(kwargs)
    return FragmentClient(
        TEST_BASE_URL,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(stub)),
        **options,
    )


# === Authentication ===


class TestAuthentication:
    @pytest.mark.asyncio
    async def test_authenticates_before_first_order(self):
        stub = FragmentStub(
            {
                "/auth/authenticate/": httpx.Response(200, json={"token": "jwt-1"}),
                "/order/stars/": httpx.Response(200, json=ORDER_RESPONSE),
            }
        )
        client = make_client(stub)

        await client.buy_stars("alice", 100)

        assert stub.paths() == ["/auth/authenticate/", "/order/stars/"]
        auth_body = json.loads(stub.requests[0].content)
        assert auth_body == {
            "api_key": "frag-key",
            "phone_number": "+10000000000",
            "mnemonics": TEST_MNEMONICS.split(),
        }
        assert "Authorization" not in stub.requests[0].headers
        assert stub.requests[1].headers["Authorization"] == "JWT jwt-1"

    @pytest.mark.asyncio
    async def test_token_is_reused(self):
        stub = FragmentStub(
            {
                "/auth/authenticate/": httpx.Response(200, json={"token": "jwt-1"}),
                "/order/stars/": httpx.Response(200, json=ORDER_RESPONSE),
            }
        )
        client = make_client(stub)

        await client.buy_stars("alice", 100)
        await client.buy_stars("alice", 100)

        assert stub.paths().count("/auth/authenticate/") == 1

    @pytest.mark.asyncio
    async def test_preset_token_skips_authentication(self):
        stub = FragmentStub({"/order/stars/": httpx.Response(200, json=ORDER_RESPONSE)})
        client = make_client(stub, api_key=None, phone_number=None, mnemonics=None, jwt_token="preset")

        await client.buy_stars("alice", 100)

        assert stub.paths() == ["/order/stars/"]
        assert stub.requests[0].headers["Authorization"] == "JWT preset"

    @pytest.mark.asyncio
    async def test_missing_credentials_raise_configuration_error(self):
        stub = FragmentStub({})
        client = make_client(stub, mnemonics=None)

        with pytest.raises(ConfigurationError):
            await client.buy_stars("alice", 100)

        assert stub.requests == []

    @pytest.mark.asyncio
    async def test_auth_response_without_token_fails(self):
        stub = FragmentStub({"/auth/authenticate/": httpx.Response(200, json={})})
        client = make_client(stub)

        with pytest.raises(UpstreamGatewayError):
            await client.authenticate()

        assert client.has_token is False

    @pytest.mark.asyncio
    async def test_unauthorized_response_clears_token(self):
        stub = FragmentStub({"/order/stars/": httpx.Response(401, json={"detail": "expired"})})
        client = make_client(stub, jwt_token="stale")

        with pytest.raises(UpstreamGatewayError) as exc_info:
            await client.buy_stars("alice", 100)

        assert exc_info.value.status_code == 401
        assert "invalid or expired" in exc_info.value.message
        assert client.has_token is False


# === Orders ===


class TestBuyStars:
    @pytest.mark.asyncio
    async def test_order_request_and_response(self):
        stub = FragmentStub({"/order/stars/": httpx.Response(200, json=ORDER_RESPONSE)})
        client = make_client(stub, jwt_token="jwt")

        order = await client.buy_stars("alice", 100, show_sender=True)

        assert json.loads(stub.requests[0].content) == {
            "username": "alice",
            "quantity": 100,
            "show_sender": True,
        }
        assert order.success is True
        assert order.id == "6b0e5c1a-order"
        assert order.goods_quantity == 100
        assert order.ton_price == "0.45"
        assert order.sender.name == "Stars Shop"

    @pytest.mark.asyncio
    async def test_server_error_raises_gateway_error(self):
        stub = FragmentStub({"/order/stars/": httpx.Response(500, text="boom")})
        client = make_client(stub, jwt_token="jwt")

        with pytest.raises(UpstreamGatewayError) as exc_info:
            await client.buy_stars("alice", 100)

        assert exc_info.value.status_code == 500
        assert not isinstance(exc_info.value, UpstreamUnavailableError)

    @pytest.mark.asyncio
    async def test_rate_limit_message(self):
        stub = FragmentStub({"/order/stars/": httpx.Response(429, json={"detail": "slow down"})})
        client = make_client(stub, jwt_token="jwt")

        with pytest.raises(UpstreamGatewayError) as exc_info:
            await client.buy_stars("alice", 100)

        assert "rate limit" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_timeout_raises_unavailable(self):
        stub = FragmentStub({"/order/stars/": httpx.ReadTimeout})
        client = make_client(stub, jwt_token="jwt")

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await client.buy_stars("alice", 100)

        assert "Timed out" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_connection_error_raises_unavailable(self):
        stub = FragmentStub({"/order/stars/": httpx.ConnectError})
        client = make_client(stub, jwt_token="jwt")

        with pytest.raises(UpstreamUnavailableError):
            await client.buy_stars("alice", 100)

    @pytest.mark.asyncio
    async def test_unexpected_body_raises_gateway_error(self):
        stub = FragmentStub({"/order/stars/": httpx.Response(200, json={"ok": True})})
        client = make_client(stub, jwt_token="jwt")

        with pytest.raises(UpstreamGatewayError):
            await client.buy_stars("alice", 100)

    @pytest.mark.asyncio
    async def test_non_json_body_raises_gateway_error(self):
        stub = FragmentStub({"/order/stars/": httpx.Response(200, text="<html>")})
        client = make_client(stub, jwt_token="jwt")

        with pytest.raises(UpstreamGatewayError):
            await client.buy_stars("alice", 100)


# === Wallet ===


class TestWalletBalance:
    @pytest.mark.asyncio
    async def test_returns_balance(self):
        stub = FragmentStub(
            {"/misc/wallet/": httpx.Response(200, json={"balance": 12.5, "address": "UQ-wallet"})}
        )
        client = make_client(stub, jwt_token="jwt")

        wallet = await client.get_wallet_balance()

        assert stub.requests[0].method == "GET"
        assert wallet.balance == "12.5"
        assert wallet.address == "UQ-wallet"
