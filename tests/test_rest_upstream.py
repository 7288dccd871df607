"""Tests for the REST upstream with httpx.MockTransport."""

import json

import httpx
import pytest

from conftest import make_credentials
from fishbowl_gateway.errors import AuthenticationError, ConnectionError, UpstreamError
from fishbowl_gateway.gateway import Gateway
from fishbowl_gateway.upstream.rest import RestUpstream


class FakeFishbowlApi:
    """Minimal Fishbowl REST API: issues numbered tokens, expires them on demand."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.logins = 0
        self.valid_tokens: set[str] = set()
        self.login_status = 200
        self.inventory = {"B201": 15}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/api/login":
            if self.login_status != 200:
                return httpx.Response(self.login_status, json={"message": "Invalid username or password"})
            self.logins += 1
            token = f"token-{self.logins}"
            self.valid_tokens.add(token)
            return httpx.Response(200, json={"token": token, "user": {"id": 42}})

        auth = request.headers.get("Authorization", "")
        if auth.removeprefix("Bearer ") not in self.valid_tokens:
            return httpx.Response(401, json={"message": "Token expired"})

        if path == "/api/logout":
            return httpx.Response(204)
        if path == "/api/parts/inventory":
            number = request.url.params.get("number")
            if number not in self.inventory:
                return httpx.Response(404, json={"message": f"Part {number} not found"})
            return httpx.Response(200, json={"partNumber": number, "quantity": self.inventory[number]})
        if path.startswith("/api/parts/") and path.endswith("/inventory/add"):
            return httpx.Response(200, json={"added": json.loads(request.content)})
        if path == "/api/vendors":
            return httpx.Response(200, json=[{"id": 1, "name": "Acme"}])
        return httpx.Response(404, text="Not Found")

    def expire_all(self) -> None:
        self.valid_tokens.clear()


def make_upstream(api: FakeFishbowlApi) -> RestUpstream:
    return RestUpstream(make_credentials(), transport=httpx.MockTransport(api))


class TestRestUpstream:
    @pytest.mark.asyncio
    async def test_login_sends_app_identity(self):
        api = FakeFishbowlApi()
        upstream = make_upstream(api)

        session = await upstream.login()

        assert session.token == "token-1"
        assert session.user_id == "42"
        body = json.loads(api.requests[0].content)
        assert body == {
            "appName": "Fishbowl Gateway",
            "appId": 101,
            "appDescription": "tests",
            "username": "admin",
            "password": "secret",
        }
        await upstream.close()

    @pytest.mark.asyncio
    async def test_login_rejected(self):
        api = FakeFishbowlApi()
        api.login_status = 400
        upstream = make_upstream(api)

        with pytest.raises(AuthenticationError, match="Invalid username or password"):
            await upstream.login()
        await upstream.close()

    @pytest.mark.asyncio
    async def test_login_without_token(self):
        upstream = RestUpstream(
            make_credentials(), transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})),
        )
        with pytest.raises(AuthenticationError, match="no token"):
            await upstream.login()
        await upstream.close()

    @pytest.mark.asyncio
    async def test_unreachable_host(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        upstream = RestUpstream(make_credentials(), transport=httpx.MockTransport(refuse))
        with pytest.raises(ConnectionError):
            await upstream.login()
        await upstream.close()


class TestGatewayOverRest:
    @pytest.mark.asyncio
    async def test_get_inventory_with_bearer_token(self):
        api = FakeFishbowlApi()
        gateway = Gateway(make_upstream(api))

        result = await gateway.invoke("getInventory", {"partNumber": "B201"})

        assert result["partNumber"] == "B201"
        assert result["quantity"] == 15
        assert api.requests[-1].headers["Authorization"] == "Bearer token-1"
        assert api.requests[-1].url.params["number"] == "B201"
        await gateway.shutdown()

    @pytest.mark.asyncio
    async def test_expired_token_relogs_once(self):
        api = FakeFishbowlApi()
        gateway = Gateway(make_upstream(api))
        await gateway.invoke("getInventory", {"partNumber": "B201"})

        api.expire_all()
        result = await gateway.invoke("getInventory", {"partNumber": "B201"})

        assert result["quantity"] == 15
        assert api.logins == 2
        assert api.requests[-1].headers["Authorization"] == "Bearer token-2"
        await gateway.shutdown()

    @pytest.mark.asyncio
    async def test_client_error_surfaces_upstream_status(self):
        api = FakeFishbowlApi()
        gateway = Gateway(make_upstream(api))

        with pytest.raises(UpstreamError) as exc_info:
            await gateway.invoke("getInventory", {"partNumber": "B999"})

        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Part B999 not found"
        assert api.logins == 1
        await gateway.shutdown()

    @pytest.mark.asyncio
    async def test_add_inventory_posts_to_part_path(self):
        api = FakeFishbowlApi()
        gateway = Gateway(make_upstream(api))

        result = await gateway.invoke("addInventory", {"partId": 7, "locationId": 3, "quantity": 5})

        request = api.requests[-1]
        assert request.method == "POST"
        assert request.url.path == "/api/parts/7/inventory/add"
        assert result == {"added": {"locationId": 3, "quantity": 5}}
        await gateway.shutdown()

    @pytest.mark.asyncio
    async def test_forward_returns_upstream_body(self):
        api = FakeFishbowlApi()
        gateway = Gateway(make_upstream(api))

        assert await gateway.forward("GET", "/api/vendors") == [{"id": 1, "name": "Acme"}]
        await gateway.shutdown()
