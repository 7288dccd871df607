"""Shared fakes: a scriptable upstream and a local FbiXml TCP server."""

import asyncio
from typing import Any, Callable, Optional

import xmltodict

from fishbowl_gateway.config import Credentials
from fishbowl_gateway.errors import AuthenticationError
from fishbowl_gateway.models.session import Session, UpstreamResult
from fishbowl_gateway.transport.envelope import TERMINATOR


def make_credentials(**overrides) -> Credentials:
    values = dict(
        host="127.0.0.1",
        port=28192,
        base_url="https://fishbowl.test",
        username="admin",
        password="secret",
        app_id=101,
        app_name="Fishbowl Gateway",
        app_description="tests",
    )
    values.update(overrides)
    return Credentials(**values)


class FakeUpstream:
    """In-memory upstream. Queue results with `results`; each login issues a new token."""

    protocol = "xml"

    def __init__(self, results: Optional[list[Any]] = None, login_delay: float = 0.0):
        self.results = list(results or [])
        self.login_delay = login_delay
        self.login_error: Optional[Exception] = None
        self.logins = 0
        self.logouts: list[str] = []
        self.calls: list[tuple[str, dict[str, Any], str]] = []
        self.forwarded: list[tuple[str, str, str]] = []
        self.closed = False
        self.connected = True
        self.handlers: list[Callable[[], None]] = []

    def describe(self) -> dict[str, Any]:
        return {"host": "fake", "port": 0}

    def add_disconnect_handler(self, handler):
        self.handlers.append(handler)
        return lambda: self.handlers.remove(handler)

    def drop(self) -> None:
        self.connected = False
        for handler in list(self.handlers):
            handler()

    async def connect(self) -> None:
        self.connected = True

    async def login(self) -> Session:
        self.logins += 1
        if self.login_delay:
            await asyncio.sleep(self.login_delay)
        if self.login_error is not None:
            raise self.login_error
        return Session(token=f"ticket-{self.logins}", user_id="7")

    async def logout(self, token: str) -> None:
        self.logouts.append(token)

    async def call(self, operation, params, token) -> UpstreamResult:
        self.calls.append((operation.name, params, token))
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    async def forward(self, method, path, token, params=None, body=None):
        self.forwarded.append((method, path, token))
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    async def close(self) -> None:
        self.closed = True


def ok(data: Any = None) -> UpstreamResult:
    return UpstreamResult(status_code=1000, message="Success!", data=data)


def rejected(code: int = 1001, message: str = "Invalid ticket") -> UpstreamResult:
    return UpstreamResult(status_code=code, message=message, auth_rejected=True)


def expired_token() -> AuthenticationError:
    return AuthenticationError("Token expired", {"statusCode": 401})


# ---------------------------------------------------------------------------
# FbiXml server
# ---------------------------------------------------------------------------

def fbi_response(request_name: str, status: int = 1000, message: str = "Success!",
                 body: Optional[dict[str, Any]] = None, ticket: Optional[str] = None) -> bytes:
    response = {"@statusCode": str(status), "@statusMessage": message}
    response.update(body or {})
    root: dict[str, Any] = {
        "Ticket": {"Key": ticket, "UserID": "7"} if ticket else None,
        "FbiMsgsRs": {"@statusCode": "1000", request_name[:-2] + "Rs": response},
    }
    return xmltodict.unparse({"FbiXml": root}, full_document=False).encode("utf-8")


class FakeFishbowlServer:
    """Reads FbiXml requests off a socket and answers through `handler(name, request)`.

    `handler` returns the response bytes, None to stay silent, or b"" to hang up.
    It may be a coroutine function.
    """

    def __init__(self, handler: Callable[[str, dict[str, Any]], Any]):
        self.handler = handler
        self.requests: list[tuple[str, dict[str, Any]]] = []
        self.connections = 0
        self._server: Optional[asyncio.Server] = None
        self._writers: list[asyncio.StreamWriter] = []

    @property
    def port(self) -> int:
        assert self._server is not None
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> "FakeFishbowlServer":
        self._server = await asyncio.start_server(self._serve, "127.0.0.1", 0)
        return self

    async def _serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.connections += 1
        self._writers.append(writer)
        buffer = b""
        try:
            while True:
                chunk = await reader.read(4096)
                if not chunk:
                    break
                buffer += chunk
                while TERMINATOR in buffer:
                    end = buffer.index(TERMINATOR) + len(TERMINATOR)
                    raw, buffer = buffer[:end], buffer[end:]
                    document = xmltodict.parse(raw)["FbiXml"]
                    name, request = next(iter(document["FbiMsgsRq"].items()))
                    self.requests.append((name, request or {}))
                    response = self.handler(name, request or {})
                    if asyncio.iscoroutine(response):
                        response = await response
                    if response is None:
                        continue
                    if response == b"":
                        writer.close()
                        return
                    # Split the reply to exercise frame reassembly
                    half = len(response) // 2
                    writer.write(response[:half])
                    await writer.drain()
                    await asyncio.sleep(0)
                    writer.write(response[half:])
                    await writer.drain()
        except (ConnectionError, asyncio.CancelledError):
            pass
        finally:
            writer.close()

    async def stop(self) -> None:
        for writer in self._writers:
            writer.close()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
