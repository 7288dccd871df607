"""
Legacy Fishbowl XML API over a persistent TCP socket.
"""

import logging
from typing import Any, Callable, Optional

from fishbowl_gateway.config import Credentials
from fishbowl_gateway.errors import AuthenticationError, UpstreamError
from fishbowl_gateway.models.session import Session, UpstreamResult
from fishbowl_gateway.operations import UpstreamOperation
from fishbowl_gateway.transport.envelope import (
    STATUS_SUCCESS,
    build_envelope,
    parse_envelope,
    read_status,
    read_ticket,
)
from fishbowl_gateway.transport.socket import SocketTransport

logger = logging.getLogger(__name__)


class XmlUpstream:
    protocol = "xml"

    def __init__(self, credentials: Credentials, transport: Optional[SocketTransport] = None,
                 connect_timeout: float = 10.0, request_timeout: float = 30.0):
        self._credentials = credentials
        self._transport = transport or SocketTransport(
            credentials.host, credentials.port,
            connect_timeout=connect_timeout, request_timeout=request_timeout,
        )

    @property
    def connected(self) -> bool:
        return self._transport.connected

    def describe(self) -> dict[str, Any]:
        return {"host": self._credentials.host, "port": self._credentials.port}

    def add_disconnect_handler(self, handler: Callable[[], None]) -> Callable[[], None]:
        return self._transport.add_disconnect_handler(handler)

    async def connect(self) -> None:
        await self._transport.connect()

    async def _send(self, request_name: str, payload: Optional[dict[str, Any]], ticket: Optional[str]) -> dict[str, Any]:
        raw = await self._transport.exchange(build_envelope(request_name, payload, ticket))
        return parse_envelope(raw)

    async def login(self) -> Session:
        creds = self._credentials
        document = await self._send("LoginRq", {
            "IAID": creds.app_id,
            "IAName": creds.app_name,
            "IADescription": creds.app_description,
            "UserName": creds.username,
            "UserPassword": creds.password,
        }, None)
        result = read_status(document, "LoginRq")
        if result.status_code != STATUS_SUCCESS:
            if result.status_code is None:
                raise AuthenticationError("Login failed: unexpected response format")
            raise AuthenticationError(
                f"Login failed: {result.status_code} - {result.message or 'Unknown error'}",
                {"statusCode": result.status_code},
            )
        key, user_id = read_ticket(document)
        if not key:
            raise AuthenticationError("Login failed: response carried no ticket")
        logger.info("Logged in to Fishbowl as %s", creds.username)
        return Session(token=key, user_id=user_id)

    async def logout(self, token: str) -> None:
        document = await self._send("LogoutRq", None, token)
        result = read_status(document, "LogoutRq")
        if result.status_code not in (None, STATUS_SUCCESS):
            logger.warning("Fishbowl logout returned %s: %s", result.status_code, result.message)

    async def call(self, operation: UpstreamOperation, params: dict[str, Any], token: str) -> UpstreamResult:
        document = await self._send(operation.xml_request, operation.xml_payload(params), token)
        return read_status(document, operation.xml_request)

    async def forward(self, method: str, path: str, token: str,
                      params: Optional[dict[str, Any]] = None, body: Optional[Any] = None) -> Any:
        raise UpstreamError(
            f"{method.upper()} {path} is only available with the REST protocol", status_code=501,
        )

    async def close(self) -> None:
        await self._transport.close()
