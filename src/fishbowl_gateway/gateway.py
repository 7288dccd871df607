"""
Request forwarder: named operation -> authenticated upstream call.

Authentication failures (rejected login, expired or invalid ticket, HTTP 401)
invalidate the session and are retried once; every other error surfaces as is.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from fishbowl_gateway.auth import SessionManager
from fishbowl_gateway.config import Settings
from fishbowl_gateway.errors import AuthenticationError, UpstreamError
from fishbowl_gateway.operations import UpstreamOperation, get_operation
from fishbowl_gateway.upstream.rest import RestUpstream
from fishbowl_gateway.upstream.xml_socket import XmlUpstream

logger = logging.getLogger(__name__)

Upstream = Union[XmlUpstream, RestUpstream]
T = TypeVar("T")

MAX_ATTEMPTS = 2
SESSION_COMMANDS = ("login", "logout", "connect", "disconnect")


class Gateway:
    def __init__(self, upstream: Upstream, sessions: Optional[SessionManager] = None):
        self.upstream = upstream
        self.sessions = sessions or SessionManager(upstream)
        # Socket loss ends the session on the XML protocol
        self._remove_handler = upstream.add_disconnect_handler(self.sessions.invalidate)
        self._startup: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Gateway":
        credentials = settings.credentials()
        upstream: Upstream
        if settings.protocol == "rest":
            upstream = RestUpstream(
                credentials,
                connect_timeout=settings.connect_timeout,
                request_timeout=settings.request_timeout,
            )
        else:
            upstream = XmlUpstream(
                credentials,
                connect_timeout=settings.connect_timeout,
                request_timeout=settings.request_timeout,
            )
        sessions = SessionManager(
            upstream,
            refresh_threshold=timedelta(seconds=settings.refresh_threshold_seconds),
            default_ttl=timedelta(seconds=settings.session_ttl_seconds),
        )
        return cls(upstream, sessions)

    @property
    def protocol(self) -> str:
        return self.upstream.protocol

    async def _with_session(self, call: Callable[[str], Awaitable[T]], label: str) -> T:
        attempt = 1
        while True:
            token: Optional[str] = None
            try:
                token = await self.sessions.ensure_authenticated()
                return await call(token)
            except AuthenticationError as e:
                self.sessions.invalidate(token)
                if attempt >= MAX_ATTEMPTS:
                    raise
                attempt += 1
                logger.warning("%s rejected by Fishbowl (%s), re-authenticating", label, e)

    async def invoke(self, name: str, params: Optional[dict[str, Any]] = None) -> Any:
        params = dict(params or {})
        if name in SESSION_COMMANDS:
            return await getattr(self, name)()

        operation = get_operation(name)
        operation.validate(params)
        return await self._with_session(lambda token: self._call(operation, params, token), name)

    async def _call(self, operation: UpstreamOperation, params: dict[str, Any], token: str) -> Any:
        result = await self.upstream.call(operation, params, token)
        if result.auth_rejected:
            raise AuthenticationError(
                result.message or "Session rejected by Fishbowl", {"statusCode": result.status_code},
            )
        if result.status_code is None:
            raise UpstreamError(f"{operation.name}: Fishbowl response carried no status")
        if not operation.success(result):
            raise UpstreamError(
                result.message or "Unknown error",
                upstream_status=result.status_code,
            )
        return operation.shape(params, result.data)

    async def forward(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        body: Optional[Any] = None,
    ) -> Any:
        """Pass a raw REST call through with the current token."""
        return await self._with_session(
            lambda token: self.upstream.forward(method, path, token, params=params, body=body),
            f"{method.upper()} {path}",
        )

    async def login(self) -> dict[str, Any]:
        # Each live ticket holds a Fishbowl user seat until logged out
        await self.sessions.logout()
        await self.sessions.ensure_authenticated()
        session = self.sessions.session
        return {
            "success": True,
            "userId": session.user_id if session else None,
            "expiresAt": session.expires_at.isoformat() if session and session.expires_at else None,
        }

    async def logout(self) -> dict[str, Any]:
        if self.sessions.session is None:
            return {"success": True, "message": "Not logged in"}
        if await self.sessions.logout():
            return {"success": True, "message": "Logged out of Fishbowl"}
        return {"success": False, "message": "Logout request failed; session cleared"}

    async def connect(self) -> dict[str, Any]:
        await self.upstream.connect()
        return {"success": True, "connected": self.upstream.connected}

    async def disconnect(self) -> dict[str, Any]:
        await self.sessions.logout()
        await self.upstream.close()
        return {"success": True, "message": "Disconnected from Fishbowl"}

    def status(self) -> dict[str, Any]:
        """Connection and session state. Never touches the network."""
        session = self.sessions.session
        return {
            "protocol": self.protocol,
            "state": self.sessions.state,
            "authenticated": self.sessions.authenticated,
            "connected": self.upstream.connected,
            "expiresAt": session.expires_at.isoformat() if session and session.expires_at else None,
            **self.upstream.describe(),
        }

    async def start(self) -> None:
        """Log in in the background; failures are logged and retried on first use."""
        self._startup = asyncio.get_running_loop().create_task(self._initial_login())

    async def _initial_login(self) -> None:
        try:
            await self.sessions.ensure_authenticated()
        except Exception as e:
            logger.error("Initial Fishbowl login failed: %s", e)

    async def shutdown(self) -> None:
        if self._startup is not None and not self._startup.done():
            self._startup.cancel()
            try:
                await self._startup
            except asyncio.CancelledError:
                pass
        try:
            await self.sessions.logout()
        except Exception:
            logger.exception("Logout during shutdown failed")
        await self.upstream.close()
        self._remove_handler()
