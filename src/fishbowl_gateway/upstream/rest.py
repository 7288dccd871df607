"""
Fishbowl REST API: token from POST /api/login, bearer-authenticated calls after.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import httpx

from fishbowl_gateway.config import Credentials
from fishbowl_gateway.errors import AuthenticationError, UpstreamError
from fishbowl_gateway.models.session import Session, UpstreamResult
from fishbowl_gateway.operations import UpstreamOperation
from fishbowl_gateway.transport.http import HttpTransport

logger = logging.getLogger(__name__)


class RestUpstream:
    protocol = "rest"

    def __init__(self, credentials: Credentials, http: Optional[HttpTransport] = None,
                 connect_timeout: float = 10.0, request_timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self._credentials = credentials
        self._http = http or HttpTransport(
            credentials.base_url or "",
            connect_timeout=connect_timeout,
            request_timeout=request_timeout,
            transport=transport,
        )

    @property
    def connected(self) -> bool:
        return True

    def describe(self) -> dict[str, Any]:
        return {"baseUrl": self._http.base_url}

    def add_disconnect_handler(self, handler: Callable[[], None]) -> Callable[[], None]:
        return lambda: None

    async def connect(self) -> None:
        pass

    async def login(self) -> Session:
        creds = self._credentials
        try:
            data = await self._http.post("/api/login", {
                "appName": creds.app_name,
                "appId": creds.app_id,
                "appDescription": creds.app_description,
                "username": creds.username,
                "password": creds.password,
            })
        except UpstreamError as e:
            raise AuthenticationError(f"Login failed: {e.message}", e.details)
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise AuthenticationError("Login failed: no token received")

        user = data.get("user") or {}
        user_id = user.get("id") if isinstance(user, dict) else None
        expires_at = None
        expires_in = data.get("expiresIn")
        if isinstance(expires_in, (int, float)) and expires_in > 0:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)

        logger.info("Logged in to Fishbowl REST API as %s", creds.username)
        return Session(
            token=token,
            user_id=str(user_id) if user_id is not None else None,
            expires_at=expires_at,
        )

    async def logout(self, token: str) -> None:
        await self._http.post("/api/logout", None, token)

    async def call(self, operation: UpstreamOperation, params: dict[str, Any], token: str) -> UpstreamResult:
        status, data = await self._http.request(
            operation.rest_method,
            operation.path(params),
            token,
            params=operation.rest_query(params) if operation.rest_query else None,
            body=operation.rest_body(params) if operation.rest_body else None,
        )
        return UpstreamResult(status_code=status, data=data, protocol="rest")

    async def forward(self, method: str, path: str, token: str,
                      params: Optional[dict[str, Any]] = None, body: Optional[Any] = None) -> Any:
        return (await self._http.request(method, path, token, params=params, body=body))[1]

    async def close(self) -> None:
        await self._http.close()
