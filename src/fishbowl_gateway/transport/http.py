"""
REST HTTP client for the Fishbowl REST API.

Stateless between calls: the bearer token is passed in per request.
"""

from typing import Any, Optional

import httpx

from fishbowl_gateway import __version__, errors

USER_AGENT = f"fishbowl-gateway/{__version__}"


class HttpTransport:
    def __init__(
        self,
        base_url: str,
        connect_timeout: float = 10.0,
        request_timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
            timeout=httpx.Timeout(request_timeout, connect=connect_timeout),
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @staticmethod
    def _headers(token: Optional[str]) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    @staticmethod
    def _decode(resp: httpx.Response) -> Any:
        if not resp.content:
            return None
        if "json" in resp.headers.get("content-type", ""):
            try:
                return resp.json()
            except ValueError:
                pass
        return resp.text

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return f"HTTP {resp.status_code}: {resp.text[:200]}"

    async def request(
        self,
        method: str,
        path: str,
        token: Optional[str] = None,
        params: Optional[dict[str, Any]] = None,
        body: Optional[Any] = None,
    ) -> tuple[int, Any]:
        """Send one request. Returns (status, decoded body) for 2xx/3xx responses."""
        try:
            resp = await self._client.request(
                method.upper(), path, params=params, json=body, headers=self._headers(token),
            )
        except httpx.ConnectError as e:
            raise errors.ConnectionError(f"Cannot connect to Fishbowl at {self._base_url}: {e}")
        except httpx.TimeoutException as e:
            raise errors.TimeoutError(f"Fishbowl request {method.upper()} {path} timed out: {e}")
        except httpx.TransportError as e:
            raise errors.TransportError(f"Fishbowl request {method.upper()} {path} failed: {e}")

        if resp.status_code == 401:
            raise errors.AuthenticationError(self._error_message(resp), {"statusCode": 401})
        if resp.status_code >= 400:
            raise errors.UpstreamError(
                self._error_message(resp),
                status_code=resp.status_code,
                upstream_status=resp.status_code,
                raw_body=resp.text[:2000],
            )
        return resp.status_code, self._decode(resp)

    async def post(self, path: str, body: Optional[Any] = None, token: Optional[str] = None) -> Any:
        return (await self.request("POST", path, token, body=body))[1]

    async def close(self) -> None:
        await self._client.aclose()
