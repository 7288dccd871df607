"""
Gateway error types. Each kind carries the HTTP status it surfaces as.
"""

from typing import Any, Optional


class GatewayError(Exception):
    status_code = 500

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code, "details": self.details}


class ConfigurationError(GatewayError):
    """Missing or invalid process configuration. Fatal at startup."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("configuration_error", message, details)


class ConnectionError(GatewayError):
    status_code = 503

    def __init__(self, message: str):
        super().__init__("connection_error", message)


class TransportError(GatewayError):
    status_code = 502

    def __init__(self, message: str):
        super().__init__("transport_error", message)


class TimeoutError(GatewayError):
    status_code = 504

    def __init__(self, message: str):
        super().__init__("timeout", message)


class AuthenticationError(GatewayError):
    """Login rejected, or the upstream refused the current ticket/token."""

    status_code = 401

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("auth_error", message, details)


class ValidationError(GatewayError):
    status_code = 400

    def __init__(self, message: str, fields: Optional[list[str]] = None):
        super().__init__("validation_error", message, {"fields": fields} if fields else None)
        self.fields = fields or []


class UpstreamError(GatewayError):
    """The upstream answered with a non-success status. Message is passed through verbatim."""

    status_code = 502

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        upstream_status: Optional[Any] = None,
        raw_body: Optional[str] = None,
    ):
        details: dict[str, Any] = {}
        if upstream_status is not None:
            details["upstreamStatus"] = upstream_status
        if raw_body:
            details["rawBody"] = raw_body
        super().__init__("upstream_error", message, details or None, status_code)
        self.upstream_status = upstream_status
        self.raw_body = raw_body
