"""
fishbowl-gateway: REST/JSON gateway for Fishbowl Inventory.

Forwards named operations to Fishbowl over either the legacy XML socket
protocol or the JSON REST API, keeping one authenticated session alive.
"""

__version__ = "0.1.0"

from fishbowl_gateway.auth import SessionManager
from fishbowl_gateway.config import Credentials, Settings, load_settings
from fishbowl_gateway.errors import (
    AuthenticationError,
    ConfigurationError,
    ConnectionError,
    GatewayError,
    TimeoutError,
    TransportError,
    UpstreamError,
    ValidationError,
)
from fishbowl_gateway.gateway import Gateway

__all__ = [
    "Gateway",
    "SessionManager",
    "Settings",
    "Credentials",
    "load_settings",
    "GatewayError",
    "ConfigurationError",
    "ConnectionError",
    "TransportError",
    "TimeoutError",
    "AuthenticationError",
    "ValidationError",
    "UpstreamError",
]
