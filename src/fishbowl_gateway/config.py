"""
Configuration management using pydantic-settings.

Loads FISHBOWL_* environment variables (and a .env file) once at startup.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from fishbowl_gateway.errors import ConfigurationError

DEFAULT_XML_PORT = 28192


class Credentials(BaseModel):
    """Upstream identity. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    host: str
    port: int
    base_url: Optional[str] = None
    username: str
    password: str
    app_id: int
    app_name: str
    app_description: str


class Settings(BaseSettings):
    """Gateway settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_prefix="FISHBOWL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Upstream
    protocol: Literal["xml", "rest"] = Field(default="xml", description="Upstream wire protocol")
    host: str = Field(default="localhost", description="Fishbowl server host (xml)")
    port: int = Field(default=DEFAULT_XML_PORT, description="Fishbowl server port (xml)")
    base_url: Optional[str] = Field(default=None, description="Fishbowl REST API base URL (rest)")
    username: Optional[str] = Field(default=None, description="Fishbowl user name")
    password: Optional[str] = Field(default=None, description="Fishbowl password")
    app_id: int = Field(default=101, description="Integrated application id")
    app_name: str = Field(default="Fishbowl Gateway", description="Integrated application name")
    app_description: str = Field(
        default="REST gateway for Fishbowl Inventory",
        description="Integrated application description",
    )

    # Timeouts and session policy
    connect_timeout: float = Field(default=10.0, gt=0, description="Seconds to wait for a connection")
    request_timeout: float = Field(default=30.0, gt=0, description="Seconds to wait for one response")
    refresh_threshold_seconds: float = Field(
        default=600.0, ge=0, description="Re-login when the session expires within this window"
    )
    session_ttl_seconds: float = Field(
        default=86400.0, gt=0, description="Assumed session lifetime when the upstream gives none"
    )

    # Inbound surface
    validation_enabled: bool = Field(default=True, description="Validate convenience route bodies")
    rate_limit_enabled: bool = Field(default=False, description="Token-bucket limit per client")
    rate_limit_capacity: int = Field(default=100, gt=0, description="Bucket size")
    rate_limit_refill_per_second: float = Field(default=10.0, gt=0, description="Bucket refill rate")
    api_host: str = Field(default="0.0.0.0", description="API host to bind to")
    api_port: int = Field(default=3000, description="API port to listen on")
    log_level: str = Field(default="INFO", description="Logging level")

    def target(self) -> str:
        if self.protocol == "rest":
            return self.base_url or ""
        return f"{self.host}:{self.port}"

    def credentials(self) -> Credentials:
        missing = [name for name in ("username", "password") if not getattr(self, name)]
        if self.protocol == "rest" and not self.base_url:
            missing.append("base_url")
        if missing:
            env_names = ", ".join(f"FISHBOWL_{name.upper()}" for name in missing)
            raise ConfigurationError(f"Missing required configuration: {env_names}", {"missing": missing})
        return Credentials(
            host=self.host,
            port=self.port,
            base_url=self.base_url.rstrip("/") if self.base_url else None,
            username=self.username,  # type: ignore[arg-type]
            password=self.password,  # type: ignore[arg-type]
            app_id=self.app_id,
            app_name=self.app_name,
            app_description=self.app_description,
        )

    def masked(self) -> dict:
        data = self.model_dump()
        if data.get("password"):
            data["password"] = "********"
        return data


def load_settings(**overrides) -> Settings:
    """Load and validate settings. Missing credentials are fatal."""
    try:
        settings = Settings(**overrides)
    except PydanticValidationError as e:
        errors = [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]
        raise ConfigurationError(f"Invalid configuration: {e.error_count()} error(s)", {"errors": errors})
    settings.credentials()
    return settings
