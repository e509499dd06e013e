"""
Shared configuration management for the Calling Service.
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="CALLING_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Downstream customer service
    customer_service_url: str = Field(default="http://localhost:8080")
    downstream_timeout_seconds: float = Field(default=10.0, gt=0)

    # OAuth2 client registration
    oauth2_registration_id: str = Field(default="customer-service")
    oauth2_client_id: str = Field(default="calling-service")
    oauth2_client_secret: str = Field(default="")
    oauth2_token_uri: Optional[str] = Field(default=None)
    oauth2_issuer_uri: Optional[str] = Field(default="http://localhost:9000/realms/customers")
    oauth2_scope: str = Field(default="", description="Space separated scopes")
    oauth2_client_auth_method: str = Field(default="client_secret_basic")
    oauth2_clock_skew_seconds: int = Field(default=60, ge=0)

    @property
    def oauth2_scopes(self) -> List[str]:
        """Requested scopes as a list."""
        return [scope for scope in self.oauth2_scope.split() if scope]


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int = 8090
    host: str = "0.0.0.0"


def get_config(service_name: str, port: Optional[int] = None, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    if port is not None:
        overrides.setdefault("port", port)
    return ServiceConfig(service_name=service_name, **overrides)
