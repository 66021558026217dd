"""
Shared configuration management for the Access Layer federation service.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ACCESS_",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Observability
    enable_tracing: bool = Field(default=False)
    otel_exporter: str = Field(default="http://localhost:4318")
    enable_console_tracing: bool = Field(default=False)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str = "service"
    port: int = 8000
    host: str = "0.0.0.0"


class FederationConfig(ServiceConfig):
    """Configuration for the DingTalk identity federation service.

    Every upstream URL is overridable so the service can be pointed at the
    mock upstream in ``mocks/dingtalk`` during local development.
    """

    provider_alias: str = Field(default="dingtalk")

    dingtalk_client_id: str = Field(default="")
    dingtalk_client_secret: str = Field(default="")

    dingtalk_authorization_url: str = Field(default="https://login.dingtalk.com/oauth2/auth")
    dingtalk_token_url: str = Field(default="https://api.dingtalk.com/v1.0/oauth2/userAccessToken")
    dingtalk_profile_url: str = Field(default="https://api.dingtalk.com/v1.0/contact/users/me")
    dingtalk_default_scope: str = Field(default="openid corpid")

    # Transliteration service runs next to the broker
    transliteration_url: str = Field(default="http://127.0.0.1:28080/topinyin")

    email_domain: str = Field(default="dcx.com")
    http_timeout_seconds: float = Field(default=5.0, gt=0)

    # Signed OAuth state
    state_secret: str = Field(default="change-me")
    state_ttl_seconds: int = Field(default=600, gt=0)
    callback_url: Optional[str] = Field(default=None)


def get_config(service_name: str, port: int, **overrides) -> FederationConfig:
    """Get configuration for a specific service."""
    return FederationConfig(service_name=service_name, port=port, **overrides)
