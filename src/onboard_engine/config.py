"""Provider and provisioning configuration using pydantic-settings.

Values come from a YAML file, ``ONBOARD_*`` environment variables, or both
(environment wins). Endpoints default to the Microsoft identity platform and
Microsoft Graph for the configured tenant.

Environment variables:
    ONBOARD_CLIENT_ID: Application (client) ID (required)
    ONBOARD_CLIENT_SECRET: Client secret
    ONBOARD_TENANT_ID: Tenant ID or ``common`` (default: common)
    ONBOARD_REDIRECT_URI: Redirect URI registered with the provider
    ONBOARD_SCOPES: Space-separated scopes (default: the required set)
    ONBOARD_PKCE_METHOD: ``S256`` (default) or ``plain``
    ONBOARD_ENDPOINTS__AUTHORIZATION_URL, ONBOARD_ENDPOINTS__TOKEN_URL,
    ONBOARD_ENDPOINTS__GRAPH_BASE_URL: Endpoint overrides
    ONBOARD_PROVISIONING__FORCE_PROVISIONING: Force the drive after sign-in (default: false)
    ONBOARD_PROVISIONING__MAX_WAIT_SECONDS: Provisioning wait budget (default: 120)
    ONBOARD_PROVISIONING__RETRY_ATTEMPTS: Provisioning attempts (default: 5)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    NoDecode,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    SettingsError,
)

from onboard_engine.errors import ConfigError

REQUIRED_SCOPES: tuple[str, ...] = (
    "openid",
    "profile",
    "email",
    "offline_access",
    "User.Read",
    "Organization.Read.All",
    "Files.ReadWrite.All",
)

_AUTHORITY_HOST = "https://login.microsoftonline.com"
_GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"


class ProvisioningConfig(BaseModel):
    """Process-wide defaults for forcing the backing resource after sign-in."""

    force_provisioning: bool = False
    max_wait_seconds: float = Field(default=120.0, gt=0)
    retry_attempts: int = Field(default=5, ge=1)


class ProviderEndpoints(BaseModel):
    authorization_url: str = ""
    token_url: str = ""
    graph_base_url: str = _GRAPH_BASE_URL

    @classmethod
    def microsoft(cls, tenant_id: str) -> ProviderEndpoints:
        return cls(
            authorization_url=f"{_AUTHORITY_HOST}/{tenant_id}/oauth2/v2.0/authorize",
            token_url=f"{_AUTHORITY_HOST}/{tenant_id}/oauth2/v2.0/token",
        )


class OnboardConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ONBOARD_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    client_id: str
    client_secret: SecretStr = SecretStr("")
    tenant_id: str = "common"
    redirect_uri: str = "http://localhost:3000/auth/callback"
    scopes: Annotated[tuple[str, ...], NoDecode] = REQUIRED_SCOPES
    pkce_method: Literal["S256", "plain"] = "S256"
    endpoints: ProviderEndpoints = Field(default_factory=ProviderEndpoints)
    provisioning: ProvisioningConfig = Field(default_factory=ProvisioningConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # File values arrive as init kwargs, so the environment must rank above them.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(cls, value: object) -> object:
        if isinstance(value, str):
            return tuple(value.split())
        return value

    @model_validator(mode="after")
    def _fill_endpoints(self) -> OnboardConfig:
        defaults = ProviderEndpoints.microsoft(self.tenant_id)
        if not self.endpoints.authorization_url:
            self.endpoints.authorization_url = defaults.authorization_url
        if not self.endpoints.token_url:
            self.endpoints.token_url = defaults.token_url
        return self

    @classmethod
    def from_env(cls, **values) -> OnboardConfig:
        """Load from ``ONBOARD_*`` variables; ``values`` fill what the environment leaves unset."""
        try:
            return cls(**values)
        except (ValidationError, SettingsError) as exc:
            raise ConfigError(f"Invalid onboard configuration: {exc}") from exc

    @classmethod
    def from_yaml(cls, path: Path) -> OnboardConfig:
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        data = yaml.safe_load(path.read_text()) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        return cls.from_env(**data)
