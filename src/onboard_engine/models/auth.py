"""Auth types: tokens, principals, tenants, and typed auth results."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field

from onboard_engine.models.provisioning import ProvisioningOutcome


class TokenSet(BaseModel):
    """Tokens issued by the provider. Superseded, never mutated, on refresh."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str | None = None
    id_token: str | None = None
    expires_at: datetime
    scope: frozenset[str] = frozenset()

    def is_expired(self, now: datetime | None = None, leeway_seconds: float = 0) -> bool:
        now = now or datetime.now(UTC)
        return now + timedelta(seconds=leeway_seconds) >= self.expires_at


class LicenseSku(BaseModel):
    model_config = ConfigDict(frozen=True)

    sku_id: str
    display_name: str
    total_units: int = 0
    consumed_units: int = 0

    @property
    def available_units(self) -> int:
        return max(self.total_units - self.consumed_units, 0)


class TenantContext(BaseModel):
    """The organization the principal signed in to.

    default_domain is the empty string when no verified domain is flagged default.
    """

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    display_name: str
    default_domain: str = ""
    available_licenses: tuple[LicenseSku, ...] = ()


class AuthenticatedPrincipal(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    principal_name: str
    display_name: str
    tenant: TenantContext
    roles: frozenset[str] = frozenset()


class AuthError(BaseModel):
    """Typed failure of an auth stage. Provider codes are surfaced verbatim."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    details: dict = Field(default_factory=dict)


class ProvisioningOptions(BaseModel):
    """Per-callback overrides for forced provisioning of the backing resource."""

    force_backing_resource: bool | None = None
    skip_backing_resource: bool = False
    max_wait_seconds: float | None = None


class AuthorizationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    authorization_url: str
    state: str
    code_verifier: str


class AuthResult(BaseModel):
    succeeded: bool
    principal: AuthenticatedPrincipal | None = None
    tokens: TokenSet | None = None
    error: AuthError | None = None
    provisioning: ProvisioningOutcome | None = None

    @classmethod
    def failure(cls, error: AuthError) -> AuthResult:
        return cls(succeeded=False, error=error)
