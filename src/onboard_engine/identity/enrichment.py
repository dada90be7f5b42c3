"""Identity enrichment: who signed in, which tenant, which licenses.

Three reads against Graph, all of which must succeed. The profile read goes
first so a bad token fails fast with the provider's own error.
"""

from __future__ import annotations

import logging

import httpx

from onboard_engine.errors import ProviderError, TransportError
from onboard_engine.identity.base import PrincipalResolver
from onboard_engine.identity.http import bearer, provider_json
from onboard_engine.models.auth import (
    AuthenticatedPrincipal,
    AuthError,
    LicenseSku,
    TenantContext,
)

logger = logging.getLogger(__name__)


class IdentityEnrichmentClient(PrincipalResolver):
    def __init__(self, graph_base_url: str, client: httpx.AsyncClient) -> None:
        self._base = graph_base_url.rstrip("/")
        self._client = client

    async def resolve(self, access_token: str) -> AuthenticatedPrincipal | AuthError:
        headers = bearer(access_token)
        try:
            profile = await provider_json(self._client, "GET", f"{self._base}/me", headers=headers)
            organization = await provider_json(
                self._client, "GET", f"{self._base}/organization", headers=headers
            )
            skus = await provider_json(
                self._client, "GET", f"{self._base}/subscribedSkus", headers=headers
            )
            principal = _build_principal(profile, organization, skus)
        except ProviderError as exc:
            logger.error("Principal lookup rejected by provider: %s", exc)
            return AuthError(
                code=exc.code,
                message=exc.message,
                details={"status_code": exc.status_code},
            )
        except (TransportError, KeyError, IndexError, TypeError, ValueError) as exc:
            logger.error("Principal lookup error: %s", exc)
            return AuthError(
                code="USER_INFO_ERROR",
                message="Failed to retrieve user information",
                details={"cause": str(exc)},
            )

        logger.info("User info retrieved: %s (%s)", principal.display_name, principal.principal_name)
        return principal


def _build_principal(profile: dict, organization: dict, skus: dict) -> AuthenticatedPrincipal:
    org = organization["value"][0]
    default_domain = next(
        (d.get("name", "") for d in org.get("verifiedDomains", []) if d.get("isDefault")),
        "",
    )
    licenses = tuple(
        LicenseSku(
            sku_id=sku["skuId"],
            display_name=sku.get("skuPartNumber", ""),
            total_units=(sku.get("prepaidUnits") or {}).get("enabled", 0),
            consumed_units=sku.get("consumedUnits", 0),
        )
        for sku in skus.get("value", [])
    )
    tenant = TenantContext(
        tenant_id=org["id"],
        display_name=org.get("displayName", ""),
        default_domain=default_domain or "",
        available_licenses=licenses,
    )
    # Role claims are not extracted at this stage.
    return AuthenticatedPrincipal(
        id=profile["id"],
        principal_name=profile.get("userPrincipalName", ""),
        display_name=profile.get("displayName") or "",
        tenant=tenant,
    )
