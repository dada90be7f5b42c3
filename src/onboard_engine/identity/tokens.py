"""Token endpoint client for the authorization-code and refresh grants."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

import httpx

from onboard_engine.config import OnboardConfig
from onboard_engine.errors import ProviderError, TransportError
from onboard_engine.identity.base import TokenExchanger
from onboard_engine.identity.http import provider_json
from onboard_engine.models.auth import AuthError, TokenSet

logger = logging.getLogger(__name__)


class TokenExchangeClient(TokenExchanger):
    """Issues a single token request per call. Retries belong to the caller."""

    def __init__(self, config: OnboardConfig, client: httpx.AsyncClient) -> None:
        self._config = config
        self._client = client

    async def exchange(self, code: str, code_verifier: str) -> TokenSet | AuthError:
        form = {
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret.get_secret_value(),
            "code": code,
            "redirect_uri": self._config.redirect_uri,
            "grant_type": "authorization_code",
            "code_verifier": code_verifier,
        }
        return await self._request_tokens(
            form, error_code="TOKEN_EXCHANGE_ERROR", label="Token exchange"
        )

    async def refresh(self, refresh_token: str) -> TokenSet | AuthError:
        form = {
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret.get_secret_value(),
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
            "scope": " ".join(self._config.scopes),
        }
        result = await self._request_tokens(
            form, error_code="TOKEN_REFRESH_ERROR", label="Token refresh"
        )
        if isinstance(result, TokenSet) and result.refresh_token is None:
            # Providers may omit a rotated refresh token; the old one stays valid.
            result = result.model_copy(update={"refresh_token": refresh_token})
        return result

    async def _request_tokens(self, form: dict, *, error_code: str, label: str) -> TokenSet | AuthError:
        try:
            data = await provider_json(
                self._client,
                "POST",
                self._config.endpoints.token_url,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except ProviderError as exc:
            logger.error("%s failed: %s", label, exc)
            return AuthError(
                code=exc.code,
                message=exc.message,
                details={"status_code": exc.status_code},
            )
        except TransportError as exc:
            logger.error("%s error: %s", label, exc)
            return AuthError(
                code=error_code,
                message=f"{label} failed",
                details={"cause": str(exc)},
            )

        tokens = _parse_token_response(data)
        if tokens is None:
            logger.error("%s returned a malformed token response", label)
            return AuthError(
                code=error_code,
                message=f"{label} returned a malformed token response",
            )
        logger.info("%s successful, expires in %ss", label, data.get("expires_in"))
        return tokens


def _parse_token_response(data: dict, now: datetime | None = None) -> TokenSet | None:
    """Build a TokenSet, deriving expires_at from the relative lifetime only."""
    access_token = data.get("access_token")
    if not isinstance(access_token, str) or not access_token:
        return None
    try:
        lifetime = float(data.get("expires_in", 0))
    except (TypeError, ValueError):
        return None
    now = now or datetime.now(UTC)
    scope = data.get("scope") or ""
    return TokenSet(
        access_token=access_token,
        refresh_token=data.get("refresh_token"),
        id_token=data.get("id_token"),
        expires_at=now + timedelta(seconds=lifetime),
        scope=frozenset(scope.split()) if isinstance(scope, str) else frozenset(),
    )
