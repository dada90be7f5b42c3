"""Sign-in orchestration: authorization request, callback handling, audit.

The callback is an ordered pipeline of typed stages. Token exchange and
principal lookup can end it early with their own AuthError; forced provisioning
never can, because the backing drive is best-effort. The only catch-all lives
in ``handle_callback`` and turns unexpected faults into CALLBACK_ERROR.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import hashlib
import json
import logging
import secrets
import uuid
from collections.abc import Iterable
from urllib.parse import urlencode

import httpx

from onboard_engine.audit.sink import AuditSink
from onboard_engine.config import OnboardConfig
from onboard_engine.identity.base import PrincipalResolver, TokenExchanger
from onboard_engine.identity.enrichment import IdentityEnrichmentClient
from onboard_engine.identity.tokens import TokenExchangeClient
from onboard_engine.models.audit import AuditEvent, AuditEventKind
from onboard_engine.models.auth import (
    AuthError,
    AuthorizationRequest,
    AuthResult,
    ProvisioningOptions,
)
from onboard_engine.models.provisioning import ProvisioningOutcome
from onboard_engine.provisioning.retrier import ForcedProvisioningRetrier

logger = logging.getLogger(__name__)


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def encode_state(nonce: str, force_backing_resource: bool) -> str:
    payload = {"nonce": nonce, "force_backing_resource": force_backing_resource}
    return _b64url(json.dumps(payload, separators=(",", ":")).encode("utf-8"))


def decode_state(state: str) -> dict:
    """Recover the payload written by ``encode_state``. Raises ValueError if malformed."""
    padded = state + "=" * (-len(state) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (binascii.Error, UnicodeError) as exc:
        raise ValueError(f"Malformed state parameter: {exc}") from exc
    if not isinstance(payload, dict) or "nonce" not in payload:
        raise ValueError("Malformed state parameter: missing nonce")
    return payload


def build_code_challenge(code_verifier: str, method: str) -> str:
    if method == "plain":
        return code_verifier
    return _b64url(hashlib.sha256(code_verifier.encode("ascii")).digest())


def build_authorization_request(
    config: OnboardConfig,
    *,
    force_backing_resource: bool | None = None,
    extra_scopes: Iterable[str] | None = None,
) -> AuthorizationRequest:
    """Build the provider redirect. Generates randomness only; no network.

    The forced-provisioning preference rides inside ``state`` so it survives the
    browser round-trip to the provider and back.
    """
    force = (
        force_backing_resource
        if force_backing_resource is not None
        else config.provisioning.force_provisioning
    )
    state = encode_state(secrets.token_urlsafe(24), force)
    code_verifier = secrets.token_urlsafe(48)
    scopes = list(dict.fromkeys([*config.scopes, *(extra_scopes or ())]))

    params = {
        "client_id": config.client_id,
        "response_type": "code",
        "redirect_uri": config.redirect_uri,
        "scope": " ".join(scopes),
        "state": state,
        "code_challenge": build_code_challenge(code_verifier, config.pkce_method),
        "code_challenge_method": config.pkce_method,
        "prompt": "consent",
    }
    url = f"{config.endpoints.authorization_url}?{urlencode(params)}"
    logger.info("Built authorization request (force backing resource: %s)", force)
    return AuthorizationRequest(authorization_url=url, state=state, code_verifier=code_verifier)


class AuthOrchestrator:
    def __init__(
        self,
        config: OnboardConfig,
        *,
        tokens: TokenExchanger,
        resolver: PrincipalResolver,
        retrier: ForcedProvisioningRetrier,
        audit: AuditSink,
    ) -> None:
        self._config = config
        self._tokens = tokens
        self._resolver = resolver
        self._retrier = retrier
        self._audit = audit

    @classmethod
    def from_config(
        cls, config: OnboardConfig, client: httpx.AsyncClient, audit: AuditSink
    ) -> AuthOrchestrator:
        graph = config.endpoints.graph_base_url
        return cls(
            config,
            tokens=TokenExchangeClient(config, client),
            resolver=IdentityEnrichmentClient(graph, client),
            retrier=ForcedProvisioningRetrier(graph, client),
            audit=audit,
        )

    def build_authorization_request(
        self,
        *,
        force_backing_resource: bool | None = None,
        extra_scopes: Iterable[str] | None = None,
    ) -> AuthorizationRequest:
        return build_authorization_request(
            self._config,
            force_backing_resource=force_backing_resource,
            extra_scopes=extra_scopes,
        )

    async def handle_callback(
        self,
        code: str,
        state: str,
        code_verifier: str,
        options: ProvisioningOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> AuthResult:
        options = options or ProvisioningOptions()
        try:
            return await self._run_callback(code, state, code_verifier, options, cancel)
        except Exception as exc:
            logger.exception("Auth callback error")
            return AuthResult.failure(
                AuthError(
                    code="CALLBACK_ERROR",
                    message="Failed to process authentication callback",
                    details={"exception": repr(exc)},
                )
            )

    async def _run_callback(
        self,
        code: str,
        state: str,
        code_verifier: str,
        options: ProvisioningOptions,
        cancel: asyncio.Event | None,
    ) -> AuthResult:
        force = self._resolve_preference(state, options)
        logger.info("Processing callback (force backing resource: %s)", force)

        tokens = await self._tokens.exchange(code, code_verifier)
        if isinstance(tokens, AuthError):
            await self._emit_failure(tokens, stage="token_exchange")
            return AuthResult.failure(tokens)

        principal = await self._resolver.resolve(tokens.access_token)
        if isinstance(principal, AuthError):
            await self._emit_failure(principal, stage="principal_lookup")
            return AuthResult.failure(principal)

        outcome: ProvisioningOutcome | None = None
        if force and not options.skip_backing_resource:
            logger.info("Forcing backing resource for %s", principal.principal_name)
            outcome = await self._retrier.force_ready(
                principal.id,
                tokens.access_token,
                max_wait_seconds=(
                    options.max_wait_seconds
                    if options.max_wait_seconds is not None
                    else self._config.provisioning.max_wait_seconds
                ),
                max_attempts=self._config.provisioning.retry_attempts,
                cancel=cancel,
            )

        await self._audit.emit(
            AuditEvent(
                kind=AuditEventKind.SIGN_IN,
                principal_id=principal.id,
                tenant_id=principal.tenant.tenant_id,
                succeeded=True,
                session_id=str(uuid.uuid4()),
                metadata={
                    "backing_resource_forced": force,
                    "backing_resource_status": outcome.status if outcome else None,
                    "backing_resource_ready": outcome.is_ready if outcome else None,
                    "backing_resource_elapsed_seconds": (
                        outcome.elapsed_seconds if outcome else None
                    ),
                },
            )
        )

        return AuthResult(
            succeeded=True, principal=principal, tokens=tokens, provisioning=outcome
        )

    def _resolve_preference(self, state: str, options: ProvisioningOptions) -> bool:
        recorded = decode_state(state).get("force_backing_resource")
        if options.force_backing_resource is not None:
            return options.force_backing_resource
        if isinstance(recorded, bool):
            return recorded
        return self._config.provisioning.force_provisioning

    async def _emit_failure(self, error: AuthError, *, stage: str) -> None:
        await self._audit.emit(
            AuditEvent(
                kind=AuditEventKind.SIGN_IN_FAILED,
                succeeded=False,
                session_id=str(uuid.uuid4()),
                metadata={"stage": stage, "code": error.code, "message": error.message},
            )
        )
