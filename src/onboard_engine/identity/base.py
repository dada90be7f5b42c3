"""Pluggable provider-facing interfaces.

The orchestrator depends on these, not on a concrete provider, so a different
identity provider (or an in-memory fake) only has to implement two methods.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from onboard_engine.models.auth import AuthenticatedPrincipal, AuthError, TokenSet


class TokenExchanger(ABC):
    """Turns an authorization code into a TokenSet."""

    @abstractmethod
    async def exchange(self, code: str, code_verifier: str) -> TokenSet | AuthError:
        """Exchange a code for tokens.

        Must return an AuthError rather than raise for provider and transport failures.
        """

    @abstractmethod
    async def refresh(self, refresh_token: str) -> TokenSet | AuthError:
        """Obtain a TokenSet that supersedes the one ``refresh_token`` came from."""


class PrincipalResolver(ABC):
    """Resolves the principal, tenant, and license inventory behind an access token."""

    @abstractmethod
    async def resolve(self, access_token: str) -> AuthenticatedPrincipal | AuthError:
        """Read the principal fresh from the provider. No caching."""
