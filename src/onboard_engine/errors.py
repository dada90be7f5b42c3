"""Exception taxonomy.

Auth stages convert ProviderError and TransportError into AuthError results.
The ledger raises LedgerError subclasses directly.
"""

from __future__ import annotations


class OnboardError(Exception):
    """Base class for all onboard engine errors."""


class ConfigError(OnboardError):
    pass


class ProviderError(OnboardError):
    """The provider answered with an error envelope. Code and message are verbatim."""

    def __init__(self, code: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message
        self.status_code = status_code


class TransportError(OnboardError):
    """The request never produced a usable provider response."""


class LedgerError(OnboardError):
    pass


class SessionNotFound(LedgerError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class SessionStateError(LedgerError):
    def __init__(self, session_id: str, status: str, operation: str) -> None:
        super().__init__(f"Cannot {operation} session {session_id} in status '{status}'")
        self.session_id = session_id
        self.status = status
        self.operation = operation


class LedgerCorrupted(LedgerError):
    pass
