"""Outcomes of forcing the backing resource into existence.

Exactly one variant is produced per retrier invocation. The ``status`` field is
the discriminator, so outcomes survive a JSON round-trip as the right type.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class ProvisioningStatus(StrEnum):
    READY = "ready"
    NOT_YET_AVAILABLE = "not_yet_available"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


class _Outcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    elapsed_seconds: float
    attempts: int

    @property
    def is_ready(self) -> bool:
        return False


class Ready(_Outcome):
    status: Literal["ready"] = "ready"
    resource_url: str

    @property
    def is_ready(self) -> bool:
        return True


class NotYetAvailable(_Outcome):
    """The provider has not created the resource yet, which is normal for new principals."""

    status: Literal["not_yet_available"] = "not_yet_available"
    new_principal_likely: bool = True


class TimedOut(_Outcome):
    status: Literal["timed_out"] = "timed_out"
    cancelled: bool = False


class Failed(_Outcome):
    status: Literal["failed"] = "failed"
    cause: str


ProvisioningOutcome = Annotated[
    Ready | NotYetAvailable | TimedOut | Failed,
    Field(discriminator="status"),
]
