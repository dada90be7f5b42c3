"""Audit sinks. The event shape is fixed; where events land is a deployment choice."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable

from onboard_engine.models.audit import AuditEvent

logger = logging.getLogger("onboard_engine.audit")


class AuditSink(ABC):
    """Append-only emitter of lifecycle events."""

    @abstractmethod
    async def emit(self, event: AuditEvent) -> None:
        """Record ``event``. Events are never updated or removed."""


class LoggingAuditSink(AuditSink):
    """Writes one structured log line per event."""

    def __init__(self, level: int = logging.INFO) -> None:
        self._level = level

    async def emit(self, event: AuditEvent) -> None:
        logger.log(
            self._level,
            "audit %s principal=%s tenant=%s succeeded=%s session=%s",
            event.kind.value,
            event.principal_id,
            event.tenant_id,
            event.succeeded,
            event.session_id,
            extra={"audit_event": event.model_dump(mode="json")},
        )


class InMemoryAuditSink(AuditSink):
    def __init__(self) -> None:
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> tuple[AuditEvent, ...]:
        return tuple(self._events)

    async def emit(self, event: AuditEvent) -> None:
        self._events.append(event)


class FanoutAuditSink(AuditSink):
    """Forwards every event to each wrapped sink in order."""

    def __init__(self, sinks: Iterable[AuditSink]) -> None:
        self._sinks = list(sinks)

    async def emit(self, event: AuditEvent) -> None:
        for sink in self._sinks:
            await sink.emit(event)
