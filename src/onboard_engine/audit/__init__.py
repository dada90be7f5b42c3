"""Audit sinks for lifecycle events."""

from onboard_engine.audit.sink import (
    AuditSink,
    FanoutAuditSink,
    InMemoryAuditSink,
    LoggingAuditSink,
)

__all__ = ["AuditSink", "FanoutAuditSink", "InMemoryAuditSink", "LoggingAuditSink"]
