"""Append-only audit trail of the reset workflow."""

from __future__ import annotations

from .events import AuditEvent, AuditEventType, AuditOutcome
from .logger import AuditLogger, LoggingAuditSink
from .memory import InMemoryAuditSink

__all__: list[str] = [
    "AuditEvent",
    "AuditEventType",
    "AuditOutcome",
    "AuditLogger",
    "LoggingAuditSink",
    "InMemoryAuditSink",
]
