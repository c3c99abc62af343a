"""Audit logger and a log-backed audit sink."""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from ..observability.metrics import ResetMetrics
from ..ports import IAuditSink
from ..sanitization import SecretSanitizer, default_sanitizer

if TYPE_CHECKING:
    from .events import AuditEvent

logger = logging.getLogger(__name__)


class LoggingAuditSink(IAuditSink):
    """Writes one JSON line per event to a standard logger.

    Point the ``credential_reset.audit.events`` logger at an append-only
    handler (file, syslog, log shipper) to get a durable audit trail.
    """

    def __init__(
        self,
        log: logging.Logger | None = None,
        level: int = logging.INFO,
    ) -> None:
        self._log = log or logging.getLogger("credential_reset.audit.events")
        self._level = level

    async def record(self, event: AuditEvent) -> None:
        self._log.log(self._level, json.dumps(event.to_dict(), default=str, sort_keys=True))


class AuditLogger:
    """
    Front door for audit records.

    Scrubs metadata through the sanitizer, counts the event in
    metrics and hands it to the sink. A failing sink never loses the event:
    it is written to the error log instead and the operation carries on.
    """

    def __init__(
        self,
        sink: IAuditSink,
        sanitizer: SecretSanitizer | None = None,
    ) -> None:
        self.sink = sink
        self.sanitizer = sanitizer or default_sanitizer

    def scrub(self, event: AuditEvent) -> AuditEvent:
        return replace(event, metadata=self.sanitizer.sanitize(event.metadata))

    async def record(self, event: AuditEvent) -> None:
        event = self.scrub(event)
        ResetMetrics.record_event(event)
        try:
            await self.sink.record(event)
        except Exception:
            logger.exception(
                "Audit sink failed; event follows: %s",
                json.dumps(event.to_dict(), default=str, sort_keys=True),
            )


__all__: list[str] = ["AuditLogger", "LoggingAuditSink"]
