"""In-memory audit sink for testing and development."""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

from ..ports import IAuditSink

if TYPE_CHECKING:
    from .events import AuditEvent, AuditEventType


class InMemoryAuditSink(IAuditSink):
    """In-memory implementation of IAuditSink.

    Stores audit events in memory with lookups by session, subject and
    event type.

    Note:
        Events are stored in memory and will be lost on restart.
        Not suitable for production use.
    """

    def __init__(self) -> None:
        self._events: list[AuditEvent] = []
        self._by_session: dict[str, list[int]] = defaultdict(list)
        self._by_subject: dict[str, list[int]] = defaultdict(list)
        self._by_type: dict[str, list[int]] = defaultdict(list)

    async def record(self, event: AuditEvent) -> None:
        index = len(self._events)
        self._events.append(event)

        if event.session_id:
            self._by_session[event.session_id].append(index)
        if event.subject_id:
            self._by_subject[event.subject_id].append(index)
        self._by_type[event.event_type.value].append(index)

    @property
    def events(self) -> list[AuditEvent]:
        """All events in recording order."""
        return list(self._events)

    def for_session(self, session_id: str) -> list[AuditEvent]:
        """Events for ``session_id``, oldest first."""
        return [self._events[i] for i in self._by_session.get(session_id, [])]

    def for_subject(
        self,
        subject_id: str,
        *,
        event_types: list[AuditEventType] | None = None,
    ) -> list[AuditEvent]:
        events = [self._events[i] for i in self._by_subject.get(subject_id, [])]
        if event_types:
            events = [e for e in events if e.event_type in event_types]
        return events

    def of_type(self, event_type: AuditEventType) -> list[AuditEvent]:
        return [self._events[i] for i in self._by_type.get(event_type.value, [])]

    def clear(self) -> None:
        """Clear all stored events.

        Useful for test cleanup.
        """
        self._events.clear()
        self._by_session.clear()
        self._by_subject.clear()
        self._by_type.clear()

    def count(self) -> int:
        return len(self._events)

    def count_by_type(self, event_type: AuditEventType) -> int:
        return len(self._by_type.get(event_type.value, []))


__all__: list[str] = ["InMemoryAuditSink"]
