"""Reset workflow metrics for Prometheus integration.

Usage:
    ```python
    from credential_reset.observability import ResetMetrics

    ResetMetrics.observe("submit_code", "verified", duration=0.012)
    ResetMetrics.record_event(event)
    ```

Every helper is a no-op when ``prometheus_client`` is not installed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

_logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from ..audit.events import AuditEvent


class _ResetMetricsRegistry:
    """Registry for reset Prometheus metrics.

    Lazily initializes Prometheus metrics on first use.
    """

    def __init__(self) -> None:
        self._histogram: Any = None
        self._counter: Any = None
        self._audit_counter: Any = None
        self._initialized = False

    def _ensure_initialized(self) -> None:
        """Initialize Prometheus metrics if available."""
        if self._initialized:
            return

        try:
            from prometheus_client import Counter, Histogram

            self._histogram = Histogram(
                "credential_reset_operation_duration_seconds",
                "Reset engine operation duration",
                ["operation"],
            )
            self._counter = Counter(
                "credential_reset_operations_total",
                "Reset engine operation count",
                ["operation", "status"],
            )
            self._audit_counter = Counter(
                "credential_reset_audit_events_total",
                "Audit events recorded",
                ["event_type", "outcome"],
            )
        except ImportError:
            _logger.debug("prometheus_client not available, metrics disabled")

        self._initialized = True

    @property
    def histogram(self) -> Any:
        self._ensure_initialized()
        return self._histogram

    @property
    def counter(self) -> Any:
        self._ensure_initialized()
        return self._counter

    @property
    def audit_counter(self) -> Any:
        self._ensure_initialized()
        return self._audit_counter


# Global registry instance
_registry = _ResetMetricsRegistry()


class ResetMetrics:
    """Helpers for recording engine operations and audit events."""

    @staticmethod
    def observe(operation: str, status: str, duration: float) -> None:
        """Record one finished engine operation.

        Args:
            operation: Engine operation name (request_code, submit_code, ...).
            status: Result status value.
            duration: Wall time in seconds.
        """
        if _registry.histogram:
            try:
                _registry.histogram.labels(operation=operation).observe(duration)
            except Exception:
                _logger.debug("Failed to record histogram")

        if _registry.counter:
            try:
                _registry.counter.labels(operation=operation, status=status).inc()
            except Exception:
                _logger.debug("Failed to record counter")

    @staticmethod
    def record_event(event: AuditEvent) -> None:
        """Count an audit event by type and outcome."""
        if not _registry.audit_counter:
            return

        try:
            _registry.audit_counter.labels(
                event_type=event.event_type.value,
                outcome=event.outcome.value,
            ).inc()
        except Exception:
            _logger.debug("Failed to record audit event metric")


__all__: list[str] = ["ResetMetrics"]
