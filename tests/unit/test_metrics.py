"""Tests for ResetMetrics."""

from unittest.mock import MagicMock, patch

import pytest

from credential_reset.audit.events import AuditEvent, AuditEventType, AuditOutcome
from credential_reset.observability import ResetMetrics


class TestResetMetrics:
    def test_observe_records_histogram_and_counter(self):
        prometheus_client = pytest.importorskip("prometheus_client")
        registry = prometheus_client.REGISTRY
        labels = {"operation": "test_observe", "status": "verified"}
        before = registry.get_sample_value("credential_reset_operations_total", labels) or 0

        ResetMetrics.observe("test_observe", "verified", 0.01)

        after = registry.get_sample_value("credential_reset_operations_total", labels)
        assert after == before + 1
        count = registry.get_sample_value(
            "credential_reset_operation_duration_seconds_count",
            {"operation": "test_observe"},
        )
        assert count >= 1

    def test_record_event_counts_by_type(self):
        prometheus_client = pytest.importorskip("prometheus_client")
        registry = prometheus_client.REGISTRY
        labels = {"event_type": "reset.code.rejected", "outcome": "failure"}
        before = (
            registry.get_sample_value("credential_reset_audit_events_total", labels) or 0
        )

        ResetMetrics.record_event(
            AuditEvent(AuditEventType.CODE_REJECTED, AuditOutcome.FAILURE)
        )

        after = registry.get_sample_value("credential_reset_audit_events_total", labels)
        assert after == before + 1

    def test_noop_without_prometheus(self):
        with patch("credential_reset.observability.metrics._registry") as registry:
            registry.histogram = None
            registry.counter = None
            registry.audit_counter = None
            ResetMetrics.observe("request_code", "issued", 0.1)
            ResetMetrics.record_event(AuditEvent(AuditEventType.CODE_ISSUED))

    def test_metric_errors_swallowed(self):
        with patch("credential_reset.observability.metrics._registry") as registry:
            registry.counter.labels.side_effect = ValueError("bad label")
            registry.histogram = MagicMock()
            ResetMetrics.observe("request_code", "issued", 0.1)
