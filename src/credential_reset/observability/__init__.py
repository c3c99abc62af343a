"""Observability helpers (Prometheus metrics)."""

from __future__ import annotations

from .metrics import ResetMetrics

__all__: list[str] = ["ResetMetrics"]
