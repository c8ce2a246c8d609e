"""
OpenTelemetry availability detection.

OpenTelemetry is an optional dependency (``pip install gamification-outbox[telemetry]``).
Every tracing helper in this package checks ``OTEL_AVAILABLE`` before
touching the OpenTelemetry API.
"""

from __future__ import annotations

# Optional OpenTelemetry import - single source of truth
try:
    from opentelemetry import trace

    OTEL_AVAILABLE = True
except ImportError:
    OTEL_AVAILABLE = False
    trace = None  # type: ignore[assignment]


__all__ = [
    "OTEL_AVAILABLE",
]
