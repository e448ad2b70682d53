"""
OpenTelemetry availability for intelstore.

OpenTelemetry is an optional dependency (the ``telemetry`` extra). This
module is the single place that checks whether it is importable.
"""

from __future__ import annotations

try:
    import opentelemetry.trace  # noqa: F401

    OTEL_AVAILABLE = True
except ImportError:
    OTEL_AVAILABLE = False


__all__ = ["OTEL_AVAILABLE"]
