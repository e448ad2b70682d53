"""
Observability utilities for intelstore.

Tracing is optional: every component takes a ``tracer`` (or builds one with
:func:`create_tracer`) and all utilities here degrade to no-ops when
OpenTelemetry is not installed.
"""

from intelstore.observability.attributes import (
    ATTR_BATCH_SIZE,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_DOCUMENT_COUNT,
    ATTR_ENTITY_TYPE,
    ATTR_INDEX,
    ATTR_MIGRATION_ID,
    ATTR_MIGRATION_MIGRATED,
    ATTR_MIGRATION_PREFIX,
    ATTR_MIGRATION_TOTAL,
    ATTR_SOURCE_INDEX,
    ATTR_TARGET_INDEX,
)
from intelstore.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)
from intelstore.observability.tracing import OTEL_AVAILABLE

__all__ = [
    "OTEL_AVAILABLE",
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
    "ATTR_BATCH_SIZE",
    "ATTR_DB_OPERATION",
    "ATTR_DB_SYSTEM",
    "ATTR_DOCUMENT_COUNT",
    "ATTR_ENTITY_TYPE",
    "ATTR_INDEX",
    "ATTR_MIGRATION_ID",
    "ATTR_MIGRATION_MIGRATED",
    "ATTR_MIGRATION_PREFIX",
    "ATTR_MIGRATION_TOTAL",
    "ATTR_SOURCE_INDEX",
    "ATTR_TARGET_INDEX",
]
