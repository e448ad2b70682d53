"""
Standard span attributes for intelstore.

Attribute constants shared by every component that opens a tracing span,
so that spans coming from the pipeline, the index manager and the
coordinator can be filtered on the same keys. Database attributes follow
OpenTelemetry semantic conventions.

Example:
    >>> from intelstore.observability.attributes import ATTR_ENTITY_TYPE, ATTR_INDEX
    >>>
    >>> with tracer.span(
    ...     "intelstore.pipeline.fetch_batch",
    ...     {ATTR_ENTITY_TYPE: "indicator", ATTR_INDEX: "v1_ctia_indicator"},
    ... ):
    ...     pass
"""

# =============================================================================
# Database Attributes (OTEL semantic)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system name (e.g., 'elasticsearch', 'memory')."""

ATTR_DB_OPERATION = "db.operation"
"""Operation name (e.g., 'search', 'bulk', 'count')."""

# =============================================================================
# Store Attributes
# =============================================================================

ATTR_ENTITY_TYPE = "intelstore.entity.type"
"""Entity type key of the store involved (e.g., 'indicator', 'sighting')."""

ATTR_INDEX = "intelstore.index"
"""Name of the index an operation targets."""

ATTR_BATCH_SIZE = "intelstore.batch.size"
"""Requested or actual number of documents in a batch (integer)."""

ATTR_DOCUMENT_COUNT = "intelstore.document.count"
"""Number of documents involved in an operation (integer)."""

# =============================================================================
# Migration Attributes
# =============================================================================

ATTR_MIGRATION_ID = "intelstore.migration.id"
"""Identifier of the migration run."""

ATTR_MIGRATION_PREFIX = "intelstore.migration.prefix"
"""Version prefix applied to target index names."""

ATTR_MIGRATION_MIGRATED = "intelstore.migration.migrated"
"""Number of documents written to the target so far (integer)."""

ATTR_MIGRATION_TOTAL = "intelstore.migration.total"
"""Number of documents in the source at migration start (integer)."""

ATTR_SOURCE_INDEX = "intelstore.migration.source_index"
"""Source index of an entity type migration."""

ATTR_TARGET_INDEX = "intelstore.migration.target_index"
"""Target index of an entity type migration."""

__all__ = [
    "ATTR_DB_SYSTEM",
    "ATTR_DB_OPERATION",
    "ATTR_ENTITY_TYPE",
    "ATTR_INDEX",
    "ATTR_BATCH_SIZE",
    "ATTR_DOCUMENT_COUNT",
    "ATTR_MIGRATION_ID",
    "ATTR_MIGRATION_PREFIX",
    "ATTR_MIGRATION_MIGRATED",
    "ATTR_MIGRATION_TOTAL",
    "ATTR_SOURCE_INDEX",
    "ATTR_TARGET_INDEX",
]
