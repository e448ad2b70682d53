"""
intelstore - Threat intelligence document store tooling.

This library provides:
- Document store interface with Elasticsearch and In-Memory backends
- Entity store configuration and registry
- Live index migration engine with resumable, checkpointed progress
- Optional OpenTelemetry tracing
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("intelstore")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

# Configuration
from intelstore.config import (
    AppConfig,
    ElasticsearchConfig,
    MigrationConfig,
    StoreConfig,
    load_config,
)

# Exceptions
from intelstore.exceptions import (
    ConfigurationError,
    DocumentStoreError,
    IntelStoreError,
    UnknownStoreError,
)

# Migration engine
from intelstore.migration import (
    MigrationContext,
    MigrationCoordinator,
    MigrationError,
    MigrationState,
    MigrationStatus,
)

# Document stores
from intelstore.stores import (
    DocumentStore,
    ElasticsearchDocumentStore,
    EntityStore,
    InMemoryDocumentStore,
    StoreRegistry,
)

__all__ = [
    "__version__",
    # Configuration
    "AppConfig",
    "ElasticsearchConfig",
    "MigrationConfig",
    "StoreConfig",
    "load_config",
    # Exceptions
    "ConfigurationError",
    "DocumentStoreError",
    "IntelStoreError",
    "MigrationError",
    "UnknownStoreError",
    # Stores
    "DocumentStore",
    "ElasticsearchDocumentStore",
    "EntityStore",
    "InMemoryDocumentStore",
    "StoreRegistry",
    # Migration
    "MigrationContext",
    "MigrationCoordinator",
    "MigrationState",
    "MigrationStatus",
]
