"""
Live index migration engine.

Moves every document of each entity type from its current index to a new
index generation, checkpointing progress so a run can be resumed after a
failure or a restart.

Components:
    - MigrationCoordinator: Drives runs across entity types
    - MigrationContext: Connections and components of a run
    - BatchPipeline: Paginated fetch, bulk store, delete propagation
    - IndexManager: Target index creation and finalization
    - MigrationRepository: Migration document persistence
    - StoreMap: Live handle on one index of an entity store

Example:
    >>> from intelstore.migration import MigrationContext, MigrationCoordinator
    >>>
    >>> async with MigrationContext.from_config(config) as ctx:
    ...     await MigrationCoordinator(ctx).migrate("migration-1", "2.0")
"""

from intelstore.migration.context import MigrationContext
from intelstore.migration.coordinator import MigrationCoordinator
from intelstore.migration.exceptions import (
    InvalidMigrationStateError,
    MigrationError,
    MigrationFailedError,
    MigrationNotFoundError,
    StoreMigrationError,
    TargetIndexConflictError,
    UnknownEntityTypeError,
    UnknownTransformError,
)
from intelstore.migration.indices import (
    IndexManager,
    revert_optimizations_settings,
    target_index_settings,
)
from intelstore.migration.models import (
    MigratedStore,
    MigrationState,
    MigrationStatus,
    PartialMigratedStore,
    PartialSourceState,
    PartialTargetState,
    SourceState,
    StoreMigrationStatus,
    StoreStatus,
    TargetState,
)
from intelstore.migration.pipeline import BatchPipeline, DeleteBatch, long_id_to_short_id, sort_by
from intelstore.migration.repository import MigrationRepository
from intelstore.migration.retry import Retrier, retry
from intelstore.migration.store_map import (
    StoreMap,
    prefixed_index,
    source_map_to_target_map,
    source_maps_to_target_maps,
    store_to_map,
    stores_to_maps,
)
from intelstore.migration.transforms import build_transform, register_transform

__all__ = [
    # Orchestration
    "MigrationContext",
    "MigrationCoordinator",
    # Components
    "BatchPipeline",
    "DeleteBatch",
    "IndexManager",
    "MigrationRepository",
    "Retrier",
    "StoreMap",
    # Models
    "MigratedStore",
    "MigrationState",
    "MigrationStatus",
    "PartialMigratedStore",
    "PartialSourceState",
    "PartialTargetState",
    "SourceState",
    "StoreMigrationStatus",
    "StoreStatus",
    "TargetState",
    # Functions
    "build_transform",
    "long_id_to_short_id",
    "prefixed_index",
    "register_transform",
    "retry",
    "revert_optimizations_settings",
    "sort_by",
    "source_map_to_target_map",
    "source_maps_to_target_maps",
    "store_to_map",
    "stores_to_maps",
    "target_index_settings",
    # Exceptions
    "InvalidMigrationStateError",
    "MigrationError",
    "MigrationFailedError",
    "MigrationNotFoundError",
    "StoreMigrationError",
    "TargetIndexConflictError",
    "UnknownEntityTypeError",
    "UnknownTransformError",
]
