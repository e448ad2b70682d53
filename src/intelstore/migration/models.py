"""
Data models for the migration engine.

Persisted models are pydantic models validated at the I/O boundary: a
migration document read back from the store is deserialized and then
validated, and anything that does not match fails closed.

Models in this module:

Enums:
    - StoreMigrationStatus: Per entity type lifecycle (not started, in progress, completed)

Persisted Models:
    - SourceState: Source index, document total and pagination cursor
    - TargetState: Target index and migrated document count
    - MigratedStore: Source and target state of one entity type
    - MigrationState: One migration run
    - PartialMigratedStore: Partial update payload for one entity type

Views:
    - StoreStatus: Progress summary of one entity type
    - MigrationStatus: Progress summary of a run
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from intelstore.migration.exceptions import InvalidMigrationStateError
from intelstore.migration.store_map import StoreMap


class StoreMigrationStatus(Enum):
    """
    Lifecycle of one entity type within a run.

    State machine transitions:
        NOT_STARTED -> IN_PROGRESS -> COMPLETED

    Attributes:
        NOT_STARTED: State initialized, no document moved yet.
        IN_PROGRESS: Batch loop started (``started`` is set).
        COMPLETED: Index settings reverted and refreshed (``completed`` is set).
    """

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return self == StoreMigrationStatus.COMPLETED


class SourceState(BaseModel):
    """
    Source side of an entity type migration.

    Attributes:
        index: Source index name, immutable for the run.
        total: Documents in the source, refreshed on every get.
        search_after: Cursor of the last persisted batch.
        store: Live handle on the source index, never persisted.
    """

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    index: str
    total: int = Field(ge=0)
    search_after: list[Any] | None = None
    store: StoreMap | None = Field(default=None, exclude=True)


class TargetState(BaseModel):
    """
    Target side of an entity type migration.

    Attributes:
        index: Target index name, immutable for the run.
        migrated: Documents written so far.
        store: Live handle on the target index, never persisted.
    """

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    index: str
    migrated: int = Field(default=0, ge=0)
    store: StoreMap | None = Field(default=None, exclude=True)


class MigratedStore(BaseModel):
    """
    Migration state of one entity type.

    ``migrated <= total`` is a target rather than an invariant: the source
    keeps changing while the migration runs.
    """

    model_config = ConfigDict(extra="forbid")

    source: SourceState
    target: TargetState
    started: datetime | None = None
    completed: datetime | None = None

    @property
    def status(self) -> StoreMigrationStatus:
        if self.completed is not None:
            return StoreMigrationStatus.COMPLETED
        if self.started is not None:
            return StoreMigrationStatus.IN_PROGRESS
        return StoreMigrationStatus.NOT_STARTED

    @property
    def progress_percent(self) -> float:
        """
        Calculate progress as percentage (0-100).

        Returns:
            Progress percentage, 100.0 for an empty source.
        """
        if self.source.total == 0:
            return 100.0 if self.status.is_terminal or self.target.migrated else 0.0
        return min(100.0, (self.target.migrated / self.source.total) * 100)


class MigrationState(BaseModel):
    """
    Persisted state of a migration run, one document per run.

    Example:
        >>> state = MigrationState.from_document(raw)
        >>> state.stores["indicator"].target.migrated
        1200
        >>> store.create(index, state.id, state.to_document())
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    created: datetime
    stores: dict[str, MigratedStore]

    def to_document(self) -> dict[str, Any]:
        """Serialize to the persisted JSON shape, without live store handles."""
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def from_document(cls, document: dict[str, Any], migration_id: str) -> MigrationState:
        """
        Validate a persisted migration document.

        Raises:
            InvalidMigrationStateError: If the document does not match the schema.
        """
        try:
            return cls.model_validate(document)
        except ValidationError as e:
            raise InvalidMigrationStateError(migration_id, str(e)) from e


class PartialSourceState(BaseModel):
    """Mutable source fields: the index name never changes within a run."""

    model_config = ConfigDict(extra="forbid")

    total: int | None = Field(default=None, ge=0)
    search_after: list[Any] | None = None


class PartialTargetState(BaseModel):
    """Mutable target fields: the index name never changes within a run."""

    model_config = ConfigDict(extra="forbid")

    migrated: int | None = Field(default=None, ge=0)


class PartialMigratedStore(BaseModel):
    """
    Partial update payload for one entity type.

    Only explicitly set fields are sent, so concurrent workers updating
    different entity types never overwrite each other's sub-map.

    Example:
        >>> PartialMigratedStore(
        ...     source=PartialSourceState(search_after=["2024-01-01", "indicator#1"]),
        ...     target=PartialTargetState(migrated=200),
        ... ).to_document()
        {'source': {'search_after': ['2024-01-01', 'indicator#1']}, 'target': {'migrated': 200}}
    """

    model_config = ConfigDict(extra="forbid")

    source: PartialSourceState | None = None
    target: PartialTargetState | None = None
    started: datetime | None = None
    completed: datetime | None = None

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_unset=True)

    def is_empty(self) -> bool:
        return not self.to_document()


@dataclass(frozen=True)
class StoreStatus:
    """
    Progress summary of one entity type.

    Attributes:
        entity_type: Entity type key.
        status: Lifecycle status.
        source_index: Source index name.
        target_index: Target index name.
        total: Source document count.
        migrated: Documents written to the target.
        started: When the batch loop started.
        completed: When the entity type was finalized.
    """

    entity_type: str
    status: StoreMigrationStatus
    source_index: str
    target_index: str
    total: int
    migrated: int
    started: datetime | None
    completed: datetime | None

    @property
    def progress_percent(self) -> float:
        if self.total == 0:
            return 100.0 if self.status.is_terminal else 0.0
        return min(100.0, (self.migrated / self.total) * 100)

    @classmethod
    def from_store(cls, entity_type: str, store: MigratedStore) -> StoreStatus:
        return cls(
            entity_type=entity_type,
            status=store.status,
            source_index=store.source.index,
            target_index=store.target.index,
            total=store.source.total,
            migrated=store.target.migrated,
            started=store.started,
            completed=store.completed,
        )


@dataclass(frozen=True)
class MigrationStatus:
    """Progress summary of a migration run."""

    migration_id: str
    created: datetime
    stores: dict[str, StoreStatus]

    @property
    def is_completed(self) -> bool:
        return all(s.status.is_terminal for s in self.stores.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.migration_id,
            "created": self.created.isoformat(),
            "completed": self.is_completed,
            "stores": {
                key: {
                    "status": s.status.value,
                    "source": s.source_index,
                    "target": s.target_index,
                    "total": s.total,
                    "migrated": s.migrated,
                    "progress_percent": round(s.progress_percent, 2),
                    "started": s.started.isoformat() if s.started else None,
                    "completed": s.completed.isoformat() if s.completed else None,
                }
                for key, s in self.stores.items()
            },
        }


__all__ = [
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
]
