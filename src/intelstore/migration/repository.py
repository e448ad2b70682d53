"""
MigrationRepository - Data access for migration state.

Migration runs are persisted as one document per run in a dedicated
migration index. The repository creates that index on first use, stores
whole migration documents, reads them back (validated), and applies
partial updates scoped to one entity type's sub-map.

Every call goes through the bounded retry wrapper.

Usage:
    >>> repo = MigrationRepository(conn, entity_types=["indicator", "sighting"])
    >>> await repo.ensure_index()
    >>> await repo.store(state)
    >>> state = await repo.get("migration-1")
    >>> await repo.update_store(
    ...     "migration-1",
    ...     "indicator",
    ...     PartialMigratedStore(target=PartialTargetState(migrated=100)),
    ... )
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from intelstore.config import DEFAULT_MAX_RETRY
from intelstore.migration.exceptions import MigrationNotFoundError
from intelstore.migration.models import MigrationState, PartialMigratedStore
from intelstore.migration.retry import Retrier
from intelstore.observability import (
    ATTR_DB_SYSTEM,
    ATTR_ENTITY_TYPE,
    ATTR_INDEX,
    ATTR_MIGRATION_ID,
    Tracer,
    create_tracer,
)
from intelstore.stores.interface import DocumentStore

logger = logging.getLogger(__name__)

MIGRATION_INDEX_SETTINGS: dict[str, Any] = {
    "number_of_shards": 1,
    "number_of_replicas": 1,
}

KEYWORD = {"type": "keyword"}
TIMESTAMP = {"type": "date"}


def store_mapping(entity_type: str) -> dict[str, Any]:
    """Mapping of one entity type sub-map of the migration document."""
    return {
        entity_type: {
            "type": "object",
            "properties": {
                "source": {
                    "type": "object",
                    "properties": {"index": KEYWORD, "total": {"type": "long"}},
                },
                "target": {
                    "type": "object",
                    "properties": {"index": KEYWORD, "migrated": {"type": "long"}},
                },
                "started": TIMESTAMP,
                "completed": TIMESTAMP,
            },
        }
    }


def migration_mapping(entity_types: Iterable[str]) -> dict[str, Any]:
    """
    Mapping of the migration index.

    Dynamic mapping is disabled: cursors are stored but not indexed.
    """
    stores: dict[str, Any] = {}
    for entity_type in entity_types:
        stores.update(store_mapping(entity_type))
    return {
        "dynamic": False,
        "properties": {
            "id": KEYWORD,
            "created": TIMESTAMP,
            "stores": {"type": "object", "properties": stores},
        },
    }


class MigrationRepository:
    """
    Persistence of :class:`MigrationState` documents.

    Attributes:
        _conn: Connection to the store holding the migration index.
        _index: Migration index name.
        _entity_types: Entity types mapped in the migration index.
        _retry: Bounded retry wrapper for every remote call.
    """

    def __init__(
        self,
        conn: DocumentStore,
        *,
        index: str = "intelstore_migration",
        entity_types: Iterable[str] = (),
        max_retry: int = DEFAULT_MAX_RETRY,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._conn = conn
        self._index = index
        self._entity_types = list(entity_types)
        self._retry = Retrier(max_retry)

    @property
    def index(self) -> str:
        return self._index

    def _attrs(self, migration_id: str) -> dict[str, Any]:
        return {
            ATTR_MIGRATION_ID: migration_id,
            ATTR_INDEX: self._index,
            ATTR_DB_SYSTEM: self._conn.system,
        }

    async def ensure_index(self) -> None:
        """Create the migration index unless it already exists."""
        if await self._retry(self._conn.index_exists, self._index):
            return
        logger.info("Creating migration index %s", self._index)
        await self._retry(
            self._conn.create_index,
            self._index,
            MIGRATION_INDEX_SETTINGS,
            migration_mapping(self._entity_types),
        )

    async def store(self, state: MigrationState) -> MigrationState:
        """
        Persist a whole migration document, replacing any previous version.

        Live store handles are not persisted.
        """
        with self._tracer.span("intelstore.migration_repo.store", self._attrs(state.id)):
            await self._retry(
                self._conn.create,
                self._index,
                state.id,
                state.to_document(),
                refresh=True,
            )
            return state

    async def get(self, migration_id: str) -> MigrationState:
        """
        Read and validate a migration document.

        Raises:
            MigrationNotFoundError: If no migration has this id.
            InvalidMigrationStateError: If the document fails validation.
        """
        with self._tracer.span("intelstore.migration_repo.get", self._attrs(migration_id)):
            raw = await self._retry(self._conn.get, self._index, migration_id)
            if raw is None:
                logger.error("migration not found: %s", migration_id)
                raise MigrationNotFoundError(migration_id)
            return MigrationState.from_document(raw, migration_id)

    async def exists(self, migration_id: str) -> bool:
        return await self._retry(self._conn.get, self._index, migration_id) is not None

    async def update_store(
        self,
        migration_id: str,
        entity_type: str,
        partial: PartialMigratedStore,
    ) -> None:
        """
        Partially update the sub-map of one entity type.

        Only the fields set on ``partial`` are sent.
        """
        attrs = self._attrs(migration_id)
        attrs[ATTR_ENTITY_TYPE] = entity_type
        with self._tracer.span("intelstore.migration_repo.update_store", attrs):
            document = partial.to_document()
            if not document:
                return
            await self._retry(
                self._conn.update,
                self._index,
                migration_id,
                {"stores": {entity_type: document}},
                refresh=True,
            )


__all__ = [
    "MIGRATION_INDEX_SETTINGS",
    "MigrationRepository",
    "migration_mapping",
    "store_mapping",
]
