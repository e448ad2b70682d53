"""
Shared pytest fixtures for the intelstore tests.

This module provides:
- Store fixtures (memory_store, store_configs, registry)
- Migration fixtures (migration_config, context, coordinator)
- Document factories (make_entity, make_delete_event)
- Seeding helpers (seed_store)

Every fixture is built on InMemoryDocumentStore, so no cluster is needed.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from intelstore.config import MigrationConfig, StoreConfig
from intelstore.migration.context import MigrationContext
from intelstore.migration.coordinator import MigrationCoordinator
from intelstore.stores.in_memory import InMemoryDocumentStore
from intelstore.stores.interface import BulkAction
from intelstore.stores.registry import StoreRegistry

BASE_TIME = datetime(2024, 1, 1, tzinfo=UTC)

ANALYSIS = {"analyzer": {"text_analyzer": {"type": "standard"}}}


# =============================================================================
# Document Factories
# =============================================================================


def make_entity(entity_type: str, n: int, **fields: Any) -> dict[str, Any]:
    """
    Build an entity document.

    ``modified`` advances every two documents so ties on the sort keys are
    broken by the document id.
    """
    stamp = (BASE_TIME + timedelta(minutes=n // 2)).isoformat()
    doc = {
        "id": f"{entity_type}-{n:04d}",
        "type": entity_type,
        "created": stamp,
        "modified": stamp,
        "title": f"{entity_type} {n}",
    }
    doc.update(fields)
    return doc


def make_delete_event(
    entity_type: str,
    entity_id: str,
    timestamp: datetime,
    n: int = 0,
    event_type: str = "record-deleted",
) -> dict[str, Any]:
    """Build a change event for a deleted entity, referenced by its long id."""
    return {
        "id": f"event-{entity_id}-{n}",
        "type": "event",
        "event_type": event_type,
        "timestamp": timestamp.isoformat(),
        "entity": {
            "id": f"http://localhost:3000/ctia/{entity_type}/{entity_id}",
            "type": entity_type,
        },
    }


async def seed_store(
    store: InMemoryDocumentStore,
    config: StoreConfig,
    documents: list[dict[str, Any]],
) -> None:
    """Create the entity index (unless it exists) and write documents to it."""
    if not await store.index_exists(config.index):
        await store.create_index(config.index, config.settings, config.mappings)
    if documents:
        await store.bulk_create(
            [BulkAction(config.index, doc["id"], doc, config.entity) for doc in documents],
            max_chunk_bytes=5 * 1024 * 1024,
        )


# =============================================================================
# Store Fixtures
# =============================================================================


@pytest.fixture
def memory_store() -> InMemoryDocumentStore:
    """Provide a fresh in-memory document store without tracing."""
    return InMemoryDocumentStore(enable_tracing=False)


@pytest.fixture
def store_configs() -> dict[str, StoreConfig]:
    """
    Provide entity store configurations.

    ``indicator`` configures replicas, refresh interval, shards and
    analysis; ``sighting`` only configures shards; ``event`` holds the
    change events used for delete reconciliation.
    """
    return {
        "indicator": StoreConfig(
            entity="indicator",
            index="ctia_indicator",
            settings={
                "number_of_shards": 5,
                "number_of_replicas": 2,
                "refresh_interval": "1s",
                "analysis": ANALYSIS,
            },
            mappings={"properties": {"id": {"type": "keyword"}}},
            aliases={"ctia_indicator_read": {}},
        ),
        "sighting": StoreConfig(
            entity="sighting",
            index="ctia_sighting",
            settings={"number_of_shards": 1},
        ),
        "event": StoreConfig(
            entity="event",
            index="ctia_event",
            settings={"number_of_shards": 1, "number_of_replicas": 1},
        ),
    }


@pytest.fixture
def registry(
    memory_store: InMemoryDocumentStore,
    store_configs: dict[str, StoreConfig],
) -> StoreRegistry:
    """Provide a registry serving every store from the in-memory store."""
    return StoreRegistry.from_configs(memory_store, store_configs)


# =============================================================================
# Migration Fixtures
# =============================================================================


@pytest.fixture
def migration_config() -> MigrationConfig:
    """Provide a migration configuration with small pages."""
    return MigrationConfig(batch_size=3, concurrency=2, max_retry=3)


@pytest.fixture
def context(
    memory_store: InMemoryDocumentStore,
    registry: StoreRegistry,
    migration_config: MigrationConfig,
) -> MigrationContext:
    """Provide a migration context over the in-memory store."""
    return MigrationContext(memory_store, registry, migration_config, enable_tracing=False)


@pytest.fixture
def coordinator(context: MigrationContext) -> MigrationCoordinator:
    """Provide a coordinator bound to the migration context."""
    return MigrationCoordinator(context)


@pytest.fixture
def entity_factory() -> Callable[..., dict[str, Any]]:
    """Provide the entity document factory."""
    return make_entity


@pytest.fixture
def delete_event_factory() -> Callable[..., dict[str, Any]]:
    """Provide the delete event factory."""
    return make_delete_event


@pytest.fixture
def seed(
    memory_store: InMemoryDocumentStore,
    store_configs: dict[str, StoreConfig],
) -> Callable[..., Any]:
    """
    Provide a coroutine function seeding an entity store by key.

    Usage:
        async def test_something(seed, entity_factory):
            await seed("indicator", [entity_factory("indicator", n) for n in range(5)])
    """

    async def _seed(key: str, documents: list[dict[str, Any]]) -> None:
        await seed_store(memory_store, store_configs[key], documents)

    return _seed
