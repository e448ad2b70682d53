"""
Unit tests for MigrationContext.
"""

from unittest.mock import AsyncMock, patch

import pytest

from intelstore.config import AppConfig, MigrationConfig, StoreConfig
from intelstore.migration.context import MigrationContext
from intelstore.migration.exceptions import UnknownTransformError
from intelstore.migration.transforms import identity
from intelstore.observability import MockTracer
from intelstore.stores.in_memory import InMemoryDocumentStore
from intelstore.stores.registry import StoreRegistry


class TestConstruction:
    """Tests for component wiring."""

    def test_components_share_configuration(
        self, memory_store: InMemoryDocumentStore, registry: StoreRegistry
    ) -> None:
        tracer = MockTracer()
        config = MigrationConfig(max_retry=5, timeout_seconds=120, migration_index="ops")

        ctx = MigrationContext(memory_store, registry, config, tracer=tracer)

        assert ctx.config is config
        assert ctx.tracer is tracer
        assert ctx.conn.timeout == 120
        assert ctx.repository.index == "ops"
        assert ctx.transform is identity
        assert not ctx.closed

    def test_default_configuration(
        self, memory_store: InMemoryDocumentStore, registry: StoreRegistry
    ) -> None:
        ctx = MigrationContext(memory_store, registry, enable_tracing=False)

        assert ctx.config == MigrationConfig()
        assert ctx.repository.index == "intelstore_migration"

    def test_unknown_transform_fails_at_startup(
        self, memory_store: InMemoryDocumentStore, registry: StoreRegistry
    ) -> None:
        with pytest.raises(UnknownTransformError):
            MigrationContext(
                memory_store,
                registry,
                MigrationConfig(transforms=("no-such-transform",)),
                enable_tracing=False,
            )

    def test_from_config(self) -> None:
        app_config = AppConfig(
            stores={"indicator": StoreConfig(entity="indicator", index="ctia_indicator")}
        )
        conn = InMemoryDocumentStore(enable_tracing=False)
        with patch(
            "intelstore.migration.context.ElasticsearchDocumentStore.from_config",
            return_value=conn,
        ) as from_config:
            ctx = MigrationContext.from_config(app_config, enable_tracing=False)

        from_config.assert_called_once_with(
            app_config.elasticsearch, tracer=None, enable_tracing=False
        )
        assert list(ctx.registry) == ["indicator"]
        assert ctx.registry["indicator"].conn is conn
        assert ctx.config is app_config.migration


class TestLifecycle:
    """Tests for open/close and the async context manager."""

    @pytest.mark.asyncio
    async def test_open_creates_migration_index(self, context: MigrationContext) -> None:
        await context.open()

        assert await context.conn.index_exists("intelstore_migration")

    @pytest.mark.asyncio
    async def test_close_is_idempotent(
        self, memory_store: InMemoryDocumentStore, registry: StoreRegistry
    ) -> None:
        memory_store.close = AsyncMock()  # type: ignore[method-assign]
        ctx = MigrationContext(memory_store, registry, enable_tracing=False)

        await ctx.close()
        await ctx.close()

        assert ctx.closed
        memory_store.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_async_context_manager(
        self, memory_store: InMemoryDocumentStore, registry: StoreRegistry
    ) -> None:
        memory_store.close = AsyncMock()  # type: ignore[method-assign]

        async with MigrationContext(memory_store, registry, enable_tracing=False) as ctx:
            assert await memory_store.index_exists("intelstore_migration")
            assert not ctx.closed

        assert ctx.closed
        memory_store.close.assert_awaited_once()
