"""
MigrationContext - Connections and components shared by a migration run.

The context is created at run start and closed at run end. It owns the
connection to the store holding migration documents and the registry of
entity stores, and wires the repository, pipeline and index manager with
the same retry budget and tracer.

Usage:
    >>> async with MigrationContext.from_config(load_config("intelstore.json")) as ctx:
    ...     coordinator = MigrationCoordinator(ctx)
    ...     await coordinator.migrate("migration-1", "2.0")
"""

from __future__ import annotations

import logging
from types import TracebackType

from intelstore.config import AppConfig, MigrationConfig
from intelstore.migration.indices import IndexManager
from intelstore.migration.pipeline import BatchPipeline
from intelstore.migration.repository import MigrationRepository
from intelstore.migration.transforms import DocumentTransform, build_transform
from intelstore.observability import Tracer, create_tracer
from intelstore.stores.elasticsearch import ElasticsearchDocumentStore
from intelstore.stores.interface import DocumentStore
from intelstore.stores.registry import StoreRegistry

logger = logging.getLogger(__name__)


class MigrationContext:
    """
    Explicit connection and component holder for one migration run.

    Attributes:
        conn: Connection to the store holding migration documents, using
            the long migration timeout.
        registry: Entity stores available to the run.
        config: Migration tuning.
        repository: Migration document persistence.
        pipeline: Batch fetch, store and delete operations.
        index_manager: Target index lifecycle.
        transform: Composed per-document transform.
    """

    def __init__(
        self,
        conn: DocumentStore,
        registry: StoreRegistry,
        config: MigrationConfig | None = None,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self.config = config or MigrationConfig()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._root_conn = conn
        self.conn = conn.with_timeout(self.config.timeout_seconds)
        self.registry = registry
        self.repository = MigrationRepository(
            self.conn,
            index=self.config.migration_index,
            entity_types=list(registry),
            max_retry=self.config.max_retry,
            tracer=self._tracer,
        )
        self.pipeline = BatchPipeline(
            max_retry=self.config.max_retry,
            bulk_max_size=self.config.bulk_max_size,
            tiebreak_field=self.config.tiebreak_field,
            tracer=self._tracer,
        )
        self.index_manager = IndexManager(max_retry=self.config.max_retry, tracer=self._tracer)
        self.transform: DocumentTransform = build_transform(self.config.transforms)
        self._closed = False

    @classmethod
    def from_config(
        cls,
        app_config: AppConfig,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> MigrationContext:
        """Connect to the configured cluster; every store shares the connection."""
        conn = ElasticsearchDocumentStore.from_config(
            app_config.elasticsearch,
            tracer=tracer,
            enable_tracing=enable_tracing,
        )
        registry = StoreRegistry.from_configs(conn, app_config.stores)
        return cls(
            conn,
            registry,
            app_config.migration,
            tracer=tracer,
            enable_tracing=enable_tracing,
        )

    @property
    def tracer(self) -> Tracer:
        return self._tracer

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self) -> None:
        """Create the migration index on first use."""
        await self.repository.ensure_index()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.debug("Closing migration connections")
        await self._root_conn.close()

    async def __aenter__(self) -> MigrationContext:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


__all__ = ["MigrationContext"]
