"""
MigrationCoordinator - Drives a migration run across entity types.

Each entity type moves through ``not started -> in progress -> completed``:

- init: the source size is captured, the cursor is absent and nothing is
  migrated yet. When confirmed, the state is persisted and target indices
  are created with write-optimized settings before any data moves.
- in progress: pages are fetched from the source at the current cursor,
  transformed, bulk written to the target, and ``search_after``/``migrated``
  are checkpointed with a partial update, until a short page is fetched.
  Deletes recorded since ``started`` are then propagated to the target.
- completed: production settings are restored, the target is refreshed
  and ``completed`` is stamped.

State is never rolled back. The last checkpoint is the resumption point:
documents written after it are fetched and written again on resume, which
bulk writes keyed by document id make harmless.

Usage:
    >>> async with MigrationContext.from_config(config) as ctx:
    ...     coordinator = MigrationCoordinator(ctx)
    ...     state = await coordinator.migrate("migration-1", "2.0")
    ...     status = await coordinator.status("migration-1")
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from contextlib import aclosing
from datetime import UTC, datetime

from intelstore.exceptions import UnknownStoreError
from intelstore.migration.context import MigrationContext
from intelstore.migration.exceptions import (
    InvalidMigrationStateError,
    MigrationFailedError,
    StoreMigrationError,
    TargetIndexConflictError,
    UnknownEntityTypeError,
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
from intelstore.migration.store_map import (
    StoreMap,
    source_maps_to_target_maps,
    store_to_map,
    stores_to_maps,
)
from intelstore.observability import (
    ATTR_ENTITY_TYPE,
    ATTR_MIGRATION_ID,
    ATTR_MIGRATION_MIGRATED,
    ATTR_MIGRATION_PREFIX,
    ATTR_MIGRATION_TOTAL,
    ATTR_SOURCE_INDEX,
    ATTR_TARGET_INDEX,
)

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(UTC)


class MigrationCoordinator:
    """
    Orchestrates migration runs.

    Operations:
        - init_migration: Build (and optionally persist) the initial state
        - get_migration: Reload a run with live store handles
        - update_migration_store: Checkpoint one entity type
        - finalize_migration: Restore settings, refresh, stamp completion
        - migrate_store: Run one entity type to completion
        - migrate: Run (or resume) all entity types of a run
        - status: Progress summary of a run

    Example:
        >>> coordinator = MigrationCoordinator(ctx)
        >>> state = await coordinator.init_migration(
        ...     "migration-1", "2.0", ["indicator", "sighting"], confirm=True
        ... )
        >>> await coordinator.migrate("migration-1", "2.0")
    """

    def __init__(self, context: MigrationContext) -> None:
        self._ctx = context
        self._tracer = context.tracer
        self._config = context.config
        self._repository = context.repository
        self._pipeline = context.pipeline
        self._index_manager = context.index_manager

    @property
    def context(self) -> MigrationContext:
        return self._ctx

    def _source_map(self, migration_id: str, entity_type: str) -> StoreMap:
        try:
            store = self._ctx.registry[entity_type]
        except UnknownStoreError:
            raise UnknownEntityTypeError(migration_id, entity_type) from None
        return store_to_map(store, self._config.timeout_seconds)

    async def init_migration(
        self,
        migration_id: str,
        prefix: str,
        store_keys: Iterable[str] | None = None,
        confirm: bool = False,
    ) -> MigrationState:
        """
        Build the initial state of a run.

        For each entity type the source and target index names, the source
        size and an empty cursor are recorded. When ``confirm`` is True the
        state is persisted and every target index is (re)created; otherwise
        nothing is written.

        Args:
            migration_id: Run identifier.
            prefix: Version prefix of the target indices.
            store_keys: Entity types to migrate, all configured ones when None.
            confirm: Persist the state and create target indices.

        Raises:
            UnknownEntityTypeError: If an entity type is not configured.
            TargetIndexConflictError: If a target index would replace its source.
        """
        keys = list(store_keys) if store_keys is not None else list(self._ctx.registry)
        with self._tracer.span(
            "intelstore.coordinator.init_migration",
            {ATTR_MIGRATION_ID: migration_id, ATTR_MIGRATION_PREFIX: prefix},
        ):
            try:
                selected = self._ctx.registry.select(keys)
            except UnknownStoreError as e:
                raise UnknownEntityTypeError(migration_id, e.key) from e

            source_stores = stores_to_maps(selected, self._config.timeout_seconds)
            target_stores = source_maps_to_target_maps(source_stores, prefix)
            for key, source in source_stores.items():
                if target_stores[key].indexname == source.indexname:
                    raise TargetIndexConflictError(migration_id, key, source.indexname)

            stores: dict[str, MigratedStore] = {}
            for key, source in source_stores.items():
                target = target_stores[key]
                stores[key] = MigratedStore(
                    source=SourceState(
                        index=source.indexname,
                        total=await self._pipeline.store_size(source),
                        store=source,
                    ),
                    target=TargetState(index=target.indexname, migrated=0, store=target),
                )
            state = MigrationState(id=migration_id, created=_now(), stores=stores)

            if confirm:
                await self._repository.ensure_index()
                await self._repository.store(state)
                for target in target_stores.values():
                    await self._index_manager.create_target_store(target)
                logger.info(
                    "Initialized migration %s for %s",
                    migration_id,
                    ", ".join(stores),
                )
            return state

    def with_store_map(
        self,
        migration_id: str,
        entity_type: str,
        store: MigratedStore,
    ) -> MigratedStore:
        """
        Attach live store handles to a persisted entity type state.

        The source handle is recomputed from the current configuration; the
        target handle reuses it bound to the persisted target index.
        """
        source = self._source_map(migration_id, entity_type)
        target = source.with_index(store.target.index)
        return store.model_copy(
            update={
                "source": store.source.model_copy(update={"store": source}),
                "target": store.target.model_copy(update={"store": target}),
            }
        )

    async def update_source_size(self, store: MigratedStore) -> MigratedStore:
        source = store.source.store
        if source is None:
            return store
        total = await self._pipeline.store_size(source)
        return store.model_copy(update={"source": store.source.model_copy(update={"total": total})})

    async def enrich_stores(
        self,
        migration_id: str,
        stores: Mapping[str, MigratedStore],
    ) -> dict[str, MigratedStore]:
        """Attach store handles to every entity type and refresh source sizes."""
        enriched: dict[str, MigratedStore] = {}
        for key, raw in stores.items():
            enriched[key] = await self.update_source_size(
                self.with_store_map(migration_id, key, raw)
            )
        return enriched

    async def get_migration(self, migration_id: str) -> MigrationState:
        """
        Reload a run: validate the persisted document, attach live store
        handles, refresh source sizes and persist the refreshed state.

        Raises:
            MigrationNotFoundError: If the run does not exist.
            InvalidMigrationStateError: If the persisted document is invalid.
        """
        with self._tracer.span(
            "intelstore.coordinator.get_migration",
            {ATTR_MIGRATION_ID: migration_id},
        ):
            state = await self._repository.get(migration_id)
            stores = await self.enrich_stores(migration_id, state.stores)
            state = state.model_copy(update={"stores": stores})
            return await self._repository.store(state)

    async def update_migration_store(
        self,
        migration_id: str,
        entity_type: str,
        partial: PartialMigratedStore,
    ) -> None:
        """Persist the changed fields of one entity type only."""
        await self._repository.update_store(migration_id, entity_type, partial)

    async def finalize_migration(
        self,
        migration_id: str,
        entity_type: str,
        target: StoreMap | None = None,
    ) -> MigrationState:
        """
        Restore production settings on the target index of an entity type,
        refresh it and stamp ``completed``.

        Returns the persisted state after the update; it is not re-persisted,
        so concurrent workers' checkpoints are left untouched.
        """
        with self._tracer.span(
            "intelstore.coordinator.finalize",
            {ATTR_MIGRATION_ID: migration_id, ATTR_ENTITY_TYPE: entity_type},
        ):
            if target is None:
                state = await self._repository.get(migration_id)
                if entity_type not in state.stores:
                    raise UnknownEntityTypeError(migration_id, entity_type)
                source = self._source_map(migration_id, entity_type)
                target = source.with_index(state.stores[entity_type].target.index)

            await self._index_manager.finalize_target_store(target)
            await self.update_migration_store(
                migration_id,
                entity_type,
                PartialMigratedStore(completed=_now()),
            )
            logger.info("%s - migration completed", entity_type)
            return await self._repository.get(migration_id)

    async def reconcile_deletes(
        self,
        entity_type: str,
        target: StoreMap,
        since: datetime,
    ) -> int:
        """
        Remove from the target documents deleted from the source since ``since``.

        Delete events are read from the configured event store; when no
        event store is configured nothing is reconciled.
        """
        event_key = self._config.event_store
        if event_key not in self._ctx.registry:
            logger.info(
                "%s - no %s store configured, skipping delete reconciliation",
                entity_type,
                event_key,
            )
            return 0

        event_store = store_to_map(self._ctx.registry[event_key], self._config.timeout_seconds)
        batch_size = self._config.batch_size
        deleted = 0
        search_after = None
        while True:
            batch = await self._pipeline.fetch_deletes(
                event_store,
                [target.type],
                since,
                batch_size,
                search_after,
            )
            ids = batch.deletes.get(target.type, [])
            if ids:
                deleted += await self._pipeline.batch_delete(target, ids)
            if batch.fetched < batch_size or batch.search_after is None:
                break
            search_after = batch.search_after
        return deleted

    async def migrate_store(
        self,
        migration_id: str,
        entity_type: str,
        store: MigratedStore,
        *,
        max_batches: int | None = None,
    ) -> bool:
        """
        Run the batch loop of one entity type, then finalize it.

        The loop starts at the persisted cursor of ``store``. With
        ``max_batches`` the loop stops (checkpointed, not finalized) after
        that many full pages.

        Returns:
            True if the entity type was completed.

        Raises:
            StoreMigrationError: With the last checkpoint, if any step fails.
        """
        source = store.source.store
        target = store.target.store
        if source is None or target is None:
            raise InvalidMigrationStateError(
                migration_id, f"{entity_type} has no live store handles"
            )
        if store.status is StoreMigrationStatus.COMPLETED:
            logger.info("%s - already completed, skipping", entity_type)
            return True

        batch_size = self._config.batch_size
        transform = self._ctx.transform
        durable_cursor = store.source.search_after
        durable_migrated = store.target.migrated
        step = "start"

        with self._tracer.span(
            "intelstore.coordinator.migrate_store",
            {
                ATTR_MIGRATION_ID: migration_id,
                ATTR_ENTITY_TYPE: entity_type,
                ATTR_SOURCE_INDEX: source.indexname,
                ATTR_TARGET_INDEX: target.indexname,
                ATTR_MIGRATION_TOTAL: store.source.total,
                ATTR_MIGRATION_MIGRATED: store.target.migrated,
            },
        ):
            try:
                started = store.started
                if started is None:
                    started = _now()
                    await self.update_migration_store(
                        migration_id, entity_type, PartialMigratedStore(started=started)
                    )
                logger.info(
                    "%s - migrating %s documents from %s to %s",
                    entity_type,
                    store.source.total,
                    source.indexname,
                    target.indexname,
                )

                step = "copy"
                batches = 0
                exhausted = True
                pages = self._pipeline.iter_batches(source, batch_size, search_after=durable_cursor)
                async with aclosing(pages):
                    async for page in pages:
                        if not page.data:
                            break
                        documents = [transform(doc) for doc in page.data]
                        result = await self._pipeline.store_batch(target, documents)
                        migrated = durable_migrated + result.created
                        cursor = page.sort if page.sort is not None else durable_cursor
                        await self.update_migration_store(
                            migration_id,
                            entity_type,
                            PartialMigratedStore(
                                source=PartialSourceState(search_after=cursor),
                                target=PartialTargetState(migrated=migrated),
                            ),
                        )
                        durable_cursor = cursor
                        durable_migrated = migrated
                        logger.info(
                            "%s - migrated %s/%s documents",
                            entity_type,
                            durable_migrated,
                            store.source.total,
                        )
                        batches += 1
                        if (
                            max_batches is not None
                            and batches >= max_batches
                            and len(page) >= batch_size
                        ):
                            exhausted = False
                            break

                if not exhausted:
                    logger.info("%s - stopped after %s batches", entity_type, batches)
                    return False

                if self._config.reconcile_deletes:
                    step = "reconcile_deletes"
                    await self.reconcile_deletes(entity_type, target, started)

                step = "finalize"
                await self.finalize_migration(migration_id, entity_type, target)
                return True

            except Exception as e:
                logger.error(
                    "%s - migration failed during %s: %s",
                    entity_type,
                    step,
                    e,
                )
                raise StoreMigrationError(
                    migration_id,
                    entity_type,
                    step=step,
                    search_after=durable_cursor,
                    migrated=durable_migrated,
                    error=str(e),
                ) from e

    async def migrate(
        self,
        migration_id: str,
        prefix: str,
        store_keys: Iterable[str] | None = None,
        *,
        restart: bool = False,
        fail_fast: bool = False,
    ) -> MigrationState:
        """
        Run or resume a migration.

        A run that does not exist yet (or any run when ``restart`` is True)
        is initialized and its target indices created. Entity types are then
        migrated in parallel, at most ``concurrency`` at a time; completed
        ones are skipped.

        Args:
            migration_id: Run identifier.
            prefix: Version prefix of the target indices (used on init only).
            store_keys: Entity types to migrate, all of the run when None.
            restart: Re-initialize the run, recreating target indices.
            fail_fast: Cancel remaining entity types on the first failure.

        Returns:
            The persisted state once all workers are done.

        Raises:
            MigrationFailedError: If an entity type failed (after all
                workers finished, unless ``fail_fast``).
            StoreMigrationError: On the first failure with ``fail_fast``; any
                other worker error also cancels the remaining workers.
        """
        keys = list(store_keys) if store_keys is not None else None
        with self._tracer.span(
            "intelstore.coordinator.migrate",
            {ATTR_MIGRATION_ID: migration_id, ATTR_MIGRATION_PREFIX: prefix},
        ):
            if restart or not await self._repository.exists(migration_id):
                await self.init_migration(migration_id, prefix, keys, confirm=True)

            # Loaded once: workers only send partial updates from here on
            state = await self.get_migration(migration_id)
            keys = keys if keys is not None else list(state.stores)
            for key in keys:
                if key not in state.stores:
                    raise UnknownEntityTypeError(migration_id, key)

            pending = [key for key in keys if not state.stores[key].status.is_terminal]
            for key in keys:
                if key not in pending:
                    logger.info("%s - already completed, skipping", key)

            semaphore = asyncio.Semaphore(self._config.concurrency)

            async def worker(key: str) -> bool:
                async with semaphore:
                    return await self.migrate_store(migration_id, key, state.stores[key])

            tasks = [asyncio.create_task(worker(key), name=f"migrate-{key}") for key in pending]
            if fail_fast:
                try:
                    await asyncio.gather(*tasks)
                except Exception:
                    for task in tasks:
                        task.cancel()
                    await asyncio.gather(*tasks, return_exceptions=True)
                    raise
            else:
                results = await asyncio.gather(*tasks, return_exceptions=True)
                failures: list[StoreMigrationError] = []
                for result in results:
                    if isinstance(result, StoreMigrationError):
                        failures.append(result)
                    elif isinstance(result, BaseException):
                        raise result
                if failures:
                    raise MigrationFailedError(migration_id, failures) from failures[0]

            logger.info("Migration %s done", migration_id)
            return await self._repository.get(migration_id)

    async def status(self, migration_id: str) -> MigrationStatus:
        """
        Progress summary of a run, read from the persisted state only.

        Raises:
            MigrationNotFoundError: If the run does not exist.
        """
        with self._tracer.span(
            "intelstore.coordinator.status",
            {ATTR_MIGRATION_ID: migration_id},
        ):
            state = await self._repository.get(migration_id)
            return MigrationStatus(
                migration_id=state.id,
                created=state.created,
                stores={
                    key: StoreStatus.from_store(key, store) for key, store in state.stores.items()
                },
            )


__all__ = ["MigrationCoordinator"]
