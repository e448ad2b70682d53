"""
IndexManager - Target index lifecycle during a migration.

Target indices are created with write-optimized settings (no replicas, no
periodic refresh) so bulk loading avoids replication and refresh overhead.
Once an entity type is fully copied, its production settings are restored
and the index is refreshed so the data becomes searchable.
"""

from __future__ import annotations

import logging
from typing import Any

from intelstore.config import DEFAULT_MAX_RETRY
from intelstore.migration.retry import Retrier
from intelstore.migration.store_map import StoreMap
from intelstore.observability import (
    ATTR_ENTITY_TYPE,
    ATTR_INDEX,
    Tracer,
    create_tracer,
)

logger = logging.getLogger(__name__)

# Settings that cannot change on a live index
STATIC_SETTINGS = ("number_of_shards", "analysis")

# Dynamic settings overridden while loading; reset to the cluster default
# after loading when the entity does not configure them
WRITE_OPTIMIZED_SETTINGS: dict[str, Any] = {
    "number_of_replicas": 0,
    "refresh_interval": -1,
}


def target_index_settings(settings: dict[str, Any]) -> dict[str, Any]:
    """
    Production settings with replicas and periodic refresh disabled.

    Example:
        >>> target_index_settings({"number_of_shards": 5, "number_of_replicas": 2})
        {'number_of_shards': 5, 'number_of_replicas': 0, 'refresh_interval': -1}
    """
    return {**settings, **WRITE_OPTIMIZED_SETTINGS}


def revert_optimizations_settings(settings: dict[str, Any]) -> dict[str, Any]:
    """
    Settings restoring production behaviour on a loaded index.

    Shard count and analysis are left out since they cannot be updated on
    a live index. Write-optimized settings the entity does not configure
    are reset to the cluster default (None).

    Example:
        >>> revert_optimizations_settings({"number_of_shards": 5, "number_of_replicas": 2})
        {'number_of_replicas': 2, 'refresh_interval': None}
    """
    reverted: dict[str, Any] = {key: None for key in WRITE_OPTIMIZED_SETTINGS}
    reverted.update({k: v for k, v in settings.items() if k not in STATIC_SETTINGS})
    return reverted


class IndexManager:
    """
    Creates, optimizes and finalizes target indices.

    Example:
        >>> manager = IndexManager(max_retry=3)
        >>> await manager.create_target_store(target_store)
        >>> # ... bulk load ...
        >>> await manager.finalize_target_store(target_store)
    """

    def __init__(
        self,
        *,
        max_retry: int = DEFAULT_MAX_RETRY,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._retry = Retrier(max_retry)

    async def create_target_store(self, target: StoreMap) -> None:
        """
        Create the target index, pushing its template first.

        An existing index with the same name is deleted and recreated: the
        creation step is idempotent, in-progress data is not preserved.
        """
        conn = target.conn
        indexname = target.indexname
        with self._tracer.span(
            "intelstore.index_manager.create_target",
            {ATTR_ENTITY_TYPE: target.type, ATTR_INDEX: indexname},
        ):
            if await self._retry(conn.index_exists, indexname):
                logger.warning(
                    "tried to create target store %s, but it already exists. Recreating it.",
                    indexname,
                )
            index_settings = target_index_settings(target.settings)

            logger.info("%s - purging indexes: %s", target.type, indexname)
            await self._retry(conn.delete_index, indexname)

            logger.info("%s - creating index template: %s", target.type, indexname)
            await self._retry(
                conn.put_template,
                indexname,
                [f"{indexname}*"],
                settings=target.config.settings,
                mappings=target.config.mappings,
                aliases=target.config.aliases,
            )

            logger.info("%s - creating index: %s", target.type, indexname)
            await self._retry(conn.create_index, indexname, index_settings)

    async def finalize_target_store(self, target: StoreMap) -> None:
        """
        Restore production settings on the target index and refresh it.

        The refresh happens last, so the caller may mark the entity type
        completed as soon as this returns.
        """
        conn = target.conn
        indexname = target.indexname
        with self._tracer.span(
            "intelstore.index_manager.finalize",
            {ATTR_ENTITY_TYPE: target.type, ATTR_INDEX: indexname},
        ):
            logger.info("%s - update index settings", target.type)
            await self._retry(
                conn.update_settings,
                indexname,
                revert_optimizations_settings(target.config.settings),
            )
            logger.info("%s - trigger refresh", target.type)
            await self._retry(conn.refresh, indexname)


__all__ = [
    "IndexManager",
    "STATIC_SETTINGS",
    "WRITE_OPTIMIZED_SETTINGS",
    "revert_optimizations_settings",
    "target_index_settings",
]
