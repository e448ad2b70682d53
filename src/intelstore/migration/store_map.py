"""
StoreMap adapter.

A :class:`StoreMap` is a flattened, serialization-friendly view of an entity
store bound to one index: connection, index name, mapping/type name,
settings and config. Source and target stores are both described this way,
so the pipeline never special-cases one or the other.

A StoreMap is cheap to recompute and never the source of truth; the
persisted migration state is.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from intelstore.config import DEFAULT_TIMEOUT_SECONDS, StoreConfig
from intelstore.stores.interface import DocumentStore
from intelstore.stores.registry import EntityStore

# Leading generation segment of an index name, e.g. "v1.2_" in "v1.2_ctia_indicator"
VERSION_PREFIX_PATTERN = re.compile(r"^v[^_]*_")


class StoreMap:
    """
    Live handle on one index of an entity store.

    Attributes:
        conn: Document store connection, using the long migration timeout.
        indexname: Index this handle reads from or writes to.
        mapping: Document mapping name (the entity name).
        type: Entity type name.
        settings: Production index settings of the entity.
        config: Full store configuration.
        props: Store properties, as configured.
    """

    __slots__ = ("conn", "indexname", "mapping", "type", "settings", "config", "props")

    def __init__(
        self,
        *,
        conn: DocumentStore,
        indexname: str,
        mapping: str,
        type: str,
        settings: dict[str, Any],
        config: StoreConfig,
        props: dict[str, Any],
    ) -> None:
        self.conn = conn
        self.indexname = indexname
        self.mapping = mapping
        self.type = type
        self.settings = settings
        self.config = config
        self.props = props

    def with_index(self, indexname: str) -> StoreMap:
        """Same store, bound to another index."""
        return StoreMap(
            conn=self.conn,
            indexname=indexname,
            mapping=self.mapping,
            type=self.type,
            settings=self.settings,
            config=self.config,
            props=self.props,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StoreMap):
            return NotImplemented
        return all(getattr(self, name) == getattr(other, name) for name in self.__slots__)

    def __hash__(self) -> int:
        return hash((self.indexname, self.mapping))

    def __repr__(self) -> str:
        return f"StoreMap(type={self.type!r}, indexname={self.indexname!r})"


def store_to_map(store: EntityStore, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> StoreMap:
    """
    Transform an entity store into a StoreMap.

    The connection is replaced by a view using ``timeout`` so long bulk
    operations are not cut short.
    """
    config = store.config
    return StoreMap(
        conn=store.conn.with_timeout(timeout),
        indexname=config.index,
        mapping=config.entity,
        type=config.entity,
        settings=dict(config.settings),
        config=config,
        props={
            "entity": config.entity,
            "indexname": config.index,
            "settings": dict(config.settings),
        },
    )


def stores_to_maps(
    stores: Mapping[str, EntityStore],
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> dict[str, StoreMap]:
    """Transform entity stores into StoreMaps, keeping their keys."""
    return {key: store_to_map(store, timeout) for key, store in stores.items()}


def prefixed_index(index: str, prefix: str) -> str:
    """
    Derive a target index name from a source index name.

    Any leading ``v<anything-but-underscore>_`` segment is stripped and
    ``v<prefix>_`` is applied, so re-deriving from an already prefixed name
    with the same prefix is stable.

    Note:
        The stripping is unconditional: a source index whose name starts
        with a segment like ``vault_`` loses that segment too.

    Example:
        >>> prefixed_index("ctia_indicator", "2.0")
        'v2.0_ctia_indicator'
        >>> prefixed_index("v1.4_ctia_indicator", "2.0")
        'v2.0_ctia_indicator'
    """
    trimmed = VERSION_PREFIX_PATTERN.sub("", index, count=1)
    return f"v{prefix}_{trimmed}"


def source_map_to_target_map(store: StoreMap, prefix: str) -> StoreMap:
    """Transform a source StoreMap into its target, only the index name changes."""
    return store.with_index(prefixed_index(store.indexname, prefix))


def source_maps_to_target_maps(
    source_stores: Mapping[str, StoreMap],
    prefix: str,
) -> dict[str, StoreMap]:
    return {key: source_map_to_target_map(store, prefix) for key, store in source_stores.items()}


__all__ = [
    "StoreMap",
    "VERSION_PREFIX_PATTERN",
    "prefixed_index",
    "source_map_to_target_map",
    "source_maps_to_target_maps",
    "store_to_map",
    "stores_to_maps",
]
