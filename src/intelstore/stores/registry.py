"""
Entity store registry.

An :class:`EntityStore` binds one entity type to its configuration and the
document store connection serving it; :class:`StoreRegistry` holds all of
them, keyed by entity type. The registry replaces any process-wide store
table: it is built once at startup and passed explicitly.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass

from intelstore.config import StoreConfig
from intelstore.exceptions import UnknownStoreError
from intelstore.stores.interface import DocumentStore


@dataclass(frozen=True)
class EntityStore:
    """
    A configured entity store.

    Attributes:
        key: Entity type key (e.g., "indicator").
        conn: Document store connection serving the entity index.
        config: Index name, settings and mappings of the entity.
    """

    key: str
    conn: DocumentStore
    config: StoreConfig

    @property
    def index(self) -> str:
        return self.config.index

    @property
    def entity(self) -> str:
        return self.config.entity


class StoreRegistry(Mapping[str, EntityStore]):
    """
    Read-only mapping of entity type key to :class:`EntityStore`.

    Example:
        >>> registry = StoreRegistry.from_configs(conn, app_config.stores)
        >>> registry["indicator"].index
        'ctia_indicator'
        >>> list(registry.select(["sighting"]))
        ['sighting']
    """

    def __init__(self, stores: Iterable[EntityStore] = ()) -> None:
        self._stores: dict[str, EntityStore] = {store.key: store for store in stores}

    @classmethod
    def from_configs(
        cls,
        conn: DocumentStore,
        configs: Mapping[str, StoreConfig],
    ) -> StoreRegistry:
        """Build a registry serving every configured entity from one connection."""
        return cls(EntityStore(key, conn, config) for key, config in configs.items())

    def __getitem__(self, key: str) -> EntityStore:
        try:
            return self._stores[key]
        except KeyError:
            raise UnknownStoreError(key) from None

    def __contains__(self, key: object) -> bool:
        return key in self._stores

    def get(self, key: str, default: EntityStore | None = None) -> EntityStore | None:
        return self._stores.get(key, default)

    def __iter__(self) -> Iterator[str]:
        return iter(self._stores)

    def __len__(self) -> int:
        return len(self._stores)

    def select(self, keys: Iterable[str]) -> StoreRegistry:
        """
        Restrict the registry to the given keys, in the given order.

        Raises:
            UnknownStoreError: If a key is not configured.
        """
        return StoreRegistry(self[key] for key in keys)


__all__ = ["EntityStore", "StoreRegistry"]
