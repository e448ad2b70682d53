"""
Configuration classes for intelstore stores and migrations.

This module provides:
- StoreConfig: Index name, settings and mappings of one entity store
- ElasticsearchConfig: Connection settings for the document store
- MigrationConfig: Tuning knobs for a migration run
- AppConfig: Everything above, loaded from a JSON file by load_config()
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from intelstore.exceptions import ConfigurationError

# Long client-level timeout for bulk operations during migration
DEFAULT_TIMEOUT_SECONDS = 5 * 60

# Bulk requests are capped at 5 MB
DEFAULT_BULK_MAX_SIZE = 5 * 1024 * 1024

DEFAULT_MAX_RETRY = 3

HOSTS_ENV_VAR = "INTELSTORE_ES_HOSTS"


@dataclass(frozen=True)
class StoreConfig:
    """
    Configuration of the index backing one entity store.

    Attributes:
        entity: Entity type name (e.g., "indicator"); also used as the
            document mapping/type name.
        index: Name of the index currently serving the entity.
        settings: Production index settings (number_of_shards,
            number_of_replicas, refresh_interval, analysis, ...).
        mappings: Index mappings.
        aliases: Index aliases pushed with the index template.

    Example:
        >>> config = StoreConfig(
        ...     entity="indicator",
        ...     index="ctia_indicator",
        ...     settings={"number_of_shards": 5, "number_of_replicas": 1},
        ... )
    """

    entity: str
    index: str
    settings: dict[str, Any] = field(default_factory=dict)
    mappings: dict[str, Any] = field(default_factory=dict)
    aliases: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not self.entity:
            raise ConfigurationError("entity must be a non-empty string")
        if not self.index:
            raise ConfigurationError(f"index must be set for entity {self.entity!r}")

    @classmethod
    def from_dict(cls, entity: str, data: dict[str, Any]) -> StoreConfig:
        """Build a StoreConfig from its JSON representation."""
        if "index" not in data:
            raise ConfigurationError(f"store {entity!r} is missing 'index'")
        return cls(
            entity=data.get("entity", entity),
            index=data["index"],
            settings=dict(data.get("settings", {})),
            mappings=dict(data.get("mappings", {})),
            aliases=dict(data.get("aliases", {})),
        )


@dataclass(frozen=True)
class ElasticsearchConfig:
    """
    Connection settings for the Elasticsearch cluster.

    Attributes:
        hosts: Node URLs.
        username: Basic auth user (optional).
        password: Basic auth password (optional).
        verify_certs: Whether to verify TLS certificates.
        request_timeout: Default request timeout in seconds.
    """

    hosts: tuple[str, ...] = ("http://localhost:9200",)
    username: str | None = None
    password: str | None = None
    verify_certs: bool = True
    request_timeout: float = 30.0

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not self.hosts:
            raise ConfigurationError("at least one Elasticsearch host is required")
        if self.request_timeout <= 0:
            raise ConfigurationError(
                f"request_timeout must be positive, got {self.request_timeout}"
            )

    @property
    def basic_auth(self) -> tuple[str, str] | None:
        if self.username is None or self.password is None:
            return None
        return (self.username, self.password)


@dataclass(frozen=True)
class MigrationConfig:
    """
    Configuration for a migration run.

    Attributes:
        batch_size: Documents fetched per page from the source (default 100).
        concurrency: Entity types migrated in parallel (default 4).
        max_retry: Attempts for every remote call (default 3).
        timeout_seconds: Client timeout used by migration connections (default 300).
        bulk_max_size: Maximum bulk request size in bytes (default 5 MB).
        migration_index: Index holding the migration state documents.
        event_store: Entity key of the store holding change events used
            for delete reconciliation.
        reconcile_deletes: Remove documents deleted from the source since
            the entity type migration started (default True).
        transforms: Named per-document transforms applied in order.
        tiebreak_field: Final sort key giving a total order for cursors.
            The default ``_uid`` is sent to Elasticsearch as ``id``.

    Example:
        >>> config = MigrationConfig(batch_size=500, concurrency=2)
        >>> config.max_retry
        3
    """

    batch_size: int = 100
    concurrency: int = 4
    max_retry: int = DEFAULT_MAX_RETRY
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    bulk_max_size: int = DEFAULT_BULK_MAX_SIZE
    migration_index: str = "intelstore_migration"
    event_store: str = "event"
    reconcile_deletes: bool = True
    transforms: tuple[str, ...] = ()
    tiebreak_field: str = "_uid"

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.concurrency < 1:
            raise ConfigurationError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.max_retry < 1:
            raise ConfigurationError(f"max_retry must be >= 1, got {self.max_retry}")
        if self.timeout_seconds <= 0:
            raise ConfigurationError(
                f"timeout_seconds must be positive, got {self.timeout_seconds}"
            )
        if self.bulk_max_size < 1:
            raise ConfigurationError(f"bulk_max_size must be >= 1, got {self.bulk_max_size}")
        if not self.migration_index:
            raise ConfigurationError("migration_index must be a non-empty string")


@dataclass(frozen=True)
class AppConfig:
    """Complete configuration: cluster connection, migration tuning and stores."""

    elasticsearch: ElasticsearchConfig = field(default_factory=ElasticsearchConfig)
    migration: MigrationConfig = field(default_factory=MigrationConfig)
    stores: dict[str, StoreConfig] = field(default_factory=dict)


def load_config(path: str | Path, environ: dict[str, str] | None = None) -> AppConfig:
    """
    Load configuration from a JSON file.

    The file holds ``{"elasticsearch": {...}, "migration": {...},
    "stores": {"<entity>": {"index": ..., "settings": ..., "mappings": ...}}}``.
    The ``INTELSTORE_ES_HOSTS`` environment variable (comma separated)
    overrides the configured hosts.

    Raises:
        ConfigurationError: If the file is unreadable or invalid.
    """
    env = os.environ if environ is None else environ
    try:
        raw = json.loads(Path(path).read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"cannot read configuration {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigurationError(f"configuration {path} must be a JSON object")

    es_raw = dict(raw.get("elasticsearch", {}))
    if env.get(HOSTS_ENV_VAR):
        es_raw["hosts"] = [h.strip() for h in env[HOSTS_ENV_VAR].split(",") if h.strip()]
    if "hosts" in es_raw:
        es_raw["hosts"] = tuple(es_raw["hosts"])

    migration_raw = dict(raw.get("migration", {}))
    if "transforms" in migration_raw:
        migration_raw["transforms"] = tuple(migration_raw["transforms"])

    try:
        es_config = ElasticsearchConfig(**es_raw)
        migration_config = MigrationConfig(**migration_raw)
    except TypeError as e:
        raise ConfigurationError(f"invalid configuration {path}: {e}") from e

    stores = {
        key: StoreConfig.from_dict(key, value) for key, value in raw.get("stores", {}).items()
    }
    if not stores:
        raise ConfigurationError(f"configuration {path} declares no stores")

    return AppConfig(elasticsearch=es_config, migration=migration_config, stores=stores)


__all__ = [
    "AppConfig",
    "ElasticsearchConfig",
    "MigrationConfig",
    "StoreConfig",
    "load_config",
    "DEFAULT_BULK_MAX_SIZE",
    "DEFAULT_MAX_RETRY",
    "DEFAULT_TIMEOUT_SECONDS",
]
