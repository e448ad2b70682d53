"""
Document store backends for intelstore.

- DocumentStore: The abstract interface the migration engine drives
- ElasticsearchDocumentStore: Production backend (AsyncElasticsearch)
- InMemoryDocumentStore: Testing and dry-run backend
- StoreRegistry / EntityStore: Entity type to index bindings
"""

from intelstore.stores.elasticsearch import ElasticsearchDocumentStore
from intelstore.stores.in_memory import InMemoryDocumentStore
from intelstore.stores.interface import (
    BulkAction,
    BulkResult,
    Cursor,
    DocumentStore,
    SearchResult,
    SortSpec,
)
from intelstore.stores.registry import EntityStore, StoreRegistry

__all__ = [
    "BulkAction",
    "BulkResult",
    "Cursor",
    "DocumentStore",
    "ElasticsearchDocumentStore",
    "EntityStore",
    "InMemoryDocumentStore",
    "SearchResult",
    "SortSpec",
    "StoreRegistry",
]
