"""
Document store interface and core data structures.

The document store is the external collaborator the migration engine
drives: every count, search, bulk write, delete and index administration
call goes through a :class:`DocumentStore`.

This module provides:
- SearchResult: A page of documents plus the cursor of its last hit
- BulkAction: One document to write in a bulk request
- BulkResult: Outcome of a bulk request with per-document error markers
- DocumentStore: Abstract base class for document store implementations
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

# Sort clauses are Elasticsearch style: [{"modified": "asc"}, {"_uid": "asc"}]
SortSpec = list[dict[str, str]]

# A search_after cursor: the sort values of the last returned document
Cursor = list[Any]


@dataclass(frozen=True)
class SearchResult:
    """
    One page of search results.

    Attributes:
        data: Document sources in sort order.
        total: Number of documents matching the query.
        sort: Sort values of the last document of the page, usable as the
            ``search_after`` cursor of the next page. None for empty pages
            or unsorted searches.
    """

    data: list[dict[str, Any]]
    total: int
    sort: Cursor | None = None

    def __len__(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class BulkAction:
    """
    A document to write with an explicit id.

    Writing the same id twice overwrites the first copy, which makes bulk
    writes idempotent per document id.
    """

    index: str
    doc_id: str
    document: dict[str, Any]
    doc_type: str | None = None


@dataclass
class BulkResult:
    """
    Result of a bulk write.

    Attributes:
        created: Number of documents written successfully.
        errors: One ``{"id": ..., "error": ...}`` marker per rejected document.
    """

    created: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


class DocumentStore(ABC):
    """
    Abstract base class for document stores.

    Implementations wrap a connection pool to a search cluster. All
    methods are coroutines and may raise transport errors; callers that
    need resilience wrap them with :func:`intelstore.migration.retry.retry`.
    """

    system: str = "unknown"

    @abstractmethod
    async def count(self, index: str, query: dict[str, Any] | None = None) -> int:
        """Count documents in ``index`` matching ``query`` (all when None)."""
        pass

    @abstractmethod
    async def search(
        self,
        index: str,
        query: dict[str, Any] | None = None,
        *,
        sort: SortSpec | None = None,
        size: int = 10,
        offset: int = 0,
        search_after: Cursor | None = None,
    ) -> SearchResult:
        """
        Fetch one page of documents.

        Args:
            index: Index to search.
            query: Query clause, None for match-all.
            sort: Sort clauses; required for cursor pagination.
            size: Page size.
            offset: Numeric offset, ignored when ``search_after`` is given.
            search_after: Cursor returned by the previous page.

        Returns:
            SearchResult with the page and its last sort values.
        """
        pass

    @abstractmethod
    async def bulk_create(
        self,
        actions: Sequence[BulkAction],
        *,
        refresh: bool = False,
        max_chunk_bytes: int,
    ) -> BulkResult:
        """
        Write documents with explicit ids in as few bulk requests as possible.

        Requests are split so that none exceeds ``max_chunk_bytes``.
        """
        pass

    @abstractmethod
    async def delete(self, index: str, doc_id: str, *, refresh: bool = True) -> bool:
        """Delete one document. Returns False if it did not exist."""
        pass

    @abstractmethod
    async def index_exists(self, index: str) -> bool:
        pass

    @abstractmethod
    async def create_index(
        self,
        index: str,
        settings: dict[str, Any] | None = None,
        mappings: dict[str, Any] | None = None,
    ) -> None:
        pass

    @abstractmethod
    async def delete_index(self, index: str) -> None:
        """Delete an index; deleting a missing index is not an error."""
        pass

    @abstractmethod
    async def put_template(
        self,
        name: str,
        index_patterns: list[str],
        *,
        settings: dict[str, Any] | None = None,
        mappings: dict[str, Any] | None = None,
        aliases: dict[str, Any] | None = None,
    ) -> None:
        pass

    @abstractmethod
    async def update_settings(self, index: str, settings: dict[str, Any]) -> None:
        """
        Update dynamic index settings.

        A None value resets the setting to the cluster default.
        """
        pass

    @abstractmethod
    async def get_settings(self, index: str) -> dict[str, Any]:
        pass

    @abstractmethod
    async def refresh(self, index: str) -> None:
        pass

    @abstractmethod
    async def get(self, index: str, doc_id: str) -> dict[str, Any] | None:
        """Get a document source by id, None when it does not exist."""
        pass

    @abstractmethod
    async def create(
        self,
        index: str,
        doc_id: str,
        document: dict[str, Any],
        *,
        refresh: bool = True,
    ) -> None:
        """Store a document under an explicit id, replacing any previous version."""
        pass

    @abstractmethod
    async def update(
        self,
        index: str,
        doc_id: str,
        partial: dict[str, Any],
        *,
        refresh: bool = True,
    ) -> None:
        """
        Partially update a document.

        Objects in ``partial`` are merged recursively into the stored
        document; only the given field paths change.
        """
        pass

    @abstractmethod
    def with_timeout(self, seconds: float) -> DocumentStore:
        """
        Return a view of this store using a different request timeout.

        The view shares the underlying connection pool.
        """
        pass

    async def close(self) -> None:  # noqa: B027
        """Release the connection pool. Views created by with_timeout share it."""
        pass


__all__ = [
    "BulkAction",
    "BulkResult",
    "Cursor",
    "DocumentStore",
    "SearchResult",
    "SortSpec",
]
