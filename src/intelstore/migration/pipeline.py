"""
BatchPipeline - Paginated fetch, bulk store and delete propagation.

The pipeline is the innermost loop of a migration. It reads one page of
documents from a source index, writes pages to a target index in size
capped bulk requests, and propagates deletes recorded in the event store
since a given date.

Pagination:
    Pages are sorted by an entity specific key with a final tiebreak on
    the internal document id, which gives a total order so the sort values
    of the last hit of a page (the ``search_after`` cursor) resume the scan
    exactly after that page.

Usage:
    >>> pipeline = BatchPipeline(max_retry=3)
    >>>
    >>> async for page in pipeline.iter_batches(source_store, 100):
    ...     await pipeline.store_batch(target_store, page.data)
    ...     cursor = page.sort
"""

from __future__ import annotations

import logging
import re
from collections.abc import AsyncIterator, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from intelstore.config import DEFAULT_BULK_MAX_SIZE, DEFAULT_MAX_RETRY
from intelstore.migration.retry import Retrier
from intelstore.migration.store_map import StoreMap
from intelstore.observability import (
    ATTR_BATCH_SIZE,
    ATTR_DOCUMENT_COUNT,
    ATTR_ENTITY_TYPE,
    ATTR_INDEX,
    Tracer,
    create_tracer,
)
from intelstore.stores.interface import BulkAction, BulkResult, Cursor, SearchResult, SortSpec

logger = logging.getLogger(__name__)

DELETE_EVENT_TYPE = "record-deleted"

# Short id of a long id, e.g. "indicator-1" in "https://host/ctia/indicator/indicator-1"
SHORT_ID_PATTERN = re.compile(r".*?([^/]+)\Z")


def sort_by(mapping: str, sort_order: str | None, tiebreak: str = "_uid") -> SortSpec | None:
    """
    Sort clauses used to paginate an entity index.

    Events sort by timestamp, identities only by the tiebreak, every other
    entity by modification then creation date. None when no sort order is
    requested.

    Example:
        >>> sort_by("indicator", "asc")
        [{'modified': 'asc'}, {'created': 'asc'}, {'_uid': 'asc'}]
        >>> sort_by("event", "asc")
        [{'timestamp': 'asc'}, {'_uid': 'asc'}]
    """
    if sort_order is None:
        return None
    if mapping == "event":
        fields = ["timestamp"]
    elif mapping == "identity":
        fields = []
    else:
        fields = ["modified", "created"]
    return [{name: sort_order} for name in [*fields, tiebreak]]


def long_id_to_short_id(long_id: str) -> str:
    """
    Extract the short internal id from a long (URL) id.

    Example:
        >>> long_id_to_short_id("http://localhost:3000/ctia/indicator/indicator-1")
        'indicator-1'
        >>> long_id_to_short_id("indicator-1")
        'indicator-1'
    """
    match = SHORT_ID_PATTERN.match(long_id)
    return match.group(1) if match else long_id


@dataclass(frozen=True)
class DeleteBatch:
    """
    Delete events found in one page of the event store.

    Attributes:
        deletes: Deleted entity ids grouped by entity type.
        search_after: Cursor of the scanned page, None when it was empty.
        fetched: Number of events scanned (before filtering).
    """

    deletes: dict[str, list[str]] = field(default_factory=dict)
    search_after: Cursor | None = None
    fetched: int = 0


class BatchPipeline:
    """
    Fetch, store and delete batches of documents against store maps.

    Every remote call goes through the bounded retry wrapper.

    Attributes:
        _retry: Retry wrapper for remote calls.
        _bulk_max_size: Maximum size of one bulk request in bytes.
        _tiebreak: Final sort key of every paginated query.
    """

    def __init__(
        self,
        *,
        max_retry: int = DEFAULT_MAX_RETRY,
        bulk_max_size: int = DEFAULT_BULK_MAX_SIZE,
        tiebreak_field: str = "_uid",
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._retry = Retrier(max_retry)
        self._bulk_max_size = bulk_max_size
        self._tiebreak = tiebreak_field

    async def store_size(self, store: StoreMap) -> int:
        """Number of documents in the store index, 0 when it reports nothing."""
        count = await self._retry(store.conn.count, store.indexname)
        return count or 0

    async def query_fetch_batch(
        self,
        query: dict[str, Any] | None,
        store: StoreMap,
        batch_size: int,
        offset: int = 0,
        sort_order: str | None = "asc",
        search_after: Cursor | None = None,
    ) -> SearchResult:
        """
        Fetch one page of documents matching ``query``.

        When ``search_after`` is given the numeric offset is ignored.
        """
        with self._tracer.span(
            "intelstore.pipeline.fetch_batch",
            {
                ATTR_ENTITY_TYPE: store.type,
                ATTR_INDEX: store.indexname,
                ATTR_BATCH_SIZE: batch_size,
            },
        ):
            return await self._retry(
                store.conn.search,
                store.indexname,
                query,
                sort=sort_by(store.mapping, sort_order, self._tiebreak),
                size=batch_size,
                offset=offset or 0,
                search_after=search_after,
            )

    async def fetch_batch(
        self,
        store: StoreMap,
        batch_size: int,
        offset: int = 0,
        sort_order: str | None = "asc",
        search_after: Cursor | None = None,
    ) -> SearchResult:
        """Fetch one page of all documents of the store."""
        return await self.query_fetch_batch(
            None, store, batch_size, offset, sort_order, search_after
        )

    async def iter_batches(
        self,
        store: StoreMap,
        batch_size: int,
        *,
        query: dict[str, Any] | None = None,
        search_after: Cursor | None = None,
    ) -> AsyncIterator[SearchResult]:
        """
        Lazily iterate over pages of the store in ascending order.

        One page is held at a time. Iteration stops after the first page
        holding fewer than ``batch_size`` documents, and can be restarted
        from the ``sort`` of any page yielded before.
        """
        cursor = search_after
        while True:
            page = await self.query_fetch_batch(query, store, batch_size, 0, "asc", cursor)
            yield page
            if len(page) < batch_size or page.sort is None:
                return
            cursor = page.sort

    async def store_batch(self, store: StoreMap, batch: Sequence[dict[str, Any]]) -> BulkResult:
        """
        Bulk write documents to the store index, keyed by their ``id``.

        Rejected documents are logged and reported in the result; they do
        not abort the batch.
        """
        logger.debug("%s - storing %s records", store.type, len(batch))
        actions = [
            BulkAction(
                index=store.indexname,
                doc_id=doc["id"],
                document=doc,
                doc_type=store.mapping,
            )
            for doc in batch
        ]
        with self._tracer.span(
            "intelstore.pipeline.store_batch",
            {
                ATTR_ENTITY_TYPE: store.type,
                ATTR_INDEX: store.indexname,
                ATTR_DOCUMENT_COUNT: len(actions),
            },
        ):
            result = await self._retry(
                store.conn.bulk_create,
                actions,
                refresh=False,
                max_chunk_bytes=self._bulk_max_size,
            )
        for error in result.errors:
            logger.warning(
                "%s - could not store document %s: %s",
                store.type,
                error.get("id"),
                error.get("error"),
            )
        return result

    async def fetch_deletes(
        self,
        event_store: StoreMap,
        entity_types: Iterable[str],
        since: datetime,
        batch_size: int,
        search_after: Cursor | None = None,
    ) -> DeleteBatch:
        """
        Scan one page of events since ``since`` for deletes of the given types.

        Events are filtered after fetching, so a page may hold fewer deletes
        than ``fetched``. The scan is exhausted once ``fetched`` is lower
        than ``batch_size``.
        """
        wanted = set(entity_types)
        query = {"range": {"timestamp": {"gte": since}}}
        page = await self.query_fetch_batch(
            query, event_store, batch_size, 0, "asc", search_after
        )
        deletes: dict[str, list[str]] = {}
        for event in page.data:
            entity = event.get("entity") or {}
            entity_type = entity.get("type")
            if event.get("event_type") != DELETE_EVENT_TYPE or entity_type not in wanted:
                continue
            entity_id = entity.get("id")
            if not entity_id:
                logger.warning(
                    "%s - delete event %s has no entity id, skipping",
                    entity_type,
                    event.get("id"),
                )
                continue
            deletes.setdefault(entity_type, []).append(entity_id)
        return DeleteBatch(deletes=deletes, search_after=page.sort, fetched=len(page))

    async def batch_delete(self, store: StoreMap, ids: Iterable[str]) -> int:
        """
        Delete documents from the store index given their long ids.

        Deletes are issued one by one; delete volume is expected to be low.
        Returns the number of documents actually removed.
        """
        deleted = 0
        with self._tracer.span(
            "intelstore.pipeline.batch_delete",
            {ATTR_ENTITY_TYPE: store.type, ATTR_INDEX: store.indexname},
        ):
            for long_id in ids:
                short_id = long_id_to_short_id(long_id)
                if await self._retry(store.conn.delete, store.indexname, short_id, refresh=True):
                    deleted += 1
        if deleted:
            logger.info("%s - deleted %s documents from %s", store.type, deleted, store.indexname)
        return deleted


__all__ = [
    "BatchPipeline",
    "DELETE_EVENT_TYPE",
    "DeleteBatch",
    "long_id_to_short_id",
    "sort_by",
]
