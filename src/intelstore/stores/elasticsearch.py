"""
Elasticsearch document store implementation.

Production backend built on the official async client
(:class:`elasticsearch.AsyncElasticsearch`). Bulk writes go through
:func:`elasticsearch.helpers.async_bulk`, which splits requests on
``max_chunk_bytes`` so callers never build an oversized bulk body.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from elasticsearch import AsyncElasticsearch, NotFoundError
from elasticsearch.helpers import async_bulk

from intelstore.config import ElasticsearchConfig
from intelstore.observability import (
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_DOCUMENT_COUNT,
    ATTR_INDEX,
    Tracer,
    create_tracer,
)
from intelstore.stores.interface import (
    BulkAction,
    BulkResult,
    Cursor,
    DocumentStore,
    SearchResult,
    SortSpec,
)

logger = logging.getLogger(__name__)

# Conflicting partial updates of the same document are retried server side
UPDATE_RETRY_ON_CONFLICT = 5

# Legacy sort keys, _uid is gone since Elasticsearch 7 and every entity maps id
SORT_FIELD_ALIASES = {"_uid": "id"}


def es_sort(sort: SortSpec) -> SortSpec:
    """Rewrite legacy sort keys to fields the cluster can sort on."""
    return [
        {SORT_FIELD_ALIASES.get(name, name): order for name, order in clause.items()}
        for clause in sort
    ]


class ElasticsearchDocumentStore(DocumentStore):
    """
    Document store backed by an Elasticsearch cluster.

    Example:
        >>> store = ElasticsearchDocumentStore.from_config(
        ...     ElasticsearchConfig(hosts=("http://localhost:9200",))
        ... )
        >>> bulk_view = store.with_timeout(300)
        >>> await bulk_view.count("ctia_indicator")
        >>> await store.close()

    Attributes:
        _client: The async client (or a per-request options view of it).
        _owns_client: Whether close() should close the client.
    """

    system = "elasticsearch"

    def __init__(
        self,
        client: AsyncElasticsearch,
        *,
        owns_client: bool = True,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._client = client
        self._owns_client = owns_client

    @classmethod
    def from_config(
        cls,
        config: ElasticsearchConfig,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> ElasticsearchDocumentStore:
        client = AsyncElasticsearch(
            hosts=list(config.hosts),
            basic_auth=config.basic_auth,
            verify_certs=config.verify_certs,
            request_timeout=config.request_timeout,
        )
        return cls(client, tracer=tracer, enable_tracing=enable_tracing)

    @property
    def client(self) -> AsyncElasticsearch:
        return self._client

    def _attrs(self, operation: str, index: str) -> dict[str, Any]:
        return {ATTR_DB_SYSTEM: self.system, ATTR_DB_OPERATION: operation, ATTR_INDEX: index}

    async def count(self, index: str, query: dict[str, Any] | None = None) -> int:
        with self._tracer.span("intelstore.es_store.count", self._attrs("count", index)):
            params: dict[str, Any] = {"index": index}
            if query is not None:
                params["query"] = query
            response = await self._client.count(**params)
            return int(response["count"])

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
        with self._tracer.span("intelstore.es_store.search", self._attrs("search", index)):
            params: dict[str, Any] = {
                "index": index,
                "size": size,
                "track_total_hits": True,
            }
            if query is not None:
                params["query"] = query
            if sort:
                params["sort"] = es_sort(sort)
            if search_after is not None:
                params["search_after"] = search_after
            elif offset:
                params["from_"] = offset

            response = await self._client.search(**params)
            hits = response["hits"]["hits"]
            total = response["hits"]["total"]
            if isinstance(total, dict):
                total = total["value"]
            return SearchResult(
                data=[hit["_source"] for hit in hits],
                total=int(total),
                sort=hits[-1].get("sort") if hits else None,
            )

    async def bulk_create(
        self,
        actions: Sequence[BulkAction],
        *,
        refresh: bool = False,
        max_chunk_bytes: int,
    ) -> BulkResult:
        with self._tracer.span(
            "intelstore.es_store.bulk_create",
            {ATTR_DB_SYSTEM: self.system, ATTR_DOCUMENT_COUNT: len(actions)},
        ):
            bulk_actions = [
                {
                    "_op_type": "index",
                    "_index": action.index,
                    "_id": action.doc_id,
                    "_source": action.document,
                }
                for action in actions
            ]
            created, errors = await async_bulk(
                self._client,
                bulk_actions,
                max_chunk_bytes=max_chunk_bytes,
                refresh=refresh,
                raise_on_error=False,
                raise_on_exception=True,
            )
            markers = []
            for item in errors:
                detail = next(iter(item.values())) if isinstance(item, dict) and item else {}
                markers.append({"id": detail.get("_id"), "error": detail.get("error")})
            return BulkResult(created=int(created), errors=markers)

    async def delete(self, index: str, doc_id: str, *, refresh: bool = True) -> bool:
        with self._tracer.span("intelstore.es_store.delete", self._attrs("delete", index)):
            try:
                await self._client.delete(index=index, id=doc_id, refresh=refresh)
            except NotFoundError:
                return False
            return True

    async def index_exists(self, index: str) -> bool:
        return bool(await self._client.indices.exists(index=index))

    async def create_index(
        self,
        index: str,
        settings: dict[str, Any] | None = None,
        mappings: dict[str, Any] | None = None,
    ) -> None:
        with self._tracer.span(
            "intelstore.es_store.create_index", self._attrs("create_index", index)
        ):
            params: dict[str, Any] = {"index": index}
            if settings:
                params["settings"] = settings
            if mappings:
                params["mappings"] = mappings
            await self._client.indices.create(**params)

    async def delete_index(self, index: str) -> None:
        with self._tracer.span(
            "intelstore.es_store.delete_index", self._attrs("delete_index", index)
        ):
            await self._client.indices.delete(index=index, ignore_unavailable=True)

    async def put_template(
        self,
        name: str,
        index_patterns: list[str],
        *,
        settings: dict[str, Any] | None = None,
        mappings: dict[str, Any] | None = None,
        aliases: dict[str, Any] | None = None,
    ) -> None:
        template: dict[str, Any] = {}
        if settings:
            template["settings"] = settings
        if mappings:
            template["mappings"] = mappings
        if aliases:
            template["aliases"] = aliases
        await self._client.indices.put_index_template(
            name=name,
            index_patterns=index_patterns,
            template=template,
        )

    async def update_settings(self, index: str, settings: dict[str, Any]) -> None:
        with self._tracer.span(
            "intelstore.es_store.update_settings", self._attrs("update_settings", index)
        ):
            await self._client.indices.put_settings(index=index, settings=settings)

    async def get_settings(self, index: str) -> dict[str, Any]:
        response = await self._client.indices.get_settings(index=index, flat_settings=False)
        return dict(response[index]["settings"].get("index", {}))

    async def refresh(self, index: str) -> None:
        with self._tracer.span("intelstore.es_store.refresh", self._attrs("refresh", index)):
            await self._client.indices.refresh(index=index)

    async def get(self, index: str, doc_id: str) -> dict[str, Any] | None:
        with self._tracer.span("intelstore.es_store.get", self._attrs("get", index)):
            try:
                response = await self._client.get(index=index, id=doc_id)
            except NotFoundError:
                return None
            return dict(response["_source"])

    async def create(
        self,
        index: str,
        doc_id: str,
        document: dict[str, Any],
        *,
        refresh: bool = True,
    ) -> None:
        with self._tracer.span("intelstore.es_store.create", self._attrs("create", index)):
            await self._client.index(index=index, id=doc_id, document=document, refresh=refresh)

    async def update(
        self,
        index: str,
        doc_id: str,
        partial: dict[str, Any],
        *,
        refresh: bool = True,
    ) -> None:
        with self._tracer.span("intelstore.es_store.update", self._attrs("update", index)):
            await self._client.update(
                index=index,
                id=doc_id,
                doc=partial,
                refresh=refresh,
                retry_on_conflict=UPDATE_RETRY_ON_CONFLICT,
            )

    def with_timeout(self, seconds: float) -> ElasticsearchDocumentStore:
        return ElasticsearchDocumentStore(
            self._client.options(request_timeout=seconds),
            owns_client=False,
            tracer=self._tracer,
        )

    async def close(self) -> None:
        if self._owns_client:
            logger.debug("Closing Elasticsearch client")
            await self._client.close()


__all__ = ["ElasticsearchDocumentStore"]
