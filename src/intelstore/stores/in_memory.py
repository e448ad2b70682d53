"""
In-memory document store implementation.

Useful for testing and local dry runs. Not suitable for production as all
documents are lost when the process terminates.

The store mimics the parts of Elasticsearch behaviour the migration engine
relies on: multi-key sorting with a ``_uid`` tiebreak, ``search_after``
cursors, ``range``/``term``/``bool`` queries, index templates, dynamic
settings updates and recursive partial updates.
"""

from __future__ import annotations

import asyncio
import copy
import fnmatch
import functools
import json
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from intelstore.exceptions import DocumentStoreError
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


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime | date):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _normalize(value: Any) -> Any:
    """Round-trip a value through JSON, the way a remote store would."""
    return json.loads(json.dumps(value, default=_json_default))


def _deep_merge(target: dict[str, Any], partial: dict[str, Any]) -> None:
    for key, value in partial.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


def _compare_values(a: Any, b: Any) -> int:
    if a is None and b is None:
        return 0
    if a is None:
        return 1
    if b is None:
        return -1
    return (a > b) - (a < b)


def _parse_sort(sort: SortSpec | None) -> list[tuple[str, str]]:
    clauses: list[tuple[str, str]] = []
    for clause in sort or []:
        if isinstance(clause, str):
            clauses.append((clause, "asc"))
            continue
        for name, order in clause.items():
            if isinstance(order, dict):
                order = order.get("order", "asc")
            clauses.append((name, order))
    return clauses


@dataclass
class _Document:
    doc_id: str
    source: dict[str, Any]
    doc_type: str | None = None

    def field(self, name: str) -> Any:
        if name == "_id":
            return self.doc_id
        if name == "_uid":
            return f"{self.doc_type}#{self.doc_id}" if self.doc_type else self.doc_id
        value: Any = self.source
        for part in name.split("."):
            if not isinstance(value, dict):
                return None
            value = value.get(part)
        return value


@dataclass
class _Index:
    settings: dict[str, Any] = field(default_factory=dict)
    mappings: dict[str, Any] = field(default_factory=dict)
    aliases: dict[str, Any] = field(default_factory=dict)
    docs: dict[str, _Document] = field(default_factory=dict)


@dataclass
class _StoreState:
    indices: dict[str, _Index] = field(default_factory=dict)
    templates: dict[str, dict[str, Any]] = field(default_factory=dict)
    bulk_requests: list[int] = field(default_factory=list)
    refreshes: list[str] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class InMemoryDocumentStore(DocumentStore):
    """
    In-memory implementation of the document store.

    Views returned by :meth:`with_timeout` share the same indices, the way
    Elasticsearch client views share one connection pool.

    Example:
        >>> store = InMemoryDocumentStore()
        >>> await store.create_index("ctia_indicator", {"number_of_replicas": 1})
        >>> await store.create("ctia_indicator", "indicator-1", {"id": "indicator-1"})
        >>> await store.count("ctia_indicator")
        1

    Attributes:
        timeout: Request timeout of this view (informational).
        bulk_requests: Number of documents sent in each bulk request.
        refreshes: Indices refreshed, in call order.
    """

    system = "memory"

    def __init__(
        self,
        *,
        timeout: float | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
        _state: _StoreState | None = None,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._state = _state or _StoreState()
        self.timeout = timeout

    @property
    def bulk_requests(self) -> list[int]:
        return self._state.bulk_requests

    @property
    def refreshes(self) -> list[str]:
        return self._state.refreshes

    def _attrs(self, operation: str, index: str) -> dict[str, Any]:
        return {ATTR_DB_SYSTEM: self.system, ATTR_DB_OPERATION: operation, ATTR_INDEX: index}

    def _get_index(self, operation: str, index: str) -> _Index:
        try:
            return self._state.indices[index]
        except KeyError:
            raise DocumentStoreError(operation, index, "no such index") from None

    def _ensure_index(self, index: str) -> _Index:
        if index not in self._state.indices:
            self._state.indices[index] = self._from_templates(index)
        return self._state.indices[index]

    def _from_templates(self, index: str) -> _Index:
        result = _Index()
        for template in self._state.templates.values():
            if any(fnmatch.fnmatch(index, p) for p in template["index_patterns"]):
                result.settings.update(copy.deepcopy(template.get("settings") or {}))
                _deep_merge(result.mappings, template.get("mappings") or {})
                result.aliases.update(copy.deepcopy(template.get("aliases") or {}))
        return result

    def _matches(self, doc: _Document, query: dict[str, Any] | None) -> bool:
        if not query:
            return True
        for kind, clause in query.items():
            if kind == "match_all":
                continue
            if kind == "range":
                for name, bounds in clause.items():
                    value = doc.field(name)
                    if value is None:
                        return False
                    for op, bound in bounds.items():
                        bound = _normalize(bound)
                        if op == "gte" and not value >= bound:
                            return False
                        if op == "gt" and not value > bound:
                            return False
                        if op == "lte" and not value <= bound:
                            return False
                        if op == "lt" and not value < bound:
                            return False
            elif kind == "term":
                for name, expected in clause.items():
                    if isinstance(expected, dict):
                        expected = expected.get("value")
                    if doc.field(name) != expected:
                        return False
            elif kind == "terms":
                for name, values in clause.items():
                    if doc.field(name) not in values:
                        return False
            elif kind == "ids":
                if doc.doc_id not in clause.get("values", []):
                    return False
            elif kind == "bool":
                if not self._matches_bool(doc, clause):
                    return False
            else:
                raise DocumentStoreError("search", "*", f"unsupported query clause {kind!r}")
        return True

    def _matches_bool(self, doc: _Document, clause: dict[str, Any]) -> bool:
        def as_list(value: Any) -> list[dict[str, Any]]:
            if value is None:
                return []
            return value if isinstance(value, list) else [value]

        required = as_list(clause.get("must")) + as_list(clause.get("filter"))
        if not all(self._matches(doc, q) for q in required):
            return False
        if any(self._matches(doc, q) for q in as_list(clause.get("must_not"))):
            return False
        should = as_list(clause.get("should"))
        return not should or any(self._matches(doc, q) for q in should)

    async def count(self, index: str, query: dict[str, Any] | None = None) -> int:
        with self._tracer.span("intelstore.memory_store.count", self._attrs("count", index)):
            idx = self._get_index("count", index)
            return sum(1 for doc in idx.docs.values() if self._matches(doc, query))

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
        with self._tracer.span("intelstore.memory_store.search", self._attrs("search", index)):
            idx = self._get_index("search", index)
            clauses = _parse_sort(sort)
            matched = [doc for doc in idx.docs.values() if self._matches(doc, query)]
            total = len(matched)

            def sort_values(doc: _Document) -> list[Any]:
                return [doc.field(name) for name, _ in clauses]

            def compare(a: list[Any], b: list[Any]) -> int:
                for (_, order), x, y in zip(clauses, a, b, strict=False):
                    result = _compare_values(x, y)
                    if result:
                        # missing values sort last in both directions
                        if x is None or y is None or order == "asc":
                            return result
                        return -result
                return 0

            if clauses:
                matched.sort(
                    key=functools.cmp_to_key(lambda a, b: compare(sort_values(a), sort_values(b)))
                )

            if search_after is not None and clauses:
                cursor = _normalize(list(search_after))
                matched = [doc for doc in matched if compare(sort_values(doc), cursor) > 0]
            elif offset:
                matched = matched[offset:]

            page = matched[:size]
            last_sort = sort_values(page[-1]) if page and clauses else None
            return SearchResult(
                data=[copy.deepcopy(doc.source) for doc in page],
                total=total,
                sort=last_sort,
            )

    async def bulk_create(
        self,
        actions: Sequence[BulkAction],
        *,
        refresh: bool = False,
        max_chunk_bytes: int,
    ) -> BulkResult:
        with self._tracer.span(
            "intelstore.memory_store.bulk_create",
            {ATTR_DB_SYSTEM: self.system, ATTR_DOCUMENT_COUNT: len(actions)},
        ):
            result = BulkResult()
            chunk_docs = 0
            chunk_bytes = 0
            async with self._state.lock:
                for action in actions:
                    source = _normalize(action.document)
                    size = len(json.dumps(source))
                    if chunk_docs and chunk_bytes + size > max_chunk_bytes:
                        self._state.bulk_requests.append(chunk_docs)
                        chunk_docs = 0
                        chunk_bytes = 0
                    chunk_docs += 1
                    chunk_bytes += size
                    idx = self._ensure_index(action.index)
                    idx.docs[action.doc_id] = _Document(action.doc_id, source, action.doc_type)
                    result.created += 1
                if chunk_docs:
                    self._state.bulk_requests.append(chunk_docs)
            return result

    async def delete(self, index: str, doc_id: str, *, refresh: bool = True) -> bool:
        with self._tracer.span("intelstore.memory_store.delete", self._attrs("delete", index)):
            async with self._state.lock:
                idx = self._state.indices.get(index)
                if idx is None or doc_id not in idx.docs:
                    return False
                del idx.docs[doc_id]
                return True

    async def index_exists(self, index: str) -> bool:
        return index in self._state.indices

    async def create_index(
        self,
        index: str,
        settings: dict[str, Any] | None = None,
        mappings: dict[str, Any] | None = None,
    ) -> None:
        with self._tracer.span(
            "intelstore.memory_store.create_index", self._attrs("create_index", index)
        ):
            async with self._state.lock:
                if index in self._state.indices:
                    raise DocumentStoreError("create_index", index, "resource_already_exists")
                idx = self._from_templates(index)
                idx.settings.update(_normalize(settings or {}))
                _deep_merge(idx.mappings, mappings or {})
                self._state.indices[index] = idx

    async def delete_index(self, index: str) -> None:
        async with self._state.lock:
            self._state.indices.pop(index, None)

    async def put_template(
        self,
        name: str,
        index_patterns: list[str],
        *,
        settings: dict[str, Any] | None = None,
        mappings: dict[str, Any] | None = None,
        aliases: dict[str, Any] | None = None,
    ) -> None:
        self._state.templates[name] = {
            "index_patterns": list(index_patterns),
            "settings": copy.deepcopy(settings or {}),
            "mappings": copy.deepcopy(mappings or {}),
            "aliases": copy.deepcopy(aliases or {}),
        }

    def get_template(self, name: str) -> dict[str, Any] | None:
        template = self._state.templates.get(name)
        return copy.deepcopy(template) if template is not None else None

    async def update_settings(self, index: str, settings: dict[str, Any]) -> None:
        with self._tracer.span(
            "intelstore.memory_store.update_settings", self._attrs("update_settings", index)
        ):
            async with self._state.lock:
                idx = self._get_index("update_settings", index)
                for key, value in _normalize(settings).items():
                    if value is None:
                        idx.settings.pop(key, None)
                    else:
                        idx.settings[key] = value

    async def get_settings(self, index: str) -> dict[str, Any]:
        return copy.deepcopy(self._get_index("get_settings", index).settings)

    async def refresh(self, index: str) -> None:
        self._get_index("refresh", index)
        self._state.refreshes.append(index)

    async def get(self, index: str, doc_id: str) -> dict[str, Any] | None:
        idx = self._state.indices.get(index)
        if idx is None or doc_id not in idx.docs:
            return None
        return copy.deepcopy(idx.docs[doc_id].source)

    async def create(
        self,
        index: str,
        doc_id: str,
        document: dict[str, Any],
        *,
        refresh: bool = True,
    ) -> None:
        async with self._state.lock:
            idx = self._ensure_index(index)
            idx.docs[doc_id] = _Document(doc_id, _normalize(document))

    async def update(
        self,
        index: str,
        doc_id: str,
        partial: dict[str, Any],
        *,
        refresh: bool = True,
    ) -> None:
        with self._tracer.span("intelstore.memory_store.update", self._attrs("update", index)):
            async with self._state.lock:
                idx = self._state.indices.get(index)
                if idx is None or doc_id not in idx.docs:
                    raise DocumentStoreError("update", index, f"document missing: {doc_id}")
                _deep_merge(idx.docs[doc_id].source, _normalize(partial))

    def with_timeout(self, seconds: float) -> InMemoryDocumentStore:
        return InMemoryDocumentStore(
            timeout=seconds,
            tracer=self._tracer,
            _state=self._state,
        )


__all__ = ["InMemoryDocumentStore"]
