"""
Unit tests for ElasticsearchDocumentStore.

The async client is mocked; these tests check the requests sent to it and
how responses are mapped back.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from elasticsearch import NotFoundError

from intelstore.config import ElasticsearchConfig, MigrationConfig
from intelstore.migration.pipeline import sort_by
from intelstore.observability import MockTracer
from intelstore.stores.elasticsearch import UPDATE_RETRY_ON_CONFLICT, ElasticsearchDocumentStore
from intelstore.stores.interface import BulkAction


def not_found() -> NotFoundError:
    return NotFoundError("not_found", meta=MagicMock(status=404), body={"found": False})


@pytest.fixture
def client() -> MagicMock:
    client = MagicMock()
    client.count = AsyncMock(return_value={"count": 42})
    client.search = AsyncMock()
    client.delete = AsyncMock()
    client.get = AsyncMock()
    client.index = AsyncMock()
    client.update = AsyncMock()
    client.close = AsyncMock()
    client.indices = MagicMock()
    client.indices.exists = AsyncMock(return_value=True)
    client.indices.create = AsyncMock()
    client.indices.delete = AsyncMock()
    client.indices.put_index_template = AsyncMock()
    client.indices.put_settings = AsyncMock()
    client.indices.get_settings = AsyncMock()
    client.indices.refresh = AsyncMock()
    return client


@pytest.fixture
def store(client: MagicMock) -> ElasticsearchDocumentStore:
    return ElasticsearchDocumentStore(client, enable_tracing=False)


class TestSearch:
    """Tests for count() and search()."""

    @pytest.mark.asyncio
    async def test_count(self, store: ElasticsearchDocumentStore, client: MagicMock) -> None:
        assert await store.count("ctia_indicator") == 42
        client.count.assert_awaited_once_with(index="ctia_indicator")

    @pytest.mark.asyncio
    async def test_count_with_query(
        self, store: ElasticsearchDocumentStore, client: MagicMock
    ) -> None:
        query = {"term": {"event_type": "record-deleted"}}

        await store.count("ctia_event", query)

        client.count.assert_awaited_once_with(index="ctia_event", query=query)

    @pytest.mark.asyncio
    async def test_search_with_cursor(
        self, store: ElasticsearchDocumentStore, client: MagicMock
    ) -> None:
        client.search.return_value = {
            "hits": {
                "total": {"value": 2, "relation": "eq"},
                "hits": [
                    {"_source": {"id": "a"}, "sort": [1, "a"]},
                    {"_source": {"id": "b"}, "sort": [2, "b"]},
                ],
            }
        }
        sort = [{"modified": "asc"}, {"id": "asc"}]

        page = await store.search(
            "ctia_indicator", sort=sort, size=2, offset=5, search_after=[0, "z"]
        )

        assert page.data == [{"id": "a"}, {"id": "b"}]
        assert page.total == 2
        assert page.sort == [2, "b"]
        client.search.assert_awaited_once_with(
            index="ctia_indicator",
            size=2,
            track_total_hits=True,
            sort=sort,
            search_after=[0, "z"],
        )

    @pytest.mark.asyncio
    async def test_default_tiebreak_sorts_on_id(
        self, store: ElasticsearchDocumentStore, client: MagicMock
    ) -> None:
        client.search.return_value = {"hits": {"total": 0, "hits": []}}
        sort = sort_by("indicator", "asc", MigrationConfig().tiebreak_field)

        await store.search("ctia_indicator", sort=sort, size=100)

        client.search.assert_awaited_once_with(
            index="ctia_indicator",
            size=100,
            track_total_hits=True,
            sort=[{"modified": "asc"}, {"created": "asc"}, {"id": "asc"}],
        )
        assert sort[-1] == {"_uid": "asc"}

    @pytest.mark.asyncio
    async def test_search_with_offset(
        self, store: ElasticsearchDocumentStore, client: MagicMock
    ) -> None:
        client.search.return_value = {"hits": {"total": 0, "hits": []}}

        page = await store.search("ctia_indicator", {"match_all": {}}, size=10, offset=20)

        assert page.data == []
        assert page.sort is None
        assert page.total == 0
        client.search.assert_awaited_once_with(
            index="ctia_indicator",
            size=10,
            track_total_hits=True,
            query={"match_all": {}},
            from_=20,
        )


class TestBulkCreate:
    """Tests for bulk_create()."""

    @pytest.mark.asyncio
    async def test_uses_index_op_with_explicit_ids(
        self, store: ElasticsearchDocumentStore, client: MagicMock
    ) -> None:
        actions = [
            BulkAction("v2_ctia_indicator", "indicator-1", {"id": "indicator-1"}, "indicator"),
            BulkAction("v2_ctia_indicator", "indicator-2", {"id": "indicator-2"}, "indicator"),
        ]
        with patch(
            "intelstore.stores.elasticsearch.async_bulk",
            AsyncMock(return_value=(2, [])),
        ) as bulk:
            result = await store.bulk_create(actions, max_chunk_bytes=1024)

        assert result.created == 2
        assert result.success
        sent = bulk.await_args.args[1]
        assert sent[0] == {
            "_op_type": "index",
            "_index": "v2_ctia_indicator",
            "_id": "indicator-1",
            "_source": {"id": "indicator-1"},
        }
        assert "_type" not in sent[0]
        assert bulk.await_args.kwargs["max_chunk_bytes"] == 1024
        assert bulk.await_args.kwargs["refresh"] is False
        assert bulk.await_args.kwargs["raise_on_error"] is False

    @pytest.mark.asyncio
    async def test_rejected_documents_become_markers(
        self, store: ElasticsearchDocumentStore
    ) -> None:
        errors = [
            {
                "index": {
                    "_id": "indicator-2",
                    "status": 400,
                    "error": {"type": "mapper_parsing_exception"},
                }
            }
        ]
        with patch(
            "intelstore.stores.elasticsearch.async_bulk",
            AsyncMock(return_value=(1, errors)),
        ):
            result = await store.bulk_create(
                [BulkAction("idx", "indicator-2", {"id": "indicator-2"})],
                max_chunk_bytes=1024,
            )

        assert result.created == 1
        assert not result.success
        assert result.errors == [
            {"id": "indicator-2", "error": {"type": "mapper_parsing_exception"}}
        ]


class TestDocuments:
    """Tests for single document operations."""

    @pytest.mark.asyncio
    async def test_get(self, store: ElasticsearchDocumentStore, client: MagicMock) -> None:
        client.get.return_value = {"_id": "m", "_source": {"id": "m"}}

        assert await store.get("intelstore_migration", "m") == {"id": "m"}

    @pytest.mark.asyncio
    async def test_get_missing(self, store: ElasticsearchDocumentStore, client: MagicMock) -> None:
        client.get.side_effect = not_found()

        assert await store.get("intelstore_migration", "missing") is None

    @pytest.mark.asyncio
    async def test_delete_missing(
        self, store: ElasticsearchDocumentStore, client: MagicMock
    ) -> None:
        client.delete.side_effect = not_found()

        assert await store.delete("ctia_indicator", "missing") is False

    @pytest.mark.asyncio
    async def test_delete(self, store: ElasticsearchDocumentStore, client: MagicMock) -> None:
        assert await store.delete("ctia_indicator", "indicator-1") is True
        client.delete.assert_awaited_once_with(
            index="ctia_indicator", id="indicator-1", refresh=True
        )

    @pytest.mark.asyncio
    async def test_create(self, store: ElasticsearchDocumentStore, client: MagicMock) -> None:
        await store.create("intelstore_migration", "m", {"id": "m"})

        client.index.assert_awaited_once_with(
            index="intelstore_migration", id="m", document={"id": "m"}, refresh=True
        )

    @pytest.mark.asyncio
    async def test_update_is_partial(
        self, store: ElasticsearchDocumentStore, client: MagicMock
    ) -> None:
        partial = {"stores": {"indicator": {"target": {"migrated": 10}}}}

        await store.update("intelstore_migration", "m", partial)

        client.update.assert_awaited_once_with(
            index="intelstore_migration",
            id="m",
            doc=partial,
            refresh=True,
            retry_on_conflict=UPDATE_RETRY_ON_CONFLICT,
        )


class TestIndexAdministration:
    """Tests for index, template and settings operations."""

    @pytest.mark.asyncio
    async def test_create_index(
        self, store: ElasticsearchDocumentStore, client: MagicMock
    ) -> None:
        await store.create_index("v2_ctia_indicator", {"number_of_replicas": 0})

        client.indices.create.assert_awaited_once_with(
            index="v2_ctia_indicator", settings={"number_of_replicas": 0}
        )

    @pytest.mark.asyncio
    async def test_delete_index_ignores_missing(
        self, store: ElasticsearchDocumentStore, client: MagicMock
    ) -> None:
        await store.delete_index("v2_ctia_indicator")

        client.indices.delete.assert_awaited_once_with(
            index="v2_ctia_indicator", ignore_unavailable=True
        )

    @pytest.mark.asyncio
    async def test_put_template(
        self, store: ElasticsearchDocumentStore, client: MagicMock
    ) -> None:
        await store.put_template(
            "v2_ctia_indicator",
            ["v2_ctia_indicator*"],
            settings={"number_of_shards": 5},
            aliases={"ctia_indicator_read": {}},
        )

        client.indices.put_index_template.assert_awaited_once_with(
            name="v2_ctia_indicator",
            index_patterns=["v2_ctia_indicator*"],
            template={
                "settings": {"number_of_shards": 5},
                "aliases": {"ctia_indicator_read": {}},
            },
        )

    @pytest.mark.asyncio
    async def test_settings(self, store: ElasticsearchDocumentStore, client: MagicMock) -> None:
        client.indices.get_settings.return_value = {
            "v2_ctia_indicator": {"settings": {"index": {"refresh_interval": "-1"}}}
        }

        await store.update_settings("v2_ctia_indicator", {"refresh_interval": "1s"})
        settings = await store.get_settings("v2_ctia_indicator")
        await store.refresh("v2_ctia_indicator")

        client.indices.put_settings.assert_awaited_once_with(
            index="v2_ctia_indicator", settings={"refresh_interval": "1s"}
        )
        assert settings == {"refresh_interval": "-1"}
        client.indices.refresh.assert_awaited_once_with(index="v2_ctia_indicator")


class TestLifecycle:
    """Tests for views, construction and closing."""

    def test_from_config(self) -> None:
        config = ElasticsearchConfig(
            hosts=("http://es1:9200", "http://es2:9200"),
            username="elastic",
            password="changeme",
            request_timeout=10,
        )
        with patch("intelstore.stores.elasticsearch.AsyncElasticsearch") as client_cls:
            store = ElasticsearchDocumentStore.from_config(config, enable_tracing=False)

        client_cls.assert_called_once_with(
            hosts=["http://es1:9200", "http://es2:9200"],
            basic_auth=("elastic", "changeme"),
            verify_certs=True,
            request_timeout=10,
        )
        assert store.client is client_cls.return_value

    @pytest.mark.asyncio
    async def test_view_does_not_close_client(
        self, store: ElasticsearchDocumentStore, client: MagicMock
    ) -> None:
        view = store.with_timeout(300)

        await view.close()
        client.close.assert_not_awaited()
        client.options.assert_called_once_with(request_timeout=300)

        await store.close()
        client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_spans(self, client: MagicMock) -> None:
        tracer = MockTracer()
        store = ElasticsearchDocumentStore(client, tracer=tracer)

        await store.count("ctia_indicator")

        assert tracer.spans == [
            (
                "intelstore.es_store.count",
                {
                    "db.system": "elasticsearch",
                    "db.operation": "count",
                    "intelstore.index": "ctia_indicator",
                },
            )
        ]
