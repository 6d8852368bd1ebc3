"""
Tests for the cursor pagination executor.
"""

from unittest.mock import AsyncMock, patch

import pytest

from fakes import ScriptedGraphQLClient, connection_page, pages_responder
from shopdata.config import settings
from shopdata.core.errors import (
    ConnectionNotFoundError,
    ProviderHTTPError,
    ValidationError,
)
from shopdata.core.pagination import find_connection, locate_connection, paginate

QUERY = "{ products { edges { node { id } } pageInfo { hasNextPage endCursor } } }"


def _nodes(start: int, count: int) -> list[dict]:
    return [{"id": f"gid://shopify/Product/{i}"} for i in range(start, start + count)]


class TestPaginate:
    @pytest.mark.asyncio
    async def test_follows_cursors_until_last_page(self):
        client = ScriptedGraphQLClient(
            pages_responder("products", [_nodes(1, 2), _nodes(3, 2), _nodes(5, 1)])
        )

        items = await paginate(client, QUERY, connection_field="products", delay_seconds=0)

        assert [i["id"] for i in items] == [
            f"gid://shopify/Product/{i}" for i in range(1, 6)
        ]
        assert [v["after"] for _, v in client.calls] == [None, "p1", "p2"]

    @pytest.mark.asyncio
    async def test_sends_rewritten_query(self):
        client = ScriptedGraphQLClient(pages_responder("products", [_nodes(1, 1)]))

        await paginate(client, QUERY, delay_seconds=0)

        sent_query, variables = client.calls[0]
        assert "first: $first" in sent_query
        assert variables["first"] == settings.SHOPIFY_MAX_PAGE_SIZE

    @pytest.mark.asyncio
    async def test_max_items_caps_page_size_and_result(self):
        client = ScriptedGraphQLClient(
            pages_responder("products", [_nodes(1, 2), _nodes(3, 2), _nodes(5, 2)])
        )

        items = await paginate(client, QUERY, max_items=3, delay_seconds=0)

        assert len(items) == 3
        assert [v["first"] for _, v in client.calls] == [3, 1]

    @pytest.mark.asyncio
    async def test_page_size_never_exceeds_provider_limit(self, monkeypatch):
        monkeypatch.setattr(settings, "SHOPIFY_MAX_PAGE_SIZE", 2)
        client = ScriptedGraphQLClient(
            pages_responder("products", [_nodes(1, 2), _nodes(3, 2), _nodes(5, 2)])
        )

        items = await paginate(client, QUERY, max_items=5, delay_seconds=0)

        assert len(items) == 5
        assert [v["first"] for _, v in client.calls] == [2, 2, 1]

    @pytest.mark.asyncio
    async def test_extra_variables_are_sent_with_every_page(self):
        query = """
        query ($q: String) {
          orders(query: $q) { edges { node { id } } pageInfo { hasNextPage endCursor } }
        }
        """
        client = ScriptedGraphQLClient(pages_responder("orders", [_nodes(1, 1), _nodes(2, 1)]))

        await paginate(client, query, {"q": "status:open"}, delay_seconds=0)

        assert all(v["q"] == "status:open" for _, v in client.calls)

    @pytest.mark.asyncio
    async def test_literal_first_is_not_overridden(self):
        query = "{ products(first: 5) { edges { node { id } } pageInfo { hasNextPage endCursor } } }"
        client = ScriptedGraphQLClient(pages_responder("products", [_nodes(1, 1)]))

        await paginate(client, query, delay_seconds=0)

        assert "first" not in client.calls[0][1]

    @pytest.mark.asyncio
    async def test_has_next_without_cursor_stops(self):
        client = ScriptedGraphQLClient(
            lambda q, v: connection_page("products", _nodes(1, 2), has_next=True, cursor=None)
        )

        items = await paginate(client, QUERY, delay_seconds=0)

        assert len(items) == 2
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_null_nodes_are_skipped(self):
        page = connection_page("products", _nodes(1, 2))
        page["products"]["edges"].append({"cursor": "x", "node": None})
        client = ScriptedGraphQLClient(lambda q, v: page)

        items = await paginate(client, QUERY, delay_seconds=0)

        assert len(items) == 2

    @pytest.mark.asyncio
    async def test_provider_error_aborts_without_partial_result(self):
        def respond(query, variables):
            if variables.get("after") == "p1":
                return ProviderHTTPError(500, "boom")
            return connection_page("products", _nodes(1, 2), has_next=True, cursor="p1")

        client = ScriptedGraphQLClient(respond)

        with pytest.raises(ProviderHTTPError):
            await paginate(client, QUERY, delay_seconds=0)
        assert len(client.calls) == 2

    @pytest.mark.asyncio
    async def test_response_without_connection(self):
        client = ScriptedGraphQLClient(lambda q, v: {"products": {"nodes": []}})

        with pytest.raises(ConnectionNotFoundError):
            await paginate(client, QUERY, delay_seconds=0)

    @pytest.mark.asyncio
    async def test_non_positive_max_items(self):
        client = ScriptedGraphQLClient(pages_responder("products", [[]]))

        with pytest.raises(ValidationError):
            await paginate(client, QUERY, max_items=0)
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_pauses_between_pages_only(self):
        client = ScriptedGraphQLClient(
            pages_responder("products", [_nodes(1, 1), _nodes(2, 1), _nodes(3, 1)])
        )

        with patch(
            "shopdata.core.pagination.asyncio.sleep", new_callable=AsyncMock
        ) as sleep:
            await paginate(client, QUERY, delay_seconds=0.25)

        assert sleep.await_count == 2
        sleep.assert_awaited_with(0.25)


class TestLocateConnection:
    def test_follows_known_path(self):
        data = {"shop": {"products": {"edges": [], "pageInfo": {}}}}

        assert locate_connection(data, ("shop", "products")) is data["shop"]["products"]

    def test_falls_back_to_named_field(self):
        data = {"products": {"edges": [], "pageInfo": {}}}

        assert locate_connection(data, ("missing",), "products") is data["products"]

    def test_depth_first_scan(self):
        inner = {"edges": [], "pageInfo": {}}
        data = {"a": [{"b": 1}, {"c": inner}]}

        assert find_connection(data) is inner
        assert locate_connection(data) is inner

    def test_nothing_found(self):
        with pytest.raises(ConnectionNotFoundError):
            locate_connection({"products": []})
