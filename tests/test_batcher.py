"""
Tests for secondary query batching.
"""

import json
import re

import pytest

from fakes import ScriptedGraphQLClient
from shopdata.core.batcher import chunked, render_batch_query, run_batched
from shopdata.core.errors import ProviderTransportError, ValidationError

TEMPLATE = "{ nodes(ids: {{IDS}}) { ... on Product { primaryId: id title } } }"


def _ids_in(query: str) -> list[str]:
    match = re.search(r"ids: (\[.*?\])", query)
    assert match is not None
    return json.loads(match.group(1))


def _echo_nodes(query, variables):
    return {"nodes": [{"primaryId": i} for i in _ids_in(query)]}


class TestChunking:
    def test_chunked(self):
        assert list(chunked(["a", "b", "c", "d", "e"], 2)) == [["a", "b"], ["c", "d"], ["e"]]

    def test_render_inlines_ids_as_json(self):
        query = render_batch_query(TEMPLATE, ['gid://shopify/Product/1', 'q"uote'])

        assert "{{IDS}}" not in query
        assert _ids_in(query) == ["gid://shopify/Product/1", 'q"uote']


class TestRunBatched:
    @pytest.mark.asyncio
    async def test_one_request_per_batch(self):
        ids = [f"gid://shopify/Product/{i}" for i in range(120)]
        client = ScriptedGraphQLClient(_echo_nodes)

        rows = await run_batched(client, TEMPLATE, ids, batch_size=50, delay_seconds=0)

        assert [len(_ids_in(q)) for q, _ in client.calls] == [50, 50, 20]
        assert [r["primaryId"] for r in rows] == ids

    @pytest.mark.asyncio
    async def test_unresolved_ids_are_dropped(self):
        client = ScriptedGraphQLClient(lambda q, v: {"nodes": [{"primaryId": "a"}, None]})

        rows = await run_batched(client, TEMPLATE, ["a", "b"], delay_seconds=0)

        assert rows == [{"primaryId": "a"}]

    @pytest.mark.asyncio
    async def test_empty_batch_response_is_skipped(self):
        responses = iter([{}, {"nodes": [{"primaryId": "c"}]}])
        client = ScriptedGraphQLClient(lambda q, v: next(responses))

        rows = await run_batched(
            client, TEMPLATE, ["a", "b", "c"], batch_size=2, delay_seconds=0
        )

        assert rows == [{"primaryId": "c"}]

    @pytest.mark.asyncio
    async def test_nodes_under_root_object(self):
        client = ScriptedGraphQLClient(
            lambda q, v: {"shop": {"nodes": [{"primaryId": "x"}]}}
        )

        rows = await run_batched(client, TEMPLATE, ["x"], delay_seconds=0)

        assert rows == [{"primaryId": "x"}]

    @pytest.mark.asyncio
    async def test_no_ids_makes_no_requests(self):
        client = ScriptedGraphQLClient(_echo_nodes)

        assert await run_batched(client, TEMPLATE, [], delay_seconds=0) == []
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_batch_error_aborts(self):
        calls = {"n": 0}

        def respond(query, variables):
            calls["n"] += 1
            if calls["n"] == 2:
                return ProviderTransportError("reset by peer")
            return _echo_nodes(query, variables)

        client = ScriptedGraphQLClient(respond)

        with pytest.raises(ProviderTransportError):
            await run_batched(client, TEMPLATE, ["a", "b", "c"], batch_size=1, delay_seconds=0)
        assert len(client.calls) == 2

    @pytest.mark.asyncio
    async def test_template_without_placeholder(self):
        client = ScriptedGraphQLClient(_echo_nodes)

        with pytest.raises(ValidationError):
            await run_batched(client, "{ nodes(ids: []) { id } }", ["a"])

    @pytest.mark.asyncio
    async def test_non_positive_batch_size(self):
        client = ScriptedGraphQLClient(_echo_nodes)

        with pytest.raises(ValidationError):
            await run_batched(client, TEMPLATE, ["a"], batch_size=0)
