"""
Tests for the Shopify Admin GraphQL transport.
"""

import json

import httpx
import pytest

from fakes import SOURCE_CONFIG, mock_shopify_client
from shopdata.connectors.shopify_client import (
    ApiCallCounter,
    ShopifyConfig,
    detect_latest_api_version,
)
from shopdata.core.errors import (
    GraphQLResponseError,
    MissingCredentialsError,
    ProviderError,
    ProviderHTTPError,
    ProviderResponseError,
    ProviderTransportError,
)


class TestShopifyConfig:
    @pytest.mark.parametrize(
        "store",
        ["acme", "acme.myshopify.com", "https://acme.myshopify.com/", " acme "],
    )
    def test_store_name_is_normalized(self, store):
        config = ShopifyConfig.from_source_config({"storeName": store, "accessToken": "t"})

        assert config.store_name == "acme"
        assert config.shop_domain == "acme.myshopify.com"

    def test_endpoint(self):
        config = ShopifyConfig.from_source_config(SOURCE_CONFIG)

        assert config.graphql_endpoint == (
            "https://acme.myshopify.com/admin/api/2025-01/graphql.json"
        )

    def test_explicit_version_wins(self):
        config = ShopifyConfig.from_source_config(SOURCE_CONFIG, api_version="2025-04")

        assert config.api_version == "2025-04"

    def test_blank_version_uses_default(self):
        config = ShopifyConfig.from_source_config(
            {"storeName": "acme", "accessToken": "t", "apiVersion": " "}
        )

        assert config.api_version == "2025-01"

    def test_snake_case_keys(self):
        config = ShopifyConfig.from_source_config({"store_name": "acme", "access_token": "t"})

        assert config.access_token == "t"

    def test_missing_credentials(self):
        with pytest.raises(MissingCredentialsError, match="storeName, accessToken"):
            ShopifyConfig.from_source_config({})

    def test_token_not_in_repr(self):
        assert "shpat_test" not in repr(ShopifyConfig.from_source_config(SOURCE_CONFIG))


class TestPost:
    @pytest.mark.asyncio
    async def test_returns_data(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"data": {"shop": {"name": "Acme"}}})

        counter = ApiCallCounter()
        async with mock_shopify_client(handler, on_api_call=counter) as client:
            data = await client.post("{ shop { name } }", {"a": 1})

        request = seen[0]
        assert data == {"shop": {"name": "Acme"}}
        assert str(request.url) == "https://acme.myshopify.com/admin/api/2025-01/graphql.json"
        assert request.headers["X-Shopify-Access-Token"] == "shpat_test"
        assert json.loads(request.content) == {"query": "{ shop { name } }", "variables": {"a": 1}}
        assert counter.count == 1

    @pytest.mark.asyncio
    async def test_http_error_body_is_truncated(self):
        client = mock_shopify_client(lambda r: httpx.Response(500, text="x" * 500))

        with pytest.raises(ProviderHTTPError) as exc_info:
            await client.post("{ shop { name } }")

        assert exc_info.value.status_code == 500
        assert len(exc_info.value.body) == 200
        assert str(exc_info.value).startswith("Shopify API error: 500 ")

    @pytest.mark.asyncio
    async def test_graphql_errors(self):
        body = {"errors": [{"message": "Throttled"}], "data": None}
        client = mock_shopify_client(lambda r: httpx.Response(200, json=body))

        with pytest.raises(GraphQLResponseError, match="Throttled"):
            await client.post("{ shop { name } }")

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        counter = ApiCallCounter()
        client = mock_shopify_client(handler, on_api_call=counter)

        with pytest.raises(ProviderTransportError):
            await client.post("{ shop { name } }")
        assert counter.count == 1

    @pytest.mark.asyncio
    async def test_non_json_body_is_a_provider_error(self):
        client = mock_shopify_client(
            lambda r: httpx.Response(200, text="<html>" + "maintenance " * 40 + "</html>")
        )

        with pytest.raises(ProviderResponseError, match="not JSON") as exc_info:
            await client.post("{ shop { name } }")

        assert isinstance(exc_info.value, ProviderError)
        assert exc_info.value.body.startswith("<html>maintenance")
        assert len(exc_info.value.body) == 200

    @pytest.mark.asyncio
    async def test_json_array_body_is_a_provider_error(self):
        client = mock_shopify_client(lambda r: httpx.Response(200, json=[{"x": 1}]))

        with pytest.raises(ProviderResponseError, match="got list"):
            await client.post("{ shop { name } }")

    @pytest.mark.asyncio
    async def test_missing_data_is_empty(self):
        client = mock_shopify_client(lambda r: httpx.Response(200, json={}))

        assert await client.post("{ shop { name } }") == {}


class TestDetectLatestApiVersion:
    @pytest.fixture
    def config(self):
        return ShopifyConfig.from_source_config(SOURCE_CONFIG)

    @pytest.mark.asyncio
    async def test_newest_dated_version(self, config):
        versions = {
            "supported_versions": [
                {"handle": "2024-10"},
                {"handle": "2025-04"},
                {"handle": "unstable"},
                {"handle": "2025-01"},
            ]
        }
        http = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json=versions))
        )

        assert await detect_latest_api_version(config, http_client=http) == "2025-04"

    @pytest.mark.asyncio
    async def test_falls_back_on_error_status(self, config):
        http = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(403)))

        assert await detect_latest_api_version(config, http_client=http) == "2025-01"

    @pytest.mark.asyncio
    async def test_falls_back_on_non_json_body(self, config):
        http = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, text="<html>"))
        )

        assert await detect_latest_api_version(config, http_client=http) == "2025-01"

    @pytest.mark.asyncio
    async def test_falls_back_on_transport_error(self, config):
        def handler(request):
            raise httpx.ConnectTimeout("timeout", request=request)

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        assert await detect_latest_api_version(config, http_client=http) == "2025-01"
