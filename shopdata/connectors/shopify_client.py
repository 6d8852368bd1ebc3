"""
Shopify Admin GraphQL Client

Thin async transport over httpx. `post()` is the single request primitive used
by pagination, secondary batching and schema introspection.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from shopdata.config import settings
from shopdata.core.errors import (
    GraphQLResponseError,
    MissingCredentialsError,
    ProviderHTTPError,
    ProviderResponseError,
    ProviderTransportError,
)

logger = logging.getLogger(__name__)

ApiCallCallback = Callable[[], None]


class ShopifyConfig(BaseModel):
    """Credential/config record of a Shopify source."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    store_name: str = Field(..., alias="storeName")
    access_token: str = Field(..., alias="accessToken", repr=False)
    api_version: str = Field(
        default_factory=lambda: settings.SHOPIFY_DEFAULT_API_VERSION,
        alias="apiVersion",
    )

    @field_validator("store_name")
    @classmethod
    def _normalize_store(cls, v: str) -> str:
        # Accept "acme", "acme.myshopify.com" or "https://acme.myshopify.com/".
        domain = v.strip().replace("https://", "").replace("http://", "").rstrip("/")
        if domain.endswith(".myshopify.com"):
            domain = domain[: -len(".myshopify.com")]
        return domain

    @field_validator("api_version", mode="before")
    @classmethod
    def _default_version(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return settings.SHOPIFY_DEFAULT_API_VERSION
        return v

    @classmethod
    def from_source_config(
        cls, config: dict[str, Any], *, api_version: str | None = None
    ) -> "ShopifyConfig":
        """
        Build from a stored source config, raising MissingCredentialsError
        instead of a pydantic error when storeName/accessToken are absent.
        """
        store = config.get("storeName") or config.get("store_name")
        token = config.get("accessToken") or config.get("access_token")
        missing = [
            name
            for name, value in (("storeName", store), ("accessToken", token))
            if not value
        ]
        if missing:
            raise MissingCredentialsError(
                f"Missing Shopify credentials: {', '.join(missing)}"
            )
        version = (
            api_version or config.get("apiVersion") or config.get("api_version")
        )
        return cls(storeName=store, accessToken=token, apiVersion=version)

    @property
    def shop_domain(self) -> str:
        return f"{self.store_name}.myshopify.com"

    @property
    def graphql_endpoint(self) -> str:
        return f"https://{self.shop_domain}/admin/api/{self.api_version}/graphql.json"

    @property
    def versions_endpoint(self) -> str:
        return f"https://{self.shop_domain}/admin/api/versions"


class ApiCallCounter:
    """Counts request attempts, including ones that fail."""

    def __init__(self) -> None:
        self.count = 0

    def __call__(self) -> None:
        self.count += 1


def _auth_headers(config: ShopifyConfig) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "X-Shopify-Access-Token": config.access_token,
    }


class ShopifyGraphQLClient:
    """
    One client per execution. Requests are issued strictly sequentially by
    callers; the client itself holds no cursor state.
    """

    def __init__(
        self,
        config: ShopifyConfig,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        on_api_call: Optional[ApiCallCallback] = None,
        timeout: Optional[float] = None,
    ):
        self.config = config
        self.on_api_call = on_api_call
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=timeout or settings.SHOPIFY_REQUEST_TIMEOUT_SECONDS,
        )

    @property
    def endpoint(self) -> str:
        return self.config.graphql_endpoint

    async def __aenter__(self) -> "ShopifyGraphQLClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def post(
        self, query: str, variables: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        """
        Issue one GraphQL request and return its `data` object.

        Raises:
            ProviderTransportError: network failure
            ProviderHTTPError: non-2xx status (body truncated to 200 chars)
            ProviderResponseError: 2xx body that is not a JSON object
            GraphQLResponseError: `errors[]` in the response
        """
        if self.on_api_call is not None:
            self.on_api_call()

        payload: dict[str, Any] = {"query": query, "variables": variables or {}}
        try:
            response = await self._client.post(
                self.endpoint, json=payload, headers=_auth_headers(self.config)
            )
        except httpx.TransportError as e:
            logger.error("Shopify request to %s failed: %s", self.config.shop_domain, e)
            raise ProviderTransportError(f"Shopify request failed: {e}") from e

        if not response.is_success:
            logger.error(
                "Shopify API error %s from %s: %s",
                response.status_code,
                self.config.shop_domain,
                response.text,
            )
            raise ProviderHTTPError(response.status_code, response.text)

        try:
            body = response.json()
        except ValueError as e:
            logger.error(
                "Non-JSON response from %s: %s", self.config.shop_domain, response.text[:200]
            )
            raise ProviderResponseError("not JSON", response.text) from e
        if not isinstance(body, dict):
            logger.error(
                "Unexpected %s body from %s", type(body).__name__, self.config.shop_domain
            )
            raise ProviderResponseError(
                f"expected an object, got {type(body).__name__}", response.text
            )

        errors = body.get("errors")
        if errors:
            logger.error("GraphQL errors from %s: %s", self.config.shop_domain, errors)
            raise GraphQLResponseError(errors if isinstance(errors, list) else [errors])

        return body.get("data") or {}


async def detect_latest_api_version(
    config: ShopifyConfig,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
) -> str:
    """
    Ask the store which Admin API versions it supports and return the newest.

    Falls back to SHOPIFY_DEFAULT_API_VERSION when the store does not answer
    or lists nothing.
    """
    client = http_client or httpx.AsyncClient(
        timeout=settings.SHOPIFY_REQUEST_TIMEOUT_SECONDS
    )
    try:
        response = await client.get(
            config.versions_endpoint, headers=_auth_headers(config)
        )
        if not response.is_success:
            logger.warning(
                "Version detection for %s returned %s, using default %s",
                config.shop_domain,
                response.status_code,
                settings.SHOPIFY_DEFAULT_API_VERSION,
            )
            return settings.SHOPIFY_DEFAULT_API_VERSION

        body = response.json()
        listed = body.get("supported_versions", []) if isinstance(body, dict) else []
        handles = [
            v.get("handle")
            for v in listed
            if isinstance(v, dict) and isinstance(v.get("handle"), str)
        ]
        # Handles are YYYY-MM (plus "unstable"); keep dated ones only.
        dated = sorted((h for h in handles if h[:4].isdigit()), reverse=True)
        if not dated:
            return settings.SHOPIFY_DEFAULT_API_VERSION
        return dated[0]
    except (httpx.TransportError, ValueError) as e:
        logger.warning(
            "Version detection for %s failed (%s), using default %s",
            config.shop_domain,
            e,
            settings.SHOPIFY_DEFAULT_API_VERSION,
        )
        return settings.SHOPIFY_DEFAULT_API_VERSION
    finally:
        if http_client is None:
            await client.aclose()
