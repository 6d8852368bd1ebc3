"""
HTTP client for the execution endpoints.

Used by scripts and by `PreviewPoller` when polling a running service rather
than reading Postgres in-process.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from shopdata.config import settings
from shopdata.core.errors import AuthenticationRequiredError
from shopdata.models import PreviewData, ResetResult

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"


class PreviewApiClient:
    def __init__(
        self,
        base_url: str,
        user_id: str,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        limit: Optional[int] = None,
        check_status: bool = True,
    ):
        self.base_url = base_url.rstrip("/")
        self.user_id = user_id
        self.limit = limit
        self.check_status = check_status
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=settings.SHOPIFY_REQUEST_TIMEOUT_SECONDS
        )

    async def __aenter__(self) -> "PreviewApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._client.request(
            method,
            f"{self.base_url}{path}",
            headers={USER_HEADER: self.user_id},
            **kwargs,
        )
        if response.status_code == 401:
            raise AuthenticationRequiredError("Authentication required")
        response.raise_for_status()
        return response.json()

    async def execute(self, dataset_id: str) -> str:
        """Trigger an execution and return its id."""
        body = await self._request(
            "POST", "/api/datasets/execute", json={"datasetId": dataset_id}
        )
        return body["executionId"]

    async def fetch_preview(self, execution_id: str) -> PreviewData:
        params: dict[str, Any] = {"checkStatus": str(self.check_status).lower()}
        if self.limit is not None:
            params["limit"] = self.limit
        body = await self._request(
            "GET", f"/api/executions/{execution_id}/preview", params=params
        )
        return PreviewData.model_validate(body)

    async def reset_stuck(
        self,
        *,
        dataset_id: Optional[str] = None,
        execution_id: Optional[str] = None,
    ) -> ResetResult:
        """
        Reset one execution, or every stuck execution of a dataset.

        Exactly one of `dataset_id` / `execution_id` must be given.
        """
        if (dataset_id is None) == (execution_id is None):
            raise ValueError("Pass exactly one of dataset_id or execution_id")

        if dataset_id is not None:
            body = await self._request("POST", f"/api/datasets/{dataset_id}/reset-stuck")
            return ResetResult.model_validate(body)

        body = await self._request("POST", f"/api/executions/{execution_id}/reset")
        if not body.get("success"):
            logger.info("Execution %s was not reset: %s", execution_id, body.get("message"))
            return ResetResult()
        return ResetResult(reset_count=1, reset_ids=[execution_id])
