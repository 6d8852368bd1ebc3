"""
Tests for the dataset, execution and source HTTP routes.

Services are patched at the route module, so no database or Shopify store is
involved.
"""

from unittest.mock import AsyncMock, patch

from shopdata.core.errors import (
    DatasetNotFoundError,
    ExecutionConflictError,
    ExecutionNotFoundError,
    MissingCredentialsError,
    PreviewUnavailableError,
    ProviderHTTPError,
    SchemaAccessDeniedError,
    SourceNotFoundError,
    UnsupportedExportFormatError,
    ValidationError,
)
from shopdata.models import (
    DataSource,
    ExecutionDetails,
    ExecutionSummary,
    PreviewData,
    PreviewDataset,
    PreviewExecution,
    QueryValidationResult,
    ResetResult,
    SchemaResult,
    SecurityClassification,
)

HEADERS = {"X-User-Id": "user-1"}


def _preview() -> PreviewData:
    return PreviewData(
        status="completed",
        execution=PreviewExecution(id="e1", row_count=1),
        preview=[{"id": "a"}],
        total_count=1,
        data_source=DataSource.DIRECT,
    )


class TestExecuteDataset:
    """POST /api/datasets/execute"""

    def test_returns_execution_id(self, client):
        with patch("shopdata.api.routes.datasets.orchestrator") as orchestrator:
            orchestrator.execute = AsyncMock(return_value="e1")
            response = client.post(
                "/api/datasets/execute", json={"datasetId": "d1"}, headers=HEADERS
            )

        assert response.status_code == 200
        assert response.json() == {"executionId": "e1"}
        orchestrator.execute.assert_awaited_once_with("d1", "user-1")

    def test_user_id_from_body(self, client):
        with patch("shopdata.api.routes.datasets.orchestrator") as orchestrator:
            orchestrator.execute = AsyncMock(return_value="e1")
            response = client.post(
                "/api/datasets/execute", json={"datasetId": "d1", "userId": "user-9"}
            )

        assert response.status_code == 200
        orchestrator.execute.assert_awaited_once_with("d1", "user-9")

    def test_header_wins_over_body(self, client):
        with patch("shopdata.api.routes.datasets.orchestrator") as orchestrator:
            orchestrator.execute = AsyncMock(return_value="e1")
            client.post(
                "/api/datasets/execute",
                json={"datasetId": "d1", "userId": "user-9"},
                headers=HEADERS,
            )

        orchestrator.execute.assert_awaited_once_with("d1", "user-1")

    def test_no_user(self, client):
        response = client.post("/api/datasets/execute", json={"datasetId": "d1"})

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "AUTH_REQUIRED"

    def test_missing_dataset_id(self, client):
        response = client.post("/api/datasets/execute", json={}, headers=HEADERS)

        assert response.status_code == 422

    def test_conflict_reports_running_execution(self, client):
        with patch("shopdata.api.routes.datasets.orchestrator") as orchestrator:
            orchestrator.execute = AsyncMock(side_effect=ExecutionConflictError("d1", "e0"))
            response = client.post(
                "/api/datasets/execute", json={"datasetId": "d1"}, headers=HEADERS
            )

        detail = response.json()["detail"]
        assert response.status_code == 409
        assert detail["code"] == "EXECUTION_IN_PROGRESS"
        assert detail["executionId"] == "e0"
        assert detail["operation"] == "execute dataset"

    def test_unknown_dataset(self, client):
        with patch("shopdata.api.routes.datasets.orchestrator") as orchestrator:
            orchestrator.execute = AsyncMock(side_effect=DatasetNotFoundError("d1"))
            response = client.post(
                "/api/datasets/execute", json={"datasetId": "d1"}, headers=HEADERS
            )

        assert response.status_code == 404
        assert response.json()["detail"]["message"] == "Dataset not found: d1"

    def test_missing_credentials(self, client):
        with patch("shopdata.api.routes.datasets.orchestrator") as orchestrator:
            orchestrator.execute = AsyncMock(
                side_effect=MissingCredentialsError("Missing Shopify credentials: accessToken")
            )
            response = client.post(
                "/api/datasets/execute", json={"datasetId": "d1"}, headers=HEADERS
            )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"


class TestResetStuckDataset:
    """POST /api/datasets/{dataset_id}/reset-stuck"""

    def test_returns_reset_ids(self, client):
        with patch("shopdata.api.routes.datasets.orchestrator") as orchestrator:
            orchestrator.reset_stuck = AsyncMock(
                return_value=ResetResult(reset_count=1, reset_ids=["e1"])
            )
            response = client.post("/api/datasets/d1/reset-stuck", headers=HEADERS)

        assert response.status_code == 200
        assert response.json() == {"resetCount": 1, "resetIds": ["e1"]}
        orchestrator.reset_stuck.assert_awaited_once_with(user_id="user-1", dataset_id="d1")

    def test_requires_user(self, client):
        response = client.post("/api/datasets/d1/reset-stuck")

        assert response.status_code == 401


class TestExecutionPreview:
    """GET /api/executions/{execution_id}/preview"""

    def test_returns_camel_case_preview(self, client):
        with patch("shopdata.api.routes.executions.preview_retriever") as retriever:
            retriever.fetch = AsyncMock(return_value=_preview())
            response = client.get(
                "/api/executions/e1/preview?limit=5&checkStatus=true", headers=HEADERS
            )

        body = response.json()
        assert response.status_code == 200
        assert body["dataSource"] == "direct"
        assert body["totalCount"] == 1
        assert body["execution"]["rowCount"] == 1
        retriever.fetch.assert_awaited_once_with("e1", "user-1", limit=5, check_status=True)

    def test_defaults(self, client):
        with patch("shopdata.api.routes.executions.preview_retriever") as retriever:
            retriever.fetch = AsyncMock(return_value=_preview())
            client.get("/api/executions/e1/preview", headers=HEADERS)

        retriever.fetch.assert_awaited_once_with("e1", "user-1", limit=None, check_status=False)

    def test_not_found(self, client):
        with patch("shopdata.api.routes.executions.preview_retriever") as retriever:
            retriever.fetch = AsyncMock(side_effect=ExecutionNotFoundError("e1"))
            response = client.get("/api/executions/e1/preview", headers=HEADERS)

        assert response.status_code == 404

    def test_every_tier_failed(self, client):
        with patch("shopdata.api.routes.executions.preview_retriever") as retriever:
            retriever.fetch = AsyncMock(side_effect=PreviewUnavailableError("unavailable"))
            response = client.get("/api/executions/e1/preview", headers=HEADERS)

        assert response.status_code == 503
        assert response.json()["detail"]["code"] == "PREVIEW_UNAVAILABLE"

    def test_unexpected_error_is_generic(self, client):
        with patch("shopdata.api.routes.executions.preview_retriever") as retriever:
            retriever.fetch = AsyncMock(side_effect=RuntimeError("password=hunter2"))
            response = client.get("/api/executions/e1/preview", headers=HEADERS)

        detail = response.json()["detail"]
        assert response.status_code == 500
        assert detail["code"] == "INTERNAL_ERROR"
        assert detail["message"] == "get execution preview failed."
        assert "hunter2" not in response.text

    def test_requires_user(self, client):
        response = client.get("/api/executions/e1/preview")

        assert response.status_code == 401


class TestResetExecution:
    """POST /api/executions/{execution_id}/reset"""

    def test_reset(self, client):
        with patch("shopdata.api.routes.executions.orchestrator") as orchestrator:
            orchestrator.reset_stuck = AsyncMock(
                return_value=ResetResult(reset_count=1, reset_ids=["e1"])
            )
            response = client.post("/api/executions/e1/reset", headers=HEADERS)

        assert response.json() == {
            "success": True,
            "message": "Execution e1 was reset to failed",
        }
        orchestrator.reset_stuck.assert_awaited_once_with(user_id="user-1", execution_id="e1")

    def test_nothing_to_reset(self, client):
        with patch("shopdata.api.routes.executions.orchestrator") as orchestrator:
            orchestrator.reset_stuck = AsyncMock(return_value=ResetResult())
            response = client.post("/api/executions/e1/reset", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["success"] is False


class TestExportExecution:
    """POST /api/executions/{execution_id}/export"""

    def test_inline_export(self, client):
        payload = {"inline": True, "format": "csv", "rowCount": 1, "content": "id\na\n"}
        with patch("shopdata.api.routes.executions.export_service") as service:
            service.export_execution = AsyncMock(return_value=payload)
            response = client.post(
                "/api/executions/e1/export", json={"format": "csv"}, headers=HEADERS
            )

        assert response.status_code == 200
        assert response.json() == payload
        service.export_execution.assert_awaited_once_with("e1", "user-1", "csv")

    def test_unsupported_format(self, client):
        with patch("shopdata.api.routes.executions.export_service") as service:
            service.export_execution = AsyncMock(
                side_effect=UnsupportedExportFormatError("Unsupported export format: pdf")
            )
            response = client.post(
                "/api/executions/e1/export", json={"format": "pdf"}, headers=HEADERS
            )

        assert response.status_code == 400


class TestSourceSchema:
    """GET /api/sources/{source_id}/schema"""

    def test_returns_schema(self, client):
        result = SchemaResult(
            schema={"rootResources": [], "objectTypes": {}},
            from_cache=True,
            version=3,
            api_version="2025-01",
            classification=SecurityClassification.PUBLIC,
        )
        with patch("shopdata.api.routes.sources.schema_service") as service:
            service.get_schema = AsyncMock(return_value=result)
            response = client.get(
                "/api/sources/s1/schema?apiVersion=2025-01&forceUpdate=true", headers=HEADERS
            )

        body = response.json()
        assert response.status_code == 200
        assert body["schema"] == {"rootResources": [], "objectTypes": {}}
        assert body["fromCache"] is True
        assert body["classification"] == "public"
        assert body["rawSchema"] is None
        service.get_schema.assert_awaited_once_with(
            "s1", "user-1", api_version="2025-01", force_update=True
        )

    def test_access_denied(self, client):
        with patch("shopdata.api.routes.sources.schema_service") as service:
            service.get_schema = AsyncMock(side_effect=SchemaAccessDeniedError("s1"))
            response = client.get("/api/sources/s1/schema", headers=HEADERS)

        assert response.status_code == 403

    def test_provider_failure(self, client):
        with patch("shopdata.api.routes.sources.schema_service") as service:
            service.get_schema = AsyncMock(side_effect=ProviderHTTPError(401, "bad token"))
            response = client.get("/api/sources/s1/schema", headers=HEADERS)

        detail = response.json()["detail"]
        assert response.status_code == 502
        assert detail["code"] == "PROVIDER_ERROR"
        assert "access token" in detail["hint"]


class TestValidateQuery:
    """POST /api/sources/{source_id}/validate-query"""

    def test_invalid_query_is_still_ok(self, client):
        result = QueryValidationResult(valid=False, query="{ x }", error="Field 'x' missing")
        with patch("shopdata.api.routes.sources.query_validator") as validator:
            validator.validate = AsyncMock(return_value=result)
            response = client.post(
                "/api/sources/s1/validate-query",
                json={"resourceType": "products", "fields": ["id", "title"]},
                headers=HEADERS,
            )

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is False
        assert body["validation"] == {"valid": False, "error": "Field 'x' missing"}
        validator.validate.assert_awaited_once_with(
            "s1", "user-1", query=None, resource_type="products", fields=["id", "title"]
        )

    def test_valid_query(self, client):
        result = QueryValidationResult(
            valid=True, query="{ x }", connection_path=["products"], sample_data={"x": 1}
        )
        with patch("shopdata.api.routes.sources.query_validator") as validator:
            validator.validate = AsyncMock(return_value=result)
            response = client.post(
                "/api/sources/s1/validate-query", json={"query": "{ x }"}, headers=HEADERS
            )

        body = response.json()
        assert body["success"] is True
        assert body["connectionPath"] == ["products"]
        assert body["sampleData"] == {"x": 1}

    def test_missing_input(self, client):
        with patch("shopdata.api.routes.sources.query_validator") as validator:
            validator.validate = AsyncMock(
                side_effect=ValidationError("Either a query or resourceType and fields")
            )
            response = client.post("/api/sources/s1/validate-query", json={}, headers=HEADERS)

        assert response.status_code == 400

    def test_unknown_source(self, client):
        with patch("shopdata.api.routes.sources.query_validator") as validator:
            validator.validate = AsyncMock(side_effect=SourceNotFoundError("s1"))
            response = client.post(
                "/api/sources/s1/validate-query", json={"query": "{ x }"}, headers=HEADERS
            )

        assert response.status_code == 404


class TestExecutionHistory:
    """GET /api/datasets/{dataset_id}/executions and /api/executions/{execution_id}"""

    def test_lists_executions(self, client):
        summary = ExecutionSummary(
            id="e1", dataset_id="d1", status="completed", row_count=2
        )
        with patch("shopdata.api.routes.datasets.execution_history") as history:
            history.list_executions = AsyncMock(return_value=[summary])
            response = client.get("/api/datasets/d1/executions?limit=5", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()[0]["datasetId"] == "d1"
        assert response.json()[0]["rowCount"] == 2
        history.list_executions.assert_awaited_once_with("d1", "user-1", 5)

    def test_unknown_dataset(self, client):
        with patch("shopdata.api.routes.datasets.execution_history") as history:
            history.list_executions = AsyncMock(side_effect=DatasetNotFoundError("d1"))
            response = client.get("/api/datasets/d1/executions", headers=HEADERS)

        assert response.status_code == 404

    def test_history_requires_user(self, client):
        response = client.get("/api/datasets/d1/executions")

        assert response.status_code == 401

    def test_execution_details(self, client):
        details = ExecutionDetails(
            id="e1",
            dataset_id="d1",
            status="failed",
            error_message="Shopify API error 401",
            dataset=PreviewDataset(id="d1", name="Products", type="custom"),
        )
        with patch("shopdata.api.routes.executions.execution_history") as history:
            history.get_details = AsyncMock(return_value=details)
            response = client.get("/api/executions/e1", headers=HEADERS)

        body = response.json()
        assert response.status_code == 200
        assert body["errorMessage"] == "Shopify API error 401"
        assert body["dataset"]["name"] == "Products"
        history.get_details.assert_awaited_once_with("e1", "user-1")

    def test_unknown_execution(self, client):
        with patch("shopdata.api.routes.executions.execution_history") as history:
            history.get_details = AsyncMock(side_effect=ExecutionNotFoundError("e1"))
            response = client.get("/api/executions/e1", headers=HEADERS)

        assert response.status_code == 404


class TestServiceEndpoints:
    def test_health_degraded_without_database(self, client):
        with patch(
            "shopdata.connectors.postgres_pool.get_default_pool",
            side_effect=RuntimeError("no database"),
        ):
            response = client.get("/health")

        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "degraded"
        assert body["checks"]["postgres"]["status"] == "unhealthy"
        assert body["checks"]["executions"] == {"in_flight": 0}

    def test_info(self, client):
        body = client.get("/api/info").json()

        assert body["name"] == "Shopdata"
        assert "xlsx" in body["features"]["export_formats"]
