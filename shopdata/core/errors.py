"""
Error taxonomy for dataset execution, schema caching and preview retrieval.

The API layer maps these classes to HTTP status codes in
`shopdata.api.error_handling`. Messages on these exceptions are safe to show
to a client; full provider/database detail is only written to server logs.
"""

from __future__ import annotations

PROVIDER_BODY_LIMIT = 200


class ShopdataError(Exception):
    """Base class for all service errors."""


# ---------------------------------------------------------------------------
# Validation (rejected before any network call)
# ---------------------------------------------------------------------------


class ValidationError(ShopdataError):
    """Caller input is missing or malformed."""


class MissingCredentialsError(ValidationError):
    pass


class DatasetNotFoundError(ValidationError):
    """Dataset does not exist or is not owned by the caller."""

    def __init__(self, dataset_id: str):
        super().__init__(f"Dataset not found: {dataset_id}")
        self.dataset_id = dataset_id


class TemplateNotFoundError(ValidationError):
    def __init__(self, template_id: str, kind: str = "query"):
        super().__init__(f"{kind.capitalize()} template not found: {template_id}")
        self.template_id = template_id
        self.kind = kind


class QueryRewriteError(ValidationError):
    """The GraphQL document could not be prepared for cursor pagination."""


class UnsupportedExportFormatError(ValidationError):
    pass


# ---------------------------------------------------------------------------
# Provider transport / GraphQL
# ---------------------------------------------------------------------------


class ProviderError(ShopdataError):
    pass


class ProviderHTTPError(ProviderError):
    """Non-2xx response from the provider."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = (body or "")[:PROVIDER_BODY_LIMIT]
        super().__init__(f"Shopify API error: {status_code} {self.body}")


class ProviderResponseError(ProviderError):
    """2xx response whose body is not a GraphQL JSON object."""

    def __init__(self, reason: str, body: str):
        self.body = (body or "")[:PROVIDER_BODY_LIMIT]
        super().__init__(f"Unexpected Shopify response ({reason}): {self.body}")


class ProviderTransportError(ProviderError):
    """Network-level failure talking to the provider."""


class GraphQLResponseError(ProviderError):
    """`errors[]` present in an otherwise successful response."""

    def __init__(self, errors: list):
        self.errors = errors
        first = errors[0] if errors else {}
        message = first.get("message") if isinstance(first, dict) else str(first)
        super().__init__(f"GraphQL error: {message or 'Unknown error'}")


class ConnectionNotFoundError(ProviderError):
    """Response contains no object exposing both `edges` and `pageInfo`."""


class InvalidSchemaError(ProviderError):
    """Introspection result is missing the parts a schema processor needs."""


# ---------------------------------------------------------------------------
# Execution lifecycle
# ---------------------------------------------------------------------------


class ExecutionConflictError(ShopdataError):
    """A pending/running execution already exists for the dataset."""

    def __init__(self, dataset_id: str, execution_id: str | None):
        super().__init__(
            f"Dataset {dataset_id} already has an execution in progress"
            + (f" ({execution_id})" if execution_id else "")
        )
        self.dataset_id = dataset_id
        self.execution_id = execution_id


class ExecutionNotFoundError(ShopdataError):
    def __init__(self, execution_id: str):
        super().__init__(f"Execution not found: {execution_id}")
        self.execution_id = execution_id


class PreviewUnavailableError(ShopdataError):
    """Every retrieval tier failed."""


# ---------------------------------------------------------------------------
# Access
# ---------------------------------------------------------------------------


class AuthenticationRequiredError(ShopdataError):
    pass


class SchemaAccessDeniedError(ShopdataError):
    def __init__(self, source_id: str):
        super().__init__(f"Access denied to schema for source {source_id}")
        self.source_id = source_id


class SourceNotFoundError(ShopdataError):
    def __init__(self, source_id: str):
        super().__init__(f"Source not found: {source_id}")
        self.source_id = source_id


# ---------------------------------------------------------------------------
# Client-side polling
# ---------------------------------------------------------------------------


class PollingError(ShopdataError):
    pass


class PollingTimeoutError(PollingError):
    pass


class PollingAbortedError(PollingError):
    def __init__(self, message: str, last_error: BaseException | None = None):
        super().__init__(message)
        self.last_error = last_error
