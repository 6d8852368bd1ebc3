"""
Centralized API error handling helpers.

Every route converts failures through `http_exception` so clients always get
a `{code, message, operation, hint?, debug?}` detail and never an internal
stack trace.
"""

from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass
from typing import Any

from fastapi import HTTPException, status

from shopdata.config import settings
from shopdata.core.errors import (
    AuthenticationRequiredError,
    DatasetNotFoundError,
    ExecutionConflictError,
    ExecutionNotFoundError,
    GraphQLResponseError,
    PreviewUnavailableError,
    ProviderError,
    ProviderHTTPError,
    ProviderTransportError,
    SchemaAccessDeniedError,
    SourceNotFoundError,
    TemplateNotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ApiError:
    status_code: int
    code: str
    message: str
    hint: str | None = None
    debug: str | None = None
    extra: dict[str, Any] | None = None


def _maybe_debug(exc: BaseException) -> str | None:
    if settings.APP_DEBUG:
        return str(exc)
    return None


def classify_error(exc: BaseException) -> ApiError | None:
    """
    Map the shopdata error taxonomy onto HTTP responses.

    Not-found classes subclass ValidationError, so they are checked first.
    """
    if isinstance(exc, AuthenticationRequiredError):
        return ApiError(
            status_code=status.HTTP_401_UNAUTHORIZED,
            code="AUTH_REQUIRED",
            message=str(exc) or "Authentication required.",
            hint="Sign in again, then retry.",
        )

    if isinstance(
        exc,
        (
            DatasetNotFoundError,
            TemplateNotFoundError,
            ExecutionNotFoundError,
            SourceNotFoundError,
        ),
    ):
        return ApiError(
            status_code=status.HTTP_404_NOT_FOUND,
            code="NOT_FOUND",
            message=str(exc),
        )

    if isinstance(exc, SchemaAccessDeniedError):
        return ApiError(
            status_code=status.HTTP_403_FORBIDDEN,
            code="ACCESS_DENIED",
            message=str(exc),
            hint="Ask the source owner or an administrator for access.",
        )

    if isinstance(exc, ExecutionConflictError):
        return ApiError(
            status_code=status.HTTP_409_CONFLICT,
            code="EXECUTION_IN_PROGRESS",
            message=str(exc),
            hint="Poll the running execution instead of starting a new one.",
            extra={"executionId": exc.execution_id},
        )

    if isinstance(exc, ValidationError):
        return ApiError(
            status_code=status.HTTP_400_BAD_REQUEST,
            code="VALIDATION_ERROR",
            message=str(exc),
        )

    if isinstance(exc, PreviewUnavailableError):
        return ApiError(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code="PREVIEW_UNAVAILABLE",
            message=str(exc),
            hint="Retry shortly.",
            debug=_maybe_debug(exc.__cause__) if exc.__cause__ else None,
        )

    if isinstance(exc, ProviderError):
        if isinstance(exc, ProviderHTTPError) and exc.status_code in (401, 403):
            hint = "Check the store's access token and API scopes."
        elif isinstance(exc, ProviderTransportError):
            hint = "Shopify could not be reached; retry later."
        elif isinstance(exc, GraphQLResponseError):
            hint = "Check the query against the store's schema."
        else:
            hint = None
        return ApiError(
            status_code=status.HTTP_502_BAD_GATEWAY,
            code="PROVIDER_ERROR",
            message=str(exc),
            hint=hint,
            debug=_maybe_debug(exc),
        )

    return None


def http_exception(operation: str, exc: BaseException) -> HTTPException:
    """
    Convert an exception into a consistent HTTPException payload.
    """
    if isinstance(exc, HTTPException):
        return exc

    classified = classify_error(exc)
    if classified is not None:
        if classified.status_code >= 500:
            logger.error(
                "API error during '%s': %s\n%s",
                operation,
                exc,
                traceback.format_exc(),
            )
        else:
            logger.info("'%s' rejected (%s): %s", operation, classified.code, exc)

        detail: dict[str, Any] = {
            "code": classified.code,
            "message": classified.message,
            "operation": operation,
        }
        if classified.hint:
            detail["hint"] = classified.hint
        if classified.debug:
            detail["debug"] = classified.debug
        if classified.extra:
            detail.update(classified.extra)
        return HTTPException(status_code=classified.status_code, detail=detail)

    # Log the full traceback to the server console for debugging
    logger.error(
        "API error during '%s': %s\n%s",
        operation,
        exc,
        traceback.format_exc(),
    )

    # Default: preserve a safe summary + optional debug.
    base_detail: dict[str, Any] = {
        "code": "INTERNAL_ERROR",
        "message": f"{operation} failed.",
        "operation": operation,
    }
    dbg = _maybe_debug(exc)
    if dbg:
        base_detail["debug"] = dbg
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=base_detail,
    )
