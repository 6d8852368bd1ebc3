"""
API routes for source schemas and custom query validation.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from shopdata.api.dependencies import current_user_id
from shopdata.api.error_handling import http_exception
from shopdata.api.routes.execution_modules import ValidateQueryRequest
from shopdata.core.query_validation import query_validator
from shopdata.core.schema import schema_service

router = APIRouter()


@router.get("/{source_id}/schema", response_model=Dict[str, Any])
async def get_source_schema(
    source_id: str,
    api_version: Optional[str] = Query(None, alias="apiVersion"),
    force_update: bool = Query(False, alias="forceUpdate"),
    user_id: str = Depends(current_user_id),
):
    """
    Processed GraphQL schema of a source, served from the versioned cache
    while fresh.

    Sensitive schemas are redacted unless the caller holds an elevated role.
    """
    try:
        result = await schema_service.get_schema(
            source_id, user_id, api_version=api_version, force_update=force_update
        )
        return result.model_dump(mode="json", by_alias=True)
    except HTTPException:
        raise
    except Exception as e:
        raise http_exception("get source schema", e)


@router.post("/{source_id}/validate-query", response_model=Dict[str, Any])
async def validate_custom_query(
    source_id: str,
    request: ValidateQueryRequest,
    user_id: str = Depends(current_user_id),
):
    """
    Run a custom query once (`first: 1`) against the source.

    An invalid query is still a 200 with `success: false` and the GraphQL
    error under `validation.error`; only unusable input or a failed request
    is an error response.
    """
    try:
        result = await query_validator.validate(
            source_id,
            user_id,
            query=request.query,
            resource_type=request.resource_type,
            fields=request.selected_fields,
        )
        return result.to_response()
    except HTTPException:
        raise
    except Exception as e:
        raise http_exception("validate custom query", e)
