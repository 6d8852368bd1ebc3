"""
API routes for execution details, previews, resets and exports.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from shopdata.api.dependencies import current_user_id
from shopdata.api.error_handling import http_exception
from shopdata.api.routes.execution_modules import (
    ExportRequest,
    ResetExecutionResponse,
)
from shopdata.core.execution_history import execution_history
from shopdata.core.export import export_service
from shopdata.core.orchestrator import orchestrator
from shopdata.core.preview.retrieval import preview_retriever

router = APIRouter()


@router.get("/{execution_id}", response_model=Dict[str, Any])
async def get_execution_details(execution_id: str, user_id: str = Depends(current_user_id)):
    """Status, counts and metadata of one execution plus its dataset."""
    try:
        details = await execution_history.get_details(execution_id, user_id)
        return details.model_dump(mode="json", by_alias=True)
    except HTTPException:
        raise
    except Exception as e:
        raise http_exception("get execution details", e)


@router.get("/{execution_id}/preview", response_model=Dict[str, Any])
async def get_execution_preview(
    execution_id: str,
    limit: Optional[int] = Query(None),
    check_status: bool = Query(False, alias="checkStatus"),
    user_id: str = Depends(current_user_id),
):
    """
    Current status of an execution plus a capped preview of its rows.

    `dataSource` reports which retrieval tier answered (preview, direct or
    minimal). With `checkStatus=true` the response flags executions that
    look stuck.
    """
    try:
        preview = await preview_retriever.fetch(
            execution_id, user_id, limit=limit, check_status=check_status
        )
        return preview.to_response()
    except HTTPException:
        raise
    except Exception as e:
        raise http_exception("get execution preview", e)


@router.post("/{execution_id}/reset", response_model=ResetExecutionResponse)
async def reset_execution(execution_id: str, user_id: str = Depends(current_user_id)):
    """Force one pending/running execution to failed, regardless of age."""
    try:
        result = await orchestrator.reset_stuck(
            user_id=user_id, execution_id=execution_id
        )
        if result.reset_count:
            return ResetExecutionResponse(
                success=True, message=f"Execution {execution_id} was reset to failed"
            )
        return ResetExecutionResponse(
            success=False,
            message=f"Execution {execution_id} is not pending or running",
        )
    except HTTPException:
        raise
    except Exception as e:
        raise http_exception("reset execution", e)


@router.post("/{execution_id}/export", response_model=Dict[str, Any])
async def export_execution(
    execution_id: str,
    request: ExportRequest,
    user_id: str = Depends(current_user_id),
):
    """
    Export a completed execution as json, csv or xlsx.

    Small exports are returned inline (xlsx base64-encoded); larger ones are
    written to storage and a reference is returned.
    """
    try:
        return await export_service.export_execution(
            execution_id, user_id, request.format
        )
    except HTTPException:
        raise
    except Exception as e:
        raise http_exception("export execution", e)
