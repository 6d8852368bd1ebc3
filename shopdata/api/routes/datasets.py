"""
API routes for triggering dataset executions and listing their history.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from shopdata.api.dependencies import current_user_id, optional_user_id
from shopdata.api.error_handling import http_exception
from shopdata.api.routes.execution_modules import ExecuteRequest, ExecuteResponse
from shopdata.core.errors import AuthenticationRequiredError
from shopdata.core.execution_history import execution_history
from shopdata.core.orchestrator import orchestrator

router = APIRouter()


@router.post("/execute", response_model=ExecuteResponse, response_model_by_alias=True)
async def execute_dataset(
    request: ExecuteRequest,
    header_user_id: Optional[str] = Depends(optional_user_id),
):
    """
    Start an asynchronous execution of a dataset.

    Returns immediately with the new execution id; poll
    /api/executions/{execution_id}/preview for progress. Responds 409 with
    the in-flight `executionId` when the dataset is already running.
    """
    try:
        user_id = header_user_id or request.user_id
        if not user_id:
            raise AuthenticationRequiredError("Missing X-User-Id header")
        execution_id = await orchestrator.execute(request.dataset_id, user_id)
        return ExecuteResponse(execution_id=execution_id)
    except HTTPException:
        raise
    except Exception as e:
        raise http_exception("execute dataset", e)


@router.post("/{dataset_id}/reset-stuck", response_model=Dict[str, Any])
async def reset_stuck_executions(
    dataset_id: str, user_id: str = Depends(current_user_id)
):
    """
    Force this dataset's pending/running executions older than
    STUCK_EXECUTION_MINUTES to failed.
    """
    try:
        result = await orchestrator.reset_stuck(user_id=user_id, dataset_id=dataset_id)
        return result.model_dump(by_alias=True)
    except HTTPException:
        raise
    except Exception as e:
        raise http_exception("reset stuck executions", e)


@router.get("/{dataset_id}/executions", response_model=List[Dict[str, Any]])
async def list_dataset_executions(
    dataset_id: str,
    limit: Optional[int] = Query(None),
    user_id: str = Depends(current_user_id),
):
    """Execution history of a dataset, newest first, without result rows."""
    try:
        executions = await execution_history.list_executions(dataset_id, user_id, limit)
        return [e.model_dump(mode="json", by_alias=True) for e in executions]
    except HTTPException:
        raise
    except Exception as e:
        raise http_exception("list dataset executions", e)
