"""
Execution Models

One run of a dataset query and its persisted lifecycle.
"""

from enum import Enum
from typing import Optional, Dict, Any, List
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from shopdata.models.preview import PreviewDataset


class ExecutionStatus(str, Enum):
    """Execution lifecycle status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    # Observed only; never written by an executor.
    STUCK = "stuck"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED)

    @property
    def is_active(self) -> bool:
        return self in (ExecutionStatus.PENDING, ExecutionStatus.RUNNING)


TERMINAL_STATUSES = frozenset({ExecutionStatus.COMPLETED, ExecutionStatus.FAILED})
ACTIVE_STATUSES = frozenset({ExecutionStatus.PENDING, ExecutionStatus.RUNNING})

RESET_ERROR_MESSAGE = "Execution timed out and was automatically reset"


class ExecutionRecord(BaseModel):
    """Row of `dataset_executions`."""

    id: str = Field(..., description="Execution ID")
    dataset_id: str = Field(..., description="Dataset ID")
    user_id: str = Field(..., description="Owner of the dataset")
    status: ExecutionStatus = Field(ExecutionStatus.PENDING)
    start_time: datetime = Field(..., description="When the execution was created")
    end_time: Optional[datetime] = Field(None, description="Set once terminal")
    row_count: Optional[int] = Field(None, description="Result length (completed only)")
    execution_time_ms: Optional[int] = Field(None, description="Wall clock (completed only)")
    api_call_count: int = Field(0, description="Provider request attempts")
    error_message: Optional[str] = Field(None, description="Sanitized failure message")
    data: Optional[List[Dict[str, Any]]] = Field(None, description="Result rows")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ExecutionOutcome(BaseModel):
    """What a dataset handler hands back to the orchestrator."""

    rows: List[Dict[str, Any]] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ResetResult(BaseModel):
    reset_count: int = Field(0, alias="resetCount")
    reset_ids: List[str] = Field(default_factory=list, alias="resetIds")

    model_config = {"populate_by_name": True}


class ExecutionSummary(BaseModel):
    """One entry of a dataset's execution history; never carries result rows."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    dataset_id: str = Field(..., alias="datasetId")
    status: str
    start_time: Optional[datetime] = Field(None, alias="startTime")
    end_time: Optional[datetime] = Field(None, alias="endTime")
    row_count: Optional[int] = Field(None, alias="rowCount")
    execution_time_ms: Optional[int] = Field(None, alias="executionTimeMs")
    api_call_count: Optional[int] = Field(None, alias="apiCallCount")
    error_message: Optional[str] = Field(None, alias="errorMessage")


class ExecutionDetails(ExecutionSummary):
    metadata: Dict[str, Any] = Field(default_factory=dict)
    dataset: PreviewDataset = Field(default_factory=PreviewDataset)
