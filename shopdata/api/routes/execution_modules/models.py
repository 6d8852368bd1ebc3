"""
Pydantic models for dataset execution API requests and responses.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ExecuteRequest(BaseModel):
    """Request model for triggering a dataset execution."""

    model_config = ConfigDict(populate_by_name=True)

    dataset_id: str = Field(..., alias="datasetId", min_length=1)
    user_id: Optional[str] = Field(None, alias="userId")


class ExecuteResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    execution_id: str = Field(..., alias="executionId")


class ResetExecutionResponse(BaseModel):
    success: bool
    message: str


class ExportRequest(BaseModel):
    format: str = Field("json", min_length=1)


class ValidateQueryRequest(BaseModel):
    """Either a full query, or a resource type plus the node fields to select."""

    model_config = ConfigDict(populate_by_name=True)

    query: Optional[str] = None
    resource_type: Optional[str] = Field(None, alias="resourceType")
    selected_fields: List[str] = Field(default_factory=list, alias="fields")
