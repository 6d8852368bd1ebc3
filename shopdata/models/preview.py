"""
Preview Models

Response shape served to polling clients while an execution runs and after it
finishes.
"""

from enum import Enum
from typing import Optional, Dict, Any, List
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class DataSource(str, Enum):
    """Which retrieval tier produced a preview."""

    PREVIEW = "preview"
    DIRECT = "direct"
    MINIMAL = "minimal"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PreviewExecution(_CamelModel):
    id: str
    start_time: Optional[datetime] = Field(None, alias="startTime")
    end_time: Optional[datetime] = Field(None, alias="endTime")
    row_count: Optional[int] = Field(None, alias="rowCount")
    execution_time_ms: Optional[int] = Field(None, alias="executionTimeMs")
    api_call_count: Optional[int] = Field(None, alias="apiCallCount")


class PreviewDataset(_CamelModel):
    id: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None
    template: Optional[str] = None


class PreviewColumn(_CamelModel):
    key: str
    label: str


class PreviewData(_CamelModel):
    status: str
    execution: PreviewExecution
    dataset: PreviewDataset = Field(default_factory=PreviewDataset)
    columns: List[PreviewColumn] = Field(default_factory=list)
    preview: List[Dict[str, Any]] = Field(default_factory=list)
    total_count: int = Field(0, alias="totalCount")
    error: Optional[str] = None
    data_source: DataSource = Field(DataSource.PREVIEW, alias="dataSource")
    possibly_stuck: bool = Field(False, alias="possiblyStuck")

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
