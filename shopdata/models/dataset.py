"""
Dataset and Query Template Models

A dataset is a saved query definition bound to a source. Its type decides
which template table is consulted and which handler executes it.
"""

from enum import Enum
from typing import Optional, Dict, Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

IDS_PLACEHOLDER = "{{IDS}}"


class DatasetType(str, Enum):
    PREDEFINED = "predefined"
    DEPENDENT = "dependent"
    CUSTOM = "custom"


class MergeStrategy(str, Enum):
    NESTED = "nested"
    FLAT = "flat"
    REFERENCE = "reference"


class Dataset(BaseModel):
    """Row of `user_datasets` joined with the credentials of its source."""

    model_config = ConfigDict(use_enum_values=False)

    id: str
    user_id: str
    source_id: str
    name: str = ""
    dataset_type: DatasetType
    template_id: Optional[str] = None
    custom_query: Optional[str] = None
    custom_fields: List[str] = Field(default_factory=list)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    source_type: str = "shopify"
    source_config: Dict[str, Any] = Field(
        default_factory=dict, description="storeName / accessToken / apiVersion"
    )

    @property
    def max_items(self) -> Optional[int]:
        value = self.parameters.get("maxItems")
        return int(value) if value is not None else None

    @property
    def variables(self) -> Dict[str, Any]:
        return dict(self.parameters.get("variables") or {})


class PredefinedTemplate(BaseModel):
    """Single paginated query against one connection field."""

    id: Optional[str] = None
    name: str
    description: str = ""
    query_template: str
    resource_type: Optional[str] = Field(
        None, description="Connection field name (e.g. products)"
    )
    field_list: List[str] = Field(default_factory=list)
    result_processor: Optional[str] = None


class DependentTemplate(BaseModel):
    """Primary paginated query followed by id-batched secondary queries."""

    id: Optional[str] = None
    name: str
    description: str = ""
    primary_query: str
    secondary_query: str
    id_path: str = Field(..., min_length=1)
    merge_strategy: str = Field(
        MergeStrategy.REFERENCE.value,
        description="nested | flat | reference; unknown names merge as reference",
    )
    primary_resource_type: Optional[str] = None

    @field_validator("secondary_query")
    @classmethod
    def _needs_ids_placeholder(cls, v: str) -> str:
        if IDS_PLACEHOLDER not in v:
            raise ValueError(f"secondary_query must contain {IDS_PLACEHOLDER}")
        return v

    @field_validator("merge_strategy", mode="before")
    @classmethod
    def _normalize_strategy(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v


class QueryValidationResult(BaseModel):
    """Outcome of running a custom query once against its source."""

    model_config = ConfigDict(populate_by_name=True)

    valid: bool
    query: str = Field(..., description="The document as it would be executed")
    generated: bool = Field(False, description="Built from a resource type and fields")
    error: Optional[str] = None
    connection_path: List[str] = Field(default_factory=list, alias="connectionPath")
    sample_data: Optional[Dict[str, Any]] = Field(None, alias="sampleData")

    def to_response(self) -> Dict[str, Any]:
        validation: Dict[str, Any] = {"valid": self.valid}
        if self.error is not None:
            validation["error"] = self.error
        return {
            "success": self.valid,
            "validation": validation,
            **self.model_dump(mode="json", by_alias=True, exclude={"valid", "error"}),
        }
