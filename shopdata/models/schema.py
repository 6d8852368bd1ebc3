"""
Schema Cache Models

Normalized provider schema shape and the cache entries that store it.
"""

from enum import Enum
from typing import Optional, Dict, Any, List
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class SecurityClassification(str, Enum):
    PUBLIC = "public"
    INTERNAL = "internal"
    CONFIDENTIAL = "confidential"
    RESTRICTED = "restricted"

    @property
    def requires_redaction(self) -> bool:
        return self in (
            SecurityClassification.CONFIDENTIAL,
            SecurityClassification.RESTRICTED,
        )


class FieldCategory(str, Enum):
    SCALAR = "Scalar"
    OBJECT = "Object"
    INTERFACE = "Interface"
    ENUM = "Enum"


class RootResource(BaseModel):
    """A top-level query field the UI can build datasets from."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    type: str
    node_type: Optional[str] = Field(None, alias="nodeType")
    is_connection: bool = Field(True, alias="isConnection")
    query_depth: int = Field(3, alias="queryDepth")
    description: Optional[str] = None
    path: Optional[str] = None


class ObjectField(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    type: str
    category: FieldCategory
    is_list: bool = Field(False, alias="isList")
    is_non_null: bool = Field(False, alias="isNonNull")
    description: Optional[str] = None
    redacted: bool = False


class ObjectType(BaseModel):
    name: str
    kind: str = "OBJECT"
    description: Optional[str] = None
    fields: List[ObjectField] = Field(default_factory=list)


class ProcessedSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    root_resources: List[RootResource] = Field(
        default_factory=list, alias="rootResources"
    )
    object_types: Dict[str, ObjectType] = Field(
        default_factory=dict, alias="objectTypes"
    )
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SchemaCacheEntry(BaseModel):
    """Row of `source_schemas`."""

    id: Optional[str] = None
    source_id: str
    api_version: str
    schema_version: int = Field(..., ge=1)
    raw_schema: Dict[str, Any] = Field(default_factory=dict)
    processed_schema: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    is_sensitive: bool = False
    security_classification: SecurityClassification = SecurityClassification.PUBLIC
    created_at: datetime
    verified_at: Optional[datetime] = None
    last_accessed_at: Optional[datetime] = None
    access_count: int = 0

    @property
    def schema_hash(self) -> Optional[str]:
        return self.metadata.get("schema_hash")

    @property
    def fresh_since(self) -> datetime:
        return self.verified_at or self.created_at


class SchemaResult(BaseModel):
    """What `SchemaService.get_schema` returns to a caller."""

    model_config = ConfigDict(populate_by_name=True)

    schema_: Dict[str, Any] = Field(..., alias="schema")
    from_cache: bool = Field(..., alias="fromCache")
    version: int
    api_version: str = Field(..., alias="apiVersion")
    classification: SecurityClassification
    is_sensitive: bool = Field(False, alias="isSensitive")
    contains_redacted_content: bool = Field(False, alias="containsRedactedContent")
    has_full_access: bool = Field(False, alias="hasFullAccess")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    raw_schema: Optional[Dict[str, Any]] = Field(None, alias="rawSchema")
