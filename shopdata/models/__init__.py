"""
Data models for shopdata.
"""

from shopdata.models.dataset import (
    IDS_PLACEHOLDER,
    Dataset,
    DatasetType,
    DependentTemplate,
    MergeStrategy,
    PredefinedTemplate,
    QueryValidationResult,
)
from shopdata.models.execution import (
    ACTIVE_STATUSES,
    RESET_ERROR_MESSAGE,
    TERMINAL_STATUSES,
    ExecutionDetails,
    ExecutionOutcome,
    ExecutionRecord,
    ExecutionStatus,
    ExecutionSummary,
    ResetResult,
)
from shopdata.models.preview import (
    DataSource,
    PreviewColumn,
    PreviewData,
    PreviewDataset,
    PreviewExecution,
)
from shopdata.models.schema import (
    FieldCategory,
    ObjectField,
    ObjectType,
    ProcessedSchema,
    RootResource,
    SchemaCacheEntry,
    SchemaResult,
    SecurityClassification,
)

__all__ = [
    # Datasets / templates
    "IDS_PLACEHOLDER",
    "Dataset",
    "DatasetType",
    "DependentTemplate",
    "MergeStrategy",
    "PredefinedTemplate",
    "QueryValidationResult",
    # Executions
    "ACTIVE_STATUSES",
    "RESET_ERROR_MESSAGE",
    "TERMINAL_STATUSES",
    "ExecutionDetails",
    "ExecutionOutcome",
    "ExecutionRecord",
    "ExecutionStatus",
    "ExecutionSummary",
    "ResetResult",
    # Preview
    "DataSource",
    "PreviewColumn",
    "PreviewData",
    "PreviewDataset",
    "PreviewExecution",
    # Schema
    "FieldCategory",
    "ObjectField",
    "ObjectType",
    "ProcessedSchema",
    "RootResource",
    "SchemaCacheEntry",
    "SchemaResult",
    "SecurityClassification",
]
