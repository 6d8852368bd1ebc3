"""
Execution Modules - Package initialization.
"""

from .models import (
    ExecuteRequest,
    ExecuteResponse,
    ExportRequest,
    ResetExecutionResponse,
    ValidateQueryRequest,
)

__all__ = [
    "ExecuteRequest",
    "ExecuteResponse",
    "ExportRequest",
    "ResetExecutionResponse",
    "ValidateQueryRequest",
]
