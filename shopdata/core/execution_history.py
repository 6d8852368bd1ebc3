"""
Execution history of a dataset and the details of single executions.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from shopdata.config import settings
from shopdata.core import execution_store
from shopdata.core.errors import DatasetNotFoundError, ExecutionNotFoundError
from shopdata.models import ExecutionDetails, ExecutionSummary, PreviewDataset

logger = logging.getLogger(__name__)


class ExecutionHistory:
    def __init__(self, store: Any = execution_store, max_limit: Optional[int] = None) -> None:
        self._store = store
        self._max_limit = settings.EXECUTION_HISTORY_LIMIT if max_limit is None else max_limit

    async def list_executions(
        self, dataset_id: str, user_id: str, limit: Optional[int] = None
    ) -> list[ExecutionSummary]:
        """
        The caller's executions of a dataset, newest first.

        `limit` is clamped to 1..EXECUTION_HISTORY_LIMIT.

        Raises:
            DatasetNotFoundError: unknown dataset or not owned by the caller
        """
        dataset = await self._store.fetch_dataset(dataset_id)
        if dataset is None or dataset.user_id != user_id:
            raise DatasetNotFoundError(dataset_id)
        size = self._max_limit if limit is None else max(1, min(limit, self._max_limit))
        rows = await self._store.list_dataset_executions(dataset_id, user_id, size)
        logger.debug("Listed %d executions of dataset %s", len(rows), dataset_id)
        return [ExecutionSummary.model_validate(r) for r in rows]

    async def get_details(self, execution_id: str, user_id: str) -> ExecutionDetails:
        """
        Raises:
            ExecutionNotFoundError: unknown execution or not owned by the caller
        """
        row = await self._store.fetch_execution_details(execution_id, user_id)
        if row is None:
            raise ExecutionNotFoundError(execution_id)
        details = ExecutionDetails.model_validate(
            {**row, "metadata": row.get("metadata") or {}}
        )
        if row.get("dataset_name") is not None:
            details.dataset = PreviewDataset(
                id=row["dataset_id"],
                name=row["dataset_name"],
                type=row.get("dataset_type"),
                template=row.get("template_name"),
            )
        return details


execution_history = ExecutionHistory()
