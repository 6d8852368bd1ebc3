"""
Tiered preview retrieval.

An ordered list of attempts is tried by one runner; the first attempt that
returns wins. An attempt that raises hands over to the next one. A missing
execution is a definite answer and stops the chain.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Callable, ClassVar, Optional, Sequence

from shopdata.config import settings
from shopdata.core import execution_store
from shopdata.core.errors import (
    ExecutionNotFoundError,
    PreviewUnavailableError,
    ValidationError,
)
from shopdata.core.preview.transformer import (
    build_minimal_preview_data,
    build_preview_data,
)
from shopdata.models import DataSource, PreviewData, PreviewDataset

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreviewRequest:
    execution_id: str
    user_id: str
    limit: int
    check_status: bool
    now: datetime


class PreviewAttempt(ABC):
    data_source: ClassVar[DataSource]

    def __init__(self, store: Any):
        self.store = store

    @abstractmethod
    async def __call__(self, request: PreviewRequest) -> PreviewData: ...


class JoinedPreviewAttempt(PreviewAttempt):
    """One join read of execution, dataset and template name."""

    data_source = DataSource.PREVIEW

    async def __call__(self, request: PreviewRequest) -> PreviewData:
        row = await self.store.fetch_execution_with_dataset(
            request.execution_id, request.user_id
        )
        if row is None:
            raise ExecutionNotFoundError(request.execution_id)
        dataset = PreviewDataset(
            id=row.get("dataset_id"),
            name=row.get("dataset_name"),
            type=row.get("dataset_type"),
            template=row.get("template_name"),
        )
        return build_preview_data(
            row,
            dataset,
            limit=request.limit,
            data_source=self.data_source,
            check_status=request.check_status,
            now=request.now,
        )


class DirectReadAttempt(PreviewAttempt):
    """Execution row, then dataset row, then a best-effort template lookup."""

    data_source = DataSource.DIRECT

    async def __call__(self, request: PreviewRequest) -> PreviewData:
        row = await self.store.fetch_execution_row(request.execution_id, request.user_id)
        if row is None:
            raise ExecutionNotFoundError(request.execution_id)

        dataset = PreviewDataset(id=row.get("dataset_id"))
        dataset_row = await self.store.fetch_dataset_row(row["dataset_id"])
        if dataset_row is not None:
            dataset = PreviewDataset(
                id=dataset_row.get("id"),
                name=dataset_row.get("name"),
                type=dataset_row.get("dataset_type"),
            )
            template_id = dataset_row.get("template_id")
            if template_id:
                try:
                    dataset.template = await self.store.find_template_name(template_id)
                except Exception as e:
                    logger.warning("Template lookup for %s failed: %s", template_id, e)

        return build_preview_data(
            row,
            dataset,
            limit=min(request.limit, settings.DIRECT_PREVIEW_MAX_ROWS),
            data_source=self.data_source,
            check_status=request.check_status,
            now=request.now,
        )


class MinimalReadAttempt(PreviewAttempt):
    """Status and counters only."""

    data_source = DataSource.MINIMAL

    async def __call__(self, request: PreviewRequest) -> PreviewData:
        row = await self.store.fetch_execution_status(
            request.execution_id, request.user_id
        )
        if row is None:
            raise ExecutionNotFoundError(request.execution_id)
        return build_minimal_preview_data(
            row, check_status=request.check_status, now=request.now
        )


DEFAULT_ATTEMPTS: tuple[type[PreviewAttempt], ...] = (
    JoinedPreviewAttempt,
    DirectReadAttempt,
    MinimalReadAttempt,
)


class PreviewRetriever:
    def __init__(
        self,
        store: Any = execution_store,
        attempts: Optional[Sequence[PreviewAttempt]] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._attempts = (
            list(attempts) if attempts is not None else [a(store) for a in DEFAULT_ATTEMPTS]
        )
        self._clock = clock

    async def fetch(
        self,
        execution_id: str,
        user_id: str,
        limit: Optional[int] = None,
        check_status: bool = False,
    ) -> PreviewData:
        """
        Current state of an execution with a capped row preview.

        Raises:
            ValidationError: bad limit
            ExecutionNotFoundError: no such execution for this user
            PreviewUnavailableError: every attempt failed
        """
        if not execution_id:
            raise ValidationError("executionId is required")
        effective_limit = settings.PREVIEW_DEFAULT_LIMIT if limit is None else limit
        if effective_limit < 1:
            raise ValidationError(f"limit must be at least 1, got {effective_limit}")

        request = PreviewRequest(
            execution_id=execution_id,
            user_id=user_id,
            limit=effective_limit,
            check_status=check_status,
            now=self._clock(),
        )

        last_error: Optional[Exception] = None
        for attempt in self._attempts:
            try:
                return await attempt(request)
            except ExecutionNotFoundError:
                raise
            except Exception as e:
                last_error = e
                logger.warning(
                    "Preview tier %s failed for %s: %s",
                    attempt.data_source.value,
                    execution_id,
                    e,
                    exc_info=True,
                )

        raise PreviewUnavailableError(
            f"Could not retrieve execution {execution_id}"
        ) from last_error


preview_retriever = PreviewRetriever()
