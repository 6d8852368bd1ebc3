from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, ClassVar, Optional

from shopdata.config import settings
from shopdata.connectors.shopify_client import (
    ApiCallCounter,
    ShopifyConfig,
    ShopifyGraphQLClient,
)
from shopdata.core import execution_store
from shopdata.core.batcher import run_batched
from shopdata.core.errors import (
    DatasetNotFoundError,
    ExecutionConflictError,
    TemplateNotFoundError,
    ValidationError,
)
from shopdata.core.id_extractor import extract_ids
from shopdata.core.merger import merge, resolve_strategy
from shopdata.core.pagination import GraphQLRequester, paginate
from shopdata.core.predefined import RESULT_PROCESSORS, get_result_processor
from shopdata.core.query_rewriter import prepare_paginated_query
from shopdata.models import (
    Dataset,
    DatasetType,
    DependentTemplate,
    ExecutionOutcome,
    PredefinedTemplate,
    ResetResult,
)

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ShopifyConfig, ApiCallCounter], ShopifyGraphQLClient]


def _default_client_factory(
    config: ShopifyConfig, counter: ApiCallCounter
) -> ShopifyGraphQLClient:
    return ShopifyGraphQLClient(config, on_api_call=counter)


class DatasetHandler(ABC):
    """Loads what a dataset type needs up front, then runs it against a client."""

    dataset_type: ClassVar[DatasetType]

    @abstractmethod
    async def load(self, store: Any, dataset: Dataset) -> Any:
        """Resolve templates/queries. Raises validation errors only."""

    @abstractmethod
    async def run(
        self,
        client: GraphQLRequester,
        dataset: Dataset,
        definition: Any,
        *,
        delay_seconds: Optional[float],
    ) -> ExecutionOutcome: ...


class PredefinedHandler(DatasetHandler):
    dataset_type = DatasetType.PREDEFINED

    async def load(self, store: Any, dataset: Dataset) -> PredefinedTemplate:
        if not dataset.template_id:
            raise ValidationError("Predefined dataset has no template_id")
        template = await store.fetch_predefined_template(dataset.template_id)
        if template is None:
            raise TemplateNotFoundError(dataset.template_id, "predefined")
        if template.result_processor and template.result_processor not in RESULT_PROCESSORS:
            raise ValidationError(
                f"Template {template.name} names unknown result processor "
                f"{template.result_processor!r}"
            )
        prepare_paginated_query(template.query_template, template.resource_type)
        return template

    async def run(self, client, dataset, definition, *, delay_seconds):
        template: PredefinedTemplate = definition
        nodes = await paginate(
            client,
            template.query_template,
            dataset.variables,
            dataset.max_items,
            connection_field=template.resource_type,
            delay_seconds=delay_seconds,
        )
        rows = nodes
        if template.result_processor:
            rows = get_result_processor(template.result_processor)(nodes)
        return ExecutionOutcome(
            rows=rows,
            metadata={
                "dataset_type": self.dataset_type.value,
                "template_id": template.id,
                "resource_type": template.resource_type,
                "node_count": len(nodes),
                "result_processor": template.result_processor,
            },
        )


class DependentHandler(DatasetHandler):
    dataset_type = DatasetType.DEPENDENT

    async def load(self, store: Any, dataset: Dataset) -> DependentTemplate:
        if not dataset.template_id:
            raise ValidationError("Dependent dataset has no template_id")
        template = await store.fetch_dependent_template(dataset.template_id)
        if template is None:
            raise TemplateNotFoundError(dataset.template_id, "dependent")
        prepare_paginated_query(template.primary_query, template.primary_resource_type)
        return template

    async def run(self, client, dataset, definition, *, delay_seconds):
        template: DependentTemplate = definition
        primary = await paginate(
            client,
            template.primary_query,
            dataset.variables,
            dataset.max_items,
            connection_field=template.primary_resource_type,
            delay_seconds=delay_seconds,
        )
        ids = extract_ids(primary, template.id_path)
        logger.info(
            "Dependent dataset %s: %d primary rows, %d ids at %s",
            dataset.id,
            len(primary),
            len(ids),
            template.id_path,
        )
        delay = (
            settings.SHOPIFY_REQUEST_DELAY_SECONDS
            if delay_seconds is None
            else delay_seconds
        )
        secondary: list[dict[str, Any]] = []
        if ids:
            if delay > 0:
                # Same rate budget between the last page and the first batch.
                await asyncio.sleep(delay)
            secondary = await run_batched(
                client,
                template.secondary_query,
                ids,
                settings.SECONDARY_BATCH_SIZE,
                delay_seconds=delay_seconds,
            )
        strategy = resolve_strategy(template.merge_strategy)
        rows = merge(primary, secondary, strategy)
        return ExecutionOutcome(
            rows=rows,
            metadata={
                "dataset_type": self.dataset_type.value,
                "template_id": template.id,
                "primary_count": len(primary),
                "id_count": len(ids),
                "secondary_count": len(secondary),
                "merge_strategy": strategy.value,
            },
        )


class CustomHandler(DatasetHandler):
    dataset_type = DatasetType.CUSTOM

    async def load(self, store: Any, dataset: Dataset) -> str:
        query = (dataset.custom_query or "").strip()
        if not query:
            raise ValidationError("Custom dataset has no query")
        prepare_paginated_query(query, dataset.parameters.get("resourceType"))
        return query

    async def run(self, client, dataset, definition, *, delay_seconds):
        rows = await paginate(
            client,
            definition,
            dataset.variables,
            dataset.max_items,
            connection_field=dataset.parameters.get("resourceType"),
            delay_seconds=delay_seconds,
        )
        return ExecutionOutcome(
            rows=rows,
            metadata={
                "dataset_type": self.dataset_type.value,
                "custom_fields": dataset.custom_fields,
            },
        )


DEFAULT_HANDLERS: tuple[DatasetHandler, ...] = (
    PredefinedHandler(),
    DependentHandler(),
    CustomHandler(),
)


class DatasetOrchestrator:
    """
    Creates execution rows and runs dataset handlers in the background.

    `execute()` returns as soon as the pending row exists; callers poll the
    preview endpoint for progress. At most one execution per dataset is in
    flight: the in-process map catches rapid re-triggers and the partial
    unique index on `dataset_executions` catches the rest.
    """

    def __init__(
        self,
        store: Any = execution_store,
        client_factory: Optional[ClientFactory] = None,
        *,
        handlers: tuple[DatasetHandler, ...] = DEFAULT_HANDLERS,
        delay_seconds: Optional[float] = None,
    ) -> None:
        self._store = store
        self._client_factory = client_factory or _default_client_factory
        self._handlers: dict[DatasetType, DatasetHandler] = {
            h.dataset_type: h for h in handlers
        }
        self._delay_seconds = delay_seconds
        self._lock = asyncio.Lock()
        self._in_flight: dict[str, str] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._background_tasks: set[asyncio.Task] = set()

    def _track_task(self, execution_id: str, task: asyncio.Task) -> None:
        self._background_tasks.add(task)
        self._tasks[execution_id] = task

        def _done(t: asyncio.Task) -> None:
            self._background_tasks.discard(t)
            self._tasks.pop(execution_id, None)
            # Retrieve exceptions so asyncio doesn't warn about them.
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.debug("Execution task failed: %s", exc, exc_info=exc)

        task.add_done_callback(_done)

    async def execute(self, dataset_id: str, user_id: str) -> str:
        """
        Validate, create a pending execution and dispatch it.

        Raises:
            ValidationError: missing ids, credentials, template or query
            DatasetNotFoundError: unknown dataset or not owned by `user_id`
            ExecutionConflictError: the dataset already has one in flight

        Returns:
            str: execution id
        """
        if not dataset_id:
            raise ValidationError("datasetId is required")
        if not user_id:
            raise ValidationError("userId is required")

        dataset = await self._store.fetch_dataset(dataset_id)
        if dataset is None or dataset.user_id != user_id:
            raise DatasetNotFoundError(dataset_id)

        handler = self._handlers.get(dataset.dataset_type)
        if handler is None:
            raise ValidationError(f"Unsupported dataset type: {dataset.dataset_type}")

        config = ShopifyConfig.from_source_config(dataset.source_config)
        definition = await handler.load(self._store, dataset)

        async with self._lock:
            existing = self._in_flight.get(dataset.id)
            if existing is not None:
                raise ExecutionConflictError(dataset.id, existing)
            execution_id = await self._store.create_execution(
                dataset_id=dataset.id, user_id=user_id
            )
            self._in_flight[dataset.id] = execution_id

        task = asyncio.create_task(
            self._run(execution_id, dataset, config, handler, definition),
            name=f"dataset-execution-{execution_id}",
        )
        self._track_task(execution_id, task)

        logger.info(
            "Dispatched %s dataset %s as execution %s",
            dataset.dataset_type.value,
            dataset.id,
            execution_id,
        )
        return execution_id

    async def _run(
        self,
        execution_id: str,
        dataset: Dataset,
        config: ShopifyConfig,
        handler: DatasetHandler,
        definition: Any,
    ) -> None:
        counter = ApiCallCounter()
        started = time.perf_counter()
        try:
            if not await self._store.mark_running(execution_id):
                logger.warning(
                    "Execution %s was no longer pending; not running it", execution_id
                )
                return

            async with self._client_factory(config, counter) as client:
                outcome = await handler.run(
                    client, dataset, definition, delay_seconds=self._delay_seconds
                )

            elapsed_ms = int((time.perf_counter() - started) * 1000)
            recorded = await self._store.mark_completed(
                execution_id,
                row_count=len(outcome.rows),
                execution_time_ms=elapsed_ms,
                api_call_count=counter.count,
                data=outcome.rows,
                metadata=outcome.metadata,
            )
            if recorded:
                logger.info(
                    "Execution %s completed: %d rows, %d API calls, %d ms",
                    execution_id,
                    len(outcome.rows),
                    counter.count,
                    elapsed_ms,
                )
            else:
                logger.warning(
                    "Execution %s finished but was no longer running (reset?)",
                    execution_id,
                )

        except asyncio.CancelledError:
            logger.warning("Execution %s cancelled", execution_id)
            await self._record_failure(execution_id, "Execution cancelled", counter)
            raise
        except Exception as e:
            logger.exception("Execution %s failed", execution_id)
            await self._record_failure(
                execution_id, str(e) or e.__class__.__name__, counter
            )
        finally:
            async with self._lock:
                if self._in_flight.get(dataset.id) == execution_id:
                    del self._in_flight[dataset.id]

    async def _record_failure(
        self, execution_id: str, message: str, counter: ApiCallCounter
    ) -> None:
        try:
            await self._store.mark_failed(
                execution_id, error_message=message, api_call_count=counter.count
            )
        except Exception:
            # The row stays pending/running; reset_stuck recovers it.
            logger.exception("Could not record failure for execution %s", execution_id)

    async def reset_stuck(
        self,
        *,
        user_id: str,
        dataset_id: Optional[str] = None,
        execution_id: Optional[str] = None,
    ) -> ResetResult:
        """
        Force stuck executions to failed.

        With `execution_id` that single execution is reset regardless of age;
        otherwise the dataset's executions older than STUCK_EXECUTION_MINUTES.
        """
        if dataset_id is not None:
            dataset = await self._store.fetch_dataset(dataset_id)
            if dataset is None or dataset.user_id != user_id:
                raise DatasetNotFoundError(dataset_id)

        reset_ids = await self._store.reset_stuck_executions(
            dataset_id=dataset_id,
            execution_id=execution_id,
            user_id=user_id if execution_id is not None else None,
            older_than_minutes=settings.STUCK_EXECUTION_MINUTES,
        )

        async with self._lock:
            for ds, ex in list(self._in_flight.items()):
                if ex in reset_ids:
                    del self._in_flight[ds]
        for ex in reset_ids:
            task = self._tasks.get(ex)
            if task is not None and not task.done():
                task.cancel()

        if reset_ids:
            logger.info("Reset %d stuck execution(s): %s", len(reset_ids), reset_ids)
        return ResetResult(reset_count=len(reset_ids), reset_ids=reset_ids)

    def in_flight(self) -> dict[str, str]:
        return dict(self._in_flight)

    async def wait_for(self, execution_id: str, timeout: Optional[float] = None) -> None:
        """Wait for a dispatched execution's task (scripts and tests)."""
        task = self._tasks.get(execution_id)
        if task is not None:
            await asyncio.wait_for(asyncio.shield(task), timeout)

    async def shutdown(self, *, timeout_seconds: float = 5.0) -> None:
        """Cancel in-flight executions; they are recorded as failed."""
        tasks = list(self._background_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks, timeout=timeout_seconds)


orchestrator = DatasetOrchestrator()
