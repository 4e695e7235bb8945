"""Pipeline executor.

Runs a pipeline's steps strictly in order. Each step reads ``context.data``
and its result replaces it for the next step; results are also stored under
the step's ``outputVariable`` when one is declared. The first failing step
halts the run, and the partial log and record tally are returned in a
failed ``ExecutionResult``. Nothing is retried at this layer.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Mapping
from typing import Any

from flowchord.connectors.sources import SourceReader
from flowchord.core.context import ExecutionContext
from flowchord.core.definitions import (
    AgentStep,
    AggregateStep,
    ConnectorStep,
    FilterStep,
    PipelineDefinition,
    TransformStep,
    VectorStep,
    load_pipeline_definition,
)
from flowchord.core.jobs import AgentJobs
from flowchord.core.models import (
    ExecutionResult,
    PipelineRecord,
    ResourceStatus,
    VectorRecord,
    generate_id,
)
from flowchord.core.predicates import compare
from flowchord.errors.exceptions import (
    DefinitionError,
    ResourceNotActiveError,
    ResourceNotFoundError,
    StepExecutionError,
)
from flowchord.rag.embeddings import EmbeddingProvider
from flowchord.rag.search import VectorSearch
from flowchord.store.base import Store
from flowchord.telemetry.metrics import MetricsRecorder
from flowchord.tracking.pricing import DEFAULT_MODEL, calculate_cost

logger = logging.getLogger(__name__)


def _field(item: Any, name: str | None) -> Any:
    if name is None or not isinstance(item, Mapping):
        return None
    return item.get(name)


def _to_number(value: Any) -> int | float:
    """Parse a value as a number, treating anything unparseable as 0."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return 0 if math.isnan(value) else value
    try:
        return int(str(value).strip())
    except ValueError:
        pass
    try:
        number = float(str(value).strip())
    except ValueError:
        return 0
    return 0 if math.isnan(number) else number


def aggregate(data: list[Any], operation: str, field: str | None) -> Any:
    """Reduce a list of records.

    Unknown operations return the data unchanged. ``min`` and ``max`` of an
    empty list are ``None``.
    """
    if operation == "count":
        return {"count": len(data)}

    if operation == "groupBy":
        grouped: dict[str, list[Any]] = {}
        for item in data:
            grouped.setdefault(str(_field(item, field)), []).append(item)
        return grouped

    numbers = [_to_number(_field(item, field)) for item in data]
    if operation == "sum":
        return {"sum": sum(numbers)}
    if operation == "average":
        return {"average": sum(numbers) / len(numbers) if numbers else 0}
    if operation == "min":
        return {"min": min(numbers) if numbers else None}
    if operation == "max":
        return {"max": max(numbers) if numbers else None}
    return data


def _item_text(item: Any) -> str:
    if isinstance(item, str):
        return item
    if isinstance(item, Mapping):
        text = item.get("text") or item.get("content")
        if text:
            return str(text)
    return json.dumps(item, default=str)


class PipelineExecutor:
    """Executes stored pipelines.

    Example:
        >>> executor = PipelineExecutor(store, jobs, metrics)
        >>> result = await executor.run("pipeline-1", {}, user_id="u1")
        >>> result.success, result.records_processed
        (True, 1)
    """

    def __init__(
        self,
        store: Store,
        jobs: AgentJobs,
        metrics: MetricsRecorder,
        *,
        sources: SourceReader | None = None,
        embeddings: EmbeddingProvider | None = None,
        search: VectorSearch | None = None,
    ) -> None:
        self._store = store
        self._jobs = jobs
        self._metrics = metrics
        self._sources = sources or SourceReader(store)
        self._embeddings = embeddings
        self._search = search or VectorSearch(store.collections, store.vectors)

    async def run(
        self,
        pipeline_id: str,
        input: Any = None,
        user_id: str | None = None,
    ) -> ExecutionResult:
        """Load, validate and execute a stored pipeline.

        Raises:
            ResourceNotFoundError: If the pipeline does not exist.
            ResourceNotActiveError: If the pipeline is not ACTIVE.
            DefinitionError: If the definition is malformed or has no steps.
        """
        pipeline = await self._store.pipelines.get_by_id(pipeline_id)
        if pipeline is None:
            raise ResourceNotFoundError("Pipeline", pipeline_id)
        if pipeline.status != ResourceStatus.ACTIVE:
            raise ResourceNotActiveError("Pipeline", pipeline_id)

        definition = load_pipeline_definition(pipeline.definition)
        return await self.execute(definition, input, user_id, pipeline=pipeline)

    async def execute(
        self,
        definition: PipelineDefinition,
        input: Any = None,
        user_id: str | None = None,
        *,
        pipeline: PipelineRecord | None = None,
    ) -> ExecutionResult:
        """Execute an already validated definition."""
        if not definition.steps:
            raise DefinitionError("Pipeline has no steps")

        ctx = ExecutionContext.for_input({} if input is None else input, user_id)
        current = 0

        try:
            for index, step in enumerate(definition.steps):
                current = index
                ctx.record(
                    step=index,
                    step_type=step.type,
                    message=f"Executing step {index + 1}: {step.display_name}",
                )
                logger.debug("Pipeline step %d (%s) started", index + 1, step.type)

                result = await self._execute_step(index, step, ctx)
                if result is not None:
                    if step.output_variable:
                        ctx.variables[step.output_variable] = result
                    ctx.data = result

                processed = self._records_in(step, result)
                ctx.records_processed += processed
                ctx.record(
                    step=index,
                    step_type=step.type,
                    message=f"Completed step {index + 1}",
                    records_processed=processed,
                )

        except Exception as e:
            step_type = definition.steps[current].type
            logger.warning("Pipeline step %d (%s) failed: %s", current + 1, step_type, e)
            ctx.record(step=current, step_type=step_type, error=str(e))
            await self._record_metric(pipeline, ctx, error=e)
            return ExecutionResult(
                success=False,
                error=str(e),
                logs=ctx.log,
                records_processed=ctx.records_processed,
            )

        await self._record_metric(pipeline, ctx)
        return ExecutionResult(
            success=True,
            output=ctx.data,
            logs=ctx.log,
            records_processed=ctx.records_processed,
        )

    @staticmethod
    def _records_in(step: Any, result: Any) -> int:
        # Source reads are not counted as processed records
        if isinstance(step, ConnectorStep):
            return 0
        return len(result) if isinstance(result, list) else 1

    async def _execute_step(self, index: int, step: Any, ctx: ExecutionContext) -> Any:
        if isinstance(step, ConnectorStep):
            return await self._sources.read(step.connector, step.config)
        if isinstance(step, TransformStep):
            return self._transform(step, ctx)
        if isinstance(step, FilterStep):
            return self._filter(step, ctx.data)
        if isinstance(step, AggregateStep):
            if step.aggregate is None or not isinstance(ctx.data, list):
                return ctx.data
            return aggregate(ctx.data, step.aggregate.operation, step.aggregate.field)
        if isinstance(step, AgentStep):
            return await self._agent(step, ctx)
        if isinstance(step, VectorStep):
            return await self._vector(index, step, ctx)
        raise StepExecutionError(f"Unknown step type: {step.type}", step_index=index)

    def _transform(self, step: TransformStep, ctx: ExecutionContext) -> Any:
        compiled = step.compiled
        if compiled is None:
            return ctx.data
        if isinstance(ctx.data, list):
            return [compiled.apply(ctx.variables, item) for item in ctx.data]
        return compiled.apply(ctx.variables, ctx.data)

    def _filter(self, step: FilterStep, data: Any) -> Any:
        criteria = step.filter
        if criteria is None or not isinstance(data, list):
            return data
        return [
            item
            for item in data
            if compare(_field(item, criteria.field), criteria.operator, criteria.value)
        ]

    async def _agent(self, step: AgentStep, ctx: ExecutionContext) -> Any:
        agent_input = step.input if step.input else ctx.data
        job = await self._jobs.run(step.agent_id, agent_input, ctx.user_id)
        ctx.counters.add_usage(job.output)
        return job.output

    async def _vector(self, index: int, step: VectorStep, ctx: ExecutionContext) -> Any:
        collection = await self._store.collections.find_owned(step.collection_id, ctx.user_id)
        if collection is None:
            raise StepExecutionError("Collection not found or not active", step_index=index)
        if self._embeddings is None:
            raise StepExecutionError("No embedding provider configured", step_index=index)

        if step.operation == "search":
            if not step.query:
                raise StepExecutionError("Search query not specified", step_index=index)
            query_vector = await self._embeddings.embed(step.query)
            hits = await self._search.search(
                collection.id, query_vector, limit=step.limit, collection=collection
            )
            return [hit.model_dump() for hit in hits]

        data = ctx.data
        if not isinstance(data, list):
            return {"vectorsAdded": 0}

        texts = [_item_text(item) for item in data]
        embeddings = await self._embeddings.embed_batch(texts)
        for item, text, vector in zip(data, texts, embeddings):
            await self._store.vectors.add(
                VectorRecord(
                    collection_id=collection.id,
                    vector=vector,
                    text=text,
                    metadata=dict(item) if isinstance(item, Mapping) else None,
                )
            )
        await self._store.collections.increment_vector_count(collection.id, len(texts))
        logger.info("Added %d vectors to collection %s", len(texts), collection.id)
        return {"vectorsAdded": len(texts)}

    async def _record_metric(
        self,
        pipeline: PipelineRecord | None,
        ctx: ExecutionContext,
        error: Exception | None = None,
    ) -> None:
        if pipeline is None:
            return
        await self._metrics.record(
            resource_type="pipeline",
            resource_id=pipeline.id,
            execution_id=generate_id(),
            user_id=ctx.user_id or pipeline.user_id,
            organization_id=pipeline.organization_id,
            duration=ctx.elapsed_ms,
            api_calls=ctx.counters.api_calls,
            tokens_used=ctx.counters.tokens_used,
            cost=None if error else calculate_cost(ctx.counters.tokens_used, DEFAULT_MODEL),
            status="FAILED" if error else "COMPLETED",
            error_type=type(error).__name__ if error else None,
        )
