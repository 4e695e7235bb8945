"""Workflow executor.

Walks a workflow graph depth-first from its start node. A node with one
outgoing edge continues the same branch; a node with several fans out and
runs every target branch concurrently, joining on all of them. Branches
share the run's variable bag, log and counters. Each branch carries its own
immutable traversal path, so a node seen twice on the same path is a cycle
while the same node reached by two sibling branches is not.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from simpleeval import EvalWithCompoundTypes

from flowchord.core.context import ExecutionContext
from flowchord.core.definitions import (
    AgentNode,
    ConditionNode,
    ConditionSpec,
    DelayNode,
    EndNode,
    StartNode,
    TransformNode,
    WorkflowDefinition,
    load_workflow_definition,
)
from flowchord.core.jobs import AgentJobs
from flowchord.core.models import ExecutionResult, ResourceStatus, WorkflowRecord, generate_id
from flowchord.core.predicates import compare
from flowchord.errors.exceptions import (
    CircularDependencyError,
    DefinitionError,
    NodeExecutionError,
    ResourceNotActiveError,
    ResourceNotFoundError,
)
from flowchord.store.base import Store
from flowchord.telemetry.metrics import MetricsRecorder
from flowchord.tracking.pricing import DEFAULT_MODEL, calculate_cost

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[Any]]

# Whitelisted helpers for string condition expressions
SAFE_FUNCTIONS: dict[str, Any] = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "abs": abs,
    "min": min,
    "max": max,
    "any": any,
    "all": all,
}


class WorkflowExecutor:
    """Executes stored workflows.

    Example:
        >>> executor = WorkflowExecutor(store, jobs, metrics)
        >>> result = await executor.run("workflow-1", {"topic": "llamas"}, user_id="u1")
        >>> result.success
        True
    """

    def __init__(
        self,
        store: Store,
        jobs: AgentJobs,
        metrics: MetricsRecorder,
        *,
        default_delay_ms: int = 1000,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._store = store
        self._jobs = jobs
        self._metrics = metrics
        self._default_delay_ms = default_delay_ms
        self._sleep = sleep

    async def run(
        self,
        workflow_id: str,
        input: Any = None,
        user_id: str | None = None,
    ) -> ExecutionResult:
        """Load, validate and execute a stored workflow.

        Raises:
            ResourceNotFoundError: If the workflow does not exist.
            ResourceNotActiveError: If the workflow is not ACTIVE.
            DefinitionError: If the definition is malformed or has no nodes.
        """
        workflow = await self._store.workflows.get_by_id(workflow_id)
        if workflow is None:
            raise ResourceNotFoundError("Workflow", workflow_id)
        if workflow.status != ResourceStatus.ACTIVE:
            raise ResourceNotActiveError("Workflow", workflow_id)

        definition = load_workflow_definition(workflow.definition)
        return await self.execute(definition, input, user_id, workflow=workflow)

    async def execute(
        self,
        definition: WorkflowDefinition,
        input: Any = None,
        user_id: str | None = None,
        *,
        workflow: WorkflowRecord | None = None,
    ) -> ExecutionResult:
        """Execute an already validated definition."""
        start = definition.find_start_node()
        if start is None:
            raise DefinitionError("Workflow has no start node")

        ctx = ExecutionContext.for_input({} if input is None else input, user_id)
        try:
            output = await self._traverse(definition, start, ctx, frozenset())
        except Exception as e:
            logger.warning("Workflow run failed: %s", e)
            await self._record_metric(workflow, ctx, error=e)
            return ExecutionResult(success=False, error=str(e), logs=ctx.log)

        await self._record_metric(workflow, ctx)
        return ExecutionResult(success=True, output=output, logs=ctx.log)

    async def _traverse(
        self,
        definition: WorkflowDefinition,
        node: Any,
        ctx: ExecutionContext,
        path: frozenset[str],
    ) -> Any:
        """Run one branch until it ends or forks."""
        while True:
            if node.id in path:
                raise CircularDependencyError(node.id)
            path = path | {node.id}

            output = await self._execute_node(node, ctx)

            edges = definition.outgoing(node.id)
            if not edges:
                return output
            if len(edges) == 1:
                node = definition.get_node(edges[0].target)
                continue
            targets = [definition.get_node(edge.target) for edge in edges]
            return await self._fan_out(definition, targets, ctx, path)

    async def _fan_out(
        self,
        definition: WorkflowDefinition,
        targets: list[Any],
        ctx: ExecutionContext,
        path: frozenset[str],
    ) -> Any:
        logger.debug("Fanning out to %d branches", len(targets))
        tasks = [
            asyncio.create_task(self._traverse(definition, target, ctx, path))
            for target in targets
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            # One branch failed or we were cancelled; stop the siblings
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return results[0] if len(results) == 1 else list(results)

    async def _execute_node(self, node: Any, ctx: ExecutionContext) -> Any:
        ctx.record(
            node_id=node.id,
            node_type=node.type,
            message=f"Executing {node.type} node: {node.display_name}",
        )
        try:
            output = await self._dispatch(node, ctx)
        except Exception as e:
            ctx.record(node_id=node.id, node_type=node.type, error=str(e))
            raise

        ctx.record(
            node_id=node.id,
            node_type=node.type,
            message=f"Completed {node.type} node",
            output=output,
        )
        if node.data.output_variable:
            ctx.variables[node.data.output_variable] = output
        return output

    async def _dispatch(self, node: Any, ctx: ExecutionContext) -> Any:
        if isinstance(node, StartNode):
            return ctx.input
        if isinstance(node, EndNode):
            return dict(ctx.variables)
        if isinstance(node, AgentNode):
            return await self._agent(node, ctx)
        if isinstance(node, ConditionNode):
            return self._condition(node, ctx)
        if isinstance(node, DelayNode):
            delay_ms = node.data.delay_ms
            if delay_ms is None:
                delay_ms = self._default_delay_ms
            await self._sleep(delay_ms / 1000)
            return {"delayed": delay_ms}
        if isinstance(node, TransformNode):
            compiled = node.data.compiled
            if compiled is None:
                return dict(ctx.variables)
            return compiled.apply(ctx.variables)
        raise NodeExecutionError(f"Unknown node type: {node.type}", node_id=node.id)

    async def _agent(self, node: AgentNode, ctx: ExecutionContext) -> Any:
        agent_input = node.data.input if node.data.input else dict(ctx.variables)
        job = await self._jobs.run(node.data.agent_id, agent_input, ctx.user_id)
        ctx.counters.agent_executions += 1
        ctx.counters.add_usage(job.output)
        return job.output

    def _condition(self, node: ConditionNode, ctx: ExecutionContext) -> dict[str, Any]:
        condition = node.data.condition
        if isinstance(condition, ConditionSpec):
            value = ctx.variables.get(condition.variable)
            return {
                "condition": compare(value, condition.operator, condition.value),
                "value": value,
            }

        names = {
            **ctx.variables,
            "true": True,
            "false": False,
            "none": None,
            "True": True,
            "False": False,
            "None": None,
        }
        try:
            value = EvalWithCompoundTypes(names=names, functions=SAFE_FUNCTIONS).eval(condition)
        except Exception as e:
            logger.warning("Condition evaluation error for node %s: %s", node.id, e)
            value = None
        return {"condition": bool(value), "value": value}

    async def _record_metric(
        self,
        workflow: WorkflowRecord | None,
        ctx: ExecutionContext,
        error: Exception | None = None,
    ) -> None:
        if workflow is None:
            return
        await self._metrics.record(
            resource_type="workflow",
            resource_id=workflow.id,
            execution_id=generate_id(),
            user_id=ctx.user_id or workflow.user_id,
            organization_id=workflow.organization_id,
            duration=ctx.elapsed_ms,
            api_calls=ctx.counters.api_calls,
            tokens_used=ctx.counters.tokens_used,
            cost=None if error else calculate_cost(ctx.counters.tokens_used, DEFAULT_MODEL),
            status="FAILED" if error else "COMPLETED",
            error_type=type(error).__name__ if error else None,
        )
