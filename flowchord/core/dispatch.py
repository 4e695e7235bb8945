"""Routes a triggered run to the workflow or pipeline executor."""

from __future__ import annotations

from typing import Any

from flowchord.core.models import ExecutionResult
from flowchord.core.pipeline import PipelineExecutor
from flowchord.core.workflow import WorkflowExecutor
from flowchord.errors.exceptions import DefinitionError


class ResourceDispatcher:
    """Invokes the executor matching a ``resource_type``."""

    def __init__(self, workflows: WorkflowExecutor, pipelines: PipelineExecutor) -> None:
        self._workflows = workflows
        self._pipelines = pipelines

    async def dispatch(
        self,
        resource_type: str,
        resource_id: str,
        input: Any,
        user_id: str | None,
    ) -> ExecutionResult:
        if resource_type == "workflow":
            return await self._workflows.run(resource_id, input, user_id)
        if resource_type == "pipeline":
            return await self._pipelines.run(resource_id, input, user_id)
        raise DefinitionError(f"Unknown resource type: {resource_type}")
