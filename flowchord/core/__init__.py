"""Execution engine core.

Only models and definitions are re-exported here; services live in their
own modules (``flowchord.core.pipeline``, ``flowchord.core.workflow`` ...)
and are re-exported from the top-level package.
"""

from flowchord.core.context import ExecutionContext, ExecutionCounters
from flowchord.core.definitions import (
    PipelineDefinition,
    WorkflowDefinition,
    load_pipeline_definition,
    load_workflow_definition,
)
from flowchord.core.models import (
    Agent,
    AgentConfig,
    Collection,
    DistanceMetric,
    ExecutionResult,
    Job,
    JobRequest,
    JobStatus,
    LogEntry,
    MetricEvent,
    PipelineRecord,
    ResourceStatus,
    Schedule,
    VectorRecord,
    Webhook,
    WorkflowRecord,
)

__all__ = [
    # Models
    "Agent",
    "AgentConfig",
    "Collection",
    "DistanceMetric",
    "ExecutionResult",
    "Job",
    "JobRequest",
    "JobStatus",
    "LogEntry",
    "MetricEvent",
    "PipelineRecord",
    "ResourceStatus",
    "Schedule",
    "VectorRecord",
    "Webhook",
    "WorkflowRecord",
    # Definitions
    "PipelineDefinition",
    "WorkflowDefinition",
    "load_pipeline_definition",
    "load_workflow_definition",
    # Context
    "ExecutionContext",
    "ExecutionCounters",
]
