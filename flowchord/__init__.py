"""FlowChord - workflow and pipeline execution engine.

FlowChord runs user-authored workflow graphs and linear data pipelines,
drains agent jobs through an LLM-backed runner, and re-triggers runs from
cron schedules and signed webhooks.

Example:
    >>> from flowchord import FlowRuntime
    >>> async with FlowRuntime() as runtime:
    ...     result = await runtime.run_pipeline("pipeline-1", {}, user_id="u1")
    >>> print(result.output)
"""

__version__ = "0.1.0"

# Configuration
from flowchord.config import Settings, get_settings
from flowchord.logging_config import setup_logging

# Models and definitions
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
from flowchord.core.definitions import (
    PipelineDefinition,
    WorkflowDefinition,
    load_pipeline_definition,
    load_workflow_definition,
)

# Services
from flowchord.core.agent_runner import AgentRunner
from flowchord.core.dispatch import ResourceDispatcher
from flowchord.core.jobs import AgentJobs
from flowchord.core.pipeline import PipelineExecutor
from flowchord.core.queue import JobQueue
from flowchord.core.scheduler import ResourceScheduler, calculate_next_run, validate_cron_expression
from flowchord.core.webhooks import WebhookDispatcher, sign_payload
from flowchord.core.workflow import WorkflowExecutor
from flowchord.runtime import FlowRuntime

# Error exports
from flowchord.errors.exceptions import (
    AgentJobFailedError,
    AgentTimeoutError,
    CircularDependencyError,
    ConfigurationError,
    ConnectorError,
    DefinitionError,
    ExecutionError,
    FlowChordError,
    InvalidAgentTypeError,
    InvalidCronExpressionError,
    MissingAPIKeyError,
    NodeExecutionError,
    ProviderError,
    ResourceNotActiveError,
    ResourceNotFoundError,
    StepExecutionError,
    WebhookSignatureError,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    "get_settings",
    "setup_logging",
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
    # Services
    "AgentJobs",
    "AgentRunner",
    "FlowRuntime",
    "JobQueue",
    "PipelineExecutor",
    "ResourceDispatcher",
    "ResourceScheduler",
    "WebhookDispatcher",
    "WorkflowExecutor",
    "calculate_next_run",
    "sign_payload",
    "validate_cron_expression",
    # Errors
    "AgentJobFailedError",
    "AgentTimeoutError",
    "CircularDependencyError",
    "ConfigurationError",
    "ConnectorError",
    "DefinitionError",
    "ExecutionError",
    "FlowChordError",
    "InvalidAgentTypeError",
    "InvalidCronExpressionError",
    "MissingAPIKeyError",
    "NodeExecutionError",
    "ProviderError",
    "ResourceNotActiveError",
    "ResourceNotFoundError",
    "StepExecutionError",
    "WebhookSignatureError",
]
