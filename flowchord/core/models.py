"""Entity and result models.

All entities use Pydantic for validation and serialization. Field names are
snake_case in Python and accept camelCase on input, matching the JSON the
editing UI stores.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def generate_id() -> str:
    """Generate unique ID."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Return current UTC time without timezone info (for SQLite compat)."""
    return datetime.now(UTC).replace(tzinfo=None)


ResourceType = Literal["workflow", "pipeline"]


class Entity(BaseModel):
    """Base for stored entities."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class JobStatus(str, Enum):
    """Agent job lifecycle: PENDING -> RUNNING -> COMPLETED | FAILED."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class ResourceStatus(str, Enum):
    """Lifecycle status shared by agents, workflows, pipelines and collections."""

    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    ARCHIVED = "ARCHIVED"


class DistanceMetric(str, Enum):
    """Similarity metric of a vector collection."""

    COSINE = "COSINE"
    EUCLIDEAN = "EUCLIDEAN"
    DOT_PRODUCT = "DOT_PRODUCT"


class Job(Entity):
    """One queued invocation of the agent runner."""

    id: str = Field(default_factory=generate_id)
    agent_id: str
    user_id: str | None = None
    input: Any = None
    status: JobStatus = JobStatus.PENDING
    output: Any = None
    error: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration: int | None = None  # milliseconds


class JobRequest(Entity):
    """Descriptor pushed onto the job queue."""

    execution_id: str
    agent_id: str
    user_id: str | None = None
    input: Any = None


class AgentConfig(Entity):
    """Agent runtime configuration."""

    type: str | None = None
    model: str | None = None
    temperature: float | None = None
    system_prompt: str | None = None
    collection_id: str | None = None
    rag_limit: int | None = None
    rag_min_score: float | None = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        extra="allow",
    )


class Agent(Entity):
    """Atomic unit of work backed by a completion provider."""

    id: str = Field(default_factory=generate_id)
    name: str = "Agent"
    user_id: str | None = None
    organization_id: str | None = None
    status: ResourceStatus = ResourceStatus.ACTIVE
    config: AgentConfig = Field(default_factory=AgentConfig)
    code: str | None = None


class WorkflowRecord(Entity):
    """Stored workflow with its raw graph definition."""

    id: str = Field(default_factory=generate_id)
    name: str = ""
    user_id: str | None = None
    organization_id: str | None = None
    status: ResourceStatus = ResourceStatus.ACTIVE
    definition: dict[str, Any] = Field(default_factory=dict)


class PipelineRecord(Entity):
    """Stored pipeline with its raw step list."""

    id: str = Field(default_factory=generate_id)
    name: str = ""
    user_id: str | None = None
    organization_id: str | None = None
    status: ResourceStatus = ResourceStatus.ACTIVE
    definition: dict[str, Any] = Field(default_factory=dict)


class Schedule(Entity):
    """Cron trigger bound to a workflow or pipeline."""

    id: str = Field(default_factory=generate_id)
    resource_type: ResourceType
    resource_id: str
    user_id: str | None = None
    cron_expression: str
    timezone: str = "UTC"
    enabled: bool = True
    next_run: datetime | None = None
    last_run: datetime | None = None


class Webhook(Entity):
    """Signed inbound trigger bound to a workflow or pipeline."""

    id: str = Field(default_factory=generate_id)
    name: str = ""
    resource_type: ResourceType
    resource_id: str
    user_id: str | None = None
    organization_id: str | None = None
    url: str = ""
    secret: str | None = None
    enabled: bool = True


class Collection(Entity):
    """Vector collection owned by a user."""

    id: str = Field(default_factory=generate_id)
    name: str = ""
    user_id: str | None = None
    status: ResourceStatus = ResourceStatus.ACTIVE
    dimensions: int = 1536
    distance: DistanceMetric = DistanceMetric.COSINE
    vector_count: int = 0


class VectorRecord(Entity):
    """One embedded text stored in a collection."""

    id: str = Field(default_factory=generate_id)
    collection_id: str
    vector: list[float]
    text: str | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=utcnow)


class MetricEvent(Entity):
    """Execution metric handed to the metrics sink."""

    resource_type: str
    resource_id: str
    execution_id: str
    user_id: str | None = None
    organization_id: str | None = None
    duration: int = 0
    api_calls: int = 0
    tokens_used: int | None = None
    cost: float | None = None
    status: str
    error_type: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class LogEntry(Entity):
    """One line of the ordered execution trace."""

    timestamp: datetime = Field(default_factory=utcnow)
    message: str | None = None
    node_id: str | None = None
    node_type: str | None = None
    step: int | None = None
    step_type: str | None = None
    output: Any = None
    records_processed: int | None = None
    error: str | None = None


class ExecutionResult(Entity):
    """Structured outcome of a workflow or pipeline run."""

    success: bool
    output: Any = None
    error: str | None = None
    logs: list[LogEntry] = Field(default_factory=list)
    records_processed: int | None = None
