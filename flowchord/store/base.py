"""Repository interfaces.

The engine only talks to persistence through these interfaces. Every
method is async; implementations decide how sessions and transactions are
scoped.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from flowchord.core.models import (
    Agent,
    Collection,
    Job,
    MetricEvent,
    PipelineRecord,
    ResourceStatus,
    Schedule,
    VectorRecord,
    Webhook,
    WorkflowRecord,
)


class IJobRepository(ABC):
    """Job repository interface."""

    @abstractmethod
    async def create(self, job: Job) -> Job:
        """Create job."""
        pass

    @abstractmethod
    async def get_by_id(self, job_id: str) -> Optional[Job]:
        """Get job by ID."""
        pass

    @abstractmethod
    async def update(self, job_id: str, **fields: Any) -> Optional[Job]:
        """Update job fields."""
        pass


class IAgentRepository(ABC):
    """Agent repository interface."""

    @abstractmethod
    async def save(self, agent: Agent) -> Agent:
        """Create or replace agent."""
        pass

    @abstractmethod
    async def get_by_id(self, agent_id: str) -> Optional[Agent]:
        """Get agent by ID."""
        pass


class IWorkflowRepository(ABC):
    """Workflow repository interface."""

    @abstractmethod
    async def save(self, workflow: WorkflowRecord) -> WorkflowRecord:
        """Create or replace workflow."""
        pass

    @abstractmethod
    async def get_by_id(self, workflow_id: str) -> Optional[WorkflowRecord]:
        """Get workflow by ID."""
        pass


class IPipelineRepository(ABC):
    """Pipeline repository interface."""

    @abstractmethod
    async def save(self, pipeline: PipelineRecord) -> PipelineRecord:
        """Create or replace pipeline."""
        pass

    @abstractmethod
    async def get_by_id(self, pipeline_id: str) -> Optional[PipelineRecord]:
        """Get pipeline by ID."""
        pass


class IScheduleRepository(ABC):
    """Schedule repository interface."""

    @abstractmethod
    async def save(self, schedule: Schedule) -> Schedule:
        """Create or replace schedule."""
        pass

    @abstractmethod
    async def get_by_id(self, schedule_id: str) -> Optional[Schedule]:
        """Get schedule by ID."""
        pass

    @abstractmethod
    async def list_all_enabled(self) -> list[Schedule]:
        """List all enabled schedules."""
        pass

    @abstractmethod
    async def update(self, schedule_id: str, **fields: Any) -> Optional[Schedule]:
        """Update schedule fields."""
        pass

    @abstractmethod
    async def delete(self, schedule_id: str) -> bool:
        """Delete schedule."""
        pass


class IWebhookRepository(ABC):
    """Webhook repository interface."""

    @abstractmethod
    async def save(self, webhook: Webhook) -> Webhook:
        """Create or replace webhook."""
        pass

    @abstractmethod
    async def get_by_id(self, webhook_id: str) -> Optional[Webhook]:
        """Get webhook by ID."""
        pass

    @abstractmethod
    async def update(self, webhook_id: str, **fields: Any) -> Optional[Webhook]:
        """Update webhook fields."""
        pass

    @abstractmethod
    async def delete(self, webhook_id: str) -> bool:
        """Delete webhook."""
        pass


class ICollectionRepository(ABC):
    """Vector collection repository interface."""

    @abstractmethod
    async def save(self, collection: Collection) -> Collection:
        """Create or replace collection."""
        pass

    @abstractmethod
    async def get_by_id(self, collection_id: str) -> Optional[Collection]:
        """Get collection by ID."""
        pass

    @abstractmethod
    async def find_owned(
        self,
        collection_id: str,
        user_id: str | None,
        status: ResourceStatus = ResourceStatus.ACTIVE,
    ) -> Optional[Collection]:
        """Get collection by ID only if it belongs to the user and has the status."""
        pass

    @abstractmethod
    async def increment_vector_count(self, collection_id: str, amount: int) -> None:
        """Atomically add to the collection's vector count."""
        pass


class IVectorRepository(ABC):
    """Vector repository interface."""

    @abstractmethod
    async def add(self, vector: VectorRecord) -> VectorRecord:
        """Store one vector."""
        pass

    @abstractmethod
    async def list_by_collection(self, collection_id: str) -> list[VectorRecord]:
        """List vectors in a collection."""
        pass


class IMetricRepository(ABC):
    """Execution metric repository interface."""

    @abstractmethod
    async def create(self, event: MetricEvent) -> MetricEvent:
        """Persist a metric event."""
        pass

    @abstractmethod
    async def list_by_resource(self, resource_type: str, resource_id: str) -> list[MetricEvent]:
        """List metric events for one resource."""
        pass


class Store(ABC):
    """Aggregate of all repositories used by the engine."""

    jobs: IJobRepository
    agents: IAgentRepository
    workflows: IWorkflowRepository
    pipelines: IPipelineRepository
    schedules: IScheduleRepository
    webhooks: IWebhookRepository
    collections: ICollectionRepository
    vectors: IVectorRepository
    metrics: IMetricRepository

    @abstractmethod
    async def raw_query(self, query: str) -> list[dict[str, Any]]:
        """Run a raw read query against the backing database."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None
