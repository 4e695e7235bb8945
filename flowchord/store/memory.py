"""In-memory store for development and testing.

No external dependencies. Data is not persisted across restarts. Every
read returns a copy so callers cannot mutate stored state by accident.
"""

from __future__ import annotations

import asyncio
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel

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
from flowchord.errors.exceptions import ConnectorError
from flowchord.store.base import (
    IAgentRepository,
    ICollectionRepository,
    IJobRepository,
    IMetricRepository,
    IPipelineRepository,
    IScheduleRepository,
    IVectorRepository,
    IWebhookRepository,
    IWorkflowRepository,
    Store,
)

ModelT = TypeVar("ModelT", bound=BaseModel)


class _MemoryTable(Generic[ModelT]):
    """Dict of entities keyed by ``id``."""

    def __init__(self) -> None:
        self._rows: dict[str, ModelT] = {}

    async def save(self, entity: ModelT) -> ModelT:
        self._rows[entity.id] = entity.model_copy(deep=True)  # type: ignore[attr-defined]
        return entity

    async def get_by_id(self, entity_id: str) -> Optional[ModelT]:
        row = self._rows.get(entity_id)
        return row.model_copy(deep=True) if row is not None else None

    async def update(self, entity_id: str, **fields: Any) -> Optional[ModelT]:
        row = self._rows.get(entity_id)
        if row is None:
            return None
        updated = row.model_copy(update=fields)
        self._rows[entity_id] = updated
        return updated.model_copy(deep=True)

    async def delete(self, entity_id: str) -> bool:
        return self._rows.pop(entity_id, None) is not None

    def values(self) -> list[ModelT]:
        return [row.model_copy(deep=True) for row in self._rows.values()]


class MemoryJobRepository(_MemoryTable[Job], IJobRepository):
    async def create(self, job: Job) -> Job:
        return await self.save(job)


class MemoryAgentRepository(_MemoryTable[Agent], IAgentRepository):
    pass


class MemoryWorkflowRepository(_MemoryTable[WorkflowRecord], IWorkflowRepository):
    pass


class MemoryPipelineRepository(_MemoryTable[PipelineRecord], IPipelineRepository):
    pass


class MemoryScheduleRepository(_MemoryTable[Schedule], IScheduleRepository):
    async def list_all_enabled(self) -> list[Schedule]:
        return [schedule for schedule in self.values() if schedule.enabled]


class MemoryWebhookRepository(_MemoryTable[Webhook], IWebhookRepository):
    pass


class MemoryCollectionRepository(_MemoryTable[Collection], ICollectionRepository):
    def __init__(self) -> None:
        super().__init__()
        self._lock = asyncio.Lock()

    async def find_owned(
        self,
        collection_id: str,
        user_id: str | None,
        status: ResourceStatus = ResourceStatus.ACTIVE,
    ) -> Optional[Collection]:
        collection = await self.get_by_id(collection_id)
        if collection is None or collection.user_id != user_id or collection.status != status:
            return None
        return collection

    async def increment_vector_count(self, collection_id: str, amount: int) -> None:
        async with self._lock:
            row = self._rows.get(collection_id)
            if row is not None:
                self._rows[collection_id] = row.model_copy(
                    update={"vector_count": row.vector_count + amount}
                )


class MemoryVectorRepository(IVectorRepository):
    def __init__(self) -> None:
        self._by_collection: dict[str, list[VectorRecord]] = {}

    async def add(self, vector: VectorRecord) -> VectorRecord:
        self._by_collection.setdefault(vector.collection_id, []).append(vector)
        return vector

    async def list_by_collection(self, collection_id: str) -> list[VectorRecord]:
        return list(self._by_collection.get(collection_id, []))


class MemoryMetricRepository(IMetricRepository):
    def __init__(self) -> None:
        self.events: list[MetricEvent] = []

    async def create(self, event: MetricEvent) -> MetricEvent:
        self.events.append(event)
        return event

    async def list_by_resource(self, resource_type: str, resource_id: str) -> list[MetricEvent]:
        return [
            event
            for event in self.events
            if event.resource_type == resource_type and event.resource_id == resource_id
        ]


class MemoryStore(Store):
    """Dict-backed store."""

    def __init__(self) -> None:
        self.jobs = MemoryJobRepository()
        self.agents = MemoryAgentRepository()
        self.workflows = MemoryWorkflowRepository()
        self.pipelines = MemoryPipelineRepository()
        self.schedules = MemoryScheduleRepository()
        self.webhooks = MemoryWebhookRepository()
        self.collections = MemoryCollectionRepository()
        self.vectors = MemoryVectorRepository()
        self.metrics = MemoryMetricRepository()

    async def raw_query(self, query: str) -> list[dict[str, Any]]:
        raise ConnectorError("Database queries are not supported by the in-memory store")
