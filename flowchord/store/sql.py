"""SQLAlchemy async store.

One table per entity. Free-form payloads (job input/output, definitions,
agent config, vectors) live in JSON columns. Each repository call opens a
short-lived session from the shared session factory and commits before
returning.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel
from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum as SAEnum,
    Float,
    Integer,
    String,
    Text,
    select,
    text,
    update,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

from flowchord.core.models import (
    Agent,
    Collection,
    DistanceMetric,
    Job,
    JobStatus,
    MetricEvent,
    PipelineRecord,
    ResourceStatus,
    Schedule,
    VectorRecord,
    Webhook,
    WorkflowRecord,
    utcnow,
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

logger = logging.getLogger(__name__)

Base = declarative_base()


def _status_column(enum_cls: type, default: Any) -> Any:
    return mapped_column(
        SAEnum(enum_cls, native_enum=False, length=20),
        nullable=False,
        default=default,
    )


class JobRow(Base):
    __tablename__ = "jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    agent_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    input: Mapped[Any] = mapped_column(JSON, nullable=True)
    status: Mapped[JobStatus] = _status_column(JobStatus, JobStatus.PENDING)
    output: Mapped[Any] = mapped_column(JSON, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)


class AgentRow(Base):
    __tablename__ = "agents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="Agent")
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    organization_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    status: Mapped[ResourceStatus] = _status_column(ResourceStatus, ResourceStatus.ACTIVE)
    config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    code: Mapped[str | None] = mapped_column(Text, nullable=True)


class WorkflowRow(Base):
    __tablename__ = "workflows"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    organization_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    status: Mapped[ResourceStatus] = _status_column(ResourceStatus, ResourceStatus.ACTIVE)
    definition: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)


class PipelineRow(Base):
    __tablename__ = "pipelines"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    organization_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    status: Mapped[ResourceStatus] = _status_column(ResourceStatus, ResourceStatus.ACTIVE)
    definition: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)


class ScheduleRow(Base):
    __tablename__ = "schedules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    resource_type: Mapped[str] = mapped_column(String(20), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(36), nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    cron_expression: Mapped[str] = mapped_column(String(255), nullable=False)
    timezone: Mapped[str] = mapped_column(String(50), nullable=False, default="UTC")
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    next_run: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_run: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class WebhookRow(Base):
    __tablename__ = "webhooks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    resource_type: Mapped[str] = mapped_column(String(20), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(36), nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    organization_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    url: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    secret: Mapped[str | None] = mapped_column(String(255), nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class CollectionRow(Base):
    __tablename__ = "collections"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    status: Mapped[ResourceStatus] = _status_column(ResourceStatus, ResourceStatus.ACTIVE)
    dimensions: Mapped[int] = mapped_column(Integer, nullable=False, default=1536)
    distance: Mapped[DistanceMetric] = _status_column(DistanceMetric, DistanceMetric.COSINE)
    vector_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class VectorRow(Base):
    __tablename__ = "vectors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    collection_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    vector: Mapped[list] = mapped_column(JSON, nullable=False)
    text: Mapped[str | None] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class MetricRow(Base):
    __tablename__ = "execution_metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    resource_type: Mapped[str] = mapped_column(String(20), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    execution_id: Mapped[str] = mapped_column(String(36), nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    organization_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    api_calls: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tokens_used: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


SessionFactory = async_sessionmaker[AsyncSession]


class _SQLTable:
    """Generic CRUD over one row class, converting to and from pydantic models."""

    row_class: type
    model_class: type[BaseModel]

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def _to_row(self, entity: BaseModel) -> Any:
        return self.row_class(**entity.model_dump())

    def _to_model(self, row: Any) -> Any:
        return self.model_class.model_validate(row)

    async def save(self, entity: Any) -> Any:
        async with self._session_factory() as session:
            await session.merge(self._to_row(entity))
            await session.commit()
        return entity

    async def get_by_id(self, entity_id: str) -> Any:
        async with self._session_factory() as session:
            row = await session.get(self.row_class, entity_id)
            return self._to_model(row) if row is not None else None

    async def update(self, entity_id: str, **fields: Any) -> Any:
        async with self._session_factory() as session:
            row = await session.get(self.row_class, entity_id)
            if row is None:
                return None
            for key, value in fields.items():
                setattr(row, key, value)
            await session.commit()
            return self._to_model(row)

    async def delete(self, entity_id: str) -> bool:
        async with self._session_factory() as session:
            row = await session.get(self.row_class, entity_id)
            if row is None:
                return False
            await session.delete(row)
            await session.commit()
            return True


class SQLJobRepository(_SQLTable, IJobRepository):
    row_class = JobRow
    model_class = Job

    async def create(self, job: Job) -> Job:
        async with self._session_factory() as session:
            session.add(self._to_row(job))
            await session.commit()
        return job


class SQLAgentRepository(_SQLTable, IAgentRepository):
    row_class = AgentRow
    model_class = Agent


class SQLWorkflowRepository(_SQLTable, IWorkflowRepository):
    row_class = WorkflowRow
    model_class = WorkflowRecord


class SQLPipelineRepository(_SQLTable, IPipelineRepository):
    row_class = PipelineRow
    model_class = PipelineRecord


class SQLScheduleRepository(_SQLTable, IScheduleRepository):
    row_class = ScheduleRow
    model_class = Schedule

    async def list_all_enabled(self) -> list[Schedule]:
        async with self._session_factory() as session:
            result = await session.execute(select(ScheduleRow).where(ScheduleRow.enabled.is_(True)))
            return [self._to_model(row) for row in result.scalars().all()]


class SQLWebhookRepository(_SQLTable, IWebhookRepository):
    row_class = WebhookRow
    model_class = Webhook


class SQLCollectionRepository(_SQLTable, ICollectionRepository):
    row_class = CollectionRow
    model_class = Collection

    async def find_owned(
        self,
        collection_id: str,
        user_id: str | None,
        status: ResourceStatus = ResourceStatus.ACTIVE,
    ) -> Optional[Collection]:
        stmt = select(CollectionRow).where(
            CollectionRow.id == collection_id,
            CollectionRow.user_id == user_id,
            CollectionRow.status == status,
        )
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return self._to_model(row) if row is not None else None

    async def increment_vector_count(self, collection_id: str, amount: int) -> None:
        stmt = (
            update(CollectionRow)
            .where(CollectionRow.id == collection_id)
            .values(vector_count=CollectionRow.vector_count + amount)
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()


class SQLVectorRepository(IVectorRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def add(self, vector: VectorRecord) -> VectorRecord:
        row = VectorRow(
            id=vector.id,
            collection_id=vector.collection_id,
            vector=vector.vector,
            text=vector.text,
            metadata_=vector.metadata,
            created_at=vector.created_at,
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
        return vector

    async def list_by_collection(self, collection_id: str) -> list[VectorRecord]:
        stmt = select(VectorRow).where(VectorRow.collection_id == collection_id)
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [
            VectorRecord(
                id=row.id,
                collection_id=row.collection_id,
                vector=row.vector,
                text=row.text,
                metadata=row.metadata_,
                created_at=row.created_at,
            )
            for row in rows
        ]


class SQLMetricRepository(IMetricRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def create(self, event: MetricEvent) -> MetricEvent:
        async with self._session_factory() as session:
            session.add(MetricRow(**event.model_dump()))
            await session.commit()
        return event

    async def list_by_resource(self, resource_type: str, resource_id: str) -> list[MetricEvent]:
        stmt = (
            select(MetricRow)
            .where(MetricRow.resource_type == resource_type, MetricRow.resource_id == resource_id)
            .order_by(MetricRow.id)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [MetricEvent.model_validate(row) for row in rows]


class SQLStore(Store):
    """Store backed by an async SQLAlchemy engine."""

    def __init__(self, database_url: str, *, echo: bool = False) -> None:
        self.engine = create_async_engine(database_url, echo=echo, future=True)
        self.session_factory: SessionFactory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        self.jobs = SQLJobRepository(self.session_factory)
        self.agents = SQLAgentRepository(self.session_factory)
        self.workflows = SQLWorkflowRepository(self.session_factory)
        self.pipelines = SQLPipelineRepository(self.session_factory)
        self.schedules = SQLScheduleRepository(self.session_factory)
        self.webhooks = SQLWebhookRepository(self.session_factory)
        self.collections = SQLCollectionRepository(self.session_factory)
        self.vectors = SQLVectorRepository(self.session_factory)
        self.metrics = SQLMetricRepository(self.session_factory)

    async def init_db(self) -> None:
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def raw_query(self, query: str) -> list[dict[str, Any]]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(text(query))
                return [dict(row._mapping) for row in result]
        except SQLAlchemyError as e:
            raise ConnectorError(f"Database query failed: {e}") from e

    async def close(self) -> None:
        await self.engine.dispose()
