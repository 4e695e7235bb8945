"""Composition root.

``FlowRuntime`` builds every service from ``Settings`` and wires them
together. HTTP or CLI layers hold one runtime and call its methods instead
of reaching for module-level singletons.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from flowchord.config import Settings, get_settings
from flowchord.connectors.base import ConnectorRegistry
from flowchord.connectors.sources import SourceReader
from flowchord.core.agent_runner import AgentRunner
from flowchord.core.dispatch import ResourceDispatcher
from flowchord.core.jobs import AgentJobs, SleepFn
from flowchord.core.models import ExecutionResult, Job, JobRequest
from flowchord.core.pipeline import PipelineExecutor
from flowchord.core.queue import JobQueue
from flowchord.core.scheduler import ResourceScheduler
from flowchord.core.webhooks import WebhookDispatcher
from flowchord.core.workflow import WorkflowExecutor
from flowchord.llm.base import CompletionProvider
from flowchord.llm.openai_compat import OpenAICompatibleProvider
from flowchord.rag.embeddings import EmbeddingProvider, HashEmbeddingProvider, OpenAICompatibleEmbeddings
from flowchord.rag.search import VectorSearch
from flowchord.store import Store, create_store
from flowchord.store.sql import SQLStore
from flowchord.telemetry.metrics import MetricsRecorder

logger = logging.getLogger(__name__)


def build_completion_provider(settings: Settings) -> CompletionProvider | None:
    """OpenAI-compatible provider, or None when no API key is configured."""
    if not settings.has_llm_key:
        logger.warning("OpenAI API key not configured; LLM agents will fail")
        return None
    return OpenAICompatibleProvider(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        timeout=settings.llm_timeout,
    )


def build_embedding_provider(settings: Settings) -> EmbeddingProvider:
    """Embedding provider for the configured backend, falling back to hashing."""
    if settings.embedding_provider == "hash":
        return HashEmbeddingProvider()
    if not settings.has_llm_key:
        logger.warning("OpenAI API key not configured. Falling back to hash-based embedding.")
        return HashEmbeddingProvider()
    return OpenAICompatibleEmbeddings(
        api_key=settings.openai_api_key,
        model=settings.embedding_model,
        base_url=settings.openai_base_url,
    )


class FlowRuntime:
    """Owns the job queue, executors, scheduler and webhook dispatcher.

    Example:
        async with FlowRuntime() as runtime:
            result = await runtime.run_workflow("wf-1", {"topic": "llamas"}, user_id="u1")
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: Store | None = None,
        provider: CompletionProvider | None = None,
        embeddings: EmbeddingProvider | None = None,
        connectors: ConnectorRegistry | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        """Initialize runtime.

        Args:
            settings: Engine settings (default: ``get_settings()``).
            store: Persistence (default: built from ``store_backend``).
            provider: Completion provider (default: OpenAI-compatible when a key is set).
            embeddings: Embedding provider (default: from ``embedding_provider``).
            connectors: Registry of external connectors for pipeline sources.
            sleep: Awaitable sleep used by job waits and delay nodes.
        """
        self.settings = settings or get_settings()
        self.store = store or create_store(
            self.settings.store_backend,
            self.settings.database_url,
            echo=self.settings.db_echo,
        )
        self.metrics = MetricsRecorder(self.store.metrics)
        self.queue = JobQueue()
        self.jobs = AgentJobs(
            self.store,
            self.queue,
            poll_interval=self.settings.job_poll_interval,
            max_attempts=self.settings.job_poll_attempts,
            sleep=sleep,
        )

        self.embeddings = embeddings or build_embedding_provider(self.settings)
        search = VectorSearch(self.store.collections, self.store.vectors)
        self.runner = AgentRunner(
            self.store,
            self.metrics,
            provider=provider or build_completion_provider(self.settings),
            embeddings=self.embeddings,
            search=search,
            settings=self.settings,
        )
        self.queue.set_handler(self.runner)

        self.pipelines = PipelineExecutor(
            self.store,
            self.jobs,
            self.metrics,
            sources=SourceReader(self.store, connectors),
            embeddings=self.embeddings,
            search=search,
        )
        self.workflows = WorkflowExecutor(
            self.store,
            self.jobs,
            self.metrics,
            default_delay_ms=self.settings.default_delay_ms,
            sleep=sleep,
        )
        self.dispatcher = ResourceDispatcher(self.workflows, self.pipelines)
        self.scheduler = ResourceScheduler(
            self.store,
            self.dispatcher,
            resync_interval=self.settings.scheduler_resync_interval,
            misfire_grace_time=self.settings.scheduler_misfire_grace_time,
        )
        self.webhooks = WebhookDispatcher(
            self.store,
            self.dispatcher,
            base_url=self.settings.webhook_base_url,
            require_signature=self.settings.webhook_require_signature,
        )

    async def start(self) -> None:
        """Create tables for SQL stores and start the scheduler."""
        if isinstance(self.store, SQLStore):
            await self.store.init_db()
        if self.settings.scheduler_enabled:
            await self.scheduler.start()
        logger.info("%s runtime started", self.settings.app_name)

    async def shutdown(self) -> None:
        await self.scheduler.shutdown()
        await self.queue.shutdown()
        await self.store.close()
        logger.info("%s runtime stopped", self.settings.app_name)

    async def __aenter__(self) -> FlowRuntime:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    def enqueue_agent_job(
        self,
        execution_id: str,
        agent_id: str,
        user_id: str | None = None,
        input: Any = None,
    ) -> None:
        """Queue a job whose PENDING record the caller already created."""
        self.queue.enqueue(
            JobRequest(execution_id=execution_id, agent_id=agent_id, user_id=user_id, input=input)
        )

    async def submit_agent_job(self, agent_id: str, input: Any = None, user_id: str | None = None) -> Job:
        """Create a PENDING job record and queue it."""
        return await self.jobs.submit(agent_id, input, user_id)

    async def run_workflow(
        self, workflow_id: str, input: Any = None, user_id: str | None = None
    ) -> ExecutionResult:
        return await self.workflows.run(workflow_id, input, user_id)

    async def run_pipeline(
        self, pipeline_id: str, input: Any = None, user_id: str | None = None
    ) -> ExecutionResult:
        return await self.pipelines.run(pipeline_id, input, user_id)
