"""Agent runner: executes one queued agent job.

Job lifecycle is PENDING -> RUNNING -> COMPLETED | FAILED. The runner owns
the job record from the moment it is dequeued. Any error marks the job
FAILED, records a FAILED metric and is re-raised so the queue logs it.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from flowchord.config import Settings, get_settings
from flowchord.core.models import Agent, AgentConfig, JobRequest, JobStatus, ResourceStatus, utcnow
from flowchord.errors.exceptions import (
    InvalidAgentTypeError,
    MissingAPIKeyError,
    ResourceNotActiveError,
    ResourceNotFoundError,
)
from flowchord.llm.base import ChatMessage, CompletionProvider
from flowchord.rag.embeddings import EmbeddingProvider
from flowchord.rag.search import VectorSearch
from flowchord.store.base import Store
from flowchord.telemetry.metrics import MetricsRecorder
from flowchord.tracking.pricing import DEFAULT_MODEL, calculate_cost

logger = logging.getLogger(__name__)

DEFAULT_QUERY = "Hello, please help me."

CUSTOM_AGENT_PLACEHOLDER = {
    "output": (
        "Custom agent execution not yet fully implemented. "
        "Code execution requires sandboxing for security."
    ),
    "note": "This feature requires additional security measures before production use.",
}


def extract_query(input: Any) -> str:
    """Pick the user query text out of a job input."""
    if isinstance(input, str):
        return input
    if isinstance(input, dict):
        return input.get("message") or input.get("prompt") or json.dumps(input)
    if input is not None and not isinstance(input, (int, float, bool)):
        return json.dumps(input, default=str)
    return DEFAULT_QUERY


def format_rag_context(texts: list[str | None]) -> str:
    """Render retrieved passages as a numbered system-prompt section."""
    if not texts:
        return ""
    lines = ["\n\nRelevant context from knowledge base:\n"]
    for index, text in enumerate(texts, start=1):
        lines.append(f"\n[{index}] {text or 'No text available'}\n")
    lines.append(
        "\nUse the above context to answer the user's question. "
        "If the context is relevant, prioritize it. If not, use your general knowledge."
    )
    return "".join(lines)


class AgentRunner:
    """Executes agent jobs drained from the job queue."""

    def __init__(
        self,
        store: Store,
        metrics: MetricsRecorder,
        *,
        provider: CompletionProvider | None = None,
        embeddings: EmbeddingProvider | None = None,
        search: VectorSearch | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._metrics = metrics
        self._provider = provider
        self._embeddings = embeddings
        self._search = search or VectorSearch(store.collections, store.vectors)
        self._settings = settings or get_settings()

    async def __call__(self, request: JobRequest) -> Any:
        return await self.execute(request)

    async def execute(self, request: JobRequest) -> Any:
        """Run one job to a terminal status.

        Returns:
            The job output.

        Raises:
            Exception: Whatever made the job fail, after it is recorded.
        """
        job_id = request.execution_id
        await self._store.jobs.update(job_id, status=JobStatus.RUNNING, started_at=utcnow())
        agent: Agent | None = None

        try:
            agent = await self._store.agents.get_by_id(request.agent_id)
            if agent is None:
                raise ResourceNotFoundError("Agent", request.agent_id)
            if agent.status != ResourceStatus.ACTIVE:
                raise ResourceNotActiveError("Agent", request.agent_id)

            started = time.monotonic()
            output = await self._dispatch(agent, request)
            duration = int((time.monotonic() - started) * 1000)

            usage = output.get("usage") if isinstance(output, dict) else None
            tokens_used = int((usage or {}).get("total_tokens") or 0)
            reported_model = output.get("model") if isinstance(output, dict) else None
            cost = calculate_cost(tokens_used, reported_model or agent.config.model or DEFAULT_MODEL)

            await self._store.jobs.update(
                job_id,
                status=JobStatus.COMPLETED,
                output=output,
                completed_at=utcnow(),
                duration=duration,
            )
            logger.info("Job %s completed in %dms (%d tokens)", job_id, duration, tokens_used)

            await self._metrics.record(
                resource_type="agent",
                resource_id=request.agent_id,
                execution_id=job_id,
                user_id=request.user_id,
                organization_id=agent.organization_id,
                duration=duration,
                api_calls=1,
                tokens_used=tokens_used,
                cost=cost,
                status=JobStatus.COMPLETED.value,
            )
            return output

        except Exception as e:
            duration = await self._elapsed_since_start(job_id)
            await self._store.jobs.update(
                job_id,
                status=JobStatus.FAILED,
                error=str(e),
                completed_at=utcnow(),
                duration=duration,
            )
            logger.warning("Job %s failed: %s", job_id, e)

            await self._metrics.record(
                resource_type="agent",
                resource_id=request.agent_id,
                execution_id=job_id,
                user_id=request.user_id,
                organization_id=agent.organization_id if agent else None,
                duration=duration or 0,
                api_calls=0,
                status=JobStatus.FAILED.value,
                error_type=type(e).__name__,
            )
            raise

    async def _elapsed_since_start(self, job_id: str) -> int | None:
        job = await self._store.jobs.get_by_id(job_id)
        if job is None or job.started_at is None:
            return None
        return max(0, int((utcnow() - job.started_at).total_seconds() * 1000))

    async def _dispatch(self, agent: Agent, request: JobRequest) -> Any:
        agent_type = agent.config.type
        if not agent_type or agent_type == "llm":
            return await self._run_llm(agent, request)
        if agent_type == "custom" and agent.code:
            # Arbitrary code is never executed
            return dict(CUSTOM_AGENT_PLACEHOLDER)
        raise InvalidAgentTypeError(agent_type)

    async def _run_llm(self, agent: Agent, request: JobRequest) -> dict[str, Any]:
        if self._provider is None:
            raise MissingAPIKeyError("OpenAI")

        config = agent.config
        model = config.model or self._settings.default_llm_model
        temperature = (
            config.temperature if config.temperature is not None else self._settings.llm_temperature
        )
        system_prompt = config.system_prompt or self._settings.default_system_prompt
        query = extract_query(request.input)

        if config.collection_id:
            rag_context = await self._retrieve_context(config, query)
            if rag_context:
                system_prompt = f"{system_prompt}\n\n{rag_context}"

        completion = await self._provider.complete(
            [ChatMessage.system(system_prompt), ChatMessage.user(query)],
            model=model,
            temperature=temperature,
        )
        return completion.to_output()

    async def _retrieve_context(self, config: AgentConfig, query: str) -> str:
        """Best-effort retrieval. Any failure yields an empty context."""
        try:
            if self._embeddings is None:
                logger.warning("No embedding provider configured, skipping retrieval")
                return ""
            collection = await self._store.collections.get_by_id(config.collection_id)
            if collection is None or collection.status != ResourceStatus.ACTIVE:
                return ""

            query_vector = await self._embeddings.embed(query)
            hits = await self._search.search(
                collection.id,
                query_vector,
                limit=config.rag_limit or self._settings.rag_limit,
                min_score=(
                    config.rag_min_score
                    if config.rag_min_score is not None
                    else self._settings.rag_min_score
                ),
                collection=collection,
            )
            return format_rag_context([hit.text for hit in hits])
        except Exception as e:
            logger.warning("RAG search failed, continuing without context: %s", e)
            return ""
