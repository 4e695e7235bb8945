"""Pytest configuration and fixtures for FlowChord tests."""

from __future__ import annotations

import inspect
from typing import Any, Callable

import pytest
import pytest_asyncio

from flowchord.config import Settings
from flowchord.core.models import (
    Agent,
    AgentConfig,
    Collection,
    PipelineRecord,
    ResourceStatus,
    WorkflowRecord,
)
from flowchord.llm.base import ChatMessage, Completion, CompletionProvider
from flowchord.rag.embeddings import HashEmbeddingProvider
from flowchord.runtime import FlowRuntime
from flowchord.store.memory import MemoryStore
from flowchord.telemetry.metrics import MetricsRecorder

USER_ID = "user-1"


class FakeSleep:
    """Awaitable sleep that returns immediately and records every call.

    ``on_call`` receives the 1-based call number and may be async.
    """

    def __init__(self, on_call: Callable[[int], Any] | None = None) -> None:
        self.calls: list[float] = []
        self.on_call = on_call

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.on_call is not None:
            result = self.on_call(len(self.calls))
            if inspect.isawaitable(result):
                await result


class FakeCompletionProvider(CompletionProvider):
    """Completion provider returning a canned answer."""

    def __init__(
        self,
        content: str = "Mock response",
        model: str | None = None,
        total_tokens: int = 15,
        error: Exception | None = None,
    ) -> None:
        self._content = content
        self._model = model
        self._total_tokens = total_tokens
        self._error = error
        self.calls: list[dict[str, Any]] = []

    @property
    def provider_name(self) -> str:
        return "fake"

    async def complete(
        self,
        messages: list[ChatMessage],
        *,
        model: str,
        temperature: float,
    ) -> Completion:
        self.calls.append({"messages": list(messages), "model": model, "temperature": temperature})
        if self._error is not None:
            raise self._error
        return Completion(
            content=self._content,
            model=self._model or model,
            usage={
                "prompt_tokens": 10,
                "completion_tokens": self._total_tokens - 10,
                "total_tokens": self._total_tokens,
            },
            finish_reason="stop",
        )


class Seeder:
    """Creates ACTIVE resources owned by ``USER_ID``."""

    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def agent(self, **config: Any) -> Agent:
        status = config.pop("status", ResourceStatus.ACTIVE)
        code = config.pop("code", None)
        agent = Agent(user_id=USER_ID, status=status, code=code, config=AgentConfig(**config))
        return await self.store.agents.save(agent)

    async def pipeline(self, steps: list[dict[str, Any]], **fields: Any) -> PipelineRecord:
        fields.setdefault("user_id", USER_ID)
        pipeline = PipelineRecord(definition={"steps": steps}, **fields)
        return await self.store.pipelines.save(pipeline)

    async def workflow(
        self,
        nodes: list[dict[str, Any]],
        edges: list[dict[str, Any]] | None = None,
        **fields: Any,
    ) -> WorkflowRecord:
        fields.setdefault("user_id", USER_ID)
        workflow = WorkflowRecord(definition={"nodes": nodes, "edges": edges or []}, **fields)
        return await self.store.workflows.save(workflow)

    async def collection(self, **fields: Any) -> Collection:
        fields.setdefault("user_id", USER_ID)
        fields.setdefault("dimensions", 32)
        return await self.store.collections.save(Collection(**fields))


@pytest.fixture
def user_id() -> str:
    return USER_ID


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the developer's environment."""
    return Settings(
        openai_api_key="",
        embedding_provider="hash",
        store_backend="memory",
        scheduler_enabled=False,
        rag_min_score=0.0,
    )


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def metrics(store: MemoryStore) -> MetricsRecorder:
    return MetricsRecorder(store.metrics)


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def sleep_factory() -> type[FakeSleep]:
    """Build a FakeSleep with an ``on_call`` hook."""
    return FakeSleep


@pytest.fixture
def provider_factory() -> type[FakeCompletionProvider]:
    return FakeCompletionProvider


@pytest.fixture
def provider() -> FakeCompletionProvider:
    return FakeCompletionProvider()


@pytest.fixture
def seed(store: MemoryStore) -> Seeder:
    return Seeder(store)


@pytest_asyncio.fixture
async def runtime(settings, store, provider, fake_sleep):
    """Fully wired runtime on the in-memory store with fake LLM and clock."""
    runtime = FlowRuntime(
        settings,
        store=store,
        provider=provider,
        embeddings=HashEmbeddingProvider(),
        sleep=fake_sleep,
    )
    yield runtime
    await runtime.shutdown()
