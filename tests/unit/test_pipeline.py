"""Tests for the pipeline executor."""

from __future__ import annotations

import json

import httpx
import pytest

from flowchord.connectors.base import BaseConnector, ConnectorRegistry, ConnectorResult
from flowchord.connectors.sources import SourceReader
from flowchord.core.pipeline import PipelineExecutor, aggregate
from flowchord.core.models import ResourceStatus
from flowchord.errors.exceptions import DefinitionError, ResourceNotActiveError, ResourceNotFoundError
from flowchord.tracking.pricing import calculate_cost


def static(data):
    return {"type": "connector", "connector": "static", "config": {"data": data}}


class RecordingConnector(BaseConnector):
    """Returns the options it was read with."""

    async def test(self) -> ConnectorResult:
        return ConnectorResult(success=True)

    async def read(self, options=None):
        return [{"source": self.config.get("sheet"), "options": options}]

    async def write(self, data, options=None) -> ConnectorResult:
        return ConnectorResult(success=False, message="read only")


class TestAggregate:
    DATA = [{"n": 1, "g": "a"}, {"n": "2", "g": "b"}, {"n": 3.5, "g": "a"}, {"n": "abc", "g": None}]

    def test_count(self):
        assert aggregate(self.DATA, "count", None) == {"count": 4}

    def test_sum_parses_numeric_strings(self):
        assert aggregate(self.DATA, "sum", "n") == {"sum": 6.5}

    def test_average(self):
        assert aggregate(self.DATA, "average", "n") == {"average": 6.5 / 4}

    def test_min_max(self):
        assert aggregate(self.DATA, "min", "n") == {"min": 0}
        assert aggregate(self.DATA, "max", "n") == {"max": 3.5}

    def test_empty_list(self):
        assert aggregate([], "sum", "n") == {"sum": 0}
        assert aggregate([], "average", "n") == {"average": 0}
        assert aggregate([], "min", "n") == {"min": None}
        assert aggregate([], "max", "n") == {"max": None}

    def test_group_by_stringifies_keys(self):
        grouped = aggregate(self.DATA, "groupBy", "g")
        assert set(grouped) == {"a", "b", "None"}
        assert len(grouped["a"]) == 2

    def test_unknown_operation_returns_data(self):
        assert aggregate(self.DATA, "median", "n") is self.DATA


class TestPipelineRun:
    @pytest.mark.asyncio
    async def test_static_then_sum(self, runtime, seed):
        pipeline = await seed.pipeline(
            [static([{"n": 1}, {"n": 2}, {"n": 3}]), {"type": "aggregate", "aggregate": {"operation": "sum", "field": "n"}}]
        )

        result = await runtime.run_pipeline(pipeline.id, {}, "user-1")

        assert result.success
        assert result.output == {"sum": 6}
        assert result.records_processed == 1
        messages = [entry.message for entry in result.logs]
        assert messages == [
            "Executing step 1: connector",
            "Completed step 1",
            "Executing step 2: aggregate",
            "Completed step 2",
        ]

    @pytest.mark.asyncio
    async def test_filter_keeps_matching_records(self, runtime, seed):
        pipeline = await seed.pipeline(
            [
                static([{"status": "paid", "id": 1}, {"status": "open", "id": 2}, {"status": "paid", "id": 3}]),
                {"type": "filter", "filter": {"field": "status", "operator": "equals", "value": "paid"}},
            ]
        )

        result = await runtime.run_pipeline(pipeline.id)

        assert result.output == [{"status": "paid", "id": 1}, {"status": "paid", "id": 3}]
        assert result.records_processed == 2

    @pytest.mark.asyncio
    async def test_transform_maps_records_and_sets_variable(self, runtime, seed):
        pipeline = await seed.pipeline(
            [
                static([{"a": 5, "x": 9}]),
                {"type": "transform", "transform": {"b": "$a"}, "outputVariable": "mapped"},
                {"type": "transform", "transform": {"count": "$mapped"}},
            ]
        )

        result = await runtime.run_pipeline(pipeline.id)

        assert result.success
        assert result.output == [{"count": [{"b": 5}]}]

    @pytest.mark.asyncio
    async def test_failing_step_halts_with_partial_log(self, runtime, seed, store):
        pipeline = await seed.pipeline(
            [
                static([{"a": 1}]),
                {"type": "transform", "transform": {"b": "$a"}},
                {"type": "connector", "connector": "nope"},
                {"type": "aggregate", "aggregate": {"operation": "count"}},
            ]
        )

        result = await runtime.run_pipeline(pipeline.id)

        assert not result.success
        assert result.error == "Unknown connector type: nope"
        completed = [entry for entry in result.logs if entry.message and entry.message.startswith("Completed")]
        assert len(completed) == 2
        assert result.logs[-1].error == "Unknown connector type: nope"
        assert result.logs[-1].step == 2
        assert result.records_processed == 1

        [event] = await store.metrics.list_by_resource("pipeline", pipeline.id)
        assert event.status == "FAILED"
        assert event.cost is None
        assert event.error_type == "ConnectorError"

    @pytest.mark.asyncio
    async def test_success_records_metric(self, runtime, seed, store):
        pipeline = await seed.pipeline([static([1, 2])])

        await runtime.run_pipeline(pipeline.id, user_id="user-1")

        [event] = await store.metrics.list_by_resource("pipeline", pipeline.id)
        assert event.status == "COMPLETED"
        assert event.user_id == "user-1"
        assert event.cost == 0.0

    @pytest.mark.asyncio
    async def test_missing_pipeline(self, runtime):
        with pytest.raises(ResourceNotFoundError, match="Pipeline not found"):
            await runtime.run_pipeline("ghost")

    @pytest.mark.asyncio
    async def test_inactive_pipeline(self, runtime, seed):
        pipeline = await seed.pipeline([static([])], status=ResourceStatus.DRAFT)

        with pytest.raises(ResourceNotActiveError, match="Pipeline is not active"):
            await runtime.run_pipeline(pipeline.id)

    @pytest.mark.asyncio
    async def test_pipeline_without_steps(self, runtime, seed):
        pipeline = await seed.pipeline([])

        with pytest.raises(DefinitionError, match="Pipeline has no steps"):
            await runtime.run_pipeline(pipeline.id)


class TestConnectorSteps:
    @pytest.mark.asyncio
    async def test_csv_file(self, runtime, seed, tmp_path):
        path = tmp_path / "people.csv"
        path.write_text("name, age\nAda, 36\n,\nBob, 41\n", encoding="utf-8")
        pipeline = await seed.pipeline(
            [{"type": "connector", "connector": "csv", "config": {"filePath": str(path)}}]
        )

        result = await runtime.run_pipeline(pipeline.id)

        assert result.output == [{"name": "Ada", "age": "36"}, {"name": "Bob", "age": "41"}]
        assert result.records_processed == 0

    @pytest.mark.asyncio
    async def test_csv_values_filter_numerically(self, runtime, seed, tmp_path):
        path = tmp_path / "people.csv"
        path.write_text("name,age\nann,10\nbob,3\n", encoding="utf-8")
        pipeline = await seed.pipeline(
            [
                {"type": "connector", "connector": "csv", "config": {"filePath": str(path)}},
                {"type": "filter", "filter": {"field": "age", "operator": "greaterThan", "value": 5}},
            ]
        )

        result = await runtime.run_pipeline(pipeline.id)

        assert result.success, result.error
        assert result.output == [{"name": "ann", "age": "10"}]

    @pytest.mark.asyncio
    async def test_json_object_is_wrapped(self, runtime, seed, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"id": 1}), encoding="utf-8")
        pipeline = await seed.pipeline(
            [{"type": "connector", "connector": "json", "config": {"filePath": str(path)}}]
        )

        result = await runtime.run_pipeline(pipeline.id)

        assert result.output == [{"id": 1}]

    @pytest.mark.asyncio
    async def test_missing_json_file_fails_step(self, runtime, seed, tmp_path):
        pipeline = await seed.pipeline(
            [{"type": "connector", "connector": "json", "config": {"filePath": str(tmp_path / "nope.json")}}]
        )

        result = await runtime.run_pipeline(pipeline.id)

        assert not result.success
        assert result.error.startswith("Failed to read JSON file")

    @pytest.mark.asyncio
    async def test_api_source(self, store, runtime, seed):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "POST"
            assert request.headers["X-Token"] == "abc"
            assert json.loads(request.content) == {"q": "orders"}
            return httpx.Response(200, json=[{"id": 1}, {"id": 2}])

        executor = PipelineExecutor(
            store,
            runtime.jobs,
            runtime.metrics,
            sources=SourceReader(store, transport=httpx.MockTransport(handler)),
        )
        pipeline = await seed.pipeline(
            [
                {
                    "type": "connector",
                    "connector": "api",
                    "config": {
                        "url": "https://example.test/orders",
                        "method": "POST",
                        "headers": {"X-Token": "abc"},
                        "body": {"q": "orders"},
                    },
                },
                {"type": "aggregate", "aggregate": {"operation": "count"}},
            ]
        )

        result = await executor.run(pipeline.id)

        assert result.output == {"count": 2}

    @pytest.mark.asyncio
    async def test_api_error_status(self, store, runtime, seed):
        executor = PipelineExecutor(
            store,
            runtime.jobs,
            runtime.metrics,
            sources=SourceReader(store, transport=httpx.MockTransport(lambda r: httpx.Response(503))),
        )
        pipeline = await seed.pipeline(
            [{"type": "connector", "connector": "api", "config": {"url": "https://example.test/"}}]
        )

        result = await executor.run(pipeline.id)

        assert result.error == "API connector failed: API request failed: 503 Service Unavailable"

    @pytest.mark.asyncio
    async def test_database_source_on_memory_store_fails(self, runtime, seed):
        pipeline = await seed.pipeline(
            [{"type": "connector", "connector": "database", "config": {"query": "SELECT 1"}}]
        )

        result = await runtime.run_pipeline(pipeline.id)

        assert not result.success
        assert "not supported" in result.error

    @pytest.mark.asyncio
    async def test_registered_connector(self, store, runtime, seed):
        registry = ConnectorRegistry()
        registry.register("sheets", RecordingConnector)
        executor = PipelineExecutor(
            store, runtime.jobs, runtime.metrics, sources=SourceReader(store, registry)
        )
        pipeline = await seed.pipeline(
            [
                {
                    "type": "connector",
                    "connector": "sheets",
                    "config": {"sheet": "Q3", "options": {"range": "A1:B9"}},
                }
            ]
        )

        result = await executor.run(pipeline.id)

        assert result.output == [{"source": "Q3", "options": {"range": "A1:B9"}}]


class TestAgentStep:
    @pytest.mark.asyncio
    async def test_agent_step_output_and_usage(self, runtime, seed, store, provider):
        agent = await seed.agent()
        pipeline = await seed.pipeline(
            [
                static([{"topic": "llamas"}]),
                {"type": "agent", "agentId": agent.id, "outputVariable": "answer"},
            ]
        )

        result = await runtime.run_pipeline(pipeline.id, user_id="user-1")

        assert result.success
        assert result.output["output"] == "Mock response"
        assert result.records_processed == 1
        assert provider.calls[0]["messages"][1].content == '[{"topic": "llamas"}]'

        [event] = await store.metrics.list_by_resource("pipeline", pipeline.id)
        assert event.api_calls == 1
        assert event.tokens_used == 15
        assert event.cost == pytest.approx(calculate_cost(15, "gpt-4"))

    @pytest.mark.asyncio
    async def test_explicit_agent_input(self, runtime, seed, provider):
        agent = await seed.agent()
        pipeline = await seed.pipeline(
            [{"type": "agent", "agentId": agent.id, "input": {"message": "Summarize"}}]
        )

        await runtime.run_pipeline(pipeline.id)

        assert provider.calls[0]["messages"][1].content == "Summarize"

    @pytest.mark.asyncio
    async def test_failed_agent_fails_step(self, runtime, seed):
        agent = await seed.agent(type="custom")
        pipeline = await seed.pipeline([{"type": "agent", "agentId": agent.id}])

        result = await runtime.run_pipeline(pipeline.id)

        assert not result.success
        assert result.error == "Invalid agent type"


class TestVectorStep:
    @pytest.mark.asyncio
    async def test_add_then_search(self, runtime, seed, store):
        collection = await seed.collection()
        add = await seed.pipeline(
            [
                static([{"text": "alpha"}, {"text": "beta"}]),
                {"type": "vector", "collectionId": collection.id, "operation": "add"},
            ]
        )

        added = await runtime.run_pipeline(add.id, user_id="user-1")

        assert added.output == {"vectorsAdded": 2}
        stored = await store.collections.get_by_id(collection.id)
        assert stored.vector_count == 2
        vectors = await store.vectors.list_by_collection(collection.id)
        assert vectors[0].metadata == {"text": "alpha"}

        search = await seed.pipeline(
            [
                {
                    "type": "vector",
                    "collectionId": collection.id,
                    "operation": "search",
                    "query": "alpha",
                    "limit": 1,
                }
            ]
        )
        found = await runtime.run_pipeline(search.id, user_id="user-1")

        assert len(found.output) == 1
        assert found.output[0]["text"] == "alpha"
        assert found.output[0]["score"] == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_add_without_list_adds_nothing(self, runtime, seed):
        collection = await seed.collection()
        pipeline = await seed.pipeline(
            [{"type": "vector", "collectionId": collection.id, "operation": "add"}]
        )

        result = await runtime.run_pipeline(pipeline.id, {"text": "not a list"}, "user-1")

        assert result.output == {"vectorsAdded": 0}

    @pytest.mark.asyncio
    async def test_collection_of_another_user(self, runtime, seed):
        collection = await seed.collection(user_id="someone-else")
        pipeline = await seed.pipeline(
            [{"type": "vector", "collectionId": collection.id, "operation": "search", "query": "x"}]
        )

        result = await runtime.run_pipeline(pipeline.id, user_id="user-1")

        assert not result.success
        assert result.error == "Collection not found or not active"

    @pytest.mark.asyncio
    async def test_search_requires_query(self, runtime, seed):
        collection = await seed.collection()
        pipeline = await seed.pipeline(
            [{"type": "vector", "collectionId": collection.id, "operation": "search"}]
        )

        result = await runtime.run_pipeline(pipeline.id, user_id="user-1")

        assert result.error == "Search query not specified"
