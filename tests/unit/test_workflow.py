"""Tests for the workflow executor."""

from __future__ import annotations

import asyncio

import pytest

from flowchord.core.definitions import load_workflow_definition
from flowchord.core.models import ResourceStatus
from flowchord.errors.exceptions import DefinitionError, ResourceNotActiveError, ResourceNotFoundError


def chain(*node_ids: str) -> list[dict[str, str]]:
    return [{"source": a, "target": b} for a, b in zip(node_ids, node_ids[1:])]


START = {"id": "start", "type": "start"}
END = {"id": "end", "type": "end"}


class TestTraversal:
    @pytest.mark.asyncio
    async def test_single_chain_returns_last_output(self, runtime, seed):
        workflow = await seed.workflow(
            [
                START,
                {"id": "t", "type": "transform", "data": {"transform": {"greeting": "Hi ${name}"}}},
            ],
            chain("start", "t"),
        )

        result = await runtime.run_workflow(workflow.id, {"name": "Ada"})

        assert result.success
        assert result.output == {"greeting": "Hi Ada"}

    @pytest.mark.asyncio
    async def test_end_node_returns_variables(self, runtime, seed):
        workflow = await seed.workflow(
            [
                START,
                {
                    "id": "t",
                    "type": "transform",
                    "data": {"transform": {"b": "$a"}, "outputVariable": "mapped"},
                },
                END,
            ],
            chain("start", "t", "end"),
        )

        result = await runtime.run_workflow(workflow.id, {"a": 1})

        assert result.output == {"a": 1, "mapped": {"b": 1}}

    @pytest.mark.asyncio
    async def test_fan_out_returns_one_result_per_branch(self, runtime, seed):
        workflow = await seed.workflow(
            [
                START,
                {"id": "b1", "type": "transform", "data": {"transform": {"branch": 1}}},
                {"id": "b2", "type": "transform", "data": {"transform": {"branch": 2}}},
                {"id": "b3", "type": "transform", "data": {"transform": {"branch": 3}}},
            ],
            [
                {"source": "start", "target": "b1"},
                {"source": "start", "target": "b2"},
                {"source": "start", "target": "b3"},
            ],
        )

        result = await runtime.run_workflow(workflow.id)

        assert result.success
        assert isinstance(result.output, list)
        assert result.output == [{"branch": 1}, {"branch": 2}, {"branch": 3}]

    @pytest.mark.asyncio
    async def test_delay_does_not_block_sibling_branch(self, runtime, seed, fake_sleep):
        released = asyncio.Event()

        async def on_call(call_number: int) -> None:
            # First branch stays suspended until the second branch's delay runs
            if call_number == 1:
                await asyncio.wait_for(released.wait(), timeout=1.0)
            else:
                released.set()

        fake_sleep.on_call = on_call
        workflow = await seed.workflow(
            [
                START,
                {"id": "slow", "type": "delay", "data": {"delayMs": 500}},
                {"id": "fast", "type": "delay", "data": {"delayMs": 10}},
            ],
            [{"source": "start", "target": "slow"}, {"source": "start", "target": "fast"}],
        )

        result = await runtime.run_workflow(workflow.id)

        assert result.success, result.error
        assert result.output == [{"delayed": 500}, {"delayed": 10}]
        assert fake_sleep.calls == [0.5, 0.01]

    @pytest.mark.asyncio
    async def test_diamond_is_not_a_cycle(self, runtime, seed):
        workflow = await seed.workflow(
            [START, {"id": "l", "type": "transform"}, {"id": "r", "type": "transform"}, END],
            [
                {"source": "start", "target": "l"},
                {"source": "start", "target": "r"},
                {"source": "l", "target": "end"},
                {"source": "r", "target": "end"},
            ],
        )

        result = await runtime.run_workflow(workflow.id)

        assert result.success
        assert len(result.output) == 2

    @pytest.mark.asyncio
    async def test_cycle_fails_naming_the_node(self, runtime, seed):
        workflow = await seed.workflow(
            [START, {"id": "a", "type": "transform"}, {"id": "b", "type": "transform"}],
            chain("start", "a", "b") + [{"source": "b", "target": "a"}],
        )

        result = await runtime.run_workflow(workflow.id)

        assert not result.success
        assert result.error == "Circular dependency detected at node a"

    @pytest.mark.asyncio
    async def test_failing_branch_fails_run(self, runtime, seed):
        agent = await seed.agent(type="custom")
        workflow = await seed.workflow(
            [
                START,
                {"id": "ok", "type": "transform"},
                {"id": "bad", "type": "agent", "data": {"agentId": agent.id}},
            ],
            [{"source": "start", "target": "ok"}, {"source": "start", "target": "bad"}],
        )

        result = await runtime.run_workflow(workflow.id)

        assert not result.success
        assert result.error == "Invalid agent type"
        assert any(entry.node_id == "bad" and entry.error for entry in result.logs)

    @pytest.mark.asyncio
    async def test_logs_execution_and_completion(self, runtime, seed):
        workflow = await seed.workflow([{**START, "label": "Begin"}])

        result = await runtime.run_workflow(workflow.id, {"x": 1})

        assert [entry.message for entry in result.logs] == [
            "Executing start node: Begin",
            "Completed start node",
        ]
        assert result.logs[1].output == {"x": 1}


class TestNodes:
    @pytest.mark.asyncio
    async def test_delay_uses_configured_milliseconds(self, runtime, seed, fake_sleep):
        workflow = await seed.workflow(
            [START, {"id": "d", "type": "delay", "data": {"delayMs": 250}}],
            chain("start", "d"),
        )

        result = await runtime.run_workflow(workflow.id)

        assert result.output == {"delayed": 250}
        assert 0.25 in fake_sleep.calls

    @pytest.mark.asyncio
    async def test_delay_defaults_and_zero(self, runtime, seed, fake_sleep):
        workflow = await seed.workflow(
            [
                START,
                {"id": "d1", "type": "delay"},
                {"id": "d0", "type": "delay", "data": {"delayMs": 0}},
            ],
            chain("start", "d1", "d0"),
        )

        result = await runtime.run_workflow(workflow.id)

        assert result.output == {"delayed": 0}
        assert fake_sleep.calls == [1.0, 0.0]

    @pytest.mark.asyncio
    async def test_condition_spec(self, runtime, seed):
        workflow = await seed.workflow(
            [
                START,
                {
                    "id": "c",
                    "type": "condition",
                    "data": {"condition": {"variable": "score", "operator": "greaterThan", "value": 50}},
                },
            ],
            chain("start", "c"),
        )

        high = await runtime.run_workflow(workflow.id, {"score": 80})
        low = await runtime.run_workflow(workflow.id, {"score": 20})

        assert high.output == {"condition": True, "value": 80}
        assert low.output == {"condition": False, "value": 20}

    @pytest.mark.asyncio
    async def test_condition_spec_compares_numeric_strings(self, runtime, seed):
        workflow = await seed.workflow(
            [
                START,
                {
                    "id": "c",
                    "type": "condition",
                    "data": {"condition": {"variable": "score", "operator": "lessThan", "value": "50"}},
                },
            ],
            chain("start", "c"),
        )

        low = await runtime.run_workflow(workflow.id, {"score": 9})
        high = await runtime.run_workflow(workflow.id, {"score": "120"})

        assert low.output == {"condition": True, "value": 9}
        assert high.output == {"condition": False, "value": "120"}

    @pytest.mark.asyncio
    async def test_condition_expression(self, runtime, seed):
        workflow = await seed.workflow(
            [START, {"id": "c", "type": "condition", "data": {"condition": "len(items) > 1 and ready"}}],
            chain("start", "c"),
        )

        result = await runtime.run_workflow(workflow.id, {"items": [1, 2], "ready": True})

        assert result.output == {"condition": True, "value": True}

    @pytest.mark.asyncio
    async def test_bad_expression_is_false(self, runtime, seed):
        workflow = await seed.workflow(
            [START, {"id": "c", "type": "condition", "data": {"condition": "__import__('os')"}}],
            chain("start", "c"),
        )

        result = await runtime.run_workflow(workflow.id)

        assert result.success
        assert result.output == {"condition": False, "value": None}

    @pytest.mark.asyncio
    async def test_condition_follows_all_edges(self, runtime, seed):
        workflow = await seed.workflow(
            [
                START,
                {"id": "c", "type": "condition", "data": {"condition": "false"}},
                {"id": "yes", "type": "transform", "data": {"transform": {"path": "yes"}}},
                {"id": "no", "type": "transform", "data": {"transform": {"path": "no"}}},
            ],
            chain("start", "c")
            + [
                {"source": "c", "target": "yes", "sourceHandle": "true"},
                {"source": "c", "target": "no", "sourceHandle": "false"},
            ],
        )

        result = await runtime.run_workflow(workflow.id)

        assert result.output == [{"path": "yes"}, {"path": "no"}]

    @pytest.mark.asyncio
    async def test_transform_without_mapping_returns_variables(self, runtime, seed):
        workflow = await seed.workflow([START, {"id": "t", "type": "transform"}], chain("start", "t"))

        result = await runtime.run_workflow(workflow.id, {"k": "v"})

        assert result.output == {"k": "v"}

    @pytest.mark.asyncio
    async def test_agent_node_counts_and_records_metric(self, runtime, seed, store, provider):
        agent = await seed.agent()
        workflow = await seed.workflow(
            [
                START,
                {"id": "a", "type": "agent", "data": {"agentId": agent.id, "outputVariable": "reply"}},
                END,
            ],
            chain("start", "a", "end"),
        )

        result = await runtime.run_workflow(workflow.id, {"message": "Hi"}, "user-1")

        assert result.success
        assert result.output["reply"]["output"] == "Mock response"
        assert provider.calls[0]["messages"][1].content == "Hi"
        [event] = await store.metrics.list_by_resource("workflow", workflow.id)
        assert event.status == "COMPLETED"
        assert event.api_calls == 1
        assert event.tokens_used == 15

    @pytest.mark.asyncio
    async def test_agent_execution_counter(self, runtime, seed):
        agent = await seed.agent()
        definition = load_workflow_definition(
            {
                "nodes": [
                    START,
                    {"id": "a1", "type": "agent", "data": {"agentId": agent.id}},
                    {"id": "a2", "type": "agent", "data": {"agentId": agent.id, "input": "second"}},
                ],
                "edges": chain("start", "a1", "a2"),
            }
        )

        captured = {}
        original = runtime.workflows._record_metric

        async def capture(workflow, ctx, error=None):
            captured["ctx"] = ctx
            await original(workflow, ctx, error)

        runtime.workflows._record_metric = capture
        result = await runtime.workflows.execute(definition, {}, "user-1")

        assert result.success
        assert captured["ctx"].counters.agent_executions == 2
        assert captured["ctx"].counters.api_calls == 2


class TestWorkflowRun:
    @pytest.mark.asyncio
    async def test_missing_workflow(self, runtime):
        with pytest.raises(ResourceNotFoundError, match="Workflow not found"):
            await runtime.run_workflow("ghost")

    @pytest.mark.asyncio
    async def test_inactive_workflow(self, runtime, seed):
        workflow = await seed.workflow([START], status=ResourceStatus.ARCHIVED)

        with pytest.raises(ResourceNotActiveError, match="Workflow is not active"):
            await runtime.run_workflow(workflow.id)

    @pytest.mark.asyncio
    async def test_empty_workflow(self, runtime, seed):
        workflow = await seed.workflow([])

        with pytest.raises(DefinitionError, match="Workflow has no start node"):
            await runtime.run_workflow(workflow.id)

    @pytest.mark.asyncio
    async def test_failed_run_records_failed_metric(self, runtime, seed, store):
        workflow = await seed.workflow(
            [START, {"id": "a", "type": "transform"}],
            chain("start", "a") + [{"source": "a", "target": "a"}],
        )

        result = await runtime.run_workflow(workflow.id)

        assert not result.success
        [event] = await store.metrics.list_by_resource("workflow", workflow.id)
        assert event.status == "FAILED"
        assert event.error_type == "CircularDependencyError"
        assert event.cost is None
