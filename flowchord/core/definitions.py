"""Workflow and pipeline definitions.

Definitions are stored as raw JSON and validated here once, before a run
starts. Steps and nodes are closed discriminated unions keyed by ``type``;
an unknown kind is a validation error rather than a runtime branch.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from flowchord.core.predicates import ConditionOperator, FilterOperator
from flowchord.core.templates import CompiledTransform
from flowchord.errors.exceptions import DefinitionError


class _Definition(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


# ---------------------------------------------------------------------------
# Pipeline steps
# ---------------------------------------------------------------------------


class StepBase(_Definition):
    """Fields shared by every pipeline step."""

    label: str | None = None
    output_variable: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _hoist_data(cls, values: Any) -> Any:
        """Accept step settings nested under ``data``; top-level keys win."""
        if isinstance(values, dict) and isinstance(values.get("data"), dict):
            merged = dict(values["data"])
            merged.update({k: v for k, v in values.items() if k != "data"})
            return merged
        return values

    @property
    def display_name(self) -> str:
        return self.label or self.type  # type: ignore[attr-defined]


class ConnectorStep(StepBase):
    type: Literal["connector"]
    connector: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)


class TransformStep(StepBase):
    type: Literal["transform"]
    transform: dict[str, Any] | None = None

    _compiled: CompiledTransform | None = PrivateAttr(default=None)

    def model_post_init(self, __context: Any) -> None:
        if self.transform is not None:
            self._compiled = CompiledTransform(self.transform)

    @property
    def compiled(self) -> CompiledTransform | None:
        return self._compiled


class FilterSpec(_Definition):
    field: str
    operator: FilterOperator
    value: Any = None


class FilterStep(StepBase):
    type: Literal["filter"]
    filter: FilterSpec | None = None


class AggregateSpec(_Definition):
    operation: str
    field: str | None = None


class AggregateStep(StepBase):
    type: Literal["aggregate"]
    aggregate: AggregateSpec | None = None


class AgentStep(StepBase):
    type: Literal["agent"]
    agent_id: str
    input: Any = None


class VectorStep(StepBase):
    type: Literal["vector"]
    collection_id: str
    operation: Literal["add", "search"] = "add"
    query: str | None = None
    limit: int = 10


Step = Annotated[
    Union[ConnectorStep, TransformStep, FilterStep, AggregateStep, AgentStep, VectorStep],
    Field(discriminator="type"),
]


class PipelineDefinition(_Definition):
    """Ordered list of steps, executed strictly in sequence."""

    steps: list[Step] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Workflow nodes
# ---------------------------------------------------------------------------


class NodeData(_Definition):
    """Node configuration. Unknown keys are kept for UI round-trips."""

    output_variable: str | None = None


class AgentNodeData(NodeData):
    agent_id: str
    input: Any = None


class ConditionSpec(_Definition):
    variable: str
    operator: ConditionOperator
    value: Any = None


class ConditionNodeData(NodeData):
    # A string is evaluated as an expression over the variable bag
    condition: ConditionSpec | str


class DelayNodeData(NodeData):
    delay_ms: int | None = Field(default=None, ge=0)


class TransformNodeData(NodeData):
    transform: dict[str, Any] | None = None

    _compiled: CompiledTransform | None = PrivateAttr(default=None)

    def model_post_init(self, __context: Any) -> None:
        if self.transform is not None:
            self._compiled = CompiledTransform(self.transform)

    @property
    def compiled(self) -> CompiledTransform | None:
        return self._compiled


class NodeBase(_Definition):
    id: str
    label: str | None = None

    @property
    def display_name(self) -> str:
        return self.label or self.id


class StartNode(NodeBase):
    type: Literal["start"]
    data: NodeData = Field(default_factory=NodeData)


class EndNode(NodeBase):
    type: Literal["end"]
    data: NodeData = Field(default_factory=NodeData)


class AgentNode(NodeBase):
    type: Literal["agent"]
    data: AgentNodeData


class ConditionNode(NodeBase):
    type: Literal["condition"]
    data: ConditionNodeData


class DelayNode(NodeBase):
    type: Literal["delay"]
    data: DelayNodeData = Field(default_factory=DelayNodeData)


class TransformNode(NodeBase):
    type: Literal["transform"]
    data: TransformNodeData = Field(default_factory=TransformNodeData)


Node = Annotated[
    Union[StartNode, EndNode, AgentNode, ConditionNode, DelayNode, TransformNode],
    Field(discriminator="type"),
]


class Edge(_Definition):
    """Directed connection between two nodes."""

    id: str | None = None
    source: str
    target: str
    source_handle: str | None = None
    target_handle: str | None = None


class WorkflowDefinition(_Definition):
    """Directed graph of typed nodes."""

    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)

    _by_id: dict[str, Any] = PrivateAttr(default_factory=dict)
    _outgoing: dict[str, list[Edge]] = PrivateAttr(default_factory=dict)

    @model_validator(mode="after")
    def _check_graph(self) -> WorkflowDefinition:
        by_id: dict[str, Any] = {}
        for node in self.nodes:
            if node.id in by_id:
                raise ValueError(f"Duplicate node id: {node.id}")
            by_id[node.id] = node

        outgoing: dict[str, list[Edge]] = {node_id: [] for node_id in by_id}
        for edge in self.edges:
            for endpoint in (edge.source, edge.target):
                if endpoint not in by_id:
                    raise ValueError(
                        f"Edge {edge.id or edge.source + '->' + edge.target} "
                        f"references unknown node {endpoint}"
                    )
            outgoing[edge.source].append(edge)

        self._by_id = by_id
        self._outgoing = outgoing
        return self

    def get_node(self, node_id: str) -> Any:
        return self._by_id[node_id]

    def outgoing(self, node_id: str) -> list[Edge]:
        """Edges leaving a node, in definition order."""
        return list(self._outgoing.get(node_id, []))

    def find_start_node(self) -> Any | None:
        """Prefer a ``start`` node with no incoming edges, else the first node."""
        targets = {edge.target for edge in self.edges}
        for node in self.nodes:
            if node.type == "start" and node.id not in targets:
                return node
        return self.nodes[0] if self.nodes else None


def _format_validation_error(kind: str, error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    detail = first.get("msg", "invalid value")
    return f"Invalid {kind} definition at {location or 'root'}: {detail}"


def load_pipeline_definition(raw: dict[str, Any] | None) -> PipelineDefinition:
    """Validate a stored pipeline definition.

    Raises:
        DefinitionError: If the definition is malformed.
    """
    try:
        return PipelineDefinition.model_validate(raw or {})
    except ValidationError as e:
        raise DefinitionError(_format_validation_error("pipeline", e)) from e


def load_workflow_definition(raw: dict[str, Any] | None) -> WorkflowDefinition:
    """Validate a stored workflow definition.

    Raises:
        DefinitionError: If the definition is malformed.
    """
    try:
        return WorkflowDefinition.model_validate(raw or {})
    except ValidationError as e:
        raise DefinitionError(_format_validation_error("workflow", e)) from e
