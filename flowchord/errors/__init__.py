"""Error types for FlowChord."""

from flowchord.errors.exceptions import (
    AgentJobFailedError,
    AgentTimeoutError,
    CircularDependencyError,
    ConfigurationError,
    ConnectorError,
    DefinitionError,
    ExecutionError,
    FlowChordError,
    InvalidAgentTypeError,
    InvalidCronExpressionError,
    MissingAPIKeyError,
    NodeExecutionError,
    ProviderError,
    ResourceNotActiveError,
    ResourceNotFoundError,
    StepExecutionError,
    WebhookSignatureError,
)

__all__ = [
    "AgentJobFailedError",
    "AgentTimeoutError",
    "CircularDependencyError",
    "ConfigurationError",
    "ConnectorError",
    "DefinitionError",
    "ExecutionError",
    "FlowChordError",
    "InvalidAgentTypeError",
    "InvalidCronExpressionError",
    "MissingAPIKeyError",
    "NodeExecutionError",
    "ProviderError",
    "ResourceNotActiveError",
    "ResourceNotFoundError",
    "StepExecutionError",
    "WebhookSignatureError",
]
