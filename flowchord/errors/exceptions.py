"""FlowChord exception hierarchy.

All exceptions inherit from FlowChordError for easy catching.
Each exception includes a `retryable` flag to indicate if the operation can be retried.
"""

from __future__ import annotations


class FlowChordError(Exception):
    """Base exception for all FlowChord errors."""

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


# Configuration Errors
class ConfigurationError(FlowChordError):
    """Configuration-related errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message, retryable=False)


class MissingAPIKeyError(ConfigurationError):
    """API key is missing or not configured."""

    def __init__(self, provider: str) -> None:
        super().__init__(
            f"{provider} API key not configured. "
            f"Please set {provider.upper()}_API_KEY environment variable."
        )
        self.provider = provider


# Validation Errors
class DefinitionError(FlowChordError):
    """Workflow or pipeline definition is missing or malformed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, retryable=False)


class InvalidCronExpressionError(DefinitionError):
    """Cron expression could not be parsed."""

    def __init__(self, expression: str) -> None:
        super().__init__(f"Invalid cron expression: {expression}")
        self.expression = expression


# Lookup Errors
class ResourceNotFoundError(FlowChordError):
    """Referenced resource does not exist."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        super().__init__(f"{resource} not found", retryable=False)
        self.resource = resource
        self.resource_id = resource_id


class ResourceNotActiveError(FlowChordError):
    """Resource exists but is not in an executable status."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        super().__init__(f"{resource} is not active", retryable=False)
        self.resource = resource
        self.resource_id = resource_id


# Execution Errors
class ExecutionError(FlowChordError):
    """Base class for failures raised while a run is in progress."""

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message, retryable=retryable)


class StepExecutionError(ExecutionError):
    """A pipeline step could not be executed."""

    def __init__(self, message: str, *, step_index: int | None = None) -> None:
        super().__init__(message)
        self.step_index = step_index


class NodeExecutionError(ExecutionError):
    """A workflow node could not be executed."""

    def __init__(self, message: str, *, node_id: str | None = None) -> None:
        super().__init__(message)
        self.node_id = node_id


class CircularDependencyError(NodeExecutionError):
    """A node was reached twice on the same traversal path."""

    def __init__(self, node_id: str) -> None:
        super().__init__(f"Circular dependency detected at node {node_id}", node_id=node_id)


class ConnectorError(ExecutionError):
    """A data source could not be read."""


class AgentJobFailedError(ExecutionError):
    """An awaited agent job finished in the FAILED state."""

    def __init__(self, message: str, *, job_id: str | None = None) -> None:
        super().__init__(message or "Agent execution failed")
        self.job_id = job_id


class InvalidAgentTypeError(ExecutionError):
    """Agent config names a type the runner cannot dispatch."""

    def __init__(self, agent_type: str | None = None) -> None:
        super().__init__("Invalid agent type")
        self.agent_type = agent_type


class AgentTimeoutError(ExecutionError):
    """Agent job did not finish within the poll budget."""

    def __init__(self, job_id: str, attempts: int, interval: float) -> None:
        super().__init__("Agent execution timeout", retryable=True)
        self.job_id = job_id
        self.attempts = attempts
        self.timeout_seconds = attempts * interval


# Provider Errors
class ProviderError(FlowChordError):
    """Completion or embedding provider returned an error."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        status_code: int | None = None,
    ) -> None:
        retryable = status_code is None or status_code == 429 or status_code >= 500
        super().__init__(message, retryable=retryable)
        self.provider = provider
        self.status_code = status_code


# Webhook Errors
class WebhookSignatureError(FlowChordError):
    """Webhook HMAC signature did not match the payload."""

    def __init__(self, message: str = "Invalid webhook signature") -> None:
        super().__init__(message, retryable=False)
