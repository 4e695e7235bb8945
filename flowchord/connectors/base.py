"""Uniform connector capability.

External systems (object storage, spreadsheets, chat, mail, calendars) are
reached through connectors exposing the same three operations: ``test``,
``read`` and ``write``. Pipelines only ever call ``read``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable

from pydantic import BaseModel

from flowchord.errors.exceptions import ConnectorError


class ConnectorResult(BaseModel):
    """Outcome of ``test`` and ``write``."""

    success: bool
    message: str | None = None


class BaseConnector(ABC):
    """Abstract base class for connectors."""

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        self.config = config or {}

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    async def test(self) -> ConnectorResult:
        """Check that the backend is reachable with the current config."""
        pass

    @abstractmethod
    async def read(self, options: dict[str, Any] | None = None) -> Any:
        """Read data from the backend."""
        pass

    @abstractmethod
    async def write(self, data: Any, options: dict[str, Any] | None = None) -> ConnectorResult:
        """Write data to the backend."""
        pass

    def get_metadata(self) -> dict[str, Any]:
        return {"name": self.name, "type": self.name, "description": self.__doc__ or ""}


ConnectorFactory = Callable[[dict[str, Any]], BaseConnector]


class ConnectorRegistry:
    """Maps connector type names to factories.

    Example:
        >>> registry = ConnectorRegistry()
        >>> registry.register("s3", S3Connector)
        >>> connector = registry.create("s3", {"bucket": "exports"})
    """

    def __init__(self) -> None:
        self._factories: dict[str, ConnectorFactory] = {}

    def register(self, connector_type: str, factory: ConnectorFactory) -> None:
        self._factories[connector_type] = factory

    def unregister(self, connector_type: str) -> None:
        self._factories.pop(connector_type, None)

    def __contains__(self, connector_type: object) -> bool:
        return connector_type in self._factories

    @property
    def types(self) -> list[str]:
        return sorted(self._factories)

    def create(self, connector_type: str, config: dict[str, Any] | None = None) -> BaseConnector:
        """Instantiate a registered connector.

        Raises:
            ConnectorError: If the type is not registered.
        """
        factory = self._factories.get(connector_type)
        if factory is None:
            raise ConnectorError(f"Unknown connector type: {connector_type}")
        return factory(config or {})
