"""Built-in pipeline data sources.

A connector step names a source and passes it a config dict. The built-in
sources are ``static``, ``json``, ``csv``, ``api`` and ``database``; any
other name is looked up in the connector registry.
"""

from __future__ import annotations

import asyncio
import csv
import io
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable

import httpx

from flowchord.connectors.base import ConnectorRegistry
from flowchord.errors.exceptions import ConnectorError
from flowchord.store.base import Store

logger = logging.getLogger(__name__)

_SOURCE_DESCRIPTORS: list[dict[str, Any]] = [
    {
        "type": "static",
        "name": "Static Data",
        "description": "Inline records from the step config",
        "config": {"data": {"type": "array", "required": True}},
    },
    {
        "type": "json",
        "name": "JSON File",
        "description": "Records from a JSON file on disk",
        "config": {"filePath": {"type": "string", "required": True}},
    },
    {
        "type": "csv",
        "name": "CSV File",
        "description": "Rows from a CSV file with a header line",
        "config": {"filePath": {"type": "string", "required": True}},
    },
    {
        "type": "api",
        "name": "HTTP API",
        "description": "JSON response of an HTTP request",
        "config": {
            "url": {"type": "string", "required": True},
            "method": {"type": "string", "required": False, "default": "GET"},
            "headers": {"type": "object", "required": False},
            "body": {"type": "object", "required": False},
        },
    },
    {
        "type": "database",
        "name": "Database Query",
        "description": "Rows returned by a raw SQL query",
        "config": {"query": {"type": "string", "required": True}},
    },
]


def get_available_connectors() -> list[dict[str, Any]]:
    """Describe the built-in sources for connector pickers."""
    return [dict(descriptor) for descriptor in _SOURCE_DESCRIPTORS]


def _as_list(data: Any) -> list[Any]:
    return data if isinstance(data, list) else [data]


class SourceReader:
    """Reads pipeline input from built-in sources or registered connectors."""

    def __init__(
        self,
        store: Store,
        registry: ConnectorRegistry | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._store = store
        self._registry = registry or ConnectorRegistry()
        self._transport = transport
        self._timeout = timeout
        self._builtins: dict[str, Callable[[dict[str, Any]], Awaitable[Any]]] = {
            "static": self._read_static,
            "json": self._read_json,
            "csv": self._read_csv,
            "api": self._read_api,
            "database": self._read_database,
        }

    @property
    def registry(self) -> ConnectorRegistry:
        return self._registry

    async def read(self, connector_type: str | None, config: dict[str, Any]) -> Any:
        """Read from a named source.

        Raises:
            ConnectorError: If the source is unknown or the read fails.
        """
        reader = self._builtins.get(connector_type or "")
        if reader is not None:
            return await reader(config)
        if connector_type and connector_type in self._registry:
            connector = self._registry.create(connector_type, config)
            return await connector.read(config.get("options"))
        raise ConnectorError(f"Unknown connector type: {connector_type}")

    async def _read_static(self, config: dict[str, Any]) -> Any:
        return config.get("data") or []

    async def _read_json(self, config: dict[str, Any]) -> list[Any]:
        file_path = config.get("filePath")
        if not file_path:
            return []
        try:
            content = await asyncio.to_thread(Path(file_path).read_text, encoding="utf-8")
            return _as_list(json.loads(content))
        except (OSError, ValueError) as e:
            raise ConnectorError(f"Failed to read JSON file: {e}") from e

    async def _read_csv(self, config: dict[str, Any]) -> list[dict[str, str]]:
        file_path = config.get("filePath")
        if not file_path:
            return []
        try:
            content = await asyncio.to_thread(Path(file_path).read_text, encoding="utf-8")
        except OSError as e:
            raise ConnectorError(f"Failed to read CSV file: {e}") from e
        reader = csv.DictReader(io.StringIO(content), skipinitialspace=True)
        return [
            {key.strip(): (value or "").strip() for key, value in row.items() if key is not None}
            for row in reader
            if any((value or "").strip() for value in row.values() if isinstance(value, str))
        ]

    async def _read_api(self, config: dict[str, Any]) -> list[Any]:
        url = config.get("url")
        if not url:
            return []
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.request(
                    config.get("method") or "GET",
                    url,
                    headers=config.get("headers") or {},
                    json=config.get("body"),
                )
        except httpx.HTTPError as e:
            raise ConnectorError(f"API connector failed: {e}") from e
        if not response.is_success:
            raise ConnectorError(
                f"API connector failed: API request failed: "
                f"{response.status_code} {response.reason_phrase}"
            )
        try:
            return _as_list(response.json())
        except ValueError as e:
            raise ConnectorError(f"API connector failed: {e}") from e

    async def _read_database(self, config: dict[str, Any]) -> list[Any]:
        query = config.get("query")
        if not query:
            return []
        logger.debug("Running database connector query")
        return _as_list(await self._store.raw_query(query))
