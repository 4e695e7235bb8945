"""Tests for connectors and built-in sources."""

from __future__ import annotations

import httpx
import pytest

from flowchord.connectors import (
    BaseConnector,
    ConnectorRegistry,
    ConnectorResult,
    SourceReader,
    get_available_connectors,
)
from flowchord.errors.exceptions import ConnectorError


class EchoConnector(BaseConnector):
    """Echoes written data back on read."""

    async def test(self) -> ConnectorResult:
        return ConnectorResult(success=True, message="ok")

    async def read(self, options=None):
        return self.config.get("rows", [])

    async def write(self, data, options=None) -> ConnectorResult:
        self.config["rows"] = data
        return ConnectorResult(success=True)


class TestConnectorRegistry:
    def test_register_and_create(self):
        registry = ConnectorRegistry()
        registry.register("echo", EchoConnector)

        connector = registry.create("echo", {"rows": [1]})

        assert isinstance(connector, EchoConnector)
        assert "echo" in registry
        assert registry.types == ["echo"]

    def test_unknown_type(self):
        with pytest.raises(ConnectorError, match="Unknown connector type: ftp"):
            ConnectorRegistry().create("ftp")

    def test_unregister(self):
        registry = ConnectorRegistry()
        registry.register("echo", EchoConnector)
        registry.unregister("echo")

        assert "echo" not in registry

    @pytest.mark.asyncio
    async def test_connector_operations(self):
        connector = EchoConnector()

        assert (await connector.test()).success
        await connector.write([{"a": 1}])
        assert await connector.read() == [{"a": 1}]
        assert connector.get_metadata()["name"] == "EchoConnector"
        assert connector.get_metadata()["description"] == "Echoes written data back on read."


class TestSourceReader:
    def test_available_connectors(self):
        types = [descriptor["type"] for descriptor in get_available_connectors()]
        assert types == ["static", "json", "csv", "api", "database"]

    @pytest.mark.asyncio
    async def test_static(self, store):
        reader = SourceReader(store)

        assert await reader.read("static", {"data": [1, 2]}) == [1, 2]
        assert await reader.read("static", {}) == []

    @pytest.mark.asyncio
    async def test_file_sources_without_path_are_empty(self, store):
        reader = SourceReader(store)

        assert await reader.read("json", {}) == []
        assert await reader.read("csv", {}) == []
        assert await reader.read("api", {}) == []
        assert await reader.read("database", {}) == []

    @pytest.mark.asyncio
    async def test_api_object_is_wrapped(self, store):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"id": 7}))
        reader = SourceReader(store, transport=transport)

        assert await reader.read("api", {"url": "https://example.test/item"}) == [{"id": 7}]

    @pytest.mark.asyncio
    async def test_api_transport_error(self, store):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        reader = SourceReader(store, transport=httpx.MockTransport(handler))

        with pytest.raises(ConnectorError, match="API connector failed"):
            await reader.read("api", {"url": "https://example.test/item"})

    @pytest.mark.asyncio
    async def test_missing_connector_type(self, store):
        with pytest.raises(ConnectorError, match="Unknown connector type: None"):
            await SourceReader(store).read(None, {})
