"""Connectors and pipeline data sources for FlowChord."""

from flowchord.connectors.base import (
    BaseConnector,
    ConnectorFactory,
    ConnectorRegistry,
    ConnectorResult,
)
from flowchord.connectors.sources import SourceReader, get_available_connectors

__all__ = [
    "BaseConnector",
    "ConnectorFactory",
    "ConnectorRegistry",
    "ConnectorResult",
    "SourceReader",
    "get_available_connectors",
]
