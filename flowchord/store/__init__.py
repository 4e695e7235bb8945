"""Persistence for FlowChord."""

from flowchord.errors.exceptions import ConfigurationError
from flowchord.store.base import Store
from flowchord.store.memory import MemoryStore
from flowchord.store.sql import SQLStore


def create_store(backend: str = "memory", database_url: str | None = None, *, echo: bool = False) -> Store:
    """Build a store for the configured backend."""
    if backend == "memory":
        return MemoryStore()
    if backend == "sql":
        if not database_url:
            raise ConfigurationError("database_url is required for the sql store")
        return SQLStore(database_url, echo=echo)
    raise ConfigurationError(f"Unknown store backend: {backend}")


__all__ = [
    "MemoryStore",
    "SQLStore",
    "Store",
    "create_store",
]
