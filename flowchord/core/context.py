"""Per-run execution context."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from flowchord.core.models import LogEntry


@dataclass
class ExecutionCounters:
    """Usage tallies accumulated over one run."""

    api_calls: int = 0
    tokens_used: int = 0
    agent_executions: int = 0

    def add_usage(self, output: Any) -> None:
        """Fold an agent job's ``usage`` block into the tallies."""
        usage = output.get("usage") if isinstance(output, dict) else None
        if usage:
            self.tokens_used += int(usage.get("total_tokens") or 0)
            self.api_calls += 1


@dataclass
class ExecutionContext:
    """Mutable bag threaded through one pipeline or workflow run.

    Owned by a single executor invocation. Workflow fan-out branches share
    the same context (variables, log and counters) and carry their own
    traversal path separately.
    """

    input: Any
    user_id: str | None = None
    variables: dict[str, Any] = field(default_factory=dict)
    data: Any = None
    log: list[LogEntry] = field(default_factory=list)
    counters: ExecutionCounters = field(default_factory=ExecutionCounters)
    records_processed: int = 0
    started: float = field(default_factory=time.monotonic)

    @classmethod
    def for_input(cls, input: Any, user_id: str | None = None) -> ExecutionContext:
        variables = dict(input) if isinstance(input, dict) else {}
        return cls(input=input, user_id=user_id, variables=variables, data=input)

    def record(self, **fields: Any) -> LogEntry:
        entry = LogEntry(**fields)
        self.log.append(entry)
        return entry

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started) * 1000)
