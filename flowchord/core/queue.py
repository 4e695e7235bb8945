"""In-process agent job queue.

Jobs are drained strictly one at a time by a single background task. A job
that raises is logged and the drain moves on to the next one. The queue is
not persisted: pending jobs are lost when the process exits.

All state is owned by the event loop the queue runs on. ``enqueue`` and the
drain loop's empty-check never await in between reading and updating the
pending list, so they cannot interleave.

Waiters register interest in a job id with ``watch`` and receive an
``asyncio.Event`` that is set once the handler for that job has returned
(successfully or not).
"""

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable

from flowchord.core.models import JobRequest

logger = logging.getLogger(__name__)

JobHandler = Callable[[JobRequest], Awaitable[Any]]


class JobQueue:
    """Unbounded FIFO with one sequential drain loop."""

    def __init__(self, handler: JobHandler | None = None) -> None:
        self._handler = handler
        self._pending: deque[JobRequest] = deque()
        self._drain_task: asyncio.Task | None = None
        self._signals: dict[str, asyncio.Event] = {}
        self._closed = False

    def set_handler(self, handler: JobHandler) -> None:
        self._handler = handler

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def is_draining(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    def watch(self, job_id: str) -> asyncio.Event:
        """Get the completion signal for a job, creating it if needed."""
        signal = self._signals.get(job_id)
        if signal is None:
            signal = asyncio.Event()
            self._signals[job_id] = signal
        return signal

    def unwatch(self, job_id: str) -> None:
        self._signals.pop(job_id, None)

    def enqueue(self, request: JobRequest) -> None:
        """Append a job and start draining if no drain is in progress.

        Must be called from within the running event loop.
        """
        if self._closed:
            raise RuntimeError("Job queue is shut down")
        self._pending.append(request)
        logger.debug("Enqueued job %s (agent %s)", request.execution_id, request.agent_id)
        if not self.is_draining:
            self._drain_task = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        logger.info("Job queue drain started")
        while self._pending:
            request = self._pending.popleft()
            try:
                if self._handler is None:
                    raise RuntimeError("No job handler configured")
                await self._handler(request)
            except Exception:
                logger.exception("Job %s failed", request.execution_id)
            finally:
                signal = self._signals.pop(request.execution_id, None)
                if signal is not None:
                    signal.set()
        logger.info("Job queue drained")

    async def join(self) -> None:
        """Wait until the queue is empty and no job is running."""
        while self.is_draining:
            await asyncio.wait({self._drain_task})  # type: ignore[arg-type]

    async def shutdown(self) -> None:
        """Stop accepting jobs and cancel the drain loop.

        Pending jobs are dropped.
        """
        self._closed = True
        dropped = len(self._pending)
        self._pending.clear()
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
            await asyncio.gather(self._drain_task, return_exceptions=True)
        self._drain_task = None
        if dropped:
            logger.warning("Job queue shut down with %d pending jobs dropped", dropped)
