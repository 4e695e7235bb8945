"""Agent job submission and bounded completion wait.

Pipeline agent steps and workflow agent nodes share one contract: create a
PENDING job, push it onto the job queue, then wait for it to reach a
terminal status. The wait suspends only the calling task. It wakes as soon
as the queue signals that the job's handler has returned, and otherwise
re-checks the store once per poll interval. After ``max_attempts`` checks
without a terminal status the wait fails with ``AgentTimeoutError``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from flowchord.core.models import Job, JobRequest, JobStatus
from flowchord.core.queue import JobQueue
from flowchord.errors.exceptions import AgentJobFailedError, AgentTimeoutError, ResourceNotFoundError
from flowchord.store.base import Store

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[Any]]


class AgentJobs:
    """Creates agent jobs and waits for their completion.

    Example:
        >>> jobs = AgentJobs(store, queue)
        >>> job = await jobs.run("agent-1", {"message": "hi"}, user_id="u1")
        >>> job.output["output"]
    """

    def __init__(
        self,
        store: Store,
        queue: JobQueue,
        *,
        poll_interval: float = 1.0,
        max_attempts: int = 60,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        """Initialize job helper.

        Args:
            store: Persistence for job records.
            queue: Queue that drains jobs through the agent runner.
            poll_interval: Seconds between store checks.
            max_attempts: Checks before giving up.
            sleep: Awaitable sleep; tests inject a fake clock.
        """
        self._store = store
        self._queue = queue
        self._poll_interval = poll_interval
        self._max_attempts = max_attempts
        self._sleep = sleep

    async def submit(self, agent_id: str, input: Any, user_id: str | None) -> Job:
        """Persist a PENDING job and enqueue it."""
        job = await self._store.jobs.create(Job(agent_id=agent_id, user_id=user_id, input=input))
        # Register the signal before the drain can possibly finish the job
        self._queue.watch(job.id)
        self._queue.enqueue(
            JobRequest(execution_id=job.id, agent_id=agent_id, user_id=user_id, input=input)
        )
        return job

    async def wait(self, job_id: str) -> Job:
        """Wait for a job to reach COMPLETED.

        Raises:
            AgentJobFailedError: If the job ends FAILED.
            AgentTimeoutError: If the attempt budget is exhausted.
        """
        signal = self._queue.watch(job_id)
        woken = False
        try:
            for attempt in range(1, self._max_attempts + 1):
                if not signal.is_set():
                    await self._tick(signal)
                elif not woken:
                    woken = True
                else:
                    # Handler returned without a terminal status; keep polling
                    await self._sleep(self._poll_interval)

                job = await self._store.jobs.get_by_id(job_id)
                if job is None:
                    raise ResourceNotFoundError("Job", job_id)
                if job.status == JobStatus.COMPLETED:
                    logger.debug("Job %s completed after %d checks", job_id, attempt)
                    return job
                if job.status == JobStatus.FAILED:
                    raise AgentJobFailedError(job.error or "Agent execution failed", job_id=job_id)
        finally:
            self._queue.unwatch(job_id)

        raise AgentTimeoutError(job_id, self._max_attempts, self._poll_interval)

    async def run(self, agent_id: str, input: Any, user_id: str | None) -> Job:
        """Submit a job and wait for it."""
        job = await self.submit(agent_id, input, user_id)
        return await self.wait(job.id)

    async def _tick(self, signal: asyncio.Event) -> None:
        """Sleep one interval or until the signal fires, whichever is first."""
        sleeper = asyncio.ensure_future(self._sleep(self._poll_interval))
        waiter = asyncio.ensure_future(signal.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()
            await asyncio.gather(sleeper, waiter, return_exceptions=True)
