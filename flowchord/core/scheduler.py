"""Cron scheduler for workflows and pipelines.

Keeps one APScheduler cron job per enabled schedule and reconciles that set
against the store on a fixed interval:

- handles whose schedule was deleted or disabled are released
- new schedules are validated, get ``next_run`` persisted and a cron job
- held schedules get ``next_run`` refreshed, and are re-registered if their
  expression or timezone changed

Each fire persists ``last_run``/``next_run`` and dispatches the resource
with an empty input. Fire failures are logged and never reach APScheduler.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import pytz
from apscheduler.job import Job as SchedulerJob
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from croniter import croniter

from flowchord.core.dispatch import ResourceDispatcher
from flowchord.core.models import Schedule, utcnow
from flowchord.errors.exceptions import InvalidCronExpressionError
from flowchord.store.base import Store

logger = logging.getLogger(__name__)

RESYNC_JOB_ID = "flowchord:resync"


def calculate_next_run(
    expression: str,
    timezone: str = "UTC",
    base_time: datetime | None = None,
) -> datetime:
    """Calculate next run time from cron expression.

    Args:
        expression: Cron expression (5 or 6 fields).
        timezone: Timezone string (e.g., 'America/New_York').
        base_time: Base time for calculation (default: now).

    Returns:
        Next run datetime in UTC, without tzinfo.

    Raises:
        ValueError: If the timezone is invalid.
        InvalidCronExpressionError: If the expression is invalid.
    """
    try:
        tz = pytz.timezone(timezone)
    except pytz.UnknownTimeZoneError as e:
        raise ValueError(f"Invalid timezone: {timezone}") from e

    if base_time is None:
        base_time = datetime.now(tz)
    elif base_time.tzinfo is None:
        base_time = tz.localize(base_time)

    try:
        cron = croniter(expression, base_time)
        next_run = cron.get_next(datetime)
    except (ValueError, KeyError) as e:
        raise InvalidCronExpressionError(expression) from e

    # Convert to UTC for storage
    return next_run.astimezone(pytz.UTC).replace(tzinfo=None)


def validate_cron_expression(expression: str) -> bool:
    """Validate cron expression syntax."""
    try:
        croniter(expression)
        return True
    except (ValueError, KeyError):
        return False


def resolve_timezone(name: str | None) -> Any:
    """Look up a timezone, falling back to UTC."""
    try:
        return pytz.timezone(name or "UTC")
    except pytz.UnknownTimeZoneError:
        logger.warning("Invalid timezone %s, using UTC", name)
        return pytz.UTC


@dataclass
class _Handle:
    job: SchedulerJob
    cron_expression: str
    timezone: str


class ResourceScheduler:
    """Runs workflows and pipelines on cron schedules.

    Example:
        scheduler = ResourceScheduler(store, dispatcher)
        await scheduler.start()
        ...
        await scheduler.reload()  # after a schedule was created or deleted
    """

    def __init__(
        self,
        store: Store,
        dispatcher: ResourceDispatcher,
        *,
        resync_interval: float = 60.0,
        misfire_grace_time: int = 60,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        """Initialize scheduler.

        Args:
            store: Source of schedules.
            dispatcher: Runs the scheduled workflow or pipeline.
            resync_interval: Seconds between reconciliations with the store.
            misfire_grace_time: Seconds a late fire is still allowed to run.
            scheduler: APScheduler instance (default: a new AsyncIOScheduler).
        """
        self._store = store
        self._dispatcher = dispatcher
        self._resync_interval = resync_interval
        self._misfire_grace_time = misfire_grace_time
        self._scheduler = scheduler or AsyncIOScheduler()
        self._handles: dict[str, _Handle] = {}
        self._lock = asyncio.Lock()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running and self._scheduler.running

    @property
    def scheduled_ids(self) -> set[str]:
        return set(self._handles)

    async def start(self) -> None:
        """Start APScheduler, sync once, then resync on an interval."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._scheduler.start()
        self._running = True
        logger.info("Scheduler started")

        await self.sync()
        self._scheduler.add_job(
            self._resync,
            trigger=IntervalTrigger(seconds=self._resync_interval),
            id=RESYNC_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    async def shutdown(self) -> None:
        """Release every handle and stop APScheduler."""
        async with self._lock:
            for schedule_id in list(self._handles):
                self._release(schedule_id)
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler shutdown complete")

    async def reload(self) -> None:
        """Force an immediate resync."""
        await self.sync()

    async def stop(self, schedule_id: str) -> None:
        """Release one schedule's cron handle."""
        async with self._lock:
            self._release(schedule_id)

    async def sync(self) -> None:
        """Reconcile held cron handles with the enabled schedules in the store."""
        async with self._lock:
            schedules = await self._store.schedules.list_all_enabled()
            enabled = {schedule.id: schedule for schedule in schedules}

            for schedule_id in list(self._handles):
                if schedule_id not in enabled:
                    self._release(schedule_id)

            for schedule in schedules:
                try:
                    handle = self._handles.get(schedule.id)
                    if handle is not None and (
                        handle.cron_expression != schedule.cron_expression
                        or handle.timezone != schedule.timezone
                    ):
                        self._release(schedule.id)
                        handle = None

                    if handle is None:
                        await self._register(schedule)
                    else:
                        await self._refresh_next_run(schedule)
                except Exception:
                    logger.exception("Failed to sync schedule %s", schedule.id)

    async def _resync(self) -> None:
        try:
            await self.sync()
        except Exception:
            logger.exception("Scheduled resync failed")

    async def _register(self, schedule: Schedule) -> None:
        if not validate_cron_expression(schedule.cron_expression):
            logger.error(
                "Invalid cron expression for schedule %s: %s",
                schedule.id,
                schedule.cron_expression,
            )
            return

        tz = resolve_timezone(schedule.timezone)
        try:
            trigger = CronTrigger.from_crontab(schedule.cron_expression, timezone=tz)
        except ValueError as e:
            logger.error("Unsupported cron expression for schedule %s: %s", schedule.id, e)
            return

        next_run = calculate_next_run(schedule.cron_expression, tz.zone)
        await self._store.schedules.update(schedule.id, next_run=next_run)

        job = self._scheduler.add_job(
            self.fire,
            trigger=trigger,
            id=schedule.id,
            args=[schedule.id],
            replace_existing=True,
            misfire_grace_time=self._misfire_grace_time,
        )
        self._handles[schedule.id] = _Handle(job, schedule.cron_expression, schedule.timezone)
        logger.info("Registered schedule %s: %s (%s)", schedule.id, schedule.cron_expression, tz.zone)

    async def _refresh_next_run(self, schedule: Schedule) -> None:
        tz = resolve_timezone(schedule.timezone)
        next_run = calculate_next_run(schedule.cron_expression, tz.zone)
        if next_run != schedule.next_run:
            await self._store.schedules.update(schedule.id, next_run=next_run)

    def _release(self, schedule_id: str) -> None:
        handle = self._handles.pop(schedule_id, None)
        if handle is None:
            return
        try:
            handle.job.remove()
        except JobLookupError:
            logger.debug("Schedule %s not found in scheduler", schedule_id)
        logger.info("Released schedule %s", schedule_id)

    async def fire(self, schedule_id: str) -> None:
        """Run one scheduled execution. Called by APScheduler."""
        logger.info("Executing scheduled run for %s", schedule_id)
        try:
            schedule = await self._store.schedules.get_by_id(schedule_id)
            if schedule is None or not schedule.enabled:
                logger.warning("Schedule %s not found or disabled", schedule_id)
                return

            tz = resolve_timezone(schedule.timezone)
            await self._store.schedules.update(
                schedule_id,
                last_run=utcnow(),
                next_run=calculate_next_run(schedule.cron_expression, tz.zone),
            )

            result = await self._dispatcher.dispatch(
                schedule.resource_type,
                schedule.resource_id,
                {},
                schedule.user_id,
            )
            if result.success:
                logger.info("Scheduled run for %s completed", schedule_id)
            else:
                logger.warning("Scheduled run for %s failed: %s", schedule_id, result.error)
        except Exception:
            logger.exception("Scheduled run for %s failed", schedule_id)
