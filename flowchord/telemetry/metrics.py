"""Execution metrics recorder.

Recording is fire-and-forget: a failing sink or subscriber is logged and
never propagates into the execution that produced the metric.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Union

from flowchord.core.models import MetricEvent
from flowchord.store.base import IMetricRepository

logger = logging.getLogger(__name__)

MetricSubscriber = Callable[[MetricEvent], Union[None, Awaitable[None]]]


class MetricsRecorder:
    """Persists metric events and notifies subscribers.

    Example:
        >>> recorder = MetricsRecorder(store.metrics)
        >>> recorder.subscribe(lambda event: print(event.status))
        >>> await recorder.record(resource_type="workflow", resource_id="wf-1",
        ...                       execution_id="run-1", status="COMPLETED")
        COMPLETED
    """

    def __init__(self, repository: IMetricRepository | None = None) -> None:
        """Initialize recorder.

        Args:
            repository: Metric sink. ``None`` keeps events in subscribers only.
        """
        self._repository = repository
        self._subscribers: list[MetricSubscriber] = []

    def subscribe(self, callback: MetricSubscriber) -> Callable[[], None]:
        """Register a subscriber.

        Returns:
            Callable that removes the subscriber.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def record(self, **fields: Any) -> MetricEvent | None:
        """Record one metric event.

        Returns:
            The recorded event, or None if it could not be built or stored.
        """
        try:
            event = MetricEvent(**fields)
            if self._repository is not None:
                await self._repository.create(event)
        except Exception:
            logger.exception(
                "Failed to record metric for %s %s",
                fields.get("resource_type"),
                fields.get("resource_id"),
            )
            return None

        for callback in list(self._subscribers):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Metric subscriber failed")
        return event
