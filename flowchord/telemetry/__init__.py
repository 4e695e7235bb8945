"""Telemetry for FlowChord."""

from flowchord.telemetry.metrics import MetricsRecorder, MetricSubscriber

__all__ = [
    "MetricSubscriber",
    "MetricsRecorder",
]
