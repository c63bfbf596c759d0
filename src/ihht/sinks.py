"""
Metrics sinks.

A sink receives closed phase metrics, altitude adjustments, adaptive events
and the final session rollup as a session produces them. Persistence is the
sink's concern; the engine only logs sink failures.
"""

from typing import Protocol

from ihht.engine.types import AdaptiveEvent, AltitudeAdjustment
from ihht.models.metrics import PhaseMetrics, SessionMetrics

__all__ = ["MetricsSink", "MemorySink"]


class MetricsSink(Protocol):
    """Receiver for session results."""

    def save_phase_metrics(self, session_id: str, metrics: PhaseMetrics) -> None: ...

    def save_adjustment(
        self, session_id: str, adjustment: AltitudeAdjustment
    ) -> None: ...

    def save_adaptive_event(self, session_id: str, event: AdaptiveEvent) -> None: ...

    def save_session_metrics(
        self, session_id: str, metrics: SessionMetrics
    ) -> None: ...


class MemorySink:
    """In-process sink that keeps everything in lists."""

    def __init__(self) -> None:
        self.phase_metrics: list[PhaseMetrics] = []
        self.adjustments: list[AltitudeAdjustment] = []
        self.events: list[AdaptiveEvent] = []
        self.session_metrics: SessionMetrics | None = None

    def save_phase_metrics(self, session_id: str, metrics: PhaseMetrics) -> None:
        self.phase_metrics.append(metrics)

    def save_adjustment(self, session_id: str, adjustment: AltitudeAdjustment) -> None:
        self.adjustments.append(adjustment)

    def save_adaptive_event(self, session_id: str, event: AdaptiveEvent) -> None:
        self.events.append(event)

    def save_session_metrics(self, session_id: str, metrics: SessionMetrics) -> None:
        self.session_metrics = metrics
