"""Data models for readings and metrics."""

from ihht.models.metrics import (
    CycleMetrics,
    MaskLiftRecovery,
    PhaseMetrics,
    SessionMetrics,
)
from ihht.models.readings import Reading

__all__ = [
    "CycleMetrics",
    "MaskLiftRecovery",
    "PhaseMetrics",
    "Reading",
    "SessionMetrics",
]
