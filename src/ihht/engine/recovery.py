"""
Adaptive recovery monitor.

Tracks how long SpO2 has stayed at or above the recovery target. The timer
pauses whenever SpO2 drops below target and resumes without resetting, so
the total is cumulative across the phase. A recovery phase may end early once
SpO2 has been stable long enough.
"""

import logging

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from ihht.constants import MILLISECONDS_PER_SECOND
from ihht.constants import RecoveryConstants as RC

logger = logging.getLogger(__name__)

__all__ = ["RecoveryTimer", "RecoveryStatus", "update_timer", "evaluate_recovery"]


class RecoveryTimer(BaseModel):
    """Accumulated time at or above the recovery target."""

    model_config = ConfigDict(frozen=True)

    running_since: int | None = Field(
        default=None, description="Start of the current run above target (epoch ms)"
    )
    accumulated_ms: int = Field(default=0, ge=0, description="Closed runs total")

    def total_ms(self, now: int) -> int:
        """Accumulated time including the open run, if any."""
        if self.running_since is None:
            return self.accumulated_ms
        return self.accumulated_ms + max(0, now - self.running_since)

    def total_seconds(self, now: int) -> int:
        return self.total_ms(now) // MILLISECONDS_PER_SECOND


class RecoveryStatus(BaseModel):
    """Result of evaluating a recovery phase."""

    should_end: bool
    reason: Literal["time_limit", "spo2_stabilized"] | None = None
    time_above_target: int = Field(ge=0, description="Seconds at or above target")
    remaining_seconds: float = Field(ge=0, description="Seconds until time limit")


def update_timer(
    timer: RecoveryTimer,
    spo2: float,
    timestamp: int,
    target_spo2: float = RC.TARGET_SPO2,
) -> RecoveryTimer:
    """
    Apply one valid SpO2 reading to the recovery timer.

    Args:
        timer: Current timer
        spo2: SpO2 reading (%)
        timestamp: Reading time (epoch ms)
        target_spo2: Recovery target (%)

    Returns:
        Updated timer
    """
    if spo2 >= target_spo2:
        if timer.running_since is None:
            return RecoveryTimer(
                running_since=timestamp, accumulated_ms=timer.accumulated_ms
            )
        return timer

    if timer.running_since is not None:
        return RecoveryTimer(
            running_since=None,
            accumulated_ms=timer.accumulated_ms
            + max(0, timestamp - timer.running_since),
        )
    return timer


def evaluate_recovery(
    timer: RecoveryTimer,
    phase_start: int,
    now: int,
    stabilized_seconds: int = RC.STABILIZED_SECONDS,
    max_recovery_seconds: int = RC.MAX_RECOVERY_SECONDS,
) -> RecoveryStatus:
    """
    Decide whether a recovery phase is complete.

    The time limit is checked before stabilization.

    Args:
        timer: Recovery timer for the phase
        phase_start: Phase start (epoch ms)
        now: Current time (epoch ms)
        stabilized_seconds: Time at target that completes recovery
        max_recovery_seconds: Hard upper bound on recovery length

    Returns:
        RecoveryStatus
    """
    elapsed = (now - phase_start) / MILLISECONDS_PER_SECOND
    above = timer.total_seconds(now)

    if elapsed >= max_recovery_seconds:
        return RecoveryStatus(
            should_end=True,
            reason="time_limit",
            time_above_target=above,
            remaining_seconds=0,
        )

    if above >= stabilized_seconds:
        logger.info(f"Recovery stabilized after {elapsed:.0f}s ({above}s at target)")
        return RecoveryStatus(
            should_end=True,
            reason="spo2_stabilized",
            time_above_target=above,
            remaining_seconds=max(0.0, max_recovery_seconds - elapsed),
        )

    return RecoveryStatus(
        should_end=False,
        time_above_target=above,
        remaining_seconds=max(0.0, max_recovery_seconds - elapsed),
    )
