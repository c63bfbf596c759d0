"""
Phase clock for an IHHT session.

The clock is a frozen value and every operation returns a new clock together
with the PhaseChange records it produced:

    ALTITUDE -> TRANSITION -> RECOVERY -> TRANSITION -> ALTITUDE (cycle + 1)
                                       or COMPLETED (last cycle)

A transition_duration of 0 removes the TRANSITION steps. Scheduled phase ends
are derived from phase_started_at, so a long gap between calls (for example a
host process suspended in the background) replays to the same sequence of
phases that live ticking would have produced.
"""

import logging

from pydantic import BaseModel, ConfigDict, Field

from ihht.constants import MILLISECONDS_PER_SECOND, ClockStatus
from ihht.constants import ProtocolConstants as PC
from ihht.engine.types import PhaseChange
from ihht.errors import PhaseStateError

logger = logging.getLogger(__name__)

__all__ = [
    "ProtocolConfig",
    "PhaseClock",
    "start_clock",
    "advance_clock",
    "end_current_phase",
    "skip_phase",
    "pause_clock",
    "resume_clock",
    "remaining_seconds",
    "elapsed_seconds",
    "phase_duration",
]


class ProtocolConfig(BaseModel):
    """Training protocol. Durations are seconds."""

    model_config = ConfigDict(frozen=True)

    total_cycles: int = Field(
        default=PC.TOTAL_CYCLES,
        ge=PC.MIN_CYCLES,
        le=PC.MAX_CYCLES,
        description="Altitude + recovery cycles",
    )
    altitude_duration: int = Field(
        default=PC.ALTITUDE_DURATION,
        ge=PC.MIN_ALTITUDE_DURATION,
        le=PC.MAX_ALTITUDE_DURATION,
        description="Hypoxic phase length (s)",
    )
    recovery_duration: int = Field(
        default=PC.RECOVERY_DURATION,
        ge=PC.MIN_RECOVERY_DURATION,
        le=PC.MAX_RECOVERY_DURATION,
        description="Hyperoxic phase length (s)",
    )
    transition_duration: int = Field(
        default=PC.TRANSITION_DURATION,
        ge=0,
        description="Mask switch between phases (s), 0 disables",
    )
    adaptive_recovery: bool = Field(
        default=False, description="End recovery early once SpO2 is stable"
    )

    @property
    def total_duration(self) -> int:
        """Nominal session length in seconds."""
        transitions = (2 * self.total_cycles - 1) * self.transition_duration
        return (
            self.total_cycles * (self.altitude_duration + self.recovery_duration)
            + transitions
        )


class PhaseClock(BaseModel):
    """
    Position of a session in its protocol.

    Attributes:
        status: Current clock state
        cycle: 1-based cycle index
        phase_started_at: Start of the current phase (epoch ms), shifted
            forward by any paused time
        next_phase: Phase that follows a TRANSITION
        paused_at: When the clock was paused (epoch ms), None while running
    """

    model_config = ConfigDict(frozen=True)

    status: ClockStatus = ClockStatus.ALTITUDE
    cycle: int = Field(default=1, ge=1)
    phase_started_at: int = Field(ge=0)
    next_phase: ClockStatus | None = None
    paused_at: int | None = None

    @property
    def is_paused(self) -> bool:
        return self.paused_at is not None

    @property
    def is_completed(self) -> bool:
        return self.status == ClockStatus.COMPLETED


def start_clock(now: int) -> PhaseClock:
    """Start a clock in the first altitude phase."""
    return PhaseClock(status=ClockStatus.ALTITUDE, cycle=1, phase_started_at=now)


def phase_duration(clock: PhaseClock, protocol: ProtocolConfig) -> int | None:
    """
    Scheduled length of the current phase in seconds.

    Returns:
        Duration, or None for a completed clock
    """
    if clock.status == ClockStatus.ALTITUDE:
        return protocol.altitude_duration
    if clock.status == ClockStatus.RECOVERY:
        return protocol.recovery_duration
    if clock.status == ClockStatus.TRANSITION:
        return protocol.transition_duration
    return None


def _scheduled_end(clock: PhaseClock, protocol: ProtocolConfig) -> int | None:
    duration = phase_duration(clock, protocol)
    if duration is None:
        return None
    return clock.phase_started_at + duration * MILLISECONDS_PER_SECOND


def _successor(
    clock: PhaseClock, at: int, protocol: ProtocolConfig
) -> PhaseClock:
    """The clock after the current phase ends at `at`."""
    with_transition = protocol.transition_duration > 0

    if clock.status == ClockStatus.TRANSITION:
        target = clock.next_phase or ClockStatus.ALTITUDE
        cycle = clock.cycle + 1 if target == ClockStatus.ALTITUDE else clock.cycle
        return PhaseClock(status=target, cycle=cycle, phase_started_at=at)

    if clock.status == ClockStatus.ALTITUDE:
        target = ClockStatus.RECOVERY
        cycle = clock.cycle
    elif clock.cycle >= protocol.total_cycles:
        return PhaseClock(
            status=ClockStatus.COMPLETED, cycle=clock.cycle, phase_started_at=at
        )
    else:
        target = ClockStatus.ALTITUDE
        cycle = clock.cycle + 1

    if with_transition:
        return PhaseClock(
            status=ClockStatus.TRANSITION,
            cycle=clock.cycle,
            phase_started_at=at,
            next_phase=target,
        )
    return PhaseClock(status=target, cycle=cycle, phase_started_at=at)


def end_current_phase(
    clock: PhaseClock,
    now: int,
    protocol: ProtocolConfig,
    skipped: bool = False,
) -> tuple[PhaseClock, list[PhaseChange]]:
    """
    End the current phase at `now` and enter its successor.

    A paused clock stays paused in the new phase.

    Raises:
        PhaseStateError: If the clock is already completed
    """
    if clock.is_completed:
        raise PhaseStateError("Cannot end a phase of a completed session")

    successor = _successor(clock, now, protocol)
    if clock.is_paused:
        successor = successor.model_copy(update={"paused_at": now})

    change = PhaseChange(
        from_status=clock.status,
        to_status=successor.status,
        cycle=successor.cycle,
        timestamp=now,
        skipped=skipped,
    )
    return successor, [change]


def skip_phase(
    clock: PhaseClock, now: int, protocol: ProtocolConfig
) -> tuple[PhaseClock, list[PhaseChange]]:
    """
    End the current phase early at the user's request.

    Raises:
        PhaseStateError: If the clock is already completed
    """
    logger.info(f"Skipping {clock.status.value} phase of cycle {clock.cycle}")
    return end_current_phase(clock, now, protocol, skipped=True)


def advance_clock(
    clock: PhaseClock, now: int, protocol: ProtocolConfig
) -> tuple[PhaseClock, list[PhaseChange]]:
    """
    Apply every phase whose scheduled end is at or before `now`.

    Each successor starts at its predecessor's scheduled end rather than at
    `now`. Paused and completed clocks do not advance.

    Args:
        clock: Current clock
        now: Current time (epoch ms)
        protocol: Training protocol

    Returns:
        Tuple of (new clock, phase changes in order)
    """
    changes: list[PhaseChange] = []
    if clock.is_paused:
        return clock, changes

    while not clock.is_completed:
        end = _scheduled_end(clock, protocol)
        if end is None or end > now:
            break
        clock, step_changes = end_current_phase(clock, end, protocol)
        changes.extend(step_changes)

    if len(changes) > 1:
        logger.debug(f"Replayed {len(changes)} phase changes up to {now}")
    return clock, changes


def pause_clock(clock: PhaseClock, now: int) -> PhaseClock:
    """
    Pause the clock. Pausing a paused clock is a no-op.

    Raises:
        PhaseStateError: If the clock is completed
    """
    if clock.is_completed:
        raise PhaseStateError("Cannot pause a completed session")
    if clock.is_paused:
        return clock
    return clock.model_copy(update={"paused_at": now})


def resume_clock(clock: PhaseClock, now: int) -> PhaseClock:
    """
    Resume a paused clock, shifting the phase start by the paused time.

    Raises:
        PhaseStateError: If the clock is not paused
    """
    if clock.paused_at is None:
        raise PhaseStateError("Cannot resume a clock that is not paused")

    paused_for = max(0, now - clock.paused_at)
    logger.debug(f"Resuming after {paused_for} ms paused")
    return clock.model_copy(
        update={
            "phase_started_at": clock.phase_started_at + paused_for,
            "paused_at": None,
        }
    )


def elapsed_seconds(clock: PhaseClock, now: int) -> float:
    """Seconds spent in the current phase, excluding paused time."""
    reference = clock.paused_at if clock.paused_at is not None else now
    return max(0, reference - clock.phase_started_at) / MILLISECONDS_PER_SECOND


def remaining_seconds(
    clock: PhaseClock, now: int, protocol: ProtocolConfig
) -> float:
    """Seconds left in the current phase; 0 for a completed clock."""
    duration = phase_duration(clock, protocol)
    if duration is None:
        return 0.0
    return max(0.0, duration - elapsed_seconds(clock, now))
