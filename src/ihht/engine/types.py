"""Engine type definitions."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ihht.constants import (
    AdaptiveEventType,
    ClockStatus,
    InstructionKind,
    PhaseType,
)
from ihht.constants import AltitudeAdjustmentConstants as AAC

# ============================================================================
# Phase Types
# ============================================================================


class Phase(BaseModel):
    """
    An active training phase.

    Attributes:
        phase_type: ALTITUDE or RECOVERY
        cycle_number: 1-based cycle index
        altitude_level: Dial level for altitude phases, None for recovery
        start_time: Phase start (epoch ms)
        target_min_spo2: Lower bound of the SpO2 target range
        target_max_spo2: Upper bound of the SpO2 target range
    """

    model_config = ConfigDict(frozen=True)

    phase_type: PhaseType
    cycle_number: int = Field(ge=1)
    altitude_level: int | None = Field(
        default=None, ge=AAC.MIN_LEVEL, le=AAC.MAX_LEVEL
    )
    start_time: int = Field(ge=0, description="Epoch milliseconds")
    target_min_spo2: float
    target_max_spo2: float


class PhaseChange(BaseModel):
    """A phase clock transition."""

    model_config = ConfigDict(frozen=True)

    from_status: ClockStatus
    to_status: ClockStatus
    cycle: int = Field(ge=1, description="Cycle after the transition")
    timestamp: int = Field(description="When the transition took effect (epoch ms)")
    skipped: bool = Field(default=False, description="Ended early by the user")


# ============================================================================
# Instruction Types
# ============================================================================


class Instruction(BaseModel):
    """Advisory instruction shown to the user during an altitude phase."""

    model_config = ConfigDict(frozen=True)

    kind: InstructionKind
    title: str
    message: str
    spo2: float
    timestamp: int
    breaths: int | None = Field(default=None, description="Breaths to take")
    threshold: float | None = Field(default=None, description="Threshold crossed")
    is_escalated: bool = False
    is_emergency: bool = False


# ============================================================================
# Altitude Adjustment Types
# ============================================================================


class PhaseStats(BaseModel):
    """Altitude phase summary consumed by the adjustment calculator."""

    altitude_level: int = Field(ge=AAC.MIN_LEVEL, le=AAC.MAX_LEVEL)
    avg_spo2: float | None = None
    min_spo2: float | None = None
    target_min_spo2: float = AAC.TRAINING_TARGET_MIN
    target_max_spo2: float = AAC.TRAINING_TARGET_MAX
    mask_lift_count: int = Field(default=0, ge=0)
    escalated_mask_lift_count: int = Field(default=0, ge=0)


class AltitudeAdjustment(BaseModel):
    """
    Recommended dial change for the next altitude phase.

    Attributes:
        adjustment: Requested step (-1, 0 or +1)
        current_level: Level of the phase that just ended
        new_level: Recommended level, clamped to the valid range
        reason: Human-readable explanation
        rule: Identifier of the rule that fired
        clamped: Whether the range bound changed the requested step
    """

    model_config = ConfigDict(frozen=True)

    adjustment: int = Field(ge=-1, le=1)
    current_level: int = Field(ge=AAC.MIN_LEVEL, le=AAC.MAX_LEVEL)
    new_level: int = Field(ge=AAC.MIN_LEVEL, le=AAC.MAX_LEVEL)
    reason: str
    rule: str
    clamped: bool = False

    @property
    def effective_adjustment(self) -> int:
        return self.new_level - self.current_level


class AltitudeLevel(BaseModel):
    """Display information for a dial level."""

    level: int
    oxygen_percentage: float
    altitude_feet: int
    altitude_meters: int

    @property
    def display_name(self) -> str:
        return f"~{self.altitude_feet:,} ft / {self.altitude_meters:,} m"


# ============================================================================
# Session Types
# ============================================================================


class AdaptiveEvent(BaseModel):
    """Adaptive event recorded during a session."""

    event_type: AdaptiveEventType
    timestamp: int
    cycle_number: int | None = None
    phase_type: PhaseType | None = None
    altitude_level: int | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class SessionUpdate(BaseModel):
    """Everything a single session callback produced."""

    instruction: Instruction | None = None
    phase_changes: list[PhaseChange] = Field(default_factory=list)
    adjustments: list[AltitudeAdjustment] = Field(default_factory=list)
    completed: bool = False

    def merge(self, other: "SessionUpdate") -> "SessionUpdate":
        """Combine two updates, keeping the most recent instruction."""
        return SessionUpdate(
            instruction=other.instruction or self.instruction,
            phase_changes=[*self.phase_changes, *other.phase_changes],
            adjustments=[*self.adjustments, *other.adjustments],
            completed=self.completed or other.completed,
        )
