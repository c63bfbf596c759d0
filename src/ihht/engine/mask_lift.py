"""
Mask-lift advisory state machine.

During an altitude phase the advisor watches SpO2 against fixed thresholds and
tells the user to lift the mask briefly when saturation drops too far:

    IDLE --(spo2 <= 83)--> FIRST_TRIGGERED            1-breath lift
    FIRST_TRIGGERED --(spo2 <= 80 within 15 s)--> SECOND_TRIGGERED
                                                      2-breath lift
    FIRST_TRIGGERED --(15 s elapsed)--> IDLE
    SECOND_TRIGGERED --(15 s elapsed)--> IDLE

On cooldown expiry the reading that observed the expiry is evaluated again
against the IDLE rule, so a user still below 83% gets a new instruction right
away. SpO2 below 75% always produces a remove-mask instruction and leaves the
state untouched.

The transition function `step` is pure; MaskLiftAdvisor wraps it with the
per-phase counters the adjustment calculator needs.
"""

import logging

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from ihht.constants import InstructionKind
from ihht.constants import MaskLiftConstants as MLC
from ihht.engine.types import Instruction

logger = logging.getLogger(__name__)

__all__ = [
    "Idle",
    "FirstTriggered",
    "SecondTriggered",
    "MaskLiftState",
    "MaskLiftStep",
    "MaskLiftAdvisor",
    "step",
]


# ============================================================================
# State Types
# ============================================================================


class Idle(BaseModel):
    """No mask lift in progress."""

    model_config = ConfigDict(frozen=True)

    status: Literal["idle"] = "idle"


class FirstTriggered(BaseModel):
    """First (1-breath) lift issued; escalation window open."""

    model_config = ConfigDict(frozen=True)

    status: Literal["first_triggered"] = "first_triggered"
    since: int = Field(description="First trigger time (epoch ms)")


class SecondTriggered(BaseModel):
    """Escalated (2-breath) lift issued; waiting out the second cooldown."""

    model_config = ConfigDict(frozen=True)

    status: Literal["second_triggered"] = "second_triggered"
    since: int = Field(description="Second trigger time (epoch ms)")
    first_since: int = Field(description="First trigger time (epoch ms)")


MaskLiftState = Annotated[
    Idle | FirstTriggered | SecondTriggered, Field(discriminator="status")
]

IDLE = Idle()


class MaskLiftStep(BaseModel):
    """Result of feeding one reading to the state machine."""

    model_config = ConfigDict(frozen=True)

    state: MaskLiftState
    instruction: Instruction | None = None


# ============================================================================
# Instructions
# ============================================================================


def _first_lift(spo2: float, timestamp: int) -> Instruction:
    return Instruction(
        kind=InstructionKind.MASK_LIFT,
        title="Mask Lift",
        message="Lift mask 1mm, small breath",
        spo2=spo2,
        timestamp=timestamp,
        breaths=MLC.FIRST_LIFT_BREATHS,
        threshold=MLC.FIRST_LIFT_THRESHOLD,
    )


def _second_lift(spo2: float, timestamp: int) -> Instruction:
    return Instruction(
        kind=InstructionKind.MASK_LIFT,
        title="Mask Lift Required",
        message="Lift mask and take two deep breaths",
        spo2=spo2,
        timestamp=timestamp,
        breaths=MLC.SECOND_LIFT_BREATHS,
        threshold=MLC.SECOND_LIFT_THRESHOLD,
        is_escalated=True,
    )


def _remove_mask(spo2: float, timestamp: int) -> Instruction:
    return Instruction(
        kind=InstructionKind.MASK_REMOVE,
        title="Remove Mask Immediately",
        message="EMERGENCY: Take off your mask completely",
        spo2=spo2,
        timestamp=timestamp,
        threshold=MLC.EMERGENCY_THRESHOLD,
        is_emergency=True,
    )


# ============================================================================
# Transition Function
# ============================================================================


def step(
    state: Idle | FirstTriggered | SecondTriggered,
    spo2: float,
    timestamp: int,
    cooldown_ms: int = MLC.COOLDOWN_MS,
) -> MaskLiftStep:
    """
    Apply one SpO2 reading to the mask-lift state machine.

    Args:
        state: Current state
        spo2: Valid SpO2 reading (%)
        timestamp: Reading time (epoch ms)
        cooldown_ms: Cooldown window after each trigger

    Returns:
        MaskLiftStep with the next state and the instruction to show, if any
    """
    if spo2 < MLC.EMERGENCY_THRESHOLD:
        return MaskLiftStep(state=state, instruction=_remove_mask(spo2, timestamp))

    if isinstance(state, FirstTriggered):
        if timestamp - state.since < cooldown_ms:
            if spo2 <= MLC.SECOND_LIFT_THRESHOLD:
                return MaskLiftStep(
                    state=SecondTriggered(since=timestamp, first_since=state.since),
                    instruction=_second_lift(spo2, timestamp),
                )
            return MaskLiftStep(state=state)
        state = IDLE

    elif isinstance(state, SecondTriggered):
        if timestamp - state.since < cooldown_ms:
            return MaskLiftStep(state=state)
        state = IDLE

    if spo2 <= MLC.FIRST_LIFT_THRESHOLD:
        return MaskLiftStep(
            state=FirstTriggered(since=timestamp),
            instruction=_first_lift(spo2, timestamp),
        )

    return MaskLiftStep(state=state)


# ============================================================================
# Advisor
# ============================================================================


class MaskLiftAdvisor:
    """
    Stateful wrapper around `step` for a single altitude phase.

    Example:
        >>> advisor = MaskLiftAdvisor()
        >>> for spo2, ts in zip([84, 83, 82, 81, 80, 79], range(0, 6000, 1000)):
        ...     instruction = advisor.process_reading(spo2, ts)
        >>> advisor.mask_lift_count, advisor.escalated_count
        (2, 1)
    """

    def __init__(self, cooldown_ms: int = MLC.COOLDOWN_MS):
        self.cooldown_ms = cooldown_ms
        self.state: Idle | FirstTriggered | SecondTriggered = IDLE
        self.first_count = 0
        self.escalated_count = 0
        self.emergency_count = 0

    @property
    def mask_lift_count(self) -> int:
        """Mask-lift instructions issued this phase, escalations included."""
        return self.first_count + self.escalated_count

    def reset(self) -> None:
        """Return to IDLE and clear per-phase counters."""
        self.state = IDLE
        self.first_count = 0
        self.escalated_count = 0
        self.emergency_count = 0

    def process_reading(self, spo2: float | None, timestamp: int) -> Instruction | None:
        """
        Feed one reading to the advisor.

        Invalid SpO2 values (None, <= 0, > 100) are ignored.

        Returns:
            Instruction to show, or None
        """
        if spo2 is None or not 0 < spo2 <= 100:
            return None

        result = step(self.state, spo2, timestamp, self.cooldown_ms)

        if result.state.status != self.state.status:
            logger.debug(
                f"Mask lift state {self.state.status} -> {result.state.status} "
                f"at SpO2 {spo2}%"
            )
        self.state = result.state

        instruction = result.instruction
        if instruction is None:
            return None

        if instruction.is_emergency:
            self.emergency_count += 1
            logger.warning(f"SpO2 {spo2}% below emergency threshold, remove mask")
        elif instruction.is_escalated:
            self.escalated_count += 1
            logger.info(f"Escalated mask lift at SpO2 {spo2}%")
        else:
            self.first_count += 1
            logger.info(f"Mask lift at SpO2 {spo2}%")

        return instruction
