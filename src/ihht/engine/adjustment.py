"""
Phase-end altitude adjustment.

At the end of every altitude phase the phase summary is reduced to a single
dial recommendation for the next altitude phase. Rules are evaluated in
priority order and the first match wins:

1. Escalated mask lift during the phase      -> -1
2. Average SpO2 below / above target range   -> -1 / +1
3. Minimum SpO2 at or above target maximum   -> +1
4. Otherwise                                 ->  0

The recommended level is clamped to the dial range [0, 11].
"""

import logging

from ihht.constants import ALTITUDE_LEVEL_TABLE, SessionType
from ihht.constants import AltitudeAdjustmentConstants as AAC
from ihht.engine.types import AltitudeAdjustment, AltitudeLevel, PhaseStats

logger = logging.getLogger(__name__)

__all__ = [
    "calculate_adjustment",
    "determine_session_type",
    "get_altitude_level",
    "get_target_range",
]


def get_target_range(session_type: SessionType | str) -> tuple[float, float]:
    """
    Get the altitude-phase SpO2 target range for a session type.

    Args:
        session_type: calibration or training

    Returns:
        Tuple of (target_min, target_max)
    """
    if SessionType(session_type) == SessionType.CALIBRATION:
        return AAC.CALIBRATION_TARGET_MIN, AAC.CALIBRATION_TARGET_MAX
    return AAC.TRAINING_TARGET_MIN, AAC.TRAINING_TARGET_MAX


def determine_session_type(completed_adaptive_sessions: int) -> SessionType:
    """
    Pick calibration for a user's first adaptive session, training afterwards.

    Args:
        completed_adaptive_sessions: Number of completed adaptive sessions

    Returns:
        SessionType for the next session
    """
    if completed_adaptive_sessions <= 0:
        return SessionType.CALIBRATION
    return SessionType.TRAINING


def get_altitude_level(level: int) -> AltitudeLevel:
    """
    Look up display information for a dial level.

    Unknown levels fall back to the default level.
    """
    if level not in ALTITUDE_LEVEL_TABLE:
        logger.warning(f"Unknown altitude level {level}, using {AAC.DEFAULT_LEVEL}")
        level = AAC.DEFAULT_LEVEL

    oxygen, feet, meters = ALTITUDE_LEVEL_TABLE[level]
    return AltitudeLevel(
        level=level,
        oxygen_percentage=oxygen,
        altitude_feet=feet,
        altitude_meters=meters,
    )


def _requested_adjustment(stats: PhaseStats) -> tuple[int, str, str]:
    """Return (adjustment, rule, reason) before clamping."""
    if stats.escalated_mask_lift_count > 0:
        return (
            -1,
            "mask_lift",
            f"{stats.mask_lift_count} mask lift instructions including "
            f"{stats.escalated_mask_lift_count} escalated - decrease altitude",
        )

    avg = stats.avg_spo2
    if avg is not None:
        if avg < stats.target_min_spo2:
            return (
                -1,
                "average_low",
                f"Average SpO2 ({avg:.1f}%) < {stats.target_min_spo2:g}% "
                "- decrease altitude",
            )
        if avg > stats.target_max_spo2:
            return (
                1,
                "average_high",
                f"Average SpO2 ({avg:.1f}%) > {stats.target_max_spo2:g}% "
                "- increase altitude",
            )

    if stats.min_spo2 is not None and stats.min_spo2 >= stats.target_max_spo2:
        return (
            1,
            "minimum_high",
            f"Minimum SpO2 ({stats.min_spo2:.1f}%) >= {stats.target_max_spo2:g}% "
            "- increase altitude",
        )

    if avg is None:
        return 0, "no_data", "No valid SpO2 readings - no adjustment"

    return 0, "in_range", f"Average SpO2 ({avg:.1f}%) within target range"


def calculate_adjustment(stats: PhaseStats) -> AltitudeAdjustment:
    """
    Calculate the dial adjustment for the next altitude phase.

    Args:
        stats: Summary of the altitude phase that just ended

    Returns:
        AltitudeAdjustment with the clamped new level
    """
    adjustment, rule, reason = _requested_adjustment(stats)
    current = stats.altitude_level
    new_level = min(AAC.MAX_LEVEL, max(AAC.MIN_LEVEL, current + adjustment))

    clamped = new_level != current + adjustment
    if clamped:
        bound = "maximum" if adjustment > 0 else "minimum"
        reason = f"{reason}; already at {bound} level {new_level}"

    result = AltitudeAdjustment(
        adjustment=adjustment,
        current_level=current,
        new_level=new_level,
        reason=reason,
        rule=rule,
        clamped=clamped,
    )

    logger.info(
        f"Altitude adjustment {adjustment:+d} ({rule}): "
        f"level {current} -> {new_level}"
    )
    return result
