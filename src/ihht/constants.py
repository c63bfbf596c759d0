"""
Constants and thresholds for IHHT session analysis.

Threshold values are SpO2 percentages unless noted otherwise. Times inside the
engine are epoch milliseconds; protocol durations are seconds.
"""

from enum import Enum
from pathlib import Path

# ============================================================================
# Phase and Session Types
# ============================================================================


class PhaseType(str, Enum):
    """Training phase types."""

    ALTITUDE = "ALTITUDE"  # Hypoxic air through the mask
    RECOVERY = "RECOVERY"  # Hyperoxic / room air


class ClockStatus(str, Enum):
    """States of the session phase clock."""

    ALTITUDE = "ALTITUDE"
    TRANSITION = "TRANSITION"  # Mask switch between phases
    RECOVERY = "RECOVERY"
    COMPLETED = "COMPLETED"


class SessionType(str, Enum):
    """Session types with different SpO2 target ranges."""

    CALIBRATION = "calibration"
    TRAINING = "training"


class InstructionKind(str, Enum):
    """Advisory instructions emitted during an altitude phase."""

    MASK_LIFT = "mask_lift"
    MASK_REMOVE = "mask_remove"


class AdaptiveEventType(str, Enum):
    """Adaptive events handed to the metrics sink."""

    MASK_LIFT = "mask_lift"
    MASK_LIFT_ESCALATED = "mask_lift_escalated"
    MASK_REMOVE = "mask_remove"
    DIAL_ADJUSTMENT = "dial_adjustment"
    DIAL_ADJUSTMENT_CONFIRMED = "dial_adjustment_confirmed"
    RECOVERY_COMPLETE = "recovery_complete"


# ============================================================================
# Analysis Algorithm Constants
# ============================================================================


class MaskLiftConstants:
    """
    Constants for the mask-lift advisory state machine (mask_lift.py).

    These are the only thresholds the advisor uses; they do not vary with
    session type.
    """

    FIRST_LIFT_THRESHOLD = 83.0  # <= triggers 1-breath lift
    SECOND_LIFT_THRESHOLD = 80.0  # <= inside cooldown triggers 2-breath lift
    EMERGENCY_THRESHOLD = 75.0  # < triggers remove-mask
    COOLDOWN_MS = 15_000

    FIRST_LIFT_BREATHS = 1
    SECOND_LIFT_BREATHS = 2


class AltitudeAdjustmentConstants:
    """Constants for phase-end altitude adjustment (adjustment.py)."""

    MIN_LEVEL = 0
    MAX_LEVEL = 11
    DEFAULT_LEVEL = 6

    TRAINING_TARGET_MIN = 85.0
    TRAINING_TARGET_MAX = 90.0
    CALIBRATION_TARGET_MIN = 88.0
    CALIBRATION_TARGET_MAX = 93.0

    RECOVERY_TARGET_MIN = 95.0
    RECOVERY_TARGET_MAX = 100.0


class MetricsConstants:
    """Constants for phase and session metrics (metrics.py)."""

    THERAPEUTIC_ZONE_MIN = 85.0
    THERAPEUTIC_ZONE_MAX = 90.0
    THERAPEUTIC_ZONE_ENTRY = 90.0  # First reading below this enters the zone
    SAFETY_THRESHOLD = 83.0
    RECOVERY_TARGET = 95.0

    RECOVERY_SLOPE_SAMPLES = 30
    HR_RECOVERY_SAMPLE_INDEX = 60  # ~60 s at 1 Hz
    SAMPLE_INTERVAL_SECONDS = 1.0

    MASK_LIFT_CAPTURE_10S = (10.0, 11.0)
    MASK_LIFT_CAPTURE_15S = (15.0, 16.0)
    MASK_LIFT_TIMEOUT_SECONDS = 20.0

    CYCLE_SCORE_BASE = 100
    CYCLE_SCORE_MIN_ZONE_SECONDS = 180
    CYCLE_SCORE_ZONE_PENALTY = 20
    CYCLE_SCORE_MAX_BELOW_83_SECONDS = 30
    CYCLE_SCORE_BELOW_83_PENALTY = 15
    CYCLE_SCORE_FAST_RECOVERY_SECONDS = 60
    CYCLE_SCORE_FAST_RECOVERY_BONUS = 10
    CYCLE_SCORE_MAX_VOLATILITY = 3.0
    CYCLE_SCORE_VOLATILITY_PENALTY = 10

    STABILITY_PENALTY_PER_MASK_LIFT = 10


class RecoveryConstants:
    """Constants for the adaptive recovery monitor (recovery.py)."""

    TARGET_SPO2 = 95.0
    STABILIZED_SECONDS = 60
    MAX_RECOVERY_SECONDS = 180
    HISTORY_WINDOW_MS = 180_000


class ProtocolConstants:
    """Default training protocol and its limits."""

    TOTAL_CYCLES = 3
    MIN_CYCLES = 1
    MAX_CYCLES = 5

    ALTITUDE_DURATION = 420  # 7 minutes
    MIN_ALTITUDE_DURATION = 180
    MAX_ALTITUDE_DURATION = 600

    RECOVERY_DURATION = 180  # 3 minutes
    MIN_RECOVERY_DURATION = 120
    MAX_RECOVERY_DURATION = 300

    TRANSITION_DURATION = 10


# ============================================================================
# Altitude Levels
# ============================================================================


ALTITUDE_LEVEL_TABLE: dict[int, tuple[float, int, int]] = {
    # level: (oxygen %, feet, meters)
    0: (18.0, 4500, 1372),
    1: (17.0, 6500, 1981),
    2: (16.0, 8500, 2591),
    3: (15.4, 10000, 3048),
    4: (14.3, 12000, 3658),
    5: (13.4, 14000, 4267),
    6: (12.5, 16000, 4877),
    7: (11.6, 18500, 5639),
    8: (10.7, 21000, 6401),
    9: (9.8, 23500, 7163),
    10: (9.0, 26000, 7925),
    11: (8.1, 28500, 8687),
}


# ============================================================================
# Default Settings
# ============================================================================

DEFAULT_DATABASE_PATH = str(Path.home() / ".ihht" / "ihht.db")

# Logging configuration
DEFAULT_LOG_DIR = Path.home() / ".ihht" / "logs"
DEFAULT_LOG_FILE = "ihht.log"
DEFAULT_LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_LOG_BACKUP_COUNT = 5

# Time calculations
SECONDS_PER_MINUTE = 60
MILLISECONDS_PER_SECOND = 1000

# Replay CSV columns
READING_CSV_COLUMNS = ("timestamp", "spo2", "heart_rate")
