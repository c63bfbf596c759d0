"""
Synthetic pulse oximeter stream for a training protocol.

SpO2 relaxes exponentially toward a level-dependent floor during altitude
phases and back toward baseline during recovery, with Gaussian sensor noise.
The phase schedule comes from the same phase clock the engine uses, and with
adaptive recovery the same recovery monitor ends recovery early, so the
stream lines up with a live session started at the same time.
"""

import logging

import numpy as np

from ihht.constants import MILLISECONDS_PER_SECOND, ClockStatus
from ihht.constants import AltitudeAdjustmentConstants as AAC
from ihht.engine.phases import (
    ProtocolConfig,
    advance_clock,
    end_current_phase,
    start_clock,
)
from ihht.engine.recovery import RecoveryTimer, evaluate_recovery, update_timer
from ihht.models.readings import Reading

logger = logging.getLogger(__name__)

__all__ = ["simulate_session", "altitude_floor"]

BASELINE_SPO2 = 97.0
BASELINE_HEART_RATE = 68.0
DESATURATION_TAU_SECONDS = 70.0
RECOVERY_TAU_SECONDS = 18.0


def altitude_floor(level: int) -> float:
    """SpO2 a simulated user settles at for a dial level."""
    return 93.0 - 1.2 * level


def simulate_session(
    protocol: ProtocolConfig | None = None,
    altitude_level: int = AAC.DEFAULT_LEVEL,
    seed: int = 0,
    start_time: int = 0,
    noise_std: float = 0.8,
    dropout_rate: float = 0.0,
    sample_interval_ms: int = MILLISECONDS_PER_SECOND,
) -> list[Reading]:
    """
    Generate a reproducible reading stream covering a whole protocol.

    Args:
        protocol: Phase schedule, defaults to ProtocolConfig()
        altitude_level: Dial level the simulated user trains at
        seed: Seed for numpy's random generator
        start_time: First reading time (epoch ms)
        noise_std: Standard deviation of SpO2 noise (%)
        dropout_rate: Probability that a sample has no SpO2 value
        sample_interval_ms: Time between readings

    Returns:
        Readings from start_time through the protocol end, inclusive

    Raises:
        ValueError: If altitude_level or dropout_rate is out of range
    """
    if not AAC.MIN_LEVEL <= altitude_level <= AAC.MAX_LEVEL:
        raise ValueError(f"Altitude level out of range: {altitude_level}")
    if not 0.0 <= dropout_rate < 1.0:
        raise ValueError(f"Dropout rate must be in [0, 1), got {dropout_rate}")

    protocol = protocol or ProtocolConfig()
    rng = np.random.default_rng(seed)
    dt = sample_interval_ms / MILLISECONDS_PER_SECOND

    floor = altitude_floor(altitude_level)
    peak_heart_rate = BASELINE_HEART_RATE + 2.5 * altitude_level

    clock = start_clock(start_time)
    spo2 = BASELINE_SPO2
    heart_rate = BASELINE_HEART_RATE
    readings: list[Reading] = []
    now = start_time
    recovery_timer = RecoveryTimer()

    while True:
        previous_start = clock.phase_started_at
        clock, _ = advance_clock(clock, now, protocol)
        if clock.phase_started_at != previous_start:
            recovery_timer = RecoveryTimer()

        if clock.status == ClockStatus.ALTITUDE:
            spo2 += (floor - spo2) * (1 - np.exp(-dt / DESATURATION_TAU_SECONDS))
            heart_rate += (peak_heart_rate - heart_rate) * 0.02
        elif clock.status == ClockStatus.RECOVERY:
            spo2 += (BASELINE_SPO2 + 1 - spo2) * (1 - np.exp(-dt / RECOVERY_TAU_SECONDS))
            heart_rate += (BASELINE_HEART_RATE - heart_rate) * 0.03

        measured = float(np.clip(np.round(spo2 + rng.normal(0.0, noise_std)), 50, 100))
        measured_hr = float(np.round(heart_rate + rng.normal(0.0, 1.5)))

        sample = None if rng.random() < dropout_rate else measured
        readings.append(Reading(spo2=sample, heart_rate=measured_hr, timestamp=now))

        if clock.status == ClockStatus.RECOVERY and protocol.adaptive_recovery:
            if sample is not None:
                recovery_timer = update_timer(recovery_timer, sample, now)
            status = evaluate_recovery(
                recovery_timer,
                clock.phase_started_at,
                now,
                max_recovery_seconds=protocol.recovery_duration,
            )
            if status.reason == "spo2_stabilized":
                clock, _ = end_current_phase(clock, now, protocol)
                recovery_timer = RecoveryTimer()

        if clock.status == ClockStatus.COMPLETED:
            break
        now += sample_interval_ms

    logger.info(
        f"Simulated {len(readings)} readings at level {altitude_level} (seed {seed})"
    )
    return readings
