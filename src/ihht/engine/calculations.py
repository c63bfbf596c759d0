"""Statistical reductions over phase-scoped SpO2 and heart-rate samples."""

from collections.abc import Sequence
from typing import Literal

import numpy as np

from scipy import stats

from ihht.constants import MILLISECONDS_PER_SECOND
from ihht.constants import MetricsConstants as MC


def mean_or_none(values: Sequence[float]) -> float | None:
    """
    Calculate the arithmetic mean.

    Args:
        values: Sample values

    Returns:
        Mean, or None if there are no values
    """
    if len(values) == 0:
        return None
    return float(np.mean(values))


def population_std(values: Sequence[float]) -> float | None:
    """
    Calculate the population standard deviation.

    Args:
        values: Sample values

    Returns:
        Standard deviation, or None with fewer than 2 values
    """
    if len(values) < 2:
        return None
    return float(np.std(values))


def calculate_volatility(
    spo2_values: Sequence[float],
    subset: Literal["all", "in_zone", "out_of_zone"] = "all",
    zone_min: float = MC.THERAPEUTIC_ZONE_MIN,
    zone_max: float = MC.THERAPEUTIC_ZONE_MAX,
) -> float | None:
    """
    Calculate SpO2 volatility as the population standard deviation.

    Args:
        spo2_values: Valid SpO2 readings (%)
        subset: Restrict to readings inside or outside the therapeutic zone
        zone_min: Lower bound of the zone (inclusive)
        zone_max: Upper bound of the zone (inclusive)

    Returns:
        Volatility, or None with fewer than 2 readings in the subset
    """
    values = np.asarray(spo2_values, dtype=float)

    if subset == "in_zone":
        values = values[(values >= zone_min) & (values <= zone_max)]
    elif subset == "out_of_zone":
        values = values[(values < zone_min) | (values > zone_max)]

    return population_std(values)


def calculate_recovery_slope(
    spo2_values: Sequence[float], max_samples: int = MC.RECOVERY_SLOPE_SAMPLES
) -> float | None:
    """
    Fit a line through the first samples of a recovery phase.

    The x axis is the sample index, so at 1 Hz the slope is in %/second.
    Positive slope means SpO2 is rising.

    Args:
        spo2_values: Valid SpO2 readings in arrival order
        max_samples: Number of leading samples to fit

    Returns:
        Regression slope, or None with fewer than 2 samples
    """
    window = np.asarray(spo2_values[:max_samples], dtype=float)
    if len(window) < 2:
        return None

    result = stats.linregress(np.arange(len(window), dtype=float), window)
    return float(result.slope)


def seconds_until(
    timestamps: Sequence[int],
    spo2_values: Sequence[float],
    start_time: int,
    predicate: Literal["at_or_above", "below"],
    threshold: float,
) -> int | None:
    """
    Seconds from phase start until SpO2 first satisfies a threshold.

    Args:
        timestamps: Reading times (epoch ms), aligned with spo2_values
        spo2_values: Valid SpO2 readings (%)
        start_time: Phase start (epoch ms)
        predicate: "at_or_above" or "below"
        threshold: SpO2 threshold (%)

    Returns:
        Whole seconds, or None if the threshold was never reached
    """
    for ts, spo2 in zip(timestamps, spo2_values, strict=True):
        reached = spo2 >= threshold if predicate == "at_or_above" else spo2 < threshold
        if reached:
            return round((ts - start_time) / MILLISECONDS_PER_SECOND)
    return None


def calculate_hr_recovery(
    start_heart_rate: float | None,
    heart_rates: Sequence[float],
    sample_index: int = MC.HR_RECOVERY_SAMPLE_INDEX,
) -> float | None:
    """
    Heart-rate drop from recovery start to ~60 s into recovery.

    Args:
        start_heart_rate: Last heart rate before the recovery phase
        heart_rates: Valid recovery heart rates in arrival order
        sample_index: Index of the comparison sample (1 Hz assumed)

    Returns:
        Drop in bpm (positive = slowed down), or None if unavailable
    """
    if not start_heart_rate or len(heart_rates) == 0:
        return None

    hr_at_index = heart_rates[min(sample_index, len(heart_rates) - 1)]
    return float(start_heart_rate - hr_at_index)


def calculate_cycle_score(
    time_in_zone: float | None,
    time_below_83: float | None,
    volatility_total: float | None,
    time_to_95: int | None,
) -> int:
    """
    Score one altitude + recovery cycle on a 0-100 scale.

    Args:
        time_in_zone: Seconds in the therapeutic zone during altitude
        time_below_83: Seconds below the safety threshold during altitude
        volatility_total: Altitude SpO2 volatility
        time_to_95: Seconds for recovery SpO2 to reach 95%

    Returns:
        Cycle adaptation score
    """
    score = MC.CYCLE_SCORE_BASE

    if (time_in_zone or 0) < MC.CYCLE_SCORE_MIN_ZONE_SECONDS:
        score -= MC.CYCLE_SCORE_ZONE_PENALTY

    if (time_below_83 or 0) > MC.CYCLE_SCORE_MAX_BELOW_83_SECONDS:
        score -= MC.CYCLE_SCORE_BELOW_83_PENALTY

    if time_to_95 is not None and time_to_95 < MC.CYCLE_SCORE_FAST_RECOVERY_SECONDS:
        score += MC.CYCLE_SCORE_FAST_RECOVERY_BONUS

    if volatility_total is not None and volatility_total > MC.CYCLE_SCORE_MAX_VOLATILITY:
        score -= MC.CYCLE_SCORE_VOLATILITY_PENALTY

    return max(0, min(100, score))


def summarize_range(values: Sequence[float]) -> tuple[float, float, float] | None:
    """
    Get (min, max, mean) of a sample buffer.

    Returns:
        Tuple, or None if the buffer is empty
    """
    if len(values) == 0:
        return None
    arr = np.asarray(values, dtype=float)
    return float(arr.min()), float(arr.max()), float(arr.mean())
