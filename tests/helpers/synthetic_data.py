"""
Synthetic reading generators.

Provides functions to build controlled, reproducible pulse oximeter streams
for unit testing. All timestamps are epoch milliseconds.
"""

from collections.abc import Sequence
from pathlib import Path

import numpy as np

from ihht.models.readings import Reading


def readings_from_spo2(
    values: Sequence[float | None],
    start: int = 0,
    interval_ms: int = 1000,
    heart_rate: float | None = 75.0,
) -> list[Reading]:
    """
    Build one reading per SpO2 value at a fixed interval.

    Args:
        values: SpO2 values (None for a missing sample)
        start: Timestamp of the first reading
        interval_ms: Time between readings
        heart_rate: Heart rate for every reading

    Returns:
        List of readings
    """
    return [
        Reading(spo2=value, heart_rate=heart_rate, timestamp=start + i * interval_ms)
        for i, value in enumerate(values)
    ]


def constant_readings(
    spo2: float,
    start: int,
    end: int,
    interval_ms: int = 1000,
    heart_rate: float = 75.0,
) -> list[Reading]:
    """Readings with the same SpO2 from start (inclusive) to end (exclusive)."""
    return [
        Reading(spo2=spo2, heart_rate=heart_rate, timestamp=ts)
        for ts in range(start, end, interval_ms)
    ]


def linear_spo2(
    start_value: float, end_value: float, count: int
) -> list[float]:
    """Evenly spaced SpO2 values, rounded to one decimal."""
    return [round(float(v), 1) for v in np.linspace(start_value, end_value, count)]


def cycle_readings(
    altitude_spo2: float,
    recovery_spo2: float,
    altitude_seconds: int,
    recovery_seconds: int,
    cycles: int = 1,
    start: int = 0,
) -> list[Reading]:
    """
    A flat stream for back-to-back cycles without transitions.

    Includes a final reading at the protocol end so a replay completes.
    """
    readings: list[Reading] = []
    t = start
    for _ in range(cycles):
        altitude_end = t + altitude_seconds * 1000
        readings += constant_readings(altitude_spo2, t, altitude_end)
        recovery_end = altitude_end + recovery_seconds * 1000
        readings += constant_readings(recovery_spo2, altitude_end, recovery_end)
        t = recovery_end
    readings.append(Reading(spo2=recovery_spo2, heart_rate=75.0, timestamp=t))
    return readings


def write_csv(path: Path, rows: Sequence[Sequence[object]]) -> Path:
    """Write a recording with the standard header and the given rows."""
    lines = ["timestamp,spo2,heart_rate"]
    lines += [",".join("" if v is None else str(v) for v in row) for row in rows]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path
