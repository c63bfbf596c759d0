"""
Offline replay of recorded readings.

Recordings are CSV files with a header row and the columns
timestamp,spo2,heart_rate. Timestamps are epoch milliseconds and blank SpO2 or
heart-rate cells mean the sensor had no value.
"""

import csv
import logging

from collections.abc import Iterable
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from ihht.constants import READING_CSV_COLUMNS, SessionType
from ihht.constants import AltitudeAdjustmentConstants as AAC
from ihht.engine.phases import ProtocolConfig
from ihht.engine.session import TrainingSession
from ihht.engine.types import (
    AdaptiveEvent,
    AltitudeAdjustment,
    Instruction,
    PhaseChange,
)
from ihht.errors import ReadingFormatError, SessionStateError
from ihht.models.metrics import PhaseMetrics, SessionMetrics
from ihht.models.readings import Reading
from ihht.sinks import MetricsSink

logger = logging.getLogger(__name__)

__all__ = ["ReplayResult", "load_readings", "write_readings", "replay_session"]


class ReplayResult(BaseModel):
    """Everything a replayed session produced."""

    session_id: str
    instructions: list[Instruction] = Field(default_factory=list)
    phase_changes: list[PhaseChange] = Field(default_factory=list)
    adjustments: list[AltitudeAdjustment] = Field(default_factory=list)
    events: list[AdaptiveEvent] = Field(default_factory=list)
    phase_metrics: list[PhaseMetrics] = Field(default_factory=list)
    session_metrics: SessionMetrics


def _parse_optional_float(value: str | None) -> float | None:
    if value is None or not value.strip():
        return None
    return float(value)


def load_readings(path: Path | str) -> list[Reading]:
    """
    Load a reading recording from CSV.

    Args:
        path: CSV file with timestamp,spo2,heart_rate columns

    Returns:
        Readings in file order

    Raises:
        ReadingFormatError: If the header is missing columns, a row cannot be
            parsed, or timestamps go backwards
    """
    path = Path(path)
    readings: list[Reading] = []

    with open(path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        missing = [c for c in READING_CSV_COLUMNS if c not in (reader.fieldnames or [])]
        if missing:
            raise ReadingFormatError(
                f"{path.name}: missing column(s) {', '.join(missing)}", line_number=1
            )

        previous: int | None = None
        for row in reader:
            line = reader.line_num
            try:
                reading = Reading(
                    timestamp=int(row["timestamp"]),
                    spo2=_parse_optional_float(row["spo2"]),
                    heart_rate=_parse_optional_float(row["heart_rate"]),
                )
            except (TypeError, ValueError, ValidationError) as e:
                raise ReadingFormatError(
                    f"{path.name}: invalid row: {e}", line_number=line
                ) from e

            if previous is not None and reading.timestamp < previous:
                raise ReadingFormatError(
                    f"{path.name}: timestamp {reading.timestamp} is earlier than "
                    f"the previous reading",
                    line_number=line,
                )
            previous = reading.timestamp
            readings.append(reading)

    logger.info(f"Loaded {len(readings)} readings from {path}")
    return readings


def write_readings(path: Path | str, readings: Iterable[Reading]) -> int:
    """
    Write readings to CSV in the format load_readings accepts.

    Returns:
        Number of rows written
    """
    count = 0
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=list(READING_CSV_COLUMNS))
        writer.writeheader()
        for reading in readings:
            writer.writerow(
                {
                    "timestamp": reading.timestamp,
                    "spo2": "" if reading.spo2 is None else reading.spo2,
                    "heart_rate": "" if reading.heart_rate is None else reading.heart_rate,
                }
            )
            count += 1
    return count


def replay_session(
    readings: list[Reading],
    protocol: ProtocolConfig | None = None,
    session_type: SessionType | str = SessionType.TRAINING,
    starting_level: int = AAC.DEFAULT_LEVEL,
    sink: MetricsSink | None = None,
    start_time: int | None = None,
    session_id: str | None = None,
) -> ReplayResult:
    """
    Drive a TrainingSession with recorded readings.

    The session starts at start_time (default: first reading) and is stopped
    with reason "data_ended" at the last reading if the protocol has not
    completed by then.

    Raises:
        ValueError: If readings is empty
    """
    if not readings:
        raise ValueError("No readings to replay")

    session = TrainingSession(
        protocol=protocol,
        session_type=session_type,
        starting_level=starting_level,
        sink=sink,
        session_id=session_id,
    )
    session.start(start_time if start_time is not None else readings[0].timestamp)

    instructions: list[Instruction] = []
    phase_changes: list[PhaseChange] = []

    for reading in readings:
        update = session.ingest(reading)
        if update.instruction is not None:
            instructions.append(update.instruction)
        phase_changes.extend(update.phase_changes)
        if session.is_finished:
            break

    if not session.is_finished:
        update = session.stop(readings[-1].timestamp, reason="data_ended")
        phase_changes.extend(update.phase_changes)

    session_metrics = session.session_metrics
    if session_metrics is None:
        raise SessionStateError(f"Session {session.session_id} ended without metrics")

    return ReplayResult(
        session_id=session.session_id,
        instructions=instructions,
        phase_changes=phase_changes,
        adjustments=list(session.adjustments),
        events=list(session.events),
        phase_metrics=list(session.phase_metrics),
        session_metrics=session_metrics,
    )
