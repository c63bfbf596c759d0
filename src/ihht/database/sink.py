"""
SQLite-backed metrics sink.

Each save runs in its own transaction through session_scope(). The session
row is created lazily by the first save for a session id and marked completed
when the session rollup arrives.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ihht.database.models import (
    AdaptiveEventRecord,
    AltitudeAdjustmentRecord,
    PhaseMetricsRecord,
    TrainingSessionRecord,
)
from ihht.database.session import init_database, session_scope
from ihht.engine.types import AdaptiveEvent, AltitudeAdjustment
from ihht.models.metrics import PhaseMetrics, SessionMetrics

logger = logging.getLogger(__name__)

__all__ = ["DatabaseSink", "count_completed_sessions"]


def _get_or_create_session(db: Session, session_id: str) -> TrainingSessionRecord:
    record = db.get(TrainingSessionRecord, session_id)
    if record is None:
        record = TrainingSessionRecord(id=session_id, status="active")
        db.add(record)
        db.flush()
    return record


def count_completed_sessions() -> int:
    """Number of sessions whose rollup has been stored."""
    with session_scope() as db:
        return db.scalar(
            select(func.count())
            .select_from(TrainingSessionRecord)
            .where(TrainingSessionRecord.status == "completed")
        ) or 0


class DatabaseSink:
    """
    Metrics sink that writes to the local SQLite database.

    Example:
        >>> sink = DatabaseSink("/tmp/ihht.db")
        >>> session = TrainingSession(sink=sink)
    """

    def __init__(self, database_path: str | None = None):
        init_database(database_path)

    def save_phase_metrics(self, session_id: str, metrics: PhaseMetrics) -> None:
        with session_scope() as db:
            _get_or_create_session(db, session_id)
            db.add(
                PhaseMetricsRecord(
                    session_id=session_id,
                    phase_type=metrics.phase_type.value,
                    cycle_number=metrics.cycle_number,
                    altitude_level=metrics.altitude_level,
                    start_time=metrics.start_time,
                    end_time=metrics.end_time,
                    duration_seconds=metrics.duration_seconds,
                    spo2_readings_count=metrics.spo2_readings_count,
                    avg_spo2=metrics.avg_spo2,
                    min_spo2=metrics.min_spo2,
                    max_spo2=metrics.max_spo2,
                    mask_lift_count=metrics.mask_lift_count,
                    escalated_mask_lift_count=metrics.escalated_mask_lift_count,
                    metrics=metrics.model_dump(mode="json"),
                )
            )
        logger.debug(
            f"Stored {metrics.phase_type.value} phase {metrics.cycle_number} "
            f"for session {session_id}"
        )

    def save_adjustment(self, session_id: str, adjustment: AltitudeAdjustment) -> None:
        with session_scope() as db:
            _get_or_create_session(db, session_id)
            db.add(
                AltitudeAdjustmentRecord(
                    session_id=session_id,
                    current_level=adjustment.current_level,
                    new_level=adjustment.new_level,
                    adjustment=adjustment.adjustment,
                    rule=adjustment.rule,
                    reason=adjustment.reason,
                    clamped=adjustment.clamped,
                )
            )

    def save_adaptive_event(self, session_id: str, event: AdaptiveEvent) -> None:
        with session_scope() as db:
            _get_or_create_session(db, session_id)
            db.add(
                AdaptiveEventRecord(
                    session_id=session_id,
                    event_type=event.event_type.value,
                    timestamp=event.timestamp,
                    cycle_number=event.cycle_number,
                    phase_type=event.phase_type.value if event.phase_type else None,
                    altitude_level=event.altitude_level,
                    data=event.data,
                )
            )

    def save_session_metrics(self, session_id: str, metrics: SessionMetrics) -> None:
        with session_scope() as db:
            record = _get_or_create_session(db, session_id)
            record.status = "completed"
            record.start_time = metrics.start_time
            record.end_time = metrics.end_time
            record.end_reason = metrics.end_reason
            record.cycle_count = metrics.cycle_count
            record.total_mask_lifts = metrics.total_mask_lifts
            record.avg_spo2 = metrics.avg_spo2
            record.min_spo2 = metrics.min_spo2
            record.hypoxic_stability_score = metrics.hypoxic_stability_score
            record.session_adaptation_index = metrics.session_adaptation_index
            record.starting_altitude_level = metrics.starting_altitude_level
            record.ending_altitude_level = metrics.ending_altitude_level
            record.metrics = metrics.model_dump(mode="json")
        logger.info(f"Stored session {session_id} ({metrics.end_reason})")
