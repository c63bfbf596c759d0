"""
SQLAlchemy ORM models for the local IHHT database.

Tables:
- training_sessions: one row per session, summary columns filled at the end
- phase_metrics: one row per closed altitude or recovery phase
- altitude_adjustments: dial recommendations made at altitude phase ends
- adaptive_events: mask lifts, dial changes and recovery completions

Full pydantic payloads are kept in a JSON column next to the queryable
summary columns.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from ihht.database.types import ValidatedJSON


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""

    pass


def utc_now() -> datetime:
    """Return current UTC timestamp for database defaults."""
    return datetime.now(UTC)


class TrainingSessionRecord(Base):
    """A training session."""

    __tablename__ = "training_sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    status: Mapped[str] = mapped_column(String(20), default="active")
    start_time: Mapped[int | None] = mapped_column(BigInteger)
    end_time: Mapped[int | None] = mapped_column(BigInteger)
    end_reason: Mapped[str | None] = mapped_column(String(50))
    cycle_count: Mapped[int | None] = mapped_column(Integer)
    total_mask_lifts: Mapped[int | None] = mapped_column(Integer)
    avg_spo2: Mapped[float | None] = mapped_column(Float)
    min_spo2: Mapped[float | None] = mapped_column(Float)
    hypoxic_stability_score: Mapped[int | None] = mapped_column(Integer)
    session_adaptation_index: Mapped[float | None] = mapped_column(Float)
    starting_altitude_level: Mapped[int | None] = mapped_column(Integer)
    ending_altitude_level: Mapped[int | None] = mapped_column(Integer)
    metrics: Mapped[dict[str, Any]] = mapped_column(ValidatedJSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    phases = relationship(
        "PhaseMetricsRecord", back_populates="session", cascade="all, delete-orphan"
    )
    adjustments = relationship(
        "AltitudeAdjustmentRecord",
        back_populates="session",
        cascade="all, delete-orphan",
    )
    events = relationship(
        "AdaptiveEventRecord", back_populates="session", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("status IN ('active', 'completed')", name="chk_status"),
    )

    def __repr__(self) -> str:
        return f"<TrainingSessionRecord(id={self.id}, status={self.status})>"


class PhaseMetricsRecord(Base):
    """Closed phase statistics."""

    __tablename__ = "phase_metrics"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("training_sessions.id", ondelete="CASCADE")
    )
    phase_type: Mapped[str] = mapped_column(String(20))
    cycle_number: Mapped[int] = mapped_column(Integer)
    altitude_level: Mapped[int | None] = mapped_column(Integer)
    start_time: Mapped[int] = mapped_column(BigInteger)
    end_time: Mapped[int] = mapped_column(BigInteger)
    duration_seconds: Mapped[int] = mapped_column(Integer)
    spo2_readings_count: Mapped[int] = mapped_column(Integer, default=0)
    avg_spo2: Mapped[float | None] = mapped_column(Float)
    min_spo2: Mapped[float | None] = mapped_column(Float)
    max_spo2: Mapped[float | None] = mapped_column(Float)
    mask_lift_count: Mapped[int] = mapped_column(Integer, default=0)
    escalated_mask_lift_count: Mapped[int] = mapped_column(Integer, default=0)
    metrics: Mapped[dict[str, Any]] = mapped_column(ValidatedJSON, default=dict)

    session = relationship("TrainingSessionRecord", back_populates="phases")

    __table_args__ = (
        UniqueConstraint(
            "session_id", "phase_type", "cycle_number", name="uq_session_phase"
        ),
        CheckConstraint(
            "phase_type IN ('ALTITUDE', 'RECOVERY')", name="chk_phase_type"
        ),
        CheckConstraint("cycle_number >= 1", name="chk_cycle_number"),
    )

    def __repr__(self) -> str:
        return (
            f"<PhaseMetricsRecord(session_id={self.session_id}, "
            f"phase_type={self.phase_type}, cycle={self.cycle_number})>"
        )


class AltitudeAdjustmentRecord(Base):
    """Dial recommendation made at the end of an altitude phase."""

    __tablename__ = "altitude_adjustments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("training_sessions.id", ondelete="CASCADE")
    )
    current_level: Mapped[int] = mapped_column(Integer)
    new_level: Mapped[int] = mapped_column(Integer)
    adjustment: Mapped[int] = mapped_column(Integer)
    rule: Mapped[str] = mapped_column(String(30))
    reason: Mapped[str] = mapped_column(Text)
    clamped: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    session = relationship("TrainingSessionRecord", back_populates="adjustments")

    __table_args__ = (
        CheckConstraint("new_level BETWEEN 0 AND 11", name="chk_new_level"),
    )


class AdaptiveEventRecord(Base):
    """Adaptive event raised during a session."""

    __tablename__ = "adaptive_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("training_sessions.id", ondelete="CASCADE")
    )
    event_type: Mapped[str] = mapped_column(String(40))
    timestamp: Mapped[int] = mapped_column(BigInteger)
    cycle_number: Mapped[int | None] = mapped_column(Integer)
    phase_type: Mapped[str | None] = mapped_column(String(20))
    altitude_level: Mapped[int | None] = mapped_column(Integer)
    data: Mapped[dict[str, Any]] = mapped_column(ValidatedJSON, default=dict)

    session = relationship("TrainingSessionRecord", back_populates="events")

    def __repr__(self) -> str:
        return (
            f"<AdaptiveEventRecord(session_id={self.session_id}, "
            f"event_type={self.event_type})>"
        )
