"""
Metrics aggregation for IHHT sessions.

The aggregator owns the phase-scoped sample buffers. Readings are appended as
they arrive, and closing a phase reduces its buffers to PhaseMetrics. Closing
a recovery phase that follows an altitude phase of the same cycle also
produces CycleMetrics. Closing the session rolls everything up into
SessionMetrics.
"""

import logging

from ihht.constants import MILLISECONDS_PER_SECOND, InstructionKind, PhaseType
from ihht.constants import MetricsConstants as MC
from ihht.engine.calculations import (
    calculate_cycle_score,
    calculate_hr_recovery,
    calculate_recovery_slope,
    calculate_volatility,
    mean_or_none,
    population_std,
    seconds_until,
    summarize_range,
)
from ihht.engine.recovery import RecoveryTimer, update_timer
from ihht.engine.types import Instruction, Phase, PhaseStats
from ihht.errors import SessionStateError
from ihht.models.metrics import (
    CycleMetrics,
    MaskLiftRecovery,
    PhaseMetrics,
    SessionMetrics,
)
from ihht.models.readings import Reading

logger = logging.getLogger(__name__)

__all__ = ["MetricsAggregator", "phase_stats_from_metrics"]


def phase_stats_from_metrics(metrics: PhaseMetrics) -> PhaseStats:
    """
    Build the adjustment calculator input from closed altitude metrics.

    Raises:
        ValueError: If the metrics are not for an altitude phase
    """
    if metrics.phase_type != PhaseType.ALTITUDE or metrics.altitude_level is None:
        raise ValueError("Adjustment stats require a closed altitude phase")

    return PhaseStats(
        altitude_level=metrics.altitude_level,
        avg_spo2=metrics.avg_spo2,
        min_spo2=metrics.min_spo2,
        target_min_spo2=metrics.target_min_spo2,
        target_max_spo2=metrics.target_max_spo2,
        mask_lift_count=metrics.mask_lift_count,
        escalated_mask_lift_count=metrics.escalated_mask_lift_count,
    )


class _PhaseBuffer:
    """Sample buffers and counters for the open phase."""

    def __init__(self, phase: Phase, start_heart_rate: float | None):
        self.phase = phase
        self.start_heart_rate = start_heart_rate
        self.timestamps: list[int] = []
        self.spo2_values: list[float] = []
        self.heart_rates: list[float] = []
        self.mask_lifts = 0
        self.escalated_mask_lifts = 0
        self.emergencies = 0
        self.paused_ms = 0
        self.recovery_timer = RecoveryTimer()


class MetricsAggregator:
    """
    Accumulates readings into phase, cycle and session metrics.

    Example:
        >>> aggregator = MetricsAggregator(session_id="s1", start_time=0)
        >>> aggregator.start_phase(phase)
        >>> aggregator.record_reading(Reading(spo2=88, heart_rate=80, timestamp=1000))
        >>> metrics = aggregator.end_phase(end_time=420_000)
        >>> metrics.avg_spo2
        88.0
    """

    def __init__(
        self,
        session_id: str,
        start_time: int,
        sample_interval_seconds: float = MC.SAMPLE_INTERVAL_SECONDS,
    ):
        """
        Initialize the aggregator.

        Args:
            session_id: Session identifier carried into SessionMetrics
            start_time: Session start (epoch ms)
            sample_interval_seconds: Nominal reading interval used to convert
                reading counts into zone times
        """
        self.session_id = session_id
        self.start_time = start_time
        self.sample_interval_seconds = sample_interval_seconds

        self.phases: list[PhaseMetrics] = []
        self.cycles: list[CycleMetrics] = []
        self.mask_lift_events: list[MaskLiftRecovery] = []

        self._buffer: _PhaseBuffer | None = None
        self._open_lift: MaskLiftRecovery | None = None
        self._session_spo2: list[float] = []
        self._session_heart_rates: list[float] = []
        self._last_heart_rate: float | None = None

    @property
    def current_phase(self) -> Phase | None:
        return self._buffer.phase if self._buffer else None

    @property
    def recovery_timer(self) -> RecoveryTimer | None:
        """Recovery timer of the open phase, if it is a recovery phase."""
        if self._buffer is None or self._buffer.phase.phase_type != PhaseType.RECOVERY:
            return None
        return self._buffer.recovery_timer

    def start_phase(self, phase: Phase) -> PhaseMetrics | None:
        """
        Open a new phase.

        An already open phase is closed at the new phase's start time.

        Returns:
            Metrics of the phase that was closed implicitly, if any
        """
        closed = None
        if self._buffer is not None:
            logger.warning(
                f"Phase {self._buffer.phase.phase_type.value} still open, "
                "closing before starting the next one"
            )
            closed = self.end_phase(phase.start_time)

        self._buffer = _PhaseBuffer(phase, self._last_heart_rate)
        logger.debug(
            f"Tracking {phase.phase_type.value} phase, cycle {phase.cycle_number}"
        )
        return closed

    def record_reading(self, reading: Reading) -> None:
        """
        Add a reading to the open phase.

        Invalid SpO2 or heart rate values are dropped individually.
        """
        heart_rate = reading.heart_rate if reading.has_valid_heart_rate else None
        if heart_rate is not None:
            self._last_heart_rate = heart_rate
            self._session_heart_rates.append(heart_rate)

        buffer = self._buffer
        spo2 = reading.spo2 if reading.has_valid_spo2 else None
        if spo2 is None:
            logger.debug(f"Dropping invalid SpO2 reading {reading.spo2!r}")
            if buffer is not None and heart_rate is not None:
                buffer.heart_rates.append(heart_rate)
            return

        self._session_spo2.append(spo2)

        lift = self._open_lift
        if lift is not None:
            self._track_mask_lift_recovery(lift, spo2, reading.timestamp)

        if buffer is None:
            return

        buffer.timestamps.append(reading.timestamp)
        buffer.spo2_values.append(spo2)
        if heart_rate is not None:
            buffer.heart_rates.append(heart_rate)

        if buffer.phase.phase_type == PhaseType.RECOVERY:
            buffer.recovery_timer = update_timer(
                buffer.recovery_timer, spo2, reading.timestamp, MC.RECOVERY_TARGET
            )

    def record_mask_lift(self, instruction: Instruction) -> None:
        """
        Count an advisor instruction against the open phase.

        Emergency instructions are counted but do not open a recovery capture.
        """
        buffer = self._buffer
        if buffer is None:
            return

        if instruction.kind == InstructionKind.MASK_REMOVE:
            buffer.emergencies += 1
            return

        if instruction.is_escalated:
            buffer.escalated_mask_lifts += 1
        else:
            buffer.mask_lifts += 1

        if self._open_lift is not None:
            self.mask_lift_events.append(self._open_lift)

        self._open_lift = MaskLiftRecovery(
            timestamp=instruction.timestamp,
            spo2_at_lift=instruction.spo2,
            heart_rate_at_lift=self._last_heart_rate,
            escalated=instruction.is_escalated,
        )

    def shift_phase(self, paused_ms: int) -> None:
        """
        Move the open phase forward by time spent paused.

        The phase start, the recorded reading times and a running recovery
        run all move together, so durations, threshold times and time at
        the recovery target exclude the pause. This mirrors how the phase
        clock shifts phase_started_at on resume.

        Args:
            paused_ms: Length of the pause (ms)
        """
        buffer = self._buffer
        if buffer is None or paused_ms <= 0:
            return

        buffer.phase = buffer.phase.model_copy(
            update={"start_time": buffer.phase.start_time + paused_ms}
        )
        buffer.timestamps = [ts + paused_ms for ts in buffer.timestamps]
        buffer.paused_ms += paused_ms

        timer = buffer.recovery_timer
        if timer.running_since is not None:
            buffer.recovery_timer = timer.model_copy(
                update={"running_since": timer.running_since + paused_ms}
            )
        logger.debug(
            f"Shifted {buffer.phase.phase_type.value} phase by {paused_ms} ms pause"
        )

    def _track_mask_lift_recovery(
        self, lift: MaskLiftRecovery, spo2: float, timestamp: int
    ) -> None:
        elapsed = (timestamp - lift.timestamp) / MILLISECONDS_PER_SECOND
        baseline = lift.spo2_at_lift or spo2

        low, high = MC.MASK_LIFT_CAPTURE_10S
        if lift.spo2_recovery_10s is None and low <= elapsed <= high:
            lift.spo2_recovery_10s = spo2 - baseline

        low, high = MC.MASK_LIFT_CAPTURE_15S
        if lift.spo2_recovery_15s is None and low <= elapsed <= high:
            lift.spo2_recovery_15s = spo2 - baseline
            self.mask_lift_events.append(lift)
            self._open_lift = None
            return

        if elapsed > MC.MASK_LIFT_TIMEOUT_SECONDS:
            self.mask_lift_events.append(lift)
            self._open_lift = None

    def end_phase(self, end_time: int, end_reason: str | None = None) -> PhaseMetrics:
        """
        Close the open phase and reduce its buffers.

        Args:
            end_time: Phase end (epoch ms)
            end_reason: Optional reason recorded with the metrics

        Returns:
            PhaseMetrics for the closed phase

        Raises:
            SessionStateError: If no phase is open
        """
        buffer = self._buffer
        if buffer is None:
            raise SessionStateError("No open phase to end")

        metrics = self._reduce(buffer, end_time, end_reason)
        self.phases.append(metrics)
        self._buffer = None

        if not metrics.is_available:
            logger.warning(
                f"{metrics.phase_type.value} phase {metrics.cycle_number} ended "
                "without valid SpO2 readings, statistics unavailable"
            )

        if metrics.phase_type == PhaseType.RECOVERY:
            self._close_cycle(metrics)

        logger.info(
            f"Closed {metrics.phase_type.value} phase {metrics.cycle_number}: "
            f"{metrics.spo2_readings_count} readings, avg SpO2 {metrics.avg_spo2}"
        )
        return metrics

    def _reduce(
        self, buffer: _PhaseBuffer, end_time: int, end_reason: str | None
    ) -> PhaseMetrics:
        phase = buffer.phase
        spo2 = buffer.spo2_values
        duration = max(0, (end_time - phase.start_time) // MILLISECONDS_PER_SECOND)

        spo2_range = summarize_range(spo2)
        hr_range = summarize_range(buffer.heart_rates)

        metrics = PhaseMetrics(
            phase_type=phase.phase_type,
            cycle_number=phase.cycle_number,
            altitude_level=phase.altitude_level,
            start_time=phase.start_time,
            end_time=end_time,
            duration_seconds=duration,
            paused_seconds=buffer.paused_ms // MILLISECONDS_PER_SECOND,
            target_min_spo2=phase.target_min_spo2,
            target_max_spo2=phase.target_max_spo2,
            spo2_readings_count=len(spo2),
            min_spo2=spo2_range[0] if spo2_range else None,
            max_spo2=spo2_range[1] if spo2_range else None,
            avg_spo2=spo2_range[2] if spo2_range else None,
            spo2_volatility_total=calculate_volatility(spo2),
            spo2_volatility_in_zone=calculate_volatility(spo2, "in_zone"),
            spo2_volatility_out_of_zone=calculate_volatility(spo2, "out_of_zone"),
            min_heart_rate=hr_range[0] if hr_range else None,
            max_heart_rate=hr_range[1] if hr_range else None,
            avg_heart_rate=hr_range[2] if hr_range else None,
            heart_rate_at_end=buffer.heart_rates[-1] if buffer.heart_rates else None,
            mask_lift_count=buffer.mask_lifts + buffer.escalated_mask_lifts,
            escalated_mask_lift_count=buffer.escalated_mask_lifts,
            emergency_count=buffer.emergencies,
            end_reason=end_reason,
        )

        if phase.phase_type == PhaseType.ALTITUDE:
            in_zone = sum(
                1
                for v in spo2
                if MC.THERAPEUTIC_ZONE_MIN <= v <= MC.THERAPEUTIC_ZONE_MAX
            )
            below = sum(1 for v in spo2 if v < MC.SAFETY_THRESHOLD)
            time_in_zone = in_zone * self.sample_interval_seconds

            metrics.time_in_therapeutic_zone = time_in_zone
            metrics.time_below_83 = below * self.sample_interval_seconds
            metrics.time_to_therapeutic_zone = seconds_until(
                buffer.timestamps,
                spo2,
                phase.start_time,
                "below",
                MC.THERAPEUTIC_ZONE_ENTRY,
            )
            metrics.therapeutic_efficiency = (
                time_in_zone / duration if duration > 0 else None
            )
        else:
            metrics.time_to_95 = seconds_until(
                buffer.timestamps,
                spo2,
                phase.start_time,
                "at_or_above",
                MC.RECOVERY_TARGET,
            )
            metrics.time_above_95 = buffer.recovery_timer.total_seconds(end_time)
            metrics.spo2_recovery_slope = calculate_recovery_slope(spo2)
            metrics.hr_recovery_60s = calculate_hr_recovery(
                buffer.start_heart_rate, buffer.heart_rates
            )

        return metrics

    def _close_cycle(self, recovery: PhaseMetrics) -> None:
        if len(self.phases) < 2:
            return

        altitude = self.phases[-2]
        if (
            altitude.phase_type != PhaseType.ALTITUDE
            or altitude.cycle_number != recovery.cycle_number
        ):
            return

        score = calculate_cycle_score(
            altitude.time_in_therapeutic_zone,
            altitude.time_below_83,
            altitude.spo2_volatility_total,
            recovery.time_to_95,
        )
        self.cycles.append(
            CycleMetrics(
                cycle_number=recovery.cycle_number,
                altitude_level=altitude.altitude_level,
                desaturation_time=altitude.time_to_therapeutic_zone,
                time_in_zone=altitude.time_in_therapeutic_zone,
                time_below_83=altitude.time_below_83,
                min_spo2=altitude.min_spo2,
                spo2_volatility_total=altitude.spo2_volatility_total,
                peak_heart_rate_hypoxic=altitude.max_heart_rate,
                recovery_time_to_95=recovery.time_to_95,
                hr_recovery_60s=recovery.hr_recovery_60s,
                altitude_duration=altitude.duration_seconds,
                recovery_duration=recovery.duration_seconds,
                cycle_adaptation_score=score,
            )
        )
        logger.info(f"Cycle {recovery.cycle_number} adaptation score: {score}")

    def end_session(
        self, end_time: int, end_reason: str = "completed"
    ) -> SessionMetrics:
        """
        Close any open phase and roll up the session.

        Args:
            end_time: Session end (epoch ms)
            end_reason: Why the session ended

        Returns:
            SessionMetrics
        """
        if self._buffer is not None:
            self.end_phase(end_time, end_reason)

        if self._open_lift is not None:
            self.mask_lift_events.append(self._open_lift)
            self._open_lift = None

        altitude_phases = [p for p in self.phases if p.phase_type == PhaseType.ALTITUDE]
        recovery_phases = [p for p in self.phases if p.phase_type == PhaseType.RECOVERY]

        desaturation = [
            p.time_to_therapeutic_zone
            for p in altitude_phases
            if p.time_to_therapeutic_zone is not None
        ]
        recovery = [p.time_to_95 for p in recovery_phases if p.time_to_95 is not None]
        scores = [c.cycle_adaptation_score for c in self.cycles]

        total_mask_lifts = sum(p.mask_lift_count for p in altitude_phases)
        spo2_range = summarize_range(self._session_spo2)
        hr_range = summarize_range(self._session_heart_rates)
        progression = [
            p.altitude_level for p in altitude_phases if p.altitude_level is not None
        ]

        recoveries_10s = [
            e.spo2_recovery_10s
            for e in self.mask_lift_events
            if e.spo2_recovery_10s is not None
        ]
        recoveries_15s = [
            e.spo2_recovery_15s
            for e in self.mask_lift_events
            if e.spo2_recovery_15s is not None
        ]

        session = SessionMetrics(
            session_id=self.session_id,
            start_time=self.start_time,
            end_time=end_time,
            duration_seconds=max(
                0, (end_time - self.start_time) // MILLISECONDS_PER_SECOND
            ),
            end_reason=end_reason,
            cycle_count=len(self.cycles),
            phase_count=len(self.phases),
            total_readings=len(self._session_spo2),
            min_spo2=spo2_range[0] if spo2_range else None,
            max_spo2=spo2_range[1] if spo2_range else None,
            avg_spo2=spo2_range[2] if spo2_range else None,
            min_heart_rate=hr_range[0] if hr_range else None,
            max_heart_rate=hr_range[1] if hr_range else None,
            avg_heart_rate=hr_range[2] if hr_range else None,
            total_mask_lifts=total_mask_lifts,
            total_escalated_mask_lifts=sum(
                p.escalated_mask_lift_count for p in altitude_phases
            ),
            total_emergencies=sum(p.emergency_count for p in self.phases),
            total_time_in_zone=sum(
                p.time_in_therapeutic_zone or 0.0 for p in altitude_phases
            ),
            avg_desaturation_time=mean_or_none(desaturation),
            min_desaturation_time=min(desaturation) if desaturation else None,
            max_desaturation_time=max(desaturation) if desaturation else None,
            desaturation_consistency=population_std(desaturation),
            avg_recovery_time=mean_or_none(recovery),
            min_recovery_time=min(recovery) if recovery else None,
            max_recovery_time=max(recovery) if recovery else None,
            recovery_consistency=population_std(recovery),
            hypoxic_stability_score=max(
                0, 100 - total_mask_lifts * MC.STABILITY_PENALTY_PER_MASK_LIFT
            ),
            avg_mask_lift_recovery_10s=mean_or_none(recoveries_10s),
            avg_mask_lift_recovery_15s=mean_or_none(recoveries_15s),
            first_cycle_score=scores[0] if scores else None,
            last_cycle_score=scores[-1] if scores else None,
            intra_session_improvement=(
                scores[-1] - scores[0] if len(scores) >= 2 else None
            ),
            session_adaptation_index=mean_or_none(scores),
            starting_altitude_level=progression[0] if progression else None,
            ending_altitude_level=progression[-1] if progression else None,
            altitude_progression=progression,
            cycles=list(self.cycles),
        )

        logger.info(
            f"Session {self.session_id} ended ({end_reason}): "
            f"{session.cycle_count} cycles, {total_mask_lifts} mask lifts"
        )
        return session
