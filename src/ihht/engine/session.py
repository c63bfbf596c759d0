"""
Training session orchestration.

TrainingSession threads every reading and timer callback through the phase
clock, mask-lift advisor, metrics aggregator, recovery monitor and altitude
adjustment. All state changes happen inside these callbacks; there are no
background timers. Results are handed to a MetricsSink as they are produced.
"""

import logging
import uuid

from ihht.constants import (
    AdaptiveEventType,
    ClockStatus,
    PhaseType,
    SessionType,
)
from ihht.constants import AltitudeAdjustmentConstants as AAC
from ihht.engine.adjustment import calculate_adjustment, get_target_range
from ihht.engine.mask_lift import MaskLiftAdvisor
from ihht.engine.metrics import MetricsAggregator, phase_stats_from_metrics
from ihht.engine.phases import (
    PhaseClock,
    ProtocolConfig,
    advance_clock,
    end_current_phase,
    pause_clock,
    resume_clock,
    skip_phase,
    start_clock,
)
from ihht.engine.recovery import evaluate_recovery
from ihht.engine.types import (
    AdaptiveEvent,
    AltitudeAdjustment,
    Instruction,
    Phase,
    PhaseChange,
    SessionUpdate,
)
from ihht.errors import SessionStateError
from ihht.models.metrics import PhaseMetrics, SessionMetrics
from ihht.models.readings import Reading
from ihht.sinks import MemorySink, MetricsSink

logger = logging.getLogger(__name__)

__all__ = ["TrainingSession"]

_PHASE_STATUSES = {
    ClockStatus.ALTITUDE: PhaseType.ALTITUDE,
    ClockStatus.RECOVERY: PhaseType.RECOVERY,
}


class TrainingSession:
    """
    One adaptive IHHT session.

    Example:
        >>> session = TrainingSession(ProtocolConfig(total_cycles=1))
        >>> session.start(now=0)
        >>> update = session.ingest(Reading(spo2=82, heart_rate=90, timestamp=1000))
        >>> update.instruction.breaths
        1
    """

    def __init__(
        self,
        protocol: ProtocolConfig | None = None,
        session_type: SessionType | str = SessionType.TRAINING,
        starting_level: int = AAC.DEFAULT_LEVEL,
        sink: MetricsSink | None = None,
        session_id: str | None = None,
        cooldown_ms: int | None = None,
    ):
        """
        Initialize a session.

        Args:
            protocol: Training protocol, defaults to ProtocolConfig()
            session_type: calibration or training, selects the SpO2 target range
            starting_level: Dial level of the first altitude phase
            sink: Receiver for metrics and events, defaults to a MemorySink
            session_id: Session identifier, generated when omitted
            cooldown_ms: Override for the mask-lift cooldown window

        Raises:
            ValueError: If starting_level is outside the dial range
        """
        if not AAC.MIN_LEVEL <= starting_level <= AAC.MAX_LEVEL:
            raise ValueError(
                f"Starting level must be between {AAC.MIN_LEVEL} and "
                f"{AAC.MAX_LEVEL}, got {starting_level}"
            )

        self.protocol = protocol or ProtocolConfig()
        self.session_type = SessionType(session_type)
        self.session_id = session_id or str(uuid.uuid4())
        self.sink: MetricsSink = sink if sink is not None else MemorySink()
        self.current_level = starting_level
        self.target_min_spo2, self.target_max_spo2 = get_target_range(
            self.session_type
        )

        self.advisor = (
            MaskLiftAdvisor(cooldown_ms) if cooldown_ms is not None else MaskLiftAdvisor()
        )
        self.clock: PhaseClock | None = None
        self.aggregator: MetricsAggregator | None = None

        self.phase_metrics: list[PhaseMetrics] = []
        self.adjustments: list[AltitudeAdjustment] = []
        self.events: list[AdaptiveEvent] = []
        self.session_metrics: SessionMetrics | None = None

    @property
    def is_started(self) -> bool:
        return self.clock is not None

    @property
    def is_finished(self) -> bool:
        return self.session_metrics is not None

    @property
    def is_paused(self) -> bool:
        return self.clock is not None and self.clock.is_paused

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def start(self, now: int) -> SessionUpdate:
        """
        Start the first altitude phase.

        Raises:
            SessionStateError: If the session was already started
        """
        if self.is_started:
            raise SessionStateError("Session already started")

        self.clock = start_clock(now)
        self.aggregator = MetricsAggregator(self.session_id, now)
        self._open_phase(self.clock.status, now)

        logger.info(
            f"Session {self.session_id} started: {self.session_type.value}, "
            f"{self.protocol.total_cycles} cycles, level {self.current_level}"
        )
        return SessionUpdate()

    def ingest(self, reading: Reading) -> SessionUpdate:
        """
        Apply one reading.

        The clock is advanced to the reading's timestamp first, so phase ends
        between readings are applied before the reading itself.
        """
        if not self.is_started or self.is_finished:
            logger.debug(f"Ignoring reading at {reading.timestamp}: session inactive")
            return SessionUpdate()
        if self.is_paused:
            logger.debug(f"Ignoring reading at {reading.timestamp}: session paused")
            return SessionUpdate()

        update = self.tick(reading.timestamp)
        if self.is_finished:
            return update

        clock = self._require_clock()
        aggregator = self._require_aggregator()
        aggregator.record_reading(reading)

        if clock.status == ClockStatus.ALTITUDE:
            instruction = self.advisor.process_reading(reading.spo2, reading.timestamp)
            if instruction is not None:
                aggregator.record_mask_lift(instruction)
                self._record_instruction_event(instruction)
                update = update.merge(SessionUpdate(instruction=instruction))

        elif clock.status == ClockStatus.RECOVERY and self.protocol.adaptive_recovery:
            update = update.merge(self._check_recovery(reading.timestamp))

        return update

    def tick(self, now: int) -> SessionUpdate:
        """Advance the clock to `now` without a reading."""
        if not self.is_started or self.is_finished:
            return SessionUpdate()

        clock, changes = advance_clock(self._require_clock(), now, self.protocol)
        return self._apply(clock, changes)

    def skip_phase(self, now: int) -> SessionUpdate:
        """
        End the current phase early.

        Raises:
            SessionStateError: If the session is not running
            PhaseStateError: If the clock is already completed
        """
        self._require_running()
        update = self.tick(now)
        if self.is_finished:
            return update

        clock = self._require_clock()
        if clock.paused_at is not None:
            # The skipped phase closes without its paused tail
            self._require_aggregator().shift_phase(now - clock.paused_at)

        clock, changes = skip_phase(clock, now, self.protocol)
        return update.merge(self._apply(clock, changes, end_reason="skipped"))

    def pause(self, now: int) -> SessionUpdate:
        """
        Pause the session. Readings are ignored until resume.

        Raises:
            SessionStateError: If the session is not running
        """
        self._require_running()
        update = self.tick(now)
        if self.is_finished:
            return update

        self.clock = pause_clock(self._require_clock(), now)
        logger.info(f"Session {self.session_id} paused")
        return update

    def resume(self, now: int) -> SessionUpdate:
        """
        Resume a paused session; the current phase end moves by the paused time.

        Raises:
            SessionStateError: If the session is not running
            PhaseStateError: If the session is not paused
        """
        self._require_running()
        self._resume_at(now)
        logger.info(f"Session {self.session_id} resumed")
        return self.tick(now)

    def confirm_level(self, level: int) -> None:
        """
        Confirm the dial level for the next altitude phase.

        The user may accept the recommendation or pick a different level.

        Raises:
            ValueError: If level is outside the dial range
        """
        if not AAC.MIN_LEVEL <= level <= AAC.MAX_LEVEL:
            raise ValueError(
                f"Altitude level must be between {AAC.MIN_LEVEL} and "
                f"{AAC.MAX_LEVEL}, got {level}"
            )

        recommended = self.current_level
        self.current_level = level
        self._emit_event(
            AdaptiveEventType.DIAL_ADJUSTMENT_CONFIRMED,
            timestamp=self.clock.phase_started_at if self.clock else 0,
            altitude_level=level,
            data={"recommended_level": recommended, "confirmed_level": level},
        )
        if level != recommended:
            logger.info(f"User chose level {level} instead of {recommended}")

    def stop(self, now: int, reason: str = "user_stopped") -> SessionUpdate:
        """
        Stop the session early and emit the final rollup.

        Raises:
            SessionStateError: If the session is not running
        """
        self._require_running()
        update = self.tick(now)
        if self.is_finished:
            return update

        if self.is_paused:
            self._resume_at(now)
        self._finish(now, reason)
        return update.merge(SessionUpdate(completed=True))

    # ========================================================================
    # Internals
    # ========================================================================

    def _require_clock(self) -> PhaseClock:
        if self.clock is None:
            raise SessionStateError("Session not started")
        return self.clock

    def _require_aggregator(self) -> MetricsAggregator:
        if self.aggregator is None:
            raise SessionStateError("Session metrics already finalized")
        return self.aggregator

    def _require_running(self) -> None:
        if not self.is_started:
            raise SessionStateError("Session not started")
        if self.is_finished:
            raise SessionStateError("Session already finished")

    def _resume_at(self, now: int) -> None:
        """Resume the clock and move the open phase past the pause."""
        clock = self._require_clock()
        paused_ms = max(0, now - clock.paused_at) if clock.paused_at is not None else 0
        self.clock = resume_clock(clock, now)
        self._require_aggregator().shift_phase(paused_ms)

    def _check_recovery(self, now: int) -> SessionUpdate:
        clock = self._require_clock()
        timer = self._require_aggregator().recovery_timer
        if timer is None:
            return SessionUpdate()

        status = evaluate_recovery(
            timer,
            clock.phase_started_at,
            now,
            max_recovery_seconds=self.protocol.recovery_duration,
        )
        if not status.should_end or status.reason != "spo2_stabilized":
            return SessionUpdate()

        self._emit_event(
            AdaptiveEventType.RECOVERY_COMPLETE,
            timestamp=now,
            phase_type=PhaseType.RECOVERY,
            data={
                "reason": status.reason,
                "time_above_target": status.time_above_target,
            },
        )
        clock, changes = end_current_phase(clock, now, self.protocol)
        return self._apply(clock, changes, end_reason=status.reason)

    def _apply(
        self,
        clock: PhaseClock,
        changes: list[PhaseChange],
        end_reason: str | None = None,
    ) -> SessionUpdate:
        self.clock = clock
        adjustments: list[AltitudeAdjustment] = []
        completed = False

        for change in changes:
            logger.info(
                f"Phase change {change.from_status.value} -> "
                f"{change.to_status.value} (cycle {change.cycle})"
            )
            if change.from_status in _PHASE_STATUSES:
                adjustment = self._close_phase(
                    change.timestamp, end_reason or "completed"
                )
                if adjustment is not None:
                    adjustments.append(adjustment)

            if change.to_status in _PHASE_STATUSES:
                self._open_phase(change.to_status, change.timestamp)
            elif change.to_status == ClockStatus.COMPLETED:
                self._finish(change.timestamp, "completed")
                completed = True

        return SessionUpdate(
            phase_changes=changes, adjustments=adjustments, completed=completed
        )

    def _open_phase(self, status: ClockStatus, at: int) -> None:
        clock = self._require_clock()
        if status == ClockStatus.ALTITUDE:
            self.advisor.reset()
            phase = Phase(
                phase_type=PhaseType.ALTITUDE,
                cycle_number=clock.cycle,
                altitude_level=self.current_level,
                start_time=at,
                target_min_spo2=self.target_min_spo2,
                target_max_spo2=self.target_max_spo2,
            )
        else:
            phase = Phase(
                phase_type=PhaseType.RECOVERY,
                cycle_number=clock.cycle,
                start_time=at,
                target_min_spo2=AAC.RECOVERY_TARGET_MIN,
                target_max_spo2=AAC.RECOVERY_TARGET_MAX,
            )
        self._require_aggregator().start_phase(phase)

    def _close_phase(self, at: int, end_reason: str) -> AltitudeAdjustment | None:
        metrics = self._require_aggregator().end_phase(at, end_reason)
        self.phase_metrics.append(metrics)
        self._save("save_phase_metrics", metrics)

        if metrics.phase_type != PhaseType.ALTITUDE:
            return None

        adjustment = calculate_adjustment(phase_stats_from_metrics(metrics))
        self.current_level = adjustment.new_level
        self.adjustments.append(adjustment)
        self._save("save_adjustment", adjustment)
        self._emit_event(
            AdaptiveEventType.DIAL_ADJUSTMENT,
            timestamp=at,
            phase_type=PhaseType.ALTITUDE,
            altitude_level=adjustment.new_level,
            data={
                "from_level": adjustment.current_level,
                "to_level": adjustment.new_level,
                "adjustment": adjustment.adjustment,
                "reason": adjustment.reason,
            },
        )
        return adjustment

    def _finish(self, now: int, reason: str) -> None:
        aggregator = self._require_aggregator()
        before = len(aggregator.phases)
        self.session_metrics = aggregator.end_session(now, reason)

        # Phase closed by the rollup itself
        for metrics in aggregator.phases[before:]:
            self.phase_metrics.append(metrics)
            self._save("save_phase_metrics", metrics)

        self._save("save_session_metrics", self.session_metrics)
        self.aggregator = None
        self.advisor.reset()

    def _record_instruction_event(self, instruction: Instruction) -> None:
        if instruction.is_emergency:
            event_type = AdaptiveEventType.MASK_REMOVE
        elif instruction.is_escalated:
            event_type = AdaptiveEventType.MASK_LIFT_ESCALATED
        else:
            event_type = AdaptiveEventType.MASK_LIFT

        self._emit_event(
            event_type,
            timestamp=instruction.timestamp,
            phase_type=PhaseType.ALTITUDE,
            altitude_level=self.current_level,
            data={"spo2": instruction.spo2, "threshold": instruction.threshold},
        )

    def _emit_event(
        self,
        event_type: AdaptiveEventType,
        timestamp: int,
        phase_type: PhaseType | None = None,
        altitude_level: int | None = None,
        data: dict | None = None,
    ) -> None:
        event = AdaptiveEvent(
            event_type=event_type,
            timestamp=timestamp,
            cycle_number=self.clock.cycle if self.clock else None,
            phase_type=phase_type,
            altitude_level=altitude_level,
            data=data or {},
        )
        self.events.append(event)
        self._save("save_adaptive_event", event)

    def _save(self, method: str, payload: object) -> None:
        """Hand a result to the sink; failures are logged, never raised."""
        try:
            getattr(self.sink, method)(self.session_id, payload)
        except Exception as e:
            logger.error(f"Metrics sink {method} failed: {e}", exc_info=True)
