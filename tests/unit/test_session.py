"""
Unit tests for training session orchestration.

Tests reading ingest, phase changes, adjustments between cycles, pause and
stop handling, adaptive recovery and sink error handling.
"""

import logging

import pytest

from ihht.constants import AdaptiveEventType, ClockStatus, PhaseType, SessionType
from ihht.engine.phases import ProtocolConfig
from ihht.engine.session import TrainingSession
from ihht.errors import PhaseStateError, SessionStateError
from ihht.models.readings import Reading
from ihht.sinks import MemorySink
from tests.helpers.synthetic_data import constant_readings, cycle_readings


def ingest_all(session, readings):
    updates = [session.ingest(reading) for reading in readings]
    return updates


class FailingSink:
    """Sink whose every save raises."""

    def save_phase_metrics(self, session_id, metrics):
        raise RuntimeError("disk full")

    def save_adjustment(self, session_id, adjustment):
        raise RuntimeError("disk full")

    def save_adaptive_event(self, session_id, event):
        raise RuntimeError("disk full")

    def save_session_metrics(self, session_id, metrics):
        raise RuntimeError("disk full")


class TestIngest:
    """Test reading ingest during a session."""

    def test_mask_lift_instruction(self, short_protocol):
        sink = MemorySink()
        session = TrainingSession(short_protocol, sink=sink)
        session.start(0)

        update = session.ingest(Reading(spo2=82, heart_rate=90, timestamp=1000))

        assert update.instruction is not None
        assert update.instruction.breaths == 1
        assert sink.events[-1].event_type == AdaptiveEventType.MASK_LIFT

    def test_no_instructions_during_recovery(self, short_protocol):
        session = TrainingSession(short_protocol)
        session.start(0)

        session.tick(180_000)
        update = session.ingest(Reading(spo2=80, heart_rate=90, timestamp=181_000))

        assert session.clock.status == ClockStatus.RECOVERY
        assert update.instruction is None

    def test_readings_ignored_before_start(self, short_protocol):
        session = TrainingSession(short_protocol)

        update = session.ingest(Reading(spo2=80, heart_rate=90, timestamp=1000))

        assert update.instruction is None
        assert not session.is_started

    def test_phase_change_applied_before_reading(self, short_protocol):
        """A reading past the altitude end lands in the recovery phase."""
        session = TrainingSession(short_protocol)
        session.start(0)

        update = session.ingest(Reading(spo2=82, heart_rate=90, timestamp=185_000))

        assert [c.to_status for c in update.phase_changes] == [ClockStatus.RECOVERY]
        assert update.instruction is None
        assert len(update.adjustments) == 1


class TestFullSession:
    """Test complete sessions."""

    def test_single_cycle_completes(self, short_protocol):
        sink = MemorySink()
        session = TrainingSession(short_protocol, sink=sink)
        session.start(0)

        updates = ingest_all(session, cycle_readings(92.0, 97.0, 180, 120))

        assert updates[-1].completed
        assert session.is_finished
        assert sink.session_metrics is not None
        assert sink.session_metrics.cycle_count == 1
        assert sink.session_metrics.end_reason == "completed"
        assert len(sink.phase_metrics) == 2
        assert sink.adjustments[0].adjustment == 1
        assert sink.adjustments[0].new_level == 7
        assert sink.session_metrics.cycles[0].cycle_adaptation_score == 90

    def test_adjustment_applied_to_next_altitude_phase(self, two_cycle_protocol):
        session = TrainingSession(two_cycle_protocol, starting_level=6)
        session.start(0)

        ingest_all(session, cycle_readings(92.0, 97.0, 180, 120, cycles=2))

        altitude = [p for p in session.phase_metrics if p.phase_type == PhaseType.ALTITUDE]
        assert [p.altitude_level for p in altitude] == [6, 7]
        assert session.session_metrics.altitude_progression == [6, 7]

    def test_confirm_level_overrides_recommendation(self, two_cycle_protocol):
        sink = MemorySink()
        session = TrainingSession(two_cycle_protocol, starting_level=6, sink=sink)
        session.start(0)
        ingest_all(session, constant_readings(92.0, 0, 181_000))

        assert session.current_level == 7
        session.confirm_level(5)
        ingest_all(session, constant_readings(97.0, 181_000, 301_000))

        assert session.phase_metrics[-1].phase_type == PhaseType.RECOVERY
        assert session.aggregator.current_phase.altitude_level == 5
        confirmed = [
            e
            for e in sink.events
            if e.event_type == AdaptiveEventType.DIAL_ADJUSTMENT_CONFIRMED
        ]
        assert confirmed[0].data == {"recommended_level": 7, "confirmed_level": 5}

    def test_calibration_target_range(self, short_protocol):
        session = TrainingSession(short_protocol, session_type=SessionType.CALIBRATION)
        session.start(0)

        ingest_all(session, cycle_readings(91.0, 97.0, 180, 120))

        altitude = session.phase_metrics[0]
        assert (altitude.target_min_spo2, altitude.target_max_spo2) == (88.0, 93.0)
        assert session.adjustments[0].adjustment == 0


class TestLifecycle:
    """Test pause, resume, skip and stop."""

    def test_readings_ignored_while_paused(self, short_protocol):
        session = TrainingSession(short_protocol)
        session.start(0)
        session.pause(10_000)

        update = session.ingest(Reading(spo2=80, heart_rate=90, timestamp=11_000))

        assert update.instruction is None
        assert session.advisor.mask_lift_count == 0

    def test_resume_shifts_phase_end(self, short_protocol):
        session = TrainingSession(short_protocol)
        session.start(0)
        session.pause(10_000)
        session.resume(20_000)

        assert session.tick(189_999).phase_changes == []
        assert len(session.tick(190_000).phase_changes) == 1

    def test_resume_without_pause_raises(self, short_protocol):
        session = TrainingSession(short_protocol)
        session.start(0)

        with pytest.raises(PhaseStateError):
            session.resume(1000)

    def test_paused_time_excluded_from_phase_duration(self, short_protocol):
        session = TrainingSession(short_protocol)
        session.start(0)
        session.pause(60_000)
        session.resume(120_000)

        session.tick(240_000)

        altitude = session.phase_metrics[0]
        assert session.clock.status == ClockStatus.RECOVERY
        assert altitude.duration_seconds == 180
        assert altitude.paused_seconds == 60

    def test_time_to_zone_excludes_pause(self, short_protocol):
        session = TrainingSession(short_protocol)
        session.start(0)
        ingest_all(session, constant_readings(95.0, 0, 30_000))
        session.pause(30_000)
        session.resume(90_000)
        session.ingest(Reading(spo2=88, heart_rate=80, timestamp=95_000))

        session.stop(100_000)

        altitude = session.phase_metrics[0]
        assert altitude.time_to_therapeutic_zone == 35
        assert altitude.duration_seconds == 40

    def test_skip_while_paused_drops_paused_tail(self, short_protocol):
        session = TrainingSession(short_protocol)
        session.start(0)
        session.pause(30_000)

        session.skip_phase(50_000)

        assert session.is_paused
        assert session.clock.status == ClockStatus.RECOVERY
        assert session.phase_metrics[0].duration_seconds == 30
        assert session.phase_metrics[0].paused_seconds == 20

    def test_stop_while_paused(self, short_protocol):
        session = TrainingSession(short_protocol)
        session.start(0)
        session.pause(40_000)

        session.stop(100_000)

        assert session.phase_metrics[0].duration_seconds == 40
        assert session.session_metrics.end_reason == "user_stopped"

    def test_skip_altitude_phase(self, short_protocol):
        session = TrainingSession(short_protocol)
        session.start(0)
        ingest_all(session, constant_readings(88.0, 0, 30_000))

        update = session.skip_phase(30_000)

        assert update.phase_changes[0].skipped
        assert session.clock.status == ClockStatus.RECOVERY
        assert session.phase_metrics[0].end_reason == "skipped"
        assert session.phase_metrics[0].duration_seconds == 30

    def test_stop_closes_open_phase(self, short_protocol):
        sink = MemorySink()
        session = TrainingSession(short_protocol, sink=sink)
        session.start(0)
        ingest_all(session, constant_readings(88.0, 0, 60_000))

        update = session.stop(60_000)

        assert update.completed
        assert sink.session_metrics.end_reason == "user_stopped"
        assert sink.phase_metrics[0].end_reason == "user_stopped"
        assert session.aggregator is None

    def test_operations_after_finish_raise(self, short_protocol):
        session = TrainingSession(short_protocol)
        session.start(0)
        session.stop(1000)

        with pytest.raises(SessionStateError):
            session.stop(2000)
        with pytest.raises(SessionStateError):
            session.skip_phase(2000)

    def test_start_twice_raises(self, short_protocol):
        session = TrainingSession(short_protocol)
        session.start(0)

        with pytest.raises(SessionStateError):
            session.start(1000)

    def test_invalid_starting_level(self):
        with pytest.raises(ValueError):
            TrainingSession(starting_level=12)


class TestAdaptiveRecovery:
    """Test early recovery end once SpO2 is stable."""

    def test_recovery_ends_after_sixty_seconds_at_target(self):
        protocol = ProtocolConfig(
            total_cycles=1,
            altitude_duration=180,
            recovery_duration=180,
            transition_duration=0,
            adaptive_recovery=True,
        )
        sink = MemorySink()
        session = TrainingSession(protocol, sink=sink)
        session.start(0)

        ingest_all(session, constant_readings(88.0, 0, 180_000))
        updates = ingest_all(session, constant_readings(97.0, 180_000, 300_000))

        assert session.is_finished
        assert any(u.completed for u in updates)
        assert session.phase_metrics[-1].end_reason == "spo2_stabilized"
        assert session.session_metrics.end_time == 240_000
        assert any(
            e.event_type == AdaptiveEventType.RECOVERY_COMPLETE for e in sink.events
        )

    def test_pause_does_not_count_toward_stabilization(self):
        protocol = ProtocolConfig(
            total_cycles=1,
            altitude_duration=180,
            recovery_duration=300,
            transition_duration=0,
            adaptive_recovery=True,
        )
        session = TrainingSession(protocol)
        session.start(0)
        ingest_all(session, constant_readings(88.0, 0, 180_000))
        ingest_all(session, constant_readings(96.0, 181_000, 191_000))

        session.pause(190_500)
        session.resume(400_000)
        update = session.ingest(Reading(spo2=96, heart_rate=70, timestamp=401_000))

        assert update.phase_changes == []
        assert session.clock.status == ClockStatus.RECOVERY
        assert session.aggregator.recovery_timer.total_seconds(401_000) == 10

    def test_fixed_recovery_runs_full_length(self, short_protocol):
        session = TrainingSession(short_protocol)
        session.start(0)

        ingest_all(session, cycle_readings(88.0, 97.0, 180, 120))

        assert session.session_metrics.end_time == 300_000


class TestSinkFailures:
    """Test that sink errors never stop a session."""

    def test_sink_errors_logged(self, short_protocol, caplog):
        session = TrainingSession(short_protocol, sink=FailingSink())
        session.start(0)

        with caplog.at_level(logging.ERROR, logger="ihht.engine.session"):
            ingest_all(session, cycle_readings(82.0, 97.0, 180, 120))

        assert session.is_finished
        assert session.session_metrics.cycle_count == 1
        assert "save_phase_metrics failed" in caplog.text
        assert "save_session_metrics failed" in caplog.text
