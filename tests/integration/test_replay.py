"""
Integration tests for recording replay and simulation.

Tests CSV loading, deterministic replay and end-to-end simulated sessions.
"""

import pytest

from ihht.constants import PhaseType
from ihht.engine.phases import ProtocolConfig
from ihht.errors import ReadingFormatError
from ihht.replay import load_readings, replay_session, write_readings
from ihht.simulator import simulate_session
from tests.helpers.synthetic_data import cycle_readings, write_csv


class TestLoadReadings:
    """Test CSV recording parsing."""

    def test_blank_cells_are_missing_values(self, tmp_path):
        path = write_csv(
            tmp_path / "rec.csv",
            [(0, 97, 70), (1000, None, 71), (2000, 96, None)],
        )

        readings = load_readings(path)

        assert [r.spo2 for r in readings] == [97.0, None, 96.0]
        assert readings[2].heart_rate is None
        assert readings[1].timestamp == 1000

    def test_missing_column(self, tmp_path):
        path = tmp_path / "rec.csv"
        path.write_text("timestamp,spo2\n0,97\n", encoding="utf-8")

        with pytest.raises(ReadingFormatError) as exc_info:
            load_readings(path)

        assert "heart_rate" in str(exc_info.value)
        assert exc_info.value.line_number == 1

    def test_unparseable_row(self, tmp_path):
        path = write_csv(tmp_path / "rec.csv", [(0, 97, 70), ("soon", 96, 70)])

        with pytest.raises(ReadingFormatError) as exc_info:
            load_readings(path)

        assert exc_info.value.line_number == 3

    def test_timestamps_must_not_go_backwards(self, tmp_path):
        path = write_csv(tmp_path / "rec.csv", [(5000, 97, 70), (4000, 96, 70)])

        with pytest.raises(ReadingFormatError):
            load_readings(path)

    def test_written_recording_loads_back(self, tmp_path):
        readings = simulate_session(
            ProtocolConfig(total_cycles=1, altitude_duration=180, recovery_duration=120),
            seed=3,
            dropout_rate=0.1,
        )
        path = tmp_path / "sim.csv"

        assert write_readings(path, readings) == len(readings)
        assert load_readings(path) == readings


class TestReplaySession:
    """Test deterministic replay."""

    def test_flat_recording(self, short_protocol):
        result = replay_session(
            cycle_readings(92.0, 97.0, 180, 120), protocol=short_protocol
        )

        assert result.session_metrics.end_reason == "completed"
        assert result.session_metrics.cycle_count == 1
        assert len(result.phase_metrics) == 2
        assert result.adjustments[0].new_level == 7
        assert result.instructions == []

    def test_recording_ending_early_is_stopped(self, short_protocol):
        readings = cycle_readings(92.0, 97.0, 180, 120)[:100]

        result = replay_session(readings, protocol=short_protocol)

        assert result.session_metrics.end_reason == "data_ended"
        assert result.session_metrics.end_time == readings[-1].timestamp
        assert result.session_metrics.cycle_count == 0

    def test_replay_is_deterministic(self, short_protocol):
        readings = simulate_session(short_protocol, altitude_level=9, seed=11)

        first = replay_session(readings, protocol=short_protocol, session_id="a")
        second = replay_session(readings, protocol=short_protocol, session_id="a")

        assert first == second

    def test_empty_recording(self):
        with pytest.raises(ValueError):
            replay_session([])


class TestSimulatedSessions:
    """Test simulated streams through the whole engine."""

    def test_simulation_is_reproducible(self, short_protocol):
        assert simulate_session(short_protocol, seed=5) == simulate_session(
            short_protocol, seed=5
        )
        assert simulate_session(short_protocol, seed=5) != simulate_session(
            short_protocol, seed=6
        )

    def test_simulation_covers_protocol(self):
        protocol = ProtocolConfig()

        readings = simulate_session(protocol)

        assert len(readings) == protocol.total_duration + 1
        assert readings[-1].timestamp == protocol.total_duration * 1000

    @pytest.mark.slow
    def test_default_protocol_completes(self):
        protocol = ProtocolConfig()
        readings = simulate_session(protocol, altitude_level=6, seed=1)

        result = replay_session(readings, protocol=protocol)

        metrics = result.session_metrics
        assert metrics.end_reason == "completed"
        assert metrics.cycle_count == 3
        assert len(metrics.altitude_progression) == 3
        assert metrics.total_readings == len(readings) - 1

    def test_high_level_triggers_mask_lifts(self, short_protocol):
        """Level 11 desaturates below 83% and gets mask-lift advice."""
        readings = simulate_session(short_protocol, altitude_level=11, seed=2)

        result = replay_session(readings, protocol=short_protocol, starting_level=11)

        assert result.instructions
        assert result.session_metrics.total_mask_lifts > 0
        assert result.adjustments[0].adjustment <= 0

    def test_adaptive_recovery_stream_matches_replay(self):
        """Recovery ends early in both the simulated stream and its replay."""
        protocol = ProtocolConfig(
            total_cycles=2,
            altitude_duration=180,
            recovery_duration=180,
            transition_duration=10,
            adaptive_recovery=True,
        )
        readings = simulate_session(protocol, seed=2, dropout_rate=0.05)

        result = replay_session(readings, protocol=protocol)

        recoveries = [
            p for p in result.phase_metrics if p.phase_type == PhaseType.RECOVERY
        ]
        assert len(readings) < protocol.total_duration + 1
        assert result.session_metrics.end_reason == "completed"
        assert result.session_metrics.end_time == readings[-1].timestamp
        assert [p.end_reason for p in recoveries] == ["spo2_stabilized"] * 2
