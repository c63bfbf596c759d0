"""
Tests for CLI commands.

These tests verify the command-line interface functionality including:
- replay of recorded and simulated CSV files
- simulate output
- levels table
- config set/show/unset
- logs path
"""

import json

import pytest

from click.testing import CliRunner

from ihht.cli import cli
from ihht.database import cleanup_database
from ihht.replay import write_readings
from tests.helpers.synthetic_data import cycle_readings, write_csv

SHORT_PROTOCOL_ARGS = [
    "--cycles",
    "1",
    "--altitude-duration",
    "180",
    "--recovery-duration",
    "120",
    "--transition",
    "0",
]


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def quiet_environment(isolated_config, no_file_logging, monkeypatch):
    """Keep config and logs out of the home directory."""
    monkeypatch.setattr("ihht.cli.get_config_path", lambda: isolated_config)


@pytest.fixture
def recording(tmp_path):
    path = tmp_path / "session.csv"
    write_readings(path, cycle_readings(92.0, 97.0, 180, 120))
    return path


class TestReplayCommand:
    """Test the replay command."""

    def test_replay_summary(self, cli_runner, recording):
        result = cli_runner.invoke(cli, ["replay", str(recording), *SHORT_PROTOCOL_ARGS])

        assert result.exit_code == 0, result.output
        assert "Replayed 301 readings (training, 1 cycles)" in result.output
        assert "6 -> 7 (+1)" in result.output
        assert "Cycles completed:  1" in result.output

    def test_replay_json(self, cli_runner, recording):
        result = cli_runner.invoke(
            cli, ["replay", str(recording), *SHORT_PROTOCOL_ARGS, "--json"]
        )

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["session_metrics"]["cycle_count"] == 1
        assert len(payload["phase_metrics"]) == 2

    def test_replay_starting_level(self, cli_runner, recording):
        result = cli_runner.invoke(
            cli, ["replay", str(recording), *SHORT_PROTOCOL_ARGS, "--level", "3"]
        )

        assert result.exit_code == 0, result.output
        assert "3 -> 4 (+1)" in result.output

    def test_invalid_protocol(self, cli_runner, recording):
        result = cli_runner.invoke(cli, ["replay", str(recording), "--cycles", "9"])

        assert result.exit_code != 0
        assert "Invalid protocol" in result.output

    def test_malformed_recording(self, cli_runner, tmp_path):
        path = write_csv(tmp_path / "bad.csv", [(0, 97, 70), ("later", 96, 70)])

        result = cli_runner.invoke(cli, ["replay", str(path)])

        assert result.exit_code != 0
        assert "line 3" in result.output

    def test_replay_into_database_selects_calibration_first(
        self, cli_runner, recording, temp_db
    ):
        args = ["replay", str(recording), *SHORT_PROTOCOL_ARGS, "--db", str(temp_db)]

        first = cli_runner.invoke(cli, [*args, "--session-type", "auto"])
        assert first.exit_code == 0, first.output
        assert "(calibration, 1 cycles)" in first.output
        assert "Stored session" in first.output

        cleanup_database()
        second = cli_runner.invoke(cli, [*args, "--session-type", "auto"])
        assert second.exit_code == 0, second.output
        assert "(training, 1 cycles)" in second.output


class TestSimulateCommand:
    """Test the simulate command."""

    def test_simulate_then_replay(self, cli_runner, tmp_path):
        output = tmp_path / "sim.csv"

        result = cli_runner.invoke(
            cli, ["simulate", str(output), *SHORT_PROTOCOL_ARGS, "--seed", "4"]
        )
        assert result.exit_code == 0, result.output
        assert "Wrote 301 readings" in result.output

        replayed = cli_runner.invoke(cli, ["replay", str(output), *SHORT_PROTOCOL_ARGS])
        assert replayed.exit_code == 0, replayed.output
        assert "(completed)" in replayed.output


class TestLevelsCommand:
    def test_levels_table(self, cli_runner):
        result = cli_runner.invoke(cli, ["levels"])

        assert result.exit_code == 0
        assert "~16,000 ft / 4,877 m" in result.output
        assert len(result.output.strip().splitlines()) == 13


class TestConfigCommands:
    """Test config set/show/unset."""

    def test_set_show_unset(self, cli_runner, isolated_config):
        result = cli_runner.invoke(cli, ["config", "set", "protocol.total_cycles", "4"])
        assert result.exit_code == 0, result.output
        assert "Set protocol.total_cycles = 4" in result.output

        shown = cli_runner.invoke(cli, ["config", "show"])
        assert "[protocol]" in shown.output
        assert "total_cycles = 4" in shown.output

        removed = cli_runner.invoke(cli, ["config", "unset", "protocol.total_cycles"])
        assert "Removed protocol.total_cycles" in removed.output
        assert not isolated_config.exists()

    def test_out_of_range_protocol_value_rejected(self, cli_runner, isolated_config):
        result = cli_runner.invoke(cli, ["config", "set", "protocol.total_cycles", "8"])

        assert result.exit_code != 0
        assert not isolated_config.exists()

    def test_unknown_setting(self, cli_runner):
        result = cli_runner.invoke(cli, ["config", "set", "protocol.speed", "1"])

        assert result.exit_code != 0
        assert "Unknown setting" in result.output

    def test_invalid_session_type(self, cli_runner):
        result = cli_runner.invoke(
            cli, ["config", "set", "session.default_session_type", "sprint"]
        )

        assert result.exit_code != 0

    def test_show_without_file(self, cli_runner):
        result = cli_runner.invoke(cli, ["config", "show"])

        assert "No config file" in result.output


class TestLogsCommands:
    def test_logs_path(self, cli_runner, tmp_path, monkeypatch):
        log_path = tmp_path / "ihht.log"
        log_path.write_text("line one\nline two\n", encoding="utf-8")
        monkeypatch.setattr("ihht.cli.get_log_path", lambda: log_path)

        result = cli_runner.invoke(cli, ["logs", "path"])
        assert str(log_path) in result.output

        shown = cli_runner.invoke(cli, ["logs", "show", "-n", "1"])
        assert shown.output.strip() == "line two"

        cleared = cli_runner.invoke(cli, ["logs", "clear", "--yes"])
        assert "Removed 1 log file(s)" in cleared.output
        assert not log_path.exists()
