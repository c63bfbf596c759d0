"""
Unit tests for configuration management.

Tests TOML load/save, setting parsing and the protocol/session helpers.
"""

import pytest

from pydantic import ValidationError

from ihht.config import (
    get_default_session_type,
    get_protocol_config,
    get_starting_level,
    load_config,
    parse_setting,
    save_config,
    set_setting,
    unset_setting,
)
from ihht.constants import SessionType


class TestLoadSave:
    """Test reading and writing the config file."""

    def test_missing_file_is_empty(self, isolated_config):
        assert load_config() == {}

    def test_round_trip(self, isolated_config):
        save_config({"protocol": {"total_cycles": 4}})

        assert isolated_config.exists()
        assert load_config() == {"protocol": {"total_cycles": 4}}

    def test_corrupt_file_treated_as_empty(self, isolated_config):
        isolated_config.parent.mkdir(parents=True)
        isolated_config.write_text("[protocol\ntotal_cycles = ", encoding="utf-8")

        assert load_config() == {}

    def test_unset_last_setting_removes_file(self, isolated_config):
        set_setting("session", "starting_level", 5)

        assert unset_setting("session", "starting_level")
        assert not isolated_config.exists()
        assert not unset_setting("session", "starting_level")


class TestParseSetting:
    """Test conversion of command-line values."""

    def test_int_setting(self):
        assert parse_setting("protocol", "total_cycles", "4") == 4

    @pytest.mark.parametrize("raw,expected", [("true", True), ("Off", False)])
    def test_bool_setting(self, raw, expected):
        assert parse_setting("protocol", "adaptive_recovery", raw) is expected

    def test_unknown_setting(self):
        with pytest.raises(KeyError):
            parse_setting("protocol", "speed", "1")

    def test_bad_value(self):
        with pytest.raises(ValueError):
            parse_setting("protocol", "total_cycles", "many")


class TestHelpers:
    """Test protocol and session defaults from config."""

    def test_protocol_from_config_with_overrides(self, isolated_config):
        save_config({"protocol": {"total_cycles": 4, "altitude_duration": 300}})

        protocol = get_protocol_config(total_cycles=2, recovery_duration=None)

        assert protocol.total_cycles == 2
        assert protocol.altitude_duration == 300
        assert protocol.recovery_duration == 180

    def test_protocol_out_of_range(self, isolated_config):
        save_config({"protocol": {"total_cycles": 9}})

        with pytest.raises(ValidationError):
            get_protocol_config()

    def test_session_defaults(self, isolated_config):
        assert get_default_session_type() is None
        assert get_starting_level() == 6

        save_config({"session": {"default_session_type": "calibration", "starting_level": 3}})

        assert get_default_session_type() == SessionType.CALIBRATION
        assert get_starting_level() == 3

    def test_invalid_session_defaults_ignored(self, isolated_config):
        save_config({"session": {"default_session_type": "sprint", "starting_level": 20}})

        assert get_default_session_type() is None
        assert get_starting_level() == 6
