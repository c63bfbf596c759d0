"""Pytest configuration and fixtures for IHHT tests."""

from pathlib import Path

import pytest

from ihht.engine.phases import ProtocolConfig


def pytest_configure(config):
    """Register custom test markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests that do not require external dependencies"
    )
    config.addinivalue_line(
        "markers", "business_logic: Tests for core business logic and algorithms"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests combining multiple components"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take significant time (>5 seconds)"
    )


# =============================================================================
# Protocol Fixtures
# =============================================================================


@pytest.fixture
def short_protocol():
    """One 3-minute altitude phase and one 2-minute recovery, no transitions."""
    return ProtocolConfig(
        total_cycles=1,
        altitude_duration=180,
        recovery_duration=120,
        transition_duration=0,
    )


@pytest.fixture
def two_cycle_protocol():
    """Two short cycles without transitions (ends at 600 s)."""
    return ProtocolConfig(
        total_cycles=2,
        altitude_duration=180,
        recovery_duration=120,
        transition_duration=0,
    )


# =============================================================================
# Environment Fixtures
# =============================================================================


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """Point the config file at a temporary location."""
    config_path = tmp_path / "ihht" / "config.toml"
    monkeypatch.setattr("ihht.config.get_config_path", lambda: config_path)
    return config_path


@pytest.fixture
def no_file_logging(monkeypatch):
    """Stop CLI commands from configuring handlers under the home directory."""
    monkeypatch.setattr("ihht.logging_config._logging_configured", True)


# =============================================================================
# Database Test Fixtures
# =============================================================================


@pytest.fixture
def temp_db(tmp_path) -> Path:
    """Path for a temporary SQLite database."""
    return tmp_path / "test_ihht.db"


@pytest.fixture
def initialized_db(temp_db):
    """Initialize the global database for the test and dispose of it after."""
    from ihht.database.session import cleanup_database, init_database

    cleanup_database()
    init_database(str(temp_db))

    yield temp_db

    cleanup_database()
