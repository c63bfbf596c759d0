"""Configuration management for IHHT."""

import logging
import os
import tomllib

from pathlib import Path
from typing import Any

import tomli_w

from ihht.constants import SessionType
from ihht.constants import AltitudeAdjustmentConstants as AAC
from ihht.engine.phases import ProtocolConfig

logger = logging.getLogger(__name__)

# Settings accepted by `ihht config set`, with the type each value is parsed to
CONFIG_KEYS: dict[str, dict[str, type]] = {
    "protocol": {
        "total_cycles": int,
        "altitude_duration": int,
        "recovery_duration": int,
        "transition_duration": int,
        "adaptive_recovery": bool,
    },
    "session": {
        "default_session_type": str,
        "starting_level": int,
    },
    "logging": {
        "enabled": bool,
        "level": str,
        "max_size_mb": int,
        "backup_count": int,
    },
}


def get_config_path() -> Path:
    """
    Get the path to the configuration file.

    Returns:
        Path to ~/.ihht/config.toml
    """
    return Path.home() / ".ihht" / "config.toml"


def load_config() -> dict[str, Any]:
    """
    Load configuration from TOML file.

    Returns:
        Configuration dictionary, empty if the file is missing or corrupt
    """
    config_path = get_config_path()

    if not config_path.exists():
        return {}

    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning(f"Failed to load config from {config_path}: {e}")
        logger.warning("Treating config as empty. Fix or delete the file to resolve.")
        return {}


def save_config(config: dict[str, Any]) -> None:
    """
    Write configuration atomically (temp file + rename).

    Raises:
        PermissionError: If the config directory cannot be created
    """
    config_path = get_config_path()

    try:
        os.makedirs(config_path.parent, exist_ok=True)
    except PermissionError as e:
        raise PermissionError(
            f"Cannot create config directory {config_path.parent}: {e}"
        ) from e

    temp_path = config_path.with_suffix(".toml.tmp")
    try:
        with open(temp_path, "wb") as f:
            tomli_w.dump(config, f)
        os.replace(temp_path, config_path)
    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise


def parse_setting(section: str, key: str, raw: str) -> Any:
    """
    Convert a command-line string to the type a setting expects.

    Raises:
        KeyError: If section.key is not a known setting
        ValueError: If the value cannot be converted
    """
    if section not in CONFIG_KEYS or key not in CONFIG_KEYS[section]:
        raise KeyError(f"{section}.{key}")

    expected = CONFIG_KEYS[section][key]
    if expected is bool:
        lowered = raw.strip().lower()
        if lowered in ("true", "yes", "1", "on"):
            return True
        if lowered in ("false", "no", "0", "off"):
            return False
        raise ValueError(f"Expected a boolean, got {raw!r}")
    return expected(raw)


def set_setting(section: str, key: str, value: Any) -> None:
    """Store one setting, creating its section if needed."""
    config = load_config()
    config.setdefault(section, {})[key] = value
    save_config(config)


def unset_setting(section: str, key: str) -> bool:
    """
    Remove one setting.

    Empty sections are dropped and an empty config deletes the file.

    Returns:
        True if the setting existed
    """
    config = load_config()
    if key not in config.get(section, {}):
        return False

    del config[section][key]
    if not config[section]:
        del config[section]

    if config:
        save_config(config)
    else:
        config_path = get_config_path()
        if config_path.exists():
            config_path.unlink()
    return True


def get_protocol_config(**overrides: Any) -> ProtocolConfig:
    """
    Build the protocol from [protocol] settings plus explicit overrides.

    Overrides that are None are ignored.

    Raises:
        pydantic.ValidationError: If a value is outside the protocol limits
    """
    settings = dict(load_config().get("protocol", {}))
    settings.update({k: v for k, v in overrides.items() if v is not None})
    return ProtocolConfig(**settings)


def get_default_session_type() -> SessionType | None:
    """Session type from [session], or None when it should be derived."""
    value = load_config().get("session", {}).get("default_session_type")
    if value is None:
        return None
    try:
        return SessionType(value)
    except ValueError:
        logger.warning(f"Ignoring unknown session type {value!r} in config")
        return None


def get_starting_level() -> int:
    """Starting dial level from [session], defaults to level 6."""
    level = load_config().get("session", {}).get("starting_level", AAC.DEFAULT_LEVEL)
    if not isinstance(level, int) or not AAC.MIN_LEVEL <= level <= AAC.MAX_LEVEL:
        logger.warning(f"Ignoring invalid starting level {level!r} in config")
        return AAC.DEFAULT_LEVEL
    return level
