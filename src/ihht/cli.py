"""
Command-line interface for IHHT.

Developer tooling for replaying recorded sessions, generating synthetic
recordings and managing configuration and logs.
"""

import glob
import logging
import sys

from collections.abc import Callable
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path
from typing import Any

import click

from pydantic import ValidationError

from ihht.config import (
    CONFIG_KEYS,
    get_config_path,
    get_default_session_type,
    get_protocol_config,
    get_starting_level,
    load_config,
    parse_setting,
    set_setting,
    unset_setting,
)
from ihht.constants import ALTITUDE_LEVEL_TABLE, SessionType
from ihht.engine.adjustment import determine_session_type, get_altitude_level
from ihht.engine.phases import ProtocolConfig
from ihht.errors import ReadingFormatError
from ihht.logging_config import get_log_path, setup_logging
from ihht.models.metrics import SessionMetrics
from ihht.replay import ReplayResult, load_readings, replay_session, write_readings
from ihht.simulator import simulate_session
from ihht.sinks import MetricsSink

logger = logging.getLogger(__name__)

try:
    __version__ = get_version("ihht")
except PackageNotFoundError:
    __version__ = "dev"


def _build_protocol(
    cycles: int | None,
    altitude_duration: int | None,
    recovery_duration: int | None,
    transition: int | None,
    adaptive_recovery: bool | None,
) -> ProtocolConfig:
    """Protocol from config plus command-line overrides."""
    try:
        return get_protocol_config(
            total_cycles=cycles,
            altitude_duration=altitude_duration,
            recovery_duration=recovery_duration,
            transition_duration=transition,
            adaptive_recovery=adaptive_recovery,
        )
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise click.ClickException(f"Invalid protocol: {errors}") from e


def _resolve_session_type(requested: str | None, db: str | None) -> SessionType:
    """
    Resolve session type using precedence: CLI > config > database history.

    Without a database the fallback is training.
    """
    if requested and requested != "auto":
        return SessionType(requested)

    if requested is None:
        configured = get_default_session_type()
        if configured is not None:
            return configured

    if db:
        from ihht.database import count_completed_sessions, init_database

        init_database(str(Path(db)))
        return determine_session_type(count_completed_sessions())

    return SessionType.TRAINING


def _format_optional(value: float | int | None, fmt: str = ".1f", unit: str = "") -> str:
    if value is None:
        return "n/a"
    return f"{value:{fmt}}{unit}"


def _print_session_summary(metrics: SessionMetrics) -> None:
    click.echo(f"\nSession {metrics.session_id} ({metrics.end_reason})")
    click.echo(f"  Duration:          {metrics.duration_seconds}s")
    click.echo(f"  Cycles completed:  {metrics.cycle_count}")
    click.echo(
        f"  SpO2 avg/min/max:  {_format_optional(metrics.avg_spo2)} / "
        f"{_format_optional(metrics.min_spo2, 'g')} / "
        f"{_format_optional(metrics.max_spo2, 'g')}"
    )
    click.echo(
        f"  Mask lifts:        {metrics.total_mask_lifts} "
        f"({metrics.total_escalated_mask_lifts} escalated, "
        f"{metrics.total_emergencies} emergency)"
    )
    click.echo(f"  Time in zone:      {metrics.total_time_in_zone:.0f}s")
    click.echo(f"  Stability score:   {metrics.hypoxic_stability_score}")
    click.echo(
        f"  Adaptation index:  {_format_optional(metrics.session_adaptation_index)}"
    )
    if metrics.altitude_progression:
        progression = " -> ".join(str(level) for level in metrics.altitude_progression)
        click.echo(f"  Altitude levels:   {progression}")


def _print_replay(result: ReplayResult) -> None:
    if result.instructions:
        click.echo("Instructions:")
        for instruction in result.instructions:
            click.echo(
                f"  t={instruction.timestamp}  SpO2 {instruction.spo2:g}%  "
                f"{instruction.title}: {instruction.message}"
            )

    if result.adjustments:
        click.echo("Altitude adjustments:")
        for adjustment in result.adjustments:
            click.echo(
                f"  {adjustment.current_level} -> {adjustment.new_level} "
                f"({adjustment.adjustment:+d}) {adjustment.reason}"
            )

    _print_session_summary(result.session_metrics)


def version_callback(ctx: click.Context, param: click.Parameter, value: bool) -> None:
    """Show version."""
    if not value or ctx.resilient_parsing:
        return
    click.echo(f"ihht, version {__version__}")
    ctx.exit()


@click.group()
@click.option(
    "--version",
    is_flag=True,
    callback=version_callback,
    expose_value=False,
    is_eager=True,
    help="Show version",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def cli(verbose: bool) -> None:
    """IHHT: adaptive hypoxic-hyperoxic training engine"""
    setup_logging(verbose=verbose, console_format="%(levelname)s: %(message)s")


# ============================================================================
# Session commands
# ============================================================================


def protocol_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Shared protocol override options."""
    options = [
        click.option("--cycles", type=int, help="Number of cycles (1-5)"),
        click.option(
            "--altitude-duration", type=int, help="Altitude phase length in seconds"
        ),
        click.option(
            "--recovery-duration", type=int, help="Recovery phase length in seconds"
        ),
        click.option(
            "--transition", type=int, help="Transition length in seconds (0 disables)"
        ),
        click.option(
            "--adaptive-recovery/--fixed-recovery",
            default=None,
            help="End recovery early once SpO2 is stable at 95%+",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@protocol_options
@click.option(
    "--session-type",
    type=click.Choice(["calibration", "training", "auto"]),
    help="SpO2 target range (auto: calibration for the first stored session)",
)
@click.option("--level", type=click.IntRange(0, 11), help="Starting altitude level")
@click.option("--db", type=click.Path(), help="Store results in this database")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
def replay(
    path: str,
    cycles: int | None,
    altitude_duration: int | None,
    recovery_duration: int | None,
    transition: int | None,
    adaptive_recovery: bool | None,
    session_type: str | None,
    level: int | None,
    db: str | None,
    as_json: bool,
) -> None:
    """Replay a recorded CSV (timestamp,spo2,heart_rate) through the engine."""
    protocol = _build_protocol(
        cycles, altitude_duration, recovery_duration, transition, adaptive_recovery
    )
    resolved_type = _resolve_session_type(session_type, db)

    try:
        readings = load_readings(path)
    except ReadingFormatError as e:
        location = f" (line {e.line_number})" if e.line_number else ""
        raise click.ClickException(f"{e}{location}") from e

    if not readings:
        raise click.ClickException(f"No readings in {path}")

    sink: MetricsSink | None = None
    if db:
        from ihht.database import DatabaseSink

        sink = DatabaseSink(str(Path(db)))

    result = replay_session(
        readings,
        protocol=protocol,
        session_type=resolved_type,
        starting_level=level if level is not None else get_starting_level(),
        sink=sink,
    )

    if as_json:
        click.echo(result.model_dump_json(indent=2))
        return

    click.echo(
        f"Replayed {len(readings)} readings ({resolved_type.value}, "
        f"{protocol.total_cycles} cycles)"
    )
    _print_replay(result)
    if db:
        click.echo(f"\n✓ Stored session in {db}")


@cli.command()
@click.argument("output", type=click.Path(dir_okay=False))
@protocol_options
@click.option("--level", type=click.IntRange(0, 11), default=6, show_default=True)
@click.option("--seed", type=int, default=0, show_default=True, help="Random seed")
@click.option("--noise", type=float, default=0.8, show_default=True, help="SpO2 noise std")
@click.option(
    "--dropout", type=float, default=0.0, show_default=True, help="Missing SpO2 rate"
)
@click.option("--start", type=int, default=0, show_default=True, help="Start time (ms)")
def simulate(
    output: str,
    cycles: int | None,
    altitude_duration: int | None,
    recovery_duration: int | None,
    transition: int | None,
    adaptive_recovery: bool | None,
    level: int,
    seed: int,
    noise: float,
    dropout: float,
    start: int,
) -> None:
    """Write a synthetic recording for the configured protocol."""
    protocol = _build_protocol(
        cycles, altitude_duration, recovery_duration, transition, adaptive_recovery
    )
    try:
        readings = simulate_session(
            protocol,
            altitude_level=level,
            seed=seed,
            start_time=start,
            noise_std=noise,
            dropout_rate=dropout,
        )
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    count = write_readings(output, readings)
    click.echo(f"✓ Wrote {count} readings to {output}")


@cli.command()
def levels() -> None:
    """Show the altitude dial levels."""
    click.echo(f"{'Level':>5}  {'O2 %':>5}  Altitude")
    for level in sorted(ALTITUDE_LEVEL_TABLE):
        info = get_altitude_level(level)
        click.echo(
            f"{info.level:>5}  {info.oxygen_percentage:>5.1f}  {info.display_name}"
        )


# ============================================================================
# Configuration commands
# ============================================================================


@cli.group()
def config() -> None:
    """Configuration management commands."""
    pass


def _split_key(key: str) -> tuple[str, str]:
    section, _, name = key.partition(".")
    if not name:
        raise click.BadParameter("Use SECTION.KEY, e.g. protocol.total_cycles")
    return section, name


@config.command("show")
def show_config_cmd() -> None:
    """Show all configuration settings."""
    config_path = get_config_path()
    if not config_path.exists():
        click.echo(f"No config file: {config_path}")
        return

    click.echo(f"Config file: {config_path}\n")
    config_data = load_config()
    if not config_data:
        click.echo("Configuration is empty.")
        return

    for section, values in config_data.items():
        click.echo(f"[{section}]")
        if isinstance(values, dict):
            for key, value in values.items():
                click.echo(f"  {key} = {value!r}")


@config.command("set")
@click.argument("key")
@click.argument("value")
def set_config_cmd(key: str, value: str) -> None:
    """Set a setting, e.g. `ihht config set protocol.total_cycles 4`."""
    section, name = _split_key(key)
    try:
        parsed = parse_setting(section, name, value)
    except KeyError:
        known = ", ".join(
            f"{s}.{k}" for s, keys in CONFIG_KEYS.items() for k in keys
        )
        raise click.ClickException(f"Unknown setting {key}. Known: {known}") from None
    except ValueError as e:
        raise click.ClickException(f"Invalid value for {key}: {e}") from e

    if section == "protocol":
        current = dict(load_config().get("protocol", {}))
        current[name] = parsed
        try:
            ProtocolConfig(**current)
        except ValidationError as e:
            raise click.ClickException(
                f"Invalid value for {key}: {e.errors()[0]['msg']}"
            ) from e

    if section == "session" and name == "default_session_type":
        try:
            SessionType(parsed)
        except ValueError as e:
            raise click.ClickException(
                f"Session type must be calibration or training, got {parsed!r}"
            ) from e

    set_setting(section, name, parsed)
    click.echo(f"✓ Set {key} = {parsed!r}")


@config.command("unset")
@click.argument("key")
def unset_config_cmd(key: str) -> None:
    """Remove a setting."""
    section, name = _split_key(key)
    if unset_setting(section, name):
        click.echo(f"✓ Removed {key}")
    else:
        click.echo(f"{key} was not configured.")


# ============================================================================
# Log commands
# ============================================================================


@cli.group()
def logs() -> None:
    """Log file management commands."""
    pass


def _backup_logs(log_path: Path) -> list[Path]:
    return [Path(f) for f in sorted(glob.glob(f"{log_path}.*"))]


@logs.command("path")
def logs_path() -> None:
    """Show log file location."""
    log_path = get_log_path()
    click.echo(f"Log file: {log_path}")

    if log_path.exists():
        size_mb = log_path.stat().st_size / (1024 * 1024)
        click.echo(f"Size: {size_mb:.2f} MB")
        backups = _backup_logs(log_path)
        if backups:
            click.echo(f"Backup files: {len(backups)}")
    else:
        click.echo("(File does not exist yet)")


@logs.command("show")
@click.option("--lines", "-n", type=int, default=50, help="Number of lines to show")
def logs_show(lines: int) -> None:
    """Show recent log entries."""
    log_path = get_log_path()

    if not log_path.exists():
        click.echo("No log file found", err=True)
        sys.exit(1)

    with open(log_path, encoding="utf-8") as f:
        all_lines = f.readlines()

    for line in all_lines[-lines:]:
        click.echo(line.rstrip())


@logs.command("clear")
@click.confirmation_option(prompt="Are you sure you want to clear all log files?")
def logs_clear() -> None:
    """Clear all log files."""
    log_path = get_log_path()

    removed_count = 0
    for log_file in [log_path, *_backup_logs(log_path)]:
        if log_file.exists():
            try:
                log_file.unlink()
                removed_count += 1
            except OSError as e:
                click.echo(f"Failed to remove {log_file}: {e}", err=True)

    if removed_count > 0:
        click.echo(f"Removed {removed_count} log file(s)")
    else:
        click.echo("No log files to remove")


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
