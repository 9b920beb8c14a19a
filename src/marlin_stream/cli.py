"""marlin-stream CLI - stream a G-code file to a Marlin printer over serial.

Usage:
    marlin-stream DEVICE BAUD_RATE FILE [--feedrate N] [--bed N] [--hotend N]
                  [--max-resets N] [--config PATH] [--log-dir DIR] [--debug] [--json]

Exit status is 0 on success (or ``--help``), 1 on any fatal error,
including a missing or malformed argument.
"""

from __future__ import annotations

import logging
import sys
import time
from typing import Any

import click

from marlin_stream import __version__
from marlin_stream.channel import open_channel, validate_baud_rate
from marlin_stream.config import build_overrides, load_config, normalize_config, validate_config
from marlin_stream.driver import CommandSource, StreamDriver
from marlin_stream.errors import StreamError
from marlin_stream.exit_codes import FATAL, SUCCESS, exit_code_for
from marlin_stream.log_config import configure_logging
from marlin_stream.output import ConsoleReporter, format_banner, format_error, format_summary
from marlin_stream.session import ProtocolSession

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _emit(output: str, exit_code: int = SUCCESS) -> None:
    """Print output and exit with the given code."""
    click.echo(output)
    sys.exit(exit_code)


def _emit_error(code: str, message: str, json_mode: bool) -> None:
    """Emit a structured error and exit."""
    _emit(format_error(code, message, json_mode=json_mode), exit_code_for(code))


def _close(channel: Any) -> None:
    try:
        channel.close()
    except Exception as exc:
        logger.debug("Failed to close serial port: %s", exc)


# ------------------------------------------------------------------
# Command
# ------------------------------------------------------------------


class StreamCommand(click.Command):
    """Click command whose usage errors exit with :data:`FATAL`."""

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as exc:
            exc.exit_code = FATAL
            raise


@click.command(cls=StreamCommand, context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("device")
@click.argument("baud_rate", type=int)
@click.argument("file_path", metavar="FILE")
@click.option("--feedrate", "feedrate_percent", type=int, default=None, help="Multiply all F values by this percentage.")
@click.option("--bed", "bed_temp", type=int, default=None, help="Force the bed temperature (°C) of M140/M190.")
@click.option("--hotend", "hotend_temp", type=int, default=None, help="Force the hotend temperature (°C) of M104/M109.")
@click.option("--max-resets", type=int, default=None, help="Give up after this many emergency resets (default: never).")
@click.option(
    "--config",
    "config_path",
    envvar="MARLIN_STREAM_CONFIG",
    default=None,
    help="Config file (default: ~/.marlin-stream/config.yaml).",
)
@click.option("--log-dir", default=None, help="Also write a rotating log file to this directory.")
@click.option("--debug", is_flag=True, default=False, help="Show all serial traffic.")
@click.option("--json", "json_mode", is_flag=True, default=False, help="Output the result as JSON.")
@click.version_option(version=__version__, prog_name="marlin-stream")
def cli(
    device: str,
    baud_rate: int,
    file_path: str,
    feedrate_percent: int | None,
    bed_temp: int | None,
    hotend_temp: int | None,
    max_resets: int | None,
    config_path: str | None,
    log_dir: str | None,
    debug: bool,
    json_mode: bool,
) -> None:
    """Stream FILE to the Marlin printer on DEVICE at BAUD_RATE.

    Every command is sent with a line number and checksum and must be
    acknowledged before the next one is sent.  Three consecutive resend
    requests for one line force a firmware reset (M112 + M999).

    \b
    Example:
      marlin-stream /dev/ttyUSB0 250000 print.gcode --feedrate=150 --hotend=210 --debug
    """
    config = load_config(
        config_path,
        feedrate_percent=feedrate_percent,
        bed_temp=bed_temp,
        hotend_temp=hotend_temp,
        max_resets=max_resets,
        debug=True if debug else None,
    )
    valid, err = validate_config(config)
    if not valid:
        _emit_error("VALIDATION_ERROR", f"Configuration error: {err}", json_mode)
    settings = normalize_config(config)

    configure_logging(debug=settings["debug"], log_dir=log_dir)
    overrides = build_overrides(settings)

    source = CommandSource(file_path)
    try:
        validate_baud_rate(baud_rate)
        source.check()
        channel = open_channel(device, baud_rate, boot_delay=settings["boot_delay"])
    except StreamError as exc:
        logger.debug("Startup failed", exc_info=True)
        _emit_error(exc.code, str(exc), json_mode)

    if not json_mode:
        click.echo(format_banner(device, baud_rate, file_path, overrides))

    session = ProtocolSession(
        channel,
        ack_timeout=settings["ack_timeout"],
        reset_settle=settings["reset_settle"],
        max_resets=settings["max_resets"],
        reporter=ConsoleReporter(debug=overrides.debug, json_mode=json_mode),
    )
    started = time.monotonic()
    try:
        state = StreamDriver(session, overrides).run(source)
    except StreamError as exc:
        logger.error("Stream aborted at N%d: %s", session.state.line_number, exc)
        if not json_mode:
            click.echo()
        _emit_error(exc.code, str(exc), json_mode)
    finally:
        _close(channel)

    _emit(format_summary(state, time.monotonic() - started, json_mode=json_mode), SUCCESS)


def main() -> None:
    """Console-script entry point."""
    cli(prog_name="marlin-stream")


if __name__ == "__main__":
    main()
