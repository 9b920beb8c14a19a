"""Output formatting for the marlin-stream CLI.

Provides both JSON (machine-parseable) and human-readable (Rich) output.
``format_error`` and ``format_summary`` accept a ``json_mode`` flag:
    - ``True``  → JSON ``{status, data, error}`` envelope
    - ``False`` → Rich-formatted string for humans
"""

from __future__ import annotations

import json
from io import StringIO
from typing import Any, Callable, Dict, Optional, Union

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from marlin_stream.session import SessionState, StreamReporter
from marlin_stream.transform import Overrides

# Acknowledged commands between two progress lines (outside debug mode).
PROGRESS_EVERY: int = 25


# ---------------------------------------------------------------------------
# Generic helpers
# ---------------------------------------------------------------------------


def format_time(seconds: Optional[Union[int, float]]) -> str:
    """Convert seconds to ``Xh Ym Zs``."""
    if seconds is None or seconds < 0:
        return "N/A"
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    parts: list[str] = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{secs}s")
    return " ".join(parts)


def progress_bar(completion: Optional[float], width: int = 20) -> str:
    """ASCII progress bar: ``[████████░░░░] 42.3%``."""
    if completion is None:
        completion = 0.0
    completion = max(0.0, min(100.0, completion))
    filled = int(round(width * completion / 100))
    empty = width - filled
    bar = "█" * filled + "░" * empty
    return f"[{bar}] {completion:.1f}%"


def _render(renderable: Any) -> str:
    """Render a Rich object to a string."""
    buf = StringIO()
    console = Console(file=buf, force_terminal=True, width=100)
    console.print(renderable)
    return buf.getvalue().rstrip("\n")


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


def format_response(
    status: str,
    data: Optional[Dict[str, Any]] = None,
    error: Optional[Dict[str, Any]] = None,
) -> str:
    """Build the standard ``{status, data, error}`` JSON envelope."""
    envelope: Dict[str, Any] = {"status": status}
    if data is not None:
        envelope["data"] = data
    if error is not None:
        envelope["error"] = error
    return json.dumps(envelope, indent=2, sort_keys=False)


def format_error(code: str, message: str, *, json_mode: bool = False) -> str:
    """Format a fatal error."""
    if json_mode:
        return format_response("error", error={"code": code, "message": message})

    t = Text()
    t.append("Error", style="bold red")
    t.append(f" [{code}]: ", style="red")
    t.append(message or "An unknown error occurred.")
    return _render(Panel(t, title="Error", border_style="red"))


# ---------------------------------------------------------------------------
# Stream lifecycle
# ---------------------------------------------------------------------------


def format_banner(
    device: str,
    baud_rate: int,
    file_path: str,
    overrides: Overrides,
) -> str:
    """Format the connection banner shown before streaming starts."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="bold cyan", no_wrap=True)
    table.add_column("Value")

    table.add_row("Device", f"{device} @ {baud_rate} baud")
    table.add_row("File", file_path)
    if overrides.scales_feedrate:
        table.add_row("Feedrate", f"× {overrides.feedrate_percent}%")
    if overrides.bed_temp is not None:
        table.add_row("Bed", f"forced → {overrides.bed_temp}°C")
    if overrides.hotend_temp is not None:
        table.add_row("Hotend", f"forced → {overrides.hotend_temp}°C")

    return _render(Panel(table, title="marlin-stream", border_style="blue"))


def format_progress(state: SessionState) -> str:
    """One-line progress: ``Progress: [███░░] 42.0% (42/100)``."""
    return (
        f"Progress: {progress_bar(state.percent_complete)} "
        f"({state.sent_count}/{state.total_commands})"
    )


def format_reset_notice(state: SessionState) -> str:
    """Notice printed after an emergency reset."""
    return (
        f"FORCED HARD RESET #{state.resets} (M112 + M999) - "
        "printer rebooted, line numbering restarts at N1"
    )


def format_summary(
    state: SessionState,
    elapsed_seconds: Optional[float] = None,
    *,
    json_mode: bool = False,
) -> str:
    """Format the result of a completed stream."""
    if json_mode:
        data = state.to_dict()
        data["elapsed_seconds"] = round(elapsed_seconds, 1) if elapsed_seconds is not None else None
        return format_response("success", data=data)

    lines = [
        f"Commands:  {state.sent_count}/{state.total_commands}",
        f"Resets:    {state.resets}",
    ]
    if elapsed_seconds is not None:
        lines.append(f"Elapsed:   {format_time(elapsed_seconds)}")
    return _render(
        Panel(
            Text("\n".join(lines)),
            title="PRINT COMPLETED SUCCESSFULLY",
            border_style="green",
        )
    )


# ---------------------------------------------------------------------------
# Reporter
# ---------------------------------------------------------------------------


class ConsoleReporter(StreamReporter):
    """Prints stream progress to the terminal.

    Progress is printed every :data:`PROGRESS_EVERY` acknowledged commands,
    or after every command in debug mode.  In JSON mode nothing is printed
    to stdout; reset notices go to stderr.
    """

    def __init__(
        self,
        *,
        debug: bool = False,
        json_mode: bool = False,
        every: int = PROGRESS_EVERY,
        echo: Callable[..., None] = click.echo,
    ) -> None:
        self._debug = debug
        self._json_mode = json_mode
        self._every = max(1, every)
        self._echo = echo

    def on_start(self, state: SessionState) -> None:
        if not self._json_mode:
            self._echo(f"Streaming {state.total_commands} commands\n")

    def on_progress(self, state: SessionState) -> None:
        if self._json_mode:
            return
        if self._debug or state.sent_count % self._every == 0:
            self._echo(f"\r{format_progress(state)}    ", nl=False)

    def on_reset(self, state: SessionState) -> None:
        self._echo(f"\n{format_reset_notice(state)}\n", err=self._json_mode)

    def on_finishing(self, state: SessionState) -> None:
        if not self._json_mode:
            self._echo("\n\nFinishing... ", nl=False)

    def on_complete(self, state: SessionState) -> None:
        if not self._json_mode:
            self._echo("done!")
