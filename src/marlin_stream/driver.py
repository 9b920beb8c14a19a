"""Stream driver: walks a G-code source through the protocol session."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Iterator

from marlin_stream.errors import SourceError
from marlin_stream.framing import WIRE_ENCODING
from marlin_stream.session import ProtocolSession, SessionState
from marlin_stream.transform import Overrides, is_command, transform_line, trim

logger = logging.getLogger(__name__)


class CommandSource:
    """Re-iterable view of a G-code file.

    Each iteration reopens the file, so the driver can count commands in
    one pass and stream them in a second.  Lines are yielded without their
    ``\\n`` / ``\\r\\n`` terminator.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = os.fspath(path)

    def check(self) -> None:
        """Verify the file can be opened for reading.

        Raises:
            SourceError: If the file is missing or unreadable.
        """
        try:
            with open(self.path, "rb"):
                pass
        except OSError as exc:
            raise SourceError(f"Cannot open {self.path}: {exc.strerror or exc}", cause=exc) from exc

    def __iter__(self) -> Iterator[str]:
        try:
            fh = open(self.path, encoding=WIRE_ENCODING, newline=None)
        except OSError as exc:
            raise SourceError(f"Cannot open {self.path}: {exc.strerror or exc}", cause=exc) from exc
        with fh:
            for line in fh:
                yield line.rstrip("\n")

    def __repr__(self) -> str:
        return f"<CommandSource path={self.path!r}>"


def count_commands(source: Iterable[str]) -> int:
    """Count lines of *source* that will be transmitted."""
    return sum(1 for line in source if is_command(line))


class StreamDriver:
    """Streams every command of a source through a :class:`ProtocolSession`.

    Example::

        session = ProtocolSession(channel)
        driver = StreamDriver(session, Overrides(feedrate_percent=120))
        state = driver.run(CommandSource("part.gcode"))
    """

    def __init__(self, session: ProtocolSession, overrides: Overrides | None = None) -> None:
        self.session = session
        self.overrides = overrides or Overrides()

    def run(self, source: Iterable[str]) -> SessionState:
        """Stream *source* to completion, then synchronise with ``M400``.

        *source* is iterated twice and must therefore be re-iterable
        (a :class:`CommandSource`, a list, a tuple, ...).
        """
        state = self.session.state
        reporter = self.session.reporter

        state.total_commands = count_commands(source)
        logger.info("Streaming %d commands", state.total_commands)
        reporter.on_start(state)

        for raw in source:
            command = trim(transform_line(raw, self.overrides))
            if not is_command(command):
                continue
            self.session.send(command)

        self.session.finish()
        reporter.on_complete(state)
        logger.info(
            "Stream complete: %d/%d commands acknowledged, %d reset(s)",
            state.sent_count,
            state.total_commands,
            state.resets,
        )
        return state
