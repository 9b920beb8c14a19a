"""Protocol session: the acknowledgment / resend / recovery state machine.

One :class:`ProtocolSession` owns the serial channel for the duration of a
stream and all protocol counters (:class:`SessionState`).  For each command
it frames, writes, and then waits for a decisive answer:

- ``ok``       -- advance the line number, reset the resend streak
- ``Resend``   -- write the same frame again; on the third consecutive
  resend perform an emergency reset (``M112`` + ``M999``) and restart the
  numbering at 1
- unrecognised -- ignore and keep waiting
- silence      -- raise :class:`~marlin_stream.errors.AckTimeoutError`

After the last command, :meth:`ProtocolSession.finish` sends ``M400`` and
waits, without an overall deadline, until the firmware has drained its
move queue.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any

from marlin_stream.ack import ACK_TIMEOUT_SECONDS, AckKind, AckReader, classify_response
from marlin_stream.errors import AckTimeoutError, ChannelError, ResetLimitError
from marlin_stream.framing import WIRE_ENCODING, Frame, build_frame

logger = logging.getLogger(__name__)

# Consecutive resends for one frame that trigger an emergency reset.
RESEND_STREAK_LIMIT: int = 3

# Time allowed for the firmware to reboot after M112/M999.
RESET_SETTLE_SECONDS: float = 4.0

RESET_SEQUENCE = "M112\nM999\n"
SYNC_COMMAND = "M400"


@dataclass
class SessionState:
    """Protocol counters for one stream."""

    line_number: int = 1
    resend_streak: int = 0
    total_commands: int = 0
    sent_count: int = 0
    resets: int = 0

    @property
    def percent_complete(self) -> float:
        if self.total_commands <= 0:
            return 0.0
        return min(100.0, self.sent_count * 100.0 / self.total_commands)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable dictionary."""
        return asdict(self)


class StreamReporter:
    """Receives progress notifications from a stream.

    The default implementation ignores everything; the CLI subclasses it
    to print progress.
    """

    def on_start(self, state: SessionState) -> None:
        pass

    def on_progress(self, state: SessionState) -> None:
        pass

    def on_reset(self, state: SessionState) -> None:
        pass

    def on_finishing(self, state: SessionState) -> None:
        pass

    def on_complete(self, state: SessionState) -> None:
        pass


class ProtocolSession:
    """Drives the numbered-checksum protocol over one serial channel.

    Args:
        channel: Open ``serial.Serial``-like object (``write``, ``flush``,
            ``read_until``, ``reset_input_buffer``, ``timeout``).
        ack_timeout: Silence window for each response line.
        reset_settle: Seconds to wait after an emergency reset.
        max_resets: Optional ceiling on emergency resets.  ``None`` keeps
            recovering for as long as the firmware keeps asking for resends.
        reporter: Progress sink; defaults to a no-op reporter.
    """

    def __init__(
        self,
        channel: Any,
        *,
        ack_timeout: float = ACK_TIMEOUT_SECONDS,
        reset_settle: float = RESET_SETTLE_SECONDS,
        max_resets: int | None = None,
        reporter: StreamReporter | None = None,
    ) -> None:
        if max_resets is not None and max_resets < 0:
            raise ValueError(f"max_resets must be >= 0, got {max_resets}")
        self._channel = channel
        self._reader = AckReader(channel, timeout=ack_timeout)
        self._reset_settle = reset_settle
        self._max_resets = max_resets
        self.reporter = reporter or StreamReporter()
        self.state = SessionState()

    # ------------------------------------------------------------------
    # Channel I/O
    # ------------------------------------------------------------------

    def _write(self, data: str) -> None:
        try:
            self._channel.write(data.encode(WIRE_ENCODING))
            self._channel.flush()
        except Exception as exc:
            raise ChannelError(f"Serial write error: {exc}", cause=exc) from exc

    def _transmit(self, frame: Frame) -> None:
        self._write(frame.wire)
        logger.debug("TX: %s", frame.wire.rstrip("\n"))

    def _read_ack(self) -> tuple[str, AckKind]:
        line = self._reader.read_line()
        if line:
            logger.debug("RX: %s", line)
        return line, classify_response(line)

    # ------------------------------------------------------------------
    # Protocol
    # ------------------------------------------------------------------

    def send(self, command: str) -> Frame:
        """Transmit *command* and block until the firmware accepts it.

        Returns:
            The frame that was finally acknowledged.  After an emergency
            reset this carries line number 1.

        Raises:
            AckTimeoutError: If the firmware stays silent for a whole window.
            ResetLimitError: If ``max_resets`` is exceeded.
            ChannelError: On serial read/write failures.
        """
        frame = build_frame(self.state.line_number, command)
        self._transmit(frame)

        while True:
            line, kind = self._read_ack()

            if kind is AckKind.OK:
                self.state.line_number += 1
                self.state.resend_streak = 0
                self.state.sent_count += 1
                self.reporter.on_progress(self.state)
                return frame

            if kind is AckKind.RESEND:
                self.state.resend_streak += 1
                if self.state.resend_streak >= RESEND_STREAK_LIMIT:
                    self.emergency_reset()
                    self.state.resend_streak = 0
                    self.state.line_number = 1
                    # The rebooted firmware expects N1 next.
                    frame = build_frame(self.state.line_number, command)
                else:
                    logger.info(
                        "Resend %d/%d requested for N%d: %s",
                        self.state.resend_streak,
                        RESEND_STREAK_LIMIT,
                        frame.line_number,
                        line,
                    )
                self._transmit(frame)
                continue

            if kind is AckKind.TIMEOUT:
                raise AckTimeoutError(frame.line_number, self._reader.timeout)

    def emergency_reset(self) -> None:
        """Reboot the firmware with ``M112`` + ``M999`` and flush input.

        Raises:
            ResetLimitError: If the configured reset ceiling is exhausted.
        """
        if self._max_resets is not None and self.state.resets >= self._max_resets:
            raise ResetLimitError(
                f"Giving up after {self.state.resets} emergency reset(s); "
                f"firmware keeps requesting resends at N{self.state.line_number}."
            )

        logger.warning(
            "%d consecutive resends at N%d; forcing firmware reset (M112 + M999)",
            self.state.resend_streak,
            self.state.line_number,
        )
        self._write(RESET_SEQUENCE)
        time.sleep(self._reset_settle)
        try:
            self._channel.reset_input_buffer()
        except Exception as exc:
            raise ChannelError(f"Failed to flush serial input: {exc}", cause=exc) from exc

        self.state.resets += 1
        self.reporter.on_reset(self.state)

    def finish(self) -> Frame:
        """Send ``M400`` and wait until the firmware acknowledges it.

        No overall deadline applies here: draining a long move queue may
        legitimately take longer than any single acknowledgment window.
        Every response other than ``ok`` is discarded, including silence.
        """
        self.reporter.on_finishing(self.state)
        frame = build_frame(self.state.line_number, SYNC_COMMAND)
        self._transmit(frame)

        while True:
            _line, kind = self._read_ack()
            if kind is AckKind.OK:
                self.state.line_number += 1
                break
            if kind is AckKind.TIMEOUT:
                logger.debug("Still waiting for %s to complete", SYNC_COMMAND)

        return frame
