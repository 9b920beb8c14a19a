"""Acknowledgment reading and classification.

Marlin answers every numbered frame with one or more text lines.  The
session only cares about three outcomes:

- ``ok``      -- the frame was accepted
- ``Resend``  -- checksum or line-number mismatch, send it again
- silence     -- no line within the acknowledgment window (fatal)

Anything else (``echo:``, temperature reports, ``busy:``) is ignored.

The reader blocks on the channel with a deadline instead of polling it on
a fixed interval: the channel's own read timeout is set to whatever is
left of the window before every read.
"""

from __future__ import annotations

import enum
import logging
import time
from typing import Any

from marlin_stream.errors import ChannelError

logger = logging.getLogger(__name__)

# Aggregate silence window for a single response line.
ACK_TIMEOUT_SECONDS: float = 10.0

# Back-off after a read that returned nothing before its own timeout.
_IDLE_BACKOFF_SECONDS: float = 0.005


class AckKind(enum.Enum):
    """Classification of one firmware response line."""

    OK = "ok"
    RESEND = "resend"
    UNRECOGNIZED = "unrecognized"
    TIMEOUT = "timeout"


def classify_response(line: str) -> AckKind:
    """Classify a response line.

    Substring matching is deliberate and ordered: ``"ok"`` wins over
    ``"Resend"``/``"rs"``.  The empty string is the reader's timeout
    sentinel; firmware never sends an empty acknowledgment.
    """
    if not line:
        return AckKind.TIMEOUT
    if "ok" in line:
        return AckKind.OK
    if "Resend" in line or "rs" in line:
        return AckKind.RESEND
    return AckKind.UNRECOGNIZED


class AckReader:
    """Reads newline-terminated response lines from a serial channel.

    Args:
        channel: A ``serial.Serial``-like object exposing ``read_until``
            and a writable ``timeout`` attribute.  Reads may return zero
            bytes without error.
        timeout: Silence window in seconds for one line.
    """

    def __init__(self, channel: Any, *, timeout: float = ACK_TIMEOUT_SECONDS) -> None:
        if timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {timeout}")
        self._channel = channel
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout

    def read_line(self) -> str:
        """Return the next response line without its terminator.

        Returns:
            The decoded line with any trailing ``\\r`` removed, or ``""``
            when no complete line arrived within the silence window.

        Raises:
            ChannelError: If the underlying read fails.
        """
        buffer = bytearray()
        deadline = time.monotonic() + self._timeout
        old_timeout = self._channel.timeout

        try:
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    if buffer:
                        logger.debug("Discarding partial line at timeout: %r", bytes(buffer))
                    return ""

                self._channel.timeout = remaining
                try:
                    chunk = self._channel.read_until(b"\n")
                except Exception as exc:
                    raise ChannelError(f"Serial read error: {exc}", cause=exc) from exc

                if not chunk:
                    time.sleep(min(_IDLE_BACKOFF_SECONDS, max(remaining, 0)))
                    continue

                buffer.extend(chunk)
                if buffer.endswith(b"\n"):
                    line = buffer[:-1].decode("utf-8", errors="replace")
                    return line[:-1] if line.endswith("\r") else line
        finally:
            self._channel.timeout = old_timeout
