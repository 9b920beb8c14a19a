"""Exception hierarchy for marlin-stream.

Every failure the streamer can report to the operator derives from
:class:`StreamError`.  Each subclass carries a machine-readable ``code``
that the CLI maps to an exit code and prints in its error envelope.

Recoverable protocol events (a ``Resend`` below the streak threshold, an
unrecognised response line) are *not* errors and never raise.
"""

from __future__ import annotations


class StreamError(Exception):
    """Base exception for all streamer errors.

    Raised whenever streaming cannot continue: the device cannot be opened,
    the source file is unreadable, or the firmware stops answering.
    """

    code: str = "STREAM_ERROR"

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class ConfigurationError(StreamError):
    """Invalid override or configuration value."""

    code = "VALIDATION_ERROR"


class UnsupportedBaudRateError(ConfigurationError):
    """Requested baud rate is not in the supported set."""

    code = "UNSUPPORTED_BAUD"


class SourceError(StreamError):
    """The G-code source file cannot be opened or read."""

    code = "FILE_ERROR"


class ChannelError(StreamError):
    """The serial device cannot be opened, configured, read or written."""

    code = "DEVICE_ERROR"


class AckTimeoutError(StreamError):
    """The firmware stayed silent for a whole acknowledgment window.

    Attributes:
        line_number: Line number of the frame that was awaiting an answer.
        timeout: Length of the silence window in seconds.
    """

    code = "ACK_TIMEOUT"

    def __init__(self, line_number: int, timeout: float) -> None:
        super().__init__(
            f"Timeout ({timeout:g}s) waiting for acknowledgment of line N{line_number}."
        )
        self.line_number = line_number
        self.timeout = timeout


class ResetLimitError(StreamError):
    """Emergency resets exceeded the configured ceiling."""

    code = "RESET_LIMIT"
