"""Exit codes for the marlin-stream CLI.

The streamer distinguishes only success from failure at the process
level; the error ``code`` strings printed in the error envelope carry
the finer category for scripts that want it.
"""

from __future__ import annotations

# Stream completed (or --help / --version was shown)
SUCCESS = 0

# Any fatal error: device, file, baud rate, serial configuration, timeout
FATAL = 1


ERROR_CODE_MAP: dict[str, int] = {
    "VALIDATION_ERROR": FATAL,
    "UNSUPPORTED_BAUD": FATAL,
    "FILE_ERROR": FATAL,
    "DEVICE_ERROR": FATAL,
    "ACK_TIMEOUT": FATAL,
    "RESET_LIMIT": FATAL,
    "STREAM_ERROR": FATAL,
}


def exit_code_for(error_code: str) -> int:
    """Map an error code string to a CLI exit code."""
    return ERROR_CODE_MAP.get(error_code, FATAL)
