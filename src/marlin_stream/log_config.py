"""Logging setup for marlin-stream.

Console logging goes to stderr through Rich so that it never interleaves
with the JSON written to stdout.  A rotating log file is added when a log
directory is configured, which is useful for post-mortems of long prints.
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

LOG_FILE_NAME = "marlin-stream.log"

_FILE_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


def configure_logging(
    *,
    debug: bool = False,
    log_dir: Optional[str] = None,
    max_bytes: int = 10_000_000,
    backup_count: int = 5,
) -> Optional[str]:
    """Configure console and optional file logging.

    :param debug: Log protocol traffic (``TX:``/``RX:``) and feedrate
        diagnostics to the console.  Otherwise only warnings and errors.
    :param log_dir: Directory for a rotating log file.  Reads
        ``MARLIN_STREAM_LOG_DIR``; no file is written when neither is set.
    :param max_bytes: Maximum log file size before rotation (default 10 MB).
    :param backup_count: Number of rotated log files to keep (default 5).
    :returns: Path of the log file, or ``None`` when file logging is off.
    """
    log_dir = log_dir or os.environ.get("MARLIN_STREAM_LOG_DIR") or None
    console_level = logging.DEBUG if debug else logging.WARNING

    root = logging.getLogger()
    root.setLevel(logging.DEBUG if (debug or log_dir) else logging.WARNING)

    has_console = any(isinstance(h, RichHandler) for h in root.handlers)
    if not has_console:
        console_handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=False,
        )
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(console_handler)
    for handler in root.handlers:
        if isinstance(handler, RichHandler):
            handler.setLevel(console_level)

    if not log_dir:
        return None

    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, LOG_FILE_NAME)

    has_rotating = any(isinstance(h, RotatingFileHandler) for h in root.handlers)
    if not has_rotating:
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                _FILE_FORMAT,
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root.addHandler(file_handler)

    return log_path
