"""Serial channel acquisition.

Opens the printer's USB serial port with pyserial in raw 8N1 mode without
flow control, at one of the baud rates Marlin boards commonly use
(including the non-standard 250000 and 500000).

Opening the port toggles DTR, which reboots most Marlin boards.  The
channel therefore waits ``boot_delay`` seconds and then discards the
startup banner so that its ``echo:`` lines are never mistaken for
acknowledgments.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import serial

from marlin_stream.errors import ChannelError, UnsupportedBaudRateError

logger = logging.getLogger(__name__)

SUPPORTED_BAUD_RATES: tuple[int, ...] = (
    9600,
    19200,
    38400,
    57600,
    115200,
    230400,
    250000,
    460800,
    500000,
    921600,
    1000000,
)

# Time for the board to finish rebooting after the port opens.
BOOT_DELAY_SECONDS: float = 2.0

# Per-read timeout of the raw port; the ack reader overrides it per read.
_READ_TIMEOUT_SECONDS: float = 2.0


def validate_baud_rate(baud_rate: int) -> int:
    """Return *baud_rate* if supported.

    Raises:
        UnsupportedBaudRateError: If the rate is not in :data:`SUPPORTED_BAUD_RATES`.
    """
    if baud_rate not in SUPPORTED_BAUD_RATES:
        supported = ", ".join(str(b) for b in SUPPORTED_BAUD_RATES)
        raise UnsupportedBaudRateError(f"Unsupported baud rate: {baud_rate} (supported: {supported})")
    return baud_rate


def open_channel(
    device: str,
    baud_rate: int,
    *,
    boot_delay: float = BOOT_DELAY_SECONDS,
) -> Any:
    """Open *device* at *baud_rate* and return the ``serial.Serial`` object.

    Args:
        device: Serial port path, e.g. ``"/dev/ttyUSB0"`` or ``"COM3"``.
        baud_rate: One of :data:`SUPPORTED_BAUD_RATES`.
        boot_delay: Seconds to wait for the board to reboot after opening.

    Raises:
        UnsupportedBaudRateError: If *baud_rate* is not supported.
        ChannelError: If the port cannot be opened or configured.
    """
    if not device:
        raise ValueError("device must not be empty")
    validate_baud_rate(baud_rate)

    try:
        channel = serial.Serial(
            port=device,
            baudrate=baud_rate,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE,
            timeout=_READ_TIMEOUT_SECONDS,
            xonxoff=False,
            rtscts=False,
            dsrdtr=False,
        )
    except serial.SerialException as exc:
        msg = str(exc).lower()
        if "permission" in msg:
            raise ChannelError(
                f"Permission denied opening {device}. "
                "Add your user to the 'dialout' group: "
                "sudo usermod -a -G dialout $USER",
                cause=exc,
            ) from exc
        if "no such file" in msg or "not found" in msg or "filenotfounderror" in msg:
            raise ChannelError(
                f"Serial port {device} not found. Check USB cable and port path.",
                cause=exc,
            ) from exc
        if "baud" in msg or "invalid argument" in msg:
            raise ChannelError(
                f"Failed to set serial parameters on {device} @ {baud_rate}: {exc}",
                cause=exc,
            ) from exc
        raise ChannelError(f"Cannot open {device}: {exc}", cause=exc) from exc
    except (OSError, ValueError) as exc:
        raise ChannelError(f"Cannot open {device}: {exc}", cause=exc) from exc

    try:
        time.sleep(boot_delay)
        channel.reset_input_buffer()
    except Exception as exc:
        channel.close()
        raise ChannelError(f"Failed to configure {device}: {exc}", cause=exc) from exc

    logger.info("Connected to %s @ %d baud", device, baud_rate)
    return channel
