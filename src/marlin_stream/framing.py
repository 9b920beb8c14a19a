"""Line framing for the Marlin numbered-checksum protocol.

Wire grammar::

    "N" <line_number> " " <command> "*" <checksum> "\\n"

- ``line_number``: decimal, no padding
- ``checksum``: XOR of every byte of ``"N<line_number> <command>"``,
  printed as a decimal integer 0-255

Example::

    >>> build_frame(1, "G28").wire
    'N1 G28*18\\n'
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import reduce

# latin-1 maps every byte to one code point, so the checksum and the wire
# carry the source file's bytes unchanged.
WIRE_ENCODING = "latin-1"

_FRAME_RE = re.compile(r"^N(?P<line>\d+) (?P<command>.*)\*(?P<checksum>\d{1,3})$")


def compute_checksum(payload: str) -> int:
    """Return the XOR fold of all bytes of *payload*."""
    return reduce(lambda acc, b: acc ^ b, payload.encode(WIRE_ENCODING), 0) & 0xFF


@dataclass(frozen=True)
class Frame:
    """A numbered, checksummed command ready for transmission."""

    line_number: int
    command: str
    checksum: int

    @property
    def payload(self) -> str:
        return f"N{self.line_number} {self.command}"

    @property
    def wire(self) -> str:
        return f"{self.payload}*{self.checksum}\n"

    def encode(self) -> bytes:
        """Return the wire form as bytes."""
        return self.wire.encode(WIRE_ENCODING)

    def __repr__(self) -> str:
        return f"Frame({self.payload!r}*{self.checksum})"


def build_frame(line_number: int, command: str) -> Frame:
    """Frame *command* with *line_number* and its checksum.

    Args:
        line_number: Protocol line number (1 after a firmware reboot).
        command: Transformed, trimmed G-code command text.

    Raises:
        ValueError: If *line_number* is negative or *command* contains a
            line break, which would split the frame on the wire.
    """
    if line_number < 0:
        raise ValueError(f"line_number must be >= 0, got {line_number}")
    if "\n" in command or "\r" in command:
        raise ValueError("command must be a single line")
    payload = f"N{line_number} {command}"
    return Frame(line_number=line_number, command=command, checksum=compute_checksum(payload))


def parse_frame(wire: str | bytes) -> Frame | None:
    """Parse and verify a wire line.

    Returns:
        The decoded :class:`Frame`, or ``None`` if the line does not follow
        the grammar or its checksum does not match the payload.
    """
    if isinstance(wire, bytes):
        wire = wire.decode(WIRE_ENCODING)
    wire = wire.rstrip("\r\n")

    match = _FRAME_RE.match(wire)
    if match is None:
        return None

    frame = build_frame(int(match.group("line")), match.group("command"))
    if frame.checksum != int(match.group("checksum")):
        return None
    return frame
