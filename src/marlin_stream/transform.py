"""Override rules applied to each G-code line before it is framed.

Two rules exist:

**Feedrate scaling**
    Every ``F`` parameter is multiplied by ``feedrate_percent / 100`` and
    rounded half away from zero.

**Temperature forcing**
    The ``S`` parameter of bed commands (``M140``/``M190``) or hotend
    commands (``M104``/``M109``) is replaced with a fixed setpoint.

Transformation is two-phase: the line's mnemonic is extracted first, then
each token is rewritten with that mnemonic as context.  Command lines come
back trimmed with their tokens joined by single spaces, since Marlin only
skips spaces between words.

Usage::

    from marlin_stream.transform import Overrides, transform_line

    transform_line("G1 X10 F1200", Overrides(feedrate_percent=150))
    # -> "G1 X10 F1800"
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_BED_COMMANDS: frozenset[str] = frozenset({"M140", "M190"})
_HOTEND_COMMANDS: frozenset[str] = frozenset({"M104", "M109"})

COMMENT_PREFIX = ";"

# Only ASCII whitespace separates words; latin-1 high bytes such as \xa0 are data.
_TRIM_CHARS = " \t\r\n"
_TOKEN_SEP_RE = re.compile(r"[ \t\n\r\f\v]+")


@dataclass(frozen=True)
class Overrides:
    """Numeric overrides applied while streaming.

    Attributes:
        feedrate_percent: Percentage applied to every ``F`` value.  ``None``
            (or a non-positive value) disables scaling.
        bed_temp: Forced ``S`` value for ``M140``/``M190``, or ``None``.
        hotend_temp: Forced ``S`` value for ``M104``/``M109``, or ``None``.
        debug: Log a diagnostic line whenever a feedrate is rescaled.
    """

    feedrate_percent: int | None = None
    bed_temp: int | None = None
    hotend_temp: int | None = None
    debug: bool = False

    @property
    def scales_feedrate(self) -> bool:
        return self.feedrate_percent is not None and self.feedrate_percent > 0


def trim(line: str) -> str:
    """Strip leading and trailing spaces, tabs and line breaks."""
    return line.strip(_TRIM_CHARS)


def split_tokens(line: str) -> list[str]:
    """Split *line* into whitespace-separated words."""
    return [token for token in _TOKEN_SEP_RE.split(line) if token]


def is_command(line: str) -> bool:
    """Return ``True`` unless *line* is blank or a ``;`` comment."""
    stripped = trim(line)
    return bool(stripped) and not stripped.startswith(COMMENT_PREFIX)


def extract_mnemonic(line: str) -> str:
    """Return the leading token of *line*, upper-cased (``"m140"`` -> ``"M140"``)."""
    tokens = split_tokens(line)
    return tokens[0].upper() if tokens else ""


def round_half_away_from_zero(value: float) -> int:
    """Round to the nearest integer, ties away from zero (``1801.5`` -> ``1802``)."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def _forced_setpoint(mnemonic: str, overrides: Overrides) -> int | None:
    if overrides.bed_temp is not None and mnemonic in _BED_COMMANDS:
        return overrides.bed_temp
    if overrides.hotend_temp is not None and mnemonic in _HOTEND_COMMANDS:
        return overrides.hotend_temp
    return None


def _scale_feedrate(token: str, overrides: Overrides) -> str:
    try:
        old = float(token[1:])
    except ValueError:
        logger.debug("Leaving non-numeric feedrate token %r unchanged", token)
        return token
    if not math.isfinite(old):
        logger.debug("Leaving non-finite feedrate token %r unchanged", token)
        return token

    new = round_half_away_from_zero(old * overrides.feedrate_percent / 100.0)  # type: ignore[operator]
    if overrides.debug:
        logger.info("Feedrate %d -> %d", int(old), new)
    return f"F{new}"


def transform_line(line: str, overrides: Overrides) -> str:
    """Apply *overrides* to one raw G-code line.

    Blank lines and comments are returned unchanged; the caller filters
    them before transmission.

    Returns:
        The tokens joined by single spaces, or *line* itself when the
        joined text equals the trimmed line.
    """
    trimmed = trim(line)
    if not trimmed or trimmed.startswith(COMMENT_PREFIX):
        return line

    mnemonic = extract_mnemonic(trimmed)
    setpoint = _forced_setpoint(mnemonic, overrides)

    rewritten: list[str] = []
    for token in split_tokens(trimmed):
        new_token = token
        if len(token) >= 2:
            letter = token[0].upper()
            if letter == "F" and overrides.scales_feedrate:
                new_token = _scale_feedrate(token, overrides)
            elif letter == "S" and setpoint is not None:
                new_token = f"S{setpoint}"
        rewritten.append(new_token)

    result = " ".join(rewritten)
    return line if result == trimmed else result
