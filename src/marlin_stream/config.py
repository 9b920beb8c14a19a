"""Configuration for marlin-stream.

Settings live in ``~/.marlin-stream/config.yaml`` (or a file passed with
``--config``).

Precedence (highest first):
    1. CLI flags (``--feedrate``, ``--bed``, ``--hotend``, ...)
    2. Environment variables (``MARLIN_STREAM_FEEDRATE``, ...)
    3. Config file
    4. Built-in defaults
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from marlin_stream.transform import Overrides

logger = logging.getLogger(__name__)

DEFAULTS: dict[str, Any] = {
    "feedrate_percent": None,
    "bed_temp": None,
    "hotend_temp": None,
    "debug": False,
    "max_resets": None,
    "ack_timeout": 10.0,
    "reset_settle": 4.0,
    "boot_delay": 2.0,
}

_ENV_VARS: dict[str, str] = {
    "feedrate_percent": "MARLIN_STREAM_FEEDRATE",
    "bed_temp": "MARLIN_STREAM_BED_TEMP",
    "hotend_temp": "MARLIN_STREAM_HOTEND_TEMP",
    "debug": "MARLIN_STREAM_DEBUG",
    "max_resets": "MARLIN_STREAM_MAX_RESETS",
}

_INT_KEYS: tuple[str, ...] = ("feedrate_percent", "bed_temp", "hotend_temp", "max_resets")
_FLOAT_KEYS: tuple[str, ...] = ("ack_timeout", "reset_settle", "boot_delay")

# Forced setpoints above these (degrees Celsius) are allowed but logged.
HOTEND_TEMP_WARNING: int = 300
BED_TEMP_WARNING: int = 130

_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})


def get_default_config_path() -> Path:
    """Return the default config file path (``~/.marlin-stream/config.yaml``)."""
    return Path.home() / ".marlin-stream" / "config.yaml"


def _load_config_file(config_path: Path) -> dict[str, Any]:
    """Read and parse a YAML config file, returning an empty dict on any failure."""
    if not config_path.is_file():
        return {}
    try:
        with config_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (yaml.YAMLError, OSError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", config_path, exc)
        return {}
    if isinstance(data, dict):
        return data
    return {}


def _parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def load_config(
    config_path: str | None = None,
    **explicit: Any,
) -> dict[str, Any]:
    """Resolve configuration from defaults, file, environment and *explicit* values.

    Keyword arguments whose value is ``None`` are treated as "not given"
    and do not override lower tiers.  Values are returned as read; call
    :func:`validate_config` before using them.
    """
    config: dict[str, Any] = dict(DEFAULTS)

    path = Path(config_path) if config_path else get_default_config_path()
    file_values = _load_config_file(path)
    for key in DEFAULTS:
        if file_values.get(key) is not None:
            config[key] = file_values[key]

    for key, env_name in _ENV_VARS.items():
        raw = os.environ.get(env_name, "").strip()
        if raw:
            config[key] = raw

    for key, value in explicit.items():
        if key not in DEFAULTS:
            raise TypeError(f"Unknown configuration key: {key!r}")
        if value is not None:
            config[key] = value

    config["debug"] = _parse_bool(config["debug"])
    return config


def _coerce(config: dict[str, Any]) -> tuple[dict[str, Any], str | None]:
    """Return a copy with numeric settings converted, plus the first conversion error."""
    coerced = dict(config)
    for key in _INT_KEYS:
        value = coerced.get(key)
        if value is None:
            continue
        try:
            if isinstance(value, bool) or float(value) != int(float(value)):
                return coerced, f"{key} must be an integer, got {value!r}"
            coerced[key] = int(float(value))
        except (TypeError, ValueError, OverflowError):
            return coerced, f"{key} must be an integer, got {value!r}"
    for key in _FLOAT_KEYS:
        try:
            coerced[key] = float(coerced[key])
        except (TypeError, ValueError):
            return coerced, f"{key} must be a number, got {coerced[key]!r}"
    return coerced, None


def validate_config(config: dict[str, Any]) -> tuple[bool, str | None]:
    """Validate a resolved configuration dict.

    Returns ``(True, None)`` when the config is valid, or
    ``(False, error_message)`` describing the first problem found.
    """
    coerced, err = _coerce(config)
    if err:
        return False, err

    feedrate = coerced["feedrate_percent"]
    if feedrate is not None and feedrate <= 0:
        return False, f"feedrate_percent must be a positive percentage, got {feedrate}"

    for key in ("bed_temp", "hotend_temp"):
        temp = coerced[key]
        if temp is not None and temp < 0:
            return False, f"{key} must be >= 0, got {temp}"

    max_resets = coerced["max_resets"]
    if max_resets is not None and max_resets < 0:
        return False, f"max_resets must be >= 0, got {max_resets}"

    if coerced["ack_timeout"] <= 0:
        return False, "ack_timeout must be > 0"
    for key in ("reset_settle", "boot_delay"):
        if coerced[key] < 0:
            return False, f"{key} must be >= 0"

    return True, None


def normalize_config(config: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of a *validated* config with numeric values converted.

    Raises:
        ValueError: If *config* does not pass :func:`validate_config`.
    """
    valid, err = validate_config(config)
    if not valid:
        raise ValueError(err)
    coerced, _ = _coerce(config)
    return coerced


def build_overrides(config: dict[str, Any]) -> Overrides:
    """Build :class:`~marlin_stream.transform.Overrides` from a config dict."""
    normalized = normalize_config(config)
    for key, limit in (("bed_temp", BED_TEMP_WARNING), ("hotend_temp", HOTEND_TEMP_WARNING)):
        if normalized[key] is not None and normalized[key] > limit:
            logger.warning("Forcing %s to %d°C, above the usual %d°C limit", key, normalized[key], limit)
    return Overrides(
        feedrate_percent=normalized["feedrate_percent"],
        bed_temp=normalized["bed_temp"],
        hotend_temp=normalized["hotend_temp"],
        debug=bool(normalized["debug"]),
    )

