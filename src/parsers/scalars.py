"""Scalar coercions for timing export fields.

Invalid input never raises here: unparsable values fall back to zero
or ``None`` so bulk ingestion survives stray malformed rows.
"""

from __future__ import annotations

import math
import re

from core.constants import LAP_TIME_EPSILON

_LEADING_INT_PATTERN = re.compile(r"^\s*[+-]?\d+")
_LEADING_FLOAT_PATTERN = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_KPH_TO_MPH = 0.621371


def parse_lap_time(text: str) -> float:
    """Parse ``H:MM:SS.mmm``, ``M:SS.mmm`` or ``SS.mmm`` into seconds.

    Args:
        text: Lap time text.

    Returns:
        Seconds, or ``0.0`` for empty or malformed input.
    """
    if not text or not text.strip():
        return 0.0
    parts = text.strip().split(":")
    if len(parts) > 3:
        return 0.0
    components = [_strict_float(part) for part in parts]
    if any(component is None for component in components):
        return 0.0
    seconds = 0.0
    for component in components:
        seconds = seconds * 60 + float(component or 0.0)
    return seconds


def lap_seconds_or_epsilon(seconds: float) -> float:
    """Coerce non-positive lap seconds up to the storage epsilon."""
    return seconds if seconds > 0 else LAP_TIME_EPSILON


def parse_int(text: str) -> int | None:
    """Parse the leading integer of a field, ``None`` when absent."""
    match = _LEADING_INT_PATTERN.match(text or "")
    return int(match.group(0)) if match else None


def parse_float(text: str) -> float | None:
    """Parse the leading number of a field, ``None`` when absent."""
    match = _LEADING_FLOAT_PATTERN.match(text or "")
    return float(match.group(0)) if match else None


def kph_to_mph(text: str) -> float:
    """Convert a kph field to mph, ``0.0`` when missing or non-positive."""
    kph = parse_float(text)
    if kph is None or kph <= 0:
        return 0.0
    return kph * _KPH_TO_MPH


def parse_time_of_day(text: str) -> float:
    """Parse wall-clock ``HH:MM:SS.mmm`` into seconds of day."""
    parts = (text or "").split(":")
    if len(parts) < 3:
        return 0.0
    hours = parse_int(parts[0]) or 0
    minutes = parse_int(parts[1]) or 0
    seconds = parse_float(parts[2]) or 0.0
    return hours * 3600 + minutes * 60 + seconds


def _strict_float(text: str) -> float | None:
    try:
        value = float(text.strip())
    except ValueError:
        return None
    return value if math.isfinite(value) else None
