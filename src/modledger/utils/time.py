# src/modledger/utils/time.py
"""Helpers for the compact duration notation used in modlog text (``1d 2h``, ``5m 30s``)."""

from __future__ import annotations

import re
from datetime import timedelta

_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3_600, "d": 86_400}
_SEGMENT = re.compile(r"(\d+)([smhd]?)", re.IGNORECASE)


def format_compact_duration(duration: timedelta | int) -> str:
    """Render a duration using its two most significant units.

    Days drop everything below hours; hours keep minutes and seconds.

    >>> format_compact_duration(93_600)
    '1d 2h'
    >>> format_compact_duration(330)
    '5m 30s'
    """
    total = int(duration.total_seconds()) if isinstance(duration, timedelta) else int(duration)
    total = max(0, total)
    days, rest = divmod(total, 86_400)
    hours, rest = divmod(rest, 3_600)
    minutes, seconds = divmod(rest, 60)

    if days:
        return f"{days}d {hours}h" if hours else f"{days}d"
    if hours:
        parts = [f"{hours}h"]
        if minutes:
            parts.append(f"{minutes}m")
        if seconds:
            parts.append(f"{seconds}s")
        return " ".join(parts)
    if minutes:
        return f"{minutes}m {seconds}s" if seconds else f"{minutes}m"
    return f"{seconds}s"


def parse_compact_duration(raw: str) -> timedelta | None:
    """Parse ``24h``, ``1d 12h`` or a bare number of seconds.

    Returns None for empty input, zero-valued segments, unknown units, or a
    unitless number combined with any other segment (``1h30``, ``1 2``).
    """
    segments: list[tuple[int, str]] = []
    for token in raw.split():
        cursor = 0
        for match in _SEGMENT.finditer(token):
            if match.start() != cursor:
                return None
            cursor = match.end()
            segments.append((int(match.group(1)), match.group(2).lower()))
        if cursor != len(token):
            return None
    if not segments:
        return None
    if len(segments) > 1 and any(not unit for _, unit in segments):
        return None

    total = 0
    for number, unit in segments:
        if number == 0:
            return None
        total += number * _UNIT_SECONDS[unit or "s"]
    return timedelta(seconds=total)
