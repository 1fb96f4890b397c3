"""Lenient parsing of human duration strings such as ``2h``, ``1h30m`` or ``90 minutes``."""

from __future__ import annotations

import re

_HOURS_RE = re.compile(r"(\d+)\s*h", re.IGNORECASE)
_MINUTES_RE = re.compile(r"(\d+)\s*m", re.IGNORECASE)


def parse_duration(text: str) -> int:
    """Return the total number of whole seconds described by ``text``.

    The first hour token and the first minute token are summed; either may be
    absent. Anything unrecognisable parses as 0 rather than raising.

    >>> parse_duration("1h30m")
    5400
    >>> parse_duration("2 hours")
    7200
    >>> parse_duration("soon")
    0
    """
    if not text:
        return 0
    total = 0
    hours = _HOURS_RE.search(text)
    if hours:
        total += int(hours.group(1)) * 3600
    minutes = _MINUTES_RE.search(text)
    if minutes:
        total += int(minutes.group(1)) * 60
    return total


def format_duration(seconds: float) -> str:
    """Compact rendering used in the banner and summary (``1h05m``, ``3m20s``, ``42s``)."""
    seconds = max(0, int(seconds))
    hours, rem = divmod(seconds, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}h{minutes:02d}m"
    if minutes:
        return f"{minutes}m{secs:02d}s"
    return f"{secs}s"
