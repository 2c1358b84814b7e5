"""Human-friendly durations (``"90"``, ``"30s"``, ``"5m"``, ``"2h"``)."""

from __future__ import annotations

__all__ = ["parse_duration"]

_UNITS = {"s": 1, "m": 60, "h": 3600}


def parse_duration(text: str) -> int:
    """Convert a duration to seconds. A bare number is seconds.

    Raises:
        ValueError: The text is empty, negative or has an unknown unit.
    """
    s = text.strip().lower()
    if not s:
        raise ValueError("empty duration")

    multiplier = 1
    if s[-1] in _UNITS:
        multiplier = _UNITS[s[-1]]
        s = s[:-1].strip()

    if not s.isdigit():
        raise ValueError(f"invalid duration: {text!r} (expected e.g. 90, 30s, 5m, 2h)")
    return int(s) * multiplier
