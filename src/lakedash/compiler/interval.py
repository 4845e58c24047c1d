"""Interval formatting for engine interval literals.

the engine takes intervals as words ("2 HOURS 30 SECONDS"), not as iso
durations, so the panel's sampling interval has to be spelled out.
"""

from datetime import timedelta
from typing import NamedTuple

_MS_PER_SECOND = 1000
_MS_PER_MINUTE = 60 * _MS_PER_SECOND
_MS_PER_HOUR = 60 * _MS_PER_MINUTE


class IntervalParts(NamedTuple):
    hours: int
    minutes: int
    seconds: int
    milliseconds: int


def decompose_interval(duration: timedelta) -> IntervalParts:
    """Split a duration into hours/minutes/seconds/milliseconds.

    each unit comes out of the remainder left by the bigger units, so 90s is
    1 minute + 30 seconds and never 1 minute + 90 seconds. sub-millisecond
    precision is truncated. negative durations decompose to all zeros.
    """
    total_ms = duration // timedelta(milliseconds=1)
    if total_ms <= 0:
        return IntervalParts(0, 0, 0, 0)

    hours, rest = divmod(total_ms, _MS_PER_HOUR)
    minutes, rest = divmod(rest, _MS_PER_MINUTE)
    seconds, milliseconds = divmod(rest, _MS_PER_SECOND)
    return IntervalParts(hours, minutes, seconds, milliseconds)


def format_interval(duration: timedelta) -> str:
    """Format a duration as e.g. "1 HOURS 1 MINUTES 1 SECONDS".

    zero-sized units are left out entirely, a zero duration gives "".
    """
    parts = decompose_interval(duration)
    words = ("HOURS", "MINUTES", "SECONDS", "MILLISECONDS")
    return " ".join(f"{amount} {word}" for amount, word in zip(parts, words) if amount > 0)
