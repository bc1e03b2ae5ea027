"""
Filtering of business-hour increments against an availability window.

Increments are times of day without a date. A window is a concrete pair of
datetimes. The filter anchors each increment on the calendar date of the
window start and keeps it when it falls inside the half-open window.
"""

from datetime import time
from typing import Iterable, List, Sequence

from pendulum import DateTime


def filter_increments(
    all_increments: Sequence[time],
    window_start: DateTime,
    window_end: DateTime,
) -> List[time]:
    """
    Return the increments falling inside [window_start, window_end).

    Example:
    Window: 16:00 - 22:00
    Increments: [06:00, 07:00, ..., 21:00]
    Result: [16:00, 17:00, 18:00, 19:00, 20:00, 21:00]

    Args:
        all_increments: Times of day, sorted ascending
        window_start: Inclusive lower bound
        window_end: Exclusive upper bound

    Returns:
        Sub-sequence of ``all_increments`` in original order. Empty when the
        window is narrower than one increment step or the input is empty.
    """
    if window_end <= window_start:
        return []

    active: List[time] = []

    for increment in all_increments:
        candidate = window_start.set(
            hour=increment.hour,
            minute=increment.minute,
            second=increment.second,
            microsecond=increment.microsecond,
        )
        if window_start <= candidate < window_end:
            active.append(increment)

    return active


def format_increments(increments: Iterable[time]) -> List[str]:
    """Render increments as HH:MM:SS strings."""
    return [increment.strftime("%H:%M:%S") for increment in increments]
