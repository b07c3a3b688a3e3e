"""Monotonic elapsed-time measurement."""
from __future__ import annotations

import time
from typing import Callable, Optional

_NANOS_PER_MILLI = 1_000_000

_now_ns = time.perf_counter_ns


class TimerHandle:
    """A running timer; :meth:`stop` reads it once."""

    __slots__ = ("_start_ns", "_elapsed_millis")

    def __init__(self, start_ns: int) -> None:
        self._start_ns = start_ns
        self._elapsed_millis: Optional[int] = None

    def stop(self) -> int:
        """Return whole milliseconds elapsed since the timer started.

        The first measurement is cached, so repeated calls return the same
        value instead of measuring again.
        """

        if self._elapsed_millis is None:
            end_ns = _now_ns()
            self._elapsed_millis = max(0, (end_ns - self._start_ns) // _NANOS_PER_MILLI)
        return self._elapsed_millis


def start() -> TimerHandle:
    """Start a new timer."""

    return TimerHandle(_now_ns())


def milli_second_timer() -> Callable[[], int]:
    """Start a timer and return a callable that stops it.

    Example::

        stop = milli_second_timer()
        response = handler(request)
        elapsed = stop()
    """

    return start().stop
