"""
Time Utilities

Session bookkeeping uses integer epoch milliseconds.
"""

from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Return the current wall-clock time as epoch milliseconds."""
    return time.time_ns() // 1_000_000


def seconds_to_ms(seconds: float) -> int:
    return int(seconds * 1000)
