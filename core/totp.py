"""
TOTP (Time-based One-Time Password) helpers following RFC 6238.

Times are always Unix seconds in UTC; no local-timezone adjustment is made.
Code generation itself goes through :func:`core.hotp.generate_hotp` with the
step number as counter.
"""

import time
from typing import Optional


def time_counter(timestamp: float, period: int) -> int:
    """Return the RFC 6238 step number ``floor(timestamp / period)``."""
    return int(timestamp // period)


def remaining_seconds(period: int = 30, timestamp: Optional[float] = None) -> int:
    """Return seconds until the current TOTP window expires, in ``[1, period]``."""
    t = timestamp if timestamp is not None else time.time()
    return period - (int(t) % period)
