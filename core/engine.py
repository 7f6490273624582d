"""
OTP generation engine.

Maps an :class:`~core.account.Account` plus a moment (Unix time for TOTP,
counter for HOTP) to a code. Generation never changes state; advancing an
HOTP counter is a separate, explicit call so that re-rendering a code for
display is always safe.
"""

import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from core.account import MAX_COUNTER, Account, Hotp, Totp
from core.errors import InvalidConfiguration, UnsupportedOperation
from core.hotp import generate_hotp
from core.totp import remaining_seconds, time_counter
from core.utils import format_otp

Moment = Union[int, float, datetime]


@dataclass(frozen=True)
class OtpCode:
    """A generated code, already zero-padded to ``digits`` characters."""

    code: str
    digits: int

    def __str__(self) -> str:
        return self.code

    def grouped(self) -> str:
        """Display form, e.g. ``"123 456"``."""
        return format_otp(self.code)


def to_unix_seconds(moment: Optional[Moment] = None) -> float:
    """
    Normalise a moment to UTC seconds since the epoch.

    Naive datetimes are read as UTC, never as local time.

    Raises:
        InvalidConfiguration: For moments before the epoch or not finite.
    """
    if moment is None:
        return time.time()
    if isinstance(moment, datetime):
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        seconds = moment.timestamp()
    else:
        seconds = float(moment)
    if not math.isfinite(seconds) or seconds < 0:
        raise InvalidConfiguration("Moment must be a finite time at or after the Unix epoch.")
    return seconds


def counter_for(account: Account, moment: Optional[Moment] = None) -> int:
    """
    Return the moving factor ``C`` for ``account``.

    For TOTP this is ``floor(moment / period)``. For HOTP it is the stored
    counter, unless an explicit integer ``moment`` is given.
    """
    if isinstance(account.kind, Totp):
        counter = time_counter(to_unix_seconds(moment), account.kind.period)
        if counter > MAX_COUNTER:
            raise InvalidConfiguration("Moment is too far in the future.")
        return counter
    if moment is None:
        return account.kind.counter
    if (
        isinstance(moment, datetime)
        or (isinstance(moment, float) and not moment.is_integer())
        or not 0 <= moment <= MAX_COUNTER
    ):
        raise UnsupportedOperation("HOTP moments must be integer counters between 0 and 2**64 - 1.")
    return int(moment)


def generate(account: Account, moment: Optional[Moment] = None) -> OtpCode:
    """
    Generate the code for ``account`` at ``moment``.

    Args:
        account: Validated account (read only; never mutated).
        moment:  Unix seconds or datetime for TOTP (default: now); optional
                 counter override for HOTP (default: stored counter).

    Returns:
        :class:`OtpCode` for the account's digit count.
    """
    code = generate_hotp(
        account.secret,
        counter_for(account, moment),
        account.digits,
        account.algorithm,
    )
    return OtpCode(code=code, digits=account.digits)


def remaining_validity(period_seconds: int, moment: Optional[Moment] = None) -> int:
    """Seconds until the TOTP window containing ``moment`` ends, in ``[1, period]``."""
    return remaining_seconds(period_seconds, to_unix_seconds(moment))


def advance_counter(account: Account) -> int:
    """
    Advance an HOTP counter by exactly one and return the new value.

    The caller must persist the account (save the store) before treating
    the previous code as consumed.

    Raises:
        UnsupportedOperation: If ``account`` is not counter based, or the
            counter is already at its 64-bit maximum.
    """
    if not isinstance(account.kind, Hotp):
        raise UnsupportedOperation(f"Account {account.id} is not counter based.")
    if account.kind.counter >= MAX_COUNTER:
        raise UnsupportedOperation(f"Account {account.id} has exhausted its HOTP counter.")
    account.kind.counter += 1
    return account.kind.counter
