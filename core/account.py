"""
Account model for otpkeep.

An :class:`Account` is one OTP credential: the raw secret plus everything
needed to turn it into codes. Accounts are validated on construction, so the
generation engine never has to deal with a bad digit count or algorithm.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Union

from core.crypto import wipe
from core.errors import InvalidConfiguration, UnsupportedOperation

VALID_DIGITS = (6, 8)

# HOTP counters are packed as an unsigned 64-bit big-endian integer
MAX_COUNTER = 2**64 - 1


class Algorithm(str, Enum):
    """Supported HMAC algorithms."""

    SHA1 = "SHA1"
    SHA256 = "SHA256"
    SHA512 = "SHA512"

    @property
    def hash_name(self) -> str:
        """Name understood by :mod:`hashlib` / :mod:`hmac`."""
        return self.value.lower()

    @classmethod
    def parse(cls, name: str) -> "Algorithm":
        """
        Parse a provider-style algorithm name (``sha1``, ``SHA-256``, ...).

        Raises:
            InvalidConfiguration: For anything other than SHA1/SHA256/SHA512.
        """
        normalised = str(name).strip().upper().replace("-", "")
        try:
            return cls(normalised)
        except ValueError:
            raise InvalidConfiguration(
                f"Unsupported algorithm '{name}'. Supported: SHA1, SHA256, SHA512."
            ) from None


@dataclass(frozen=True)
class Totp:
    """Time based variant; a code is valid for ``period`` seconds."""

    period: int = 30


@dataclass
class Hotp:
    """Counter based variant. Only :func:`core.engine.advance_counter` moves ``counter``."""

    counter: int = 0


OtpKind = Union[Totp, Hotp]


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Account:
    """Represents a single TOTP/HOTP account."""

    label: str
    secret: bytearray = field(repr=False)
    issuer: str = ""
    algorithm: Algorithm = Algorithm.SHA1
    digits: int = 6
    kind: OtpKind = field(default_factory=Totp)
    tags: List[str] = field(default_factory=list)
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if not isinstance(self.secret, (bytes, bytearray)):
            raise InvalidConfiguration("Secret must be raw bytes.")
        if not self.secret:
            raise InvalidConfiguration("Secret must not be empty.")
        self.secret = bytearray(self.secret)

        if not isinstance(self.algorithm, Algorithm):
            self.algorithm = Algorithm.parse(self.algorithm)

        if isinstance(self.digits, bool) or self.digits not in VALID_DIGITS:
            raise InvalidConfiguration("Digits must be 6 or 8.")

        if isinstance(self.kind, Totp):
            if not isinstance(self.kind.period, int) or self.kind.period <= 0:
                raise InvalidConfiguration("TOTP period must be a positive number of seconds.")
        elif isinstance(self.kind, Hotp):
            counter = self.kind.counter
            if isinstance(counter, bool) or not isinstance(counter, int) or not 0 <= counter <= MAX_COUNTER:
                raise InvalidConfiguration("HOTP counter must be an integer between 0 and 2**64 - 1.")
        else:
            raise InvalidConfiguration(f"Unknown OTP kind {type(self.kind).__name__}.")

        if not self.id:
            raise InvalidConfiguration("Account id must not be empty.")
        if self.created_at.tzinfo is None:
            self.created_at = self.created_at.replace(tzinfo=timezone.utc)
        self.tags = [str(t) for t in self.tags]

    # ── Convenience ──────────────────────────────────────────────────────

    @property
    def is_totp(self) -> bool:
        return isinstance(self.kind, Totp)

    @property
    def is_hotp(self) -> bool:
        return isinstance(self.kind, Hotp)

    @property
    def period(self) -> int:
        """TOTP period in seconds."""
        if not isinstance(self.kind, Totp):
            raise UnsupportedOperation(f"Account {self.id} is not time based.")
        return self.kind.period

    @property
    def display_name(self) -> str:
        return f"{self.issuer}:{self.label}" if self.issuer else self.label

    def wipe(self) -> None:
        """Overwrite the secret with zeros (best-effort)."""
        wipe(self.secret)
