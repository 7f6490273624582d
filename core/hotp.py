"""
HOTP (HMAC-based One-Time Password) implementation following RFC 4226.
"""

import hmac
import struct
from typing import Union

from core.account import Algorithm

SecretBytes = Union[bytes, bytearray]


def truncate(digest: bytes, digits: int) -> int:
    """
    Dynamic truncation (RFC 4226 §5.3).

    Args:
        digest: Full HMAC output.
        digits: Number of decimal digits to keep.

    Returns:
        The 31-bit truncated value reduced modulo ``10**digits``.
    """
    offset = digest[-1] & 0x0F
    code = (
        (digest[offset] & 0x7F) << 24
        | (digest[offset + 1] & 0xFF) << 16
        | (digest[offset + 2] & 0xFF) << 8
        | (digest[offset + 3] & 0xFF)
    )
    return code % (10**digits)


def generate_hotp(
    secret_bytes: SecretBytes,
    counter: int,
    digits: int = 6,
    algorithm: Algorithm = Algorithm.SHA1,
) -> str:
    """
    Generate an HOTP code.

    Args:
        secret_bytes: Raw decoded secret bytes. Short secrets are used as-is.
        counter:      Synchronisation counter value.
        digits:       Number of OTP digits (6 or 8).
        algorithm:    HMAC algorithm.

    Returns:
        Zero-padded OTP string.
    """
    msg = struct.pack(">Q", counter)
    digest = hmac.new(secret_bytes, msg, algorithm.hash_name).digest()
    return str(truncate(digest, digits)).zfill(digits)

