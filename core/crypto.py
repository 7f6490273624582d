"""
Cryptographic utilities for otpkeep.

Key derivation  : Argon2id (memory-hard)
Encryption      : AES-256-GCM (authenticated encryption)
"""

import secrets
from dataclasses import dataclass
from typing import Optional, Union

from argon2.low_level import Type, hash_secret_raw
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

# ── Constants ────────────────────────────────────────────────────────────────

SALT_SIZE = 16          # 128-bit salt (Argon2 recommendation)
NONCE_SIZE = 12         # 96-bit nonce (GCM recommendation)
TAG_SIZE = 16           # GCM authentication tag
KEY_SIZE = 32           # 256-bit AES key

ARGON2_TIME_COST = 3
ARGON2_MEMORY_COST = 64 * 1024   # KiB
ARGON2_PARALLELISM = 1

# Accepted ranges when reading parameters back from disk
_MAX_TIME_COST = 64
_MAX_MEMORY_COST = 4 * 1024 * 1024   # 4 GiB in KiB
_MAX_PARALLELISM = 64

Buffer = Union[bytes, bytearray]


@dataclass(frozen=True)
class KdfParams:
    """Argon2id cost parameters; persisted next to every store."""

    time_cost: int = ARGON2_TIME_COST
    memory_cost: int = ARGON2_MEMORY_COST
    parallelism: int = ARGON2_PARALLELISM

    def is_sane(self) -> bool:
        """True if the parameters are within the range this build accepts."""
        return (
            1 <= self.time_cost <= _MAX_TIME_COST
            and 1 <= self.parallelism <= _MAX_PARALLELISM
            and 8 * self.parallelism <= self.memory_cost <= _MAX_MEMORY_COST
        )

    def at_least(self, other: "KdfParams") -> "KdfParams":
        """Return parameters that are no weaker than ``other`` in any dimension."""
        return KdfParams(
            time_cost=max(self.time_cost, other.time_cost),
            memory_cost=max(self.memory_cost, other.memory_cost),
            parallelism=max(self.parallelism, other.parallelism),
        )


DEFAULT_KDF_PARAMS = KdfParams()


# ── Key derivation ────────────────────────────────────────────────────────────

def derive_key(
    password: str,
    salt: bytes,
    params: KdfParams = DEFAULT_KDF_PARAMS,
) -> bytearray:
    """
    Derive a 256-bit key from ``password`` using Argon2id.

    Args:
        password: Master passphrase (unicode string).
        salt:     Random salt, stored unencrypted next to the ciphertext.
        params:   Argon2 cost parameters.

    Returns:
        32-byte derived key as a wipeable ``bytearray``.

    Raises:
        ValueError: If the parameters are out of range.
    """
    if not params.is_sane():
        raise ValueError(f"Refusing out-of-range KDF parameters {params}.")
    secret = bytearray(password.encode("utf-8"))
    try:
        raw = hash_secret_raw(
            secret=bytes(secret),
            salt=bytes(salt),
            time_cost=params.time_cost,
            memory_cost=params.memory_cost,
            parallelism=params.parallelism,
            hash_len=KEY_SIZE,
            type=Type.ID,
        )
    finally:
        wipe(secret)
    return bytearray(raw)


def generate_salt() -> bytes:
    """Return a cryptographically random salt."""
    return secrets.token_bytes(SALT_SIZE)


# ── AES-256-GCM encryption / decryption ──────────────────────────────────────

def encrypt(
    plaintext: bytes,
    key: Buffer,
    associated_data: Optional[bytes] = None,
) -> bytes:
    """
    Encrypt *plaintext* with AES-256-GCM under a fresh random nonce.

    Layout of returned ciphertext blob::

        [ nonce (12 bytes) | ciphertext+tag ]

    The GCM tag (16 bytes) is appended by the library automatically.

    Args:
        plaintext:       Data to encrypt.
        key:             32-byte AES key.
        associated_data: Authenticated but unencrypted data (e.g. a header).

    Returns:
        Blob containing nonce + ciphertext + tag.

    Raises:
        ValueError: If key length is not 32 bytes.
    """
    if len(key) != KEY_SIZE:
        raise ValueError(f"Key must be {KEY_SIZE} bytes, got {len(key)}")
    nonce = secrets.token_bytes(NONCE_SIZE)
    aesgcm = AESGCM(bytes(key))
    ciphertext = aesgcm.encrypt(nonce, plaintext, associated_data)
    return nonce + ciphertext


def decrypt(
    blob: bytes,
    key: Buffer,
    associated_data: Optional[bytes] = None,
) -> bytes:
    """
    Decrypt a blob produced by :func:`encrypt`.

    Args:
        blob:            nonce + ciphertext + tag.
        key:             32-byte AES key.
        associated_data: Must match what was passed to :func:`encrypt`.

    Returns:
        Decrypted plaintext bytes.

    Raises:
        ValueError: If key length is not 32 bytes.
        cryptography.exceptions.InvalidTag: If authentication fails (wrong key,
            tampered data or a truncated blob).
    """
    if len(key) != KEY_SIZE:
        raise ValueError(f"Key must be {KEY_SIZE} bytes, got {len(key)}")
    nonce = blob[:NONCE_SIZE]
    ciphertext = blob[NONCE_SIZE:]
    aesgcm = AESGCM(bytes(key))
    return aesgcm.decrypt(nonce, ciphertext, associated_data)


# ── Memory hygiene ───────────────────────────────────────────────────────────

def wipe(buf: Optional[bytearray]) -> None:
    """Overwrite a mutable buffer with zeros in place (best-effort)."""
    if buf is None:
        return
    for i in range(len(buf)):
        buf[i] = 0
