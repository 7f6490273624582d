"""
On-disk container for the encrypted account store.

Layout (format version 1, integers little-endian)::

    magic        4   b"OTPK"
    version      2   u16
    time_cost    4   u32   Argon2id iterations
    memory_cost  4   u32   Argon2id memory in KiB
    parallelism  1   u8    Argon2id lanes
    salt        16
    ----------------- everything above is the header, bound as GCM AAD
    nonce       12
    ciphertext   n
    tag         16

The header is authenticated but not encrypted: salts and cost parameters are
not secret, and binding them means any edit to them fails authentication.
"""

import struct
from dataclasses import dataclass

from core.crypto import NONCE_SIZE, SALT_SIZE, TAG_SIZE, KdfParams
from core.errors import Corrupt, UnsupportedVersion

MAGIC = b"OTPK"
FORMAT_VERSION = 1
SUPPORTED_VERSIONS = (FORMAT_VERSION,)

_PREFIX = struct.Struct("<4sH")
_KDF = struct.Struct("<IIB")
HEADER_SIZE = _PREFIX.size + _KDF.size + SALT_SIZE
MIN_SIZE = HEADER_SIZE + NONCE_SIZE + TAG_SIZE


@dataclass(frozen=True)
class Envelope:
    """Parsed store container. ``sealed`` is nonce + ciphertext + tag."""

    kdf: KdfParams
    salt: bytes
    sealed: bytes = b""
    version: int = FORMAT_VERSION

    @property
    def header(self) -> bytes:
        """Serialized header; passed to AES-GCM as associated data."""
        return (
            _PREFIX.pack(MAGIC, self.version)
            + _KDF.pack(self.kdf.time_cost, self.kdf.memory_cost, self.kdf.parallelism)
            + self.salt
        )

    def to_bytes(self) -> bytes:
        return self.header + self.sealed

    @classmethod
    def from_bytes(cls, data: bytes) -> "Envelope":
        """
        Parse a container without decrypting it.

        Raises:
            Corrupt:            Bad magic, truncated data, or insane KDF params.
            UnsupportedVersion: Unknown format version tag.
        """
        if len(data) < _PREFIX.size:
            raise Corrupt("Store file is truncated.")
        magic, version = _PREFIX.unpack_from(data, 0)
        if magic != MAGIC:
            raise Corrupt("Not an otpkeep store.")
        if version not in SUPPORTED_VERSIONS:
            raise UnsupportedVersion(version)
        if len(data) < MIN_SIZE:
            raise Corrupt("Store file is truncated.")

        time_cost, memory_cost, parallelism = _KDF.unpack_from(data, _PREFIX.size)
        kdf = KdfParams(time_cost, memory_cost, parallelism)
        if not kdf.is_sane():
            raise Corrupt("Store header carries out-of-range KDF parameters.")

        salt_start = _PREFIX.size + _KDF.size
        return cls(
            kdf=kdf,
            salt=bytes(data[salt_start:HEADER_SIZE]),
            sealed=bytes(data[HEADER_SIZE:]),
            version=version,
        )
