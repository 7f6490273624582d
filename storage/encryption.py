"""
Storage-level encryption helpers.

Wraps :mod:`core.crypto` to hold the store's master key for the duration of
an open session. Keys are never written to disk through this module and are
overwritten as soon as the session ends.
"""

import logging
from typing import Optional

from cryptography.exceptions import InvalidTag

from core import crypto
from core.errors import AuthenticationFailed, StoreClosed

logger = logging.getLogger(__name__)


class MasterKey:
    """Seal / open the serialized store payload using AES-256-GCM."""

    def __init__(self, key: bytearray) -> None:
        """
        Args:
            key: 32-byte AES key derived with :func:`core.crypto.derive_key`.
                 The buffer is taken over and wiped by :meth:`wipe`.
        """
        if len(key) != crypto.KEY_SIZE:
            raise ValueError("Key must be 32 bytes.")
        self._key: Optional[bytearray] = key

    @classmethod
    def derive(
        cls,
        passphrase: str,
        salt: bytes,
        params: crypto.KdfParams = crypto.DEFAULT_KDF_PARAMS,
    ) -> "MasterKey":
        """Derive a master key from ``passphrase`` and the store's ``salt``."""
        logger.debug("Deriving master key (t=%d, m=%d KiB, p=%d)",
                     params.time_cost, params.memory_cost, params.parallelism)
        return cls(crypto.derive_key(passphrase, salt, params))

    # ── Public API ───────────────────────────────────────────────────────

    @property
    def wiped(self) -> bool:
        return self._key is None

    def seal(self, plaintext: bytes, associated_data: bytes) -> bytes:
        """
        Encrypt ``plaintext`` under a fresh nonce, binding ``associated_data``.

        Returns:
            nonce + ciphertext + tag.
        """
        return crypto.encrypt(plaintext, self._require(), associated_data)

    def open(self, blob: bytes, associated_data: bytes) -> bytes:
        """
        Decrypt a blob produced by :meth:`seal`.

        Raises:
            AuthenticationFailed: On integrity/auth failure (wrong key or
                tampered data; the two cannot be told apart).
        """
        try:
            return crypto.decrypt(blob, self._require(), associated_data)
        except InvalidTag:
            raise AuthenticationFailed() from None

    def wipe(self) -> None:
        """Overwrite the in-memory key with zeros (best-effort)."""
        if self._key is not None:
            crypto.wipe(self._key)
            self._key = None

    def _require(self) -> bytearray:
        if self._key is None:
            raise StoreClosed()
        return self._key

    def __enter__(self) -> "MasterKey":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.wipe()

    def __repr__(self) -> str:
        state = "wiped" if self._key is None else "loaded"
        return f"<MasterKey {state}>"
