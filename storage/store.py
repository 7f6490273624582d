"""
Single-file encrypted account store.

A :class:`Store` is an open session: it owns the decrypted accounts and the
:class:`~storage.encryption.MasterKey` that sealed them. The whole account
list is re-encrypted and written on every :meth:`Store.save`; there are no
partial updates.

Payload (before compression and encryption)
-------------------------------------------
::

    {
      "version": 1,
      "accounts": [
        {"id", "label", "issuer", "secret" (base32), "algorithm", "digits",
         "type" ("totp"|"hotp"), "period" | "counter", "tags", "created_at"}
      ]
    }

The JSON is zlib-compressed, sealed with AES-256-GCM and framed by
:mod:`storage.container`.
"""

import contextlib
import json
import logging
import os
import tempfile
import threading
import zlib
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from core import engine
from core.account import Account, Algorithm, Hotp, Totp
from core.crypto import DEFAULT_KDF_PARAMS, KdfParams, generate_salt
from core.errors import (
    AccountNotFound,
    Corrupt,
    DuplicateId,
    OtpKeepError,
    StoreClosed,
)
from core.utils import decode_secret, encode_secret
from storage.container import Envelope
from storage.encryption import MasterKey

logger = logging.getLogger(__name__)

PAYLOAD_VERSION = 1

PathLike = Union[str, os.PathLike]


# ── Serialization ─────────────────────────────────────────────────────────────

def _account_to_dict(account: Account) -> dict:
    data = {
        "id": account.id,
        "label": account.label,
        "issuer": account.issuer,
        "secret": encode_secret(account.secret),
        "algorithm": account.algorithm.value,
        "digits": account.digits,
        "tags": list(account.tags),
        "created_at": account.created_at.isoformat(),
    }
    if isinstance(account.kind, Hotp):
        data["type"] = "hotp"
        data["counter"] = account.kind.counter
    else:
        data["type"] = "totp"
        data["period"] = account.kind.period
    return data


def _dict_to_account(data: dict) -> Account:
    otp_type = data["type"]
    if otp_type == "hotp":
        kind: Union[Totp, Hotp] = Hotp(counter=int(data["counter"]))
    elif otp_type == "totp":
        kind = Totp(period=int(data["period"]))
    else:
        raise ValueError(f"unknown account type {otp_type!r}")
    return Account(
        id=data["id"],
        label=data["label"],
        issuer=data.get("issuer", ""),
        secret=decode_secret(data["secret"]),
        algorithm=Algorithm(data["algorithm"]),
        digits=int(data["digits"]),
        kind=kind,
        tags=list(data.get("tags", [])),
        created_at=datetime.fromisoformat(data["created_at"]),
    )


def _encode_payload(accounts: Iterable[Account]) -> bytes:
    doc = {
        "version": PAYLOAD_VERSION,
        "accounts": [_account_to_dict(a) for a in accounts],
    }
    return zlib.compress(json.dumps(doc, separators=(",", ":")).encode("utf-8"), 9)


def _decode_payload(payload: bytes) -> List[Account]:
    """
    Decode an authenticated payload.

    Raises:
        Corrupt: If the payload authenticated but cannot be decoded. This can
            only happen with a buggy writer, never with a wrong passphrase.
            Secrets decoded before the failure are wiped.
    """
    accounts: List[Account] = []
    try:
        doc = json.loads(zlib.decompress(payload).decode("utf-8"))
        if doc.get("version") != PAYLOAD_VERSION:
            raise Corrupt(f"Unsupported payload version {doc.get('version')!r}.")
        seen = set()
        for item in doc["accounts"]:
            account = _dict_to_account(item)
            accounts.append(account)
            if account.id in seen:
                raise Corrupt(f"Store payload repeats account id {account.id}.")
            seen.add(account.id)
    except Corrupt:
        _wipe_all(accounts)
        raise
    except (zlib.error, UnicodeDecodeError, ValueError, KeyError, TypeError,
            AttributeError, OtpKeepError) as exc:
        _wipe_all(accounts)
        raise Corrupt(f"Store payload is malformed: {type(exc).__name__}") from None
    return accounts


def _wipe_all(accounts: Iterable[Account]) -> None:
    for account in accounts:
        account.wipe()


# ── Atomic file replacement ──────────────────────────────────────────────────

def _fsync_dir(path: Path) -> None:
    """Best-effort fsync for directory entries."""
    flags = getattr(os, "O_DIRECTORY", None)
    if flags is None:
        return
    try:
        dir_fd = os.open(str(path), flags)
    except OSError:
        return
    try:
        os.fsync(dir_fd)
    except OSError:
        pass
    finally:
        os.close(dir_fd)


def atomic_write(path: Path, data: bytes) -> None:
    """
    Write ``data`` to ``path`` so that readers see either the old or the new file.

    The data goes to a temporary file in the same directory, is flushed and
    fsynced, and only then renamed over ``path``. On failure the temporary
    file is removed and ``path`` is untouched.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb", closefd=True) as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            tmp_path.unlink()
        raise
    _fsync_dir(path.parent)


# ── Store ─────────────────────────────────────────────────────────────────────

class Store:
    """
    An open, decrypted account store.

    Lifecycle: ``Store.create`` / ``Store.open`` -> (mutate, ``save``)* ->
    ``close``. A failed ``open`` never yields a Store. Closing erases the
    master key and every account secret; the store cannot be reopened from
    the same object.
    """

    def __init__(
        self,
        path: PathLike,
        key: MasterKey,
        salt: bytes,
        kdf_params: KdfParams,
        accounts: Iterable[Account] = (),
    ) -> None:
        self._path = Path(path)
        self._key: Optional[MasterKey] = key
        self._salt = salt
        self._kdf_params = kdf_params
        self._accounts: List[Account] = []
        self._index: Dict[str, Account] = {}
        self._lock = threading.Lock()
        for account in accounts:
            self.insert(account)

    # ── Lifecycle ─────────────────────────────────────────────────────────

    @classmethod
    def create(
        cls,
        path: PathLike,
        passphrase: str,
        kdf_params: Optional[KdfParams] = None,
    ) -> "Store":
        """Start a new, empty store. Nothing is written until :meth:`save`."""
        params = kdf_params or DEFAULT_KDF_PARAMS
        salt = generate_salt()
        key = MasterKey.derive(passphrase, salt, params)
        logger.info("Created new store for %s", path)
        return cls(path, key, salt, params)

    @classmethod
    def open(cls, path: PathLike, passphrase: str) -> "Store":
        """
        Decrypt and load the store at ``path``.

        Raises:
            AuthenticationFailed: Wrong passphrase or tampered file.
            Corrupt:              Malformed container (incl. UnsupportedVersion).
            OSError:              The file could not be read.
        """
        path = Path(path)
        envelope = Envelope.from_bytes(path.read_bytes())
        key = MasterKey.derive(passphrase, envelope.salt, envelope.kdf)
        try:
            accounts = _decode_payload(key.open(envelope.sealed, envelope.header))
            store = cls(path, key, envelope.salt, envelope.kdf, accounts)
        except BaseException:
            key.wipe()
            raise
        logger.info("Opened store %s (%d accounts)", path, len(accounts))
        return store

    @staticmethod
    def exists(path: PathLike) -> bool:
        return Path(path).is_file()

    def close(self) -> None:
        """Erase the master key and all secrets held by this session."""
        if self._key is None:
            return
        self._key.wipe()
        self._key = None
        for account in self._accounts:
            account.wipe()
        self._accounts.clear()
        self._index.clear()
        logger.debug("Store %s closed", self._path)

    @property
    def is_open(self) -> bool:
        return self._key is not None

    def __enter__(self) -> "Store":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ── Persistence ───────────────────────────────────────────────────────

    def save(
        self,
        path: Optional[PathLike] = None,
        passphrase: Optional[str] = None,
        kdf_params: Optional[KdfParams] = None,
    ) -> Path:
        """
        Encrypt all accounts and atomically replace the store file.

        Args:
            path:       Target file (defaults to the path the store was
                        opened from or created for).
            passphrase: If given, the master key is re-derived from it with
                        the store's salt (e.g. to change the passphrase).
            kdf_params: New cost parameters; requires ``passphrase``. They are
                        raised to at least the current ones, never lowered.

        Returns:
            The path written.
        """
        key = self._require_key()
        if kdf_params is not None and passphrase is None:
            raise ValueError("Changing KDF parameters requires the passphrase.")

        params = self._kdf_params
        new_key: Optional[MasterKey] = None
        if passphrase is not None:
            if kdf_params is not None:
                params = kdf_params.at_least(self._kdf_params)
            new_key = MasterKey.derive(passphrase, self._salt, params)

        # The session keeps its old key until the new file is in place
        target = Path(path) if path is not None else self._path
        try:
            header = Envelope(kdf=params, salt=self._salt).header
            sealed = (new_key or key).seal(_encode_payload(self._accounts), header)
            atomic_write(target, Envelope(params, self._salt, sealed).to_bytes())
        except BaseException:
            if new_key is not None:
                new_key.wipe()
            raise

        if new_key is not None:
            key.wipe()
            self._key = new_key
            self._kdf_params = params
        self._path = target
        logger.info("Saved %d accounts to %s", len(self._accounts), target)
        return target

    # ── Accounts ──────────────────────────────────────────────────────────

    @property
    def accounts(self) -> Tuple[Account, ...]:
        """Read view of the accounts, in insertion order."""
        self._require_key()
        return tuple(self._accounts)

    def __len__(self) -> int:
        return len(self._accounts)

    def get(self, account_id: str) -> Account:
        self._require_key()
        try:
            return self._index[account_id]
        except KeyError:
            raise AccountNotFound(account_id) from None

    def insert(self, account: Account) -> None:
        """
        Append ``account``; the store takes ownership of it.

        Raises:
            DuplicateId: If an account with the same id is already present.
        """
        self._require_key()
        if account.id in self._index:
            raise DuplicateId(account.id)
        self._accounts.append(account)
        self._index[account.id] = account

    def remove(self, account_id: str) -> Account:
        """Remove and return an account (its secret is left to the caller)."""
        account = self.get(account_id)
        self._accounts.remove(account)
        del self._index[account_id]
        return account

    def advance_counter(self, account_id: str) -> int:
        """Advance an HOTP counter by one. Call :meth:`save` before using the code."""
        account = self.get(account_id)
        with self._lock:
            return engine.advance_counter(account)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def kdf_params(self) -> KdfParams:
        return self._kdf_params

    # ── Internals ─────────────────────────────────────────────────────────

    def _require_key(self) -> MasterKey:
        if self._key is None:
            raise StoreClosed()
        return self._key

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<Store {self._path} {state}, {len(self._accounts)} accounts>"
