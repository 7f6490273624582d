"""
Import and export of andOTP backups.

Plain backups are a JSON list of entries. Encrypted backups (the format used
since andOTP 0.6.3) are laid out as::

    iterations   4   u32 big-endian, PBKDF2 rounds
    salt        12
    iv          12
    ciphertext   n   AES-256-GCM
    tag         16

The key is PBKDF2-HMAC-SHA1(password, salt, iterations, 32 bytes).
"""

import hashlib
import json
import logging
import os
import secrets
import struct
from typing import Iterable, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from core.account import Account, Algorithm, Hotp, Totp
from core.crypto import wipe
from core.errors import ImportCorrupt, PasswordRequired, UnsupportedFormat, WrongPassword
from core.utils import decode_secret, encode_secret
from providers.common import ImportBundle

logger = logging.getLogger(__name__)

PROVIDER = "andotp"

ITERATIONS_SIZE = 4
SALT_SIZE = 12
IV_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32
HEADER_SIZE = ITERATIONS_SIZE + SALT_SIZE + IV_SIZE

# andOTP picks a random count between 140000 and 160000; accept anything plausible
_MIN_ITERATIONS = 1
_MAX_ITERATIONS = 5_000_000

# Range andOTP itself draws from when writing a backup
EXPORT_MIN_ITERATIONS = 140_000
EXPORT_MAX_ITERATIONS = 160_000


def decode(data: bytes, passphrase: Optional[str] = None) -> ImportBundle:
    """
    Decode an andOTP backup, plain or encrypted.

    Raises:
        UnsupportedFormat: Neither a JSON list nor a plausible encrypted backup.
        PasswordRequired:  Encrypted backup and no passphrase.
        WrongPassword:     The tag does not verify under the derived key.
        ImportCorrupt:     Decrypted content is not an andOTP entry list.
    """
    if _looks_plain(data):
        return _read_entries(_parse_json(data, UnsupportedFormat))
    iterations = _check_header(data)
    if passphrase is None:
        raise PasswordRequired(PROVIDER, "backup is encrypted, a password is required")
    return _read_entries(_parse_json(_decrypt(data, iterations, passphrase), ImportCorrupt))


def _looks_plain(data: bytes) -> bool:
    return data.lstrip().startswith(b"[")


def _parse_json(data: bytes, error: type) -> list:
    try:
        entries = json.loads(data.decode("utf-8-sig"))
    except (UnicodeDecodeError, ValueError):
        raise error(PROVIDER, "content is not valid JSON") from None
    if not isinstance(entries, list):
        raise error(PROVIDER, "expected a list of entries")
    return entries


def _check_header(data: bytes) -> int:
    """Return the PBKDF2 iteration count of a plausible encrypted backup."""
    if len(data) < HEADER_SIZE + TAG_SIZE:
        raise UnsupportedFormat(PROVIDER, "file is too short to be an encrypted backup")
    (iterations,) = struct.unpack_from(">I", data, 0)
    if not _MIN_ITERATIONS <= iterations <= _MAX_ITERATIONS:
        raise UnsupportedFormat(PROVIDER, f"implausible PBKDF2 iteration count {iterations}")
    return iterations


def _decrypt(data: bytes, iterations: int, passphrase: str) -> bytes:
    salt = data[ITERATIONS_SIZE:ITERATIONS_SIZE + SALT_SIZE]
    iv = data[ITERATIONS_SIZE + SALT_SIZE:HEADER_SIZE]
    ciphertext = data[HEADER_SIZE:]

    logger.debug("Deriving andOTP key with %d PBKDF2 rounds", iterations)
    password = bytearray(passphrase.encode("utf-8"))
    key = bytearray(hashlib.pbkdf2_hmac("sha1", bytes(password), salt, iterations, KEY_SIZE))
    wipe(password)
    try:
        return AESGCM(bytes(key)).decrypt(iv, ciphertext, None)
    except InvalidTag:
        raise WrongPassword(PROVIDER, "wrong password or damaged backup") from None
    finally:
        wipe(key)


def _read_entries(entries: list) -> ImportBundle:
    bundle = ImportBundle(PROVIDER)
    for index, entry in enumerate(entries):
        name = ""
        if isinstance(entry, dict):
            name = str(entry.get("label") or "")
        try:
            bundle.add(_entry_to_account(entry))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            bundle.skip(index, name, exc)
    return bundle


def _entry_to_account(entry: dict) -> Account:
    otp_type = str(entry.get("type", "TOTP")).upper()
    if otp_type == "TOTP":
        kind = Totp(period=int(entry.get("period", 30)))
    elif otp_type == "HOTP":
        kind = Hotp(counter=int(entry.get("counter", 0)))
    else:
        raise ValueError(f"unsupported OTP type '{otp_type}'")

    issuer = str(entry.get("issuer") or "")
    label = str(entry.get("label") or "")
    # Older backups keep "Issuer:Label" in the label only
    if not issuer and ":" in label:
        issuer, label = (part.strip() for part in label.split(":", 1))

    return Account(
        label=label,
        issuer=issuer,
        secret=decode_secret(entry["secret"]),
        algorithm=Algorithm.parse(entry.get("algorithm", "SHA1")),
        digits=int(entry.get("digits", 6)),
        kind=kind,
        tags=[str(t) for t in entry.get("tags") or []],
    )


# ── Export ────────────────────────────────────────────────────────────────────

def encode(accounts: Iterable[Account], passphrase: Optional[str] = None) -> bytes:
    """
    Write ``accounts`` as an andOTP backup.

    Without a passphrase the result is the plain JSON list andOTP reads;
    with one it is the encrypted layout described in the module docstring.
    """
    entries = [_account_to_entry(account) for account in accounts]
    plaintext = bytearray(json.dumps(entries).encode("utf-8"))
    if passphrase is None:
        return bytes(plaintext)
    try:
        return _encrypt(plaintext, passphrase)
    finally:
        wipe(plaintext)


def _account_to_entry(account: Account) -> dict:
    entry = {
        "secret": encode_secret(account.secret),
        "issuer": account.issuer,
        "label": account.label,
        "digits": account.digits,
        "type": "HOTP" if isinstance(account.kind, Hotp) else "TOTP",
        "algorithm": account.algorithm.value,
        "tags": list(account.tags),
    }
    if isinstance(account.kind, Hotp):
        entry["counter"] = account.kind.counter
    else:
        entry["period"] = account.kind.period
    return entry


def _encrypt(plaintext: bytearray, passphrase: str) -> bytes:
    iterations = EXPORT_MIN_ITERATIONS + secrets.randbelow(
        EXPORT_MAX_ITERATIONS - EXPORT_MIN_ITERATIONS + 1
    )
    salt = os.urandom(SALT_SIZE)
    iv = os.urandom(IV_SIZE)

    password = bytearray(passphrase.encode("utf-8"))
    key = bytearray(hashlib.pbkdf2_hmac("sha1", bytes(password), salt, iterations, KEY_SIZE))
    wipe(password)
    try:
        sealed = AESGCM(bytes(key)).encrypt(iv, bytes(plaintext), None)
    finally:
        wipe(key)
    return struct.pack(">I", iterations) + salt + iv + sealed
