"""
Import and export of Authenticator Pro backups.

Three layouts are recognised by their leading bytes:

``AUTHENTICATORPRO`` (current)::

    header 16 | salt 16 | iv 12 | AES-256-GCM ciphertext + tag
    key = Argon2id(password, salt, t=3, m=64 MiB, p=4)

``AuthenticatorPro`` (legacy)::

    header 16 | salt 20 | iv 16 | AES-256-CBC ciphertext (PKCS#7)
    key = PBKDF2-HMAC-SHA1(password, salt, 64000 rounds)

Anything starting with ``{`` is a plain JSON backup.
"""

import hashlib
import json
import logging
import os
import uuid
from typing import Dict, Iterable, List, Optional

from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from core.account import Account, Algorithm, Hotp, Totp
from core.crypto import wipe
from core.errors import ImportCorrupt, PasswordRequired, UnsupportedFormat, WrongPassword
from core.utils import decode_secret, encode_secret, normalize_secret
from providers.common import ImportBundle

logger = logging.getLogger(__name__)

PROVIDER = "authpro"

KEY_SIZE = 32

HEADER = b"AUTHENTICATORPRO"
SALT_SIZE = 16
IV_SIZE = 12
ARGON2_TIME_COST = 3
ARGON2_MEMORY_COST = 65536
ARGON2_PARALLELISM = 4

LEGACY_HEADER = b"AuthenticatorPro"
LEGACY_SALT_SIZE = 20
LEGACY_IV_SIZE = 16
LEGACY_ROUNDS = 64000

# Authenticator Pro type codes
TYPE_HOTP = 1
TYPE_TOTP = 2
TYPE_MOTP = 3
TYPE_STEAM = 4

_ALGORITHMS = {0: Algorithm.SHA1, 1: Algorithm.SHA256, 2: Algorithm.SHA512}
_TYPE_NAMES = {TYPE_MOTP: "mOTP", TYPE_STEAM: "Steam"}


def decode(data: bytes, passphrase: Optional[str] = None) -> ImportBundle:
    """
    Decode an Authenticator Pro backup.

    Raises:
        UnsupportedFormat: Unknown header and not a JSON object.
        PasswordRequired:  Encrypted backup and no passphrase.
        WrongPassword:     Decryption failed under the derived key.
        ImportCorrupt:     Decrypted content is not an Authenticator Pro backup.
    """
    if data.startswith(HEADER):
        plaintext = _decrypt_current(data, _require(passphrase))
    elif data.startswith(LEGACY_HEADER):
        plaintext = _decrypt_legacy(data, _require(passphrase))
    elif data.lstrip().startswith(b"{"):
        return _read_backup(_parse_json(data, UnsupportedFormat), UnsupportedFormat)
    else:
        raise UnsupportedFormat(PROVIDER, "unrecognised backup header")
    return _read_backup(_parse_json(plaintext, ImportCorrupt), ImportCorrupt)


def _require(passphrase: Optional[str]) -> str:
    if passphrase is None:
        raise PasswordRequired(PROVIDER, "backup is encrypted, a password is required")
    return passphrase


def _parse_json(data: bytes, error: type) -> dict:
    try:
        backup = json.loads(data.decode("utf-8-sig"))
    except (UnicodeDecodeError, ValueError):
        raise error(PROVIDER, "content is not valid JSON") from None
    if not isinstance(backup, dict):
        raise error(PROVIDER, "expected a backup object")
    return backup


# ── Decryption ────────────────────────────────────────────────────────────────

def _derive_current_key(passphrase: str, salt: bytes) -> bytearray:
    password = bytearray(passphrase.encode("utf-8"))
    try:
        return bytearray(hash_secret_raw(
            secret=bytes(password),
            salt=salt,
            time_cost=ARGON2_TIME_COST,
            memory_cost=ARGON2_MEMORY_COST,
            parallelism=ARGON2_PARALLELISM,
            hash_len=KEY_SIZE,
            type=Type.ID,
        ))
    finally:
        wipe(password)


def _decrypt_current(data: bytes, passphrase: str) -> bytes:
    offset = len(HEADER)
    if len(data) < offset + SALT_SIZE + IV_SIZE + 16:
        raise UnsupportedFormat(PROVIDER, "file is too short to be an encrypted backup")
    salt = data[offset:offset + SALT_SIZE]
    iv = data[offset + SALT_SIZE:offset + SALT_SIZE + IV_SIZE]
    ciphertext = data[offset + SALT_SIZE + IV_SIZE:]

    key = _derive_current_key(passphrase, salt)
    try:
        return AESGCM(bytes(key)).decrypt(iv, ciphertext, None)
    except InvalidTag:
        raise WrongPassword(PROVIDER, "wrong password or damaged backup") from None
    finally:
        wipe(key)


def _decrypt_legacy(data: bytes, passphrase: str) -> bytes:
    offset = len(LEGACY_HEADER)
    body_start = offset + LEGACY_SALT_SIZE + LEGACY_IV_SIZE
    if len(data) <= body_start or (len(data) - body_start) % 16:
        raise UnsupportedFormat(PROVIDER, "legacy backup has a truncated body")
    salt = data[offset:offset + LEGACY_SALT_SIZE]
    iv = data[offset + LEGACY_SALT_SIZE:body_start]

    logger.debug("Decrypting legacy Authenticator Pro backup")
    password = bytearray(passphrase.encode("utf-8"))
    key = bytearray(hashlib.pbkdf2_hmac("sha1", bytes(password), salt, LEGACY_ROUNDS, KEY_SIZE))
    wipe(password)
    try:
        decryptor = Cipher(algorithms.AES(bytes(key)), modes.CBC(iv)).decryptor()
        padded = decryptor.update(data[body_start:]) + decryptor.finalize()
    finally:
        wipe(key)

    # CBC has no authentication; bad padding or garbage JSON means a wrong password
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        plaintext = unpadder.update(padded) + unpadder.finalize()
        json.loads(plaintext.decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        raise WrongPassword(PROVIDER, "wrong password or damaged backup") from None
    return plaintext


# ── Backup content ────────────────────────────────────────────────────────────

def _category_tags(backup: dict, bundle: ImportBundle) -> Dict[str, List[str]]:
    """Map normalised authenticator secrets to category names."""
    categories = backup.get("Categories") or []
    links = backup.get("AuthenticatorCategories") or []
    if not isinstance(categories, list) or not isinstance(links, list):
        bundle.warn("category data is malformed, tags ignored")
        return {}

    names = {}
    for category in categories:
        if isinstance(category, dict) and isinstance(category.get("Id"), str):
            names[category["Id"]] = str(category.get("Name") or "")

    tags: Dict[str, List[str]] = {}
    for link in links:
        if not isinstance(link, dict):
            continue
        try:
            secret = normalize_secret(link["AuthenticatorSecret"])
            name = names[link["CategoryId"]]
        except (AttributeError, KeyError, TypeError, ValueError):
            continue
        tags.setdefault(secret, []).append(name)
    return tags


def _read_backup(backup: dict, error: type) -> ImportBundle:
    authenticators = backup.get("Authenticators")
    if not isinstance(authenticators, list):
        raise error(PROVIDER, "backup has no authenticator list")

    bundle = ImportBundle(PROVIDER)
    tags = _category_tags(backup, bundle)
    for index, entry in enumerate(authenticators):
        name = ""
        if isinstance(entry, dict):
            name = str(entry.get("Issuer") or entry.get("Username") or "")
        try:
            bundle.add(_entry_to_account(entry, tags))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            bundle.skip(index, name, exc)
    return bundle


def _entry_to_account(entry: dict, tags: Dict[str, List[str]]) -> Account:
    otp_type = entry["Type"]
    if otp_type == TYPE_TOTP:
        kind = Totp(period=int(entry.get("Period") or 30))
    elif otp_type == TYPE_HOTP:
        kind = Hotp(counter=int(entry.get("Counter") or 0))
    else:
        raise ValueError(f"unsupported OTP type '{_TYPE_NAMES.get(otp_type, otp_type)}'")

    algorithm = _ALGORITHMS.get(entry.get("Algorithm", 0))
    if algorithm is None:
        raise ValueError(f"unknown algorithm code {entry.get('Algorithm')!r}")

    secret = str(entry["Secret"])
    issuer = str(entry.get("Issuer") or "")
    return Account(
        label=str(entry.get("Username") or issuer),
        issuer=issuer,
        secret=decode_secret(secret),
        algorithm=algorithm,
        digits=int(entry.get("Digits") or 6),
        kind=kind,
        tags=tags.get(normalize_secret(secret), []),
    )


# ── Export ────────────────────────────────────────────────────────────────────

def encode(accounts: Iterable[Account], passphrase: Optional[str] = None) -> bytes:
    """
    Write ``accounts`` as an Authenticator Pro backup.

    Tags become categories. With a passphrase the backup uses the current
    ``AUTHENTICATORPRO`` layout; the legacy layout is never written.
    """
    plaintext = bytearray(json.dumps(_build_backup(accounts)).encode("utf-8"))
    if passphrase is None:
        return bytes(plaintext)
    try:
        return _encrypt_current(plaintext, passphrase)
    finally:
        wipe(plaintext)


def _build_backup(accounts: Iterable[Account]) -> dict:
    algorithm_codes = {algorithm: code for code, algorithm in _ALGORITHMS.items()}
    category_ids: Dict[str, str] = {}
    authenticators = []
    links = []
    for account in accounts:
        secret = encode_secret(account.secret)
        is_hotp = isinstance(account.kind, Hotp)
        authenticators.append({
            "Type": TYPE_HOTP if is_hotp else TYPE_TOTP,
            "Icon": None,
            "Issuer": account.issuer,
            "Username": account.label,
            "Secret": secret,
            "Algorithm": algorithm_codes[account.algorithm],
            "Digits": account.digits,
            "Period": 30 if is_hotp else account.kind.period,
            "Counter": account.kind.counter if is_hotp else 0,
            "Ranking": 0,
        })
        for tag in account.tags:
            category_id = category_ids.setdefault(tag, uuid.uuid4().hex)
            links.append({"CategoryId": category_id, "AuthenticatorSecret": secret, "Ranking": 0})

    return {
        "Authenticators": authenticators,
        "Categories": [{"Id": cid, "Name": name, "Ranking": 0} for name, cid in category_ids.items()],
        "AuthenticatorCategories": links,
        "CustomIcons": [],
    }


def _encrypt_current(plaintext: bytearray, passphrase: str) -> bytes:
    salt = os.urandom(SALT_SIZE)
    iv = os.urandom(IV_SIZE)

    key = _derive_current_key(passphrase, salt)
    try:
        return HEADER + salt + iv + AESGCM(bytes(key)).encrypt(iv, bytes(plaintext), None)
    finally:
        wipe(key)
