"""
Import and export of Aegis Authenticator backups.

Reference: https://github.com/beemdevelopment/Aegis/blob/master/docs/vault.md

An export is a JSON document::

    {
      "version": 1,
      "header": {"slots": [...] | null, "params": {"nonce", "tag"} | null},
      "db": "<base64 ciphertext>" | {<vault>}
    }

Encrypted exports hold one or more key slots. A password slot (``type`` 1)
carries scrypt parameters and the master key, itself sealed with AES-256-GCM
under the scrypt-derived key. The vault is sealed with the master key using
``header.params``. Nonces and tags are hex, the ciphertext is base64.
"""

import base64
import binascii
import json
import logging
import os
import uuid
from typing import Dict, Iterable, List, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from core.account import Account, Algorithm, Hotp, Totp
from core.crypto import wipe
from core.errors import ImportCorrupt, PasswordRequired, UnsupportedFormat, WrongPassword
from core.utils import decode_secret, encode_secret
from providers.common import ImportBundle

logger = logging.getLogger(__name__)

PROVIDER = "aegis"

EXPORT_VERSION = 1
VAULT_VERSION = 2
SLOT_TYPE_PASSWORD = 1
KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16

# Parameters Aegis itself writes
SCRYPT_N = 1 << 15
SCRYPT_R = 8
SCRYPT_P = 1
SCRYPT_SALT_SIZE = 32

# Upper bounds on attacker-controlled scrypt parameters
_MAX_SCRYPT_RP = 64
_MAX_SCRYPT_MEMORY = 1 << 30


def decode(data: bytes, passphrase: Optional[str] = None) -> ImportBundle:
    """
    Decode an Aegis export.

    Args:
        data:       Raw file content.
        passphrase: Backup password; only needed for encrypted exports.

    Returns:
        :class:`ImportBundle` with one account per supported entry.

    Raises:
        UnsupportedFormat: Not an Aegis export.
        PasswordRequired:  Encrypted export and no passphrase.
        WrongPassword:     No password slot opens with ``passphrase``.
        ImportCorrupt:     Recognised export with a damaged header or vault.
    """
    export = _load_export(data)
    header = export["header"]

    if header.get("slots") is None:
        if not isinstance(export["db"], dict):
            raise UnsupportedFormat(PROVIDER, "plain export without an inline vault")
        vault = export["db"]
    else:
        if passphrase is None:
            raise PasswordRequired(PROVIDER, "backup is encrypted, a password is required")
        vault = _decrypt_vault(export, passphrase)

    return _read_vault(vault)


# ── Envelope ──────────────────────────────────────────────────────────────────

def _load_export(data: bytes) -> dict:
    try:
        export = json.loads(data.decode("utf-8-sig"))
    except (UnicodeDecodeError, ValueError):
        raise UnsupportedFormat(PROVIDER, "file is not a JSON document") from None
    if (
        not isinstance(export, dict)
        or not isinstance(export.get("header"), dict)
        or "db" not in export
    ):
        raise UnsupportedFormat(PROVIDER, "missing 'header' or 'db' section")
    if export.get("version") != EXPORT_VERSION:
        raise UnsupportedFormat(PROVIDER, f"unsupported export version {export.get('version')!r}")
    return export


def _decrypt_vault(export: dict, passphrase: str) -> dict:
    header = export["header"]
    slots = header["slots"]
    if not isinstance(slots, list):
        raise ImportCorrupt(PROVIDER, "header slots are malformed")

    password_slots = [
        s for s in slots if isinstance(s, dict) and s.get("type") == SLOT_TYPE_PASSWORD
    ]
    if not password_slots:
        raise UnsupportedFormat(PROVIDER, "backup has no password slot")

    try:
        params = header["params"]
        nonce = bytes.fromhex(params["nonce"])
        tag = bytes.fromhex(params["tag"])
        ciphertext = base64.b64decode(export["db"], validate=True)
    except (KeyError, TypeError, ValueError, binascii.Error):
        raise ImportCorrupt(PROVIDER, "header params or vault are malformed") from None

    master_key = _unlock_master_key(password_slots, passphrase)
    try:
        plaintext = AESGCM(bytes(master_key)).decrypt(nonce, ciphertext + tag, None)
    except (InvalidTag, ValueError):
        raise ImportCorrupt(PROVIDER, "vault failed authentication") from None
    finally:
        wipe(master_key)

    try:
        return json.loads(plaintext.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        raise ImportCorrupt(PROVIDER, "decrypted vault is not JSON") from None


def _unlock_master_key(slots: List[dict], passphrase: str) -> bytearray:
    """Try every password slot; return the unwrapped master key."""
    password = bytearray(passphrase.encode("utf-8"))
    try:
        for slot in slots:
            try:
                n, r, p = int(slot["n"]), int(slot["r"]), int(slot["p"])
                salt = bytes.fromhex(slot["salt"])
                wrapped = bytes.fromhex(slot["key"])
                nonce = bytes.fromhex(slot["key_params"]["nonce"])
                tag = bytes.fromhex(slot["key_params"]["tag"])
            except (KeyError, TypeError, ValueError):
                raise ImportCorrupt(PROVIDER, "password slot is malformed") from None
            if not _scrypt_params_ok(n, r, p):
                raise ImportCorrupt(PROVIDER, "password slot has implausible scrypt parameters")

            try:
                derived = bytearray(
                    Scrypt(salt=salt, length=KEY_SIZE, n=n, r=r, p=p).derive(bytes(password))
                )
            except ValueError:
                raise ImportCorrupt(PROVIDER, "password slot has invalid scrypt parameters") from None
            try:
                return bytearray(AESGCM(bytes(derived)).decrypt(nonce, wrapped + tag, None))
            except InvalidTag:
                logger.debug("Password slot %s did not open", slot.get("uuid", "?"))
            finally:
                wipe(derived)
    finally:
        wipe(password)
    raise WrongPassword(PROVIDER, "the password does not open any key slot")


def _scrypt_params_ok(n: int, r: int, p: int) -> bool:
    """Reject parameters that would make scrypt allocate more than 1 GiB."""
    if n < 2 or r < 1 or p < 1 or r * p > _MAX_SCRYPT_RP:
        return False
    return 128 * r * (n + p) <= _MAX_SCRYPT_MEMORY


# ── Vault ─────────────────────────────────────────────────────────────────────

def _read_vault(vault: dict) -> ImportBundle:
    if not isinstance(vault, dict) or not isinstance(vault.get("entries"), list):
        raise ImportCorrupt(PROVIDER, "vault has no entry list")

    bundle = ImportBundle(PROVIDER)
    groups = _read_groups(vault.get("groups"), bundle)
    for index, entry in enumerate(vault["entries"]):
        name = _entry_name(entry)
        try:
            bundle.add(_entry_to_account(entry, groups))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            bundle.skip(index, name, exc)
    return bundle


def _read_groups(raw: object, bundle: ImportBundle) -> Dict[str, str]:
    """Map group uuids to names; a malformed group list is ignored with a warning."""
    if raw is None:
        return {}
    if not isinstance(raw, list):
        bundle.warn("group list is malformed, tags from groups ignored")
        return {}
    groups: Dict[str, str] = {}
    for group in raw:
        if isinstance(group, dict) and isinstance(group.get("uuid"), str) and "name" in group:
            groups[group["uuid"]] = str(group["name"])
    return groups


def _entry_name(entry: object) -> str:
    if not isinstance(entry, dict):
        return ""
    issuer, name = entry.get("issuer") or "", entry.get("name") or ""
    return f"{issuer}:{name}" if issuer else str(name)


def _entry_to_account(entry: dict, groups: Dict[str, str]) -> Account:
    otp_type = str(entry.get("type", "")).lower()
    info = entry["info"]

    if otp_type == "totp":
        kind = Totp(period=int(info.get("period", 30)))
    elif otp_type == "hotp":
        kind = Hotp(counter=int(info.get("counter", 0)))
    else:
        raise ValueError(f"unsupported OTP type '{otp_type}'")

    tags = []
    if entry.get("group"):
        tags.append(str(entry["group"]))
    for group_id in entry.get("groups") or []:
        if isinstance(group_id, str) and group_id in groups:
            tags.append(groups[group_id])

    return Account(
        label=str(entry.get("name") or ""),
        issuer=str(entry.get("issuer") or ""),
        secret=decode_secret(info["secret"]),
        algorithm=Algorithm.parse(info.get("algo", "SHA1")),
        digits=int(info.get("digits", 6)),
        kind=kind,
        tags=tags,
    )


# ── Export ────────────────────────────────────────────────────────────────────

def encode(accounts: Iterable[Account], passphrase: Optional[str] = None) -> bytes:
    """
    Write ``accounts`` as an Aegis export.

    Tags become Aegis groups. With a passphrase the vault is sealed under a
    fresh master key held in a single scrypt password slot, using the same
    parameters Aegis writes itself.

    Returns:
        UTF-8 encoded JSON document.
    """
    vault = _build_vault(accounts)
    if passphrase is None:
        export = {"version": EXPORT_VERSION, "header": {"slots": None, "params": None}, "db": vault}
    else:
        export = _encrypt_vault(vault, passphrase)
    return json.dumps(export, indent=4).encode("utf-8")


def _build_vault(accounts: Iterable[Account]) -> dict:
    group_ids: Dict[str, str] = {}
    entries = []
    for account in accounts:
        for tag in account.tags:
            group_ids.setdefault(tag, str(uuid.uuid4()))

        info = {
            "secret": encode_secret(account.secret),
            "algo": account.algorithm.value,
            "digits": account.digits,
        }
        if isinstance(account.kind, Hotp):
            otp_type, info["counter"] = "hotp", account.kind.counter
        else:
            otp_type, info["period"] = "totp", account.kind.period

        entries.append({
            "type": otp_type,
            "uuid": str(uuid.uuid4()),
            "name": account.label,
            "issuer": account.issuer,
            "note": "",
            "favorite": False,
            "icon": None,
            "info": info,
            "groups": [group_ids[tag] for tag in account.tags],
        })

    return {
        "version": VAULT_VERSION,
        "entries": entries,
        "groups": [{"uuid": gid, "name": name} for name, gid in group_ids.items()],
    }


def _encrypt_vault(vault: dict, passphrase: str) -> dict:
    salt = os.urandom(SCRYPT_SALT_SIZE)
    master_key = bytearray(AESGCM.generate_key(bit_length=KEY_SIZE * 8))
    plaintext = bytearray(json.dumps(vault).encode("utf-8"))

    password = bytearray(passphrase.encode("utf-8"))
    derived = bytearray(
        Scrypt(salt=salt, length=KEY_SIZE, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P).derive(bytes(password))
    )
    wipe(password)
    try:
        vault_nonce = os.urandom(NONCE_SIZE)
        sealed = AESGCM(bytes(master_key)).encrypt(vault_nonce, bytes(plaintext), None)
        slot_nonce = os.urandom(NONCE_SIZE)
        wrapped = AESGCM(bytes(derived)).encrypt(slot_nonce, bytes(master_key), None)
    finally:
        wipe(derived)
        wipe(master_key)
        wipe(plaintext)

    slot = {
        "type": SLOT_TYPE_PASSWORD,
        "uuid": str(uuid.uuid4()),
        "key": wrapped[:-TAG_SIZE].hex(),
        "key_params": {"nonce": slot_nonce.hex(), "tag": wrapped[-TAG_SIZE:].hex()},
        "n": SCRYPT_N,
        "r": SCRYPT_R,
        "p": SCRYPT_P,
        "salt": salt.hex(),
        "repaired": True,
        "is_backup": False,
    }
    return {
        "version": EXPORT_VERSION,
        "header": {
            "slots": [slot],
            "params": {"nonce": vault_nonce.hex(), "tag": sealed[-TAG_SIZE:].hex()},
        },
        "db": base64.b64encode(sealed[:-TAG_SIZE]).decode("ascii"),
    }
