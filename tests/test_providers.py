"""Tests for providers.aegis, providers.andotp, providers.authpro and providers.pipeline."""

import base64
import hashlib
import json
import os
import struct
from pathlib import Path

import pytest
from argon2.low_level import Type, hash_secret_raw
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from core.account import MAX_COUNTER, Account, Algorithm, Hotp, Totp
from core.errors import (
    ImportCorrupt,
    ImportFailed,
    PasswordRequired,
    UnknownProvider,
    UnsupportedFormat,
    WrongPassword,
)
from providers import aegis, andotp, authpro
from providers.pipeline import Provider, decode, decode_file, encode, export_name


# ── Fixed vectors ─────────────────────────────────────────────────────────────
# Each holds one TOTP account "Provider 1" / "Entry 1" with a 10-byte zero
# secret, SHA1, 6 digits, 30 s, tag "Tag 1"; the password is "123" and all
# salts and IVs are zero.

ANDOTP_VECTOR = bytes.fromhex(
    "000222e0000000000000000000000000000000000000000000000000fa144c50997de339"
    "9cda5138746bb43babd3690790ab38f9e6fac3412d8e4e2afe407b117e7eac3dbc1fe561"
    "acf45b774e0c9c6cccbc6d1bcbbea06ff6107c50a4d28d68fb459b8b77192888d8377868"
    "8796918ee29b28bc0ba0811988ac9b5f890c02b0d04831c071758f42b8b8b6d0ebaa0e0c"
    "86e24956a4609860db13069afccd2fb4d05b3974dfd531572ebce7eb03a3a9ec58e477ba"
    "64936139fc70f5e4"
)

AUTHPRO_LEGACY_VECTOR = bytes.fromhex(
    "41757468656e74696361746f7250726f0000000000000000000000000000000000000000"
    "000000000000000000000000000000009bbd1c7cae93d3b72eb76d193aac922a7e51e43c"
    "8e207ab76615e7ab3199e20596b8878cd235980f23b62756f596daf5c35b017c4bcea351"
    "cf6c275429096a3bf72adce548ac51a2e318f9c4361cc11d6bddba42c26fdad2b3c08fa2"
    "d24d545de097a3f0b51f52f714761ca5f764a8b46f7b6f9748af6da50597062c7ecf24fb"
    "e35f9e1ded634115eda261b96e9a28d63d68ce30b582f0dec310552e3d53660e292d53c2"
    "d86272716bd5e0431702ae86d3ceff953a9483a396cb2b51da561d0b307d77fd1310ffa5"
    "cc978047c12fd1acf53548ccc4807bf578394c394617cad86cb6f623b1a4d31ac888e25a"
    "37c7ade9"
)

AEGIS_VECTOR = json.dumps({
    "version": 1,
    "header": {
        "slots": [{
            "type": 1,
            "uuid": "00000000-0000-0000-0000-000000000000",
            "key": "81b1e678128bb925b48d97aa17184fea69dbcef894265623fa796822d229098f",
            "key_params": {
                "nonce": "000000000000000000000000",
                "tag": "4349fe4a53e9bb0a4e1f601fef84be10",
            },
            "n": 32768,
            "r": 8,
            "p": 1,
            "salt": "0" * 64,
            "repaired": True,
        }],
        "params": {
            "nonce": "000000000000000000000000",
            "tag": "9ea0591d234316df9f29325afa94fedf",
        },
    },
    "db": (
        "tYU2WD8TAgFpbP/hltH4dgYSaq9EhBAvqoCB9wVjF7T/Pt5cPWjNWSiGP0tlNk3VNCSok+TPXQpDPVyi"
        "6k17XpGFzjJg6Wx2IbeAwiD9AM+elWvjiI+XD8qeeA8zN2neicBB4Uz1v1Y239nn3x/MVJYolN5BU8LJ"
        "QbeHPqMnUCJzT/KLVujZgQfM2BkcrOO2jCRyptJCWJjVPcUHmCf5W9VAhtjRbc9x0SzH+lFh/+bRC1Et"
        "F28SUpZ8pVuUJE0CE/lY8Wl4x3mHlXKVJJl9ktHQMBW+qgSIygW7WhL1/39d1OIbQdNhkcviNYxng2xP"
        "I7P9VKCo0qZNPIIjx6fGGF8CPQw1W3qFqpPJ58rL8mM="
    ),
}).encode()


def _assert_entry_one(bundle, tags=("Tag 1",)) -> None:
    assert len(bundle) == 1
    account = bundle.accounts[0]
    assert account.issuer == "Provider 1"
    assert account.label == "Entry 1"
    assert bytes(account.secret) == bytes(10)
    assert account.algorithm is Algorithm.SHA1
    assert account.digits == 6
    assert account.kind == Totp(period=30)
    assert account.tags == list(tags)
    assert bundle.warnings == []


# ── Fixture builders ──────────────────────────────────────────────────────────

def _aegis_encrypted(vault: dict, password: str, slots_before: list = ()) -> bytes:
    master = os.urandom(32)
    salt = os.urandom(32)
    derived = Scrypt(salt=salt, length=32, n=1024, r=8, p=1).derive(password.encode())
    slot_nonce = os.urandom(12)
    wrapped = AESGCM(derived).encrypt(slot_nonce, master, None)
    db_nonce = os.urandom(12)
    sealed = AESGCM(master).encrypt(db_nonce, json.dumps(vault).encode(), None)
    slot = {
        "type": 1,
        "uuid": "slot-1",
        "key": wrapped[:-16].hex(),
        "key_params": {"nonce": slot_nonce.hex(), "tag": wrapped[-16:].hex()},
        "n": 1024,
        "r": 8,
        "p": 1,
        "salt": salt.hex(),
    }
    return json.dumps({
        "version": 1,
        "header": {
            "slots": list(slots_before) + [slot],
            "params": {"nonce": db_nonce.hex(), "tag": sealed[-16:].hex()},
        },
        "db": base64.b64encode(sealed[:-16]).decode(),
    }).encode()


def _aegis_plain(vault: dict) -> bytes:
    return json.dumps({"version": 1, "header": {"slots": None, "params": None}, "db": vault}).encode()


def _andotp_encrypted(payload: bytes, password: str, iterations: int = 1000) -> bytes:
    salt = os.urandom(12)
    iv = os.urandom(12)
    key = hashlib.pbkdf2_hmac("sha1", password.encode(), salt, iterations, 32)
    return struct.pack(">I", iterations) + salt + iv + AESGCM(key).encrypt(iv, payload, None)


def _authpro_current(backup: dict, password: str) -> bytes:
    salt = os.urandom(16)
    iv = os.urandom(12)
    key = hash_secret_raw(
        secret=password.encode(),
        salt=salt,
        time_cost=3,
        memory_cost=65536,
        parallelism=4,
        hash_len=32,
        type=Type.ID,
    )
    return b"AUTHENTICATORPRO" + salt + iv + AESGCM(key).encrypt(iv, json.dumps(backup).encode(), None)


AEGIS_VAULT = {
    "version": 2,
    "entries": [
        {
            "type": "totp", "uuid": "e1", "name": "alice", "issuer": "GitHub",
            "groups": ["g1", "g-missing"],
            "info": {"secret": "JBSWY3DPEHPK3PXP", "algo": "SHA256", "digits": 8, "period": 60},
        },
        {
            "type": "hotp", "uuid": "e2", "name": "bob", "issuer": "Bank",
            "info": {"secret": "GEZDGNBV", "algo": "SHA1", "digits": 6, "counter": 5},
        },
        {
            "type": "steam", "uuid": "e3", "name": "gabe", "issuer": "Steam",
            "info": {"secret": "GEZDGNBV", "algo": "SHA1", "digits": 5, "period": 30},
        },
        {"type": "totp", "uuid": "e4", "name": "broken", "info": {"algo": "SHA1"}},
    ],
    "groups": [{"uuid": "g1", "name": "Work"}],
}

ANDOTP_ENTRIES = [
    {
        "secret": "JBSWY3DPEHPK3PXP", "issuer": "GitHub", "label": "alice",
        "digits": 8, "type": "TOTP", "algorithm": "SHA512", "period": 60, "tags": ["Work"],
    },
    {"secret": "GEZDGNBV", "label": "Bank:bob", "type": "HOTP", "algorithm": "SHA1", "counter": 9},
    {"secret": "GEZDGNBV", "issuer": "Steam", "label": "gabe", "type": "STEAM", "digits": 5},
    {"secret": "not base32!", "issuer": "Bad", "label": "x", "type": "TOTP"},
]

AUTHPRO_BACKUP = {
    "Authenticators": [
        {
            "Type": 2, "Issuer": "GitHub", "Username": "alice", "Secret": "JBSWY3DPEHPK3PXP",
            "Algorithm": 1, "Digits": 6, "Period": 30, "Counter": 0,
        },
        {
            "Type": 1, "Issuer": "Bank", "Username": "", "Secret": "GEZDGNBV",
            "Algorithm": 0, "Digits": 8, "Period": 0, "Counter": 3,
        },
        {
            "Type": 3, "Issuer": "Legacy", "Username": "x", "Secret": "GEZDGNBV",
            "Algorithm": 0, "Digits": 6, "Period": 10,
        },
    ],
    "Categories": [{"Id": "c1", "Name": "Work"}],
    "AuthenticatorCategories": [{"CategoryId": "c1", "AuthenticatorSecret": "JBSWY3DPEHPK3PXP"}],
}


# ── Aegis ─────────────────────────────────────────────────────────────────────

def test_aegis_fixed_vector() -> None:
    _assert_entry_one(aegis.decode(AEGIS_VECTOR, "123"))


def test_aegis_wrong_password() -> None:
    with pytest.raises(WrongPassword) as exc_info:
        aegis.decode(AEGIS_VECTOR, "124")
    assert not isinstance(exc_info.value, PasswordRequired)
    assert exc_info.value.provider == "aegis"


def test_aegis_password_required() -> None:
    with pytest.raises(PasswordRequired):
        aegis.decode(AEGIS_VECTOR)


def test_aegis_tampered_vault_is_corrupt() -> None:
    export = json.loads(AEGIS_VECTOR)
    export["header"]["params"]["tag"] = "00" * 16
    with pytest.raises(ImportCorrupt):
        aegis.decode(json.dumps(export).encode(), "123")


def test_aegis_plain_export_maps_entries_and_skips_unsupported() -> None:
    bundle = aegis.decode(_aegis_plain(AEGIS_VAULT))
    assert [a.label for a in bundle.accounts] == ["alice", "bob"]

    alice, bob = bundle.accounts
    assert alice.issuer == "GitHub"
    assert alice.algorithm is Algorithm.SHA256
    assert alice.digits == 8
    assert alice.kind == Totp(period=60)
    assert alice.tags == ["Work"]
    assert bob.kind == Hotp(counter=5)

    assert len(bundle.warnings) == 2
    assert "entry 3 (Steam:gabe)" in bundle.warnings[0]
    assert "steam" in bundle.warnings[0]
    assert "missing field 'secret'" in bundle.warnings[1]


def test_aegis_encrypted_export_with_extra_slots() -> None:
    biometric = {"type": 2, "uuid": "bio", "key": "00", "key_params": {"nonce": "00", "tag": "00"}}
    data = _aegis_encrypted(AEGIS_VAULT, "hunter22", slots_before=[biometric])
    bundle = aegis.decode(data, "hunter22")
    assert len(bundle) == 2


def test_aegis_without_password_slot_is_unsupported() -> None:
    export = json.loads(_aegis_encrypted(AEGIS_VAULT, "pw"))
    export["header"]["slots"][0]["type"] = 2
    with pytest.raises(UnsupportedFormat):
        aegis.decode(json.dumps(export).encode(), "pw")


def test_aegis_malformed_group_list_is_ignored_with_warning() -> None:
    vault = dict(AEGIS_VAULT, entries=AEGIS_VAULT["entries"][:2], groups=5)
    bundle = aegis.decode(_aegis_plain(vault))
    assert [a.label for a in bundle.accounts] == ["alice", "bob"]
    assert bundle.accounts[0].tags == []
    assert bundle.warnings == ["group list is malformed, tags from groups ignored"]


def test_aegis_unhashable_group_ids_are_ignored() -> None:
    entry = dict(AEGIS_VAULT["entries"][0], groups=[["g1"], {"x": 1}, "g1"])
    vault = {
        "version": 2,
        "entries": [entry],
        "groups": [{"uuid": ["g1"], "name": "Bad"}, {"uuid": "g1", "name": "Work"}],
    }
    bundle = aegis.decode(_aegis_plain(vault))
    assert bundle.accounts[0].tags == ["Work"]
    assert bundle.warnings == []


@pytest.mark.parametrize("n,r,p", [
    (1 << 22, 64, 1),     # 32 GiB
    (1 << 24, 8, 1),      # 16 GiB
    (1 << 16, 1, 1 << 20),
    (0, 8, 1),
])
def test_aegis_oversized_scrypt_parameters_are_corrupt(n: int, r: int, p: int) -> None:
    export = json.loads(_aegis_encrypted(AEGIS_VAULT, "pw"))
    export["header"]["slots"][0].update(n=n, r=r, p=p)
    with pytest.raises(ImportCorrupt):
        aegis.decode(json.dumps(export).encode(), "pw")

@pytest.mark.parametrize("data", [
    b"",
    b"not json",
    b"[1, 2, 3]",
    b'{"version": 1}',
    b'{"version": 2, "header": {"slots": null}, "db": {}}',
])
def test_aegis_rejects_foreign_files(data: bytes) -> None:
    with pytest.raises(UnsupportedFormat):
        aegis.decode(data, "pw")


# ── andOTP ────────────────────────────────────────────────────────────────────

def test_andotp_fixed_vector() -> None:
    _assert_entry_one(andotp.decode(ANDOTP_VECTOR, "123"))


def test_andotp_wrong_password() -> None:
    with pytest.raises(WrongPassword) as exc_info:
        andotp.decode(ANDOTP_VECTOR, "124")
    assert not isinstance(exc_info.value, PasswordRequired)


def test_andotp_password_required() -> None:
    with pytest.raises(PasswordRequired):
        andotp.decode(ANDOTP_VECTOR)


def test_andotp_plain_backup() -> None:
    bundle = andotp.decode(json.dumps(ANDOTP_ENTRIES).encode())
    assert len(bundle) == 2

    alice, bob = bundle.accounts
    assert (alice.issuer, alice.label) == ("GitHub", "alice")
    assert alice.algorithm is Algorithm.SHA512
    assert alice.kind == Totp(period=60)
    assert alice.tags == ["Work"]
    assert (bob.issuer, bob.label) == ("Bank", "bob")
    assert bob.kind == Hotp(counter=9)
    assert bob.digits == 6

    assert len(bundle.warnings) == 2
    assert "STEAM" in bundle.warnings[0]
    assert "not base32" not in " ".join(bundle.warnings)


def test_andotp_encrypted_backup() -> None:
    data = _andotp_encrypted(json.dumps(ANDOTP_ENTRIES).encode(), "s3cret")
    assert len(andotp.decode(data, "s3cret")) == 2


def test_andotp_decrypted_garbage_is_corrupt() -> None:
    data = _andotp_encrypted(b"definitely not json", "s3cret")
    with pytest.raises(ImportCorrupt):
        andotp.decode(data, "s3cret")


def test_andotp_counter_beyond_64_bits_is_skipped() -> None:
    entries = [
        {"secret": "JBSWY3DPEHPK3PXP", "label": "ok", "type": "HOTP", "counter": MAX_COUNTER},
        {"secret": "JBSWY3DPEHPK3PXP", "label": "huge", "type": "HOTP", "counter": MAX_COUNTER + 1},
    ]
    bundle = andotp.decode(json.dumps(entries).encode())
    assert [a.label for a in bundle.accounts] == ["ok"]
    assert len(bundle.warnings) == 1
    assert "entry 2 (huge)" in bundle.warnings[0]


@pytest.mark.parametrize("data", [
    b"",
    b"\x00" * 8,
    b"\x00" * 100,            # zero iterations
    b"\xff" * 100,            # absurd iteration count
    b'{"version": 1, "header": {}, "db": {}}',
])
def test_andotp_rejects_foreign_files(data: bytes) -> None:
    with pytest.raises(UnsupportedFormat):
        andotp.decode(data)


# ── Authenticator Pro ─────────────────────────────────────────────────────────

def test_authpro_legacy_fixed_vector() -> None:
    _assert_entry_one(authpro.decode(AUTHPRO_LEGACY_VECTOR, "123"), tags=())


def test_authpro_legacy_wrong_password() -> None:
    with pytest.raises(WrongPassword):
        authpro.decode(AUTHPRO_LEGACY_VECTOR, "124")


def test_authpro_password_required() -> None:
    with pytest.raises(PasswordRequired):
        authpro.decode(AUTHPRO_LEGACY_VECTOR)


def test_authpro_plain_backup() -> None:
    bundle = authpro.decode(json.dumps(AUTHPRO_BACKUP).encode())
    assert len(bundle) == 2

    alice, bank = bundle.accounts
    assert (alice.issuer, alice.label) == ("GitHub", "alice")
    assert alice.algorithm is Algorithm.SHA256
    assert alice.tags == ["Work"]
    assert (bank.issuer, bank.label) == ("Bank", "Bank")
    assert bank.kind == Hotp(counter=3)
    assert bank.digits == 8
    assert bank.tags == []

    assert len(bundle.warnings) == 1
    assert "mOTP" in bundle.warnings[0]


def test_authpro_current_format() -> None:
    data = _authpro_current(AUTHPRO_BACKUP, "s3cret")
    bundle = authpro.decode(data, "s3cret")
    assert [a.label for a in bundle.accounts] == ["alice", "Bank"]
    with pytest.raises(WrongPassword):
        authpro.decode(data, "wrong")


@pytest.mark.parametrize("changes", [
    {"Categories": 5},
    {"AuthenticatorCategories": 5},
    {"AuthenticatorCategories": [{"CategoryId": "c1", "AuthenticatorSecret": 123}]},
    {"AuthenticatorCategories": ["c1", None, {"CategoryId": ["c1"], "AuthenticatorSecret": "GEZDGNBV"}]},
    {"Categories": [{"Id": ["c1"], "Name": "Work"}, "junk"]},
])
def test_authpro_malformed_categories_do_not_abort(changes: dict) -> None:
    backup = dict(AUTHPRO_BACKUP, **changes)
    bundle = authpro.decode(json.dumps(backup).encode())
    assert [a.label for a in bundle.accounts] == ["alice", "Bank"]
    assert bundle.accounts[0].tags == []


def test_authpro_non_list_categories_are_reported() -> None:
    backup = dict(AUTHPRO_BACKUP, Categories=5)
    bundle = authpro.decode(json.dumps(backup).encode())
    assert "category data is malformed, tags ignored" in bundle.warnings


@pytest.mark.parametrize("data", [
    b"",
    b"PK\x03\x04 zip archive",
    b"[]",
    b'{"entries": []}',
])
def test_authpro_rejects_foreign_files(data: bytes) -> None:
    with pytest.raises(UnsupportedFormat):
        authpro.decode(data, "pw")


# ── Pipeline ──────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("name,expected", [
    ("aegis", Provider.AEGIS),
    ("Aegis", Provider.AEGIS),
    ("andotp", Provider.ANDOTP),
    ("and-otp", Provider.ANDOTP),
    ("andOTP", Provider.ANDOTP),
    ("authpro", Provider.AUTHPRO),
    ("auth-pro", Provider.AUTHPRO),
    ("Auth_Pro", Provider.AUTHPRO),
    (Provider.AEGIS, Provider.AEGIS),
])
def test_provider_parse(name, expected: Provider) -> None:
    assert Provider.parse(name) is expected


def test_unknown_provider() -> None:
    with pytest.raises(UnknownProvider):
        decode("google-authenticator", b"")


def test_decode_dispatches_by_identifier() -> None:
    _assert_entry_one(decode("and-otp", ANDOTP_VECTOR, "123"))


@pytest.mark.parametrize("provider,data", [
    (Provider.AEGIS, ANDOTP_VECTOR),
    (Provider.AEGIS, AUTHPRO_LEGACY_VECTOR),
    (Provider.ANDOTP, AEGIS_VECTOR),
    (Provider.ANDOTP, AUTHPRO_LEGACY_VECTOR),
    (Provider.AUTHPRO, AEGIS_VECTOR),
    (Provider.AUTHPRO, ANDOTP_VECTOR),
])
def test_wrong_provider_is_unsupported_format(provider: Provider, data: bytes) -> None:
    with pytest.raises(UnsupportedFormat):
        decode(provider, data)


def test_decode_file_reports_path(tmp_path: Path) -> None:
    path = tmp_path / "backup.json.aes"
    path.write_bytes(ANDOTP_VECTOR)
    with pytest.raises(WrongPassword) as exc_info:
        decode_file("andotp", path, "nope")
    message = str(exc_info.value)
    assert "andotp" in message
    assert str(path) in message
    assert "nope" not in message


def test_decode_file_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        decode_file("aegis", tmp_path / "absent.json")


def test_import_errors_share_base_class() -> None:
    for exc_type in (UnsupportedFormat, WrongPassword, PasswordRequired, ImportCorrupt):
        assert issubclass(exc_type, ImportFailed)


def test_bundle_wipe_and_take() -> None:
    bundle = andotp.decode(json.dumps(ANDOTP_ENTRIES).encode())
    taken = bundle.take()
    assert len(bundle) == 0 and len(taken) == 2

    bundle = andotp.decode(json.dumps(ANDOTP_ENTRIES).encode())
    first = bundle.accounts[0]
    secret_len = len(first.secret)
    bundle.wipe()
    assert first.secret == bytearray(secret_len)
    assert len(bundle) == 0


# ── Export ────────────────────────────────────────────────────────────────────

def _export_accounts() -> list:
    return [
        Account(
            label="alice", issuer="GitHub", secret=bytearray(b"12345678901234567890"),
            algorithm=Algorithm.SHA256, digits=8, kind=Totp(period=60), tags=["Work", "Dev"],
        ),
        Account(label="bob", issuer="Bank", secret=bytearray(b"\x00\x01\x02\x03\x04"), kind=Hotp(counter=42)),
    ]


def _fields(account: Account) -> tuple:
    return (
        account.issuer, account.label, bytes(account.secret),
        account.algorithm, account.digits, account.kind, sorted(account.tags),
    )


@pytest.mark.parametrize("module", [aegis, andotp, authpro])
@pytest.mark.parametrize("password", [None, "s3cret pass"])
def test_export_then_import_keeps_accounts(module, password) -> None:
    accounts = _export_accounts()
    data = module.encode(accounts, password)
    bundle = module.decode(data, password)
    assert [_fields(a) for a in bundle.accounts] == [_fields(a) for a in accounts]
    assert bundle.warnings == []


@pytest.mark.parametrize("module", [aegis, andotp, authpro])
def test_encrypted_export_hides_secrets_and_needs_password(module) -> None:
    data = module.encode(_export_accounts(), "s3cret pass")
    assert b"GitHub" not in data
    assert b"GEZDGNBVGY3TQOJQ" not in data
    with pytest.raises(PasswordRequired):
        module.decode(data)
    with pytest.raises(WrongPassword):
        module.decode(data, "other pass")


def test_plain_exports_match_provider_layout() -> None:
    accounts = _export_accounts()

    aegis_export = json.loads(aegis.encode(accounts))
    assert aegis_export["header"] == {"slots": None, "params": None}
    assert [e["type"] for e in aegis_export["db"]["entries"]] == ["totp", "hotp"]
    assert sorted(g["name"] for g in aegis_export["db"]["groups"]) == ["Dev", "Work"]

    andotp_export = json.loads(andotp.encode(accounts))
    assert andotp_export[0]["secret"] == "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"
    assert andotp_export[1]["type"] == "HOTP" and andotp_export[1]["counter"] == 42

    authpro_export = json.loads(authpro.encode(accounts))
    assert [a["Type"] for a in authpro_export["Authenticators"]] == [2, 1]
    assert authpro_export["Authenticators"][0]["Algorithm"] == 1
    assert len(authpro_export["AuthenticatorCategories"]) == 2


def test_encrypted_exports_use_provider_headers() -> None:
    accounts = _export_accounts()
    assert authpro.encode(accounts, "pw").startswith(b"AUTHENTICATORPRO")
    (iterations,) = struct.unpack_from(">I", andotp.encode(accounts, "pw"), 0)
    assert andotp.EXPORT_MIN_ITERATIONS <= iterations <= andotp.EXPORT_MAX_ITERATIONS
    slot = json.loads(aegis.encode(accounts, "pw"))["header"]["slots"][0]
    assert (slot["n"], slot["r"], slot["p"]) == (1 << 15, 8, 1)


def test_pipeline_encode_dispatches_by_identifier() -> None:
    data = encode("and-otp", _export_accounts())
    assert len(decode(Provider.ANDOTP, data)) == 2
    with pytest.raises(UnknownProvider):
        encode("lastpass", [])


@pytest.mark.parametrize("provider,encrypted,expected", [
    ("aegis", False, "aegis-export-plain.json"),
    ("aegis", True, "aegis-export.json"),
    ("andotp", True, "and-otp-export.json.aes"),
    ("authpro", False, "auth-pro-export.json"),
    ("authpro", True, "auth-pro-export.authpro"),
])
def test_export_name(provider: str, encrypted: bool, expected: str) -> None:
    assert export_name(provider, encrypted) == expected
