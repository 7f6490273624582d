"""
Entry points for shells and other collaborators.

Everything here takes explicit paths and passphrases. Nothing is read from
the environment; in particular a passphrase is never taken from an
environment variable.
"""

import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from core import engine
from core.account import Account, Hotp
from core.crypto import KdfParams
from core.engine import Moment, OtpCode
from providers import pipeline
from providers.common import ImportBundle
from providers.pipeline import Provider
from storage.store import Store

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]


@dataclass(frozen=True)
class AccountSummary:
    """Everything about an account except its secret."""

    id: str
    issuer: str
    label: str
    algorithm: str
    digits: int
    type: str
    period: Optional[int]
    counter: Optional[int]
    tags: Tuple[str, ...]

    @property
    def display_name(self) -> str:
        return f"{self.issuer}:{self.label}" if self.issuer else self.label

    @classmethod
    def of(cls, account: Account) -> "AccountSummary":
        is_hotp = isinstance(account.kind, Hotp)
        return cls(
            id=account.id,
            issuer=account.issuer,
            label=account.label,
            algorithm=account.algorithm.value,
            digits=account.digits,
            type="hotp" if is_hotp else "totp",
            period=None if is_hotp else account.kind.period,
            counter=account.kind.counter if is_hotp else None,
            tags=tuple(account.tags),
        )


# ── Store sessions ────────────────────────────────────────────────────────────

def open_store(path: PathLike, passphrase: str) -> Store:
    """Open an existing store. See :meth:`Store.open` for the errors raised."""
    return Store.open(path, passphrase)


def create_store(
    path: PathLike,
    passphrase: str,
    kdf_params: Optional[KdfParams] = None,
) -> Store:
    """Create a store and write it immediately so that it can be reopened."""
    store = Store.create(path, passphrase, kdf_params)
    try:
        store.save()
    except BaseException:
        store.close()
        raise
    return store


def list_accounts(store: Store) -> List[AccountSummary]:
    """Summaries of all accounts in store order."""
    return [AccountSummary.of(a) for a in store.accounts]


def find_accounts(store: Store, issuer: str, label: Optional[str] = None) -> List[AccountSummary]:
    """Accounts whose issuer (and label, if given) match case-insensitively."""
    issuer = issuer.casefold()
    matches = []
    for account in store.accounts:
        if account.issuer.casefold() != issuer:
            continue
        if label is not None and account.label.casefold() != label.casefold():
            continue
        matches.append(AccountSummary.of(account))
    return matches


# ── Codes ─────────────────────────────────────────────────────────────────────

def current_code(
    store: Store,
    account_id: str,
    now: Optional[Moment] = None,
) -> Tuple[OtpCode, Optional[int]]:
    """
    Generate the code for an account without changing any state.

    Returns:
        ``(code, remaining)`` where ``remaining`` is the number of seconds the
        TOTP code stays valid, or ``None`` for HOTP accounts.
    """
    account = store.get(account_id)
    code = engine.generate(account, now)
    if account.is_hotp:
        return code, None
    return code, engine.remaining_validity(account.period, now)


def advance_counter(store: Store, account_id: str) -> int:
    """Advance an HOTP counter; the caller saves the store before using the code."""
    return store.advance_counter(account_id)


# ── Import and export ─────────────────────────────────────────────────────────

def import_bundle(
    provider_id: Union[str, Provider],
    data: bytes,
    passphrase: Optional[str] = None,
) -> ImportBundle:
    """Decode a provider export. See :func:`providers.pipeline.decode`."""
    return pipeline.decode(provider_id, data, passphrase)


def export_accounts(
    store: Store,
    provider_id: Union[str, Provider],
    passphrase: Optional[str] = None,
) -> bytes:
    """
    Serialise every account in ``store`` for another app.

    Without ``passphrase`` the returned bytes hold the secrets in the clear.
    See :func:`providers.pipeline.encode`.
    """
    return pipeline.encode(provider_id, store.accounts, passphrase)


def _is_duplicate(store: Store, account: Account) -> bool:
    for existing in store.accounts:
        if existing.id == account.id:
            return True
        if (
            existing.issuer == account.issuer
            and existing.label == account.label
            and existing.secret == account.secret
        ):
            return True
    return False


def merge_and_save(
    store: Store,
    bundle: ImportBundle,
    path: Optional[PathLike] = None,
    passphrase: Optional[str] = None,
) -> int:
    """
    Move the bundle's accounts into ``store`` and save it.

    Accounts that duplicate an existing one (same id, or same issuer, label
    and secret) are skipped. If the save fails the store is left as it was.
    The bundle is wiped in every case.

    Returns:
        Number of accounts added.
    """
    incoming = bundle.take()
    added: List[Account] = []
    try:
        for account in incoming:
            if _is_duplicate(store, account):
                logger.info("Skipping duplicate account %s", account.display_name)
                account.wipe()
                continue
            store.insert(account)
            added.append(account)
        if added:
            store.save(path, passphrase)
    except BaseException:
        for account in added:
            store.remove(account.id)
        for account in incoming:
            account.wipe()
        raise
    finally:
        bundle.wipe()
    logger.info("Merged %d accounts from %s", len(added), bundle.provider)
    return len(added)
