"""
Output type shared by all provider decoders.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Union

from core.account import Account

logger = logging.getLogger(__name__)


def describe_error(exc: BaseException) -> str:
    """Short, secret-free description of why an entry could not be mapped."""
    if isinstance(exc, KeyError):
        return f"missing field {exc.args[0]!r}" if exc.args else "missing field"
    if isinstance(exc, TypeError):
        return "malformed entry"
    return str(exc) or type(exc).__name__


@dataclass
class ImportBundle:
    """
    Accounts decoded from one provider export.

    Exists only for the duration of an import; once merged into a store the
    accounts belong to the store and the bundle should be discarded.
    """

    provider: str
    accounts: List[Account] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add(self, account: Account) -> None:
        self.accounts.append(account)

    def skip(self, index: int, name: str, reason: Union[str, BaseException]) -> None:
        """Record that entry ``index`` was skipped (never include secret material)."""
        if isinstance(reason, BaseException):
            reason = describe_error(reason)
        where = f"entry {index + 1}" + (f" ({name})" if name else "")
        self.warn(f"{where} skipped: {reason}")

    def warn(self, message: str) -> None:
        """Record a problem that does not stop the import."""
        self.warnings.append(message)
        logger.warning("%s import: %s", self.provider, message)

    def take(self) -> List[Account]:
        """Hand the accounts over to a new owner and empty the bundle."""
        accounts, self.accounts = self.accounts, []
        return accounts

    def wipe(self) -> None:
        """Erase every secret still held by this bundle."""
        for account in self.accounts:
            account.wipe()
        self.accounts.clear()

    def __len__(self) -> int:
        return len(self.accounts)
