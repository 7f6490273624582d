"""
Exception hierarchy for otpkeep.

Every failure the core can report on bad *input* is one of these classes.
I/O problems are left as the :class:`OSError` raised by the standard library.
"""

from typing import Optional


class OtpKeepError(Exception):
    """Base class for all otpkeep errors."""


# ── Account model ─────────────────────────────────────────────────────────────

class InvalidConfiguration(OtpKeepError, ValueError):
    """An account was constructed with an invalid digit count, algorithm, etc."""


class UnsupportedOperation(OtpKeepError, TypeError):
    """The operation does not apply to this kind of account (e.g. advancing a TOTP)."""


# ── Secure store ──────────────────────────────────────────────────────────────

class AuthenticationFailed(OtpKeepError):
    """
    The store could not be authenticated.

    Raised both for a wrong passphrase and for tampered ciphertext; the two
    cases are deliberately indistinguishable.
    """

    def __init__(self, message: str = "Wrong passphrase or tampered store.") -> None:
        super().__init__(message)


class Corrupt(OtpKeepError):
    """The store container is malformed."""


class UnsupportedVersion(Corrupt):
    """The store carries a format version this build does not understand."""

    def __init__(self, version: int) -> None:
        super().__init__(f"Unsupported store format version {version}.")
        self.version = version


class DuplicateId(OtpKeepError):
    """An account with the same id already exists in the store."""

    def __init__(self, account_id: str) -> None:
        super().__init__(f"Account {account_id} already exists.")
        self.account_id = account_id


class AccountNotFound(OtpKeepError, LookupError):
    """No account with the requested id."""

    def __init__(self, account_id: str) -> None:
        super().__init__(f"Account {account_id} not found.")
        self.account_id = account_id


class StoreClosed(OtpKeepError):
    """The store was used after :meth:`~storage.store.Store.close`."""

    def __init__(self) -> None:
        super().__init__("Store is closed.")


# ── Import pipeline ───────────────────────────────────────────────────────────

class ImportFailed(OtpKeepError):
    """Base class for fatal import errors; carries the provider name."""

    def __init__(self, provider: str, message: str, path: Optional[str] = None) -> None:
        self.provider = provider
        self.reason = message
        self.path = path
        super().__init__(self._render())

    def _render(self) -> str:
        where = f" ({self.path})" if self.path else ""
        return f"{self.provider} import failed{where}: {self.reason}"

    def with_path(self, path: str) -> "ImportFailed":
        """Attach the source file path for error reporting and return self."""
        self.path = path
        self.args = (self._render(),)
        return self


class UnsupportedFormat(ImportFailed):
    """The file does not look like an export of the selected provider."""


class WrongPassword(ImportFailed):
    """The export was recognised but could not be decrypted with the passphrase."""


class PasswordRequired(WrongPassword):
    """The export is encrypted and no passphrase was supplied."""


class ImportCorrupt(ImportFailed):
    """The export decrypted correctly but its content could not be parsed."""


class UnknownProvider(OtpKeepError, ValueError):
    """The provider identifier does not name a supported importer."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown provider '{name}'. Supported: aegis, andotp, authpro.")
        self.name = name
