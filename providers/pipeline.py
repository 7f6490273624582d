"""
Import and export dispatch.

The caller always names the provider; files are never sniffed across
providers, so a wrong choice surfaces as :class:`UnsupportedFormat` from the
selected decoder rather than a silent misparse.
"""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Tuple, Union

from core.account import Account
from core.errors import ImportFailed, UnknownProvider
from providers import aegis, andotp, authpro
from providers.common import ImportBundle

logger = logging.getLogger(__name__)

Decoder = Callable[[bytes, Optional[str]], ImportBundle]
Encoder = Callable[[Iterable[Account], Optional[str]], bytes]


class Provider(str, Enum):
    """Supported import sources."""

    AEGIS = "aegis"
    ANDOTP = "andotp"
    AUTHPRO = "authpro"

    @classmethod
    def parse(cls, name: Union[str, "Provider"]) -> "Provider":
        """
        Accept ``"aegis"``, ``"andOTP"``, ``"and-otp"``, ``"auth_pro"`` and similar.

        Raises:
            UnknownProvider: For anything else.
        """
        if isinstance(name, cls):
            return name
        key = str(name).strip().lower().replace("-", "").replace("_", "").replace(" ", "")
        try:
            return cls(key)
        except ValueError:
            raise UnknownProvider(str(name)) from None


_DECODERS: Dict[Provider, Decoder] = {
    Provider.AEGIS: aegis.decode,
    Provider.ANDOTP: andotp.decode,
    Provider.AUTHPRO: authpro.decode,
}

_ENCODERS: Dict[Provider, Encoder] = {
    Provider.AEGIS: aegis.encode,
    Provider.ANDOTP: andotp.encode,
    Provider.AUTHPRO: authpro.encode,
}

# Default export file names: (plain, encrypted)
_EXPORT_NAMES: Dict[Provider, Tuple[str, str]] = {
    Provider.AEGIS: ("aegis-export-plain.json", "aegis-export.json"),
    Provider.ANDOTP: ("and-otp-export.json", "and-otp-export.json.aes"),
    Provider.AUTHPRO: ("auth-pro-export.json", "auth-pro-export.authpro"),
}


def decode(
    provider: Union[str, Provider],
    data: bytes,
    passphrase: Optional[str] = None,
) -> ImportBundle:
    """
    Decode ``data`` with the decoder for ``provider``.

    Args:
        provider:   Provider identifier (enum member or name).
        data:       Raw export content.
        passphrase: Export password, when the export is encrypted.

    Returns:
        :class:`ImportBundle`; skipped entries are listed in ``warnings``.

    Raises:
        UnknownProvider: ``provider`` is not supported.
        ImportFailed:    The export could not be decoded (see subclasses).
    """
    selected = Provider.parse(provider)
    bundle = _DECODERS[selected](bytes(data), passphrase)
    logger.info(
        "Decoded %d accounts from %s export (%d skipped)",
        len(bundle), selected.value, len(bundle.warnings),
    )
    return bundle


def decode_file(
    provider: Union[str, Provider],
    path: Union[str, os.PathLike],
    passphrase: Optional[str] = None,
) -> ImportBundle:
    """Read ``path`` and :func:`decode` it; import errors carry the path."""
    data = Path(path).read_bytes()
    try:
        return decode(provider, data, passphrase)
    except ImportFailed as exc:
        raise exc.with_path(str(path))


def encode(
    provider: Union[str, Provider],
    accounts: Iterable[Account],
    passphrase: Optional[str] = None,
) -> bytes:
    """
    Serialise ``accounts`` in the export format of ``provider``.

    The result is encrypted when ``passphrase`` is given and holds the
    secrets in the clear otherwise.

    Raises:
        UnknownProvider: ``provider`` is not supported.
    """
    selected = Provider.parse(provider)
    accounts = list(accounts)
    data = _ENCODERS[selected](accounts, passphrase)
    logger.info(
        "Encoded %d accounts as %s %s export",
        len(accounts), "encrypted" if passphrase is not None else "plain", selected.value,
    )
    return data


def export_name(provider: Union[str, Provider], encrypted: bool) -> str:
    """Default file name for an export of ``provider``."""
    plain, sealed = _EXPORT_NAMES[Provider.parse(provider)]
    return sealed if encrypted else plain
