"""
otpkeep – entry point.

Usage
-----
    python main.py [--store PATH] [-v] COMMAND ...

Or, if installed as a package:
    otpkeep list
"""

import argparse
import getpass
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

import api
from core.errors import AccountNotFound, AuthenticationFailed, OtpKeepError, PasswordRequired
from core.uri import parse_otpauth_uri
from providers.pipeline import Provider, decode_file, export_name
from storage.store import Store, atomic_write

logger = logging.getLogger("otpkeep")

# Default location: %APPDATA%\otpkeep\store.otpk  (Windows)
#                   ~/.local/share/otpkeep/store.otpk  (Linux/macOS)
_DEFAULT_DIR = Path(
    os.environ.get("APPDATA", Path.home() / ".local" / "share")
) / "otpkeep"
DEFAULT_STORE = _DEFAULT_DIR / "store.otpk"

MAX_UNLOCK_ATTEMPTS = 3
MIN_PASSPHRASE_LENGTH = 8


# ── Logging setup ─────────────────────────────────────────────────────────────

def _setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity > 1:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # Keep key-handling modules quiet regardless of verbosity
    logging.getLogger("core.crypto").setLevel(logging.WARNING)
    logging.getLogger("storage.encryption").setLevel(logging.WARNING)


# ── Bootstrap ─────────────────────────────────────────────────────────────────

def _new_passphrase(what: str = "passphrase") -> str:
    """Prompt for a new passphrase twice and make sure both entries match."""
    for _ in range(MAX_UNLOCK_ATTEMPTS):
        first = getpass.getpass(f"New {what}: ")
        if len(first) < MIN_PASSPHRASE_LENGTH:
            print(f"The {what} must be at least {MIN_PASSPHRASE_LENGTH} characters.", file=sys.stderr)
            continue
        if getpass.getpass(f"Repeat {what}: ") != first:
            print("Entries do not match.", file=sys.stderr)
            continue
        return first
    raise OtpKeepError(f"No {what} set.")


def _unlock(path: Path) -> Store:
    """
    Prompt for the passphrase and open the store at ``path``.

    Re-prompts after a failed authentication; other errors propagate.
    """
    for attempt in range(MAX_UNLOCK_ATTEMPTS):
        passphrase = getpass.getpass(f"Passphrase for {path}: ")
        try:
            store = api.open_store(path, passphrase)
        except AuthenticationFailed:
            remaining = MAX_UNLOCK_ATTEMPTS - 1 - attempt
            if remaining > 0:
                print(f"Incorrect passphrase. {remaining} attempt(s) remaining.", file=sys.stderr)
            continue
        logger.info("Store unlocked.")
        return store
    raise AuthenticationFailed("Too many failed attempts.")


def _resolve_id(store: Store, prefix: str) -> str:
    """Accept a unique prefix of an account id."""
    matches = [a.id for a in store.accounts if a.id.startswith(prefix)]
    if len(matches) != 1:
        raise AccountNotFound(prefix)
    return matches[0]


def _print_code(summary: api.AccountSummary, store: Store) -> None:
    code, remaining = api.current_code(store, summary.id)
    suffix = f"  ({remaining}s)" if remaining is not None else f"  (counter {summary.counter})"
    print(f"{summary.display_name}: {code.grouped()}{suffix}")


# ── Commands ──────────────────────────────────────────────────────────────────

def cmd_init(args: argparse.Namespace) -> int:
    if Store.exists(args.store):
        print(f"A store already exists at {args.store}.", file=sys.stderr)
        return 1
    with api.create_store(args.store, _new_passphrase()):
        print(f"Created {args.store}")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    with _unlock(args.store) as store:
        summaries = api.list_accounts(store)
        if not summaries:
            print("No accounts.")
        for s in summaries:
            tags = f"  [{', '.join(s.tags)}]" if s.tags else ""
            print(f"{s.id[:8]}  {s.type}  {s.display_name}{tags}")
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    with _unlock(args.store) as store:
        matches = api.find_accounts(store, args.issuer, args.label)
        if not matches:
            print("No matching accounts.", file=sys.stderr)
            return 1
        for summary in matches:
            _print_code(summary, store)
    return 0


def cmd_code(args: argparse.Namespace) -> int:
    with _unlock(args.store) as store:
        account_id = _resolve_id(store, args.id)
        _print_code(api.AccountSummary.of(store.get(account_id)), store)
    return 0


def cmd_next(args: argparse.Namespace) -> int:
    with _unlock(args.store) as store:
        account_id = _resolve_id(store, args.id)
        api.advance_counter(store, account_id)
        store.save()
        _print_code(api.AccountSummary.of(store.get(account_id)), store)
    return 0


def cmd_add(args: argparse.Namespace) -> int:
    account = parse_otpauth_uri(args.uri)
    with _unlock(args.store) as store:
        store.insert(account)
        store.save()
        print(f"Added {account.display_name} ({account.id[:8]})")
    return 0


def cmd_remove(args: argparse.Namespace) -> int:
    with _unlock(args.store) as store:
        account = store.remove(_resolve_id(store, args.id))
        store.save()
        print(f"Removed {account.display_name}")
        account.wipe()
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    provider = Provider.parse(args.provider)
    try:
        bundle = decode_file(provider, args.file)
    except PasswordRequired:
        password = getpass.getpass(f"Password for {args.file}: ")
        bundle = decode_file(provider, args.file, password)

    for warning in bundle.warnings:
        print(f"warning: {warning}", file=sys.stderr)

    try:
        store = _unlock(args.store)
    except BaseException:
        bundle.wipe()
        raise
    with store:
        total = len(bundle)
        added = api.merge_and_save(store, bundle)
        print(f"Imported {added} of {total} accounts from {provider.value}.")
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    provider = Provider.parse(args.provider)
    target = args.file or Path(export_name(provider, args.encrypt))
    with _unlock(args.store) as store:
        password = _new_passphrase("export password") if args.encrypt else None
        data = api.export_accounts(store, provider, password)
        atomic_write(target, data)
        count = len(store)
    print(f"Exported {count} accounts to {target}.")
    if password is None:
        print("warning: the export is not encrypted and contains every secret.", file=sys.stderr)
    return 0


# ── Main ──────────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="otpkeep", description="Local OTP credential manager.")
    parser.add_argument(
        "--store", type=Path, default=DEFAULT_STORE,
        help=f"store file (default: {DEFAULT_STORE})",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="more log output")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="create a new store").set_defaults(func=cmd_init)
    sub.add_parser("list", help="list accounts").set_defaults(func=cmd_list)

    p = sub.add_parser("show", help="show codes for an issuer")
    p.add_argument("issuer")
    p.add_argument("label", nargs="?")
    p.set_defaults(func=cmd_show)

    p = sub.add_parser("code", help="show the current code for an account")
    p.add_argument("id", help="account id or unique prefix")
    p.set_defaults(func=cmd_code)

    p = sub.add_parser("next", help="advance an HOTP counter and show the new code")
    p.add_argument("id", help="account id or unique prefix")
    p.set_defaults(func=cmd_next)

    p = sub.add_parser("add", help="add an account from an otpauth:// URI")
    p.add_argument("uri")
    p.set_defaults(func=cmd_add)

    p = sub.add_parser("remove", help="remove an account")
    p.add_argument("id", help="account id or unique prefix")
    p.set_defaults(func=cmd_remove)

    p = sub.add_parser("import", help="import accounts from another app's export")
    p.add_argument("provider", help=", ".join(x.value for x in Provider))
    p.add_argument("file", type=Path)
    p.set_defaults(func=cmd_import)

    p = sub.add_parser("export", help="export all accounts for another app")
    p.add_argument("provider", help=", ".join(x.value for x in Provider))
    p.add_argument("file", type=Path, nargs="?", help="target file (default: <provider>-export.<ext>)")
    p.add_argument("-e", "--encrypt", action="store_true", help="protect the export with a password")
    p.set_defaults(func=cmd_export)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)
    try:
        return args.func(args)
    except OtpKeepError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"error: {exc.strerror or exc} ({exc.filename or args.store})", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
