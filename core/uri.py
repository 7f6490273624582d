"""
Parse and build otpauth:// URIs as defined by the Google Authenticator Key URI Format.

Reference: https://github.com/google/google-authenticator/wiki/Key-Uri-Format
"""

import urllib.parse

from core.account import Account, Algorithm, Hotp, Totp
from core.errors import InvalidConfiguration
from core.utils import decode_secret, encode_secret, sanitise_label, validate_digits, validate_period


def parse_otpauth_uri(uri: str) -> Account:
    """
    Parse and validate an ``otpauth://`` URI.

    Args:
        uri: Full otpauth URI string.

    Returns:
        A new :class:`~core.account.Account` (fresh id).

    Raises:
        InvalidConfiguration: If the URI is malformed or contains invalid values.
    """
    uri = uri.strip()

    parsed = urllib.parse.urlparse(uri)

    if parsed.scheme.lower() != "otpauth":
        raise InvalidConfiguration(f"Expected 'otpauth' scheme, got '{parsed.scheme}'.")

    otp_type = parsed.netloc.lower()
    if otp_type not in ("totp", "hotp"):
        raise InvalidConfiguration(f"Unknown OTP type '{otp_type}'. Expected totp or hotp.")

    # Label is the path component (strip leading slash)
    raw_label = urllib.parse.unquote(parsed.path.lstrip("/"))
    if not raw_label:
        raise InvalidConfiguration("Missing label in otpauth URI.")

    # "Issuer:AccountName"
    if ":" in raw_label:
        label_issuer, account_name = raw_label.split(":", 1)
        label_issuer = sanitise_label(label_issuer.strip())
    else:
        label_issuer = ""
        account_name = raw_label
    account_name = sanitise_label(account_name.strip())

    params = dict(urllib.parse.parse_qsl(parsed.query))

    raw_secret = params.get("secret", "")
    if not raw_secret:
        raise InvalidConfiguration("Missing 'secret' parameter in otpauth URI.")
    secret = decode_secret(raw_secret)

    # Prefer the query param; fall back to label prefix
    issuer = sanitise_label(params.get("issuer", label_issuer).strip())

    algorithm = Algorithm.parse(params.get("algorithm", "SHA1"))

    try:
        digits = int(params.get("digits", 6))
    except ValueError:
        raise InvalidConfiguration("'digits' must be an integer.") from None
    validate_digits(digits)

    if otp_type == "totp":
        try:
            period = int(params.get("period", 30))
        except ValueError:
            raise InvalidConfiguration("'period' must be an integer.") from None
        validate_period(period)
        kind = Totp(period=period)
    else:
        raw_counter = params.get("counter")
        if raw_counter is None:
            raise InvalidConfiguration("HOTP URI requires a 'counter' parameter.")
        try:
            counter = int(raw_counter)
        except ValueError:
            raise InvalidConfiguration("'counter' must be an integer.") from None
        if counter < 0:
            raise InvalidConfiguration("'counter' must be non-negative.")
        kind = Hotp(counter=counter)

    return Account(
        label=account_name,
        issuer=issuer,
        secret=secret,
        algorithm=algorithm,
        digits=digits,
        kind=kind,
    )


def build_otpauth_uri(account: Account) -> str:
    """Build an otpauth:// URI for ``account`` (contains the secret)."""
    params: dict = {
        "secret": encode_secret(account.secret),
        "algorithm": account.algorithm.value,
        "digits": str(account.digits),
    }
    if account.issuer:
        params["issuer"] = account.issuer
    if isinstance(account.kind, Totp):
        otp_type = "totp"
        params["period"] = str(account.kind.period)
    else:
        otp_type = "hotp"
        params["counter"] = str(account.kind.counter)

    query = urllib.parse.urlencode(params)
    label_encoded = urllib.parse.quote(account.display_name, safe="")
    return f"otpauth://{otp_type}/{label_encoded}?{query}"
