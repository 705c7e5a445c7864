"""Two-factor codes for ``action=clientlogin``.

Wikis running OATHAuth ask for a six-digit TOTP code after the password
step. These helpers derive the code from the account's Base32 secret.
"""

import time
from collections.abc import Callable

import pyotp

from mwaction.logging import get_logger

LOG = get_logger(__name__)

# OATHAuth uses the RFC 6238 defaults: 30-second steps, six digits.
TOTP_PERIOD = 30


def generate_totp(secret: str) -> str:
    """Generate the current TOTP code for *secret*.

    Raises:
        ValueError: If the secret is not valid Base32.
    """
    try:
        code = pyotp.TOTP(secret).now()
    except (ValueError, TypeError) as exc:
        raise ValueError(f"Invalid TOTP secret: {exc}") from exc
    LOG.debug("totp_generated", code_length=len(code))
    return code


def seconds_remaining() -> int:
    """Seconds until the current code expires (1-30)."""
    return TOTP_PERIOD - int(time.time() % TOTP_PERIOD)


def wait_for_fresh_totp(secret: str, min_validity_seconds: int = 5) -> str:
    """Return a code that stays valid for at least *min_validity_seconds*.

    Sleeps into the next period when the current one is about to end, so
    the code does not expire between generation and submission.
    """
    remaining = seconds_remaining()
    if remaining < min_validity_seconds:
        LOG.info("waiting_for_fresh_totp", remaining=remaining)
        time.sleep(remaining + 1)
    return generate_totp(secret)


def totp_supplier(secret: str) -> Callable[[], str]:
    """Build the ``otp`` callback ``Site.client_login`` expects."""
    return lambda: wait_for_fresh_totp(secret)
