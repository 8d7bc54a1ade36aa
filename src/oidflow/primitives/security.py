"""Security utilities for OAuth 2.0 flows.

Provides cryptographically secure parameter generation and validation
for state and nonce parameters, plus the base64url codec used by PKCE
and ID tokens.
"""

from __future__ import annotations

import base64
import binascii
import secrets
import string

# 32 characters from a 66-symbol alphabet, roughly 193 bits.
STATE_LENGTH = 32

_URL_SAFE_ALPHABET = string.ascii_letters + string.digits + "-._~"


def _random_url_safe(length: int) -> str:
    return "".join(secrets.choice(_URL_SAFE_ALPHABET) for _ in range(length))


def generate_state() -> str:
    """Generate cryptographically secure state parameter.

    The state parameter provides CSRF protection by ensuring the callback
    matches the original authorization request.

    Returns:
        Cryptographically secure random state string (32 characters)
    """
    return _random_url_safe(STATE_LENGTH)


def generate_nonce() -> str:
    """Generate a nonce binding an ID token to its authorization request."""
    return _random_url_safe(STATE_LENGTH)


def states_match(expected: str | None, actual: str | None) -> bool:
    """Constant-time comparison of state values. Two missing states match."""
    if expected is None or actual is None:
        return expected is None and actual is None
    return secrets.compare_digest(expected, actual)


def base64url_encode(data: bytes) -> str:
    """Base64url without padding (RFC 7515 Appendix C)."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def base64url_decode(value: str) -> bytes:
    """Decode base64url, tolerating missing padding.

    Raises:
        ValueError: If the value isn't valid base64url
    """
    padded = value + "=" * (-len(value) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ValueError(f"Invalid base64url value: {e}") from e
