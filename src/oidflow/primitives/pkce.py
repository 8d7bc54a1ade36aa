"""PKCE (Proof Key for Code Exchange) primitives.

Implements RFC 7636 code verifier and code challenge derivation to prevent
authorization code interception attacks.
"""

from __future__ import annotations

import hashlib
import secrets
import string
from dataclasses import dataclass, field

from oidflow.models.errors import MalformedRequestError
from oidflow.primitives.security import base64url_encode

S256 = "S256"
PLAIN = "plain"

CODE_VERIFIER_MIN_LENGTH = 43
CODE_VERIFIER_MAX_LENGTH = 128

# RFC 7636 Section 4.1 unreserved characters.
_VERIFIER_ALPHABET = string.ascii_letters + string.digits + "-._~"


def generate_code_verifier(length: int = CODE_VERIFIER_MAX_LENGTH) -> str:
    """Generate a cryptographically secure code verifier.

    RFC 7636 Section 4.1: code verifier must be 43-128 characters long
    and use only unreserved characters:
        [A-Z] / [a-z] / [0-9] / "-" / "." / "_" / "~"

    Args:
        length: Verifier length, defaults to the maximum

    Returns:
        A random code verifier
    """
    if not CODE_VERIFIER_MIN_LENGTH <= length <= CODE_VERIFIER_MAX_LENGTH:
        raise MalformedRequestError(
            f"code_verifier length must be {CODE_VERIFIER_MIN_LENGTH}-"
            f"{CODE_VERIFIER_MAX_LENGTH}, got {length}"
        )
    return "".join(secrets.choice(_VERIFIER_ALPHABET) for _ in range(length))


def code_challenge(code_verifier: str, method: str = S256) -> str:
    """Derive the code challenge for a verifier.

    RFC 7636 Section 4.2: For S256, the code challenge is:
    BASE64URL-ENCODE(SHA256(ASCII(code_verifier)))
    For plain, the challenge is the verifier itself.

    Raises:
        MalformedRequestError: For an unsupported method
    """
    if method == S256:
        digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
        return base64url_encode(digest)
    if method == PLAIN:
        return code_verifier
    raise MalformedRequestError(f"Unsupported code_challenge_method: {method}")


@dataclass(frozen=True)
class PKCEParameters:
    """Verifier/challenge pair generated for one authorization flow."""

    code_verifier: str = field()
    code_challenge: str = field()
    code_challenge_method: str = field(default=S256)

    @classmethod
    def generate(cls, method: str = S256) -> PKCEParameters:
        verifier = generate_code_verifier()
        return cls(
            code_verifier=verifier,
            code_challenge=code_challenge(verifier, method),
            code_challenge_method=method,
        )
