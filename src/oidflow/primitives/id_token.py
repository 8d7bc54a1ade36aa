"""ID token parsing and claim validation (OpenID Connect Core 3.1.3.7).

Only the structure and claims are checked. The signature is NOT verified:
callers that need authenticity must verify it against the provider's keys.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from oidflow.models.errors import IDTokenParsingError, IDTokenValidationError
from oidflow.primitives.security import base64url_decode

logger = logging.getLogger(__name__)

# Allowed skew between our clock and the issuer's when checking iat.
DEFAULT_CLOCK_SKEW = 600.0


class IDToken(BaseModel):
    """Decoded ID token claims. Non-standard claims stay in ``model_extra``."""

    model_config = ConfigDict(extra="allow", frozen=True)

    header: dict[str, Any]
    iss: str
    sub: str
    aud: list[str]
    exp: float
    iat: float
    nonce: str | None = None
    auth_time: float | None = None
    azp: str | None = None

    @field_validator("aud", mode="before")
    @classmethod
    def normalize_audience(cls, v: Any) -> Any:
        # aud may be a single string or an array (OIDC Core 2)
        if isinstance(v, str):
            return [v]
        return v

    @property
    def claims(self) -> dict[str, Any]:
        return self.model_dump(exclude={"header"})


def _decode_segment(segment: str, name: str) -> dict[str, Any]:
    try:
        decoded = json.loads(base64url_decode(segment))
    except (ValueError, UnicodeDecodeError) as e:
        raise IDTokenParsingError(f"ID token {name} is not base64url JSON") from e
    if not isinstance(decoded, dict):
        raise IDTokenParsingError(f"ID token {name} is not a JSON object")
    return decoded


def parse_id_token(token: str) -> IDToken:
    """Decode header and claims of a compact JWT without checking the signature.

    Raises:
        IDTokenParsingError: If the token isn't header.payload.signature or
            required claims are missing or mistyped
    """
    parts = token.split(".")
    if len(parts) != 3:
        raise IDTokenParsingError(
            f"ID token must have 3 dot-separated parts, got {len(parts)}"
        )

    header = _decode_segment(parts[0], "header")
    payload = _decode_segment(parts[1], "payload")
    payload.pop("header", None)

    try:
        return IDToken(header=header, **payload)
    except ValidationError as e:
        raise IDTokenParsingError(f"ID token claims are invalid: {e}") from e


def validate_id_token(
    token: str,
    issuer: str | None,
    client_id: str,
    nonce: str | None = None,
    now: float | None = None,
    clock_skew: float = DEFAULT_CLOCK_SKEW,
) -> IDToken:
    """Parse an ID token and validate its claims.

    Args:
        token: Compact serialized ID token
        issuer: Expected issuer; the iss check is skipped when None
        client_id: Client that must be in the audience
        nonce: Nonce sent in the authorization request, if any
        now: Current Unix time, defaults to time.time()
        clock_skew: Seconds iat may lie in the future

    Returns:
        IDToken: The decoded claims

    Raises:
        IDTokenParsingError: If the token is malformed
        IDTokenValidationError: If a claim check fails
    """
    id_token = parse_id_token(token)
    current = now if now is not None else time.time()

    if issuer is None:
        logger.debug("No issuer configured, skipping ID token iss check")
    elif id_token.iss != issuer:
        raise IDTokenValidationError(
            f"Issuer mismatch: expected {issuer}, got {id_token.iss}"
        )

    if client_id not in id_token.aud:
        raise IDTokenValidationError(
            f"Audience {id_token.aud} does not contain client {client_id}"
        )

    if id_token.exp <= current:
        raise IDTokenValidationError("ID token has expired")

    if id_token.iat > current + clock_skew:
        raise IDTokenValidationError(
            "ID token issued-at time is too far in the future"
        )

    if nonce is not None and id_token.nonce != nonce:
        raise IDTokenValidationError("ID token nonce does not match the request")

    return id_token
