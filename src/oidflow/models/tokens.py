"""Token request and response models (RFC 6749 Sections 4.1.3, 5 and 6)."""

from __future__ import annotations

import base64
import time
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote_plus

from pydantic import BaseModel, ConfigDict

from oidflow.models import parameters as p
from oidflow.models.configuration import ServiceConfiguration
from oidflow.models.errors import MalformedRequestError, TokenResponseConstructionError


@dataclass(frozen=True)
class TokenRequest:
    """Token endpoint request parameters.

    Immutable. The grant type decides which fields are mandatory:
    ``authorization_code`` needs a code and the redirect URI used in the
    authorization request, ``refresh_token`` needs a refresh token.
    """

    # Required fields first
    configuration: ServiceConfiguration
    grant_type: str
    client_id: str

    # Optional fields with defaults last
    redirect_uri: str | None = None
    authorization_code: str | None = None
    refresh_token: str | None = None
    code_verifier: str | None = None  # RFC 7636 PKCE
    scope: str | None = None
    client_secret: str | None = None
    additional_parameters: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.grant_type:
            raise MalformedRequestError("Token request requires grant_type")
        if not self.client_id:
            raise MalformedRequestError("Token request requires client_id")

        if self.grant_type == p.GrantTypes.AUTHORIZATION_CODE:
            if not self.redirect_uri:
                raise MalformedRequestError(
                    "authorization_code grant requires a redirect_uri"
                )
            if not self.authorization_code:
                raise MalformedRequestError(
                    "authorization_code grant requires an authorization code"
                )
        elif self.grant_type == p.GrantTypes.REFRESH_TOKEN:
            if not self.refresh_token:
                raise MalformedRequestError(
                    "refresh_token grant requires a refresh token"
                )

    @property
    def token_endpoint(self) -> str:
        return self.configuration.token_endpoint

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for application/x-www-form-urlencoded request.

        Token requests must use form encoding, not JSON (RFC 6749 Section 4.1.3).
        The client id is only sent in the body for public clients; confidential
        clients authenticate with HTTP Basic instead.

        Returns:
            Dictionary suitable for form encoding
        """
        data = {p.GRANT_TYPE: self.grant_type}

        if self.authorization_code:
            data[p.CODE] = self.authorization_code
        if self.redirect_uri:
            data[p.REDIRECT_URI] = self.redirect_uri
        if self.code_verifier:
            data[p.CODE_VERIFIER] = self.code_verifier
        if self.refresh_token:
            data[p.REFRESH_TOKEN] = self.refresh_token
        if self.scope:
            data[p.SCOPE] = self.scope
        if not self.client_secret:
            data[p.CLIENT_ID] = self.client_id

        data.update(self.additional_parameters)
        return data

    def http_headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }
        if self.client_secret:
            # RFC 6749 Section 2.3.1: both parts are form-encoded first.
            credentials = (
                f"{quote_plus(self.client_id)}:{quote_plus(self.client_secret)}"
            )
            encoded = base64.b64encode(credentials.encode("utf-8")).decode("ascii")
            headers["Authorization"] = f"Basic {encoded}"
        return headers


class TokenResponse(BaseModel):
    """Successful token response (RFC 6749 Section 5.1).

    Error responses never become a TokenResponse; they are raised as
    OAuthTokenError by the error classifier.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    request: TokenRequest
    access_token: str
    token_type: str | None = None
    access_token_expires_at: float | None = None  # Unix timestamp
    refresh_token: str | None = None
    id_token: str | None = None
    scope: str | None = None

    @classmethod
    def from_json(
        cls,
        request: TokenRequest,
        data: dict[str, Any],
        now: float | None = None,
    ) -> TokenResponse:
        """Build from a parsed token endpoint body.

        Raises:
            TokenResponseConstructionError: If access_token is missing or a
                field has the wrong type
        """
        if not data.get(p.ACCESS_TOKEN):
            raise TokenResponseConstructionError(
                "Token response missing required access_token"
            )

        expires_at = None
        if data.get(p.EXPIRES_IN) is not None:
            try:
                expires_in = int(data[p.EXPIRES_IN])
            except (TypeError, ValueError) as e:
                raise TokenResponseConstructionError(
                    f"Invalid expires_in in token response: {data[p.EXPIRES_IN]!r}"
                ) from e
            expires_at = (now if now is not None else time.time()) + expires_in

        known = {
            p.ACCESS_TOKEN,
            p.TOKEN_TYPE,
            p.EXPIRES_IN,
            p.REFRESH_TOKEN,
            p.ID_TOKEN,
            p.SCOPE,
        }
        extras = {
            key: value
            for key, value in data.items()
            if key not in known and key not in cls.model_fields
        }

        try:
            return cls(
                request=request,
                access_token=data[p.ACCESS_TOKEN],
                token_type=data.get(p.TOKEN_TYPE),
                access_token_expires_at=expires_at,
                refresh_token=data.get(p.REFRESH_TOKEN),
                id_token=data.get(p.ID_TOKEN),
                scope=data.get(p.SCOPE),
                **extras,
            )
        except ValueError as e:
            raise TokenResponseConstructionError(
                f"Invalid token response format: {e}"
            ) from e

    @property
    def additional_parameters(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    def is_access_token_fresh(
        self, buffer_seconds: float = 60.0, now: float | None = None
    ) -> bool:
        """Check if access token is valid with a safety buffer.

        Args:
            buffer_seconds: Treat the token as expired this many seconds early
            now: Current Unix time, defaults to time.time()
        """
        if self.access_token_expires_at is None:
            return True  # No expiry means token doesn't expire

        current = now if now is not None else time.time()
        return current < (self.access_token_expires_at - buffer_seconds)
