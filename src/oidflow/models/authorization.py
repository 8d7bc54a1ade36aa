"""Authorization flow models for OAuth 2.0 / OpenID Connect.

Contains the authorization request, its parsed redirect response, and the
protocol every request presented in an external user-agent implements.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict

from oidflow.models import parameters as p
from oidflow.models.configuration import ServiceConfiguration
from oidflow.models.errors import JSONDeserializationError, MalformedRequestError
from oidflow.models.tokens import TokenRequest
from oidflow.primitives.pkce import S256, PKCEParameters, code_challenge
from oidflow.primitives.scopes import scopes_from_string, scopes_to_string
from oidflow.primitives.security import generate_nonce, generate_state


class ExternalUserAgentRequest(Protocol):
    """A request that is completed by a redirect back from a browser."""

    @property
    def redirect_uri(self) -> str: ...

    @property
    def state(self) -> str | None: ...

    def external_user_agent_request_url(self) -> str: ...


def build_url(endpoint: str, params: dict[str, str]) -> str:
    """Append query parameters to an endpoint that may already have some."""
    separator = "&" if "?" in endpoint else "?"
    return f"{endpoint}{separator}{urlencode(params)}"


@dataclass(frozen=True)
class AuthorizationRequest:
    """Authorization request parameters (RFC 6749 Section 4.1.1, OIDC 3.1.2.1).

    Use ``create`` to get a request with a freshly generated state, nonce
    and PKCE pair. The constructor takes every value as given.
    """

    configuration: ServiceConfiguration
    client_id: str
    redirect_uri: str
    response_type: str
    state: str
    scope: str | None = None
    client_secret: str | None = None
    nonce: str | None = None
    code_verifier: str | None = None  # RFC 7636 PKCE
    code_challenge: str | None = None
    code_challenge_method: str | None = None
    additional_parameters: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.client_id:
            raise MalformedRequestError("Authorization request requires client_id")
        if not self.redirect_uri:
            raise MalformedRequestError("Authorization request requires redirect_uri")
        if not self.response_type:
            raise MalformedRequestError("Authorization request requires response_type")
        if not self.state:
            raise MalformedRequestError("Authorization request requires state")

        if self.code_challenge_method and not self.code_verifier:
            raise MalformedRequestError(
                "code_challenge_method given without a code_verifier"
            )
        derive_challenge = self.code_verifier and self.code_challenge_method
        if derive_challenge and not self.code_challenge:
            object.__setattr__(
                self,
                "code_challenge",
                code_challenge(self.code_verifier, self.code_challenge_method),
            )

    @classmethod
    def create(
        cls,
        configuration: ServiceConfiguration,
        client_id: str,
        redirect_uri: str,
        scopes: list[str] | str | None = None,
        response_type: str = p.ResponseTypes.CODE,
        client_secret: str | None = None,
        code_challenge_method: str | None = S256,
        additional_parameters: dict[str, str] | None = None,
    ) -> AuthorizationRequest:
        """Build a request with generated state, nonce and PKCE parameters.

        A nonce is generated when the ``openid`` scope is requested. PKCE is
        used for any response type containing ``code`` unless
        ``code_challenge_method`` is None.
        """
        if isinstance(scopes, list):
            scope = scopes_to_string(scopes)
        else:
            scope = scopes
        openid = p.Scopes.OPENID in scopes_from_string(scope)

        pkce = None
        if code_challenge_method and p.ResponseTypes.CODE in response_type.split():
            pkce = PKCEParameters.generate(code_challenge_method)

        return cls(
            configuration=configuration,
            client_id=client_id,
            redirect_uri=redirect_uri,
            response_type=response_type,
            state=generate_state(),
            scope=scope,
            client_secret=client_secret,
            nonce=generate_nonce() if openid else None,
            code_verifier=pkce.code_verifier if pkce else None,
            code_challenge=pkce.code_challenge if pkce else None,
            code_challenge_method=pkce.code_challenge_method if pkce else None,
            additional_parameters=dict(additional_parameters or {}),
        )

    def to_query_parameters(self) -> dict[str, str]:
        params = {
            p.RESPONSE_TYPE: self.response_type,
            p.CLIENT_ID: self.client_id,
            p.REDIRECT_URI: self.redirect_uri,
            p.STATE: self.state,
        }

        # Add optional parameters
        if self.scope:
            params[p.SCOPE] = self.scope
        if self.nonce:
            params[p.NONCE] = self.nonce
        if self.code_challenge:
            params[p.CODE_CHALLENGE] = self.code_challenge
        if self.code_challenge_method:
            params[p.CODE_CHALLENGE_METHOD] = self.code_challenge_method

        params.update(self.additional_parameters)
        return params

    def authorization_request_url(self) -> str:
        """Build the complete authorization URL."""
        return build_url(
            self.configuration.authorization_endpoint, self.to_query_parameters()
        )

    def external_user_agent_request_url(self) -> str:
        return self.authorization_request_url()


class AuthorizationResponse(BaseModel):
    """Parameters returned on the redirect URI (RFC 6749 Section 4.1.2).

    Carries a code for the code flow and/or tokens for the implicit and
    hybrid flows. Parameters this model doesn't know are kept in
    ``additional_parameters``.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    request: AuthorizationRequest
    authorization_code: str | None = None
    state: str | None = None
    access_token: str | None = None
    access_token_expires_at: float | None = None  # Unix timestamp
    token_type: str | None = None
    id_token: str | None = None
    scope: str | None = None

    @classmethod
    def from_parameters(
        cls,
        request: AuthorizationRequest,
        parameters: dict[str, str],
        now: float | None = None,
    ) -> AuthorizationResponse:
        """Build from the query/fragment parameters of a redirect URL.

        Raises:
            JSONDeserializationError: If expires_in is not an integer
        """
        expires_at = None
        if p.EXPIRES_IN in parameters:
            try:
                expires_in = int(parameters[p.EXPIRES_IN])
            except (TypeError, ValueError) as e:
                raise JSONDeserializationError(
                    f"Invalid expires_in in authorization response: "
                    f"{parameters[p.EXPIRES_IN]!r}"
                ) from e
            expires_at = (now if now is not None else time.time()) + expires_in

        known = {
            p.CODE,
            p.STATE,
            p.ACCESS_TOKEN,
            p.EXPIRES_IN,
            p.TOKEN_TYPE,
            p.ID_TOKEN,
            p.SCOPE,
        }
        extras = {
            key: value
            for key, value in parameters.items()
            if key not in known and key not in cls.model_fields
        }

        return cls(
            request=request,
            authorization_code=parameters.get(p.CODE),
            state=parameters.get(p.STATE),
            access_token=parameters.get(p.ACCESS_TOKEN),
            access_token_expires_at=expires_at,
            token_type=parameters.get(p.TOKEN_TYPE),
            id_token=parameters.get(p.ID_TOKEN),
            scope=parameters.get(p.SCOPE),
            **extras,
        )

    @property
    def additional_parameters(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    def token_exchange_request(
        self, additional_parameters: dict[str, str] | None = None
    ) -> TokenRequest:
        """Build the authorization_code grant request for this response.

        Raises:
            MalformedRequestError: If the response carries no authorization code
        """
        if not self.authorization_code:
            raise MalformedRequestError(
                "Authorization response has no code to exchange"
            )

        return TokenRequest(
            configuration=self.request.configuration,
            grant_type=p.GrantTypes.AUTHORIZATION_CODE,
            client_id=self.request.client_id,
            client_secret=self.request.client_secret,
            redirect_uri=self.request.redirect_uri,
            authorization_code=self.authorization_code,
            code_verifier=self.request.code_verifier,
            additional_parameters=dict(additional_parameters or {}),
        )
