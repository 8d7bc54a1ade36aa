"""Exception hierarchy for OAuth 2.0 / OpenID Connect client errors.

Every error carries an ErrorDomain. Only errors in the OAuth domains
(authorization, token, registration, resource server) invalidate an
AuthState; everything else is transient or a caller bug.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorDomain(str, Enum):
    GENERAL = "general"
    OAUTH_AUTHORIZATION = "oauth_authorization"
    OAUTH_TOKEN = "oauth_token"
    OAUTH_REGISTRATION = "oauth_registration"
    RESOURCE_SERVER_AUTHORIZATION = "resource_server_authorization"
    HTTP = "http"


class OAuthErrorCode(str, Enum):
    """OAuth error codes (RFC 6749 Section 11.4, OIDC Registration 3.3)."""

    INVALID_REQUEST = "invalid_request"
    UNAUTHORIZED_CLIENT = "unauthorized_client"
    ACCESS_DENIED = "access_denied"
    UNSUPPORTED_RESPONSE_TYPE = "unsupported_response_type"
    INVALID_SCOPE = "invalid_scope"
    SERVER_ERROR = "server_error"
    TEMPORARILY_UNAVAILABLE = "temporarily_unavailable"
    INVALID_CLIENT = "invalid_client"
    INVALID_GRANT = "invalid_grant"
    UNSUPPORTED_GRANT_TYPE = "unsupported_grant_type"
    INVALID_REDIRECT_URI = "invalid_redirect_uri"
    INVALID_CLIENT_METADATA = "invalid_client_metadata"

    # Raised on the client side, e.g. state mismatch.
    CLIENT_ERROR = "client_error"
    # Well-formed OAuth error with a code this library doesn't know.
    OTHER = "other"


class OAuth2Error(Exception):
    """Base exception for all OAuth 2.0 related errors."""

    domain: ErrorDomain = ErrorDomain.GENERAL

    @property
    def invalidates_authorization(self) -> bool:
        return False


class MalformedRequestError(OAuth2Error, ValueError):
    """Raised when a protocol message is built without its mandatory fields.

    Always a caller bug, never retried.
    """

    pass


class NetworkError(OAuth2Error):
    """Raised when the transport could not complete the exchange.

    DNS failures, timeouts and TLS errors end up here. Transient.
    """

    pass


class HTTPError(OAuth2Error):
    """Raised for a non-2xx response that isn't an OAuth error body."""

    domain = ErrorDomain.HTTP

    def __init__(self, status_code: int, body: bytes = b"", message: str | None = None):
        super().__init__(message or f"HTTP {status_code}")
        self.status_code = status_code
        self.body = body


class JSONDeserializationError(OAuth2Error):
    """Raised when a response or snapshot could not be parsed."""

    pass


class JSONSerializationError(OAuth2Error):
    """Raised when a request body could not be serialized."""

    pass


class InvalidDiscoveryDocumentError(OAuth2Error):
    """Raised when a discovery document is missing fields or names the wrong issuer."""

    pass


class TokenResponseConstructionError(OAuth2Error):
    """Raised when a 2xx token response can't be turned into a TokenResponse."""

    pass


class RegistrationResponseConstructionError(OAuth2Error):
    """Raised when a 2xx registration response lacks required fields."""

    pass


class IDTokenParsingError(OAuth2Error):
    """Raised when an ID token is not a well-formed compact JWT."""

    pass


class IDTokenValidationError(OAuth2Error):
    """Raised when ID token claims fail validation (issuer, audience, expiry...)."""

    pass


class FlowCancelledError(OAuth2Error):
    """Base for flows terminated before a redirect was received."""

    pass


class UserCancelledFlowError(FlowCancelledError):
    """Raised when the user dismissed the external user-agent."""

    pass


class ProgramCancelledFlowError(FlowCancelledError):
    """Raised when the application cancelled the flow."""

    pass


class UserAgentLaunchError(OAuth2Error):
    """Raised when the external user-agent could not be opened."""

    pass


class FlowAlreadyCompletedError(OAuth2Error):
    """Raised when a finished user-agent session receives another redirect."""

    pass


class TokenRefreshError(OAuth2Error):
    """Raised when a token refresh can't be attempted."""

    pass


class MissingRefreshTokenError(TokenRefreshError):
    """Raised when a refresh is needed but no refresh token is stored."""

    pass


class OAuthError(OAuth2Error):
    """An explicit OAuth error returned by (or attributed to) a server.

    Holds the raw ``error`` string next to the mapped code so custom codes
    from extensions stay inspectable.
    """

    # Codes this endpoint is known to return; anything else maps to OTHER.
    known_codes: frozenset[OAuthErrorCode] = frozenset()

    def __init__(
        self,
        code: OAuthErrorCode,
        error: str | None = None,
        error_description: str | None = None,
        error_uri: str | None = None,
        error_response: dict[str, Any] | None = None,
    ):
        self.code = code
        self.error = error or code.value
        self.error_description = error_description
        self.error_uri = error_uri
        self.error_response = error_response or {}

        message = self.error
        if error_description:
            message += f": {error_description}"
        if error_uri:
            message += f" (see {error_uri})"
        super().__init__(message)

    @property
    def invalidates_authorization(self) -> bool:
        return True

    @classmethod
    def code_for(cls, error: str | None) -> OAuthErrorCode:
        """Map a raw error string to a known code for this endpoint."""
        try:
            code = OAuthErrorCode(error)
        except ValueError:
            return OAuthErrorCode.OTHER
        if code in cls.known_codes:
            return code
        return OAuthErrorCode.OTHER

    @classmethod
    def from_response(cls, error_response: dict[str, Any]) -> OAuthError:
        """Build from an RFC 6749 Section 5.2 error dictionary."""
        error = error_response.get("error")
        return cls(
            code=cls.code_for(error),
            error=str(error) if error is not None else None,
            error_description=error_response.get("error_description"),
            error_uri=error_response.get("error_uri"),
            error_response=dict(error_response),
        )

    @classmethod
    def client_error(cls, description: str) -> OAuthError:
        return cls(
            code=OAuthErrorCode.CLIENT_ERROR,
            error_description=description,
        )


class OAuthAuthorizationError(OAuthError):
    """OAuth error from the authorization endpoint (RFC 6749 Section 4.1.2.1)."""

    domain = ErrorDomain.OAUTH_AUTHORIZATION
    known_codes = frozenset(
        {
            OAuthErrorCode.INVALID_REQUEST,
            OAuthErrorCode.UNAUTHORIZED_CLIENT,
            OAuthErrorCode.ACCESS_DENIED,
            OAuthErrorCode.UNSUPPORTED_RESPONSE_TYPE,
            OAuthErrorCode.INVALID_SCOPE,
            OAuthErrorCode.SERVER_ERROR,
            OAuthErrorCode.TEMPORARILY_UNAVAILABLE,
        }
    )


class OAuthTokenError(OAuthError):
    """OAuth error from the token endpoint (RFC 6749 Section 5.2)."""

    domain = ErrorDomain.OAUTH_TOKEN
    known_codes = frozenset(
        {
            OAuthErrorCode.INVALID_REQUEST,
            OAuthErrorCode.INVALID_CLIENT,
            OAuthErrorCode.INVALID_GRANT,
            OAuthErrorCode.UNAUTHORIZED_CLIENT,
            OAuthErrorCode.UNSUPPORTED_GRANT_TYPE,
            OAuthErrorCode.INVALID_SCOPE,
        }
    )


class OAuthRegistrationError(OAuthError):
    """OAuth error from the registration endpoint (OIDC Registration 3.3)."""

    domain = ErrorDomain.OAUTH_REGISTRATION
    known_codes = frozenset(
        {
            OAuthErrorCode.INVALID_REQUEST,
            OAuthErrorCode.INVALID_REDIRECT_URI,
            OAuthErrorCode.INVALID_CLIENT_METADATA,
        }
    )


class ResourceServerAuthorizationError(OAuthError):
    """Authorization failure reported out of band by a resource server.

    Build one of these when an API call comes back with e.g. 401
    invalid_token and pass it to AuthState.update_with_authorization_error.
    """

    domain = ErrorDomain.RESOURCE_SERVER_AUTHORIZATION
    known_codes = frozenset(OAuthErrorCode) - {OAuthErrorCode.OTHER}
