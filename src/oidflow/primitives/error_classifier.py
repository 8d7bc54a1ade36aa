"""Maps transport outcomes and OAuth error bodies onto the error taxonomy.

Policy:
- non-2xx with an RFC 6749 Section 5.2 body -> endpoint-specific OAuth error
- non-2xx otherwise -> HTTPError carrying the status code
- 2xx whose body isn't a JSON object -> JSONDeserializationError
Network failures are raised by the transport as NetworkError already.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any

from oidflow.models.errors import (
    ErrorDomain,
    FlowAlreadyCompletedError,
    HTTPError,
    IDTokenParsingError,
    IDTokenValidationError,
    InvalidDiscoveryDocumentError,
    JSONDeserializationError,
    JSONSerializationError,
    MalformedRequestError,
    MissingRefreshTokenError,
    NetworkError,
    OAuth2Error,
    OAuthAuthorizationError,
    OAuthError,
    OAuthErrorCode,
    OAuthRegistrationError,
    OAuthTokenError,
    ProgramCancelledFlowError,
    RegistrationResponseConstructionError,
    ResourceServerAuthorizationError,
    TokenRefreshError,
    TokenResponseConstructionError,
    UserAgentLaunchError,
    UserCancelledFlowError,
)
from oidflow.transport import HTTPResponse

logger = logging.getLogger(__name__)


class Endpoint(str, Enum):
    AUTHORIZATION = "authorization"
    TOKEN = "token"
    REGISTRATION = "registration"
    RESOURCE_SERVER = "resource_server"


_OAUTH_ERROR_TYPES: dict[Endpoint, type[OAuthError]] = {
    Endpoint.AUTHORIZATION: OAuthAuthorizationError,
    Endpoint.TOKEN: OAuthTokenError,
    Endpoint.REGISTRATION: OAuthRegistrationError,
    Endpoint.RESOURCE_SERVER: ResourceServerAuthorizationError,
}


def oauth_error_from_response(
    endpoint: Endpoint, error_response: dict[str, Any]
) -> OAuthError:
    """Build the endpoint's OAuth error from an error dictionary."""
    return _OAUTH_ERROR_TYPES[endpoint].from_response(error_response)


def _parse_json_object(body: bytes) -> dict[str, Any] | None:
    try:
        data = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None


def classify_error_response(endpoint: Endpoint, response: HTTPResponse) -> OAuth2Error:
    """Classify a non-2xx response.

    Returns:
        The OAuth error when the body is an OAuth error object, an HTTPError
        otherwise
    """
    data = _parse_json_object(response.body)
    if data is not None and isinstance(data.get("error"), str):
        error = oauth_error_from_response(endpoint, data)
        logger.warning(
            f"{endpoint.value} endpoint returned {response.status_code}: "
            f"{error.error} - {error.error_description or 'No description provided'}"
        )
        return error

    logger.warning(
        f"{endpoint.value} endpoint returned HTTP {response.status_code} "
        f"without an OAuth error body"
    )
    return HTTPError(
        response.status_code,
        response.body,
        f"{endpoint.value} endpoint returned HTTP {response.status_code}: "
        f"{response.text[:200]}",
    )


def parse_json_body(response: HTTPResponse) -> dict[str, Any]:
    """Parse a successful response body as a JSON object.

    Raises:
        JSONDeserializationError: If the body isn't a JSON object
    """
    data = _parse_json_object(response.body)
    if data is None:
        raise JSONDeserializationError(
            f"Expected a JSON object in HTTP {response.status_code} response"
        )
    return data


def check_response(endpoint: Endpoint, response: HTTPResponse) -> dict[str, Any]:
    """Raise the classified error for a failed response, else return its JSON.

    Raises:
        OAuthError, HTTPError: For non-2xx responses
        JSONDeserializationError: For 2xx responses without a JSON object
    """
    if not response.is_success:
        raise classify_error_response(endpoint, response)
    return parse_json_body(response)


# Error (de)serialization for AuthState snapshots.

_SERIALIZABLE_ERRORS: dict[str, type[OAuth2Error]] = {
    cls.__name__: cls
    for cls in (
        OAuth2Error,
        MalformedRequestError,
        NetworkError,
        HTTPError,
        JSONDeserializationError,
        JSONSerializationError,
        InvalidDiscoveryDocumentError,
        TokenResponseConstructionError,
        RegistrationResponseConstructionError,
        IDTokenParsingError,
        IDTokenValidationError,
        UserCancelledFlowError,
        ProgramCancelledFlowError,
        UserAgentLaunchError,
        FlowAlreadyCompletedError,
        TokenRefreshError,
        MissingRefreshTokenError,
        OAuthAuthorizationError,
        OAuthTokenError,
        OAuthRegistrationError,
        ResourceServerAuthorizationError,
    )
}


def error_to_dict(error: OAuth2Error) -> dict[str, Any]:
    data: dict[str, Any] = {
        "type": type(error).__name__,
        "domain": error.domain.value,
        "message": str(error),
    }
    if isinstance(error, OAuthError):
        data.update(
            code=error.code.value,
            error=error.error,
            error_description=error.error_description,
            error_uri=error.error_uri,
            error_response=error.error_response,
        )
    elif isinstance(error, HTTPError):
        data["status_code"] = error.status_code
    return data


def error_from_dict(data: dict[str, Any]) -> OAuth2Error:
    """Rebuild an error serialized by error_to_dict.

    Raises:
        JSONDeserializationError: If the entry, its type or its code is invalid
    """
    if not isinstance(data, dict):
        raise JSONDeserializationError(f"Error entry is not an object: {data!r}")
    cls = _SERIALIZABLE_ERRORS.get(data.get("type", ""))
    if cls is None:
        raise JSONDeserializationError(f"Unknown error type in snapshot: {data!r}")

    if issubclass(cls, OAuthError):
        try:
            code = OAuthErrorCode(data["code"])
        except (KeyError, ValueError) as e:
            raise JSONDeserializationError(
                f"Invalid OAuth error code in snapshot: {data!r}"
            ) from e
        return cls(
            code=code,
            error=data.get("error"),
            error_description=data.get("error_description"),
            error_uri=data.get("error_uri"),
            error_response=data.get("error_response"),
        )
    if issubclass(cls, HTTPError):
        return cls(data["status_code"], message=data.get("message"))
    return cls(data.get("message", ""))


def is_in_domain(error: BaseException | None, domain: ErrorDomain) -> bool:
    return isinstance(error, OAuth2Error) and error.domain is domain
