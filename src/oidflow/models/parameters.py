"""Protocol vocabulary shared by requests and responses."""

from __future__ import annotations


class GrantTypes:
    """grant_type values (RFC 6749)."""

    AUTHORIZATION_CODE = "authorization_code"
    REFRESH_TOKEN = "refresh_token"
    PASSWORD = "password"
    CLIENT_CREDENTIALS = "client_credentials"


class ResponseTypes:
    """response_type values (RFC 6749, OAuth 2.0 Multiple Response Types)."""

    CODE = "code"
    TOKEN = "token"
    ID_TOKEN = "id_token"


class Scopes:
    """Standard OpenID Connect scopes."""

    OPENID = "openid"
    PROFILE = "profile"
    EMAIL = "email"
    ADDRESS = "address"
    PHONE = "phone"
    OFFLINE_ACCESS = "offline_access"


class ClientMetadataParameters:
    """Dynamic client registration metadata names (OIDC Registration 2)."""

    TOKEN_ENDPOINT_AUTH_METHOD = "token_endpoint_auth_method"
    APPLICATION_TYPE = "application_type"
    REDIRECT_URIS = "redirect_uris"
    RESPONSE_TYPES = "response_types"
    GRANT_TYPES = "grant_types"
    SUBJECT_TYPE = "subject_type"
    CLIENT_NAME = "client_name"

    APPLICATION_TYPE_NATIVE = "native"


# Form/query parameter names.
CLIENT_ID = "client_id"
CLIENT_SECRET = "client_secret"
REDIRECT_URI = "redirect_uri"
RESPONSE_TYPE = "response_type"
SCOPE = "scope"
STATE = "state"
NONCE = "nonce"
CODE = "code"
CODE_VERIFIER = "code_verifier"
CODE_CHALLENGE = "code_challenge"
CODE_CHALLENGE_METHOD = "code_challenge_method"
GRANT_TYPE = "grant_type"
REFRESH_TOKEN = "refresh_token"
ACCESS_TOKEN = "access_token"
ID_TOKEN = "id_token"
TOKEN_TYPE = "token_type"
EXPIRES_IN = "expires_in"
ID_TOKEN_HINT = "id_token_hint"
POST_LOGOUT_REDIRECT_URI = "post_logout_redirect_uri"
