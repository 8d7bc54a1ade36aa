"""Tests for token request and response models.

High-impact tests covering:
- Grant specific mandatory fields
- Form encoding and client authentication
- Token response parsing, extras and freshness
"""

import base64

import pytest

from oidflow.models.errors import MalformedRequestError, TokenResponseConstructionError
from oidflow.models.tokens import TokenRequest, TokenResponse
from tests.conftest import CLIENT_ID, REDIRECT_URI, make_configuration


def code_request(**overrides) -> TokenRequest:
    values = {
        "configuration": make_configuration(),
        "grant_type": "authorization_code",
        "client_id": CLIENT_ID,
        "redirect_uri": REDIRECT_URI,
        "authorization_code": "auth-code-123",
        "code_verifier": "verifier",
    }
    values.update(overrides)
    return TokenRequest(**values)


class TestTokenRequest:
    def test_authorization_code_requires_redirect_uri(self) -> None:
        with pytest.raises(MalformedRequestError, match="redirect_uri"):
            code_request(redirect_uri=None)

    def test_authorization_code_requires_code(self) -> None:
        with pytest.raises(MalformedRequestError, match="authorization code"):
            code_request(authorization_code=None)

    def test_refresh_requires_refresh_token(self) -> None:
        with pytest.raises(MalformedRequestError, match="refresh token"):
            TokenRequest(
                configuration=make_configuration(),
                grant_type="refresh_token",
                client_id=CLIENT_ID,
            )

    def test_public_client_form_data(self) -> None:
        # Act
        request = code_request(additional_parameters={"resource": "api"})

        # Assert
        assert request.to_form_data() == {
            "grant_type": "authorization_code",
            "code": "auth-code-123",
            "redirect_uri": REDIRECT_URI,
            "code_verifier": "verifier",
            "client_id": CLIENT_ID,
            "resource": "api",
        }
        assert "Authorization" not in request.http_headers()
        assert (
            request.http_headers()["Content-Type"]
            == "application/x-www-form-urlencoded"
        )

    def test_confidential_client_uses_basic_auth(self) -> None:
        # Arrange
        request = code_request(client_secret="s3cr&t")

        # Act
        headers = request.http_headers()

        # Assert
        encoded = headers["Authorization"].removeprefix("Basic ")
        assert base64.b64decode(encoded).decode() == f"{CLIENT_ID}:s3cr%26t"
        assert "client_id" not in request.to_form_data()
        assert "client_secret" not in request.to_form_data()


class TestTokenResponse:
    def setup_method(self):
        self.request = code_request()

    def test_from_json_with_all_fields(self) -> None:
        # Act
        response = TokenResponse.from_json(
            self.request,
            {
                "access_token": "access-token-xyz",
                "token_type": "Bearer",
                "expires_in": 3600,
                "refresh_token": "refresh-token-abc",
                "scope": "openid email",
                "custom": {"nested": True},
            },
            now=1000.0,
        )

        # Assert
        assert response.access_token == "access-token-xyz"
        assert response.token_type == "Bearer"
        assert response.access_token_expires_at == 4600.0
        assert response.refresh_token == "refresh-token-abc"
        assert response.scope == "openid email"
        assert response.additional_parameters == {"custom": {"nested": True}}

    def test_missing_access_token(self) -> None:
        with pytest.raises(TokenResponseConstructionError, match="access_token"):
            TokenResponse.from_json(self.request, {"token_type": "Bearer"})

    def test_invalid_expires_in(self) -> None:
        with pytest.raises(TokenResponseConstructionError):
            TokenResponse.from_json(
                self.request, {"access_token": "at", "expires_in": "never"}
            )

    def test_freshness_uses_safety_buffer(self) -> None:
        response = TokenResponse.from_json(
            self.request, {"access_token": "at", "expires_in": 100}, now=1000.0
        )

        assert response.is_access_token_fresh(now=1039.0)
        assert not response.is_access_token_fresh(now=1040.0)

    def test_no_expiry_is_always_fresh(self) -> None:
        response = TokenResponse.from_json(self.request, {"access_token": "at"})

        assert response.is_access_token_fresh()
