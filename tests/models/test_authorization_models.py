"""Tests for authorization request and response models.

High-impact tests covering:
- Factory generated state, nonce and PKCE parameters
- Mandatory field validation
- Authorization URL construction
- Redirect parameter parsing and code exchange requests
"""

from urllib.parse import parse_qs, urlparse

import pytest

from oidflow.models.authorization import AuthorizationRequest, AuthorizationResponse
from oidflow.models.errors import JSONDeserializationError, MalformedRequestError
from oidflow.primitives.pkce import code_challenge
from tests.conftest import CLIENT_ID, ISSUER, REDIRECT_URI, make_configuration


class TestAuthorizationRequest:
    def setup_method(self):
        self.configuration = make_configuration()

    def test_create_generates_security_parameters(self) -> None:
        # Act
        request = AuthorizationRequest.create(
            self.configuration, CLIENT_ID, REDIRECT_URI, scopes=["openid", "email"]
        )

        # Assert
        assert request.scope == "openid email"
        assert request.state
        assert request.nonce
        assert request.code_challenge_method == "S256"
        assert request.code_challenge == code_challenge(request.code_verifier)

    def test_create_generates_unique_state_per_request(self) -> None:
        first = AuthorizationRequest.create(self.configuration, CLIENT_ID, REDIRECT_URI)
        second = AuthorizationRequest.create(self.configuration, CLIENT_ID, REDIRECT_URI)

        assert first.state != second.state

    def test_no_nonce_without_openid_scope(self) -> None:
        request = AuthorizationRequest.create(
            self.configuration, CLIENT_ID, REDIRECT_URI, scopes="profile"
        )

        assert request.nonce is None

    def test_no_pkce_for_implicit_flow(self) -> None:
        request = AuthorizationRequest.create(
            self.configuration,
            CLIENT_ID,
            REDIRECT_URI,
            scopes=["openid"],
            response_type="id_token",
        )

        assert request.code_verifier is None
        assert request.code_challenge is None

    def test_challenge_method_without_verifier_is_malformed(self) -> None:
        with pytest.raises(MalformedRequestError, match="code_verifier"):
            AuthorizationRequest(
                configuration=self.configuration,
                client_id=CLIENT_ID,
                redirect_uri=REDIRECT_URI,
                response_type="code",
                state="state-1",
                code_challenge_method="S256",
            )

    def test_challenge_is_derived_from_verifier(self) -> None:
        request = AuthorizationRequest(
            configuration=self.configuration,
            client_id=CLIENT_ID,
            redirect_uri=REDIRECT_URI,
            response_type="code",
            state="state-1",
            code_verifier="dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk",
            code_challenge_method="S256",
        )

        assert request.code_challenge == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    @pytest.mark.parametrize("missing", ["client_id", "redirect_uri", "state"])
    def test_missing_required_fields(self, missing: str) -> None:
        values = {
            "configuration": self.configuration,
            "client_id": CLIENT_ID,
            "redirect_uri": REDIRECT_URI,
            "response_type": "code",
            "state": "state-1",
        }
        values[missing] = ""

        with pytest.raises(MalformedRequestError):
            AuthorizationRequest(**values)

    def test_authorization_url_contains_all_parameters(self) -> None:
        # Arrange
        request = AuthorizationRequest.create(
            self.configuration,
            CLIENT_ID,
            REDIRECT_URI,
            scopes=["openid"],
            additional_parameters={"prompt": "login"},
        )

        # Act
        url = request.authorization_request_url()

        # Assert
        parsed = urlparse(url)
        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == f"{ISSUER}/authorize"
        params = parse_qs(parsed.query)
        assert params["response_type"] == ["code"]
        assert params["client_id"] == [CLIENT_ID]
        assert params["redirect_uri"] == [REDIRECT_URI]
        assert params["state"] == [request.state]
        assert params["nonce"] == [request.nonce]
        assert params["code_challenge"] == [request.code_challenge]
        assert params["code_challenge_method"] == ["S256"]
        assert params["prompt"] == ["login"]
        assert "code_verifier" not in params

    def test_authorization_url_keeps_existing_query(self) -> None:
        configuration = make_configuration(
            authorization_endpoint=f"{ISSUER}/authorize?tenant=a"
        )
        request = AuthorizationRequest.create(configuration, CLIENT_ID, REDIRECT_URI)

        url = request.authorization_request_url()

        assert url.startswith(f"{ISSUER}/authorize?tenant=a&")


class TestAuthorizationResponse:
    def setup_method(self):
        self.request = AuthorizationRequest.create(
            make_configuration(), CLIENT_ID, REDIRECT_URI, scopes=["openid"]
        )

    def test_from_parameters_preserves_unknown_fields(self) -> None:
        # Act
        response = AuthorizationResponse.from_parameters(
            self.request,
            {
                "code": "auth-code-123",
                "state": self.request.state,
                "session_state": "abc",
            },
        )

        # Assert
        assert response.authorization_code == "auth-code-123"
        assert response.state == self.request.state
        assert response.additional_parameters == {"session_state": "abc"}

    def test_implicit_tokens_get_absolute_expiry(self) -> None:
        response = AuthorizationResponse.from_parameters(
            self.request,
            {"access_token": "at", "token_type": "Bearer", "expires_in": "3600"},
            now=1000.0,
        )

        assert response.access_token == "at"
        assert response.access_token_expires_at == 4600.0

    def test_invalid_expires_in(self) -> None:
        with pytest.raises(JSONDeserializationError):
            AuthorizationResponse.from_parameters(
                self.request, {"access_token": "at", "expires_in": "soon"}
            )

    def test_token_exchange_request(self) -> None:
        # Arrange
        response = AuthorizationResponse.from_parameters(
            self.request, {"code": "auth-code-123", "state": self.request.state}
        )

        # Act
        token_request = response.token_exchange_request({"resource": "api"})

        # Assert
        assert token_request.grant_type == "authorization_code"
        assert token_request.authorization_code == "auth-code-123"
        assert token_request.redirect_uri == REDIRECT_URI
        assert token_request.code_verifier == self.request.code_verifier
        assert token_request.additional_parameters == {"resource": "api"}

    def test_token_exchange_without_code(self) -> None:
        response = AuthorizationResponse.from_parameters(
            self.request, {"access_token": "at"}
        )

        with pytest.raises(MalformedRequestError):
            response.token_exchange_request()
