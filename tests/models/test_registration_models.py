import pytest

from oidflow.models.configuration import DiscoveryDocument, ServiceConfiguration
from oidflow.models.end_session import EndSessionRequest, EndSessionResponse
from oidflow.models.errors import (
    MalformedRequestError,
    RegistrationResponseConstructionError,
)
from oidflow.models.registration import RegistrationRequest, RegistrationResponse
from tests.conftest import ISSUER, REDIRECT_URI, discovery_document, make_configuration


class TestRegistrationRequest:
    def test_json_body_for_native_client(self) -> None:
        # Arrange
        request = RegistrationRequest(
            configuration=make_configuration(),
            redirect_uris=[REDIRECT_URI],
            response_types=["code"],
            grant_types=["authorization_code"],
            token_endpoint_auth_method="none",
            initial_access_token="iat-1",
            additional_parameters={"client_name": "Example"},
        )

        # Act
        body = request.to_json_body()

        # Assert
        assert body == {
            "application_type": "native",
            "redirect_uris": [REDIRECT_URI],
            "response_types": ["code"],
            "grant_types": ["authorization_code"],
            "token_endpoint_auth_method": "none",
            "client_name": "Example",
        }
        assert request.http_headers()["Authorization"] == "Bearer iat-1"

    def test_requires_registration_endpoint(self) -> None:
        with pytest.raises(MalformedRequestError, match="registration endpoint"):
            RegistrationRequest(
                configuration=make_configuration(registration_endpoint=None),
                redirect_uris=[REDIRECT_URI],
            )

    def test_requires_redirect_uris(self) -> None:
        with pytest.raises(MalformedRequestError):
            RegistrationRequest(configuration=make_configuration(), redirect_uris=[])


class TestRegistrationResponse:
    def setup_method(self):
        self.request = RegistrationRequest(
            configuration=make_configuration(), redirect_uris=[REDIRECT_URI]
        )

    def test_parses_issued_credentials(self) -> None:
        response = RegistrationResponse.from_json(
            self.request,
            {
                "client_id": "new-client",
                "client_secret": "secret",
                "client_secret_expires_at": 0,
                "client_id_issued_at": 1700000000,
                "registration_access_token": "rat",
                "client_name": "Example",
            },
        )

        assert response.client_id == "new-client"
        assert response.client_secret == "secret"
        assert not response.is_secret_expired()
        assert response.additional_parameters == {"client_name": "Example"}

    def test_missing_client_id(self) -> None:
        with pytest.raises(RegistrationResponseConstructionError, match="client_id"):
            RegistrationResponse.from_json(self.request, {"client_secret": "s"})

    def test_secret_without_expiry(self) -> None:
        with pytest.raises(RegistrationResponseConstructionError):
            RegistrationResponse.from_json(
                self.request, {"client_id": "c", "client_secret": "s"}
            )

    def test_secret_expiry(self) -> None:
        response = RegistrationResponse.from_json(
            self.request,
            {"client_id": "c", "client_secret": "s", "client_secret_expires_at": 2000},
        )

        assert not response.is_secret_expired(now=1999)
        assert response.is_secret_expired(now=2000)


class TestServiceConfiguration:
    def test_requires_authorization_and_token_endpoints(self) -> None:
        with pytest.raises(ValueError):
            ServiceConfiguration(authorization_endpoint=f"{ISSUER}/authorize")

    def test_resolved_from_discovery_document(self) -> None:
        # Arrange
        document = DiscoveryDocument.model_validate(
            discovery_document(check_session_iframe=f"{ISSUER}/iframe")
        )

        # Act
        configuration = ServiceConfiguration.from_discovery_document(document)

        # Assert
        assert configuration.issuer == ISSUER
        assert configuration.token_endpoint == f"{ISSUER}/token"
        assert configuration.registration_endpoint == f"{ISSUER}/register"
        assert document.additional_parameters == {
            "check_session_iframe": f"{ISSUER}/iframe"
        }

    def test_discovery_document_requires_oidc_fields(self) -> None:
        with pytest.raises(ValueError):
            DiscoveryDocument.model_validate(discovery_document(jwks_uri=None))


class TestEndSession:
    def test_end_session_url(self) -> None:
        # Arrange
        request = EndSessionRequest.create(
            make_configuration(),
            post_logout_redirect_uri="com.example.app:/logout",
            id_token_hint="id-token",
        )

        # Act
        url = request.end_session_request_url()

        # Assert
        assert url.startswith(f"{ISSUER}/logout?")
        assert f"state={request.state}" in url
        assert "id_token_hint=id-token" in url
        assert request.redirect_uri == "com.example.app:/logout"

    def test_requires_end_session_endpoint(self) -> None:
        with pytest.raises(MalformedRequestError):
            EndSessionRequest.create(
                make_configuration(end_session_endpoint=None),
                post_logout_redirect_uri="com.example.app:/logout",
            )

    def test_response_from_parameters(self) -> None:
        request = EndSessionRequest.create(
            make_configuration(), post_logout_redirect_uri="com.example.app:/logout"
        )

        response = EndSessionResponse.from_parameters(
            request, {"state": request.state, "extra": "1"}
        )

        assert response.state == request.state
        assert response.additional_parameters == {"extra": "1"}
