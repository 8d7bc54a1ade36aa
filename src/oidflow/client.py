"""OpenID Connect client orchestration.

Coordinates discovery, dynamic registration, authorization and code exchange
to produce an AuthState in a few calls.
"""

from __future__ import annotations

import logging

from oidflow.config import ClientSettings
from oidflow.models import parameters as p
from oidflow.models.authorization import AuthorizationRequest
from oidflow.models.configuration import ServiceConfiguration
from oidflow.models.end_session import EndSessionRequest, EndSessionResponse
from oidflow.models.errors import MalformedRequestError
from oidflow.models.registration import RegistrationRequest, RegistrationResponse
from oidflow.services.auth_state import AuthState
from oidflow.services.authorization import AuthorizationService
from oidflow.services.user_agent import ExternalUserAgent

logger = logging.getLogger(__name__)


class OIDClient:
    """High-level client for one OpenID Provider.

    Resolves the provider configuration, registers the client when no client
    id is configured, and runs authorization flows that end in an AuthState.
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        service: AuthorizationService | None = None,
        configuration: ServiceConfiguration | None = None,
    ):
        """Initialize the client.

        Args:
            settings: Client settings; read from the environment if omitted
            service: Service to use; one is created from the settings if omitted
            configuration: Known provider configuration, skipping discovery
        """
        self.settings = settings or ClientSettings.from_env()
        self.service = service or AuthorizationService(
            timeout=self.settings.timeout, clock_skew=self.settings.clock_skew
        )
        self.configuration = configuration
        self.registration: RegistrationResponse | None = None

    @property
    def client_id(self) -> str | None:
        if self.registration is not None:
            return self.registration.client_id
        return self.settings.client_id

    @property
    def client_secret(self) -> str | None:
        if self.registration is not None:
            return self.registration.client_secret
        return self.settings.client_secret

    async def discover(self) -> ServiceConfiguration:
        """Fetch and cache the provider configuration.

        Raises:
            MalformedRequestError: If neither issuer nor discovery_url is set
            InvalidDiscoveryDocumentError: If the document is invalid
            NetworkError: If it couldn't be fetched
        """
        if self.configuration is not None:
            return self.configuration

        if self.settings.discovery_url:
            configuration = await self.service.discover_from_url(
                self.settings.discovery_url
            )
        elif self.settings.issuer:
            configuration = await self.service.discover(self.settings.issuer)
        else:
            raise MalformedRequestError(
                "Settings need an issuer or a discovery_url to discover"
            )

        self.configuration = configuration
        logger.info(f"Discovered configuration for {configuration.issuer}")
        return configuration

    async def register(
        self,
        redirect_uris: list[str] | None = None,
        initial_access_token: str | None = None,
        additional_parameters: dict | None = None,
    ) -> RegistrationResponse:
        """Register this client dynamically and keep the issued credentials.

        Raises:
            MalformedRequestError: If the provider has no registration endpoint
            OAuthRegistrationError: If the provider rejected the metadata
        """
        configuration = await self.discover()

        metadata = {p.ClientMetadataParameters.CLIENT_NAME: self.settings.client_name}
        metadata.update(additional_parameters or {})

        request = RegistrationRequest(
            configuration=configuration,
            redirect_uris=redirect_uris or [self.settings.redirect_uri],
            response_types=[p.ResponseTypes.CODE],
            grant_types=[
                p.GrantTypes.AUTHORIZATION_CODE,
                p.GrantTypes.REFRESH_TOKEN,
            ],
            token_endpoint_auth_method="none",
            initial_access_token=initial_access_token,
            additional_parameters=metadata,
        )

        self.registration = await self.service.perform_registration_request(request)
        return self.registration

    async def build_authorization_request(
        self,
        scopes: list[str] | None = None,
        response_type: str = p.ResponseTypes.CODE,
        additional_parameters: dict[str, str] | None = None,
    ) -> AuthorizationRequest:
        """Build an authorization request with fresh state, nonce and PKCE.

        Registers the client first when no client id is known.
        """
        configuration = await self.discover()
        if self.client_id is None:
            logger.debug("No client id configured, registering client")
            await self.register()

        return AuthorizationRequest.create(
            configuration=configuration,
            client_id=self.client_id,
            redirect_uri=self.settings.redirect_uri,
            scopes=scopes if scopes is not None else list(self.settings.scopes),
            response_type=response_type,
            client_secret=self.client_secret,
            additional_parameters=additional_parameters,
        )

    async def authenticate(
        self,
        user_agent: ExternalUserAgent,
        request: AuthorizationRequest | None = None,
    ) -> AuthState:
        """Run an authorization flow and return the resulting AuthState.

        Performs the complete flow:
        1. Discover the provider configuration
        2. Register the client if needed
        3. Present the authorization request in the user-agent
        4. Exchange the code for tokens

        Raises:
            Various OAuth errors if authentication fails
        """
        if request is None:
            request = await self.build_authorization_request()

        logger.info(f"Starting authorization for client {request.client_id}")
        auth_state = await AuthState.authorize(
            self.service,
            request,
            user_agent,
            registration_response=self.registration,
            expiry_tolerance=self.settings.expiry_tolerance,
        )
        logger.info(f"Successfully authenticated client {request.client_id}")
        return auth_state

    async def end_session(
        self,
        auth_state: AuthState,
        user_agent: ExternalUserAgent,
        post_logout_redirect_uri: str | None = None,
    ) -> EndSessionResponse:
        """Log the user out at the provider (RP-initiated logout).

        Raises:
            MalformedRequestError: If no post-logout redirect URI is known or the
                provider has no end_session_endpoint
        """
        configuration = await self.discover()
        redirect_uri = post_logout_redirect_uri or self.settings.post_logout_redirect_uri
        if not redirect_uri:
            raise MalformedRequestError("End session needs a post_logout_redirect_uri")

        request = EndSessionRequest.create(
            configuration=configuration,
            post_logout_redirect_uri=redirect_uri,
            id_token_hint=auth_state.id_token,
        )
        return await self.service.end_session(request, user_agent)

    async def close(self) -> None:
        """Close all service connections."""
        await self.service.close()
