"""Authorization service.

Single entry point for every network or user-agent interaction the client
performs: discovery, presenting authorization and end-session requests,
token requests and dynamic registration.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from oidflow.models.authorization import AuthorizationRequest, AuthorizationResponse
from oidflow.models.configuration import ServiceConfiguration
from oidflow.models.end_session import EndSessionRequest, EndSessionResponse
from oidflow.models.errors import OAuth2Error
from oidflow.models.registration import RegistrationRequest, RegistrationResponse
from oidflow.models.tokens import TokenRequest, TokenResponse
from oidflow.primitives.id_token import DEFAULT_CLOCK_SKEW
from oidflow.services.discovery import DiscoveryService
from oidflow.services.registration import RegistrationService
from oidflow.services.tokens import TokenService
from oidflow.services.user_agent import (
    CompletionCallback,
    ExternalUserAgent,
    ExternalUserAgentSession,
)
from oidflow.transport import HttpxTransport, Transport

logger = logging.getLogger(__name__)


class AuthorizationService:
    """Performs OAuth 2.0 / OpenID Connect operations over one transport."""

    def __init__(
        self,
        transport: Transport | None = None,
        timeout: float = 30.0,
        clock_skew: float = DEFAULT_CLOCK_SKEW,
    ):
        """Initialize the service.

        Args:
            transport: Transport to use; an HttpxTransport is created if omitted
            timeout: HTTP request timeout for the default transport
            clock_skew: Allowed ID token iat skew in seconds
        """
        self._owns_transport = transport is None
        self.transport = transport if transport is not None else HttpxTransport(timeout=timeout)

        self.discovery = DiscoveryService(self.transport)
        self.tokens = TokenService(self.transport, clock_skew=clock_skew)
        self.registration = RegistrationService(self.transport)

    async def discover(self, issuer: str) -> ServiceConfiguration:
        return await self.discovery.discover(issuer)

    async def discover_from_url(self, discovery_url: str) -> ServiceConfiguration:
        return await self.discovery.discover_from_url(discovery_url)

    async def present_authorization_request(
        self,
        request: AuthorizationRequest,
        user_agent: ExternalUserAgent,
        callback: CompletionCallback,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> ExternalUserAgentSession:
        """Show an authorization request in the user-agent.

        The callback receives an AuthorizationResponse or an error once the
        returned session resolves.
        """
        logger.info(f"Presenting authorization request for client {request.client_id}")
        session = ExternalUserAgentSession(
            request, user_agent, callback, AuthorizationResponse.from_parameters, loop
        )
        await session.start()
        return session

    async def present_end_session_request(
        self,
        request: EndSessionRequest,
        user_agent: ExternalUserAgent,
        callback: CompletionCallback,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> ExternalUserAgentSession:
        """Show an RP-initiated logout request in the user-agent."""
        logger.info("Presenting end session request")
        session = ExternalUserAgentSession(
            request, user_agent, callback, EndSessionResponse.from_parameters, loop
        )
        await session.start()
        return session

    async def authorize(
        self, request: AuthorizationRequest, user_agent: ExternalUserAgent
    ) -> AuthorizationResponse:
        """Present an authorization request and wait for its outcome.

        Raises:
            OAuthAuthorizationError: If the server or the state check rejected it
            FlowCancelledError: If the user or the application cancelled
            UserAgentLaunchError: If the user-agent couldn't be opened
        """
        return await self._await_session(
            self.present_authorization_request, request, user_agent
        )

    async def end_session(
        self, request: EndSessionRequest, user_agent: ExternalUserAgent
    ) -> EndSessionResponse:
        return await self._await_session(
            self.present_end_session_request, request, user_agent
        )

    async def _await_session(self, present, request, user_agent) -> Any:
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def complete(response: Any, error: OAuth2Error | None) -> None:
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(response)

        session = await present(request, user_agent, complete, loop=loop)
        try:
            return await future
        except asyncio.CancelledError:
            await session.cancel()
            raise

    async def perform_token_request(
        self,
        request: TokenRequest,
        original_authorization_response: AuthorizationResponse | None = None,
    ) -> TokenResponse:
        return await self.tokens.perform_token_request(
            request, original_authorization_response
        )

    async def perform_registration_request(
        self, request: RegistrationRequest
    ) -> RegistrationResponse:
        return await self.registration.perform_registration_request(request)

    async def close(self) -> None:
        """Close the transport if this service created it."""
        if self._owns_transport:
            await self.transport.close()
