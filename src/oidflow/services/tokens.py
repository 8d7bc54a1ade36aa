"""Token endpoint service.

Implements RFC 6749 token endpoint interactions (code exchange, refresh and
any other grant) and validates ID tokens returned alongside access tokens.
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from oidflow.models.authorization import AuthorizationResponse
from oidflow.models.errors import JSONSerializationError
from oidflow.models.tokens import TokenRequest, TokenResponse
from oidflow.primitives.error_classifier import Endpoint, check_response
from oidflow.primitives.id_token import DEFAULT_CLOCK_SKEW, validate_id_token
from oidflow.transport import Transport

logger = logging.getLogger(__name__)


class TokenService:
    """Performs token requests over an injected transport.

    Uses application/x-www-form-urlencoded encoding as required by RFC 6749.
    """

    def __init__(self, transport: Transport, clock_skew: float = DEFAULT_CLOCK_SKEW):
        self._transport = transport
        self.clock_skew = clock_skew

    async def perform_token_request(
        self,
        request: TokenRequest,
        original_authorization_response: AuthorizationResponse | None = None,
    ) -> TokenResponse:
        """Send a token request and parse the response.

        Args:
            request: Token request parameters
            original_authorization_response: The authorization response the
                request was built from, used to check the ID token nonce

        Returns:
            TokenResponse: Parsed successful response

        Raises:
            NetworkError: If the transport failed
            OAuthTokenError: If the server returned an OAuth error
            HTTPError: If the server failed without an OAuth error body
            JSONDeserializationError: If a 2xx body wasn't JSON
            TokenResponseConstructionError: If access_token is missing
            IDTokenParsingError, IDTokenValidationError: If the ID token is bad
        """
        form_data = request.to_form_data()

        # Log request details (without sensitive data)
        logger.debug(
            f"Token request to {request.token_endpoint}: "
            f"grant_type={request.grant_type}, client_id={request.client_id}"
        )

        try:
            body = urlencode(form_data).encode("utf-8")
        except (TypeError, UnicodeEncodeError) as e:
            raise JSONSerializationError(f"Could not encode token request: {e}") from e

        response = await self._transport.send(
            "POST", request.token_endpoint, headers=request.http_headers(), body=body
        )

        data = check_response(Endpoint.TOKEN, response)
        token_response = TokenResponse.from_json(request, data)

        if token_response.id_token:
            self._validate_id_token(
                token_response, request, original_authorization_response
            )

        logger.info(f"Token request successful (grant_type={request.grant_type})")
        return token_response

    def _validate_id_token(
        self,
        token_response: TokenResponse,
        request: TokenRequest,
        original_authorization_response: AuthorizationResponse | None,
    ) -> None:
        nonce = None
        if original_authorization_response is not None:
            nonce = original_authorization_response.request.nonce

        validate_id_token(
            token_response.id_token,
            issuer=request.configuration.issuer,
            client_id=request.client_id,
            nonce=nonce,
            clock_skew=self.clock_skew,
        )
