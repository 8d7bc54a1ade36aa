"""Dynamic client registration service.

Implements RFC 7591 (OAuth 2.0 Dynamic Client Registration Protocol) and
OpenID Connect Dynamic Client Registration 1.0 for native clients.
"""

from __future__ import annotations

import json
import logging

from oidflow.models.errors import JSONSerializationError
from oidflow.models.registration import RegistrationRequest, RegistrationResponse
from oidflow.primitives.error_classifier import Endpoint, check_response
from oidflow.transport import Transport

logger = logging.getLogger(__name__)


class RegistrationService:
    """Registers clients with an authorization server."""

    def __init__(self, transport: Transport):
        self._transport = transport

    async def perform_registration_request(
        self, request: RegistrationRequest
    ) -> RegistrationResponse:
        """Register a new client.

        Args:
            request: Client metadata to register

        Returns:
            RegistrationResponse: Issued client information

        Raises:
            NetworkError: If the transport failed
            OAuthRegistrationError: If the server returned an OAuth error
            HTTPError: If the server failed without an OAuth error body
            JSONSerializationError: If the metadata can't be encoded
            JSONDeserializationError: If a 2xx body wasn't JSON
            RegistrationResponseConstructionError: If client_id is missing
        """
        logger.debug(f"Registering client at {request.registration_endpoint}")

        try:
            body = json.dumps(request.to_json_body()).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise JSONSerializationError(
                f"Could not encode registration request: {e}"
            ) from e

        response = await self._transport.send(
            "POST",
            request.registration_endpoint,
            headers=request.http_headers(),
            body=body,
        )

        data = check_response(Endpoint.REGISTRATION, response)
        registration = RegistrationResponse.from_json(request, data)

        logger.info(
            f"Successfully registered client {registration.client_id} "
            f"at {request.registration_endpoint}"
        )
        return registration
