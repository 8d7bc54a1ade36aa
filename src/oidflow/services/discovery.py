"""OpenID Connect discovery service.

Implements OpenID Connect Discovery 1.0 to find an issuer's endpoints and
capabilities, enforcing that the document names the issuer it was fetched for.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from oidflow.models.configuration import DiscoveryDocument, ServiceConfiguration
from oidflow.models.errors import HTTPError, InvalidDiscoveryDocumentError
from oidflow.primitives.error_classifier import parse_json_body
from oidflow.transport import Transport

logger = logging.getLogger(__name__)

WELL_KNOWN_PATH = "/.well-known/openid-configuration"


def discovery_url_for_issuer(issuer: str) -> str:
    """Build the discovery URL for an issuer.

    OIDC Discovery 4: the well-known path is appended to the issuer,
    including any path component, after removing a trailing slash.
    """
    return issuer.rstrip("/") + WELL_KNOWN_PATH


def issuer_for_discovery_url(discovery_url: str) -> str | None:
    """Derive the issuer a discovery URL belongs to, if it is a well-known URL."""
    if discovery_url.endswith(WELL_KNOWN_PATH):
        return discovery_url[: -len(WELL_KNOWN_PATH)]
    return None


class DiscoveryService:
    """Fetches and validates OpenID Provider metadata."""

    def __init__(self, transport: Transport):
        self._transport = transport

    async def discover(self, issuer: str) -> ServiceConfiguration:
        """Discover the configuration of an issuer.

        Args:
            issuer: The provider's issuer URL

        Returns:
            ServiceConfiguration resolved from the discovery document

        Raises:
            NetworkError: If the document could not be fetched
            InvalidDiscoveryDocumentError: If the document is invalid or names
                another issuer
        """
        return await self._fetch(discovery_url_for_issuer(issuer), issuer)

    async def discover_from_url(self, discovery_url: str) -> ServiceConfiguration:
        """Discover the configuration from an explicit discovery document URL.

        The expected issuer is derived from the well-known suffix; for
        non-standard URLs only the document's own consistency is checked.
        """
        return await self._fetch(discovery_url, issuer_for_discovery_url(discovery_url))

    async def _fetch(
        self, discovery_url: str, expected_issuer: str | None
    ) -> ServiceConfiguration:
        logger.debug(f"Fetching discovery document from: {discovery_url}")
        response = await self._transport.send(
            "GET", discovery_url, headers={"Accept": "application/json"}
        )

        if not response.is_success:
            raise InvalidDiscoveryDocumentError(
                f"Failed to fetch discovery document from {discovery_url}: "
                f"HTTP {response.status_code}"
            ) from HTTPError(response.status_code, response.body)

        data = parse_json_body(response)

        try:
            document = DiscoveryDocument.model_validate(data)
        except ValidationError as e:
            raise InvalidDiscoveryDocumentError(
                f"Invalid discovery document from {discovery_url}: {e}"
            ) from e

        if expected_issuer is not None and document.issuer != expected_issuer:
            raise InvalidDiscoveryDocumentError(
                f"Discovery document issuer {document.issuer} does not match "
                f"{expected_issuer}"
            )

        try:
            configuration = ServiceConfiguration.from_discovery_document(document)
        except ValidationError as e:
            raise InvalidDiscoveryDocumentError(
                f"Discovery document from {discovery_url} has no token endpoint"
            ) from e

        logger.debug(f"Successfully discovered configuration for {document.issuer}")
        return configuration
