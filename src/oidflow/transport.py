"""HTTP transport used to reach discovery, token and registration endpoints.

The services only depend on the Transport protocol, so callers can inject
their own (proxying, recording, test doubles). HttpxTransport is the default.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from oidflow.models.errors import NetworkError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HTTPResponse:
    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class Transport(Protocol):
    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str] | None = None,
        body: bytes | None = None,
    ) -> HTTPResponse:
        """Perform one HTTP exchange.

        Raises:
            NetworkError: If no response was received
        """
        ...


class HttpxTransport:
    """Transport backed by an httpx.AsyncClient."""

    def __init__(self, timeout: float = 30.0, client: httpx.AsyncClient | None = None):
        """Initialize the transport.

        Args:
            timeout: HTTP request timeout in seconds
            client: Pre-configured client to use instead of creating one
        """
        self.timeout = timeout
        self._http_client = client or httpx.AsyncClient(timeout=timeout)

    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str] | None = None,
        body: bytes | None = None,
    ) -> HTTPResponse:
        logger.debug(f"{method} {url}")
        try:
            response = await self._http_client.request(
                method, url, headers=dict(headers or {}), content=body
            )
        except httpx.HTTPError as e:
            logger.warning(f"{method} {url} failed: {e}")
            raise NetworkError(f"HTTP error during {method} {url}: {e}") from e

        return HTTPResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=response.content,
        )

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._http_client.aclose()
