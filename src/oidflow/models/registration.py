"""Client registration models for OAuth 2.0 Dynamic Client Registration.

Contains the registration request (RFC 7591, OIDC Registration 1.0 Section 3.1)
and the issued client information.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict

from oidflow.models import parameters as p
from oidflow.models.configuration import ServiceConfiguration
from oidflow.models.errors import (
    MalformedRequestError,
    RegistrationResponseConstructionError,
)


@dataclass(frozen=True)
class RegistrationRequest:
    """Dynamic registration request for a native client."""

    configuration: ServiceConfiguration
    redirect_uris: list[str]
    response_types: list[str] | None = None
    grant_types: list[str] | None = None
    subject_type: str | None = None
    token_endpoint_auth_method: str | None = None
    initial_access_token: str | None = None
    additional_parameters: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.configuration.registration_endpoint:
            raise MalformedRequestError(
                "Service configuration has no registration endpoint"
            )
        if not self.redirect_uris:
            raise MalformedRequestError(
                "Registration request requires at least one redirect URI"
            )

    @property
    def registration_endpoint(self) -> str:
        return self.configuration.registration_endpoint

    def to_json_body(self) -> dict[str, Any]:
        m = p.ClientMetadataParameters
        body: dict[str, Any] = {
            m.APPLICATION_TYPE: m.APPLICATION_TYPE_NATIVE,
            m.REDIRECT_URIS: list(self.redirect_uris),
        }
        if self.response_types:
            body[m.RESPONSE_TYPES] = list(self.response_types)
        if self.grant_types:
            body[m.GRANT_TYPES] = list(self.grant_types)
        if self.subject_type:
            body[m.SUBJECT_TYPE] = self.subject_type
        if self.token_endpoint_auth_method:
            body[m.TOKEN_ENDPOINT_AUTH_METHOD] = self.token_endpoint_auth_method

        body.update(self.additional_parameters)
        return body

    def http_headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        # Initial access token for protected endpoints (RFC 7591 Section 3.1)
        if self.initial_access_token:
            headers["Authorization"] = f"Bearer {self.initial_access_token}"
        return headers


class RegistrationResponse(BaseModel):
    """Client information response (RFC 7591 Section 3.2.1)."""

    model_config = ConfigDict(extra="allow", frozen=True)

    request: RegistrationRequest
    client_id: str
    client_id_issued_at: int | None = None
    client_secret: str | None = None  # None for public clients
    client_secret_expires_at: int | None = None  # 0 means never
    registration_access_token: str | None = None
    registration_client_uri: str | None = None
    token_endpoint_auth_method: str | None = None

    @classmethod
    def from_json(
        cls, request: RegistrationRequest, data: dict[str, Any]
    ) -> RegistrationResponse:
        """Build from a parsed registration endpoint body.

        Raises:
            RegistrationResponseConstructionError: If client_id is missing, or a
                secret was issued without client_secret_expires_at
        """
        if not data.get("client_id"):
            raise RegistrationResponseConstructionError(
                "Registration response missing required client_id"
            )
        if data.get("client_secret") and data.get("client_secret_expires_at") is None:
            raise RegistrationResponseConstructionError(
                "Registration response issued a client_secret without "
                "client_secret_expires_at"
            )

        fields = {key: value for key, value in data.items() if key != "request"}
        try:
            return cls(request=request, **fields)
        except ValueError as e:
            raise RegistrationResponseConstructionError(
                f"Invalid registration response format: {e}"
            ) from e

    @property
    def additional_parameters(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    def is_secret_expired(self, now: float | None = None) -> bool:
        """Check if the issued client secret has expired."""
        if not self.client_secret_expires_at:
            return False
        current = now if now is not None else time.time()
        return current >= self.client_secret_expires_at
