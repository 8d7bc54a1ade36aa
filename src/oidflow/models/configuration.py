"""Service configuration and OpenID Provider metadata models.

Contains the OpenID Connect Discovery 1.0 document and the endpoint
configuration every request is built against.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DiscoveryDocument(BaseModel):
    """OpenID Provider Metadata (OpenID Connect Discovery 1.0 Section 3).

    URLs are kept as plain strings: the issuer must be compared byte for
    byte with the URL it was fetched from, so no normalisation is applied.
    Unknown metadata is preserved in ``model_extra``.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    # Required by OIDC Discovery
    issuer: str
    authorization_endpoint: str
    jwks_uri: str
    response_types_supported: list[str] = Field(min_length=1)
    subject_types_supported: list[str] = Field(min_length=1)
    id_token_signing_alg_values_supported: list[str] = Field(min_length=1)

    # Required unless only the implicit flow is supported
    token_endpoint: str | None = None

    userinfo_endpoint: str | None = None
    registration_endpoint: str | None = None
    end_session_endpoint: str | None = None
    revocation_endpoint: str | None = None
    introspection_endpoint: str | None = None
    scopes_supported: list[str] | None = None
    response_modes_supported: list[str] | None = None
    grant_types_supported: list[str] = Field(
        default=["authorization_code", "implicit"]
    )
    claims_supported: list[str] | None = None
    code_challenge_methods_supported: list[str] | None = None
    token_endpoint_auth_methods_supported: list[str] | None = None

    @property
    def additional_parameters(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class ServiceConfiguration(BaseModel):
    """Endpoints of an authorization server.

    Either built by hand from endpoint URLs or resolved from a discovery
    document; in the latter case missing endpoints are filled in from it.
    """

    model_config = ConfigDict(frozen=True)

    authorization_endpoint: str
    token_endpoint: str
    issuer: str | None = None
    registration_endpoint: str | None = None
    end_session_endpoint: str | None = None
    discovery_document: DiscoveryDocument | None = None

    @model_validator(mode="before")
    @classmethod
    def fill_from_discovery_document(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        document = data.get("discovery_document")
        if document is None:
            return data
        if isinstance(document, dict):
            document = DiscoveryDocument.model_validate(document)
            data = {**data, "discovery_document": document}

        filled = dict(data)
        for name in (
            "authorization_endpoint",
            "token_endpoint",
            "issuer",
            "registration_endpoint",
            "end_session_endpoint",
        ):
            if filled.get(name) is None:
                filled[name] = getattr(document, name)
        return filled

    @classmethod
    def from_discovery_document(
        cls, document: DiscoveryDocument
    ) -> ServiceConfiguration:
        """Build a configuration from a discovery document.

        Raises:
            pydantic.ValidationError: If the document has no token endpoint
        """
        return cls(discovery_document=document)
