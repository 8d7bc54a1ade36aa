"""RP-initiated logout models (OpenID Connect RP-Initiated Logout 1.0)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict

from oidflow.models import parameters as p
from oidflow.models.authorization import build_url
from oidflow.models.configuration import ServiceConfiguration
from oidflow.models.errors import MalformedRequestError
from oidflow.primitives.security import generate_state


@dataclass(frozen=True)
class EndSessionRequest:
    configuration: ServiceConfiguration
    post_logout_redirect_uri: str
    state: str
    id_token_hint: str | None = None
    additional_parameters: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.configuration.end_session_endpoint:
            raise MalformedRequestError(
                "Service configuration has no end_session_endpoint"
            )
        if not self.post_logout_redirect_uri:
            raise MalformedRequestError(
                "End session request requires post_logout_redirect_uri"
            )
        if not self.state:
            raise MalformedRequestError("End session request requires state")

    @classmethod
    def create(
        cls,
        configuration: ServiceConfiguration,
        post_logout_redirect_uri: str,
        id_token_hint: str | None = None,
        additional_parameters: dict[str, str] | None = None,
    ) -> EndSessionRequest:
        return cls(
            configuration=configuration,
            post_logout_redirect_uri=post_logout_redirect_uri,
            state=generate_state(),
            id_token_hint=id_token_hint,
            additional_parameters=dict(additional_parameters or {}),
        )

    @property
    def redirect_uri(self) -> str:
        return self.post_logout_redirect_uri

    def end_session_request_url(self) -> str:
        params = {
            p.POST_LOGOUT_REDIRECT_URI: self.post_logout_redirect_uri,
            p.STATE: self.state,
        }
        if self.id_token_hint:
            params[p.ID_TOKEN_HINT] = self.id_token_hint
        params.update(self.additional_parameters)
        return build_url(self.configuration.end_session_endpoint, params)

    def external_user_agent_request_url(self) -> str:
        return self.end_session_request_url()


class EndSessionResponse(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    request: EndSessionRequest
    state: str | None = None

    @classmethod
    def from_parameters(
        cls, request: EndSessionRequest, parameters: dict[str, str]
    ) -> EndSessionResponse:
        extras = {
            key: value
            for key, value in parameters.items()
            if key not in cls.model_fields
        }
        return cls(request=request, state=parameters.get(p.STATE), **extras)

    @property
    def additional_parameters(self) -> dict[str, Any]:
        return dict(self.model_extra or {})
