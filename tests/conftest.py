import json
import time
from dataclasses import dataclass
from typing import Any

from oidflow.models.configuration import ServiceConfiguration
from oidflow.primitives.security import base64url_encode
from oidflow.transport import HTTPResponse

ISSUER = "https://auth.example.com"
CLIENT_ID = "client-456"
REDIRECT_URI = "com.example.app:/oauth2redirect"


@dataclass
class SentRequest:
    method: str
    url: str
    headers: dict[str, str]
    body: bytes | None


class MockTransport:
    """Transport double that records requests and replays queued responses."""

    def __init__(self, *responses: HTTPResponse | Exception):
        self.requests: list[SentRequest] = []
        self.responses = list(responses)
        self.closed = False

    def queue(self, response: HTTPResponse | Exception) -> None:
        self.responses.append(response)

    async def send(self, method, url, headers=None, body=None) -> HTTPResponse:
        self.requests.append(SentRequest(method, url, dict(headers or {}), body))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self) -> None:
        self.closed = True


def json_response(data: Any, status_code: int = 200) -> HTTPResponse:
    return HTTPResponse(
        status_code=status_code,
        headers={"content-type": "application/json"},
        body=json.dumps(data).encode("utf-8"),
    )


def make_configuration(**overrides) -> ServiceConfiguration:
    values = {
        "issuer": ISSUER,
        "authorization_endpoint": f"{ISSUER}/authorize",
        "token_endpoint": f"{ISSUER}/token",
        "registration_endpoint": f"{ISSUER}/register",
        "end_session_endpoint": f"{ISSUER}/logout",
    }
    values.update(overrides)
    return ServiceConfiguration(**values)


def make_id_token(header: dict | None = None, **claims) -> str:
    """Build an unsigned compact JWT with sensible default claims."""
    now = time.time()
    payload = {
        "iss": ISSUER,
        "sub": "user-123",
        "aud": CLIENT_ID,
        "exp": now + 3600,
        "iat": now,
    }
    payload.update(claims)
    payload = {key: value for key, value in payload.items() if value is not None}

    def segment(data: dict) -> str:
        return base64url_encode(json.dumps(data).encode("utf-8"))

    return f"{segment(header or {'alg': 'RS256'})}.{segment(payload)}.signature"


def discovery_document(**overrides) -> dict[str, Any]:
    document = {
        "issuer": ISSUER,
        "authorization_endpoint": f"{ISSUER}/authorize",
        "token_endpoint": f"{ISSUER}/token",
        "registration_endpoint": f"{ISSUER}/register",
        "end_session_endpoint": f"{ISSUER}/logout",
        "jwks_uri": f"{ISSUER}/jwks",
        "response_types_supported": ["code", "id_token", "code id_token"],
        "subject_types_supported": ["public"],
        "id_token_signing_alg_values_supported": ["RS256"],
    }
    document.update(overrides)
    return {key: value for key, value in document.items() if value is not None}
