"""Client settings.

Settings can be built directly or read from ``OIDFLOW_*`` environment
variables, with a ``.env`` file loaded first when present.
"""

from __future__ import annotations

import logging
import os

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from oidflow.primitives.id_token import DEFAULT_CLOCK_SKEW
from oidflow.primitives.scopes import scopes_from_string

logger = logging.getLogger(__name__)

ENV_PREFIX = "OIDFLOW_"


class ClientSettings(BaseModel):
    """Everything an OIDClient needs to talk to one provider."""

    model_config = ConfigDict(frozen=True)

    issuer: str | None = None
    discovery_url: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    redirect_uri: str = "http://localhost:8080/callback"
    post_logout_redirect_uri: str | None = None
    scopes: list[str] = Field(default_factory=lambda: ["openid"])
    client_name: str = "oidflow client"
    timeout: float = Field(default=30.0, gt=0)
    expiry_tolerance: float = Field(default=60.0, ge=0)
    clock_skew: float = Field(default=DEFAULT_CLOCK_SKEW, ge=0)

    @classmethod
    def from_env(cls, dotenv_path: str | None = None, **overrides) -> ClientSettings:
        """Read settings from the environment.

        Args:
            dotenv_path: .env file to load; searched from the working
                directory if omitted
            overrides: Values that take precedence over the environment

        Raises:
            pydantic.ValidationError: If a variable has an invalid value
        """
        load_dotenv(dotenv_path or find_dotenv(usecwd=True))

        values = {}
        for name in cls.model_fields:
            raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            values[name] = scopes_from_string(raw) if name == "scopes" else raw

        values.update(overrides)
        logger.debug(f"Loaded settings from environment: {sorted(values)}")
        return cls(**values)
