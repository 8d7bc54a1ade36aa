"""External user-agent sessions.

An ExternalUserAgentSession drives one browser round trip: it asks the
user-agent to open the request URL, then turns the first terminal event
(redirect, cancellation or launch failure) into a response or an error for
the completion callback. Later events are ignored or rejected.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Protocol
from urllib.parse import parse_qsl, urlsplit

from oidflow.models import parameters as p
from oidflow.models.authorization import ExternalUserAgentRequest
from oidflow.models.errors import (
    FlowAlreadyCompletedError,
    OAuth2Error,
    OAuthAuthorizationError,
    ProgramCancelledFlowError,
    UserAgentLaunchError,
    UserCancelledFlowError,
)
from oidflow.primitives.security import states_match

logger = logging.getLogger(__name__)

# Called exactly once with (response, None) or (None, error).
CompletionCallback = Callable[[Any, OAuth2Error | None], None]
ResponseFactory = Callable[[Any, dict[str, str]], Any]


class ExternalUserAgent(Protocol):
    """Browser or webview able to show a request URL.

    Implementations report back through ``session.resume(url)`` when the
    redirect URI is reached, or ``session.user_cancelled()`` when the user
    closes the agent.
    """

    async def launch(self, url: str, session: ExternalUserAgentSession) -> bool:
        """Open the URL. Returns False if the agent could not be shown."""
        ...

    async def dismiss(self) -> None:
        """Close the agent if it is still visible."""
        ...


class SessionState(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


def redirect_matches(redirect_uri: str, url: str) -> bool:
    """Check that a URL targets the redirect URI (scheme, host and path)."""
    expected = urlsplit(redirect_uri)
    actual = urlsplit(url)
    return (
        expected.scheme.lower() == actual.scheme.lower()
        and expected.netloc.lower() == actual.netloc.lower()
        and expected.path == actual.path
    )


def redirect_parameters(url: str) -> dict[str, str]:
    """Merge query and fragment parameters of a redirect URL.

    Fragment values win, since implicit and hybrid responses use the fragment.
    """
    parts = urlsplit(url)
    params = dict(parse_qsl(parts.query, keep_blank_values=True))
    params.update(parse_qsl(parts.fragment, keep_blank_values=True))
    return params


class ExternalUserAgentSession:
    """One outstanding user-agent flow.

    Resolution is guarded by a lock so exactly one terminal event wins,
    whichever thread or task it comes from.
    """

    def __init__(
        self,
        request: ExternalUserAgentRequest,
        user_agent: ExternalUserAgent,
        callback: CompletionCallback,
        response_factory: ResponseFactory,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        """Initialize the session.

        Args:
            request: The authorization or end-session request being presented
            user_agent: Agent used to show the request URL
            callback: Receives the response or the error, once
            response_factory: Builds the response from (request, parameters)
            loop: Loop the callback is scheduled on; called inline when None
        """
        self.request = request
        self.user_agent = user_agent
        self._callback = callback
        self._response_factory = response_factory
        self._loop = loop
        self._lock = threading.Lock()
        self._state = SessionState.PENDING

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def is_resolved(self) -> bool:
        return self.state is SessionState.RESOLVED

    async def start(self) -> None:
        """Ask the user-agent to show the request URL."""
        url = self.request.external_user_agent_request_url()
        logger.debug(f"Launching external user-agent for {self.request.redirect_uri}")

        try:
            launched = await self.user_agent.launch(url, self)
        except Exception as e:
            logger.error(f"External user-agent failed to launch: {e}")
            self._resolve(None, UserAgentLaunchError(f"Unable to open user-agent: {e}"))
            return

        if not launched:
            logger.error("External user-agent refused to launch")
            self._resolve(None, UserAgentLaunchError("Unable to open user-agent"))

    async def resume(self, url: str) -> bool:
        """Complete the flow with the URL the user-agent was redirected to.

        Returns:
            False if the URL isn't a redirect for this request, True once the
            response or error has been delivered

        Raises:
            FlowAlreadyCompletedError: If the session already resolved
        """
        if not redirect_matches(self.request.redirect_uri, url):
            logger.debug(f"Ignoring URL that isn't our redirect: {url}")
            return False
        if self.is_resolved:
            raise FlowAlreadyCompletedError(
                "Redirect received for an already completed flow"
            )

        response, error = self._build_result(redirect_parameters(url))

        if not self._resolve(response, error):
            raise FlowAlreadyCompletedError(
                "Redirect received for an already completed flow"
            )
        await self._dismiss()
        return True

    async def cancel(self) -> bool:
        """Cancel the flow from the application side.

        Returns:
            False if the session had already resolved
        """
        if not self._resolve(
            None, ProgramCancelledFlowError("Authorization flow was cancelled")
        ):
            return False
        await self._dismiss()
        return True

    def user_cancelled(self) -> bool:
        """Report that the user closed the user-agent."""
        return self._resolve(
            None, UserCancelledFlowError("User cancelled the authorization flow")
        )

    def _build_result(
        self, params: dict[str, str]
    ) -> tuple[Any, OAuth2Error | None]:
        if "error" in params:
            error = OAuthAuthorizationError.from_response(params)
            logger.warning(
                f"Authorization redirect contained error: {error.error} - "
                f"{error.error_description or 'No description provided'}"
            )
            return None, error

        expected_state = self.request.state
        if expected_state and not states_match(expected_state, params.get(p.STATE)):
            logger.warning("State mismatch in redirect - possible CSRF attack")
            return None, OAuthAuthorizationError.client_error(
                "State mismatch, expecting "
                f"{expected_state} but got {params.get(p.STATE)} in redirect"
            )

        try:
            return self._response_factory(self.request, params), None
        except OAuth2Error as e:
            return None, e

    def _resolve(self, response: Any, error: OAuth2Error | None) -> bool:
        with self._lock:
            if self._state is SessionState.RESOLVED:
                return False
            self._state = SessionState.RESOLVED

        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._callback, response, error)
        else:
            self._callback(response, error)
        return True

    async def _dismiss(self) -> None:
        try:
            await self.user_agent.dismiss()
        except Exception as e:
            logger.warning(f"Failed to dismiss external user-agent: {e}")


class ManualUserAgent:
    """User-agent that hands the URL to application code.

    The handler shows the URL however it likes (print it, open a browser)
    and returns the redirect URL it received, or None if the user gave up.
    Suitable for CLI tools and custom integrations.
    """

    def __init__(self, handler: Callable[[str], Awaitable[str | None]] | None = None):
        """Initialize manual user-agent.

        Args:
            handler: Async function called with the request URL.
                     Should return the redirect URL.
        """
        self.handler = handler

    async def launch(self, url: str, session: ExternalUserAgentSession) -> bool:
        if self.handler is None:
            raise NotImplementedError(
                f"Please visit {url} and provide the redirect URL"
            )

        redirect_url = await self.handler(url)
        if redirect_url is None:
            session.user_cancelled()
        elif not await session.resume(redirect_url):
            logger.warning(f"Redirect URL doesn't match the request: {redirect_url}")
            session.user_cancelled()
        return True

    async def dismiss(self) -> None:
        pass
