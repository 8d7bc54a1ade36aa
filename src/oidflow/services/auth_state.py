"""Authorization state of a signed-in user.

AuthState keeps the latest authorization, token and registration responses
together with the refresh token, granted scope and any authorization error
that invalidated the grant. It hands out fresh tokens, refreshing them at
most once at a time no matter how many callers ask concurrently.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
import weakref
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import ValidationError

from oidflow.models import parameters as p
from oidflow.models.authorization import AuthorizationRequest, AuthorizationResponse
from oidflow.models.errors import (
    ErrorDomain,
    JSONDeserializationError,
    MalformedRequestError,
    MissingRefreshTokenError,
    OAuth2Error,
    TokenRefreshError,
)
from oidflow.models.registration import RegistrationResponse
from oidflow.models.tokens import TokenRequest, TokenResponse
from oidflow.primitives.error_classifier import error_from_dict, error_to_dict, is_in_domain
from oidflow.services.authorization import AuthorizationService
from oidflow.services.user_agent import ExternalUserAgent

logger = logging.getLogger(__name__)

SNAPSHOT_SCHEMA = "oidflow.auth_state/1"

# Access tokens expiring within this many seconds are refreshed early.
DEFAULT_EXPIRY_TOLERANCE = 60.0

TokenAction = Callable[[str | None, str | None, OAuth2Error | None], None]
StateChangeObserver = Callable[["AuthState"], None]
ErrorObserver = Callable[["AuthState", OAuth2Error], None]


def _weak_observer(observer: Callable | None) -> Callable[[], Callable | None]:
    """Hold bound methods weakly; plain functions have no owner to outlive."""
    if observer is None:
        return lambda: None
    if hasattr(observer, "__self__") and hasattr(observer, "__func__"):
        return weakref.WeakMethod(observer)
    return lambda: observer


class AuthState:
    """Tracks the authorization of one user against one authorization server.

    All fields are guarded by a re-entrant lock, so the update operations and
    ``perform_action_with_fresh_tokens`` may be called from any task or
    thread. Observers run synchronously while the lock is held.
    """

    def __init__(
        self,
        service: AuthorizationService,
        authorization_response: AuthorizationResponse | None = None,
        token_response: TokenResponse | None = None,
        registration_response: RegistrationResponse | None = None,
        expiry_tolerance: float = DEFAULT_EXPIRY_TOLERANCE,
    ):
        """Initialize from at least one prior response.

        Args:
            service: Service used to refresh tokens
            authorization_response: Response of the initial authorization
            token_response: Response of the code exchange, if any
            registration_response: Response of dynamic registration, if any
            expiry_tolerance: Seconds before expiry a token stops being fresh

        Raises:
            MalformedRequestError: If no response is given
        """
        responses = (authorization_response, token_response, registration_response)
        if all(response is None for response in responses):
            raise MalformedRequestError("AuthState requires at least one response")

        self._service = service
        self.expiry_tolerance = expiry_tolerance

        self._lock = threading.RLock()
        self._pending_actions: list[tuple[TokenAction, asyncio.AbstractEventLoop]] = []
        self._refresh_in_flight = False

        self._refresh_token: str | None = None
        self._scope: str | None = None
        self._last_authorization_response: AuthorizationResponse | None = None
        self._last_token_response: TokenResponse | None = None
        self._last_registration_response: RegistrationResponse | None = None
        self._authorization_error: OAuth2Error | None = None
        self._needs_token_refresh = False

        self._state_change_observer = _weak_observer(None)
        self._error_observer = _weak_observer(None)

        if registration_response is not None:
            self.update_with_registration_response(registration_response)
        if authorization_response is not None:
            self.update_with_authorization_response(authorization_response)
        if token_response is not None:
            self.update_with_token_response(token_response)

    @classmethod
    async def authorize(
        cls,
        service: AuthorizationService,
        request: AuthorizationRequest,
        user_agent: ExternalUserAgent,
        registration_response: RegistrationResponse | None = None,
        expiry_tolerance: float = DEFAULT_EXPIRY_TOLERANCE,
    ) -> AuthState:
        """Present an authorization request and build the resulting state.

        For the plain code flow the code is exchanged for tokens right away.
        Hybrid and implicit responses are returned as they are; exchanging a
        hybrid code is left to the caller.

        Raises:
            OAuth2Error: Whatever the authorization or the exchange failed with
        """
        authorization_response = await service.authorize(request, user_agent)

        token_response = None
        if request.response_type == p.ResponseTypes.CODE:
            logger.debug("Exchanging authorization code for tokens")
            token_response = await service.perform_token_request(
                authorization_response.token_exchange_request(),
                original_authorization_response=authorization_response,
            )

        return cls(
            service,
            authorization_response=authorization_response,
            token_response=token_response,
            registration_response=registration_response,
            expiry_tolerance=expiry_tolerance,
        )

    # Observers

    @property
    def state_change_observer(self) -> StateChangeObserver | None:
        return self._state_change_observer()

    @state_change_observer.setter
    def state_change_observer(self, observer: StateChangeObserver | None) -> None:
        self._state_change_observer = _weak_observer(observer)

    @property
    def error_observer(self) -> ErrorObserver | None:
        return self._error_observer()

    @error_observer.setter
    def error_observer(self, observer: ErrorObserver | None) -> None:
        self._error_observer = _weak_observer(observer)

    def _did_change_state(self) -> None:
        observer = self.state_change_observer
        if observer is not None:
            observer(self)

    def _did_encounter_authorization_error(self, error: OAuth2Error) -> None:
        observer = self.error_observer
        if observer is not None:
            observer(self, error)

    # Accessors

    @property
    def refresh_token(self) -> str | None:
        with self._lock:
            return self._refresh_token

    @property
    def scope(self) -> str | None:
        with self._lock:
            return self._scope

    @property
    def last_authorization_response(self) -> AuthorizationResponse | None:
        with self._lock:
            return self._last_authorization_response

    @property
    def last_token_response(self) -> TokenResponse | None:
        with self._lock:
            return self._last_token_response

    @property
    def last_registration_response(self) -> RegistrationResponse | None:
        with self._lock:
            return self._last_registration_response

    @property
    def authorization_error(self) -> OAuth2Error | None:
        with self._lock:
            return self._authorization_error

    @property
    def needs_token_refresh(self) -> bool:
        with self._lock:
            return self._needs_token_refresh

    @property
    def access_token(self) -> str | None:
        """Latest access token, from the token response or an implicit grant."""
        with self._lock:
            if self._authorization_error is not None:
                return None
            if self._last_token_response is not None:
                return self._last_token_response.access_token
            if self._last_authorization_response is not None:
                return self._last_authorization_response.access_token
            return None

    @property
    def access_token_expires_at(self) -> float | None:
        with self._lock:
            if self._authorization_error is not None:
                return None
            if self._last_token_response is not None:
                return self._last_token_response.access_token_expires_at
            if self._last_authorization_response is not None:
                return self._last_authorization_response.access_token_expires_at
            return None

    @property
    def id_token(self) -> str | None:
        with self._lock:
            if self._authorization_error is not None:
                return None
            if self._last_token_response is not None:
                return self._last_token_response.id_token
            if self._last_authorization_response is not None:
                return self._last_authorization_response.id_token
            return None

    @property
    def is_authorized(self) -> bool:
        """True unless an OAuth error was seen, given a token was obtained.

        This doesn't mean the access token is fresh, only that the grant is
        not known to be invalid. Transient errors never clear it.
        """
        with self._lock:
            if self._authorization_error is not None:
                return False
            return bool(self.access_token or self.id_token)

    def _is_token_fresh(self, now: float | None = None) -> bool:
        if self._needs_token_refresh or not self.access_token:
            return False
        expires_at = self.access_token_expires_at
        if expires_at is None:
            return True  # No expiry means token doesn't expire
        current = now if now is not None else time.time()
        return current < expires_at - self.expiry_tolerance

    # Updates

    def update_with_authorization_response(
        self,
        response: AuthorizationResponse | None,
        error: OAuth2Error | None = None,
    ) -> None:
        """Apply the outcome of an authorization request.

        Authorization-domain errors invalidate the state; any other error is
        considered transient and leaves it untouched. A successful response
        replaces the previous grant: the last token response and the refresh
        token are cleared.
        """
        if error is not None:
            if is_in_domain(error, ErrorDomain.OAUTH_AUTHORIZATION):
                self.update_with_authorization_error(error)
            else:
                logger.debug(f"Ignoring transient authorization error: {error}")
            return
        if response is None:
            return

        with self._lock:
            self._last_authorization_response = response
            self._last_token_response = None
            self._refresh_token = None
            self._needs_token_refresh = False
            self._scope = response.scope or response.request.scope
            self._authorization_error = None
            self._did_change_state()

    def update_with_token_response(
        self,
        response: TokenResponse | None,
        error: OAuth2Error | None = None,
    ) -> None:
        """Apply the outcome of a code exchange or refresh.

        Token-domain errors invalidate the state; any other error is
        considered transient. A response without a refresh token keeps the
        stored one.
        """
        if error is not None:
            if is_in_domain(error, ErrorDomain.OAUTH_TOKEN):
                self.update_with_authorization_error(error)
            else:
                logger.debug(f"Ignoring transient token error: {error}")
            return
        if response is None:
            return

        with self._lock:
            if self._authorization_error is not None:
                logger.warning(
                    "Ignoring token response: auth state has an authorization error "
                    f"({self._authorization_error})"
                )
                return

            self._needs_token_refresh = False
            self._last_token_response = response
            if response.refresh_token:
                self._refresh_token = response.refresh_token
            if response.scope:
                self._scope = response.scope
            self._did_change_state()

    def update_with_registration_response(
        self, response: RegistrationResponse
    ) -> None:
        """Store new client credentials, resetting any previous grant."""
        with self._lock:
            self._last_registration_response = response
            self._refresh_token = None
            self._scope = None
            self._last_authorization_response = None
            self._last_token_response = None
            self._authorization_error = None
            self._needs_token_refresh = False
            self._did_change_state()

    def update_with_authorization_error(self, error: OAuth2Error) -> None:
        """Invalidate the state with an authorization error.

        Use this for errors seen outside the token lifecycle, e.g. a resource
        server answering 401 invalid_token. Don't pass transient errors.
        """
        with self._lock:
            self._authorization_error = error
            logger.warning(f"Auth state invalidated: {error}")
            self._did_change_state()
            self._did_encounter_authorization_error(error)

    def set_needs_token_refresh(self) -> None:
        """Force a refresh the next time fresh tokens are requested."""
        with self._lock:
            self._needs_token_refresh = True

    # Fresh tokens

    def token_refresh_request(
        self, additional_parameters: dict[str, str] | None = None
    ) -> TokenRequest:
        """Build a refresh_token grant request from the stored state.

        Raises:
            MissingRefreshTokenError: If no refresh token is stored
        """
        with self._lock:
            if not self._refresh_token:
                raise MissingRefreshTokenError(
                    "Unable to refresh token: no refresh token stored"
                )

            if self._last_authorization_response is not None:
                source = self._last_authorization_response.request
            elif self._last_token_response is not None:
                source = self._last_token_response.request
            else:
                raise MissingRefreshTokenError(
                    "Unable to refresh token: no request to refresh the grant of"
                )

            return TokenRequest(
                configuration=source.configuration,
                grant_type=p.GrantTypes.REFRESH_TOKEN,
                client_id=source.client_id,
                client_secret=source.client_secret,
                refresh_token=self._refresh_token,
                additional_parameters=dict(additional_parameters or {}),
            )

    def perform_action_with_fresh_tokens(
        self,
        action: TokenAction,
        additional_parameters: dict[str, str] | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Call ``action(access_token, id_token, error)`` with fresh tokens.

        Cached tokens are used while they are fresh. Otherwise the action is
        queued and a single refresh is started; every action queued while it
        runs receives the same outcome, in order. Actions always run through
        ``loop.call_soon_threadsafe``, never inline.

        Args:
            action: Callback receiving the tokens or the error
            additional_parameters: Extra parameters for the refresh request
            loop: Loop that runs the refresh and the action; defaults to the
                running loop
        """
        if loop is None:
            loop = asyncio.get_running_loop()

        with self._lock:
            if self._authorization_error is not None:
                self._dispatch(loop, action, None, None, self._authorization_error)
                return

            if self._is_token_fresh():
                self._dispatch(loop, action, self.access_token, self.id_token, None)
                return

            if self._refresh_in_flight:
                logger.debug("Token refresh in flight, queueing action")
                self._pending_actions.append((action, loop))
                return

            try:
                request = self.token_refresh_request(additional_parameters)
            except MissingRefreshTokenError as e:
                self._dispatch(loop, action, None, None, e)
                return

            self._pending_actions.append((action, loop))
            self._refresh_in_flight = True

        logger.debug("Access token needs refresh, starting token refresh")
        asyncio.run_coroutine_threadsafe(self._refresh(request), loop)

    async def fresh_tokens(
        self, additional_parameters: dict[str, str] | None = None
    ) -> tuple[str | None, str | None]:
        """Return ``(access_token, id_token)``, refreshing them if needed.

        Raises:
            OAuth2Error: The stored authorization error or the refresh failure
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def action(
            access_token: str | None, id_token: str | None, error: OAuth2Error | None
        ) -> None:
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result((access_token, id_token))

        self.perform_action_with_fresh_tokens(action, additional_parameters, loop)
        return await future

    async def _refresh(self, request: TokenRequest) -> None:
        response: TokenResponse | None = None
        error: OAuth2Error | None = None
        cancelled: asyncio.CancelledError | None = None

        try:
            response = await self._service.perform_token_request(request)
        except OAuth2Error as e:
            logger.error(f"Token refresh failed: {e}")
            error = e
        except asyncio.CancelledError as e:
            error = TokenRefreshError("Token refresh was cancelled")
            cancelled = e
        except Exception as e:
            logger.error(f"Token refresh error: {e}")
            error = TokenRefreshError(f"Token refresh failed: {e}")
            error.__cause__ = e

        self._complete_refresh(response, error)
        if cancelled is not None:
            raise cancelled

    def _complete_refresh(
        self, response: TokenResponse | None, error: OAuth2Error | None
    ) -> None:
        access_token = id_token = None

        with self._lock:
            try:
                self.update_with_token_response(response, error)
            except Exception as e:
                # The update is stored before observers run.
                logger.error(f"Auth state observer failed during token refresh: {e}")
            finally:
                actions = self._pending_actions
                self._pending_actions = []
                self._refresh_in_flight = False

            if error is None:
                if self._authorization_error is not None:
                    error = self._authorization_error
                else:
                    access_token, id_token = self.access_token, self.id_token
                    logger.info("Successfully refreshed access token")

        for action, loop in actions:
            self._dispatch(loop, action, access_token, id_token, error)

    @staticmethod
    def _dispatch(
        loop: asyncio.AbstractEventLoop,
        action: TokenAction,
        access_token: str | None,
        id_token: str | None,
        error: OAuth2Error | None,
    ) -> None:
        loop.call_soon_threadsafe(action, access_token, id_token, error)

    # Persistence

    def snapshot(self) -> dict[str, Any]:
        """Serialize to a flat, JSON compatible dictionary."""

        def dump(response: Any) -> dict[str, Any] | None:
            return response.model_dump(mode="json") if response is not None else None

        with self._lock:
            return {
                "schema": SNAPSHOT_SCHEMA,
                "refresh_token": self._refresh_token,
                "scope": self._scope,
                "needs_token_refresh": self._needs_token_refresh,
                "last_authorization_response": dump(self._last_authorization_response),
                "last_token_response": dump(self._last_token_response),
                "last_registration_response": dump(self._last_registration_response),
                "authorization_error": (
                    error_to_dict(self._authorization_error)
                    if self._authorization_error is not None
                    else None
                ),
            }

    @classmethod
    def restore(
        cls,
        snapshot: Mapping[str, Any],
        service: AuthorizationService,
        expiry_tolerance: float = DEFAULT_EXPIRY_TOLERANCE,
    ) -> AuthState:
        """Rebuild an AuthState from ``snapshot()`` output.

        Raises:
            JSONDeserializationError: If the snapshot has another schema or
                can't be parsed
        """
        if not isinstance(snapshot, Mapping) or snapshot.get("schema") != SNAPSHOT_SCHEMA:
            raise JSONDeserializationError("Unsupported auth state snapshot schema")

        def load(model: Any, key: str) -> Any:
            data = snapshot.get(key)
            return model.model_validate(data) if data is not None else None

        try:
            authorization_response = load(
                AuthorizationResponse, "last_authorization_response"
            )
            token_response = load(TokenResponse, "last_token_response")
            registration_response = load(
                RegistrationResponse, "last_registration_response"
            )
            error_data = snapshot.get("authorization_error")
            error = error_from_dict(error_data) if error_data is not None else None
        except JSONDeserializationError:
            raise
        except (
            ValidationError,
            OAuth2Error,
            KeyError,
            ValueError,
            TypeError,
            AttributeError,
        ) as e:
            raise JSONDeserializationError(f"Invalid auth state snapshot: {e}") from e

        try:
            state = cls(
                service,
                authorization_response=authorization_response,
                token_response=token_response,
                registration_response=registration_response,
                expiry_tolerance=expiry_tolerance,
            )
        except MalformedRequestError as e:
            raise JSONDeserializationError(f"Invalid auth state snapshot: {e}") from e

        with state._lock:
            state._refresh_token = snapshot.get("refresh_token")
            state._scope = snapshot.get("scope")
            state._needs_token_refresh = bool(snapshot.get("needs_token_refresh"))
            state._authorization_error = error
        return state
