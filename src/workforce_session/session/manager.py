"""Authenticated-session lifecycle manager.

Pattern: Explicit State Machine with Observers
-----------------------------------------------
One ``SessionManager`` instance per application owns the session: current
user, bearer token, loading/error flags and the idle-warning marker.  It is
constructed with its collaborators (API client, store, scheduler, optional
policy engine) instead of reaching for module-level singletons, and it is torn
down with ``dispose()``.

Every mutation goes through ``_transition``, which checks the move against
``_TRANSITIONS`` and then pushes an immutable ``SessionSnapshot`` to the
subscribed listeners.  UI layers subscribe; they never poke at the manager's
fields.

Timer policy
------------
While ``Authenticated`` or ``Warning`` two timers are armed from the token's
remaining lifetime:

  - a *warning* timer at ``expiry - warning_window`` (only when the token
    outlives the window), which moves the session to ``Warning``;
  - a *session* timer at ``expiry``, which forces a logout.

User activity re-arms both from "now" against the same expiry.  Activity
never extends the token itself; the token's ``exp`` claim is the hard
ceiling and the window is a soft warning.

In-flight logins are neither cancelled nor de-duplicated when another login
starts.  Callers must avoid double submission.  Each call still runs to
completion, but only the most recently started login settles the state; an
older one's result is discarded and its error, if any, is raised to its own
caller without touching the session.  A logout that lands while a login is in
flight also wins: the late login result is discarded.
"""

from __future__ import annotations

import datetime
import enum
import logging
from typing import Any, Callable, Iterable

from workforce_session.auth.api_client import (
    AuthClient,
    AuthClientError,
    UnauthorizedError,
)
from workforce_session.auth.session import Role, SessionSnapshot, SessionState, User
from workforce_session.auth.token import get_expiry, is_expired, time_until_expiry
from workforce_session.policy.engine import PolicyEngine
from workforce_session.session.clock import AsyncioScheduler, Scheduler, TimerHandle
from workforce_session.store.base import SessionStore, StoreError

logger = logging.getLogger(__name__)

DEFAULT_WARNING_WINDOW = datetime.timedelta(minutes=30)

Listener = Callable[[SessionSnapshot], None]

_ACTIVE_STATES = frozenset({SessionState.AUTHENTICATED, SessionState.WARNING})

_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.INITIALIZING: frozenset({
        SessionState.AUTHENTICATED,
        SessionState.UNAUTHENTICATED,
        SessionState.AUTHENTICATING,
    }),
    SessionState.UNAUTHENTICATED: frozenset({
        SessionState.UNAUTHENTICATED,
        SessionState.AUTHENTICATING,
    }),
    SessionState.AUTHENTICATING: frozenset({
        SessionState.AUTHENTICATING,
        SessionState.AUTHENTICATED,
        SessionState.UNAUTHENTICATED,
    }),
    SessionState.AUTHENTICATED: frozenset({
        SessionState.AUTHENTICATED,
        SessionState.WARNING,
        SessionState.EXPIRING,
        SessionState.AUTHENTICATING,
        SessionState.UNAUTHENTICATED,
    }),
    SessionState.WARNING: frozenset({
        SessionState.WARNING,
        SessionState.AUTHENTICATED,
        SessionState.EXPIRING,
        SessionState.AUTHENTICATING,
        SessionState.UNAUTHENTICATED,
    }),
    SessionState.EXPIRING: frozenset({SessionState.UNAUTHENTICATED}),
}

_UNSET: Any = object()


class ActivityEvent(str, enum.Enum):
    """User interactions that count as "not idle"."""

    POINTER = "pointer"
    KEY = "key"
    SCROLL = "scroll"
    TOUCH = "touch"


class SessionStateError(Exception):
    """Raised when an operation is not valid in the current session state."""


def _coerce_role(role: Role | str) -> Role | None:
    try:
        return Role(role)
    except ValueError:
        return None


class SessionManager:
    """Owns the authentication state and its timers."""

    def __init__(
        self,
        client: AuthClient,
        store: SessionStore,
        scheduler: Scheduler | None = None,
        policy_engine: PolicyEngine | None = None,
        warning_window: datetime.timedelta = DEFAULT_WARNING_WINDOW,
    ) -> None:
        self._client = client
        self._store = store
        self._scheduler: Scheduler = scheduler or AsyncioScheduler()
        self._policy_engine = policy_engine
        self._warning_window = warning_window

        self._state = SessionState.INITIALIZING
        self._user: User | None = None
        self._token: str | None = None
        self._is_loading = True
        self._session_timeout: datetime.datetime | None = None
        self._error: str | None = None
        self._error_message: str | None = None

        self._session_timer: TimerHandle | None = None
        self._warning_timer: TimerHandle | None = None
        self._listeners: list[Listener] = []
        # Bumped whenever a session ends; lets a late login result notice it.
        self._generation = 0
        # Only the most recently started login may settle the state.
        self._login_attempts = 0

    # -- read-only view ------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def user(self) -> User | None:
        return self._user

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def session_timeout(self) -> datetime.datetime | None:
        return self._session_timeout

    @property
    def warning_window(self) -> datetime.timedelta:
        return self._warning_window

    @property
    def is_authenticated(self) -> bool:
        return (
            self._state in _ACTIVE_STATES
            and self._user is not None
            and self._token is not None
            and not is_expired(self._token, self._scheduler.now())
        )

    @property
    def has_active_timers(self) -> bool:
        return self._session_timer is not None or self._warning_timer is not None

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            state=self._state,
            user=self._user,
            token=self._token,
            is_loading=self._is_loading,
            is_authenticated=self.is_authenticated,
            session_timeout=self._session_timeout,
            expires_at=get_expiry(self._token) if self._token else None,
            error=self._error,
            error_message=self._error_message,
        )

    # -- observers -----------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- lifecycle -----------------------------------------------------------

    def restore(self) -> SessionSnapshot:
        """Resume a persisted session at start-up.

        Stale, incomplete or unreadable stored data is cleared and the manager
        settles in ``Unauthenticated``.
        """
        if self._state is not SessionState.INITIALIZING:
            raise SessionStateError(f"restore() is only valid at start-up, not in {self._state.value}")

        stored = self._store.load()
        if stored is None:
            self._clear_store()
            self._transition(SessionState.UNAUTHENTICATED, is_loading=False)
            return self.snapshot()

        if is_expired(stored.token, self._scheduler.now()):
            logger.info("Stored session for user=%s has expired; discarding it", stored.user.id)
            self._clear_store()
            self._transition(SessionState.UNAUTHENTICATED, is_loading=False)
            return self.snapshot()

        logger.info("Restored session for user=%s (%s)", stored.user.id, stored.user.role.value)
        self._transition(
            SessionState.AUTHENTICATED,
            user=stored.user,
            token=stored.token,
            is_loading=False,
            error=None,
            error_message=None,
        )
        self._start_timers()
        return self.snapshot()

    def dispose(self) -> None:
        """Cancel timers and drop listeners.  The manager is unusable afterwards."""
        self._cancel_timers()
        self._listeners.clear()

    # -- authentication ------------------------------------------------------

    async def login(self, email: str, password: str) -> SessionSnapshot:
        """Authenticate and start a session.

        On failure the session ends up ``Unauthenticated`` with ``error`` set
        to the failure kind, and the ``AuthClientError`` is re-raised.  A
        login superseded by a newer one leaves the state to the newer call.
        """
        self._cancel_timers()
        generation = self._generation
        self._login_attempts += 1
        attempt = self._login_attempts
        self._transition(
            SessionState.AUTHENTICATING,
            is_loading=True,
            session_timeout=None,
            error=None,
            error_message=None,
        )

        try:
            result = await self._client.login(email, password)
            if is_expired(result.token, self._scheduler.now()):
                raise UnauthorizedError("Server issued an expired or unreadable token")
        except AuthClientError as exc:
            logger.warning("Login failed for %s: %s (%s)", email, exc.kind, exc)
            if not self._is_current_login(attempt, generation):
                raise
            self._clear_store()
            self._transition(
                SessionState.UNAUTHENTICATED,
                user=None,
                token=None,
                is_loading=False,
                session_timeout=None,
                error=exc.kind,
                error_message=str(exc),
            )
            raise

        if generation != self._generation:
            logger.info("Session ended while login for %s was in flight; discarding result", email)
            return self.snapshot()
        if attempt != self._login_attempts:
            logger.info("A newer login superseded the one for %s; discarding result", email)
            return self.snapshot()

        self._transition(
            SessionState.AUTHENTICATED,
            user=result.user,
            token=result.token,
            is_loading=False,
            error=None,
            error_message=None,
        )
        try:
            self._store.save(result.user, result.token)
        except StoreError as exc:
            logger.warning("Session for %s will not survive a restart: %s", email, exc)
        self._start_timers()
        logger.info("User %s authenticated, role=%s", result.user.id, result.user.role.value)
        return self.snapshot()

    async def logout(self) -> None:
        """End the session.  Server-side logout is best effort; local cleanup always runs."""
        token = self._token
        self._cancel_timers()
        if token:
            await self._best_effort_logout(token)
        self._end_session()

    async def refresh_user(self) -> User | None:
        """Re-fetch the profile; a rejected token ends the session."""
        if not self.is_authenticated:
            return None

        token = self._token
        try:
            user = await self._client.get_profile(token)
        except UnauthorizedError as exc:
            if token == self._token:
                logger.warning("Profile refresh rejected by server; ending session")
                self._end_session(error=exc.kind, error_message=str(exc))
            return None
        except AuthClientError as exc:
            logger.error("Failed to refresh user profile: %s", exc)
            if token != self._token or self._state not in _ACTIVE_STATES:
                return None
            if is_expired(self._token, self._scheduler.now()):
                self._expire()
            else:
                self._transition(self._state, error=exc.kind, error_message=str(exc))
            return None

        if token != self._token or self._state not in _ACTIVE_STATES:
            return None
        self._apply_user(user)
        return user

    def update_user(self, user: User) -> None:
        if self._state not in _ACTIVE_STATES:
            raise SessionStateError(f"No active session to update (state={self._state.value})")
        self._apply_user(user)

    async def refresh_token(self) -> str | None:
        """Swap the current token for a fresh one and re-arm the timers."""
        if not self.is_authenticated:
            return None

        token = self._token
        try:
            new_token = await self._client.refresh_token(token)
            if is_expired(new_token, self._scheduler.now()):
                raise UnauthorizedError("Server issued an expired or unreadable token")
        except UnauthorizedError as exc:
            if token == self._token:
                logger.warning("Token refresh rejected; ending session")
                self._end_session(error=exc.kind, error_message=str(exc))
            return None
        except AuthClientError as exc:
            logger.error("Token refresh failed: %s", exc)
            if token == self._token and self._state in _ACTIVE_STATES:
                self._transition(self._state, error=exc.kind, error_message=str(exc))
            return None

        if token != self._token or self._state not in _ACTIVE_STATES:
            return None
        try:
            self._store.save(self._user, new_token)
        except StoreError as exc:
            logger.warning("Refreshed token was not persisted: %s", exc)
        self._transition(
            SessionState.AUTHENTICATED,
            token=new_token,
            session_timeout=None,
            error=None,
            error_message=None,
        )
        self._start_timers()
        return new_token

    async def change_password(self, current_password: str, new_password: str) -> None:
        """Change the signed-in user's password.

        Errors are recorded in ``error`` and re-raised, as for ``login``.
        """
        if not self.is_authenticated:
            raise SessionStateError("Cannot change password without an active session")
        token = self._token
        try:
            await self._client.change_password(token, current_password, new_password)
        except UnauthorizedError as exc:
            if token == self._token:
                self._end_session(error=exc.kind, error_message=str(exc))
            raise
        except AuthClientError as exc:
            if token == self._token and self._state in _ACTIVE_STATES:
                self._transition(self._state, error=exc.kind, error_message=str(exc))
            raise

    # -- idle tracking -------------------------------------------------------

    def check_session(self) -> None:
        """Force expiry if the token is dead, otherwise re-arm the timers."""
        if self._state not in _ACTIVE_STATES:
            return
        if is_expired(self._token, self._scheduler.now()):
            self._expire()
            return
        self._start_timers()

    def record_activity(self, event: ActivityEvent = ActivityEvent.KEY) -> None:
        """Reset the idle window after a pointer, key, scroll or touch event."""
        if self._state not in _ACTIVE_STATES:
            return
        logger.debug("Activity (%s) resets session timers", ActivityEvent(event).value)
        if self._state is SessionState.WARNING:
            self._transition(SessionState.AUTHENTICATED, session_timeout=None)
        self._start_timers()

    # -- authorization -------------------------------------------------------

    def has_role(self, role: Role | str) -> bool:
        if self._user is None:
            return False
        return self._user.role is _coerce_role(role)

    def has_any_role(self, roles: Iterable[Role | str]) -> bool:
        if self._user is None:
            return False
        return any(self._user.role is _coerce_role(role) for role in roles)

    @property
    def is_admin(self) -> bool:
        return self.has_role(Role.ADMIN)

    @property
    def is_employee(self) -> bool:
        return self.has_role(Role.EMPLOYEE)

    def has_permission(self, permission: str) -> bool:
        if self._user is None or self._policy_engine is None:
            return False
        return self._policy_engine.allows(self._user.role, permission)

    # -- private helpers -----------------------------------------------------

    def _transition(
        self,
        state: SessionState,
        *,
        user: User | None = _UNSET,
        token: str | None = _UNSET,
        is_loading: bool = _UNSET,
        session_timeout: datetime.datetime | None = _UNSET,
        error: str | None = _UNSET,
        error_message: str | None = _UNSET,
    ) -> None:
        if state not in _TRANSITIONS[self._state]:
            raise SessionStateError(
                f"Illegal session transition {self._state.value} -> {state.value}"
            )

        previous = self._state
        self._state = state
        if user is not _UNSET:
            self._user = user
        if token is not _UNSET:
            self._token = token
        if is_loading is not _UNSET:
            self._is_loading = is_loading
        if session_timeout is not _UNSET:
            self._session_timeout = session_timeout
        if error is not _UNSET:
            self._error = error
        if error_message is not _UNSET:
            self._error_message = error_message

        if previous is not state:
            logger.debug("Session %s -> %s", previous.value, state.value)
        self._notify()

    def _is_current_login(self, attempt: int, generation: int) -> bool:
        return attempt == self._login_attempts and generation == self._generation

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Session listener %r failed", listener)

    def _apply_user(self, user: User) -> None:
        try:
            self._store.save(user, self._token)
        except StoreError as exc:
            logger.warning("Updated user %s was not persisted: %s", user.id, exc)
        self._transition(self._state, user=user)

    def _start_timers(self) -> None:
        self._cancel_timers()
        if self._state not in _ACTIVE_STATES or not self._token:
            return

        remaining = time_until_expiry(self._token, self._scheduler.now()) / 1000
        window = self._warning_window.total_seconds()
        if remaining > window:
            self._warning_timer = self._scheduler.call_later(
                remaining - window, self._on_warning_timer
            )
        self._session_timer = self._scheduler.call_later(remaining, self._on_session_timer)
        logger.debug(
            "Session timers armed: expiry in %.0fs, warning window %.0fs", remaining, window
        )

    def _cancel_timers(self) -> None:
        if self._warning_timer is not None:
            self._warning_timer.cancel()
            self._warning_timer = None
        if self._session_timer is not None:
            self._session_timer.cancel()
            self._session_timer = None

    def _on_warning_timer(self) -> None:
        self._warning_timer = None
        if self._state is not SessionState.AUTHENTICATED:
            return
        logger.info("Session for user=%s is about to expire", self._user.id if self._user else None)
        self._transition(SessionState.WARNING, session_timeout=self._scheduler.now())

    def _on_session_timer(self) -> None:
        self._session_timer = None
        if self._state in _ACTIVE_STATES:
            self._expire()

    def _expire(self) -> None:
        logger.info("Session timeout, logging out user=%s", self._user.id if self._user else None)
        token = self._token
        self._cancel_timers()
        self._transition(SessionState.EXPIRING)
        if token:
            self._scheduler.spawn(self._best_effort_logout(token))
        self._end_session()

    def _end_session(self, error: str | None = None, error_message: str | None = None) -> None:
        self._cancel_timers()
        self._generation += 1
        self._clear_store()
        self._transition(
            SessionState.UNAUTHENTICATED,
            user=None,
            token=None,
            is_loading=False,
            session_timeout=None,
            error=error,
            error_message=error_message,
        )

    async def _best_effort_logout(self, token: str) -> None:
        try:
            await self._client.logout(token)
        except AuthClientError as exc:
            logger.warning("Server logout failed (%s); local session cleared anyway", exc.kind)

    def _clear_store(self) -> None:
        try:
            self._store.clear()
        except StoreError as exc:
            logger.error("Could not clear stored session: %s", exc)
