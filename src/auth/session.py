"""Session state machine - the app's single source of truth for login state."""

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional

__all__ = [
    "InvalidTransitionError",
    "Session",
    "SessionEvent",
    "SessionState",
    "SessionStatus",
    "is_email_verified",
]

logger = logging.getLogger(__name__)


class SessionStatus(Enum):
    """Authentication status of the session."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    PENDING_VERIFICATION = "pending_verification"
    ERROR = "error"


class SessionEvent(Enum):
    """Events that drive session transitions."""

    STARTED = "started"  # auth operation began
    FINISHED = "finished"  # auth operation ended without a transition
    RESTORED = "restored"  # current user fetched for stored tokens
    LOGGED_IN = "logged_in"
    REGISTERED = "registered"
    VERIFIED = "verified"
    SIGNED_OUT = "signed_out"  # logout, failed restore or failed renewal
    FAILED = "failed"
    ERROR_CLEARED = "error_cleared"


class InvalidTransitionError(Exception):
    """Event is not allowed in the current state."""

    pass


def is_email_verified(user: dict) -> bool:
    """Read the verification flag from a server user record.

    Missing flags count as verified.
    """
    for key in ("isEmailVerified", "emailVerified"):
        if key in user:
            return bool(user[key])
    return True


@dataclass(frozen=True)
class Session:
    """Immutable snapshot of the session.

    ``user`` is set only while authenticated or pending verification;
    ``error`` only while in the ERROR overlay.
    """

    status: SessionStatus = SessionStatus.UNAUTHENTICATED
    user: Optional[dict] = None
    error: Optional[str] = None
    loading: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.status is SessionStatus.AUTHENTICATED

    @property
    def is_logged_in(self) -> bool:
        """Authenticated, whether or not the email is verified yet."""
        return self.status in (
            SessionStatus.AUTHENTICATED,
            SessionStatus.PENDING_VERIFICATION,
        )


SessionListener = Callable[[Session, Session], None]

_UNAUTHENTICATED = Session()


class SessionState:
    """Owns the current Session and applies the transition table.

    ERROR is an overlay: the last settled (non-error) session is kept
    underneath it and is what the next transition builds on. Listeners are
    called with ``(previous, current)`` after every change, outside the
    internal lock; a failing listener is logged and ignored.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current = _UNAUTHENTICATED
        self._settled = _UNAUTHENTICATED
        self._listeners: list[SessionListener] = []
        self._transitions: dict[SessionEvent, Callable[..., Session]] = {
            SessionEvent.STARTED: self._on_started,
            SessionEvent.FINISHED: self._on_finished,
            SessionEvent.RESTORED: self._on_restored,
            SessionEvent.LOGGED_IN: self._on_logged_in,
            SessionEvent.REGISTERED: self._on_registered,
            SessionEvent.VERIFIED: self._on_verified,
            SessionEvent.SIGNED_OUT: self._on_signed_out,
            SessionEvent.FAILED: self._on_failed,
            SessionEvent.ERROR_CLEARED: self._on_error_cleared,
        }

    @property
    def current(self) -> Session:
        """The session as the app should render it."""
        return self._current

    @property
    def settled(self) -> Session:
        """The last non-error session (what an ERROR overlay hides)."""
        return self._settled

    @property
    def user(self) -> Optional[dict]:
        return self._settled.user

    def is_logged_in(self) -> bool:
        return self._settled.is_logged_in

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener for session changes.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(
        self,
        event: SessionEvent,
        user: Optional[dict] = None,
        message: Optional[str] = None,
        requires_verification: bool = False,
    ) -> Session:
        """Apply an event and notify listeners if the session changed.

        Args:
            event: What happened
            user: Server user record (RESTORED, LOGGED_IN, REGISTERED)
            message: Error text (FAILED)
            requires_verification: Server flag (REGISTERED)

        Returns:
            The new current session

        Raises:
            InvalidTransitionError: Event not allowed from the current state
        """
        with self._lock:
            previous = self._current
            current = self._transitions[event](
                user=user, message=message, requires_verification=requires_verification
            )
            self._current = current
            if current.status is not SessionStatus.ERROR:
                self._settled = current

        if current != previous:
            logger.debug(f"Session {previous.status.value} -> {current.status.value} ({event.value})")
            self._notify(previous, current)
        return current

    def _notify(self, previous: Session, current: Session) -> None:
        for listener in list(self._listeners):
            try:
                listener(previous, current)
            except Exception:
                logger.exception("Session listener raised")

    # Transition table

    def _on_started(self, **_) -> Session:
        return replace(self._settled, loading=True)

    def _on_finished(self, **_) -> Session:
        if self._current.status is SessionStatus.ERROR:
            return replace(self._current, loading=False)
        return replace(self._settled, loading=False)

    def _on_restored(self, user: Optional[dict], **_) -> Session:
        user = self._require_user(user, SessionEvent.RESTORED)
        if is_email_verified(user):
            return Session(SessionStatus.AUTHENTICATED, user=user)
        return Session(SessionStatus.PENDING_VERIFICATION, user=user)

    def _on_logged_in(self, user: Optional[dict], **_) -> Session:
        user = self._require_user(user, SessionEvent.LOGGED_IN)
        return Session(SessionStatus.AUTHENTICATED, user=user)

    def _on_registered(
        self, user: Optional[dict], requires_verification: bool, **_
    ) -> Session:
        user = self._require_user(user, SessionEvent.REGISTERED)
        if requires_verification:
            return Session(SessionStatus.PENDING_VERIFICATION, user=user)
        return Session(SessionStatus.AUTHENTICATED, user=user)

    def _on_verified(self, **_) -> Session:
        settled = self._settled
        if settled.status is SessionStatus.AUTHENTICATED:
            return replace(settled, loading=False)
        if settled.status is not SessionStatus.PENDING_VERIFICATION:
            raise InvalidTransitionError(
                f"Cannot verify email from {settled.status.value} session"
            )
        user = dict(settled.user or {}, isEmailVerified=True)
        return Session(SessionStatus.AUTHENTICATED, user=user)

    def _on_signed_out(self, **_) -> Session:
        return _UNAUTHENTICATED

    def _on_failed(self, message: Optional[str], **_) -> Session:
        return Session(SessionStatus.ERROR, error=message or "Something went wrong")

    def _on_error_cleared(self, **_) -> Session:
        return replace(self._settled, loading=False)

    @staticmethod
    def _require_user(user: Optional[dict], event: SessionEvent) -> dict:
        if not isinstance(user, dict):
            raise InvalidTransitionError(f"{event.value} requires a user record")
        return user
