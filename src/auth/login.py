"""Login management and authentication flow."""

import logging
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator, Optional

from ..api.errors import ApiClientError, RenewalError
from .keychain import CredentialStore, CredentialStoreError
from .session import Session, SessionEvent, SessionState, SessionStatus

if TYPE_CHECKING:
    from ..api.auth_api import AuthApi
    from ..push import PushRegistrar

__all__ = ["AuthError", "AuthBusyError", "AuthManager"]

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """An auth operation failed; the message is fit for the user."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthBusyError(AuthError):
    """Another auth operation is already in progress."""

    pass


class AuthManager:
    """Runs login, registration, logout and account flows.

    Tokens are persisted before the session enters an authenticated state
    and cleared before it returns to UNAUTHENTICATED, so the session never
    claims a login the credential store cannot back.

    Only one operation runs at a time; a concurrent call raises
    AuthBusyError instead of interleaving session transitions.
    """

    def __init__(
        self,
        api: "AuthApi",
        credentials: CredentialStore,
        session: Optional[SessionState] = None,
        push: Optional["PushRegistrar"] = None,
    ):
        """Initialize auth manager.

        Args:
            api: Auth endpoint wrappers
            credentials: Token store shared with the API client
            session: Session state machine (creates one if None)
            push: Push-token registrar for logout de-registration
        """
        self.api = api
        self.credentials = credentials
        self.session = session or SessionState()
        self.push = push
        self._busy = threading.Lock()
        self._unsubscribe_renewal = api.client.renewal.subscribe(self._on_renewal_failed)

    def _on_renewal_failed(self, error: RenewalError) -> None:
        # Store already cleared by the coordinator
        logger.info(f"Session expired: {error}")
        self.session.dispatch(SessionEvent.SIGNED_OUT)

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        if not self._busy.acquire(blocking=False):
            raise AuthBusyError("Another sign-in action is already in progress")
        try:
            yield
        finally:
            self._busy.release()

    @contextmanager
    def _operation(self, fallback: str) -> Iterator[None]:
        with self._exclusive():
            with self._tracked(fallback):
                yield

    @contextmanager
    def _tracked(self, fallback: str) -> Iterator[None]:
        """Record an auth operation's progress and failures in the session.

        Args:
            fallback: Message shown when the server gives none
        """
        self.session.dispatch(SessionEvent.STARTED)
        try:
            yield
        except ApiClientError as e:
            logger.warning(f"{fallback}: {e}")
            self._fail(e.server_message or fallback)
        except CredentialStoreError as e:
            logger.error(f"{fallback}: {e}")
            self._fail(fallback)
        self.session.dispatch(SessionEvent.FINISHED)

    def _fail(self, message: str) -> None:
        self.session.dispatch(SessionEvent.FAILED, message=message)
        raise AuthError(message)

    def restore(self) -> Session:
        """Restore the session from stored tokens on app start.

        Any failure to confirm the stored tokens signs the user out.

        Returns:
            The resulting session
        """
        with self._exclusive():
            self.session.dispatch(SessionEvent.STARTED)
            if self.credentials.get() is None:
                logger.info("No stored credentials")
                # get() also reports a half-written pair as absent
                self.credentials.clear()
                return self.session.dispatch(SessionEvent.SIGNED_OUT)

            try:
                user = self.api.get_me()
            except ApiClientError as e:
                logger.warning(f"Session restore failed: {e}")
                self.credentials.clear()
                return self.session.dispatch(SessionEvent.SIGNED_OUT)

            session = self.session.dispatch(SessionEvent.RESTORED, user=user)
            logger.info(f"Session restored ({session.status.value})")
            return session

    def login(self, username: str, password: str) -> Session:
        """Log in with username and password.

        Raises:
            AuthError: With the server's message or "Login failed"
        """
        with self._operation("Login failed"):
            result = self.api.login(username, password)
            self.credentials.set(result.tokens)
            self.session.dispatch(SessionEvent.LOGGED_IN, user=result.user)
            logger.info("Login successful")
        return self.session.current

    def register(
        self,
        username: str,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Session:
        """Create an account and sign in.

        The session ends up PENDING_VERIFICATION when the server asks for
        email verification, AUTHENTICATED otherwise.

        Raises:
            AuthError: With the server's message or "Registration failed"
        """
        with self._operation("Registration failed"):
            result = self.api.register(
                username,
                email,
                password,
                first_name=first_name,
                last_name=last_name,
                phone=phone,
            )
            self.credentials.set(result.tokens)
            self.session.dispatch(
                SessionEvent.REGISTERED,
                user=result.user,
                requires_verification=result.requires_verification,
            )
            logger.info("Registration successful")
        return self.session.current

    def logout(self) -> Session:
        """Log out.

        The push token is removed first, while the access token is still
        valid. Local credentials are cleared even if the server call fails.

        Returns:
            The (unauthenticated) session
        """
        with self._exclusive():
            was_authenticated = self.session.settled.is_authenticated
            self.session.dispatch(SessionEvent.STARTED)
            try:
                if self.push and was_authenticated:
                    self.push.unregister()
                try:
                    self.api.logout()
                except ApiClientError as e:
                    logger.warning(f"Server logout failed: {e}")
            finally:
                self.credentials.clear()
                self.session.dispatch(SessionEvent.SIGNED_OUT)

        logger.info("Logged out")
        return self.session.current

    def fetch_current_user(self) -> dict:
        """Reload the current user's profile into the session.

        Raises:
            AuthError: If not logged in or the profile could not be loaded
        """
        if not self.session.is_logged_in():
            raise AuthError("Not logged in")
        with self._operation("Could not load your profile"):
            user = self.api.get_me()
            self.session.dispatch(SessionEvent.RESTORED, user=user)
        return user

    def verify_email(self, otp: str) -> Session:
        """Confirm the emailed verification code.

        Raises:
            AuthError: If no account awaits verification, or the code was
                rejected
        """
        with self._exclusive():
            if self.session.settled.status is not SessionStatus.PENDING_VERIFICATION:
                raise AuthError("No account is awaiting email verification")
            with self._tracked("Verification failed"):
                self.api.verify_otp(otp)
                self.session.dispatch(SessionEvent.VERIFIED)
                logger.info("Email verified")
        return self.session.current

    def resend_verification_code(self) -> None:
        with self._operation("Could not resend the code"):
            self.api.resend_otp()

    def forgot_password(self, email: str) -> None:
        """Ask the server to email a password reset code."""
        with self._operation("Could not send the reset code"):
            self.api.forgot_password(email)

    def verify_reset_code(self, email: str, otp: str) -> str:
        """Check a reset code.

        Returns:
            Reset token for reset_password()
        """
        with self._operation("Invalid or expired code"):
            reset_token = self.api.verify_reset_otp(email, otp)
        return reset_token

    def reset_password(self, reset_token: str, new_password: str) -> None:
        with self._operation("Could not reset your password"):
            self.api.reset_password(reset_token, new_password)
        logger.info("Password reset")

    def clear_error(self) -> Session:
        return self.session.dispatch(SessionEvent.ERROR_CLEARED)

    def close(self) -> None:
        """Stop listening for renewal failures."""
        self._unsubscribe_renewal()
