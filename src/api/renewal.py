"""Single-flight access token renewal."""

import logging
import threading
from concurrent.futures import Future
from typing import Callable, Optional

from ..auth.keychain import CredentialStore, CredentialStoreError, TokenPair
from .errors import NoRefreshTokenError, RefreshRejectedError, RenewalError

__all__ = ["RenewalCoordinator"]

logger = logging.getLogger(__name__)

RenewalListener = Callable[[RenewalError], None]


class RenewalCoordinator:
    """Ensures at most one refresh-token redemption is in flight.

    The first caller of ``renew()`` redeems the stored refresh token; every
    caller arriving while that renewal is pending waits on the same Future
    and receives the same TokenPair or exception. The slot is cleared once
    the renewal settles so a later expiry triggers a fresh one.

    On a terminal failure (no refresh token, token rejected) the credential
    store is cleared and subscribers are notified once per renewal.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        redeem: Callable[[str], TokenPair],
    ):
        """Initialize renewal coordinator.

        Args:
            credentials: Store holding the refresh token
            redeem: Exchanges a refresh token for a new pair; raises
                RefreshRejectedError when the server refuses it
        """
        self.credentials = credentials
        self._redeem = redeem
        self._lock = threading.Lock()
        self._pending: Optional[Future] = None
        self._listeners: list[RenewalListener] = []

    @property
    def in_flight(self) -> bool:
        """Whether a renewal is currently pending."""
        with self._lock:
            return self._pending is not None

    def subscribe(self, listener: RenewalListener) -> Callable[[], None]:
        """Register a callback for terminal renewal failures.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def renew(self, rejected_token: Optional[str] = None) -> TokenPair:
        """Renew the token pair, joining an in-flight renewal if any.

        Args:
            rejected_token: Access token the server just refused. If the
                store already holds a different one, another caller renewed
                in the meantime and that pair is returned without a new
                redemption.

        Returns:
            The freshly stored TokenPair

        Raises:
            NoRefreshTokenError: Store holds no refresh token
            RefreshRejectedError: Server refused the refresh token
            RenewalError: Renewed pair could not be persisted
            ApiNetworkError: Refresh endpoint unreachable (credentials kept)
        """
        with self._lock:
            pending = self._pending
            leader = pending is None
            if leader:
                pending = Future()
                self._pending = pending

        if leader:
            self._run(pending, rejected_token)
        else:
            logger.debug("Joining in-flight token renewal")
        return pending.result()

    def _run(self, pending: Future, rejected_token: Optional[str]) -> None:
        try:
            pair = self._renew_once(rejected_token)
        except Exception as e:
            pending.set_exception(e)
        else:
            pending.set_result(pair)
        finally:
            with self._lock:
                self._pending = None

    def _renew_once(self, rejected_token: Optional[str]) -> TokenPair:
        stored = self.credentials.get()
        if stored is None:
            error = NoRefreshTokenError("No refresh token stored")
            self._expire(error)
            raise error
        if rejected_token and stored.access_token != rejected_token:
            logger.debug("Token pair already renewed")
            return stored

        logger.info("Renewing access token")
        try:
            renewed = self._redeem(stored.refresh_token)
        except RefreshRejectedError as e:
            self._expire(e)
            raise

        try:
            self.credentials.set(renewed)
        except CredentialStoreError as e:
            error = RenewalError(f"Could not persist renewed tokens: {e}")
            self._expire(error)
            raise error from e

        logger.info("Access token renewed")
        return renewed

    def _expire(self, error: RenewalError) -> None:
        logger.warning(f"Token renewal failed, clearing session: {error}")
        self.credentials.clear()
        for listener in list(self._listeners):
            try:
                listener(error)
            except Exception:
                logger.exception("Renewal failure listener raised")
