"""Best-effort push-token registration with the Stylio backend."""

import logging
from typing import TYPE_CHECKING, Callable, Optional

from .api.errors import ApiClientError
from .auth.session import Session, SessionState, SessionStatus

if TYPE_CHECKING:
    from .api.auth_api import AuthApi

__all__ = ["PushRegistrar"]

logger = logging.getLogger(__name__)


class PushRegistrar:
    """Registers this device's push token while the user is authenticated.

    The host app obtains the token from the OS and hands it over with
    ``set_device_token``. Failures are logged and never propagate; they
    must not affect the session.
    """

    def __init__(self, api: "AuthApi", platform: str, device_token: Optional[str] = None):
        self.api = api
        self.platform = platform
        self._device_token = device_token

    @property
    def device_token(self) -> Optional[str]:
        return self._device_token

    def set_device_token(self, token: Optional[str]) -> None:
        self._device_token = token

    def register(self) -> bool:
        """Send the device token to the server.

        Returns:
            True if the server accepted it
        """
        if not self._device_token:
            logger.debug("No push token available to register")
            return False
        try:
            self.api.register_push_token(self._device_token, self.platform)
        except ApiClientError as e:
            logger.warning(f"Failed to register push token: {e}")
            return False
        logger.info("Push token registered")
        return True

    def unregister(self) -> bool:
        """Remove this user's push token from the server."""
        try:
            self.api.unregister_push_token()
        except ApiClientError as e:
            logger.warning(f"Failed to remove push token: {e}")
            return False
        logger.info("Push token removed")
        return True

    def attach(self, session: SessionState) -> Callable[[], None]:
        """Register automatically whenever the session becomes authenticated.

        Returns:
            Function that detaches the registrar
        """

        # ERROR overlays keep the underlying session, so only a real
        # status change re-arms registration.
        authenticated = session.settled.is_authenticated

        def on_change(previous: Session, current: Session) -> None:
            nonlocal authenticated
            if current.status is SessionStatus.ERROR:
                return
            entering = current.is_authenticated and not authenticated
            authenticated = current.is_authenticated
            if entering:
                self.register()

        return session.subscribe(on_change)
