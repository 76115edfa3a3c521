"""Secure token storage using the system keychain."""

import logging
import threading
from dataclasses import dataclass
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from ..config import KEYCHAIN_SERVICE_NAME

__all__ = ["CredentialStore", "CredentialStoreError", "TokenPair"]

logger = logging.getLogger(__name__)

ACCESS_TOKEN_SLOT = "access_token"
REFRESH_TOKEN_SLOT = "refresh_token"


class CredentialStoreError(Exception):
    """Token pair could not be persisted."""

    pass


@dataclass(frozen=True)
class TokenPair:
    """Access/refresh token pair issued by the auth service."""

    access_token: str
    refresh_token: str

    def __post_init__(self) -> None:
        if not self.access_token or not self.refresh_token:
            raise ValueError("TokenPair requires both an access and a refresh token")

    @classmethod
    def from_payload(cls, tokens: dict) -> "TokenPair":
        """Build a pair from the server's ``tokens`` object."""
        return cls(
            access_token=tokens.get("accessToken", ""),
            refresh_token=tokens.get("refreshToken", ""),
        )

    def __repr__(self) -> str:
        return "TokenPair(access_token=***, refresh_token=***)"


class CredentialStore:
    """Keychain-backed store for the session's token pair.

    The pair lives in two named slots that are always written, read and
    cleared together under one lock. Read failures degrade to "no
    credentials" so callers fall back to unauthenticated behaviour.
    """

    def __init__(self, service_name: str = KEYCHAIN_SERVICE_NAME):
        """Initialize credential store.

        Args:
            service_name: Service name for keychain entries
        """
        self.service_name = service_name
        self._lock = threading.Lock()

    def get(self) -> Optional[TokenPair]:
        """Load the token pair.

        Returns:
            TokenPair if both slots are populated, None otherwise
        """
        with self._lock:
            try:
                access_token = keyring.get_password(self.service_name, ACCESS_TOKEN_SLOT)
                refresh_token = keyring.get_password(self.service_name, REFRESH_TOKEN_SLOT)
            except KeyringError as e:
                logger.error(f"Failed to load credentials: {e}")
                return None

        if not access_token and not refresh_token:
            return None
        if not access_token or not refresh_token:
            logger.warning("Keychain holds an incomplete token pair, ignoring it")
            return None
        return TokenPair(access_token=access_token, refresh_token=refresh_token)

    def set(self, pair: TokenPair) -> None:
        """Persist a token pair, replacing any previous one.

        Raises:
            CredentialStoreError: If the keychain rejected the write. Neither
                slot is left populated in that case.
        """
        with self._lock:
            try:
                keyring.set_password(self.service_name, ACCESS_TOKEN_SLOT, pair.access_token)
                keyring.set_password(self.service_name, REFRESH_TOKEN_SLOT, pair.refresh_token)
            except KeyringError as e:
                logger.error(f"Failed to store credentials: {e}")
                self._delete_slots()
                raise CredentialStoreError(f"Failed to store credentials: {e}") from e
        logger.debug("Token pair stored")

    def clear(self) -> None:
        """Delete the stored token pair (missing slots are fine)."""
        with self._lock:
            self._delete_slots()
        logger.info("Credentials cleared")

    def has_credentials(self) -> bool:
        """Check if a complete token pair is stored."""
        return self.get() is not None

    def _delete_slots(self) -> None:
        for slot in (ACCESS_TOKEN_SLOT, REFRESH_TOKEN_SLOT):
            try:
                keyring.delete_password(self.service_name, slot)
            except PasswordDeleteError:
                # Slot didn't exist
                pass
            except KeyringError as e:
                logger.error(f"Failed to delete {slot}: {e}")
