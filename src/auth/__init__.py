"""Auth module - secure token storage, session state and login flows."""

from .keychain import CredentialStore, CredentialStoreError, TokenPair
from .session import Session, SessionEvent, SessionState, SessionStatus
from .login import AuthBusyError, AuthError, AuthManager

__all__ = [
    "AuthBusyError",
    "AuthError",
    "AuthManager",
    "CredentialStore",
    "CredentialStoreError",
    "Session",
    "SessionEvent",
    "SessionState",
    "SessionStatus",
    "TokenPair",
]
