"""API module - HTTP client core, token renewal and auth endpoints."""

from .errors import (
    ApiAuthError,
    ApiClientError,
    ApiNetworkError,
    ApiServerError,
    ApiValidationError,
    NoRefreshTokenError,
    RefreshRejectedError,
    RenewalError,
)
from .retry import RetryConfig, retry_with_backoff
from .renewal import RenewalCoordinator
from .http_client import ApiClient
from .auth_api import AuthApi, AuthResult

__all__ = [
    "ApiClient",
    "AuthApi",
    "AuthResult",
    "RenewalCoordinator",
    "RetryConfig",
    "retry_with_backoff",
    "ApiClientError",
    "ApiNetworkError",
    "ApiAuthError",
    "ApiValidationError",
    "ApiServerError",
    "RenewalError",
    "NoRefreshTokenError",
    "RefreshRejectedError",
]
