"""Exception hierarchy for the Stylio API client."""

from typing import Optional

__all__ = [
    "ApiClientError",
    "ApiNetworkError",
    "ApiAuthError",
    "ApiValidationError",
    "ApiServerError",
    "RenewalError",
    "NoRefreshTokenError",
    "RefreshRejectedError",
]


class ApiClientError(Exception):
    """Stylio API client error.

    Attributes:
        status_code: HTTP status of the failing response, if there was one
        server_message: The server's ``message`` field, if it sent one
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        server_message: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.server_message = server_message


class ApiNetworkError(ApiClientError):
    """Timeout or unreachable server."""

    pass


class ApiAuthError(ApiClientError):
    """Authentication error that token renewal could not recover."""

    pass


class ApiValidationError(ApiClientError):
    """Request rejected by the server (4xx other than 401)."""

    pass


class ApiServerError(ApiClientError):
    """Server-side failure (5xx)."""

    pass


class RenewalError(ApiClientError):
    """Token renewal failed; the session cannot continue."""

    pass


class NoRefreshTokenError(RenewalError):
    """No refresh token is stored."""

    pass


class RefreshRejectedError(RenewalError):
    """The refresh endpoint rejected the refresh token."""

    pass
