"""HTTP client core for the Stylio API with transparent token renewal."""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Optional

import requests

from ..auth.keychain import CredentialStore, TokenPair
from ..config import DEFAULT_API_URL, DEFAULT_TIMEOUT
from .errors import (
    ApiAuthError,
    ApiClientError,
    ApiNetworkError,
    ApiServerError,
    ApiValidationError,
    RefreshRejectedError,
    RenewalError,
)
from .renewal import RenewalCoordinator
from .retry import IDEMPOTENT_METHODS, RetryConfig, RetryExhausted, retry_with_backoff

__all__ = ["ApiClient", "OutgoingRequest", "REFRESH_ENDPOINT"]

logger = logging.getLogger(__name__)

REFRESH_ENDPOINT = "auth/refresh-token"


@dataclass
class OutgoingRequest:
    """A request travelling through the client pipeline.

    ``auth_retries_left`` counts how many more times the request may be
    re-issued after a 401; it starts at one and is never replenished.
    """

    method: str
    path: str
    data: Optional[dict] = None
    params: Optional[dict] = None
    auth: bool = True
    headers: dict = field(default_factory=dict)
    access_token: Optional[str] = None
    auth_retries_left: int = 1


RequestDecorator = Callable[[OutgoingRequest], None]
ResponseHandler = Callable[[OutgoingRequest, requests.Response], Optional[OutgoingRequest]]


class _TransientError(Exception):
    """Internal: Marks an error as transient/retryable."""

    def __init__(self, message: str, response: Optional[requests.Response] = None):
        super().__init__(message)
        self.response = response


def _server_message(response: requests.Response) -> Optional[str]:
    """Extract the server's ``message`` field, if any."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return None


class ApiClient:
    """HTTP client for the Stylio API.

    Every request runs through an ordered pipeline:

    1. request decorators (default headers, bearer token from the
       credential store)
    2. transmission, with backoff retries for idempotent requests on
       transport errors and 5xx
    3. response handlers, which may hand back a replacement request to
       re-issue (token renewal after a 401)

    ``send()`` returns whatever response the pipeline settles on and only
    raises ApiNetworkError. ``request()`` unwraps the ``{"data": ...}``
    envelope and raises typed errors for non-2xx responses.
    """

    DEFAULT_RETRY_CONFIG = RetryConfig(
        max_retries=2,
        base_delay=0.5,
        max_delay=5.0,
        exponential_base=2.0,
        jitter=True,
    )

    USER_AGENT = "Stylio-Session/1.0.0"

    def __init__(
        self,
        credentials: CredentialStore,
        api_url: str = DEFAULT_API_URL,
        timeout: int = DEFAULT_TIMEOUT,
        retry_config: Optional[RetryConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        """Initialize API client.

        Args:
            credentials: Token store read before every request
            api_url: Stylio API base URL
            timeout: Request timeout in seconds
            retry_config: Backoff configuration for idempotent requests
            session: Optional requests session (for dependency injection/testing)
        """
        self.api_url = api_url.rstrip("/")
        self.credentials = credentials
        self.timeout = timeout
        self.retry_config = retry_config or self.DEFAULT_RETRY_CONFIG
        self._session = session or requests.Session()
        self._owns_session = session is None

        self.renewal = RenewalCoordinator(credentials, self._redeem_refresh_token)
        self.request_decorators: list[RequestDecorator] = [
            self._apply_default_headers,
            self._attach_bearer_token,
        ]
        self.response_handlers: list[ResponseHandler] = [
            self._renew_on_unauthorized,
        ]

    # Pipeline

    def send(
        self,
        method: str,
        path: str,
        data: Optional[dict] = None,
        params: Optional[dict] = None,
        auth: bool = True,
    ) -> requests.Response:
        """Send a request through the pipeline.

        Args:
            method: HTTP method
            path: Endpoint path relative to api_url
            data: JSON body
            params: Query parameters
            auth: Attach the stored access token and allow renewal

        Returns:
            The final response, which may still be an error status

        Raises:
            ApiNetworkError: Timeout or unreachable server
        """
        outgoing = OutgoingRequest(
            method=method.upper(),
            path=path.lstrip("/"),
            data=data,
            params=params,
            auth=auth,
        )
        while True:
            for decorate in self.request_decorators:
                decorate(outgoing)
            response = self._transmit(outgoing)

            follow_up = None
            for handle in self.response_handlers:
                follow_up = handle(outgoing, response)
                if follow_up is not None:
                    break
            if follow_up is None:
                return response
            outgoing = follow_up

    def request(
        self,
        method: str,
        path: str,
        data: Optional[dict] = None,
        params: Optional[dict] = None,
        auth: bool = True,
    ) -> Any:
        """Make request to the Stylio API and unwrap the response envelope.

        Returns:
            The ``data`` payload as sent (empty dict for bodiless or null data)

        Raises:
            ApiAuthError: 401 that renewal could not recover
            ApiValidationError: Other 4xx responses
            ApiServerError: 5xx responses
            ApiNetworkError: Timeout or unreachable server
        """
        response = self.send(method, path, data=data, params=params, auth=auth)
        if not response.ok:
            raise self._error_for(response)
        return self._unwrap(response)

    def _apply_default_headers(self, outgoing: OutgoingRequest) -> None:
        outgoing.headers.setdefault("Accept", "application/json")
        outgoing.headers.setdefault("User-Agent", self.USER_AGENT)

    def _attach_bearer_token(self, outgoing: OutgoingRequest) -> None:
        if not outgoing.auth:
            return
        if outgoing.access_token is None:
            stored = self.credentials.get()
            outgoing.access_token = stored.access_token if stored else None
        if outgoing.access_token:
            outgoing.headers["Authorization"] = f"Bearer {outgoing.access_token}"

    def _renew_on_unauthorized(
        self, outgoing: OutgoingRequest, response: requests.Response
    ) -> Optional[OutgoingRequest]:
        """Re-issue a 401'd request once with a renewed access token."""
        if response.status_code != 401 or not outgoing.auth:
            return None
        if outgoing.path == REFRESH_ENDPOINT or not outgoing.access_token:
            return None
        if outgoing.auth_retries_left <= 0:
            logger.warning(f"{outgoing.method} {outgoing.path} still unauthorized after renewal")
            return None

        try:
            renewed = self.renewal.renew(rejected_token=outgoing.access_token)
        except RenewalError as e:
            logger.info(f"{outgoing.method} {outgoing.path} unauthorized, renewal failed: {e}")
            return None
        return self._reissue(outgoing, renewed.access_token)

    @staticmethod
    def _reissue(outgoing: OutgoingRequest, access_token: str) -> OutgoingRequest:
        headers = dict(outgoing.headers)
        headers.pop("Authorization", None)
        return replace(
            outgoing,
            headers=headers,
            access_token=access_token,
            auth_retries_left=outgoing.auth_retries_left - 1,
        )

    # Transport

    def _transmit(self, outgoing: OutgoingRequest) -> requests.Response:
        url = f"{self.api_url}/{outgoing.path}"
        kwargs: dict = {
            "timeout": self.timeout,
            "headers": dict(outgoing.headers),
            "params": outgoing.params,
        }
        if outgoing.data is not None:
            kwargs["json"] = outgoing.data

        retryable = outgoing.method in IDEMPOTENT_METHODS

        def do_request() -> requests.Response:
            try:
                response = self._session.request(outgoing.method, url, **kwargs)
            except requests.exceptions.Timeout:
                raise _TransientError("Request timed out")
            except requests.exceptions.ConnectionError:
                raise _TransientError("Cannot connect to Stylio API")
            except requests.exceptions.RequestException as e:
                raise ApiNetworkError(f"Request failed: {e}") from e

            # Server errors (5xx) are retryable
            if retryable and response.status_code >= 500:
                raise _TransientError(f"Server error: {response.status_code}", response)
            return response

        try:
            return retry_with_backoff(
                do_request,
                config=self.retry_config.for_method(outgoing.method),
                retryable_exceptions=(_TransientError,),
                label=f"{outgoing.method} {outgoing.path}",
            )
        except RetryExhausted as e:
            last = e.last_error
            if isinstance(last, _TransientError) and last.response is not None:
                return last.response
            raise ApiNetworkError(str(last) if last else "Request failed after retries") from last

    def _redeem_refresh_token(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new pair (never retried)."""
        response = self.send(
            "POST",
            REFRESH_ENDPOINT,
            data={"refreshToken": refresh_token},
            auth=False,
        )
        if 400 <= response.status_code < 500:
            raise RefreshRejectedError(
                f"Refresh token rejected ({response.status_code})",
                status_code=response.status_code,
                server_message=_server_message(response),
            )
        if not response.ok:
            raise ApiNetworkError(
                f"Token refresh failed: server error {response.status_code}",
                status_code=response.status_code,
            )

        payload = self._unwrap(response)
        tokens = payload.get("tokens") if isinstance(payload, dict) else None
        if not isinstance(tokens, dict):
            tokens = {}
        try:
            return TokenPair.from_payload(tokens)
        except ValueError as e:
            raise RefreshRejectedError("Refresh response did not include a token pair") from e

    # Response handling

    @staticmethod
    def _unwrap(response: requests.Response) -> Any:
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as e:
            raise ApiClientError(
                "Invalid JSON in API response", status_code=response.status_code
            ) from e
        if isinstance(body, dict) and "data" in body:
            return body["data"] if body["data"] is not None else {}
        return body if isinstance(body, dict) else {"data": body}

    @staticmethod
    def _error_for(response: requests.Response) -> ApiClientError:
        status = response.status_code
        message = _server_message(response)
        if status == 401:
            error_cls: type = ApiAuthError
            summary = "Invalid or expired access token"
        elif status >= 500:
            error_cls = ApiServerError
            summary = f"Server error ({status})"
        else:
            error_cls = ApiValidationError
            summary = f"API error ({status})"
        return error_cls(
            f"{summary}: {message}" if message else summary,
            status_code=status,
            server_message=message,
        )

    def is_reachable(self) -> bool:
        """Check if the Stylio API root answers at all."""
        try:
            self._session.request(
                "GET", f"{self.api_url}/", timeout=self.timeout
            )
            return True
        except requests.exceptions.RequestException:
            return False

    def close(self) -> None:
        """Close the session if we own it."""
        if self._owns_session and self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
