"""Stylio auth endpoints."""

from dataclasses import dataclass
from typing import Optional

from ..auth.keychain import TokenPair
from .errors import ApiClientError
from .http_client import ApiClient

__all__ = ["AuthApi", "AuthResult"]


@dataclass
class AuthResult:
    """Result of a login or registration."""

    user: dict
    tokens: TokenPair
    requires_verification: bool = False


def _object(payload) -> dict:
    return payload if isinstance(payload, dict) else {}


def _auth_result(payload) -> AuthResult:
    payload = _object(payload)
    user = payload.get("user")
    if not isinstance(user, dict):
        raise ApiClientError("Auth response did not include a user")
    try:
        tokens = TokenPair.from_payload(payload.get("tokens") or {})
    except ValueError as e:
        raise ApiClientError("Auth response did not include a token pair") from e
    return AuthResult(
        user=user,
        tokens=tokens,
        requires_verification=bool(payload.get("requiresVerification", False)),
    )


class AuthApi:
    """Thin wrappers around the ``/auth`` endpoints.

    Errors propagate as ApiClientError subclasses; nothing here touches the
    credential store or session state.
    """

    def __init__(self, client: ApiClient):
        self.client = client

    def login(self, username: str, password: str) -> AuthResult:
        payload = self.client.request(
            "POST",
            "auth/login",
            data={"username": username, "password": password},
            auth=False,
        )
        return _auth_result(payload)

    def register(
        self,
        username: str,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> AuthResult:
        """Create an account.

        Optional profile fields are only sent when given.
        """
        data = {"username": username, "email": email, "password": password}
        optional = {"firstName": first_name, "lastName": last_name, "phone": phone}
        data.update({k: v for k, v in optional.items() if v is not None})

        payload = self.client.request("POST", "auth/register", data=data, auth=False)
        return _auth_result(payload)

    def logout(self) -> None:
        self.client.request("POST", "auth/logout")

    def get_me(self) -> dict:
        """Get the current user's profile."""
        payload = self.client.request("GET", "auth/me")
        user = _object(payload).get("user")
        if not isinstance(user, dict):
            raise ApiClientError("Profile response did not include a user")
        return user

    def verify_otp(self, otp: str) -> None:
        self.client.request("POST", "auth/verify-otp", data={"otp": otp})

    def resend_otp(self) -> None:
        self.client.request("POST", "auth/resend-otp")

    def forgot_password(self, email: str) -> None:
        self.client.request(
            "POST", "auth/forgot-password", data={"email": email}, auth=False
        )

    def verify_reset_otp(self, email: str, otp: str) -> str:
        """Exchange an emailed reset code for a reset token."""
        payload = self.client.request(
            "POST",
            "auth/verify-reset-otp",
            data={"email": email, "otp": otp},
            auth=False,
        )
        reset_token = _object(payload).get("resetToken")
        if not reset_token:
            raise ApiClientError("Reset response did not include a reset token")
        return reset_token

    def reset_password(self, reset_token: str, new_password: str) -> None:
        self.client.request(
            "POST",
            "auth/reset-password",
            data={"resetToken": reset_token, "newPassword": new_password},
            auth=False,
        )

    def register_push_token(self, push_token: str, platform: str) -> None:
        self.client.request(
            "POST",
            "auth/push-token",
            data={"pushToken": push_token, "platform": platform},
        )

    def unregister_push_token(self) -> None:
        self.client.request("DELETE", "auth/push-token")
