"""Tests for the auth endpoint wrappers."""

import json

import pytest
import responses

from src.api.auth_api import AuthApi, AuthResult
from src.api.errors import ApiClientError, ApiValidationError
from src.api.http_client import ApiClient
from src.api.retry import RetryConfig
from src.auth.keychain import CredentialStore, TokenPair

API_URL = "https://api.stylio.test/api"

USER = {"id": "1", "username": "a", "isEmailVerified": True}
TOKENS = {"accessToken": "access-1", "refreshToken": "refresh-1"}


class TestAuthApi:
    """Tests for AuthApi."""

    @pytest.fixture(autouse=True)
    def setup(self, memory_keyring):
        self.store = CredentialStore("Stylio Test")
        self.client = ApiClient(
            self.store,
            api_url=API_URL,
            retry_config=RetryConfig(max_retries=0, base_delay=0, jitter=False),
        )
        self.api = AuthApi(self.client)

    def last_body(self) -> dict:
        return json.loads(responses.calls[-1].request.body)

    @responses.activate
    def test_login(self):
        responses.add(
            responses.POST,
            f"{API_URL}/auth/login",
            json={"data": {"user": USER, "tokens": TOKENS}},
        )

        result = self.api.login("a", "p")

        assert result == AuthResult(user=USER, tokens=TokenPair("access-1", "refresh-1"))
        assert self.last_body() == {"username": "a", "password": "p"}
        assert "Authorization" not in responses.calls[0].request.headers

    @responses.activate
    def test_login_without_tokens(self):
        responses.add(
            responses.POST,
            f"{API_URL}/auth/login",
            json={"data": {"user": USER, "tokens": {"accessToken": "access-1"}}},
        )

        with pytest.raises(ApiClientError, match="token pair"):
            self.api.login("a", "p")

    @responses.activate
    def test_login_without_user(self):
        responses.add(
            responses.POST,
            f"{API_URL}/auth/login",
            json={"data": {"tokens": TOKENS}},
        )

        with pytest.raises(ApiClientError, match="user"):
            self.api.login("a", "p")

    @responses.activate
    def test_register_omits_missing_profile_fields(self):
        responses.add(
            responses.POST,
            f"{API_URL}/auth/register",
            json={"data": {"user": USER, "tokens": TOKENS, "requiresVerification": True}},
        )

        result = self.api.register("a", "a@example.com", "pw", last_name="Smith")

        assert result.requires_verification is True
        assert self.last_body() == {
            "username": "a",
            "email": "a@example.com",
            "password": "pw",
            "lastName": "Smith",
        }

    @responses.activate
    def test_get_me(self):
        self.store.set(TokenPair("access-1", "refresh-1"))
        responses.add(responses.GET, f"{API_URL}/auth/me", json={"data": {"user": USER}})

        assert self.api.get_me() == USER
        assert responses.calls[0].request.headers["Authorization"] == "Bearer access-1"

    @responses.activate
    def test_get_me_without_user(self):
        responses.add(responses.GET, f"{API_URL}/auth/me", json={"data": {}})

        with pytest.raises(ApiClientError, match="user"):
            self.api.get_me()

    @responses.activate
    def test_verify_reset_otp(self):
        responses.add(
            responses.POST,
            f"{API_URL}/auth/verify-reset-otp",
            json={"data": {"resetToken": "reset-1"}},
        )

        assert self.api.verify_reset_otp("a@example.com", "123456") == "reset-1"
        assert self.last_body() == {"email": "a@example.com", "otp": "123456"}

    @responses.activate
    def test_verify_reset_otp_without_token(self):
        responses.add(responses.POST, f"{API_URL}/auth/verify-reset-otp", json={"data": {}})

        with pytest.raises(ApiClientError, match="reset token"):
            self.api.verify_reset_otp("a@example.com", "123456")

    @responses.activate
    def test_forgot_password_unknown_email(self):
        responses.add(
            responses.POST,
            f"{API_URL}/auth/forgot-password",
            json={"message": "No account with that email"},
            status=404,
        )

        with pytest.raises(ApiValidationError) as exc_info:
            self.api.forgot_password("x@example.com")

        assert exc_info.value.status_code == 404
        assert exc_info.value.server_message == "No account with that email"

    @responses.activate
    def test_push_token_endpoints(self):
        self.store.set(TokenPair("access-1", "refresh-1"))
        responses.add(responses.POST, f"{API_URL}/auth/push-token", json={"data": {}})
        responses.add(responses.DELETE, f"{API_URL}/auth/push-token", status=204)

        self.api.register_push_token("ExponentPushToken[x]", "ios")
        self.api.unregister_push_token()

        assert json.loads(responses.calls[0].request.body) == {
            "pushToken": "ExponentPushToken[x]",
            "platform": "ios",
        }
        assert responses.calls[1].request.method == "DELETE"

    @responses.activate
    def test_get_me_with_list_payload(self):
        responses.add(responses.GET, f"{API_URL}/auth/me", json={"data": []})

        with pytest.raises(ApiClientError, match="user"):
            self.api.get_me()
