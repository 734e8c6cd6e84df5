"""Authorization-code OAuth2 flow with proactive token refresh."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any
from urllib.parse import urlencode

from ..engine.errors import AuthenticationError, ConfigurationError, CredentialsMissingError
from ..engine.http import HttpClient, HttpResponse
from .base import AuthState, BaseAuthProvider
from .store import CredentialStore, StateStore


class OAuth2Provider(BaseAuthProvider):
    """Shared OAuth2 behaviour; subclasses set endpoints and override hooks."""

    auth_type = "oauth2"
    authorize_url = ""
    token_url = ""
    scopes = ""
    # Seconds before expiry at which the token is refreshed ahead of use.
    refresh_window = 300
    client_id_field = "client_id"
    client_secret_field = "client_secret"

    def __init__(
        self,
        store: CredentialStore,
        http: HttpClient,
        state_store: StateStore,
        redirect_base: str = "",
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(store, http, clock)
        self.state_store = state_store
        self.redirect_base = redirect_base.rstrip("/")

    @property
    def redirect_uri(self) -> str:
        return f"{self.redirect_base}/api/auth/{self.name}/callback"

    def client_credentials(self) -> tuple[str, str]:
        config = self.get_config()
        return (
            str(config.get(self.client_id_field) or ""),
            str(config.get(self.client_secret_field) or ""),
        )

    # Authorization -----------------------------------------------------

    def create_state(self) -> str:
        return self.state_store.create(self.name)

    def verify_state(self, state: str | None) -> bool:
        return self.state_store.consume(self.name, state)

    def authorization_params(self) -> dict[str, str]:
        """Provider specific query parameters added to the authorize URL."""
        return {}

    def get_authorization_url(self) -> str:
        if not self.is_configured():
            raise ConfigurationError(f"{self.label or self.name} is not configured")
        client_id, _ = self.client_credentials()
        params = {
            "client_id": client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": self.scopes,
            "state": self.create_state(),
        }
        params.update(self.authorization_params())
        return f"{self.authorize_url}?{urlencode(params)}"

    def handle_callback(self, code: str | None, state: str | None, error: str | None = None) -> dict[str, Any]:
        """Validate the redirect, exchange the code and persist the account."""

        if error:
            raise AuthenticationError(f"Authorization denied: {error}")
        if not self.verify_state(state):
            raise AuthenticationError("Invalid or expired state parameter")
        if not code:
            raise AuthenticationError("Authorization code missing from callback")
        if not self.is_configured():
            raise ConfigurationError(f"{self.label or self.name} is not configured")

        token = self.exchange_code(code)
        token = self.transform_token(token)
        account = self.build_account(token)
        account.update(self.fetch_identity(account["access_token"]))
        self.save_account(account)
        self.logger.info("%s account authenticated", self.name)
        return account

    # Token endpoint ----------------------------------------------------

    def token_request_headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    def token_request_auth(self) -> tuple[str, str] | None:
        """HTTP basic credentials for the token endpoint, if the provider uses them."""
        return None

    def _token_request(self, data: dict[str, str]) -> dict[str, Any]:
        auth = self.token_request_auth()
        if auth is None:
            client_id, client_secret = self.client_credentials()
            data = {**data, "client_id": client_id, "client_secret": client_secret}
        response = self.http.post(
            self.token_url,
            data=data,
            headers=self.token_request_headers(),
            auth=auth,
            context=f"{self.name} OAuth",
        )
        return parse_token_response(response)

    def exchange_code(self, code: str) -> dict[str, Any]:
        return self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
            }
        )

    def transform_token(self, token: dict[str, Any]) -> dict[str, Any]:
        """Hook for providers that exchange the first token for another one."""
        return token

    def fetch_identity(self, access_token: str) -> dict[str, Any]:
        return {}

    def build_account(self, token: dict[str, Any], previous: dict[str, Any] | None = None) -> dict[str, Any]:
        now = self.clock()
        account = dict(previous or {})
        account["access_token"] = token["access_token"]
        if token.get("refresh_token"):
            account["refresh_token"] = token["refresh_token"]
        account["token_type"] = token.get("token_type", "bearer")
        expires_in = token.get("expires_in")
        account["expires_at"] = now + int(expires_in) if expires_in else None
        account.setdefault("authenticated_at", now)
        return account

    # Refresh -----------------------------------------------------------

    def request_refresh(self, account: dict[str, Any]) -> dict[str, Any]:
        refresh_token = account.get("refresh_token")
        if not refresh_token:
            raise AuthenticationError("No refresh token available")
        return self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )

    def on_refresh_rejected(self, exc: AuthenticationError) -> None:
        """Called when a refresh fails, whether rejected or unreachable."""

    def refresh_access_token(self) -> str | None:
        """Refresh and persist the token; ``None`` when the refresh failed."""

        account = self.get_account()
        try:
            token = self.request_refresh(account)
        except AuthenticationError as exc:
            self.logger.warning("%s token refresh failed: %s", self.name, exc)
            self.on_refresh_rejected(exc)
            return None

        updated = self.build_account(token, previous=account)
        updated["last_refreshed_at"] = self.clock()
        self.save_account(updated)
        self.logger.info("%s access token refreshed", self.name)
        return updated["access_token"]

    def needs_refresh(self, account: dict[str, Any]) -> bool:
        expires_at = account.get("expires_at")
        if expires_at is None:
            return False
        return float(expires_at) - self.clock() <= self.refresh_window

    def get_access_token(self) -> str:
        account = self.get_account()
        token = account.get("access_token")
        if not token:
            raise CredentialsMissingError(f"{self.label or self.name} is not authenticated")
        if not self.needs_refresh(account):
            return token

        refreshed = self.refresh_access_token()
        if refreshed:
            return refreshed
        if float(account["expires_at"]) <= self.clock():
            raise AuthenticationError(
                f"{self.label or self.name} token expired and could not be refreshed"
            )
        return token

    def get_session(self) -> str:
        return self.get_access_token()

    def state(self) -> AuthState:
        current = super().state()
        if current is AuthState.AUTHENTICATED and self.needs_refresh(self.get_account()):
            return AuthState.EXPIRING
        return current


def parse_token_response(response: HttpResponse) -> dict[str, Any]:
    data = response.json()
    if not response.success or not isinstance(data, dict) or not data.get("access_token"):
        message = response.error or "Token endpoint returned no access token"
        if isinstance(data, dict):
            message = data.get("error_description") or _nested_message(data) or message
        raise AuthenticationError(message)
    return data


def _nested_message(data: dict[str, Any]) -> str | None:
    error = data.get("error")
    if isinstance(error, dict):
        return error.get("message")
    return error
