"""Reddit OAuth2 provider."""

from __future__ import annotations

from typing import Any

from ..engine.errors import AuthenticationError
from ..engine.http import VERSION
from .oauth2 import OAuth2Provider


class RedditAuth(OAuth2Provider):
    name = "reddit"
    label = "Reddit"
    authorize_url = "https://www.reddit.com/api/v1/authorize"
    token_url = "https://www.reddit.com/api/v1/access_token"
    identity_url = "https://oauth.reddit.com/api/v1/me"
    scopes = "identity read"
    refresh_window = 300
    required_config = ("client_id", "client_secret")
    optional_config = ("developer_username",)
    secret_fields = ("client_secret",)

    def user_agent(self) -> str:
        developer = self.get_config().get("developer_username") or "datamachine"
        return f"python:DataMachine:v{VERSION} (by /u/{developer})"

    def authorization_params(self) -> dict[str, str]:
        return {"duration": "permanent"}

    def token_request_headers(self) -> dict[str, str]:
        return {"Accept": "application/json", "User-Agent": self.user_agent()}

    def token_request_auth(self) -> tuple[str, str] | None:
        return self.client_credentials()

    def fetch_identity(self, access_token: str) -> dict[str, Any]:
        response = self.http.get(
            self.identity_url,
            headers={"Authorization": f"Bearer {access_token}", "User-Agent": self.user_agent()},
            context="Reddit OAuth",
        )
        data = response.json() if response.success else None
        if not isinstance(data, dict):
            self.logger.warning("Could not fetch Reddit identity: %s", response.error)
            return {"username": None}
        return {"username": data.get("name")}

    def on_refresh_rejected(self, exc: AuthenticationError) -> None:
        # Any failed refresh forces re-authorization.
        self.clear_account()

    def api_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.get_access_token()}",
            "User-Agent": self.user_agent(),
        }
