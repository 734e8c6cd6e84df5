"""Threads (Meta) OAuth2 provider with long-lived tokens."""

from __future__ import annotations

from typing import Any

from ..engine.errors import AuthenticationError
from .oauth2 import OAuth2Provider, parse_token_response


class ThreadsAuth(OAuth2Provider):
    name = "threads"
    label = "Threads"
    authorize_url = "https://graph.facebook.com/oauth/authorize"
    token_url = "https://graph.threads.net/oauth/access_token"
    exchange_url = "https://graph.threads.net/access_token"
    refresh_url = "https://graph.threads.net/refresh_access_token"
    identity_url = "https://graph.facebook.com/v19.0/me"
    scopes = "threads_basic,threads_content_publish"
    refresh_window = 7 * 24 * 60 * 60
    client_id_field = "app_id"
    client_secret_field = "app_secret"
    required_config = ("app_id", "app_secret")
    secret_fields = ("app_secret",)

    def transform_token(self, token: dict[str, Any]) -> dict[str, Any]:
        """Swap the short-lived token for a long-lived one; only the latter is stored."""

        _, app_secret = self.client_credentials()
        response = self.http.get(
            self.exchange_url,
            params={
                "grant_type": "th_exchange_token",
                "client_secret": app_secret,
                "access_token": token["access_token"],
            },
            context="Threads OAuth",
        )
        return parse_token_response(response)

    def fetch_identity(self, access_token: str) -> dict[str, Any]:
        response = self.http.get(
            self.identity_url,
            params={"fields": "id,name"},
            headers={"Authorization": f"Bearer {access_token}"},
            context="Threads OAuth",
        )
        data = response.json() if response.success else None
        if not isinstance(data, dict) or not data.get("id"):
            raise AuthenticationError("Could not retrieve the Threads profile ID")
        return {"page_id": data["id"], "page_name": data.get("name") or "Unknown"}

    def request_refresh(self, account: dict[str, Any]) -> dict[str, Any]:
        response = self.http.get(
            self.refresh_url,
            params={"grant_type": "th_refresh_token", "access_token": account.get("access_token", "")},
            context="Threads OAuth",
        )
        return parse_token_response(response)
