"""Bluesky app-password authentication."""

from __future__ import annotations

from typing import Any

from ..engine.errors import AuthenticationError, CredentialsMissingError
from .base import AuthState, BaseAuthProvider

SESSION_URL = "https://bsky.social/xrpc/com.atproto.server.createSession"
DEFAULT_PDS = "https://bsky.social"


class BlueskyAuth(BaseAuthProvider):
    name = "bluesky"
    label = "Bluesky"
    auth_type = "app_password"
    required_config = ("username", "app_password")
    secret_fields = ("app_password",)

    def is_authenticated(self) -> bool:
        return self.is_configured()

    def state(self) -> AuthState:
        return AuthState.AUTHENTICATED if self.is_configured() else AuthState.UNCONFIGURED

    def account_details(self) -> dict[str, Any]:
        return {"handle": self.get_config().get("username")}

    def get_session(self) -> dict[str, Any]:
        """Create a fresh AT protocol session from the stored app password."""

        if not self.is_configured():
            raise CredentialsMissingError("Bluesky handle and app password are not configured")
        config = self.get_config()
        response = self.http.post(
            SESSION_URL,
            json_body={"identifier": config["username"], "password": config["app_password"]},
            headers={"Accept": "application/json"},
            context="Bluesky Auth",
        )
        data = response.json()
        if not response.success or not isinstance(data, dict):
            raise AuthenticationError(response.error or "Bluesky session request failed")
        if not data.get("accessJwt") or not data.get("did"):
            raise AuthenticationError("Bluesky session response missing accessJwt or did")

        pds_url = data.get("pdsUrl")
        return {
            "access_token": data["accessJwt"],
            "did": data["did"],
            "handle": data.get("handle") or config["username"],
            "pds_url": f"https://{pds_url.removeprefix('https://').lstrip('/')}" if pds_url else DEFAULT_PDS,
        }
