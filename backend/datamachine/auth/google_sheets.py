"""Google Sheets OAuth2 provider."""

from __future__ import annotations

from .oauth2 import OAuth2Provider


class GoogleSheetsAuth(OAuth2Provider):
    name = "google_sheets"
    label = "Google Sheets"
    authorize_url = "https://accounts.google.com/o/oauth2/v2/auth"
    token_url = "https://oauth2.googleapis.com/token"
    scopes = "https://www.googleapis.com/auth/spreadsheets"
    refresh_window = 300
    required_config = ("client_id", "client_secret")
    secret_fields = ("client_secret",)

    def authorization_params(self) -> dict[str, str]:
        # Offline access with forced consent is the only way to receive a refresh token.
        return {"access_type": "offline", "prompt": "consent"}
