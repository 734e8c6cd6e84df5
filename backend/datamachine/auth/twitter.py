"""Twitter / X OAuth1 provider."""

from __future__ import annotations

from typing import Any

from .oauth1 import OAuth1Provider


class TwitterAuth(OAuth1Provider):
    name = "twitter"
    label = "Twitter / X"
    request_token_url = "https://api.twitter.com/oauth/request_token"
    authorize_url = "https://api.twitter.com/oauth/authenticate"
    access_token_url = "https://api.twitter.com/oauth/access_token"
    required_config = ("api_key", "api_secret")
    secret_fields = ("api_secret",)
    consumer_key_field = "api_key"
    consumer_secret_field = "api_secret"

    def build_account(self, token: dict[str, str]) -> dict[str, Any]:
        account = super().build_account(token)
        account["user_id"] = token.get("user_id")
        account["screen_name"] = token.get("screen_name")
        return account
