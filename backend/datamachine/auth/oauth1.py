"""Three-legged OAuth 1.0a flow: request token, user authorization, access token."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any
from urllib.parse import parse_qsl, urlencode

from requests_oauthlib import OAuth1

from ..engine.errors import AuthenticationError, ConfigurationError, CredentialsMissingError
from ..engine.http import HttpClient, HttpResponse
from .base import BaseAuthProvider
from .store import CredentialStore, StateStore


class OAuth1Provider(BaseAuthProvider):
    """Shared OAuth1 behaviour; subclasses set the three endpoints.

    The request token doubles as the single-use state: its secret is kept in
    the state store until the callback presents the token again.
    """

    auth_type = "oauth1"
    request_token_url = ""
    authorize_url = ""
    access_token_url = ""
    consumer_key_field = "consumer_key"
    consumer_secret_field = "consumer_secret"

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

    def consumer_credentials(self) -> tuple[str, str]:
        config = self.get_config()
        return (
            str(config.get(self.consumer_key_field) or ""),
            str(config.get(self.consumer_secret_field) or ""),
        )

    def _require_configured(self) -> tuple[str, str]:
        if not self.is_configured():
            raise ConfigurationError(f"{self.label or self.name} is not configured")
        return self.consumer_credentials()

    def get_authorization_url(self) -> str:
        key, secret = self._require_configured()
        response = self.http.post(
            self.request_token_url,
            auth=OAuth1(key, client_secret=secret, callback_uri=self.redirect_uri),
            context=f"{self.name} OAuth",
        )
        token = parse_token_response(response, "request token")
        self.state_store.save(self.name, token["oauth_token"], token["oauth_token_secret"])
        self.logger.debug("%s request token obtained", self.name)
        return f"{self.authorize_url}?{urlencode({'oauth_token': token['oauth_token']})}"

    def handle_callback(
        self, oauth_token: str | None, oauth_verifier: str | None, denied: str | None = None
    ) -> dict[str, Any]:
        """Trade the authorized request token for an access token and persist the account."""

        if denied:
            self.state_store.take(self.name, denied)
            raise AuthenticationError("Authorization denied by the user")
        if not oauth_token or not oauth_verifier:
            raise AuthenticationError("oauth_token or oauth_verifier missing from callback")
        token_secret = self.state_store.take(self.name, oauth_token)
        if not token_secret:
            raise AuthenticationError("Request token is unknown or expired")

        key, secret = self._require_configured()
        response = self.http.post(
            self.access_token_url,
            auth=OAuth1(
                key,
                client_secret=secret,
                resource_owner_key=oauth_token,
                resource_owner_secret=token_secret,
                verifier=oauth_verifier,
            ),
            context=f"{self.name} OAuth",
        )
        token = parse_token_response(response, "access token")
        account = self.build_account(token)
        self.save_account(account)
        self.logger.info("%s account authenticated", self.name)
        return account

    def build_account(self, token: dict[str, str]) -> dict[str, Any]:
        return {
            "access_token": token["oauth_token"],
            "access_token_secret": token["oauth_token_secret"],
            "authenticated_at": self.clock(),
        }

    def is_authenticated(self) -> bool:
        account = self.get_account()
        return bool(account.get("access_token") and account.get("access_token_secret"))

    def account_details(self) -> dict[str, Any]:
        details = super().account_details()
        details.pop("access_token_secret", None)
        return details

    def signer(self) -> OAuth1:
        """Request signer for API calls made on behalf of the stored account."""

        key, secret = self._require_configured()
        if not self.is_authenticated():
            raise CredentialsMissingError(f"{self.label or self.name} is not authenticated")
        account = self.get_account()
        return OAuth1(
            key,
            client_secret=secret,
            resource_owner_key=account["access_token"],
            resource_owner_secret=account["access_token_secret"],
        )

    def get_session(self) -> OAuth1:
        return self.signer()


def parse_token_response(response: HttpResponse, label: str) -> dict[str, str]:
    token = dict(parse_qsl(response.text or "")) if response.success else {}
    if not token.get("oauth_token") or not token.get("oauth_token_secret"):
        raise AuthenticationError(f"Failed to get {label}: {response.error or 'no token returned'}")
    return token
