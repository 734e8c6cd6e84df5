"""Auth providers for third-party integrations."""

from __future__ import annotations

from .base import AuthState, BaseAuthProvider
from .bluesky import BlueskyAuth
from .google_sheets import GoogleSheetsAuth
from .oauth1 import OAuth1Provider
from .oauth2 import OAuth2Provider
from .reddit import RedditAuth
from .store import (
    CredentialStore,
    DatabaseCredentialStore,
    DatabaseStateStore,
    InMemoryCredentialStore,
    InMemoryStateStore,
    StateStore,
)
from .threads import ThreadsAuth
from .twitter import TwitterAuth


def build_auth_providers(store, state_store, http, redirect_base: str = "") -> dict[str, BaseAuthProvider]:
    """Instantiate every provider against the shared stores."""

    providers: list[BaseAuthProvider] = [
        RedditAuth(store, http, state_store, redirect_base),
        GoogleSheetsAuth(store, http, state_store, redirect_base),
        ThreadsAuth(store, http, state_store, redirect_base),
        TwitterAuth(store, http, state_store, redirect_base),
        BlueskyAuth(store, http),
    ]
    return {provider.name: provider for provider in providers}


__all__ = [
    "AuthState",
    "BaseAuthProvider",
    "BlueskyAuth",
    "CredentialStore",
    "DatabaseCredentialStore",
    "DatabaseStateStore",
    "GoogleSheetsAuth",
    "InMemoryCredentialStore",
    "InMemoryStateStore",
    "OAuth1Provider",
    "OAuth2Provider",
    "RedditAuth",
    "StateStore",
    "ThreadsAuth",
    "TwitterAuth",
    "build_auth_providers",
]
