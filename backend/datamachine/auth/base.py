"""Base class shared by all auth providers."""

from __future__ import annotations

import enum
import logging
import time
from collections.abc import Callable
from typing import Any

from ..engine.http import HttpClient
from .store import CredentialStore


class AuthState(str, enum.Enum):
    UNCONFIGURED = "unconfigured"
    CONFIGURED = "configured"
    AUTHENTICATED = "authenticated"
    EXPIRING = "expiring"


class BaseAuthProvider:
    """Credential handling for one third-party integration."""

    name = ""
    label = ""
    auth_type = ""
    required_config: tuple[str, ...] = ()
    optional_config: tuple[str, ...] = ()
    # Fields of the stored config that must never be echoed back to clients.
    secret_fields: tuple[str, ...] = ()

    def __init__(
        self,
        store: CredentialStore,
        http: HttpClient,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.http = http
        self.clock = clock
        self.logger = logging.getLogger(f"datamachine.auth.{self.name}")

    def get_config(self) -> dict[str, Any]:
        return self.store.get_config(self.name)

    def save_config(self, config: dict[str, Any]) -> None:
        allowed = set(self.required_config) | set(self.optional_config)
        current = self.get_config()
        current.update({key: value for key, value in config.items() if key in allowed})
        self.store.save_config(self.name, current)

    def get_account(self) -> dict[str, Any]:
        return self.store.get_account(self.name)

    def save_account(self, account: dict[str, Any]) -> None:
        self.store.save_account(self.name, account)

    def clear_account(self) -> None:
        self.store.clear_account(self.name)

    def is_configured(self) -> bool:
        config = self.get_config()
        return all(str(config.get(field) or "").strip() for field in self.required_config)

    def is_authenticated(self) -> bool:
        return bool(self.get_account().get("access_token"))

    def state(self) -> AuthState:
        if not self.is_configured():
            return AuthState.UNCONFIGURED
        if not self.is_authenticated():
            return AuthState.CONFIGURED
        return AuthState.AUTHENTICATED

    def account_details(self) -> dict[str, Any]:
        """Public, non-secret account information."""

        account = self.get_account()
        return {
            key: value
            for key, value in account.items()
            if key not in {"access_token", "refresh_token", "password"}
        }

    def public_config(self) -> dict[str, Any]:
        config = self.get_config()
        return {
            key: ("********" if key in self.secret_fields and value else value)
            for key, value in config.items()
        }

    def status(self) -> dict[str, Any]:
        return {
            "provider": self.name,
            "label": self.label or self.name,
            "auth_type": self.auth_type,
            "state": self.state().value,
            "configured": self.is_configured(),
            "authenticated": self.is_authenticated(),
            "config_fields": list(self.required_config + self.optional_config),
            "config": self.public_config(),
            "account": self.account_details() if self.is_authenticated() else {},
        }
