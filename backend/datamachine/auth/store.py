"""Credential and OAuth state storage."""

from __future__ import annotations

import hmac
import secrets
import threading
import time
from collections.abc import Callable
from typing import Any

from ..extensions import db
from ..models.credential import OAuthCredential, OAuthState


class CredentialStore:
    """Site-scoped storage of provider configuration and account tokens."""

    def get_config(self, provider: str) -> dict[str, Any]:
        raise NotImplementedError

    def save_config(self, provider: str, config: dict[str, Any]) -> None:
        raise NotImplementedError

    def get_account(self, provider: str) -> dict[str, Any]:
        raise NotImplementedError

    def save_account(self, provider: str, account: dict[str, Any]) -> None:
        raise NotImplementedError

    def clear_account(self, provider: str) -> None:
        self.save_account(provider, {})


class DatabaseCredentialStore(CredentialStore):
    def _row(self, provider: str, create: bool = False) -> OAuthCredential | None:
        row = db.session.get(OAuthCredential, provider)
        if row is None and create:
            row = OAuthCredential(provider=provider, config={}, account={})
            db.session.add(row)
        return row

    def get_config(self, provider: str) -> dict[str, Any]:
        row = self._row(provider)
        return dict(row.config or {}) if row is not None else {}

    def save_config(self, provider: str, config: dict[str, Any]) -> None:
        row = self._row(provider, create=True)
        row.config = dict(config)
        db.session.commit()

    def get_account(self, provider: str) -> dict[str, Any]:
        row = self._row(provider)
        return dict(row.account or {}) if row is not None else {}

    def save_account(self, provider: str, account: dict[str, Any]) -> None:
        row = self._row(provider, create=True)
        row.account = dict(account)
        db.session.commit()


class InMemoryCredentialStore(CredentialStore):
    def __init__(self) -> None:
        self._config: dict[str, dict[str, Any]] = {}
        self._accounts: dict[str, dict[str, Any]] = {}

    def get_config(self, provider: str) -> dict[str, Any]:
        return dict(self._config.get(provider, {}))

    def save_config(self, provider: str, config: dict[str, Any]) -> None:
        self._config[provider] = dict(config)

    def get_account(self, provider: str) -> dict[str, Any]:
        return dict(self._accounts.get(provider, {}))

    def save_account(self, provider: str, account: dict[str, Any]) -> None:
        self._accounts[provider] = dict(account)


class StateStore:
    """Single-use, time-boxed OAuth ``state`` nonces."""

    def __init__(self, ttl: int = 900, clock: Callable[[], float] = time.time) -> None:
        self.ttl = ttl
        self.clock = clock

    def create(self, provider: str) -> str:
        state = secrets.token_hex(32)
        self.save(provider, state)
        return state

    def consume(self, provider: str, state: str | None) -> bool:
        """Return ``True`` exactly once for a valid, unexpired state."""
        return self.take(provider, state) is not None

    def save(self, provider: str, state: str, secret: str = "") -> None:
        raise NotImplementedError

    def take(self, provider: str, state: str | None) -> str | None:
        """Remove ``state`` and return its secret; ``None`` when unknown or expired."""
        raise NotImplementedError


class DatabaseStateStore(StateStore):
    def save(self, provider: str, state: str, secret: str = "") -> None:
        now = self.clock()
        OAuthState.query.filter(OAuthState.expires_at < now).delete(synchronize_session=False)
        db.session.add(OAuthState(provider=provider, state=state, secret=secret, expires_at=now + self.ttl))
        db.session.commit()

    def take(self, provider: str, state: str | None) -> str | None:
        if not state:
            return None
        row = OAuthState.query.filter_by(provider=provider, state=state).first()
        if row is None:
            return None
        valid = hmac.compare_digest(row.state, state) and row.expires_at >= self.clock()
        secret = row.secret or ""
        db.session.delete(row)
        db.session.commit()
        return secret if valid else None


class InMemoryStateStore(StateStore):
    def __init__(self, ttl: int = 900, clock: Callable[[], float] = time.time) -> None:
        super().__init__(ttl, clock)
        self._states: dict[tuple[str, str], tuple[float, str]] = {}
        self._lock = threading.Lock()

    def save(self, provider: str, state: str, secret: str = "") -> None:
        with self._lock:
            self._states[(provider, state)] = (self.clock() + self.ttl, secret)

    def take(self, provider: str, state: str | None) -> str | None:
        if not state:
            return None
        with self._lock:
            entry = self._states.pop((provider, state), None)
        if entry is None or entry[0] < self.clock():
            return None
        return entry[1]
