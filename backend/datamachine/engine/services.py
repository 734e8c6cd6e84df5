"""Shared collaborators injected into handlers, steps and the orchestrator."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from flask import current_app

from ..auth.base import BaseAuthProvider
from ..auth.store import CredentialStore
from .dedup import ProcessedItemsTracker
from .engine_data import EngineDataStore
from .http import HttpClient

EXTENSION_KEY = "datamachine"


@dataclass
class Services:
    http: HttpClient
    tracker: ProcessedItemsTracker
    engine_data: EngineDataStore
    credentials: CredentialStore
    auth: dict[str, BaseAuthProvider] = field(default_factory=dict)
    config: Mapping[str, Any] = field(default_factory=dict)

    def auth_provider(self, name: str) -> BaseAuthProvider | None:
        return self.auth.get(name)


def get_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]["services"]


def get_registry():
    return current_app.extensions[EXTENSION_KEY]["registry"]


def get_runner():
    return current_app.extensions[EXTENSION_KEY]["runner"]


def get_orchestrator():
    return current_app.extensions[EXTENSION_KEY]["orchestrator"]
