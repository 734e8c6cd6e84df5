"""Bearer token protection for the REST API."""

from __future__ import annotations

import functools
import hashlib
import hmac
import secrets
from collections.abc import Callable
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, TypeVar, cast

from flask import g, jsonify, request

from ..extensions import db
from ..models.auth import ApiToken, AppSetting

TCallable = TypeVar("TCallable", bound=Callable[..., Any])

PROTECTION_SETTING_KEY = "api_auth_protection"
_ROLE_LEVEL = {"readonly": 0, "admin": 1}


def as_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(value, (int, float)):
        return value != 0
    return False


def is_protection_enabled() -> bool:
    """Whether requests must carry a token; cached per request."""

    cached = getattr(g, "_api_protection_enabled", None)
    if isinstance(cached, bool):
        return cached
    setting = db.session.get(AppSetting, PROTECTION_SETTING_KEY)
    enabled = as_bool(setting.value) if setting is not None else False
    g._api_protection_enabled = enabled
    return enabled


def set_protection_enabled(enabled: bool) -> None:
    setting = db.session.get(AppSetting, PROTECTION_SETTING_KEY)
    value = "true" if enabled else "false"
    if setting is None:
        db.session.add(AppSetting(key=PROTECTION_SETTING_KEY, value=value))
    else:
        setting.value = value
    db.session.commit()
    g._api_protection_enabled = enabled


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_token() -> str:
    return secrets.token_urlsafe(32)


def _bearer_token() -> str | None:
    scheme, _, value = (request.headers.get("Authorization") or "").partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()


def _unauthorized(message: str):
    response = jsonify({"error": message})
    response.status_code = HTTPStatus.UNAUTHORIZED
    response.headers["WWW-Authenticate"] = "Bearer"
    return response


def require_token(role: str = "readonly") -> Callable[[TCallable], TCallable]:
    """Reject the request unless protection is off or a token with ``role`` is presented."""

    required_level = _ROLE_LEVEL.get(role, 0)

    def decorator(func: TCallable) -> TCallable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any):
            if not is_protection_enabled():
                return func(*args, **kwargs)

            value = _bearer_token()
            if value is None:
                return _unauthorized("missing bearer token")

            digest = hash_token(value)
            token = ApiToken.query.filter_by(token_hash=digest).first()
            if token is None or not hmac.compare_digest(digest, token.token_hash):
                return _unauthorized("invalid token")
            if not token.active:
                return _unauthorized("token revoked")
            if _ROLE_LEVEL.get(token.role, -1) < required_level:
                return jsonify({"error": "insufficient role"}), HTTPStatus.FORBIDDEN

            token.last_used_at = datetime.now(timezone.utc)
            db.session.commit()
            g.api_token = token
            return func(*args, **kwargs)

        return cast(TCallable, wrapper)

    return decorator
