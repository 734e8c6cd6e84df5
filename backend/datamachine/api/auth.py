"""REST endpoints for API tokens and third-party auth providers."""

from __future__ import annotations

from datetime import datetime, timezone
from http import HTTPStatus

from flask import Blueprint, jsonify, redirect, request

from ..engine.errors import AuthenticationError, ConfigurationError
from ..engine.logging import log_event
from ..engine.services import get_services
from ..extensions import db
from ..models.auth import TOKEN_ROLES, ApiToken
from ..utils.auth import (
    as_bool,
    generate_token,
    hash_token,
    is_protection_enabled,
    require_token,
    set_protection_enabled,
)

bp = Blueprint("auth", __name__)


def _serialize_token(token: ApiToken) -> dict[str, object | None]:
    return {
        "id": token.id,
        "name": token.name,
        "role": token.role,
        "created_at": token.created_at.isoformat() + "Z",
        "last_used_at": token.last_used_at.isoformat() + "Z" if token.last_used_at else None,
        "revoked_at": token.revoked_at.isoformat() + "Z" if token.revoked_at else None,
    }


@bp.get("/auth/protection")
def get_protection() -> tuple[object, int]:
    return jsonify({"enabled": is_protection_enabled()}), HTTPStatus.OK


@bp.post("/auth/protection")
@require_token(role="admin")
def update_protection() -> tuple[object, int]:
    payload = request.get_json(force=True, silent=True) or {}
    if "enabled" not in payload:
        return jsonify({"error": "enabled is required"}), HTTPStatus.BAD_REQUEST
    set_protection_enabled(as_bool(payload["enabled"]))
    return jsonify({"enabled": is_protection_enabled()}), HTTPStatus.OK


@bp.post("/auth/tokens")
@require_token(role="admin")
def create_token() -> tuple[object, int]:
    payload = request.get_json(force=True, silent=True) or {}
    name = (payload.get("name") or "").strip()
    role = (payload.get("role") or "readonly").strip().lower()

    if not name:
        return jsonify({"error": "name is required"}), HTTPStatus.BAD_REQUEST
    if role not in TOKEN_ROLES:
        return jsonify({"error": "role must be 'admin' or 'readonly'"}), HTTPStatus.BAD_REQUEST

    plaintext = generate_token()
    token = ApiToken(name=name, role=role, token_hash=hash_token(plaintext))
    db.session.add(token)
    db.session.commit()

    body = _serialize_token(token)
    body["token"] = plaintext
    return jsonify(body), HTTPStatus.CREATED


@bp.get("/auth/tokens")
@require_token(role="admin")
def list_tokens() -> tuple[object, int]:
    tokens = ApiToken.query.order_by(ApiToken.created_at.desc()).all()
    return jsonify([_serialize_token(token) for token in tokens]), HTTPStatus.OK


@bp.delete("/auth/tokens/<int:token_id>")
@require_token(role="admin")
def revoke_token(token_id: int) -> tuple[object, int]:
    token = ApiToken.query.get_or_404(token_id)
    if token.revoked_at is None:
        token.revoked_at = datetime.now(timezone.utc)
        db.session.commit()
    return "", HTTPStatus.NO_CONTENT


def _provider_or_404(provider: str):
    return get_services().auth_provider(provider)


@bp.get("/auth/providers")
@require_token()
def list_providers() -> tuple[object, int]:
    providers = get_services().auth
    return jsonify([providers[name].status() for name in sorted(providers)]), HTTPStatus.OK


@bp.get("/auth/<provider>")
@require_token()
def provider_status(provider: str) -> tuple[object, int]:
    auth = _provider_or_404(provider)
    if auth is None:
        return jsonify({"error": "unknown auth provider"}), HTTPStatus.NOT_FOUND
    return jsonify(auth.status()), HTTPStatus.OK


@bp.put("/auth/<provider>/config")
@require_token(role="admin")
def save_provider_config(provider: str) -> tuple[object, int]:
    auth = _provider_or_404(provider)
    if auth is None:
        return jsonify({"error": "unknown auth provider"}), HTTPStatus.NOT_FOUND
    payload = request.get_json(force=True, silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "payload must be an object"}), HTTPStatus.BAD_REQUEST

    auth.save_config({key: str(value).strip() for key, value in payload.items() if value is not None})
    log_event("info", f"Updated {provider} credentials", source="auth")
    return jsonify(auth.status()), HTTPStatus.OK


@bp.get("/auth/<provider>/authorize")
@require_token(role="admin")
def authorize_provider(provider: str) -> tuple[object, int]:
    auth = _provider_or_404(provider)
    if auth is None or not hasattr(auth, "get_authorization_url"):
        return jsonify({"error": "provider does not use an authorization redirect"}), HTTPStatus.NOT_FOUND
    try:
        url = auth.get_authorization_url()
    except ConfigurationError as exc:
        return jsonify({"error": str(exc)}), HTTPStatus.BAD_REQUEST
    except AuthenticationError as exc:
        log_event("error", f"{provider} authorization could not start: {exc}", source="auth")
        return jsonify({"error": str(exc)}), HTTPStatus.BAD_GATEWAY
    return jsonify({"authorization_url": url}), HTTPStatus.OK


@bp.get("/auth/<provider>/callback")
def provider_callback(provider: str):
    auth = _provider_or_404(provider)
    if auth is None or not hasattr(auth, "handle_callback"):
        return jsonify({"error": "unknown auth provider"}), HTTPStatus.NOT_FOUND
    args = request.args
    try:
        if auth.auth_type == "oauth1":
            auth.handle_callback(args.get("oauth_token"), args.get("oauth_verifier"), args.get("denied"))
        else:
            auth.handle_callback(args.get("code"), args.get("state"), args.get("error"))
    except (AuthenticationError, ConfigurationError) as exc:
        log_event("error", f"{provider} authorization failed: {exc}", source="auth")
        return jsonify({"error": str(exc)}), HTTPStatus.BAD_REQUEST

    log_event("info", f"{provider} account connected", source="auth")
    target = args.get("redirect_to")
    if target and target.startswith("/"):
        return redirect(target)
    return jsonify(auth.status()), HTTPStatus.OK


@bp.delete("/auth/<provider>")
@require_token(role="admin")
def disconnect_provider(provider: str) -> tuple[object, int]:
    auth = _provider_or_404(provider)
    if auth is None:
        return jsonify({"error": "unknown auth provider"}), HTTPStatus.NOT_FOUND
    auth.clear_account()
    if auth.auth_type == "app_password":
        auth.store.save_config(auth.name, {})
    log_event("info", f"{provider} account disconnected", source="auth")
    return "", HTTPStatus.NO_CONTENT
