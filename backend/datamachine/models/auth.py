"""API token and admin setting models."""

from __future__ import annotations

from datetime import datetime, timezone

from ..extensions import db

TOKEN_ROLES = ("readonly", "admin")


class ApiToken(db.Model):
    """Bearer token for the REST API; only its SHA-256 hash is stored."""

    __tablename__ = "api_tokens"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    token_hash = db.Column(db.String(64), unique=True, nullable=False)
    role = db.Column(db.String(20), nullable=False, default="readonly")
    created_at = db.Column(db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    last_used_at = db.Column(db.DateTime, nullable=True)
    revoked_at = db.Column(db.DateTime, nullable=True)

    @property
    def active(self) -> bool:
        return self.revoked_at is None


class AppSetting(db.Model):
    """Key/value store for site-wide switches such as API protection."""

    __tablename__ = "app_settings"

    key = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<AppSetting {self.key}={self.value}>"
