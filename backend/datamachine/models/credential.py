"""Credential and OAuth state storage models."""

from __future__ import annotations

from datetime import datetime

from ..extensions import db


class OAuthCredential(db.Model):
    """Site-wide credentials for one auth provider."""

    __tablename__ = "oauth_credentials"

    provider = db.Column(db.String(64), primary_key=True)
    config = db.Column(db.JSON, nullable=False, default=dict)
    account = db.Column(db.JSON, nullable=False, default=dict)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:  # pragma: no cover - repr not critical for tests
        return f"<OAuthCredential {self.provider}>"


class OAuthState(db.Model):
    """Single-use nonce handed to an OAuth authorization redirect."""

    __tablename__ = "oauth_states"

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(64), nullable=False, index=True)
    state = db.Column(db.String(128), nullable=False, unique=True)
    # OAuth1 request token secret, kept until the callback consumes the state.
    secret = db.Column(db.String(255), nullable=True)
    expires_at = db.Column(db.Float, nullable=False)
