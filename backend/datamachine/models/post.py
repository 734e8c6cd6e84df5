"""Local content store model."""

from __future__ import annotations

from datetime import datetime

from ..extensions import db


class Post(db.Model):
    """A piece of site content that local handlers read and write."""

    __tablename__ = "posts"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(512), nullable=False, default="")
    content = db.Column(db.Text, nullable=False, default="")
    excerpt = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(32), nullable=False, default="draft")
    post_type = db.Column(db.String(64), nullable=False, default="post")
    image_url = db.Column(db.String(1024), nullable=True)
    source_url = db.Column(db.String(1024), nullable=True)
    taxonomies = db.Column(db.JSON, nullable=False, default=dict)
    date_gmt = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    modified_gmt = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:  # pragma: no cover - repr not critical for tests
        return f"<Post {self.id} {self.title!r}>"
