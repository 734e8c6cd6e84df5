"""Processed item model used for deduplication."""

from __future__ import annotations

from datetime import datetime

from ..extensions import db


class ProcessedItem(db.Model):
    """Marks a source item as handled by a flow step."""

    __tablename__ = "processed_items"
    __table_args__ = (
        db.UniqueConstraint(
            "flow_step_id", "source_type", "item_identifier", name="uq_processed_item"
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    flow_step_id = db.Column(db.String(64), nullable=False, index=True)
    flow_id = db.Column(db.Integer, nullable=True, index=True)
    source_type = db.Column(db.String(64), nullable=False)
    item_identifier = db.Column(db.String(255), nullable=False)
    job_id = db.Column(db.Integer, nullable=True, index=True)
    processed_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:  # pragma: no cover - repr not critical for tests
        return f"<ProcessedItem {self.source_type}:{self.item_identifier}>"
