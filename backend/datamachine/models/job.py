"""Job model definition."""

from __future__ import annotations

from datetime import datetime

from ..extensions import db


class Job(db.Model):
    """One execution run of a flow."""

    __tablename__ = "jobs"

    id = db.Column(db.Integer, primary_key=True)
    flow_id = db.Column(db.Integer, db.ForeignKey("flows.id"), nullable=False, index=True)
    pipeline_id = db.Column(db.Integer, db.ForeignKey("pipelines.id"), nullable=False)
    status = db.Column(db.String(255), nullable=False, default="pending", index=True)
    step_data = db.Column(db.JSON, nullable=False, default=list)
    engine_data = db.Column(db.JSON, nullable=False, default=dict)
    error = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    started_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "job_id": self.id,
            "flow_id": self.flow_id,
            "pipeline_id": self.pipeline_id,
            "status": self.status,
            "created_at": _isoformat(self.created_at),
            "started_at": _isoformat(self.started_at),
            "completed_at": _isoformat(self.completed_at),
            "step_data": self.step_data or [],
            "engine_data": self.engine_data or {},
            "error": self.error,
        }

    def __repr__(self) -> str:  # pragma: no cover - repr not critical for tests
        return f"<Job {self.id} {self.status}>"


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() + "Z" if value is not None else None
