"""Pipeline template model definitions."""

from __future__ import annotations

from datetime import datetime

from ..extensions import db

STEP_TYPES = ("fetch", "ai", "publish", "update")


class Pipeline(db.Model):
    """Reusable template describing an ordered list of steps."""

    __tablename__ = "pipelines"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    steps = db.relationship(
        "PipelineStep",
        back_populates="pipeline",
        order_by="PipelineStep.position",
        cascade="all, delete-orphan",
    )
    flows = db.relationship("Flow", back_populates="pipeline")

    def __repr__(self) -> str:  # pragma: no cover - repr not critical for tests
        return f"<Pipeline {self.name!r}>"


class PipelineStep(db.Model):
    """A typed step inside a pipeline template."""

    __tablename__ = "pipeline_steps"

    id = db.Column(db.Integer, primary_key=True)
    pipeline_id = db.Column(
        db.Integer, db.ForeignKey("pipelines.id", ondelete="CASCADE"), nullable=False
    )
    step_type = db.Column(db.String(32), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    label = db.Column(db.String(255), nullable=True)
    config = db.Column(db.JSON, nullable=False, default=dict)

    pipeline = db.relationship("Pipeline", back_populates="steps")

    def __repr__(self) -> str:  # pragma: no cover - repr not critical for tests
        return f"<PipelineStep {self.id} {self.step_type}@{self.position}>"
