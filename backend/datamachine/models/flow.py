"""Flow model definitions."""

from __future__ import annotations

from datetime import datetime

from ..extensions import db


class Flow(db.Model):
    """A scheduled instantiation of a pipeline with concrete handler bindings."""

    __tablename__ = "flows"

    id = db.Column(db.Integer, primary_key=True)
    pipeline_id = db.Column(db.Integer, db.ForeignKey("pipelines.id"), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    schedule_interval = db.Column(db.String(32), nullable=False, default="manual")
    next_run_at = db.Column(db.DateTime, nullable=True)
    last_run_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    pipeline = db.relationship("Pipeline", back_populates="flows")
    steps = db.relationship(
        "FlowStep", back_populates="flow", cascade="all, delete-orphan"
    )

    def ordered_steps(self) -> list["FlowStep"]:
        return sorted(self.steps, key=lambda step: step.pipeline_step.position)

    def __repr__(self) -> str:  # pragma: no cover - repr not critical for tests
        return f"<Flow {self.id} {self.name!r}>"


class FlowStep(db.Model):
    """Handler configuration of one pipeline step inside a flow."""

    __tablename__ = "flow_steps"

    id = db.Column(db.String(64), primary_key=True)
    flow_id = db.Column(
        db.Integer, db.ForeignKey("flows.id", ondelete="CASCADE"), nullable=False
    )
    pipeline_step_id = db.Column(
        db.Integer, db.ForeignKey("pipeline_steps.id", ondelete="CASCADE"), nullable=False
    )
    handler_slugs = db.Column(db.JSON, nullable=False, default=list)
    handler_settings = db.Column(db.JSON, nullable=False, default=dict)

    flow = db.relationship("Flow", back_populates="steps")
    pipeline_step = db.relationship("PipelineStep")

    @staticmethod
    def build_id(pipeline_step_id: int, flow_id: int) -> str:
        return f"{pipeline_step_id}_{flow_id}"

    @property
    def step_type(self) -> str:
        return self.pipeline_step.step_type

    def settings_for(self, slug: str) -> dict:
        settings = self.handler_settings or {}
        return dict(settings.get(slug) or {})

    def __repr__(self) -> str:  # pragma: no cover - repr not critical for tests
        return f"<FlowStep {self.id} {self.handler_slugs!r}>"
