"""Job creation and step sequencing."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from ..extensions import db
from ..models.flow import Flow
from ..models.job import Job
from ..steps import FAILED, NO_ITEMS, SKIPPED, STEP_TYPES, StepContext, StepOutcome
from .errors import ConfigurationError, error_payload
from .flows import validate_flow
from .logging import log_event
from .registry import HandlerRegistry
from .services import Services
from .status import JobStatus


class JobOrchestrator:
    """Drives a flow's steps in pipeline order for one job at a time."""

    def __init__(self, registry: HandlerRegistry, services: Services) -> None:
        self.registry = registry
        self.services = services

    def create_job(self, flow: Flow) -> Job:
        job = Job(flow_id=flow.id, pipeline_id=flow.pipeline_id, status=JobStatus.PENDING)
        db.session.add(job)
        db.session.commit()
        log_event("info", f"Job {job.id} created for flow {flow.id}", job_id=job.id)
        return job

    def run_flow(self, flow_id: int) -> Job:
        flow = db.session.get(Flow, flow_id)
        if flow is None:
            raise ConfigurationError(f"Flow {flow_id} not found")
        job = self.create_job(flow)
        return self.execute_job(job.id)

    def execute_job(self, job_id: int) -> Job:
        job = db.session.get(Job, job_id)
        if job is None:
            raise ConfigurationError(f"Job {job_id} not found")
        if job.status != JobStatus.PENDING:
            log_event("warning", f"Job {job_id} is {job.status}; not executing", job_id=job_id)
            return job

        flow = db.session.get(Flow, job.flow_id)
        if flow is None:
            return self._finish(job, JobStatus.FAILED, {"type": "ConfigurationError", "message": "Flow no longer exists"})

        errors = validate_flow(flow, self.registry)
        if errors:
            return self._finish(
                job,
                JobStatus.FAILED,
                {"type": ConfigurationError.error_type, "message": "; ".join(errors)},
            )

        self._transition(job, JobStatus.PROCESSING)
        job.started_at = datetime.utcnow()
        flow.last_run_at = job.started_at
        db.session.commit()

        entries: list[dict[str, Any]] = []
        for flow_step in flow.ordered_steps():
            context = StepContext.from_flow_step(job, flow_step)
            step = STEP_TYPES[flow_step.step_type](self.registry, self.services)
            try:
                outcome = step.execute(context, entries)
            except Exception as exc:
                log_event("error", f"Step {flow_step.id} crashed: {exc}", job_id=job.id)
                outcome = StepOutcome(FAILED, entries, error=error_payload(exc))

            # Handlers may have committed through other sessions; reload before writing.
            db.session.expire_all()
            job = db.session.get(Job, job_id)
            self._record_step(job, context, outcome)

            if outcome.status == FAILED:
                return self._finish(job, JobStatus.FAILED, outcome.error)
            if outcome.status == NO_ITEMS:
                return self._finish(job, JobStatus.COMPLETED_NO_ITEMS)
            if outcome.status == SKIPPED:
                return self._finish(job, outcome.details.get("status") or JobStatus.AGENT_SKIPPED)
            entries = outcome.entries

        return self._finish(job, JobStatus.COMPLETED)

    def _record_step(self, job: Job, context: StepContext, outcome: StepOutcome) -> None:
        step_data = list(job.step_data or [])
        step_data.append(
            {
                "flow_step_id": context.flow_step_id,
                "step_type": context.step_type,
                "handlers": context.handler_slugs,
                "status": outcome.status,
                "error": outcome.error,
                "details": outcome.details,
                "entries": outcome.entries,
            }
        )
        job.step_data = step_data
        db.session.commit()

    def _transition(self, job: Job, status: str) -> None:
        if not JobStatus.can_transition(job.status, status):
            raise ValueError(f"Job {job.id} cannot move from {job.status} to {status}")
        job.status = status

    def _finish(self, job: Job, status: str, error: dict[str, Any] | None = None) -> Job:
        self._transition(job, status)
        job.error = error
        job.completed_at = datetime.utcnow()
        db.session.commit()

        if status == JobStatus.FAILED:
            log_event("error", f"Job {job.id} failed: {(error or {}).get('message')}", job_id=job.id, context=error)
            if self.services.config.get("RELEASE_PROCESSED_ITEMS_ON_FAILURE"):
                released = self.services.tracker.delete_for_job(job.id)
                log_event("info", f"Released {released} processed items of job {job.id}", job_id=job.id)
        else:
            log_event("info", f"Job {job.id} finished with status {status}", job_id=job.id)
        return job
