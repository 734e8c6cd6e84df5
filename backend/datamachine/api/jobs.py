"""REST API endpoints for inspecting and cleaning up jobs."""

from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, jsonify, request

from ..engine.logging import log_event
from ..engine.services import get_services
from ..engine.status import JobStatus
from ..extensions import db
from ..models.job import Job
from ..utils.auth import as_bool, require_token

bp = Blueprint("jobs", __name__)


@bp.get("/jobs")
@require_token()
def list_jobs() -> tuple[object, int]:
    limit = request.args.get("limit", type=int) or 50
    limit = max(1, min(limit, 200))

    query = Job.query
    flow_id = request.args.get("flow_id", type=int)
    if flow_id is not None:
        query = query.filter_by(flow_id=flow_id)
    status = request.args.get("status")
    if status:
        # agent_skipped jobs carry their reason as a suffix
        query = query.filter(Job.status.like(f"{status}%"))

    jobs = query.order_by(Job.id.desc()).limit(limit).all()
    return jsonify([job.to_dict() for job in jobs]), HTTPStatus.OK


@bp.get("/jobs/<int:job_id>")
@require_token()
def get_job(job_id: int) -> tuple[object, int]:
    job = Job.query.get_or_404(job_id)
    return jsonify(job.to_dict()), HTTPStatus.OK


@bp.delete("/jobs/<int:job_id>")
@require_token(role="admin")
def delete_job(job_id: int) -> tuple[object, int]:
    job = Job.query.get_or_404(job_id)
    if job.status in (JobStatus.PENDING, JobStatus.PROCESSING):
        return jsonify({"error": "job has not finished yet"}), HTTPStatus.CONFLICT
    db.session.delete(job)
    db.session.commit()
    return "", HTTPStatus.NO_CONTENT


@bp.delete("/jobs")
@require_token(role="admin")
def clear_jobs() -> tuple[object, int]:
    """Delete failed jobs (``?status=failed``) or every finished job (``?status=all``)."""

    scope = request.args.get("status", "failed")
    if scope not in ("failed", "all"):
        return jsonify({"error": "status must be 'failed' or 'all'"}), HTTPStatus.BAD_REQUEST
    cleanup_processed = as_bool(request.args.get("cleanup_processed", "false"))

    query = Job.query.filter(Job.status.notin_((JobStatus.PENDING, JobStatus.PROCESSING)))
    if scope == "failed":
        query = query.filter(Job.status == JobStatus.FAILED)
    jobs = query.all()

    released = 0
    if cleanup_processed:
        tracker = get_services().tracker
        for job in jobs:
            released += tracker.delete_for_job(job.id)

    deleted = len(jobs)
    for job in jobs:
        db.session.delete(job)
    db.session.commit()

    log_event("info", f"Deleted {deleted} {scope} jobs", context={"released_items": released})
    return jsonify({"deleted": deleted, "released_items": released}), HTTPStatus.OK
