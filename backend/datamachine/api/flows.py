"""REST API endpoints for flows: handler configuration, scheduling and runs."""

from __future__ import annotations

from datetime import datetime
from http import HTTPStatus
from typing import Any

from flask import Blueprint, jsonify, request

from ..engine.flows import delete_flow, sync_flow_steps, validate_flow, validate_handler_binding
from ..engine.logging import log_event
from ..engine.scheduler import INTERVALS, MANUAL, is_valid_interval, next_run_after
from ..engine.services import get_orchestrator, get_registry, get_runner, get_services
from ..extensions import db, limiter
from ..models.flow import Flow, FlowStep
from ..models.pipeline import Pipeline
from ..utils.auth import require_token

bp = Blueprint("flows", __name__)


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() + "Z" if value is not None else None


def _flow_step_to_dict(step: FlowStep) -> dict[str, Any]:
    return {
        "id": step.id,
        "pipeline_step_id": step.pipeline_step_id,
        "step_type": step.step_type,
        "position": step.pipeline_step.position,
        "handler_slugs": list(step.handler_slugs or []),
        "handler_settings": step.handler_settings or {},
    }


def _flow_to_dict(flow: Flow) -> dict[str, Any]:
    return {
        "id": flow.id,
        "pipeline_id": flow.pipeline_id,
        "name": flow.name,
        "schedule_interval": flow.schedule_interval,
        "next_run_at": _isoformat(flow.next_run_at),
        "last_run_at": _isoformat(flow.last_run_at),
        "created_at": _isoformat(flow.created_at),
        "steps": [_flow_step_to_dict(step) for step in flow.ordered_steps()],
    }


def apply_schedule(flow: Flow, interval: str) -> None:
    flow.schedule_interval = interval
    flow.next_run_at = None if interval == MANUAL else next_run_after(interval, datetime.utcnow())


def _interval_error() -> str:
    return f"schedule_interval must be '{MANUAL}' or one of {', '.join(INTERVALS)}"


@bp.post("/flows")
@require_token(role="admin")
def create_flow() -> tuple[object, int]:
    payload = request.get_json(force=True, silent=True) or {}
    name = (payload.get("name") or "").strip()
    interval = (payload.get("schedule_interval") or MANUAL).strip()

    errors: list[str] = []
    if not name:
        errors.append("name is required")
    if not is_valid_interval(interval):
        errors.append(_interval_error())
    pipeline = None
    if isinstance(payload.get("pipeline_id"), int):
        pipeline = db.session.get(Pipeline, payload["pipeline_id"])
    if pipeline is None:
        errors.append("pipeline_id must reference an existing pipeline")
    if errors:
        return jsonify({"errors": errors}), HTTPStatus.BAD_REQUEST

    flow = Flow(pipeline_id=pipeline.id, name=name)
    apply_schedule(flow, interval)
    db.session.add(flow)
    db.session.flush()
    sync_flow_steps(flow)
    db.session.commit()
    return jsonify(_flow_to_dict(flow)), HTTPStatus.CREATED


@bp.get("/flows")
@require_token()
def list_flows() -> tuple[object, int]:
    query = Flow.query
    pipeline_id = request.args.get("pipeline_id", type=int)
    if pipeline_id is not None:
        query = query.filter_by(pipeline_id=pipeline_id)
    flows = query.order_by(Flow.created_at.desc()).all()
    return jsonify([_flow_to_dict(flow) for flow in flows]), HTTPStatus.OK


@bp.get("/flows/<int:flow_id>")
@require_token()
def get_flow(flow_id: int) -> tuple[object, int]:
    flow = Flow.query.get_or_404(flow_id)
    body = _flow_to_dict(flow)
    body["validation_errors"] = validate_flow(flow, get_registry())
    return jsonify(body), HTTPStatus.OK


@bp.put("/flows/<int:flow_id>")
@require_token(role="admin")
def update_flow(flow_id: int) -> tuple[object, int]:
    flow = Flow.query.get_or_404(flow_id)
    payload = request.get_json(force=True, silent=True) or {}
    name = (payload.get("name") or "").strip()
    if not name:
        return jsonify({"errors": ["name is required"]}), HTTPStatus.BAD_REQUEST
    flow.name = name
    db.session.commit()
    return jsonify(_flow_to_dict(flow)), HTTPStatus.OK


@bp.delete("/flows/<int:flow_id>")
@require_token(role="admin")
def remove_flow(flow_id: int) -> tuple[object, int]:
    flow = Flow.query.get_or_404(flow_id)
    delete_flow(flow, get_services().tracker)
    db.session.commit()
    return "", HTTPStatus.NO_CONTENT


@bp.put("/flows/<int:flow_id>/steps/<flow_step_id>")
@require_token(role="admin")
def configure_step(flow_id: int, flow_step_id: str) -> tuple[object, int]:
    flow = Flow.query.get_or_404(flow_id)
    step = FlowStep.query.filter_by(id=flow_step_id, flow_id=flow.id).first_or_404()
    payload = request.get_json(force=True, silent=True) or {}

    slugs = payload.get("handler_slugs")
    if isinstance(slugs, str):
        slugs = [slugs]
    settings = payload.get("handler_settings") or {}
    if not isinstance(slugs, list) or not all(isinstance(slug, str) for slug in slugs):
        return jsonify({"errors": ["handler_slugs must be a list of strings"]}), HTTPStatus.BAD_REQUEST
    if not isinstance(settings, dict) or not all(isinstance(value, dict) for value in settings.values()):
        return jsonify({"errors": ["handler_settings must map handler slugs to objects"]}), HTTPStatus.BAD_REQUEST

    errors = validate_handler_binding(get_registry(), step.step_type, slugs)
    if errors:
        return jsonify({"errors": errors}), HTTPStatus.BAD_REQUEST

    step.handler_slugs = list(slugs)
    # Settings of handlers that were removed from the step are dropped.
    step.handler_settings = {slug: dict(settings.get(slug) or {}) for slug in slugs}
    db.session.commit()
    return jsonify(_flow_step_to_dict(step)), HTTPStatus.OK


@bp.put("/flows/<int:flow_id>/schedule")
@require_token(role="admin")
def schedule_flow(flow_id: int) -> tuple[object, int]:
    flow = Flow.query.get_or_404(flow_id)
    payload = request.get_json(force=True, silent=True) or {}
    interval = (payload.get("schedule_interval") or "").strip()
    if not is_valid_interval(interval):
        return jsonify({"errors": [_interval_error()]}), HTTPStatus.BAD_REQUEST
    apply_schedule(flow, interval)
    db.session.commit()
    log_event("info", f"Flow {flow.id} scheduled {interval}", source="scheduler")
    return jsonify(_flow_to_dict(flow)), HTTPStatus.OK


@bp.post("/flows/<int:flow_id>/run")
@require_token(role="admin")
@limiter.limit("10 per minute")
def run_flow(flow_id: int) -> tuple[object, int]:
    flow = Flow.query.get_or_404(flow_id)
    errors = validate_flow(flow, get_registry())
    if errors:
        return jsonify({"errors": errors}), HTTPStatus.BAD_REQUEST

    job = get_orchestrator().create_job(flow)
    job_id = job.id
    get_runner().submit(job_id)
    return jsonify({"job_id": job_id, "flow_id": flow_id}), HTTPStatus.ACCEPTED


@bp.delete("/flows/<int:flow_id>/processed-items")
@require_token(role="admin")
def clear_processed_items(flow_id: int) -> tuple[object, int]:
    flow = Flow.query.get_or_404(flow_id)
    tracker = get_services().tracker
    flow_step_id = request.args.get("flow_step_id")
    if flow_step_id:
        FlowStep.query.filter_by(id=flow_step_id, flow_id=flow.id).first_or_404()
        deleted = tracker.delete_for_flow_step(flow_step_id)
    else:
        deleted = tracker.delete_for_flow(flow.id)
    log_event("info", f"Cleared {deleted} processed items of flow {flow.id}")
    return jsonify({"deleted": deleted}), HTTPStatus.OK
