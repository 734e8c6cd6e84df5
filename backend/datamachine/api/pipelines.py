"""REST API endpoints for pipeline templates and their steps."""

from __future__ import annotations

from http import HTTPStatus
from typing import Any

from flask import Blueprint, jsonify, request
from sqlalchemy import func

from ..engine.flows import delete_flow, delete_flow_steps_for, sync_pipeline_flows
from ..engine.services import get_services
from ..extensions import db
from ..models.pipeline import STEP_TYPES, Pipeline, PipelineStep
from ..utils.auth import require_token

bp = Blueprint("pipelines", __name__)


def _step_to_dict(step: PipelineStep) -> dict[str, Any]:
    return {
        "id": step.id,
        "step_type": step.step_type,
        "position": step.position,
        "label": step.label,
        "config": step.config or {},
    }


def _pipeline_to_dict(pipeline: Pipeline) -> dict[str, Any]:
    """Serialize a pipeline model to a JSON compatible dictionary."""

    return {
        "id": pipeline.id,
        "name": pipeline.name,
        "steps": [_step_to_dict(step) for step in pipeline.steps],
        "flow_ids": [flow.id for flow in pipeline.flows],
        "created_at": pipeline.created_at.isoformat() + "Z",
        "updated_at": pipeline.updated_at.isoformat() + "Z",
    }


def validate_step_payload(item: Any, index: int | None = None) -> tuple[dict[str, Any], list[str]]:
    prefix = f"steps[{index}]: " if index is not None else ""
    if not isinstance(item, dict):
        return {}, [f"{prefix}step must be an object"]

    errors: list[str] = []
    step_type = (item.get("step_type") or "").strip()
    config = item.get("config") or {}
    if step_type not in STEP_TYPES:
        errors.append(f"{prefix}step_type must be one of {', '.join(STEP_TYPES)}")
    if not isinstance(config, dict):
        errors.append(f"{prefix}config must be an object")
    label = item.get("label")
    return {"step_type": step_type, "label": label.strip() if isinstance(label, str) else None, "config": config}, errors


def _ensure_unique_name(name: str, pipeline_id: int | None = None) -> bool:
    query = Pipeline.query.filter(func.lower(Pipeline.name) == name.lower())
    if pipeline_id is not None:
        query = query.filter(Pipeline.id != pipeline_id)
    return not db.session.query(query.exists()).scalar()


def _renumber(pipeline: Pipeline) -> None:
    for position, step in enumerate(sorted(pipeline.steps, key=lambda s: s.position)):
        step.position = position


@bp.post("/pipelines")
@require_token(role="admin")
def create_pipeline() -> tuple[object, int]:
    payload = request.get_json(force=True, silent=True) or {}
    name = (payload.get("name") or "").strip()
    steps = payload.get("steps") or []

    errors: list[str] = []
    if not name:
        errors.append("name is required")
    if not isinstance(steps, list):
        errors.append("steps must be a list")
        steps = []
    step_data = []
    for index, item in enumerate(steps):
        data, step_errors = validate_step_payload(item, index)
        errors.extend(step_errors)
        step_data.append(data)
    if errors:
        return jsonify({"errors": errors}), HTTPStatus.BAD_REQUEST

    if not _ensure_unique_name(name):
        return jsonify({"error": "pipeline with this name already exists"}), HTTPStatus.CONFLICT

    pipeline = Pipeline(name=name)
    for position, data in enumerate(step_data):
        pipeline.steps.append(PipelineStep(position=position, **data))
    db.session.add(pipeline)
    db.session.commit()
    return jsonify(_pipeline_to_dict(pipeline)), HTTPStatus.CREATED


@bp.get("/pipelines")
@require_token()
def list_pipelines() -> tuple[object, int]:
    pipelines = Pipeline.query.order_by(Pipeline.created_at.desc()).all()
    return jsonify([_pipeline_to_dict(pipeline) for pipeline in pipelines]), HTTPStatus.OK


@bp.get("/pipelines/<int:pipeline_id>")
@require_token()
def get_pipeline(pipeline_id: int) -> tuple[object, int]:
    pipeline = Pipeline.query.get_or_404(pipeline_id)
    return jsonify(_pipeline_to_dict(pipeline)), HTTPStatus.OK


@bp.put("/pipelines/<int:pipeline_id>")
@require_token(role="admin")
def update_pipeline(pipeline_id: int) -> tuple[object, int]:
    pipeline = Pipeline.query.get_or_404(pipeline_id)
    payload = request.get_json(force=True, silent=True) or {}
    name = (payload.get("name") or "").strip()
    if not name:
        return jsonify({"errors": ["name is required"]}), HTTPStatus.BAD_REQUEST
    if not _ensure_unique_name(name, pipeline.id):
        return jsonify({"error": "pipeline with this name already exists"}), HTTPStatus.CONFLICT

    pipeline.name = name
    db.session.commit()
    return jsonify(_pipeline_to_dict(pipeline)), HTTPStatus.OK


@bp.delete("/pipelines/<int:pipeline_id>")
@require_token(role="admin")
def delete_pipeline(pipeline_id: int) -> tuple[object, int]:
    pipeline = Pipeline.query.get_or_404(pipeline_id)
    tracker = get_services().tracker
    for flow in list(pipeline.flows):
        delete_flow(flow, tracker)
    db.session.delete(pipeline)
    db.session.commit()
    return "", HTTPStatus.NO_CONTENT


@bp.post("/pipelines/<int:pipeline_id>/steps")
@require_token(role="admin")
def add_step(pipeline_id: int) -> tuple[object, int]:
    pipeline = Pipeline.query.get_or_404(pipeline_id)
    payload = request.get_json(force=True, silent=True) or {}
    data, errors = validate_step_payload(payload)
    if errors:
        return jsonify({"errors": errors}), HTTPStatus.BAD_REQUEST

    position = payload.get("position")
    steps = sorted(pipeline.steps, key=lambda s: s.position)
    if not isinstance(position, int) or not 0 <= position <= len(steps):
        position = len(steps)
    for step in steps[position:]:
        step.position += 1

    step = PipelineStep(position=position, **data)
    pipeline.steps.append(step)
    db.session.flush()
    sync_pipeline_flows(pipeline)
    db.session.commit()
    return jsonify(_pipeline_to_dict(pipeline)), HTTPStatus.CREATED


@bp.delete("/pipelines/<int:pipeline_id>/steps/<int:step_id>")
@require_token(role="admin")
def remove_step(pipeline_id: int, step_id: int) -> tuple[object, int]:
    pipeline = Pipeline.query.get_or_404(pipeline_id)
    step = PipelineStep.query.filter_by(id=step_id, pipeline_id=pipeline.id).first_or_404()

    delete_flow_steps_for(step.id)
    pipeline.steps.remove(step)
    db.session.delete(step)
    _renumber(pipeline)
    db.session.commit()
    db.session.expire_all()
    return jsonify(_pipeline_to_dict(db.session.get(Pipeline, pipeline_id))), HTTPStatus.OK


@bp.put("/pipelines/<int:pipeline_id>/steps/order")
@require_token(role="admin")
def reorder_steps(pipeline_id: int) -> tuple[object, int]:
    pipeline = Pipeline.query.get_or_404(pipeline_id)
    payload = request.get_json(force=True, silent=True) or {}
    step_ids = payload.get("step_ids")

    current = {step.id: step for step in pipeline.steps}
    if (
        not isinstance(step_ids, list)
        or not all(isinstance(step_id, int) for step_id in step_ids)
        or sorted(step_ids) != sorted(current)
    ):
        return (
            jsonify({"errors": ["step_ids must list every step of the pipeline exactly once"]}),
            HTTPStatus.BAD_REQUEST,
        )

    for position, step_id in enumerate(step_ids):
        current[step_id].position = position
    db.session.commit()
    db.session.expire_all()
    return jsonify(_pipeline_to_dict(db.session.get(Pipeline, pipeline_id))), HTTPStatus.OK
