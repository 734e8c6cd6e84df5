"""API endpoints for exporting and importing pipeline snapshots."""
from __future__ import annotations

from collections.abc import Iterable
from http import HTTPStatus
from typing import Any

from flask import Blueprint, jsonify, request

from ..engine.flows import delete_flow, sync_flow_steps, validate_handler_binding
from ..engine.scheduler import MANUAL, is_valid_interval
from ..engine.services import get_registry, get_services
from ..extensions import db
from ..models.flow import Flow
from ..models.pipeline import Pipeline, PipelineStep
from ..utils.auth import as_bool, require_token
from .flows import apply_schedule
from .pipelines import validate_step_payload

bp = Blueprint("export", __name__)

EXPORT_VERSION = 1


def _serialize_flow(flow: Flow) -> dict[str, Any]:
    return {
        "name": flow.name,
        "schedule_interval": flow.schedule_interval,
        "steps": [
            {
                "position": step.pipeline_step.position,
                "handler_slugs": list(step.handler_slugs or []),
                "handler_settings": step.handler_settings or {},
            }
            for step in flow.ordered_steps()
        ],
    }


def _serialize_pipelines(pipelines: Iterable[Pipeline]) -> list[dict[str, Any]]:
    return [
        {
            "name": pipeline.name,
            "steps": [
                {"step_type": step.step_type, "label": step.label, "config": step.config or {}}
                for step in pipeline.steps
            ],
            "flows": [_serialize_flow(flow) for flow in pipeline.flows],
        }
        for pipeline in pipelines
    ]


@bp.get("/export")
@require_token()
def export_configuration() -> tuple[object, int]:
    """Return a snapshot of all pipelines together with their flows."""

    pipelines = Pipeline.query.order_by(Pipeline.name.asc()).all()
    payload = {"version": EXPORT_VERSION, "pipelines": _serialize_pipelines(pipelines)}
    return jsonify(payload), HTTPStatus.OK


def _validate_flow(item: Any, steps: list[dict[str, Any]], label: str) -> tuple[dict[str, Any], list[str]]:
    if not isinstance(item, dict):
        return {}, [f"{label} must be an object"]

    errors: list[str] = []
    name = (item.get("name") or "").strip()
    interval = (item.get("schedule_interval") or MANUAL).strip()
    if not name:
        errors.append(f"{label}: name is required")
    if not is_valid_interval(interval):
        errors.append(f"{label}: invalid schedule_interval {interval!r}")

    bindings: dict[int, dict[str, Any]] = {}
    for binding in item.get("steps") or []:
        position = binding.get("position") if isinstance(binding, dict) else None
        if not isinstance(position, int) or not 0 <= position < len(steps):
            errors.append(f"{label}: step position out of range")
            continue
        slugs = binding.get("handler_slugs") or []
        settings = binding.get("handler_settings") or {}
        if slugs:
            errors.extend(
                f"{label}: {message}"
                for message in validate_handler_binding(get_registry(), steps[position]["step_type"], slugs)
            )
        if not isinstance(settings, dict):
            errors.append(f"{label}: handler_settings must be an object")
            settings = {}
        bindings[position] = {"handler_slugs": list(slugs), "handler_settings": settings}

    return {"name": name, "schedule_interval": interval, "bindings": bindings}, errors


def _validate_pipelines_for_import(payload: list[Any]) -> tuple[list[dict[str, Any]], list[str]]:
    normalised: list[dict[str, Any]] = []
    errors: list[str] = []
    for index, item in enumerate(payload, start=1):
        label = f"pipelines[{index}]"
        if not isinstance(item, dict):
            errors.append(f"{label} must be an object")
            continue

        name = (item.get("name") or "").strip()
        if not name:
            errors.append(f"{label}: name is required")

        steps: list[dict[str, Any]] = []
        for step_index, step_item in enumerate(item.get("steps") or []):
            data, step_errors = validate_step_payload(step_item, step_index)
            errors.extend(f"{label}: {message}" for message in step_errors)
            steps.append(data)

        flows = []
        for flow_index, flow_item in enumerate(item.get("flows") or [], start=1):
            data, flow_errors = _validate_flow(flow_item, steps, f"{label}.flows[{flow_index}]")
            errors.extend(flow_errors)
            flows.append(data)

        normalised.append({"name": name, "steps": steps, "flows": flows})
    return normalised, errors


def _create_flows(pipeline: Pipeline, flows: list[dict[str, Any]]) -> None:
    for data in flows:
        flow = Flow(pipeline_id=pipeline.id, name=data["name"])
        apply_schedule(flow, data["schedule_interval"])
        db.session.add(flow)
        db.session.flush()
        sync_flow_steps(flow)
        for step in flow.steps:
            binding = data["bindings"].get(step.pipeline_step.position)
            if binding is not None:
                step.handler_slugs = binding["handler_slugs"]
                step.handler_settings = binding["handler_settings"]


@bp.post("/import")
@require_token(role="admin")
def import_configuration() -> tuple[object, int]:
    """Import pipelines and flows from a snapshot."""

    payload = request.get_json(force=True, silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "payload must be an object"}), HTTPStatus.BAD_REQUEST

    overwrite = as_bool(request.args.get("overwrite", "false"))
    items = payload.get("pipelines", [])
    if not isinstance(items, list):
        return jsonify({"error": "pipelines must be a list"}), HTTPStatus.BAD_REQUEST

    pipelines, errors = _validate_pipelines_for_import(items)
    if errors:
        return jsonify({"errors": errors}), HTTPStatus.BAD_REQUEST

    created = 0
    updated = 0
    tracker = get_services().tracker

    for data in pipelines:
        pipeline = Pipeline.query.filter_by(name=data["name"]).first()
        if pipeline is not None:
            if not overwrite:
                db.session.rollback()
                return (
                    jsonify({"error": f"pipeline {data['name']} already exists"}),
                    HTTPStatus.CONFLICT,
                )
            for flow in list(pipeline.flows):
                delete_flow(flow, tracker)
            for step in list(pipeline.steps):
                pipeline.steps.remove(step)
            db.session.flush()
            updated += 1
        else:
            pipeline = Pipeline(name=data["name"])
            db.session.add(pipeline)
            created += 1

        for position, step in enumerate(data["steps"]):
            pipeline.steps.append(PipelineStep(position=position, **step))
        db.session.flush()
        _create_flows(pipeline, data["flows"])

    db.session.commit()
    return jsonify({"created": created, "updated": updated}), HTTPStatus.OK
