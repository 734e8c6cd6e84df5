"""API endpoints exposing run log entries."""

from __future__ import annotations

import json
from http import HTTPStatus

from flask import Blueprint, Response, jsonify, request

from ..extensions import db
from ..models.logs import LOG_SOURCES, RunLog
from ..utils.auth import require_token

bp = Blueprint("logs", __name__)

_VALID_LEVELS = {"info", "warning", "error"}


def _serialize_entry(entry: RunLog) -> dict[str, object]:
    return {
        "id": entry.id,
        "source": entry.source,
        "level": entry.level,
        "job_id": entry.job_id,
        "message": entry.message,
        "context": entry.context,
        "createdAt": entry.created_at.isoformat() + "Z",
    }


def _filtered_query():
    """Apply the ``source``, ``level`` and ``job_id`` filters; ``None`` when one is invalid."""

    query = RunLog.query
    source = request.args.get("source")
    if source:
        if source not in LOG_SOURCES:
            return None
        query = query.filter_by(source=source)
    level = request.args.get("level")
    if level:
        if level not in _VALID_LEVELS:
            return None
        query = query.filter_by(level=level)
    job_id = request.args.get("job_id", type=int)
    if job_id is not None:
        query = query.filter_by(job_id=job_id)
    return query


@bp.get("/logs")
@require_token()
def get_logs() -> tuple[object, int]:
    limit = request.args.get("limit", type=int) or 200
    limit = max(1, min(limit, 200))

    query = _filtered_query()
    if query is None:
        return jsonify({"error": "invalid filter"}), HTTPStatus.BAD_REQUEST

    entries = query.order_by(RunLog.id.desc()).limit(limit).all()
    return jsonify([_serialize_entry(entry) for entry in entries]), HTTPStatus.OK


@bp.get("/logs/download")
@require_token()
def download_logs() -> Response | tuple[object, int]:
    limit = request.args.get("limit", type=int) or 200
    limit = max(1, min(limit, 1000))

    query = _filtered_query()
    if query is None:
        return jsonify({"error": "invalid filter"}), HTTPStatus.BAD_REQUEST

    entries = query.order_by(RunLog.id.desc()).limit(limit).all()
    lines = [json.dumps(_serialize_entry(entry)) for entry in reversed(entries)]
    response = Response("\n".join(lines), mimetype="application/x-ndjson")
    response.headers["Content-Disposition"] = "attachment; filename=run-logs.ndjson"
    return response


@bp.delete("/logs")
@require_token(role="admin")
def clear_logs() -> tuple[object, int]:
    deleted = RunLog.query.delete(synchronize_session=False)
    db.session.commit()
    return jsonify({"deleted": deleted}), HTTPStatus.OK
