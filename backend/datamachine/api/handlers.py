"""Read-only listing of the registered handlers."""

from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, jsonify, request

from ..engine.registry import CAPABILITIES
from ..engine.services import get_registry, get_services
from ..utils.auth import require_token

bp = Blueprint("handlers", __name__)


def _serialize(descriptor) -> dict[str, object]:
    data = descriptor.to_dict()
    if descriptor.auth_provider:
        provider = get_services().auth_provider(descriptor.auth_provider)
        data["authenticated"] = bool(provider and provider.is_authenticated())
    return data


@bp.get("/handlers")
@require_token()
def list_handlers() -> tuple[object, int]:
    handler_type = request.args.get("type")
    registry = get_registry()
    if handler_type:
        if handler_type not in CAPABILITIES:
            return jsonify({"error": "invalid handler type"}), HTTPStatus.BAD_REQUEST
        descriptors = registry.for_type(handler_type)
    else:
        descriptors = list(registry.as_mapping().values())
    return jsonify([_serialize(d) for d in descriptors]), HTTPStatus.OK


@bp.get("/handlers/<slug>")
@require_token()
def get_handler(slug: str) -> tuple[object, int]:
    descriptor = get_registry().resolve(slug)
    if descriptor is None:
        return jsonify({"error": "handler not found"}), HTTPStatus.NOT_FOUND
    return jsonify(_serialize(descriptor)), HTTPStatus.OK
