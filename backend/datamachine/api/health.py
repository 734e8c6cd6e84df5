"""Health check endpoint."""

from flask import Blueprint, jsonify

from ..engine.services import get_registry, get_runner

bp = Blueprint("health", __name__)


@bp.get("/health")
def health() -> tuple[dict[str, object], int]:
    """Return the service health status and the size of the handler registry."""
    return (
        jsonify(
            {
                "status": "ok",
                "handlers": len(get_registry()),
                "background_jobs": get_runner().background,
            }
        ),
        200,
    )
