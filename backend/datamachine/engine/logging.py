"""Engine logging that mirrors events into the run log table."""

from __future__ import annotations

import logging
from typing import Any

from flask import has_app_context

from ..extensions import db
from ..models.logs import LOG_SOURCES, RunLog

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def log_event(
    level: str,
    message: str,
    *,
    source: str = "engine",
    job_id: int | None = None,
    context: dict[str, Any] | None = None,
) -> None:
    """Log ``message`` and persist it as a run log entry without raising."""

    if not message:
        return

    logger = logging.getLogger(f"datamachine.{source}")
    logger.log(_LEVELS.get(level, logging.INFO), "%s %s", message, context or "")

    if level == "debug" or not has_app_context():
        return
    if source not in LOG_SOURCES:
        source = "engine"

    try:
        entry = RunLog(
            source=source,
            level=level,
            job_id=job_id,
            message=message,
            context=_jsonable(context),
        )
        db.session.add(entry)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Failed to persist run log entry")


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(item) for item in value]
    return str(value)
