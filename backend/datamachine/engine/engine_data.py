"""Side channel for values captured during a job (source URL, image, dates)."""

from __future__ import annotations

from typing import Any

from ..extensions import db
from ..models.job import Job


class EngineDataStore:
    def store(self, job_id: int | None, values: dict[str, Any]) -> None:
        """Merge non-empty ``values`` into the job's engine data."""

        if job_id is None:
            return
        job = db.session.get(Job, job_id)
        if job is None:
            return
        merged = dict(job.engine_data or {})
        merged.update({key: value for key, value in values.items() if value not in (None, "")})
        job.engine_data = merged
        db.session.commit()

    def get(self, job_id: int | None) -> dict[str, Any]:
        if job_id is None:
            return {}
        job = db.session.get(Job, job_id)
        if job is None:
            return {}
        return dict(job.engine_data or {})
