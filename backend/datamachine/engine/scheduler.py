"""Background scheduler that triggers due flows."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta

from flask import Flask

from ..extensions import db
from ..models.flow import Flow
from .logging import log_event

logger = logging.getLogger("datamachine.scheduler")

INTERVALS = {
    "every_5_minutes": 300,
    "hourly": 3600,
    "every_6_hours": 21600,
    "twicedaily": 43200,
    "daily": 86400,
    "weekly": 604800,
}
MANUAL = "manual"


def is_valid_interval(interval: str | None) -> bool:
    return interval == MANUAL or interval in INTERVALS


def next_run_after(interval: str, moment: datetime) -> datetime | None:
    seconds = INTERVALS.get(interval)
    if seconds is None:
        return None
    return moment + timedelta(seconds=seconds)


def run_due_flows(now: datetime | None = None) -> list[int]:
    """Queue a job for every flow whose next run time has passed."""

    from .services import get_orchestrator, get_runner

    now = now or datetime.utcnow()
    due = (
        Flow.query.filter(Flow.schedule_interval != MANUAL)
        .filter(Flow.next_run_at.isnot(None))
        .filter(Flow.next_run_at <= now)
        .all()
    )
    orchestrator = get_orchestrator()
    job_ids: list[int] = []
    for flow in due:
        flow.next_run_at = next_run_after(flow.schedule_interval, now)
        db.session.commit()
        job = orchestrator.create_job(flow)
        log_event("info", f"Scheduled run of flow {flow.id}", source="scheduler", job_id=job.id)
        job_ids.append(job.id)
        get_runner().submit(job.id)
    return job_ids


class FlowScheduler:
    def __init__(self, app: Flask, poll_interval: float = 30) -> None:
        self.app = app
        self.poll_interval = poll_interval
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run_loop, daemon=True, name="dm-scheduler")

    def start(self) -> None:
        if not self._thread.is_alive():
            self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def _run_loop(self) -> None:
        while not self._stop.wait(self.poll_interval):
            with self.app.app_context():
                try:
                    run_due_flows()
                except Exception:
                    logger.exception("Scheduler tick failed")
                    db.session.rollback()
                finally:
                    db.session.remove()


_scheduler_instance: FlowScheduler | None = None
_scheduler_lock = threading.Lock()


def ensure_scheduler_started(app: Flask) -> FlowScheduler:
    """Start the scheduler thread once per process."""
    global _scheduler_instance
    with _scheduler_lock:
        if _scheduler_instance is None:
            _scheduler_instance = FlowScheduler(app, float(app.config.get("SCHEDULER_POLL_INTERVAL", 30)))
            _scheduler_instance.start()
    return _scheduler_instance
