"""Background execution of queued jobs."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor

from flask import Flask

from ..extensions import db
from .orchestrator import JobOrchestrator

logger = logging.getLogger("datamachine.engine.runner")


class JobRunner:
    """Runs each job on its own worker thread; steps inside a job stay sequential."""

    def __init__(self, app: Flask, orchestrator: JobOrchestrator, workers: int = 4, background: bool = True) -> None:
        self.app = app
        self.orchestrator = orchestrator
        self.background = background
        self._executor = ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix="dm-job") if background else None

    def submit(self, job_id: int) -> Future | None:
        if self._executor is None:
            self.orchestrator.execute_job(job_id)
            return None
        return self._executor.submit(self._run, job_id)

    def _run(self, job_id: int) -> None:
        with self.app.app_context():
            try:
                self.orchestrator.execute_job(job_id)
            except Exception:
                logger.exception("Job %s crashed", job_id)
                db.session.rollback()
            finally:
                db.session.remove()

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
