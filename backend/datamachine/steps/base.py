"""Step contracts shared by every step type."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from flask import current_app

from ..engine.logging import log_event
from ..engine.packet import DataEntry
from ..engine.registry import HandlerRegistry
from ..engine.services import Services
from ..engine.timeouts import run_with_timeout

T = TypeVar("T")

OK = "ok"
NO_ITEMS = "no_items"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class StepContext:
    job_id: int | None
    pipeline_id: int
    flow_id: int
    flow_step_id: str
    step_type: str
    handler_slugs: list[str] = field(default_factory=list)
    handler_settings: dict[str, dict[str, Any]] = field(default_factory=dict)
    step_config: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_flow_step(cls, job, flow_step) -> "StepContext":
        return cls(
            job_id=job.id if job is not None else None,
            pipeline_id=flow_step.pipeline_step.pipeline_id,
            flow_id=flow_step.flow_id,
            flow_step_id=flow_step.id,
            step_type=flow_step.step_type,
            handler_slugs=list(flow_step.handler_slugs or []),
            handler_settings=dict(flow_step.handler_settings or {}),
            step_config=dict(flow_step.pipeline_step.config or {}),
        )

    def settings_for(self, slug: str) -> dict[str, Any]:
        settings = dict(self.handler_settings.get(slug) or {})
        settings["flow_step_id"] = self.flow_step_id
        return settings


@dataclass
class StepOutcome:
    status: str
    entries: list[DataEntry]
    error: dict[str, Any] | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == OK


class Step:
    """Base for step implementations; subclasses implement :meth:`execute`."""

    step_type = ""

    def __init__(self, registry: HandlerRegistry, services: Services) -> None:
        self.registry = registry
        self.services = services

    def execute(self, context: StepContext, entries: list[DataEntry]) -> StepOutcome:
        raise NotImplementedError

    def call_handler(
        self, func: Callable[[], T], label: str, on_abandon: Callable[[], Any] | None = None
    ) -> T:
        timeout = self.services.config.get("HANDLER_TIMEOUT")
        return run_with_timeout(current_app._get_current_object(), func, timeout, label, on_abandon)

    def log(self, level: str, message: str, context: StepContext, **extra: Any) -> None:
        log_event(
            level,
            message,
            source="engine",
            job_id=context.job_id,
            context={"flow_step_id": context.flow_step_id, "step_type": self.step_type, **extra},
        )
