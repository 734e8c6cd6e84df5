"""Step implementations keyed by step type."""

from .ai import AIStep
from .base import FAILED, NO_ITEMS, OK, SKIPPED, Step, StepContext, StepOutcome
from .fetch import FetchStep
from .output import OutputContext
from .publish import PublishStep
from .update import UpdateStep

STEP_TYPES: dict[str, type[Step]] = {
    "fetch": FetchStep,
    "ai": AIStep,
    "publish": PublishStep,
    "update": UpdateStep,
}

__all__ = [
    "AIStep",
    "FAILED",
    "FetchStep",
    "NO_ITEMS",
    "OK",
    "OutputContext",
    "PublishStep",
    "SKIPPED",
    "STEP_TYPES",
    "Step",
    "StepContext",
    "StepOutcome",
    "UpdateStep",
]
