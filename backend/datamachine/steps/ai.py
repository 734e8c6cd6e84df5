"""AI step: boundary to an externally provided processor."""

from __future__ import annotations

from ..engine.errors import ConfigurationError, error_payload
from ..engine.packet import DataEntry
from ..engine.status import JobStatus
from .base import FAILED, OK, SKIPPED, Step, StepContext, StepOutcome


class AIStep(Step):
    """Hands the packet to a registered ``ai`` processor.

    The processor returns ``{"success": True, "entries": [...]}`` with entries
    newest-first, ``{"skip": reason}`` to end the job early, or
    ``{"success": False, "error": ...}``.
    """

    step_type = "ai"

    def execute(self, context: StepContext, entries: list[DataEntry]) -> StepOutcome:
        slug = context.handler_slugs[0] if context.handler_slugs else None
        descriptor = self.registry.resolve(slug, "ai")
        if descriptor is None:
            error = ConfigurationError(f"AI processor {slug!r} not found")
            self.log("error", str(error), context)
            return StepOutcome(FAILED, entries, error=error.to_dict())

        settings = context.settings_for(slug)
        try:
            result = self.call_handler(
                lambda: descriptor.handler.process(list(entries), settings, context),
                label=f"ai processor {slug}",
            )
        except Exception as exc:
            self.log("error", f"AI processor {slug} raised: {exc}", context)
            return StepOutcome(FAILED, entries, error=error_payload(exc))

        result = result if isinstance(result, dict) else {}
        if result.get("skip"):
            reason = str(result["skip"])
            self.log("info", f"AI processor skipped item: {reason}", context)
            return StepOutcome(SKIPPED, entries, details={"status": JobStatus.agent_skipped(reason)})
        if not result.get("success"):
            message = result.get("error") or "AI processor returned no result"
            return StepOutcome(FAILED, entries, error={"type": "AIProcessingError", "message": message})

        new_entries = list(result.get("entries") or [])
        return StepOutcome(OK, new_entries + list(entries), details={"added": len(new_entries)})
