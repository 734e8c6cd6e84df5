"""Multi-handler execution shared by publish and update steps."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from ..engine.errors import ConfigurationError, ContentValidationError, error_payload
from ..engine.packet import DataEntry, make_entry, prepend
from .base import FAILED, OK, Step, StepContext, StepOutcome


@dataclass
class OutputContext:
    """Everything an output handler needs about the item it is writing."""

    content: dict[str, Any]
    settings: dict[str, Any]
    engine_data: dict[str, Any]
    metadata: dict[str, Any]
    job_id: int | None
    flow_step_id: str
    entry: DataEntry = field(default_factory=dict)

    @property
    def title(self) -> str:
        return self.content.get("title") or ""

    @property
    def body(self) -> str:
        return self.content.get("body") or ""

    @property
    def source_url(self) -> str | None:
        return self.engine_data.get("source_url") or self.metadata.get("source_url")

    @property
    def image_url(self) -> str | None:
        return self.engine_data.get("image_url") or self.metadata.get("image_url")


def split_packet(entries: list[DataEntry]) -> tuple[list[DataEntry], DataEntry | None]:
    """Separate leading AI tool results from the entry to be written."""

    tool_results: list[DataEntry] = []
    for entry in entries:
        if entry.get("type") == "tool_result":
            tool_results.append(entry)
            continue
        return tool_results, entry
    return tool_results, None


def find_tool_result(tool_results: list[DataEntry], slug: str) -> DataEntry | None:
    for entry in tool_results:
        handler = str((entry.get("metadata") or {}).get("tool_handler") or "")
        if handler == slug or (handler and (handler in slug or slug in handler)):
            return entry
    return None


class OutputStep(Step):
    """Runs every configured handler in order and isolates their failures."""

    entry_type = ""
    complete_title = ""

    def invoke(self, descriptor, output: OutputContext) -> Any:
        raise NotImplementedError

    def execute(self, context: StepContext, entries: list[DataEntry]) -> StepOutcome:
        slugs = list(context.handler_slugs)
        if not slugs:
            error = ConfigurationError(f"{self.step_type} step requires at least one handler")
            self.log("error", str(error), context)
            return StepOutcome(FAILED, entries, error=error.to_dict())

        tool_results, entry = split_packet(entries)
        if entry is None:
            error = ContentValidationError(f"No data entry available for {self.step_type}")
            self.log("error", str(error), context)
            return StepOutcome(FAILED, entries, error=error.to_dict())

        engine_data = self.services.engine_data.get(context.job_id)
        results: dict[str, dict[str, Any]] = {}
        successful: list[str] = []
        failed: list[str] = []

        for slug in slugs:
            result = self._run_one(slug, entry, tool_results, context, engine_data)
            results[slug] = result
            if result.get("success"):
                successful.append(slug)
            else:
                failed.append(slug)
                self.log("warning", f"{self.step_type} handler {slug} failed", context, handler=slug, error=result.get("error"))

        overall_success = bool(successful)
        summary = {
            "successful": successful,
            "failed": failed,
            "results": results,
            "overall_success": overall_success,
        }
        source_type = (entry.get("metadata") or {}).get("source_type")
        output_entry = make_entry(
            self.entry_type,
            slugs[0] if len(slugs) == 1 else ",".join(slugs),
            self.complete_title,
            json.dumps(results, default=str),
            {
                "handlers_used": slugs,
                "successful_handlers": successful,
                "failed_handlers": failed,
                f"{self.entry_type}_success": overall_success,
                "flow_step_id": context.flow_step_id,
                "source_type": source_type,
            },
            result=results,
        )
        updated = prepend(entries, output_entry)

        if not overall_success:
            error = {
                "type": "OutputFailed",
                "message": f"All {self.step_type} handlers failed: {', '.join(failed)}",
                "handlers": {slug: results[slug].get("error") for slug in failed},
            }
            return StepOutcome(FAILED, updated, error=error, details=summary)

        self.log("info", f"{self.step_type} step finished", context, successful=successful, failed=failed)
        return StepOutcome(OK, updated, details=summary)

    def _run_one(
        self,
        slug: str,
        entry: DataEntry,
        tool_results: list[DataEntry],
        context: StepContext,
        engine_data: dict[str, Any],
    ) -> dict[str, Any]:
        descriptor = self.registry.resolve(slug, self.step_type)
        if descriptor is None:
            return {"success": False, "error": f"Handler {slug!r} not found", "error_type": "ConfigurationError"}

        tool_entry = find_tool_result(tool_results, slug)
        if tool_entry is not None:
            # The AI step already executed this handler as a tool.
            data = tool_entry.get("result") or (tool_entry.get("metadata") or {}).get("tool_result") or {}
            return {"success": bool(data.get("success", True)), **data, "via_tool": True}

        metadata = dict(entry.get("metadata") or {})
        content = dict(entry.get("content") or {})
        content.setdefault("tags", metadata.get("tags") or [])
        content.setdefault("summary", metadata.get("summary") or "")
        output = OutputContext(
            content=content,
            settings=context.settings_for(slug),
            engine_data=dict(engine_data),
            metadata=metadata,
            job_id=context.job_id,
            flow_step_id=context.flow_step_id,
            entry=entry,
        )

        try:
            result = self.call_handler(lambda: self.invoke(descriptor, output), label=f"{self.step_type} handler {slug}")
        except Exception as exc:
            payload = error_payload(exc)
            return {"success": False, "error": payload["message"], "error_type": payload["type"]}

        if not isinstance(result, dict):
            return {"success": False, "error": f"Handler {slug!r} returned an invalid result", "error_type": "HandlerExecutionError"}
        result = dict(result)
        result["success"] = bool(result.get("success"))
        return result
