"""Fetch step: pulls exactly one new item from the configured source."""

from __future__ import annotations

from typing import Any

from ..engine.errors import (
    AuthenticationError,
    ConfigurationError,
    ContentValidationError,
    error_payload,
)
from ..engine.packet import DataEntry, make_entry, prepend
from .base import FAILED, NO_ITEMS, OK, Step, StepContext, StepOutcome


class FetchStep(Step):
    step_type = "fetch"

    def execute(self, context: StepContext, entries: list[DataEntry]) -> StepOutcome:
        slug = context.handler_slugs[0] if context.handler_slugs else None
        if not slug:
            error = ConfigurationError("Fetch step requires a handler slug")
            self.log("error", str(error), context)
            return StepOutcome(FAILED, entries, error=error.to_dict())

        descriptor = self.registry.resolve(slug, "fetch")
        if descriptor is None:
            error = ConfigurationError(f"Fetch handler {slug!r} not found")
            self.log("error", str(error), context)
            return StepOutcome(FAILED, entries, error=error.to_dict())

        settings = context.settings_for(slug)
        try:
            result = self.call_handler(
                lambda: descriptor.handler.get_fetch_data(
                    context.pipeline_id, settings, context.flow_id, job_id=context.job_id
                ),
                label=f"fetch handler {slug}",
                on_abandon=self._release_claims(context),
            )
        except (ConfigurationError, AuthenticationError) as exc:
            self.log("error", f"Fetch handler {slug} failed: {exc}", context, handler=slug)
            return StepOutcome(FAILED, entries, error=exc.to_dict())
        except Exception as exc:
            # Anything else means "no new data" for this run.
            self.log("warning", f"Fetch handler {slug} returned no data: {exc}", context, handler=slug)
            return StepOutcome(NO_ITEMS, entries, error=error_payload(exc))

        try:
            entry = self._build_entry(result, slug, context)
        except ContentValidationError as exc:
            self.log("warning", str(exc), context, handler=slug)
            return StepOutcome(NO_ITEMS, entries, error=exc.to_dict())
        if entry is None:
            self.log("info", f"Fetch handler {slug} found no new items", context, handler=slug)
            return StepOutcome(NO_ITEMS, entries)

        self.log("info", f"Fetched item from {slug}", context, handler=slug, title=entry["content"]["title"])
        return StepOutcome(OK, prepend(entries, entry), details={"handler": slug})

    def _release_claims(self, context: StepContext):
        """Cleanup for a timed out fetch: its item must stay available to later runs."""

        if context.job_id is None:
            return None
        tracker = self.services.tracker
        job_id = context.job_id

        def release() -> None:
            released = tracker.delete_for_job(job_id)
            if released:
                self.log("warning", f"Released {released} item(s) claimed after timeout", context)

        return release

    def _build_entry(self, result: Any, slug: str, context: StepContext) -> DataEntry | None:
        if not result:
            return None
        if not isinstance(result, dict):
            raise ContentValidationError(f"{slug} returned {type(result).__name__}, expected dict")

        if "processed_items" in result:
            items = result.get("processed_items") or []
            if not items:
                return None
            item = items[0] or {}
            data = item.get("data") or {}
            title = data.get("title") or ""
            body = data.get("content") or data.get("body") or ""
            handler_metadata = dict(item.get("metadata") or {})
            handler_metadata.update(data.get("metadata") or {})
            attachments = [data["file_info"]] if data.get("file_info") else []
        else:
            title = result.get("title") or ""
            body = result.get("body") or result.get("content") or ""
            handler_metadata = dict(result.get("metadata") or {})
            attachments = list(result.get("attachments") or [])

        if not str(title).strip() and not str(body).strip() and not attachments:
            return None

        metadata = {
            "source_type": slug,
            "pipeline_id": context.pipeline_id,
            "flow_id": context.flow_id,
            "flow_step_id": context.flow_step_id,
        }
        metadata.update(handler_metadata)
        return make_entry("fetch", slug, str(title), str(body), metadata, attachments)
