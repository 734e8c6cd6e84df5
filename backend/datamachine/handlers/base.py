"""Handler interfaces for fetch, publish and update steps."""

from __future__ import annotations

import logging
from typing import Any

from ..engine.errors import HandlerTimeoutError
from ..engine.registry import HandlerRegistry
from ..engine.services import Services
from ..engine.timeouts import call_abandoned


class BaseHandler:
    """Attributes shared by every handler; the registry reads them at bootstrap."""

    slug = ""
    handler_type = ""
    label = ""
    description = ""
    settings_schema: dict[str, Any] = {}
    auth_provider: str | None = None

    def __init__(self, services: Services) -> None:
        self.services = services
        self.logger = logging.getLogger(f"datamachine.handlers.{self.slug}")

    @property
    def config(self):
        return self.services.config

    def get_auth(self):
        if self.auth_provider is None:
            return None
        return self.services.auth_provider(self.auth_provider)

    def store_engine_data(self, job_id: int | None, **values: Any) -> None:
        self.services.engine_data.store(job_id, values)


class FetchHandler(BaseHandler):
    """Returns at most one unprocessed item per call."""

    handler_type = "fetch"

    def get_fetch_data(
        self,
        pipeline_id: int,
        handler_settings: dict[str, Any],
        flow_id: int,
        job_id: int | None = None,
    ) -> dict[str, Any]:
        raise NotImplementedError

    def is_processed(self, handler_settings: dict[str, Any], identifier: Any) -> bool:
        flow_step_id = handler_settings.get("flow_step_id")
        if not flow_step_id:
            return False
        return self.services.tracker.is_item_processed(flow_step_id, self.slug, str(identifier))

    def claim(self, handler_settings: dict[str, Any], identifier: Any, job_id: int | None) -> bool:
        """Mark ``identifier`` processed; ``False`` when a concurrent run got there first."""

        if call_abandoned():
            raise HandlerTimeoutError(f"{self.slug} call timed out before claiming {identifier}")
        flow_step_id = handler_settings.get("flow_step_id")
        if not flow_step_id:
            self.logger.debug("No flow_step_id, processed item tracking disabled")
            return True
        return self.services.tracker.mark_item_processed(
            flow_step_id, self.slug, str(identifier), job_id=job_id
        )


class PublishHandler(BaseHandler):
    handler_type = "publish"

    def handle_output(self, output) -> dict[str, Any]:
        raise NotImplementedError


class UpdateHandler(BaseHandler):
    handler_type = "update"

    def handle_tool_call(self, parameters: dict[str, Any], tool_def: dict[str, Any] | None = None) -> dict[str, Any]:
        raise NotImplementedError


def register_handler(registry: HandlerRegistry, handler: BaseHandler):
    return registry.register(
        handler.slug,
        handler.handler_type,
        handler,
        label=handler.label,
        description=handler.description,
        settings_schema=handler.settings_schema,
        auth_provider=handler.auth_provider,
    )
