"""Update step: modifies existing content through ``handle_tool_call``."""

from __future__ import annotations

from typing import Any

from .output import OutputContext, OutputStep


class UpdateStep(OutputStep):
    step_type = "update"
    entry_type = "update"
    complete_title = "Update Complete"

    def invoke(self, descriptor, output: OutputContext) -> Any:
        parameters = {
            "title": output.title,
            "content": output.body,
            "job_id": output.job_id,
            "flow_step_id": output.flow_step_id,
            "source_url": output.source_url,
            "image_url": output.image_url,
            "original_id": output.metadata.get("original_id"),
        }
        for key in ("file_path", "mime_type"):
            if output.engine_data.get(key):
                parameters[key] = output.engine_data[key]
        tool_def = {
            "name": descriptor.slug,
            "handler": descriptor.slug,
            "handler_config": output.settings,
        }
        result = descriptor.handler.handle_tool_call(parameters, tool_def)
        if isinstance(result, dict):
            result.setdefault("tool_name", descriptor.slug)
        return result
