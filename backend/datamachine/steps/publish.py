"""Publish step."""

from __future__ import annotations

from typing import Any

from .output import OutputContext, OutputStep


class PublishStep(OutputStep):
    step_type = "publish"
    entry_type = "publish"
    complete_title = "Publish Complete"

    def invoke(self, descriptor, output: OutputContext) -> Any:
        return descriptor.handler.handle_output(output)
