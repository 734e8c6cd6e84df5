"""Explicit handler registry populated once at application start."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

# Method a handler must expose to be registered under a step type.
CAPABILITIES = {
    "fetch": "get_fetch_data",
    "publish": "handle_output",
    "update": "handle_tool_call",
    "ai": "process",
}


@dataclass(frozen=True)
class HandlerDescriptor:
    slug: str
    type: str
    handler: Any
    label: str = ""
    description: str = ""
    settings_schema: dict[str, Any] = field(default_factory=dict)
    auth_provider: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "slug": self.slug,
            "type": self.type,
            "label": self.label or self.slug,
            "description": self.description,
            "settings": dict(self.settings_schema),
            "auth_provider": self.auth_provider,
        }


class HandlerRegistry:
    """Mapping from handler slug to its descriptor."""

    def __init__(self) -> None:
        self._handlers: dict[str, HandlerDescriptor] = {}
        self._frozen = False

    def register(
        self,
        slug: str,
        handler_type: str,
        handler: Any,
        *,
        label: str = "",
        description: str = "",
        settings_schema: dict[str, Any] | None = None,
        auth_provider: str | None = None,
    ) -> HandlerDescriptor:
        if self._frozen:
            raise RuntimeError("handler registry is frozen")
        capability = CAPABILITIES.get(handler_type)
        if capability is None:
            raise ValueError(f"unknown handler type {handler_type!r}")
        if not callable(getattr(handler, capability, None)):
            raise TypeError(f"handler {slug!r} does not implement {capability}()")
        if slug in self._handlers:
            raise ValueError(f"handler {slug!r} is already registered")

        descriptor = HandlerDescriptor(
            slug=slug,
            type=handler_type,
            handler=handler,
            label=label,
            description=description,
            settings_schema=dict(settings_schema or {}),
            auth_provider=auth_provider,
        )
        self._handlers[slug] = descriptor
        return descriptor

    def freeze(self) -> None:
        self._frozen = True

    def resolve(self, slug: str | None, handler_type: str | None = None) -> HandlerDescriptor | None:
        """Return the descriptor for ``slug`` or ``None`` when it is unknown."""

        if not slug:
            return None
        descriptor = self._handlers.get(slug)
        if descriptor is None:
            return None
        if handler_type is not None and descriptor.type != handler_type:
            return None
        return descriptor

    def for_type(self, handler_type: str) -> list[HandlerDescriptor]:
        return [d for d in self._handlers.values() if d.type == handler_type]

    def slugs(self) -> list[str]:
        return list(self._handlers)

    def as_mapping(self) -> MappingProxyType:
        return MappingProxyType(self._handlers)

    def __contains__(self, slug: object) -> bool:
        return slug in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)
