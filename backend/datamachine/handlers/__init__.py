"""Built-in handlers and the bootstrap that registers them."""

from __future__ import annotations

import importlib
import logging

from ..engine.registry import HandlerRegistry
from ..engine.services import Services
from . import bluesky, google_sheets, reddit, rss, threads, twitter, web_scraper, wordpress

logger = logging.getLogger("datamachine.handlers")

BUILTIN_MODULES = (wordpress, rss, reddit, web_scraper, bluesky, threads, twitter, google_sheets)


def build_registry(services: Services, extra_modules: list[str] | tuple[str, ...] = ()) -> HandlerRegistry:
    """Call every handler module's ``register`` against a fresh registry.

    ``extra_modules`` are dotted import paths of additional modules exposing
    ``register(registry, services)``, e.g. an AI processor.
    """
    registry = HandlerRegistry()
    for module in BUILTIN_MODULES:
        module.register(registry, services)
    for path in extra_modules:
        module = importlib.import_module(path)
        module.register(registry, services)
        logger.info("Registered handlers from %s", path)
    return registry


__all__ = ["BUILTIN_MODULES", "build_registry"]
