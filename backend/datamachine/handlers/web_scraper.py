"""Universal web scraper fetch handler for event listing pages."""

from __future__ import annotations

from typing import Any

from ..engine.errors import ConfigurationError
from ..engine.registry import HandlerRegistry
from ..engine.services import Services
from ..scraper import AI_FALLBACK, ExtractionEngine, PageExtraction, StructuredDataProcessor
from .base import FetchHandler, register_handler
from .filters import passes_keywords


class UniversalWebScraper(FetchHandler):
    slug = "universal_web_scraper"
    label = "Universal Web Scraper"
    description = "Extract one new event from any event listing page."
    settings_schema = {
        "source_url": {"type": "url", "required": True},
        "search": {"type": "text"},
        "exclude_keywords": {"type": "text"},
        "venue_name": {"type": "text"},
        "venue_address": {"type": "text"},
        "venue_city": {"type": "text"},
        "venue_state": {"type": "text"},
        "venue_zip": {"type": "text"},
        "venue_country": {"type": "text"},
        "taxonomies": {"type": "map"},
    }

    def __init__(self, services: Services, engine: ExtractionEngine | None = None) -> None:
        super().__init__(services)
        self.engine = engine or ExtractionEngine(
            services.http, max_pages=int(services.config.get("SCRAPER_MAX_PAGES", 20))
        )
        self.processor = StructuredDataProcessor(services.engine_data)

    def get_fetch_data(self, pipeline_id, handler_settings, flow_id, job_id=None):
        source_url = (handler_settings.get("source_url") or "").strip()
        if not source_url:
            raise ConfigurationError("Universal web scraper requires a source URL")

        def accept(item: Any, extraction: PageExtraction, page_url: str) -> dict[str, Any] | None:
            if extraction.tier == AI_FALLBACK:
                return self._accept_section(item, handler_settings, job_id, page_url)
            return self._accept_event(item, extraction, handler_settings, job_id, page_url)

        return self.engine.run(source_url, accept) or {}

    def _accept_event(self, raw, extraction, settings, job_id, page_url):
        event = self.processor.normalize(raw, settings, page_url)
        if not event["title"]:
            return None
        if not passes_keywords(f"{event['title']} {event['description']} {event['venue']}", settings):
            return None
        identifier = self.processor.identifier(event)
        if self.is_processed(settings, identifier):
            return None
        if not self.claim(settings, identifier, job_id):
            return None

        self.processor.store_engine_fields(job_id, event)
        self.logger.info("Extracted %r via %s", event["title"], extraction.method)
        return self.processor.to_fetch_result(event, identifier, extraction.method)

    def _accept_section(self, section, settings, job_id, page_url):
        if self.is_processed(settings, section.identifier):
            return None
        if not self.claim(settings, section.identifier, job_id):
            return None

        self.store_engine_data(job_id, source_url=page_url)
        return {
            "title": f"Event content from {page_url}",
            "body": section.html,
            "metadata": {
                "item_identifier": section.identifier,
                "extraction_method": "ai_fallback",
                "requires_ai_extraction": True,
                "source_url": page_url,
                "section_hint": section.hint,
            },
        }


def register(registry: HandlerRegistry, services: Services) -> None:
    register_handler(registry, UniversalWebScraper(services))
