"""Pagination and tiered extraction for the universal web scraper."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin, urldefrag

from bs4 import BeautifulSoup

from ..engine.errors import TransientSourceError
from ..engine.http import HttpClient
from .platforms import default_platform_extractors
from .sections import SectionFinder
from .structured import JsonLdExtractor, MicrodataExtractor

logger = logging.getLogger("datamachine.scraper")

PLATFORM = 1
STRUCTURED = 2
AI_FALLBACK = 3

_NEXT_TEXTS = {"next", "next page", "next »", "next ›", "»", "›", "older events", "more events", "next events"}
_NEXT_CLASS = re.compile(r"\bnext\b")


@dataclass
class PageExtraction:
    tier: int
    method: str
    items: list[Any] = field(default_factory=list)


def default_structured_extractors() -> list[Any]:
    return [JsonLdExtractor(), MicrodataExtractor()]


def find_next_page(html: str, url: str) -> str | None:
    soup = BeautifulSoup(html, "html.parser")
    link = soup.find(["link", "a"], rel="next", href=True)
    if link is None:
        for anchor in soup.find_all("a", href=True):
            text = anchor.get_text(" ", strip=True).lower()
            classes = " ".join(anchor.get("class") or []).lower()
            if text in _NEXT_TEXTS or _NEXT_CLASS.search(classes):
                link = anchor
                break
    if link is None:
        return None
    href = link["href"].strip()
    if not href or href.startswith(("#", "javascript:")):
        return None
    return urldefrag(urljoin(url, href))[0]


class ExtractionEngine:
    """Walks result pages and runs the extraction tiers on each of them.

    Tier 1 platform extractors and tier 2 schema.org extractors are tried in
    order and the first one that yields items wins the page. Only pages
    without any structured items fall through to tier 3, which returns raw
    cleaned HTML sections for a downstream AI step.
    """

    def __init__(
        self,
        http: HttpClient,
        platform_extractors: list[Any] | None = None,
        structured_extractors: list[Any] | None = None,
        section_finder: SectionFinder | None = None,
        max_pages: int = 20,
    ) -> None:
        self.http = http
        self.platform_extractors = (
            default_platform_extractors() if platform_extractors is None else platform_extractors
        )
        self.structured_extractors = (
            default_structured_extractors() if structured_extractors is None else structured_extractors
        )
        self.section_finder = section_finder or SectionFinder()
        self.max_pages = max_pages

    def extract_page(self, html: str, url: str) -> PageExtraction | None:
        for tier, extractors in ((PLATFORM, self.platform_extractors), (STRUCTURED, self.structured_extractors)):
            for extractor in extractors:
                if not extractor.can_extract(html):
                    continue
                items = extractor.extract(html, url)
                if items:
                    logger.debug("%s extracted %s items from %s", extractor.name, len(items), url)
                    return PageExtraction(tier, extractor.name, items)

        sections = self.section_finder.find_sections(html, url)
        if sections:
            return PageExtraction(AI_FALLBACK, "ai_fallback", sections)
        return None

    def run(self, start_url: str, accept: Callable[[Any, PageExtraction, str], dict | None]) -> dict | None:
        """Return the first item ``accept`` takes, walking at most ``max_pages`` pages."""

        url: str | None = start_url
        visited: set[str] = set()
        for page in range(1, self.max_pages + 1):
            if url is None or url in visited:
                break
            visited.add(url)

            response = self.http.get_page(url, context="Universal Web Scraper")
            if not response.success:
                if page == 1:
                    raise TransientSourceError(response.error or f"Could not fetch {url}")
                logger.warning("Page %s (%s) failed: %s", page, url, response.error)
                break

            html = response.text
            try:
                extraction = self.extract_page(html, url)
            except Exception:
                logger.exception("Extraction failed on %s, moving to the next page", url)
                extraction = None

            if extraction is not None:
                for item in extraction.items:
                    result = accept(item, extraction, url)
                    if result:
                        result.setdefault("metadata", {})["page"] = page
                        return result

            url = find_next_page(html, url)
        return None
