"""Tiered event extraction used by the universal web scraper."""

from .engine import AI_FALLBACK, PLATFORM, STRUCTURED, ExtractionEngine, PageExtraction, find_next_page
from .platforms import (
    EventbriteExtractor,
    SquarespaceExtractor,
    TribeEventsExtractor,
    default_platform_extractors,
)
from .processor import StructuredDataProcessor, normalize_date
from .sections import HtmlSection, SectionFinder
from .structured import JsonLdExtractor, MicrodataExtractor

__all__ = [
    "AI_FALLBACK",
    "EventbriteExtractor",
    "ExtractionEngine",
    "HtmlSection",
    "JsonLdExtractor",
    "MicrodataExtractor",
    "PLATFORM",
    "PageExtraction",
    "STRUCTURED",
    "SectionFinder",
    "SquarespaceExtractor",
    "StructuredDataProcessor",
    "TribeEventsExtractor",
    "default_platform_extractors",
    "find_next_page",
    "normalize_date",
]
