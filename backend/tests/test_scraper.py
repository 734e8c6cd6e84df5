"""Tests for tiered event extraction and the universal web scraper handler."""

from __future__ import annotations

import dataclasses
import hashlib
import json

import pytest

from backend.datamachine.engine.errors import TransientSourceError
from backend.datamachine.handlers.web_scraper import UniversalWebScraper
from backend.datamachine.scraper import (
    AI_FALLBACK,
    PLATFORM,
    STRUCTURED,
    ExtractionEngine,
    HtmlSection,
    JsonLdExtractor,
    MicrodataExtractor,
    StructuredDataProcessor,
    default_platform_extractors,
    find_next_page,
    normalize_date,
)

LISTING_URL = "http://venue.test/events"
PAGE_TWO_URL = "http://venue.test/events?page=2"


def _json_ld_page(events, next_url: str | None = None) -> str:
    graph = [{"@type": "Organization", "name": "Venue"}]
    for title, start, venue in events:
        graph.append(
            {
                "@type": "MusicEvent",
                "name": title,
                "startDate": start,
                "location": {
                    "@type": "Place",
                    "name": venue,
                    "address": {"streetAddress": "1 Main St", "addressLocality": "Springfield"},
                },
                "offers": {"url": "http://tickets.test/1", "price": "10"},
                "image": ["http://venue.test/img.jpg"],
            }
        )
    next_link = f'<link rel="next" href="{next_url}">' if next_url else ""
    return (
        f"<html><head>{next_link}"
        f'<script type="application/ld+json">{json.dumps({"@context": "https://schema.org", "@graph": graph})}</script>'
        "</head><body><main>Upcoming shows</main></body></html>"
    )


MICRODATA_PAGE = """
<html><body>
<div itemscope itemtype="https://schema.org/Event">
  <span itemprop="name">Open Mic</span>
  <meta itemprop="startDate" content="2030-06-10T19:00">
  <div itemprop="location" itemscope itemtype="https://schema.org/Place">
    <span itemprop="name">Corner Cafe</span>
    <div itemprop="address" itemscope itemtype="https://schema.org/PostalAddress">
      <span itemprop="streetAddress">5 Side St</span>
      <span itemprop="addressLocality">Shelbyville</span>
    </div>
  </div>
</div>
</body></html>
"""

TRIBE_PAGE = """
<html><head>
<script type="application/ld+json">{"@type": "Event", "name": "From JSON-LD", "startDate": "2030-01-01"}</script>
</head><body>
<article class="tribe-events-calendar-list__event">
  <h3 class="tribe-events-calendar-list__event-title"><a href="/event/quiz-night/">Quiz Night</a></h3>
  <time datetime="2030-07-04">July 4</time>
  <span class="tribe-events-calendar-list__event-venue-title">The Pub</span>
</article>
</body></html>
"""

UNSTRUCTURED_PAGE = """
<html><body><nav>Home | About</nav>
<div class="event-item" style="color:red">
  <h2>Summer Festival</h2><p>Join us on July 12th at the park for food, music and games.</p>
</div>
</body></html>
"""


class SpySectionFinder:
    def __init__(self) -> None:
        self.calls = 0

    def find_sections(self, html, url):
        self.calls += 1
        return [HtmlSection(html="<div>raw</div>", identifier=f"section-{self.calls}", hint="event-item")]


def _accept_all(item, extraction, page_url):
    return {"title": item["title"] if isinstance(item, dict) else "section", "metadata": {"tier": extraction.tier}}


def test_json_ld_extractor_walks_graph():
    html = _json_ld_page([("Jazz Night", "2030-05-01T20:00", "Blue Room")])

    events = JsonLdExtractor().extract(html, LISTING_URL)

    assert len(events) == 1
    event = events[0]
    assert event["title"] == "Jazz Night"
    assert event["venue"] == "Blue Room"
    assert event["city"] == "Springfield"
    assert event["ticket_url"] == "http://tickets.test/1"
    assert event["image_url"] == "http://venue.test/img.jpg"
    assert event["url"] == LISTING_URL


def test_microdata_extractor_reads_nested_scopes():
    events = MicrodataExtractor().extract(MICRODATA_PAGE, LISTING_URL)

    assert events == [
        {
            "title": "Open Mic",
            "description": "",
            "start_date": "2030-06-10T19:00",
            "end_date": "",
            "venue": "Corner Cafe",
            "address": "5 Side St",
            "city": "Shelbyville",
            "state": "",
            "zip": "",
            "ticket_url": "",
            "price": "",
            "image_url": "",
            "url": LISTING_URL,
        }
    ]


def test_platform_extractor_wins_over_structured_data(fake_http):
    spy = SpySectionFinder()
    engine = ExtractionEngine(fake_http, section_finder=spy)

    extraction = engine.extract_page(TRIBE_PAGE, LISTING_URL)

    assert extraction.tier == PLATFORM
    assert extraction.method == "tribe_events"
    assert extraction.items[0]["title"] == "Quiz Night"
    assert extraction.items[0]["url"] == "http://venue.test/event/quiz-night/"
    assert spy.calls == 0


def test_ai_fallback_only_runs_without_structured_items(fake_http):
    spy = SpySectionFinder()
    engine = ExtractionEngine(fake_http, section_finder=spy)
    page = _json_ld_page([("Jazz Night", "2030-05-01", "Blue Room")])

    assert [extractor.can_extract(page) for extractor in default_platform_extractors()] == [False, False, False]
    structured = engine.extract_page(page, LISTING_URL)
    assert structured.tier == STRUCTURED
    assert structured.items[0]["title"] == "Jazz Night"
    assert spy.calls == 0

    fallback = engine.extract_page(UNSTRUCTURED_PAGE, LISTING_URL)
    assert fallback.tier == AI_FALLBACK
    assert spy.calls == 1


def test_engine_follows_pagination_until_an_item_is_accepted(fake_http):
    fake_http.add("GET", LISTING_URL, text=_json_ld_page([("Old Show", "2030-01-01", "Hall")], next_url=PAGE_TWO_URL))
    fake_http.add("GET", PAGE_TWO_URL, text=_json_ld_page([("New Show", "2030-02-01", "Hall")]))
    engine = ExtractionEngine(fake_http, platform_extractors=[])

    def accept(item, extraction, page_url):
        if item["title"] == "Old Show":
            return None
        return {"title": item["title"], "metadata": {}}

    result = engine.run(LISTING_URL, accept)

    assert result["title"] == "New Show"
    assert result["metadata"]["page"] == 2


def test_engine_stops_at_page_limit_and_on_cycles(fake_http):
    fake_http.add("GET", LISTING_URL, text=_json_ld_page([("Show", "2030-01-01", "Hall")], next_url=LISTING_URL))
    engine = ExtractionEngine(fake_http, platform_extractors=[], max_pages=5)

    assert engine.run(LISTING_URL, lambda item, extraction, page_url: None) is None
    assert len(fake_http.calls) == 1


def test_first_page_failure_is_transient_and_later_failures_stop(fake_http):
    engine = ExtractionEngine(fake_http, platform_extractors=[])
    with pytest.raises(TransientSourceError):
        engine.run(LISTING_URL, _accept_all)

    fake_http.add("GET", LISTING_URL, text=_json_ld_page([("Show", "2030-01-01", "Hall")], next_url=PAGE_TWO_URL))
    fake_http.add("GET", PAGE_TWO_URL, status=500)
    assert engine.run(LISTING_URL, lambda item, extraction, page_url: None) is None


def test_find_next_page_variants():
    assert find_next_page('<a rel="next" href="/p/2#top">2</a>', LISTING_URL) == "http://venue.test/p/2"
    assert find_next_page('<a href="?page=3">Next »</a>', LISTING_URL) == "http://venue.test/events?page=3"
    assert find_next_page('<a class="pagination next" href="/p/4">›</a>', LISTING_URL) == "http://venue.test/p/4"
    assert find_next_page('<a href="javascript:void(0)">Next</a>', LISTING_URL) is None
    assert find_next_page("<a href='/about'>About</a>", LISTING_URL) is None


def test_normalize_date_formats():
    assert normalize_date("2030-05-01T20:00:00-05:00") == "2030-05-01"
    assert normalize_date("May 1, 2030") == "2030-05-01"
    assert normalize_date("05/01/2030") == "2030-05-01"
    assert normalize_date("someday") == "someday"
    assert normalize_date(None) == ""


def test_identifier_is_stable_across_formatting():
    a = {"title": " Jazz Night ", "start_date": "2030-05-01T20:00", "venue": "Blue Room"}
    b = {"title": "jazz night", "start_date": "May 1, 2030", "venue": "blue room"}

    expected = hashlib.md5("jazz night|2030-05-01|blue room".encode("utf-8")).hexdigest()
    assert StructuredDataProcessor.identifier(a) == expected
    assert StructuredDataProcessor.identifier(b) == expected


@pytest.fixture()
def scraper(services, fake_http):
    scoped = dataclasses.replace(services, http=fake_http)
    return UniversalWebScraper(scoped, engine=ExtractionEngine(fake_http, platform_extractors=[]))


def test_scraper_returns_one_new_event_per_call(scraper, fake_http):
    fake_http.add(
        "GET",
        LISTING_URL,
        text=_json_ld_page([("Jazz Night", "2030-05-01T20:00", "Blue Room"), ("Poetry Slam", "2030-05-02", "Library")]),
    )
    settings = {"source_url": LISTING_URL, "flow_step_id": "1_1", "venue_city": "Capital City"}

    first = scraper.get_fetch_data(1, settings, 1)
    second = scraper.get_fetch_data(1, settings, 1)
    third = scraper.get_fetch_data(1, settings, 1)

    assert first["title"] == "Jazz Night"
    event = json.loads(first["body"])["event"]
    assert event["start_date"] == "2030-05-01"
    assert event["start_time"] == "20:00"
    assert event["city"] == "Capital City"
    assert first["metadata"]["extraction_method"] == "json_ld"
    assert second["title"] == "Poetry Slam"
    assert third == {}


def test_scraper_keyword_filters(scraper, fake_http):
    fake_http.add(
        "GET",
        LISTING_URL,
        text=_json_ld_page([("Jazz Night", "2030-05-01", "Blue Room"), ("Poetry Slam", "2030-05-02", "Library")]),
    )
    settings = {"source_url": LISTING_URL, "flow_step_id": "1_1", "exclude_keywords": "jazz"}

    assert scraper.get_fetch_data(1, settings, 1)["title"] == "Poetry Slam"


def test_scraper_hands_unstructured_sections_to_ai(scraper, fake_http):
    fake_http.add("GET", LISTING_URL, text=UNSTRUCTURED_PAGE)
    settings = {"source_url": LISTING_URL, "flow_step_id": "1_1"}

    result = scraper.get_fetch_data(1, settings, 1)

    assert result["metadata"]["requires_ai_extraction"] is True
    assert "Summer Festival" in result["body"]
    assert "style=" not in result["body"]
    assert scraper.get_fetch_data(1, settings, 1) == {}


def test_scraper_requires_source_url(scraper):
    from backend.datamachine.engine.errors import ConfigurationError

    with pytest.raises(ConfigurationError):
        scraper.get_fetch_data(1, {"flow_step_id": "1_1"}, 1)
