"""Platform specific extractors probed before any generic strategy."""

from __future__ import annotations

import json
import logging
import re
from typing import Any
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

logger = logging.getLogger("datamachine.scraper.platforms")


def _text(node: Tag | None) -> str:
    return node.get_text(" ", strip=True) if node is not None else ""


def _attr(node: Tag | None, *names: str) -> str:
    if node is None:
        return ""
    for name in names:
        if node.get(name):
            return str(node[name]).strip()
    return ""


class TribeEventsExtractor:
    """The Events Calendar (``tribe-events``) list views."""

    name = "tribe_events"

    def can_extract(self, html: str) -> bool:
        return "tribe-events-calendar-list__event" in html or "tribe-events-list-event" in html

    def extract(self, html: str, url: str) -> list[dict[str, Any]]:
        soup = BeautifulSoup(html, "html.parser")
        events = []
        for node in soup.select("article.tribe-events-calendar-list__event, .type-tribe_events"):
            link = node.select_one(
                ".tribe-events-calendar-list__event-title a, .tribe-events-list-event-title a, h3 a"
            )
            start = node.select_one("time[datetime]")
            venue = node.select_one(
                ".tribe-events-calendar-list__event-venue-title, .tribe-events-venue-details .tribe-venue"
            )
            events.append(
                {
                    "title": _text(link),
                    "url": urljoin(url, _attr(link, "href")) if link is not None else url,
                    "start_date": _attr(start, "datetime"),
                    "venue": _text(venue),
                    "address": _text(node.select_one(".tribe-events-calendar-list__event-venue-address")),
                    "description": _text(node.select_one(".tribe-events-calendar-list__event-description")),
                    "price": _text(node.select_one(".tribe-events-c-small-cta__price")),
                    "image_url": _attr(node.select_one("img"), "src", "data-src"),
                }
            )
        return [event for event in events if event["title"]]


class EventbriteExtractor:
    """Organizer pages that embed their events in ``window.__SERVER_DATA__``."""

    name = "eventbrite"
    _DATA_RE = re.compile(r"window\.__SERVER_DATA__\s*=\s*(\{.*?\})\s*;\s*</script>", re.DOTALL)

    def can_extract(self, html: str) -> bool:
        return "window.__SERVER_DATA__" in html

    def extract(self, html: str, url: str) -> list[dict[str, Any]]:
        match = self._DATA_RE.search(html)
        if match is None:
            return []
        try:
            data = json.loads(match.group(1))
        except ValueError:
            logger.warning("Eventbrite server data on %s is not valid JSON", url)
            return []

        view = (data.get("view_data") or {}).get("events") or {}
        raw_events = view.get("future_events") or data.get("events") or []
        events = []
        for raw in raw_events:
            name = raw.get("name")
            venue = raw.get("venue") or {}
            address = venue.get("address") or {}
            start = raw.get("start") or {}
            availability = raw.get("ticket_availability") or {}
            events.append(
                {
                    "title": name.get("text") if isinstance(name, dict) else str(name or ""),
                    "url": raw.get("url") or url,
                    "ticket_url": raw.get("url") or "",
                    "start_date": start.get("local") or raw.get("start_date") or "",
                    "start_time": raw.get("start_time") or "",
                    "venue": venue.get("name") or "",
                    "address": address.get("address_1") or address.get("localized_address_display") or "",
                    "city": address.get("city") or "",
                    "state": address.get("region") or "",
                    "zip": address.get("postal_code") or "",
                    "description": raw.get("summary") or "",
                    "image_url": ((raw.get("logo") or raw.get("image") or {}).get("url")) or "",
                    "price": (availability.get("minimum_ticket_price") or {}).get("display") or "",
                }
            )
        return [event for event in events if event["title"]]


class SquarespaceExtractor:
    """Squarespace event collection list pages."""

    name = "squarespace"

    def can_extract(self, html: str) -> bool:
        return "eventlist-event" in html and ("squarespace" in html.lower())

    def extract(self, html: str, url: str) -> list[dict[str, Any]]:
        soup = BeautifulSoup(html, "html.parser")
        events = []
        for node in soup.select("article.eventlist-event"):
            link = node.select_one(".eventlist-title a, .eventlist-title-link")
            date = node.select_one("time.event-date")
            start_time = node.select_one("time.event-time-12hr-start, time.event-time-24hr-start, time.event-time-12hr")
            address = node.select_one(".eventlist-meta-address")
            if address is not None:
                for map_link in address.select(".eventlist-meta-address-maplink"):
                    map_link.decompose()
            events.append(
                {
                    "title": _text(link),
                    "url": urljoin(url, _attr(link, "href")) if link is not None else url,
                    "start_date": _attr(date, "datetime"),
                    "start_time": _text(start_time),
                    "venue": _text(address).split(",")[0].strip() if address is not None else "",
                    "address": _text(address),
                    "description": _text(node.select_one(".eventlist-description, .eventlist-excerpt")),
                    "image_url": _attr(node.select_one("img"), "data-src", "src"),
                }
            )
        return [event for event in events if event["title"]]


def default_platform_extractors() -> list[Any]:
    return [TribeEventsExtractor(), EventbriteExtractor(), SquarespaceExtractor()]
