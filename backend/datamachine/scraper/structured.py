"""Generic schema.org extractors: JSON-LD and Microdata."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from bs4 import BeautifulSoup, Tag

logger = logging.getLogger("datamachine.scraper.structured")

_EVENT_ITEMTYPE = re.compile(r"schema\.org/\w*Event$", re.IGNORECASE)


def _is_event_type(value: Any) -> bool:
    types = value if isinstance(value, list) else [value]
    return any(isinstance(item, str) and item.endswith("Event") for item in types)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, dict):
        return _text(value.get("name") or value.get("@value") or value.get("url"))
    if isinstance(value, list):
        return _text(value[0]) if value else ""
    return str(value).strip()


def _first_url(value: Any) -> str:
    if isinstance(value, list):
        for item in value:
            url = _first_url(item)
            if url:
                return url
        return ""
    if isinstance(value, dict):
        return str(value.get("url") or value.get("contentUrl") or "")
    return str(value or "")


class JsonLdExtractor:
    name = "json_ld"

    def can_extract(self, html: str) -> bool:
        return "application/ld+json" in html

    def extract(self, html: str, url: str) -> list[dict[str, Any]]:
        soup = BeautifulSoup(html, "html.parser")
        events: list[dict[str, Any]] = []
        for script in soup.find_all("script", type="application/ld+json"):
            raw = script.string or script.get_text()
            try:
                data = json.loads(raw)
            except (TypeError, ValueError):
                logger.debug("Skipping invalid JSON-LD block on %s", url)
                continue
            for node in self._walk(data):
                if _is_event_type(node.get("@type")):
                    events.append(self._map(node, url))
        return events

    def _walk(self, data: Any):
        if isinstance(data, list):
            for item in data:
                yield from self._walk(item)
        elif isinstance(data, dict):
            if "@graph" in data:
                yield from self._walk(data["@graph"])
            else:
                yield data

    @staticmethod
    def _map(node: dict[str, Any], page_url: str) -> dict[str, Any]:
        location = node.get("location")
        if isinstance(location, list):
            location = location[0] if location else {}
        venue, address = "", {}
        if isinstance(location, dict):
            venue = _text(location.get("name"))
            raw_address = location.get("address")
            if isinstance(raw_address, dict):
                address = raw_address
            elif raw_address:
                address = {"streetAddress": _text(raw_address)}
        elif location:
            venue = _text(location)

        offers = node.get("offers")
        if isinstance(offers, list):
            offers = offers[0] if offers else {}
        offers = offers if isinstance(offers, dict) else {}

        return {
            "title": _text(node.get("name")),
            "description": _text(node.get("description")),
            "start_date": _text(node.get("startDate")),
            "end_date": _text(node.get("endDate")),
            "venue": venue,
            "address": _text(address.get("streetAddress")),
            "city": _text(address.get("addressLocality")),
            "state": _text(address.get("addressRegion")),
            "zip": _text(address.get("postalCode")),
            "country": _text(address.get("addressCountry")),
            "ticket_url": _text(offers.get("url")),
            "price": _text(offers.get("price")),
            "image_url": _first_url(node.get("image")),
            "url": _text(node.get("url")) or page_url,
            "organizer": _text(node.get("organizer")),
        }


class MicrodataExtractor:
    name = "microdata"

    def can_extract(self, html: str) -> bool:
        return "itemtype" in html and "schema.org" in html and "Event" in html

    def extract(self, html: str, url: str) -> list[dict[str, Any]]:
        soup = BeautifulSoup(html, "html.parser")
        events = []
        for scope in soup.find_all(attrs={"itemscope": True, "itemtype": _EVENT_ITEMTYPE}):
            location = self._prop(scope, "location")
            address = self._prop(location, "address") if location is not None else None
            offers = self._prop(scope, "offers")
            events.append(
                {
                    "title": self._value(self._prop(scope, "name")),
                    "description": self._value(self._prop(scope, "description")),
                    "start_date": self._value(self._prop(scope, "startDate")),
                    "end_date": self._value(self._prop(scope, "endDate")),
                    "venue": self._value(self._prop(location, "name")) if location is not None else "",
                    "address": self._value(self._prop(address, "streetAddress")) if address is not None else "",
                    "city": self._value(self._prop(address, "addressLocality")) if address is not None else "",
                    "state": self._value(self._prop(address, "addressRegion")) if address is not None else "",
                    "zip": self._value(self._prop(address, "postalCode")) if address is not None else "",
                    "ticket_url": self._value(self._prop(offers, "url")) if offers is not None else "",
                    "price": self._value(self._prop(offers, "price")) if offers is not None else "",
                    "image_url": self._value(self._prop(scope, "image")),
                    "url": self._value(self._prop(scope, "url")) or url,
                }
            )
        return events

    @staticmethod
    def _prop(scope: Tag | None, name: str) -> Tag | None:
        """First ``itemprop`` belonging to ``scope`` itself, not to a nested item."""

        if scope is None:
            return None
        for tag in scope.find_all(attrs={"itemprop": name}):
            if tag.find_parent(attrs={"itemscope": True}) is scope:
                return tag
        return None

    @staticmethod
    def _value(tag: Tag | None) -> str:
        if tag is None:
            return ""
        for attribute in ("content", "datetime", "href", "src"):
            if tag.get(attribute):
                return str(tag[attribute]).strip()
        return tag.get_text(" ", strip=True)
