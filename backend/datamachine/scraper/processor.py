"""Normalization shared by every extraction tier."""

from __future__ import annotations

import hashlib
import json
import re
from datetime import datetime
from typing import Any

from ..engine.engine_data import EngineDataStore

EVENT_FIELDS = (
    "title",
    "description",
    "start_date",
    "start_time",
    "end_date",
    "end_time",
    "venue",
    "address",
    "city",
    "state",
    "zip",
    "country",
    "ticket_url",
    "price",
    "image_url",
    "url",
    "organizer",
)
VENUE_OVERRIDES = {
    "venue_name": "venue",
    "venue_address": "address",
    "venue_city": "city",
    "venue_state": "state",
    "venue_zip": "zip",
    "venue_country": "country",
}
_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%d.%m.%Y", "%B %d, %Y", "%b %d, %Y", "%A, %B %d, %Y")
_ISO_DATE = re.compile(r"(\d{4}-\d{2}-\d{2})")
_ISO_TIME = re.compile(r"T(\d{2}:\d{2})")


def normalize_date(value: str | None) -> str:
    """Reduce a date or datetime string to ``YYYY-MM-DD``; unparseable input is returned trimmed."""

    value = (value or "").strip()
    if not value:
        return ""
    match = _ISO_DATE.search(value)
    if match:
        return match.group(1)
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).strftime("%Y-%m-%d")
        except ValueError:
            continue
    return value


class StructuredDataProcessor:
    def __init__(self, engine_data: EngineDataStore) -> None:
        self.engine_data = engine_data

    def normalize(self, raw: dict[str, Any], settings: dict[str, Any], page_url: str) -> dict[str, Any]:
        event = {field: str(raw.get(field) or "").strip() for field in EVENT_FIELDS}
        start = event["start_date"]
        if not event["start_time"]:
            time_match = _ISO_TIME.search(start)
            if time_match:
                event["start_time"] = time_match.group(1)
        event["start_date"] = normalize_date(start)
        event["end_date"] = normalize_date(event["end_date"])
        event["url"] = event["url"] or page_url
        event["source_url"] = page_url
        self.apply_overrides(event, settings)
        return event

    @staticmethod
    def apply_overrides(event: dict[str, Any], settings: dict[str, Any]) -> None:
        for setting, field in VENUE_OVERRIDES.items():
            value = settings.get(setting)
            if isinstance(value, str) and value.strip():
                event[field] = value.strip()
        taxonomies = {
            taxonomy: selection
            for taxonomy, selection in (settings.get("taxonomies") or {}).items()
            if selection and selection not in ("skip", "ai_decides")
        }
        if taxonomies:
            event["taxonomies"] = taxonomies

    @staticmethod
    def identifier(event: dict[str, Any]) -> str:
        key = "|".join(
            (
                event.get("title", "").strip().lower(),
                normalize_date(event.get("start_date")),
                event.get("venue", "").strip().lower(),
            )
        )
        return hashlib.md5(key.encode("utf-8")).hexdigest()

    def store_engine_fields(self, job_id: int | None, event: dict[str, Any]) -> None:
        self.engine_data.store(
            job_id,
            {
                "source_url": event.get("url") or event.get("source_url"),
                "image_url": event.get("image_url"),
                "ticket_url": event.get("ticket_url"),
                "event_date": event.get("start_date"),
                "event_time": event.get("start_time"),
                "venue_name": event.get("venue"),
            },
        )

    @staticmethod
    def to_fetch_result(event: dict[str, Any], identifier: str, method: str) -> dict[str, Any]:
        payload = {key: value for key, value in event.items() if value}
        return {
            "title": event["title"],
            "body": json.dumps({"event": payload}, indent=2, ensure_ascii=False),
            "metadata": {
                "item_identifier": identifier,
                "extraction_method": method,
                "source_url": event.get("url") or event.get("source_url"),
                "event_date": event.get("start_date"),
                "venue": event.get("venue"),
            },
        }
