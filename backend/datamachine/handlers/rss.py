"""RSS/Atom feed fetch handler."""

from __future__ import annotations

import calendar
from datetime import datetime, timezone
from typing import Any

import feedparser

from ..engine.errors import ConfigurationError, ContentValidationError, TransientSourceError
from ..engine.registry import HandlerRegistry
from ..engine.services import Services
from .base import FetchHandler, register_handler
from .filters import passes_keywords, strip_tags, timeframe_cutoff

_IMAGE_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")


class RssFetch(FetchHandler):
    slug = "rss"
    label = "RSS Feed"
    description = "Fetch the newest unprocessed entry of an RSS or Atom feed."
    settings_schema = {
        "feed_url": {"type": "url", "required": True},
        "timeframe_limit": {"type": "select", "default": "all_time"},
        "search": {"type": "text"},
        "exclude_keywords": {"type": "text"},
    }

    def get_fetch_data(self, pipeline_id, handler_settings, flow_id, job_id=None):
        feed_url = (handler_settings.get("feed_url") or "").strip()
        if not feed_url:
            raise ConfigurationError("RSS feed URL is not configured")

        response = self.services.http.get(feed_url, context="RSS Feed")
        if not response.success:
            raise TransientSourceError(response.error or f"Could not fetch {feed_url}")

        feed = feedparser.parse(response.text)
        if not feed.entries:
            if feed.bozo:
                raise ContentValidationError(f"Could not parse feed {feed_url}: {feed.get('bozo_exception')}")
            return {"processed_items": []}

        cutoff = timeframe_cutoff(handler_settings.get("timeframe_limit"))
        site_name = feed.feed.get("title") or feed_url

        for entry in feed.entries:
            guid = entry.get("id") or entry.get("link")
            if not guid:
                continue
            published = _published(entry)
            if cutoff is not None and published is not None and published < cutoff:
                continue
            if self.is_processed(handler_settings, guid):
                continue

            title = entry.get("title") or ""
            body = _entry_body(entry)
            if not passes_keywords(f"{title} {strip_tags(body)}", handler_settings):
                continue
            if not self.claim(handler_settings, guid, job_id):
                continue

            link = entry.get("link") or ""
            image_url = _image_url(entry)
            self.store_engine_data(job_id, source_url=link, image_url=image_url)
            return {
                "processed_items": [
                    {
                        "data": {"title": title, "content": body},
                        "metadata": {
                            "source_type": self.slug,
                            "item_identifier_to_log": guid,
                            "original_id": guid,
                            "source_url": link,
                            "original_title": title,
                            "original_date_gmt": published.isoformat() if published else None,
                            "author": entry.get("author"),
                            "categories": [tag.get("term") for tag in entry.get("tags", []) if tag.get("term")],
                            "feed_url": feed_url,
                            "site_name": site_name,
                        },
                    }
                ]
            }
        return {"processed_items": []}


def _published(entry: Any) -> datetime | None:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return None
    return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc).replace(tzinfo=None)


def _entry_body(entry: Any) -> str:
    content = entry.get("content") or []
    if content and content[0].get("value"):
        return content[0]["value"]
    return entry.get("summary") or entry.get("description") or ""


def _image_url(entry: Any) -> str | None:
    for enclosure in entry.get("enclosures", []):
        if enclosure.get("type") in _IMAGE_TYPES and enclosure.get("href"):
            return enclosure["href"]
    for media in entry.get("media_content", []) + entry.get("media_thumbnail", []):
        if media.get("url"):
            return media["url"]
    return None


def register(registry: HandlerRegistry, services: Services) -> None:
    register_handler(registry, RssFetch(services))
