"""Reddit subreddit fetch handler."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

from ..engine.errors import ConfigurationError, CredentialsMissingError, TransientSourceError
from ..engine.registry import HandlerRegistry
from ..engine.services import Services
from .base import FetchHandler, register_handler
from .filters import passes_keywords, timeframe_cutoff

API_BASE = "https://oauth.reddit.com"
SORTS = ("hot", "new", "top", "rising", "controversial")
MAX_PAGES = 5
BATCH_SIZE = 100
# Reddit's own ``t`` parameter for sorts that support a time window.
_TIME_PARAMS = {"24_hours": "day", "72_hours": "week", "7_days": "week", "30_days": "month"}
_SUBREDDIT_RE = re.compile(r"^[A-Za-z0-9_]+$")
_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp")


class RedditFetch(FetchHandler):
    slug = "reddit"
    label = "Reddit"
    description = "Fetch one unprocessed post from a subreddit listing."
    auth_provider = "reddit"
    settings_schema = {
        "subreddit": {"type": "text", "required": True},
        "sort_by": {"type": "select", "default": "hot", "options": list(SORTS)},
        "timeframe_limit": {"type": "select", "default": "all_time"},
        "min_upvotes": {"type": "number", "default": 0},
        "min_comment_count": {"type": "number", "default": 0},
        "search": {"type": "text"},
        "exclude_keywords": {"type": "text"},
    }

    def get_fetch_data(self, pipeline_id, handler_settings, flow_id, job_id=None):
        subreddit = (handler_settings.get("subreddit") or "").strip()
        if not subreddit:
            raise ConfigurationError("Subreddit is not configured")
        if not _SUBREDDIT_RE.match(subreddit):
            raise ConfigurationError(f"Invalid subreddit name {subreddit!r}")
        sort = handler_settings.get("sort_by") or "hot"
        if sort not in SORTS:
            raise ConfigurationError(f"Invalid sort {sort!r}")

        auth = self.get_auth()
        if auth is None:
            raise CredentialsMissingError("Reddit auth provider is not available")
        headers = auth.api_headers()

        timeframe = handler_settings.get("timeframe_limit") or "all_time"
        cutoff = timeframe_cutoff(timeframe)
        min_upvotes = int(handler_settings.get("min_upvotes") or 0)
        min_comments = int(handler_settings.get("min_comment_count") or 0)

        params: dict[str, Any] = {"limit": BATCH_SIZE}
        if sort in ("top", "controversial") and timeframe in _TIME_PARAMS:
            params["t"] = _TIME_PARAMS[timeframe]

        after = None
        for page in range(1, MAX_PAGES + 1):
            if after:
                params["after"] = after
            response = self.services.http.get(
                f"{API_BASE}/r/{subreddit}/{sort}.json",
                params=params,
                headers=headers,
                context="Reddit API",
            )
            data = response.json() if response.success else None
            if not isinstance(data, dict):
                if page == 1:
                    raise TransientSourceError(response.error or "Invalid response from Reddit API")
                break

            listing = data.get("data") or {}
            children = listing.get("children") or []
            if not children:
                break

            for wrapper in children:
                item = wrapper.get("data") or {}
                item_id = item.get("id")
                if not item_id or not wrapper.get("kind"):
                    continue
                if item.get("stickied") or item.get("pinned"):
                    continue
                created = datetime.fromtimestamp(float(item.get("created_utc") or 0), tz=timezone.utc).replace(tzinfo=None)
                if cutoff is not None and created < cutoff:
                    continue
                if min_upvotes and int(item.get("score") or 0) < min_upvotes:
                    continue
                if min_comments and int(item.get("num_comments") or 0) < min_comments:
                    continue
                if self.is_processed(handler_settings, item_id):
                    continue
                title = item.get("title") or ""
                if not passes_keywords(f"{title} {item.get('selftext') or ''}", handler_settings):
                    continue
                if not self.claim(handler_settings, item_id, job_id):
                    continue
                return self._emit(item, created, job_id)

            after = listing.get("after")
            if not after:
                break

        return {"processed_items": []}

    def _emit(self, item: dict[str, Any], created: datetime, job_id: int | None) -> dict[str, Any]:
        source_url = f"https://www.reddit.com{item.get('permalink') or ''}"
        link = item.get("url") or ""
        image_url = link if link.lower().endswith(_IMAGE_EXTENSIONS) or item.get("post_hint") == "image" else None
        self.store_engine_data(job_id, source_url=source_url, image_url=image_url)

        body = item.get("selftext") or ""
        if not body and link and link != source_url:
            body = link
        return {
            "processed_items": [
                {
                    "data": {"title": item.get("title") or "", "content": body},
                    "metadata": {
                        "source_type": self.slug,
                        "item_identifier_to_log": item["id"],
                        "original_id": item["id"],
                        "source_url": source_url,
                        "original_title": item.get("title") or "",
                        "original_date_gmt": created.isoformat(),
                        "subreddit": item.get("subreddit"),
                        "author": item.get("author"),
                        "upvotes": item.get("score"),
                        "comment_count": item.get("num_comments"),
                        "is_self": bool(item.get("is_self")),
                    },
                }
            ]
        }


def register(registry: HandlerRegistry, services: Services) -> None:
    register_handler(registry, RedditFetch(services))
