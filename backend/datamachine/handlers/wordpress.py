"""Handlers that read and write the local post store."""

from __future__ import annotations

import random
from typing import Any
from urllib.parse import parse_qs, urlparse

from sqlalchemy import or_

from ..engine.errors import ConfigurationError
from ..engine.registry import HandlerRegistry
from ..engine.services import Services
from ..extensions import db
from ..models.post import Post
from .base import FetchHandler, PublishHandler, UpdateHandler, register_handler
from .filters import passes_keywords, strip_tags, timeframe_cutoff

BATCH_SIZE = 10
POST_STATUSES = ("draft", "publish", "pending", "private")


def permalink(site_url: str, post_id: int) -> str:
    return f"{site_url.rstrip('/')}/?p={post_id}"


def post_id_from_url(url: str | None) -> int | None:
    """Resolve a local permalink (``/?p=<id>`` or ``/posts/<id>``) to a post id."""

    if not url:
        return None
    parsed = urlparse(url)
    value = (parse_qs(parsed.query).get("p") or [""])[0]
    if value.isdigit():
        return int(value)
    segments = [segment for segment in parsed.path.split("/") if segment]
    if len(segments) >= 2 and segments[-2] == "posts" and segments[-1].isdigit():
        return int(segments[-1])
    return None


class WordPressLocalFetch(FetchHandler):
    slug = "wordpress_local"
    label = "Local WordPress Posts"
    description = "Fetch one post from the local site that this flow has not handled yet."
    settings_schema = {
        "source_url": {"type": "url", "label": "Specific post URL"},
        "post_type": {"type": "text", "default": "post"},
        "post_status": {"type": "select", "default": "publish", "options": list(POST_STATUSES)},
        "randomize_selection": {"type": "checkbox", "default": False},
        "timeframe_limit": {"type": "select", "default": "all_time"},
        "search": {"type": "text", "label": "Search terms (comma separated)"},
        "exclude_keywords": {"type": "text"},
    }

    def get_fetch_data(self, pipeline_id, handler_settings, flow_id, job_id=None):
        source_url = (handler_settings.get("source_url") or "").strip()
        if source_url:
            post_id = post_id_from_url(source_url)
            if post_id is None:
                self.logger.warning("Could not extract post id from %s", source_url)
                return {"processed_items": []}
            post = db.session.get(Post, post_id)
            if post is None or post.status == "trash":
                return {"processed_items": []}
            if self.is_processed(handler_settings, post.id):
                return {"processed_items": []}
            return self._emit(post, handler_settings, job_id)

        for post in self._candidates(handler_settings):
            if self.is_processed(handler_settings, post.id):
                continue
            text = f"{post.title} {strip_tags(post.content)} {strip_tags(post.excerpt)}"
            if not passes_keywords(text, handler_settings):
                continue
            result = self._emit(post, handler_settings, job_id)
            if result["processed_items"]:
                return result
        return {"processed_items": []}

    def _candidates(self, settings: dict[str, Any]):
        query = Post.query.filter(
            Post.post_type == (settings.get("post_type") or "post"),
            Post.status == (settings.get("post_status") or "publish"),
        )
        cutoff = timeframe_cutoff(settings.get("timeframe_limit"))
        if cutoff is not None:
            query = query.filter(Post.date_gmt >= cutoff)

        search = (settings.get("search") or "").strip()
        if search and "," not in search:
            pattern = f"%{search}%"
            query = query.filter(or_(Post.title.ilike(pattern), Post.content.ilike(pattern)))

        if settings.get("randomize_selection"):
            posts = query.all()
            random.shuffle(posts)
            yield from posts
            return

        query = query.order_by(Post.modified_gmt.desc(), Post.id.desc())
        offset = 0
        while True:
            batch = query.offset(offset).limit(BATCH_SIZE).all()
            if not batch:
                return
            yield from batch
            offset += BATCH_SIZE

    def _emit(self, post: Post, settings: dict[str, Any], job_id: int | None) -> dict[str, Any]:
        if not self.claim(settings, post.id, job_id):
            return {"processed_items": []}

        title = post.title or "N/A"
        url = permalink(self.config.get("SITE_URL", ""), post.id)
        self.store_engine_data(job_id, source_url=url, image_url=post.image_url)
        return {
            "processed_items": [
                {
                    "data": {
                        "title": title,
                        "content": post.content or "",
                        "excerpt": post.excerpt or "",
                    },
                    "metadata": {
                        "source_type": self.slug,
                        "item_identifier_to_log": post.id,
                        "original_id": post.id,
                        "original_title": title,
                        "original_date_gmt": post.date_gmt.isoformat() if post.date_gmt else None,
                        "post_type": post.post_type,
                        "post_status": post.status,
                        "site_name": self.config.get("SITE_NAME", "Data Machine"),
                        "source_url": url,
                    },
                }
            ]
        }


class WordPressPublish(PublishHandler):
    slug = "wordpress_publish"
    label = "WordPress"
    description = "Create a post on the local site."
    settings_schema = {
        "post_type": {"type": "text", "default": "post"},
        "post_status": {"type": "select", "default": "draft", "options": list(POST_STATUSES)},
        "include_source": {"type": "checkbox", "default": True},
        "enable_images": {"type": "checkbox", "default": True},
        "taxonomies": {"type": "map", "label": "Taxonomy: skip, ai_decides or a fixed term"},
    }

    def handle_output(self, output) -> dict[str, Any]:
        title = (output.title or "").strip()
        body = output.body or ""
        if not title or not body.strip():
            return {"success": False, "error": "Title and content are required"}

        settings = output.settings
        status = settings.get("post_status") or "draft"
        if status not in POST_STATUSES:
            raise ConfigurationError(f"Unsupported post status {status!r}")

        if settings.get("include_source", True) and output.source_url:
            body = f"{body}\n\n<p>Source: <a href=\"{output.source_url}\">{output.source_url}</a></p>"

        post = Post(
            title=title,
            content=body,
            excerpt=output.content.get("summary") or None,
            status=status,
            post_type=settings.get("post_type") or "post",
            source_url=output.source_url,
            image_url=output.image_url if settings.get("enable_images", True) else None,
            taxonomies=self._taxonomies(settings, output),
        )
        db.session.add(post)
        db.session.commit()

        post_url = permalink(self.config.get("SITE_URL", ""), post.id)
        self.logger.info("Created post %s", post.id)
        return {
            "success": True,
            "post_id": post.id,
            "post_url": post_url,
            "post_title": post.title,
            "taxonomies": post.taxonomies,
        }

    @staticmethod
    def _taxonomies(settings: dict[str, Any], output) -> dict[str, list[str]]:
        assigned: dict[str, list[str]] = {}
        for taxonomy, selection in (settings.get("taxonomies") or {}).items():
            if not selection or selection == "skip":
                continue
            if selection == "ai_decides":
                # AI output arrives as metadata keyed by taxonomy name, tags also in content.
                value = output.metadata.get(taxonomy)
                if value is None and taxonomy in ("post_tag", "tags"):
                    value = output.content.get("tags")
            else:
                value = selection
            if isinstance(value, str):
                value = [part.strip() for part in value.split(",")]
            terms = [str(term).strip() for term in value or [] if str(term).strip()]
            if terms:
                assigned[taxonomy] = terms
        return assigned


class WordPressUpdate(UpdateHandler):
    slug = "wordpress_update"
    label = "WordPress Update"
    description = "Modify the local post the item was fetched from."
    settings_schema = {
        "allow_title_updates": {"type": "checkbox", "default": True},
        "allow_content_updates": {"type": "checkbox", "default": True},
    }

    def handle_tool_call(self, parameters, tool_def=None):
        tool_name = (tool_def or {}).get("name", self.slug)
        settings = (tool_def or {}).get("handler_config") or {}

        post_id = parameters.get("original_id") or post_id_from_url(parameters.get("source_url"))
        if not post_id:
            return {"success": False, "error": "No target post could be identified", "tool_name": tool_name}
        post = db.session.get(Post, int(post_id))
        if post is None or post.status == "trash":
            return {"success": False, "error": f"Post {post_id} not found", "tool_name": tool_name}

        modified: list[str] = []
        content = post.content or ""
        for update in parameters.get("updates") or []:
            find = update.get("find") or ""
            if find and find in content:
                content = content.replace(find, update.get("replace") or "")
                modified.append("content")

        new_content = parameters.get("content")
        if settings.get("allow_content_updates", True) and new_content and new_content != content:
            content = new_content
            modified.append("content")
        if content != post.content:
            post.content = content
        if settings.get("allow_title_updates", True) and parameters.get("title"):
            if parameters["title"] != post.title:
                post.title = parameters["title"]
                modified.append("title")

        if not modified:
            return {"success": False, "error": "No changes to apply", "tool_name": tool_name}

        db.session.commit()
        return {
            "success": True,
            "tool_name": tool_name,
            "data": {
                "post_id": post.id,
                "post_url": permalink(self.config.get("SITE_URL", ""), post.id),
                "modified_fields": sorted(set(modified)),
            },
        }


def register(registry: HandlerRegistry, services: Services) -> None:
    register_handler(registry, WordPressLocalFetch(services))
    register_handler(registry, WordPressPublish(services))
    register_handler(registry, WordPressUpdate(services))
