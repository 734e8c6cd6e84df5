"""Bluesky publish handler."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

from ..engine.errors import CredentialsMissingError
from ..engine.registry import HandlerRegistry
from ..engine.services import Services
from .base import PublishHandler, register_handler

MAX_CHARS = 300
ELLIPSIS = "…"
_URL_RE = re.compile(r"https?://\S+", re.IGNORECASE)


def format_post_text(title: str, body: str, link: str = "") -> str:
    """Fit ``title: body`` plus an optional link into the post length limit."""

    text = f"{title}: {body}" if title else body
    suffix = f"\n\n{link}" if link else ""
    available = MAX_CHARS - len(suffix)
    if available < len(ELLIPSIS):
        return suffix.strip()[:MAX_CHARS]
    if len(text) > available:
        text = text[: available - len(ELLIPSIS)] + ELLIPSIS
    return (text + suffix).strip()


def link_facets(text: str) -> list[dict[str, Any]]:
    """Rich text link facets; offsets are UTF-8 byte positions."""

    facets = []
    for match in _URL_RE.finditer(text):
        start = len(text[: match.start()].encode("utf-8"))
        end = start + len(match.group(0).encode("utf-8"))
        facets.append(
            {
                "index": {"byteStart": start, "byteEnd": end},
                "features": [{"$type": "app.bsky.richtext.facet#link", "uri": match.group(0)}],
            }
        )
    return facets


class BlueskyPublish(PublishHandler):
    slug = "bluesky"
    label = "Post to Bluesky"
    auth_provider = "bluesky"
    settings_schema = {
        "link_handling": {"type": "select", "default": "append", "options": ["append", "none"]},
    }

    def handle_output(self, output) -> dict[str, Any]:
        if not output.body.strip():
            return {"success": False, "error": "Bluesky post requires content"}

        auth = self.get_auth()
        if auth is None:
            raise CredentialsMissingError("Bluesky authentication is not configured")
        session = auth.get_session()

        link = ""
        if output.settings.get("link_handling", "append") == "append" and output.source_url:
            link = output.source_url
        text = format_post_text(output.title, output.body, link)
        if not text:
            return {"success": False, "error": "Formatted post content is empty"}

        record: dict[str, Any] = {
            "$type": "app.bsky.feed.post",
            "text": text,
            "createdAt": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "langs": ["en"],
        }
        facets = link_facets(text)
        if facets:
            record["facets"] = facets

        response = self.services.http.post(
            f"{session['pds_url'].rstrip('/')}/xrpc/com.atproto.repo.createRecord",
            json_body={"repo": session["did"], "collection": "app.bsky.feed.post", "record": record},
            headers={"Authorization": f"Bearer {session['access_token']}"},
            context="Bluesky API",
        )
        data = response.json()
        if not response.success or not isinstance(data, dict):
            return {"success": False, "error": f"Bluesky API error: {response.error}"}

        uri = data.get("uri") or ""
        return {
            "success": True,
            "post_id": uri,
            "post_url": _post_url(uri, session.get("handle") or ""),
            "content": text,
        }


def _post_url(uri: str, handle: str) -> str:
    # at://did/app.bsky.feed.post/<rkey>
    rkey = uri.rsplit("/", 1)[-1] if uri else ""
    if not rkey or not handle:
        return "https://bsky.app/"
    return f"https://bsky.app/profile/{handle}/post/{rkey}"


def register(registry: HandlerRegistry, services: Services) -> None:
    register_handler(registry, BlueskyPublish(services))
