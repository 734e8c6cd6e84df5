"""Threads publish handler."""

from __future__ import annotations

from typing import Any

from ..engine.errors import AuthenticationError, CredentialsMissingError
from ..engine.registry import HandlerRegistry
from ..engine.services import Services
from .base import PublishHandler, register_handler

API_BASE = "https://graph.threads.net/v1.0"
MAX_CHARS = 500


class ThreadsPublish(PublishHandler):
    slug = "threads"
    label = "Post to Threads"
    auth_provider = "threads"
    settings_schema = {
        "include_images": {"type": "checkbox", "default": True},
        "link_handling": {"type": "select", "default": "append", "options": ["append", "none"]},
    }

    def handle_output(self, output) -> dict[str, Any]:
        if not output.body.strip():
            return {"success": False, "error": "Threads post requires content"}

        auth = self.get_auth()
        if auth is None:
            raise CredentialsMissingError("Threads authentication is not configured")
        access_token = auth.get_access_token()
        page_id = auth.get_account().get("page_id")
        if not page_id:
            raise AuthenticationError("Threads profile ID missing, re-authenticate the account")

        text = self._format(output)
        container: dict[str, Any] = {"media_type": "TEXT", "text": text}
        if output.settings.get("include_images", True) and output.image_url:
            container = {"media_type": "IMAGE", "image_url": output.image_url, "text": text}

        created = self.services.http.post(
            f"{API_BASE}/{page_id}/threads",
            data=container,
            headers={"Authorization": f"Bearer {access_token}"},
            context="Threads API",
        )
        creation_id = (created.json() or {}).get("id") if created.success else None
        if not creation_id:
            return {"success": False, "error": f"Failed to create media container: {created.error}"}

        published = self.services.http.post(
            f"{API_BASE}/{page_id}/threads_publish",
            data={"creation_id": creation_id},
            headers={"Authorization": f"Bearer {access_token}"},
            context="Threads API",
        )
        media_id = (published.json() or {}).get("id") if published.success else None
        if not media_id:
            return {"success": False, "error": f"Failed to publish media container: {published.error}"}

        return {
            "success": True,
            "post_id": media_id,
            "post_url": f"https://www.threads.net/t/{media_id}",
        }

    @staticmethod
    def _format(output) -> str:
        text = f"{output.title}\n\n{output.body}" if output.title else output.body
        link = ""
        if output.settings.get("link_handling", "append") == "append" and output.source_url:
            link = f"\n\n{output.source_url}"
        available = MAX_CHARS - len(link)
        if len(text) > available:
            text = text[: available - 1] + "…"
        return (text + link).strip()


def register(registry: HandlerRegistry, services: Services) -> None:
    register_handler(registry, ThreadsPublish(services))
