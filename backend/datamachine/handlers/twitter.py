"""Twitter / X publish handler."""

from __future__ import annotations

from typing import Any

from ..engine.errors import CredentialsMissingError
from ..engine.registry import HandlerRegistry
from ..engine.services import Services
from .base import PublishHandler, register_handler

TWEETS_URL = "https://api.twitter.com/2/tweets"
MAX_CHARS = 280
# Every URL is wrapped by t.co and counts as 23 characters, plus the separating space.
LINK_LENGTH = 24
ELLIPSIS = "…"


def format_tweet(title: str, body: str, link: str = "") -> str:
    text = f"{title}: {body}" if title else body
    suffix = f" {link}" if link else ""
    available = MAX_CHARS - (LINK_LENGTH if link else 0)
    if len(text) > available:
        text = text[: available - len(ELLIPSIS)] + ELLIPSIS
    return (text + suffix).strip()


class TwitterPublish(PublishHandler):
    slug = "twitter"
    label = "Post to Twitter / X"
    auth_provider = "twitter"
    settings_schema = {
        "link_handling": {"type": "select", "default": "append", "options": ["append", "reply", "none"]},
    }

    def handle_output(self, output) -> dict[str, Any]:
        if not output.body.strip():
            return {"success": False, "error": "Tweet requires content"}

        auth = self.get_auth()
        if auth is None:
            raise CredentialsMissingError("Twitter authentication is not configured")
        signer = auth.signer()

        link_handling = output.settings.get("link_handling", "append")
        source_url = output.source_url or ""
        text = format_tweet(output.title, output.body, source_url if link_handling == "append" else "")

        tweet_id, error = self._post(signer, {"text": text})
        if tweet_id is None:
            return {"success": False, "error": f"Twitter API error: {error}"}

        screen_name = auth.get_account().get("screen_name") or "twitter"
        result: dict[str, Any] = {
            "success": True,
            "post_id": tweet_id,
            "post_url": f"https://twitter.com/{screen_name}/status/{tweet_id}",
            "content": text,
        }
        if link_handling == "reply" and source_url:
            reply_id, reply_error = self._post(
                signer, {"text": source_url, "reply": {"in_reply_to_tweet_id": tweet_id}}
            )
            if reply_id is None:
                # The main tweet is live; a failed link reply does not fail the publish.
                self.logger.warning("Tweet %s posted but link reply failed: %s", tweet_id, reply_error)
            else:
                result["reply_post_id"] = reply_id
                result["reply_post_url"] = f"https://twitter.com/{screen_name}/status/{reply_id}"
        return result

    def _post(self, signer, payload: dict[str, Any]) -> tuple[str | None, str | None]:
        response = self.services.http.post(TWEETS_URL, json_body=payload, auth=signer, context="Twitter API")
        data = response.json() if response.success else None
        tweet_id = ((data or {}).get("data") or {}).get("id")
        if not tweet_id:
            return None, response.error or "no tweet id returned"
        return str(tweet_id), None


def register(registry: HandlerRegistry, services: Services) -> None:
    register_handler(registry, TwitterPublish(services))
