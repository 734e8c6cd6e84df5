"""Tests for the built-in fetch and publish handlers."""

from __future__ import annotations

import dataclasses
import time
from datetime import datetime, timedelta

import pytest

from backend.datamachine.engine.errors import (
    ConfigurationError,
    ContentValidationError,
    TransientSourceError,
)
from backend.datamachine.handlers.bluesky import BlueskyPublish, format_post_text, link_facets
from backend.datamachine.handlers.filters import keyword_match, passes_keywords, strip_tags, timeframe_cutoff
from backend.datamachine.handlers.google_sheets import GoogleSheetsPublish
from backend.datamachine.handlers.reddit import RedditFetch
from backend.datamachine.handlers.rss import RssFetch
from backend.datamachine.handlers.twitter import TWEETS_URL, TwitterPublish, format_tweet
from backend.datamachine.steps.output import OutputContext

FEED_URL = "http://news.test/feed.xml"
FEED = """<?xml version="1.0" encoding="utf-8"?>
<rss version="2.0"><channel>
  <title>Test News</title>
  <item>
    <title>First story</title>
    <link>http://news.test/1</link>
    <guid>guid-1</guid>
    <description>&lt;p&gt;Hello world&lt;/p&gt;</description>
    <enclosure url="http://news.test/1.jpg" type="image/jpeg" length="10"/>
    <category>local</category>
  </item>
  <item>
    <title>Second story</title>
    <link>http://news.test/2</link>
    <guid>guid-2</guid>
    <description>Another one</description>
  </item>
</channel></rss>
"""


def _output(**overrides) -> OutputContext:
    values = {
        "content": {"title": "Title", "body": "Body"},
        "settings": {},
        "engine_data": {"source_url": "http://source.test/item"},
        "metadata": {"source_type": "rss"},
        "job_id": 5,
        "flow_step_id": "1_1",
    }
    values.update(overrides)
    return OutputContext(**values)


def test_timeframe_cutoff():
    now = datetime(2030, 1, 10, 12, 0)
    assert timeframe_cutoff("24_hours", now) == now - timedelta(hours=24)
    assert timeframe_cutoff("7_days", now) == now - timedelta(days=7)
    assert timeframe_cutoff("all_time", now) is None
    assert timeframe_cutoff(None, now) is None


def test_keyword_filters():
    assert keyword_match("Local Election Results", "")
    assert keyword_match("Local Election Results", "sports, election")
    assert not keyword_match("Local Election Results", "sports")
    assert passes_keywords("Local news", {"search": "news", "exclude_keywords": "weather"})
    assert not passes_keywords("Local news and weather", {"search": "news", "exclude_keywords": "weather"})


def test_strip_tags_keeps_text_and_entities():
    text = strip_tags("<p>Fish &amp; <b>chips</b></p>tonight")

    assert " ".join(text.split()) == "Fish & chips tonight"
    assert strip_tags(None) == ""
    assert keyword_match(strip_tags("<a href=\"/weather\">Sunny</a>"), "weather") is False


@pytest.fixture()
def rss(services, fake_http):
    return RssFetch(dataclasses.replace(services, http=fake_http))


def test_rss_returns_newest_unprocessed_entry(rss, fake_http, services):
    fake_http.add("GET", FEED_URL, text=FEED)
    settings = {"feed_url": FEED_URL, "flow_step_id": "2_9"}

    first = rss.get_fetch_data(1, settings, 9)["processed_items"][0]
    assert first["data"]["title"] == "First story"
    assert first["data"]["content"] == "<p>Hello world</p>"
    assert first["metadata"]["original_id"] == "guid-1"
    assert first["metadata"]["site_name"] == "Test News"
    assert first["metadata"]["categories"] == ["local"]

    second = rss.get_fetch_data(1, settings, 9)["processed_items"][0]
    assert second["data"]["title"] == "Second story"

    assert rss.get_fetch_data(1, settings, 9) == {"processed_items": []}
    assert services.tracker.is_item_processed("2_9", "rss", "guid-2")


def test_rss_stores_engine_data_for_the_job(rss, fake_http, services, make_flow, orchestrator):
    fake_http.add("GET", FEED_URL, text=FEED)
    job = orchestrator.create_job(make_flow([("fetch", "rss", {}), ("publish", "wordpress_publish", {})]))

    rss.get_fetch_data(1, {"feed_url": FEED_URL}, job.flow_id, job_id=job.id)

    assert services.engine_data.get(job.id) == {
        "source_url": "http://news.test/1",
        "image_url": "http://news.test/1.jpg",
    }


def test_rss_keyword_search(rss, fake_http):
    fake_http.add("GET", FEED_URL, text=FEED)

    result = rss.get_fetch_data(1, {"feed_url": FEED_URL, "search": "another"}, 9)

    assert result["processed_items"][0]["data"]["title"] == "Second story"


def test_rss_error_classification(rss, fake_http):
    with pytest.raises(ConfigurationError):
        rss.get_fetch_data(1, {}, 9)
    with pytest.raises(TransientSourceError):
        rss.get_fetch_data(1, {"feed_url": FEED_URL}, 9)

    fake_http.add("GET", FEED_URL, text="<<<not xml>>>")
    with pytest.raises(ContentValidationError):
        rss.get_fetch_data(1, {"feed_url": FEED_URL}, 9)


class FakeRedditAuth:
    def api_headers(self):
        return {"Authorization": "Bearer token", "User-Agent": "test"}


def _reddit_post(post_id: str, **fields):
    data = {
        "id": post_id,
        "title": f"Post {post_id}",
        "selftext": "",
        "permalink": f"/r/python/comments/{post_id}/",
        "url": f"https://i.test/{post_id}.png",
        "created_utc": time.time() - 60,
        "score": 50,
        "num_comments": 3,
        "subreddit": "python",
        "author": "someone",
    }
    data.update(fields)
    return {"kind": "t3", "data": data}


def test_reddit_skips_pinned_and_low_score_posts(services, fake_http):
    scoped = dataclasses.replace(services, http=fake_http, auth={"reddit": FakeRedditAuth()})
    handler = RedditFetch(scoped)
    fake_http.add(
        "GET",
        "https://oauth.reddit.com/r/python/hot.json",
        json_body={
            "data": {
                "children": [
                    _reddit_post("a1", stickied=True),
                    _reddit_post("a2", score=2),
                    _reddit_post("a3", selftext="Body text"),
                ],
                "after": None,
            }
        },
    )
    settings = {"subreddit": "python", "min_upvotes": 10, "flow_step_id": "1_4"}

    item = handler.get_fetch_data(1, settings, 4)["processed_items"][0]

    assert item["data"] == {"title": "Post a3", "content": "Body text"}
    assert item["metadata"]["source_url"] == "https://www.reddit.com/r/python/comments/a3/"
    assert fake_http.calls[0][2]["headers"]["Authorization"] == "Bearer token"
    assert handler.get_fetch_data(1, settings, 4) == {"processed_items": []}


def test_reddit_rejects_invalid_subreddit(services):
    handler = RedditFetch(dataclasses.replace(services, auth={"reddit": FakeRedditAuth()}))
    with pytest.raises(ConfigurationError):
        handler.get_fetch_data(1, {"subreddit": "not valid!"}, 4)


def test_bluesky_text_fits_limit_with_link():
    link = "http://l.test"
    text = format_post_text("Title", "x" * 400, link)

    assert len(text) == 300
    assert text.endswith("\n\n" + link)
    assert "…" in text
    assert format_post_text("", "short") == "short"


def test_bluesky_facets_use_byte_offsets():
    facets = link_facets("Café: see https://x.test/a")

    assert facets == [
        {
            "index": {"byteStart": 11, "byteEnd": 27},
            "features": [{"$type": "app.bsky.richtext.facet#link", "uri": "https://x.test/a"}],
        }
    ]


class FakeBlueskyAuth:
    def get_session(self):
        return {"access_token": "jwt", "did": "did:plc:1", "handle": "me.test", "pds_url": "https://pds.test"}


def test_bluesky_publish_creates_record(services, fake_http):
    handler = BlueskyPublish(dataclasses.replace(services, http=fake_http, auth={"bluesky": FakeBlueskyAuth()}))
    fake_http.add(
        "POST",
        "https://pds.test/xrpc/com.atproto.repo.createRecord",
        json_body={"uri": "at://did:plc:1/app.bsky.feed.post/abc"},
    )

    result = handler.handle_output(_output())

    assert result["success"] is True
    assert result["post_url"] == "https://bsky.app/profile/me.test/post/abc"
    payload = fake_http.calls[0][2]["json_body"]
    assert payload["repo"] == "did:plc:1"
    assert payload["record"]["text"] == "Title: Body\n\nhttp://source.test/item"
    assert payload["record"]["facets"][0]["features"][0]["uri"] == "http://source.test/item"


def test_bluesky_rejects_empty_content(services):
    result = BlueskyPublish(services).handle_output(_output(content={"title": "T", "body": "  "}))
    assert result["success"] is False


def test_tweet_reserves_room_for_the_wrapped_link():
    link = "http://source.test/a-rather-long-path-that-t-co-shortens"
    text = format_tweet("", "x" * 400, link)

    assert text == "x" * 255 + "…" + " " + link
    assert format_tweet("Title", "Body") == "Title: Body"


class FakeTwitterAuth:
    def signer(self):
        return "signed"

    def get_account(self):
        return {"screen_name": "me"}


def test_twitter_reply_mode_posts_link_as_reply(services, fake_http):
    handler = TwitterPublish(dataclasses.replace(services, http=fake_http, auth={"twitter": FakeTwitterAuth()}))
    fake_http.add("POST", TWEETS_URL, status=201, json_body={"data": {"id": "100"}})
    fake_http.add("POST", TWEETS_URL, status=201, json_body={"data": {"id": "101"}})

    result = handler.handle_output(_output(settings={"link_handling": "reply"}))

    assert result["success"] is True
    assert result["post_url"] == "https://twitter.com/me/status/100"
    assert result["reply_post_id"] == "101"
    tweet, reply = (call[2] for call in fake_http.calls)
    assert tweet["json_body"] == {"text": "Title: Body"}
    assert tweet["auth"] == "signed"
    assert reply["json_body"] == {"text": "http://source.test/item", "reply": {"in_reply_to_tweet_id": "100"}}


def test_twitter_reports_rejected_tweet(services, fake_http):
    handler = TwitterPublish(dataclasses.replace(services, http=fake_http, auth={"twitter": FakeTwitterAuth()}))
    fake_http.add("POST", TWEETS_URL, status=403, json_body={"detail": "duplicate content"})

    result = handler.handle_output(_output())

    assert result["success"] is False
    assert result["error"] == "Twitter API error: HTTP 403"
    assert len(fake_http.calls) == 1


def test_google_sheets_row_follows_columns():
    output = _output(metadata={"source_type": "rss", "custom": "extra"})

    row = GoogleSheetsPublish.build_row(
        output, ["title", "content", "source_url", "source_type", "job_id", "custom", "missing"]
    )

    assert row == ["Title", "Body", "http://source.test/item", "rss", 5, "extra", ""]


def test_google_sheets_requires_spreadsheet_id(services):
    with pytest.raises(ConfigurationError):
        GoogleSheetsPublish(services).handle_output(_output())
