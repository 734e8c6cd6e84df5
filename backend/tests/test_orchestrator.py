"""Tests for job execution across fetch, AI, publish and update steps."""

from __future__ import annotations

import dataclasses
import threading
import time
from datetime import datetime, timedelta

import pytest

from backend.datamachine.engine.errors import ConfigurationError, TransientSourceError
from backend.datamachine.engine.orchestrator import JobOrchestrator
from backend.datamachine.engine.packet import make_entry
from backend.datamachine.engine.registry import HandlerRegistry
from backend.datamachine.engine.status import JobStatus
from backend.datamachine.extensions import db
from backend.datamachine.handlers.base import FetchHandler
from backend.datamachine.models import Job, Post, ProcessedItem


class StaticFetch:
    def __init__(self, result=None, error: Exception | None = None) -> None:
        self.result = result if result is not None else {"title": "Item", "body": "Body", "metadata": {"source_url": "http://src"}}
        self.error = error
        self.calls = 0

    def get_fetch_data(self, pipeline_id, handler_settings, flow_id, job_id=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


class RecordingPublish:
    def __init__(self, name: str, fail: bool = False) -> None:
        self.name = name
        self.fail = fail
        self.outputs = []

    def handle_output(self, output):
        self.outputs.append(output)
        if self.fail:
            raise RuntimeError(f"{self.name} is down")
        return {"success": True, "post_id": f"{self.name}-1"}


class ScriptedProcessor:
    def __init__(self, result) -> None:
        self.result = result
        self.received = None

    def process(self, entries, settings, context):
        self.received = entries
        return self.result


def _orchestrator(services, **handlers) -> JobOrchestrator:
    registry = HandlerRegistry()
    for slug, (handler_type, handler) in handlers.items():
        registry.register(slug, handler_type, handler)
    registry.freeze()
    return JobOrchestrator(registry, services)


def _run(orchestrator: JobOrchestrator, flow) -> Job:
    job = orchestrator.create_job(flow)
    orchestrator.execute_job(job.id)
    db.session.expire_all()
    return db.session.get(Job, job.id)


def test_local_posts_are_republished_one_per_job(orchestrator, make_flow):
    now = datetime.utcnow()
    for offset, title in enumerate(("Newest", "Middle", "Oldest")):
        db.session.add(
            Post(title=title, content=f"<p>{title} body</p>", status="publish", modified_gmt=now - timedelta(hours=offset))
        )
    db.session.commit()

    flow = make_flow(
        [
            ("fetch", "wordpress_local", {"wordpress_local": {"post_status": "publish"}}),
            ("publish", "wordpress_publish", {"wordpress_publish": {"post_status": "draft"}}),
        ]
    )

    job = _run(orchestrator, flow)
    assert job.status == JobStatus.COMPLETED
    assert job.engine_data["source_url"].startswith("http://site.test/?p=")

    fetch_step, publish_step = job.step_data
    assert fetch_step["status"] == "ok"
    assert len(fetch_step["entries"]) == 1
    assert [entry["type"] for entry in publish_step["entries"]] == ["publish", "fetch"]
    assert publish_step["entries"][1]["content"]["title"] == "Newest"

    draft = Post.query.filter_by(status="draft").one()
    assert draft.title == "Newest"
    assert job.engine_data["source_url"] in draft.content

    for _ in range(2):
        assert _run(orchestrator, flow).status == JobStatus.COMPLETED
    titles = [post.title for post in Post.query.filter_by(status="draft").order_by(Post.id)]
    assert titles == ["Newest", "Middle", "Oldest"]

    assert _run(orchestrator, flow).status == JobStatus.COMPLETED_NO_ITEMS
    assert Post.query.filter_by(status="draft").count() == 3


def test_publish_failure_is_isolated_between_handlers(services, make_flow):
    first, second, third = RecordingPublish("a"), RecordingPublish("b", fail=True), RecordingPublish("c")
    orchestrator = _orchestrator(
        services,
        source=("fetch", StaticFetch()),
        pub_a=("publish", first),
        pub_b=("publish", second),
        pub_c=("publish", third),
    )
    flow = make_flow([("fetch", "source", {}), ("publish", ["pub_a", "pub_b", "pub_c"], {})])

    job = _run(orchestrator, flow)

    assert job.status == JobStatus.COMPLETED
    details = job.step_data[-1]["details"]
    assert details["successful"] == ["pub_a", "pub_c"]
    assert details["failed"] == ["pub_b"]
    assert "b is down" in details["results"]["pub_b"]["error"]
    assert len(third.outputs) == 1
    assert third.outputs[0].title == "Item"

    publish_entry = job.step_data[-1]["entries"][0]
    assert publish_entry["metadata"]["failed_handlers"] == ["pub_b"]
    assert publish_entry["metadata"]["publish_success"] is True


def test_job_fails_when_every_publish_handler_fails(services, make_flow):
    orchestrator = _orchestrator(
        services,
        source=("fetch", StaticFetch()),
        pub_a=("publish", RecordingPublish("a", fail=True)),
    )
    flow = make_flow([("fetch", "source", {}), ("publish", "pub_a", {})])

    job = _run(orchestrator, flow)

    assert job.status == JobStatus.FAILED
    assert job.error["type"] == "OutputFailed"


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (ConfigurationError("missing url"), JobStatus.FAILED),
        (TransientSourceError("timed out"), JobStatus.COMPLETED_NO_ITEMS),
        (ValueError("unexpected"), JobStatus.COMPLETED_NO_ITEMS),
    ],
)
def test_fetch_errors_are_classified(services, make_flow, error, expected):
    publisher = RecordingPublish("a")
    orchestrator = _orchestrator(
        services,
        source=("fetch", StaticFetch(error=error)),
        pub_a=("publish", publisher),
    )
    flow = make_flow([("fetch", "source", {}), ("publish", "pub_a", {})])

    job = _run(orchestrator, flow)

    assert job.status == expected
    assert job.step_data[0]["error"]["message"] == str(error)
    assert publisher.outputs == []


def test_empty_fetch_completes_without_items(services, make_flow):
    orchestrator = _orchestrator(
        services,
        source=("fetch", StaticFetch(result={"processed_items": []})),
        pub_a=("publish", RecordingPublish("a")),
    )
    flow = make_flow([("fetch", "source", {}), ("publish", "pub_a", {})])

    assert _run(orchestrator, flow).status == JobStatus.COMPLETED_NO_ITEMS


def test_ai_skip_ends_job_with_reason(services, make_flow):
    publisher = RecordingPublish("a")
    orchestrator = _orchestrator(
        services,
        source=("fetch", StaticFetch()),
        writer=("ai", ScriptedProcessor({"skip": "not relevant"})),
        pub_a=("publish", publisher),
    )
    flow = make_flow([("fetch", "source", {}), ("ai", "writer", {}), ("publish", "pub_a", {})])

    job = _run(orchestrator, flow)

    assert job.status == "agent_skipped - not relevant"
    assert publisher.outputs == []


def test_tool_result_from_ai_step_replaces_publish_call(services, make_flow):
    publisher = RecordingPublish("a")
    tool_entry = make_entry(
        "tool_result",
        "writer",
        "Published by tool",
        "",
        {"tool_handler": "pub_a"},
        result={"success": True, "post_id": 99},
    )
    processor = ScriptedProcessor({"success": True, "entries": [tool_entry]})
    orchestrator = _orchestrator(
        services,
        source=("fetch", StaticFetch()),
        writer=("ai", processor),
        pub_a=("publish", publisher),
    )
    flow = make_flow([("fetch", "source", {}), ("ai", "writer", {}), ("publish", "pub_a", {})])

    job = _run(orchestrator, flow)

    assert job.status == JobStatus.COMPLETED
    assert publisher.outputs == []
    result = job.step_data[-1]["details"]["results"]["pub_a"]
    assert result["via_tool"] is True
    assert result["post_id"] == 99
    assert processor.received[0]["type"] == "fetch"


def test_unbound_step_fails_validation(services, make_flow):
    orchestrator = _orchestrator(services, source=("fetch", StaticFetch()))
    flow = make_flow([("fetch", "source", {}), ("publish", [], {})])

    job = _run(orchestrator, flow)

    assert job.status == JobStatus.FAILED
    assert job.error["type"] == "ConfigurationError"
    assert job.step_data == []


def test_finished_job_is_not_executed_again(services, make_flow):
    fetcher = StaticFetch()
    orchestrator = _orchestrator(
        services,
        source=("fetch", fetcher),
        pub_a=("publish", RecordingPublish("a")),
    )
    flow = make_flow([("fetch", "source", {}), ("publish", "pub_a", {})])

    job = _run(orchestrator, flow)
    orchestrator.execute_job(job.id)

    assert fetcher.calls == 1


def test_update_step_modifies_fetched_post(services, make_flow):
    from backend.datamachine.handlers.wordpress import WordPressLocalFetch, WordPressUpdate

    post = Post(title="Original", content="<p>Old text</p>", status="publish")
    db.session.add(post)
    db.session.commit()

    rewrite = make_entry("ai", "writer", "Rewritten", "<p>New text</p>")
    orchestrator = _orchestrator(
        services,
        wordpress_local=("fetch", WordPressLocalFetch(services)),
        writer=("ai", ScriptedProcessor({"success": True, "entries": [rewrite]})),
        wordpress_update=("update", WordPressUpdate(services)),
    )
    flow = make_flow(
        [
            ("fetch", "wordpress_local", {}),
            ("ai", "writer", {}),
            ("update", "wordpress_update", {"wordpress_update": {"allow_title_updates": False}}),
        ]
    )

    job = _run(orchestrator, flow)

    assert job.status == JobStatus.COMPLETED
    result = job.step_data[-1]["details"]["results"]["wordpress_update"]
    assert result["data"]["modified_fields"] == ["content"]
    updated = db.session.get(Post, post.id)
    assert updated.content == "<p>New text</p>"
    assert updated.title == "Original"


class SlowClaimingFetch(FetchHandler):
    slug = "source"

    def __init__(self, services, delay: float, claim_first: bool = False) -> None:
        super().__init__(services)
        self.delay = delay
        self.claim_first = claim_first
        self.claimed = None

    def get_fetch_data(self, pipeline_id, handler_settings, flow_id, job_id=None):
        if self.claim_first:
            self.claimed = self.claim(handler_settings, "item-1", job_id)
        time.sleep(self.delay)
        if not self.claim_first:
            self.claimed = self.claim(handler_settings, "item-1", job_id)
        return {"title": "Item", "body": "Body"}


def _with_timeout(services, seconds: float):
    return dataclasses.replace(services, config={**services.config, "HANDLER_TIMEOUT": seconds})


def _join_handler_threads() -> None:
    for thread in threading.enumerate():
        if thread.name.startswith("dm-handler"):
            thread.join(timeout=5)


def test_handlers_run_on_worker_threads_within_the_limit(services, make_flow):
    threaded = _with_timeout(services, 5)
    fetcher = SlowClaimingFetch(threaded, delay=0)
    publisher = RecordingPublish("a")
    orchestrator = _orchestrator(threaded, source=("fetch", fetcher), pub_a=("publish", publisher))
    flow = make_flow([("fetch", "source", {}), ("publish", "pub_a", {})])

    job = _run(orchestrator, flow)
    _join_handler_threads()

    assert job.status == JobStatus.COMPLETED
    assert fetcher.claimed is True
    assert len(publisher.outputs) == 1
    claim = ProcessedItem.query.one()
    assert (claim.item_identifier, claim.job_id) == ("item-1", job.id)


@pytest.mark.parametrize("claim_first", [False, True])
def test_timed_out_fetch_leaves_no_claim_behind(services, make_flow, claim_first):
    threaded = _with_timeout(services, 0.2)
    fetcher = SlowClaimingFetch(threaded, delay=0.6, claim_first=claim_first)
    publisher = RecordingPublish("a")
    orchestrator = _orchestrator(threaded, source=("fetch", fetcher), pub_a=("publish", publisher))
    flow = make_flow([("fetch", "source", {}), ("publish", "pub_a", {})])

    job = _run(orchestrator, flow)
    _join_handler_threads()

    assert job.status == JobStatus.COMPLETED_NO_ITEMS
    assert job.step_data[0]["error"]["type"] == "Timeout"
    assert publisher.outputs == []
    assert ProcessedItem.query.count() == 0
    assert not services.tracker.is_item_processed(flow.ordered_steps()[0].id, "source", "item-1")
