"""Tests for the pipeline, flow, job, log and handler REST endpoints."""

from __future__ import annotations

import json

from backend.datamachine.extensions import db
from backend.datamachine.models import Job


def _create_pipeline(client, name: str = "Republish", steps=None):
    if steps is None:
        steps = [
            {"step_type": "fetch", "label": "Source"},
            {"step_type": "publish", "label": "Target"},
        ]
    response = client.post("/api/pipelines", json={"name": name, "steps": steps})
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def _create_flow(client, pipeline_id: int, name: str = "Main", schedule_interval: str = "manual"):
    response = client.post(
        "/api/flows",
        json={"pipeline_id": pipeline_id, "name": name, "schedule_interval": schedule_interval},
    )
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def _bind(client, flow: dict, position: int, slugs, settings=None):
    step = next(step for step in flow["steps"] if step["position"] == position)
    return client.put(
        f"/api/flows/{flow['id']}/steps/{step['id']}",
        json={"handler_slugs": slugs, "handler_settings": settings or {}},
    )


def _runnable_flow(client) -> dict:
    pipeline = _create_pipeline(client)
    flow = _create_flow(client, pipeline["id"])
    assert _bind(client, flow, 0, ["wordpress_local"]).status_code == 200
    assert _bind(client, flow, 1, ["wordpress_publish"], {"wordpress_publish": {"post_status": "draft"}}).status_code == 200
    return flow


def test_pipeline_crud(client):
    pipeline = _create_pipeline(client)
    assert [step["step_type"] for step in pipeline["steps"]] == ["fetch", "publish"]
    assert [step["position"] for step in pipeline["steps"]] == [0, 1]

    duplicate = client.post("/api/pipelines", json={"name": "republish"})
    assert duplicate.status_code == 409

    invalid = client.post("/api/pipelines", json={"name": "Other", "steps": [{"step_type": "transform"}]})
    assert invalid.status_code == 400
    assert "steps[0]" in invalid.get_json()["errors"][0]

    renamed = client.put(f"/api/pipelines/{pipeline['id']}", json={"name": "Renamed"})
    assert renamed.status_code == 200
    assert renamed.get_json()["name"] == "Renamed"

    listing = client.get("/api/pipelines").get_json()
    assert [item["name"] for item in listing] == ["Renamed"]

    assert client.delete(f"/api/pipelines/{pipeline['id']}").status_code == 204
    assert client.get(f"/api/pipelines/{pipeline['id']}").status_code == 404


def test_flow_mirrors_pipeline_steps(client):
    pipeline = _create_pipeline(client)
    flow = _create_flow(client, pipeline["id"])
    assert len(flow["steps"]) == 2
    first = flow["steps"][0]
    assert first["id"] == f"{first['pipeline_step_id']}_{flow['id']}"
    assert first["handler_slugs"] == []

    detail = client.get(f"/api/flows/{flow['id']}").get_json()
    assert len(detail["validation_errors"]) == 2

    added = client.post(f"/api/pipelines/{pipeline['id']}/steps", json={"step_type": "ai", "position": 1})
    assert added.status_code == 201
    assert [step["step_type"] for step in added.get_json()["steps"]] == ["fetch", "ai", "publish"]

    detail = client.get(f"/api/flows/{flow['id']}").get_json()
    assert [step["step_type"] for step in detail["steps"]] == ["fetch", "ai", "publish"]

    ai_step_id = added.get_json()["steps"][1]["id"]
    removed = client.delete(f"/api/pipelines/{pipeline['id']}/steps/{ai_step_id}")
    assert removed.status_code == 200
    assert [step["position"] for step in removed.get_json()["steps"]] == [0, 1]
    detail = client.get(f"/api/flows/{flow['id']}").get_json()
    assert [step["step_type"] for step in detail["steps"]] == ["fetch", "publish"]


def test_reorder_requires_every_step(client):
    pipeline = _create_pipeline(client)
    fetch_id, publish_id = (step["id"] for step in pipeline["steps"])

    partial = client.put(f"/api/pipelines/{pipeline['id']}/steps/order", json={"step_ids": [publish_id]})
    assert partial.status_code == 400

    reordered = client.put(
        f"/api/pipelines/{pipeline['id']}/steps/order", json={"step_ids": [publish_id, fetch_id]}
    )
    assert reordered.status_code == 200
    steps = reordered.get_json()["steps"]
    positions = {step["id"]: step["position"] for step in steps}
    assert positions == {publish_id: 0, fetch_id: 1}


def test_configure_step_validates_handlers(client):
    pipeline = _create_pipeline(client)
    flow = _create_flow(client, pipeline["id"])

    unknown = _bind(client, flow, 0, ["does_not_exist"])
    assert unknown.status_code == 400

    two_fetchers = _bind(client, flow, 0, ["rss", "reddit"])
    assert two_fetchers.status_code == 400
    assert "exactly one handler" in two_fetchers.get_json()["errors"][0]

    wrong_type = _bind(client, flow, 1, ["rss"])
    assert wrong_type.status_code == 400

    multi = _bind(
        client,
        flow,
        1,
        ["bluesky", "threads"],
        {"bluesky": {"link_handling": "none"}, "threads": {}},
    )
    assert multi.status_code == 200
    assert multi.get_json()["handler_slugs"] == ["bluesky", "threads"]

    narrowed = _bind(client, flow, 1, ["threads"], {"bluesky": {"link_handling": "none"}})
    assert narrowed.get_json()["handler_settings"] == {"threads": {}}


def test_flow_schedule(client):
    pipeline = _create_pipeline(client)
    flow = _create_flow(client, pipeline["id"])
    assert flow["next_run_at"] is None

    scheduled = client.put(f"/api/flows/{flow['id']}/schedule", json={"schedule_interval": "daily"})
    assert scheduled.status_code == 200
    assert scheduled.get_json()["next_run_at"] is not None

    invalid = client.put(f"/api/flows/{flow['id']}/schedule", json={"schedule_interval": "yearly"})
    assert invalid.status_code == 400

    manual = client.put(f"/api/flows/{flow['id']}/schedule", json={"schedule_interval": "manual"})
    assert manual.get_json()["next_run_at"] is None


def test_run_flow_queues_job(client):
    flow = _runnable_flow(client)

    response = client.post(f"/api/flows/{flow['id']}/run")
    assert response.status_code == 202
    job_id = response.get_json()["job_id"]

    jobs = client.get(f"/api/jobs?flow_id={flow['id']}").get_json()
    assert [job["job_id"] for job in jobs] == [job_id]
    # No local posts exist, so the fetch step finds nothing.
    assert jobs[0]["status"] == "completed_no_items"

    detail = client.get(f"/api/jobs/{job_id}").get_json()
    assert detail["step_data"][0]["status"] == "no_items"

    filtered = client.get("/api/jobs?status=completed").get_json()
    assert [job["job_id"] for job in filtered] == [job_id]


def test_run_rejects_unconfigured_flow(client):
    pipeline = _create_pipeline(client)
    flow = _create_flow(client, pipeline["id"])

    response = client.post(f"/api/flows/{flow['id']}/run")

    assert response.status_code == 400
    assert client.get("/api/jobs").get_json() == []


def test_job_cleanup(client, services, make_flow):
    flow = make_flow([("fetch", "rss", {}), ("publish", "bluesky", {})])
    failed = Job(flow_id=flow.id, pipeline_id=flow.pipeline_id, status="failed")
    completed = Job(flow_id=flow.id, pipeline_id=flow.pipeline_id, status="completed")
    pending = Job(flow_id=flow.id, pipeline_id=flow.pipeline_id, status="pending")
    db.session.add_all([failed, completed, pending])
    db.session.commit()
    flow_step_id = flow.ordered_steps()[0].id
    services.tracker.mark_item_processed(flow_step_id, "rss", "guid-1", job_id=failed.id)

    assert client.delete(f"/api/jobs/{pending.id}").status_code == 409

    response = client.delete("/api/jobs?status=failed&cleanup_processed=true")
    assert response.status_code == 200
    assert response.get_json() == {"deleted": 1, "released_items": 1}
    assert not services.tracker.is_item_processed(flow_step_id, "rss", "guid-1")

    assert client.delete("/api/jobs?status=everything").status_code == 400

    response = client.delete("/api/jobs?status=all")
    assert response.get_json()["deleted"] == 1
    remaining = client.get("/api/jobs").get_json()
    assert [job["status"] for job in remaining] == ["pending"]


def test_clear_processed_items(client, services, make_flow):
    flow = make_flow([("fetch", "rss", {}), ("publish", "bluesky", {})])
    fetch_step = flow.ordered_steps()[0].id
    services.tracker.mark_item_processed(fetch_step, "rss", "a")
    services.tracker.mark_item_processed(fetch_step, "rss", "b")

    missing = client.delete(f"/api/flows/{flow.id}/processed-items?flow_step_id=999_999")
    assert missing.status_code == 404

    scoped = client.delete(f"/api/flows/{flow.id}/processed-items?flow_step_id={fetch_step}")
    assert scoped.get_json() == {"deleted": 2}
    assert client.delete(f"/api/flows/{flow.id}/processed-items").get_json() == {"deleted": 0}


def test_deleting_flow_removes_jobs(client):
    flow = _runnable_flow(client)
    client.post(f"/api/flows/{flow['id']}/run")

    assert client.delete(f"/api/flows/{flow['id']}").status_code == 204
    assert client.get(f"/api/flows/{flow['id']}").status_code == 404
    assert client.get("/api/jobs").get_json() == []


def test_logs_filter_and_download(client):
    flow = _runnable_flow(client)
    job_id = client.post(f"/api/flows/{flow['id']}/run").get_json()["job_id"]

    entries = client.get(f"/api/logs?job_id={job_id}").get_json()
    assert entries
    assert all(entry["job_id"] == job_id for entry in entries)
    assert any("finished" in entry["message"] for entry in entries)

    assert client.get("/api/logs?level=verbose").status_code == 400
    assert client.get("/api/logs?source=nowhere").status_code == 400

    download = client.get(f"/api/logs/download?job_id={job_id}")
    assert download.status_code == 200
    assert download.mimetype == "application/x-ndjson"
    lines = [json.loads(line) for line in download.get_data(as_text=True).splitlines()]
    assert [line["id"] for line in lines] == sorted(entry["id"] for entry in entries)

    cleared = client.delete("/api/logs")
    assert cleared.get_json()["deleted"] >= len(entries)
    assert client.get("/api/logs").get_json() == []


def test_handler_listing(client):
    fetchers = client.get("/api/handlers?type=fetch").get_json()
    assert {"rss", "reddit", "wordpress_local", "universal_web_scraper"} <= {item["slug"] for item in fetchers}
    assert all(item["type"] == "fetch" for item in fetchers)

    assert client.get("/api/handlers?type=transform").status_code == 400

    reddit = client.get("/api/handlers/reddit").get_json()
    assert reddit["auth_provider"] == "reddit"
    assert reddit["authenticated"] is False
    assert "subreddit" in reddit["settings"]

    assert client.get("/api/handlers/missing").status_code == 404
