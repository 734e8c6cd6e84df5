"""Seed the database with sample posts and an example republishing pipeline."""
from __future__ import annotations

import pathlib
import sys

ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.datamachine import create_app
from backend.datamachine.engine.flows import sync_flow_steps
from backend.datamachine.extensions import db
from backend.datamachine.models.flow import Flow
from backend.datamachine.models.pipeline import Pipeline, PipelineStep
from backend.datamachine.models.post import Post

EXAMPLE_PIPELINE_NAME = "Republish Local Posts"
EXAMPLE_FLOW_NAME = "Daily Draft Copy"

SAMPLE_POSTS = (
    ("Welcome to Data Machine", "<p>Pipelines fetch one item per run and hand it to the next step.</p>"),
    ("Scheduling flows", "<p>Flows run on an interval or manually from the API.</p>"),
    ("Processed items", "<p>Every fetched item is remembered so it is never handled twice.</p>"),
)

STEPS = (
    ("fetch", "Local posts", "wordpress_local", {"post_status": "publish", "timeframe_limit": "all_time"}),
    ("publish", "Draft copy", "wordpress_publish", {"post_status": "draft", "include_source": True}),
)


def _ensure_posts() -> int:
    created = 0
    for title, content in SAMPLE_POSTS:
        if Post.query.filter_by(title=title).first() is None:
            db.session.add(Post(title=title, content=content, status="publish"))
            created += 1
    return created


def _ensure_example_pipeline() -> tuple[bool, bool]:
    pipeline = Pipeline.query.filter_by(name=EXAMPLE_PIPELINE_NAME).first()
    if pipeline is not None:
        return False, False

    pipeline = Pipeline(name=EXAMPLE_PIPELINE_NAME)
    for position, (step_type, label, _, _) in enumerate(STEPS):
        pipeline.steps.append(PipelineStep(step_type=step_type, label=label, position=position, config={}))
    db.session.add(pipeline)
    db.session.flush()

    flow = Flow(pipeline_id=pipeline.id, name=EXAMPLE_FLOW_NAME, schedule_interval="manual")
    db.session.add(flow)
    db.session.flush()
    sync_flow_steps(flow)
    for flow_step, (_, _, slug, settings) in zip(flow.ordered_steps(), STEPS):
        flow_step.handler_slugs = [slug]
        flow_step.handler_settings = {slug: dict(settings)}
    return True, True


def main() -> None:
    app = create_app()
    with app.app_context():
        created_posts = _ensure_posts()
        created_pipeline, created_flow = _ensure_example_pipeline()
        db.session.commit()

        print(
            "Seed completed",
            f"posts created={created_posts}",
            f"pipelines created={int(created_pipeline)}",
            f"flows created={int(created_flow)}",
        )


if __name__ == "__main__":
    main()
