"""Flow construction and handler binding validation."""

from __future__ import annotations

from ..extensions import db
from ..models.flow import Flow, FlowStep
from .registry import HandlerRegistry


def sync_flow_steps(flow: Flow) -> list[FlowStep]:
    """Create missing flow steps so the flow mirrors its pipeline's structure."""

    existing = {step.pipeline_step_id: step for step in flow.steps}
    created: list[FlowStep] = []
    for pipeline_step in flow.pipeline.steps:
        if pipeline_step.id in existing:
            continue
        step = FlowStep(
            id=FlowStep.build_id(pipeline_step.id, flow.id),
            flow_id=flow.id,
            pipeline_step_id=pipeline_step.id,
            pipeline_step=pipeline_step,
            handler_slugs=[],
            handler_settings={},
        )
        db.session.add(step)
        flow.steps.append(step)
        created.append(step)
    return created


def validate_handler_binding(
    registry: HandlerRegistry, step_type: str, slugs: list[str]
) -> list[str]:
    errors: list[str] = []
    if not slugs:
        errors.append(f"{step_type} step requires at least one handler")
        return errors
    if step_type in ("fetch", "ai") and len(slugs) > 1:
        errors.append(f"{step_type} step accepts exactly one handler")
    for slug in slugs:
        if registry.resolve(slug, step_type) is None:
            errors.append(f"handler {slug!r} is not registered for {step_type} steps")
    return errors


def validate_flow(flow: Flow, registry: HandlerRegistry) -> list[str]:
    """Return binding errors for every step of ``flow``."""

    errors: list[str] = []
    steps = flow.ordered_steps()
    if not steps:
        errors.append("flow has no steps")
    for step in steps:
        for message in validate_handler_binding(registry, step.step_type, list(step.handler_slugs or [])):
            errors.append(f"{step.id}: {message}")
    return errors


def sync_pipeline_flows(pipeline) -> None:
    """Mirror a changed pipeline structure into every flow built from it."""

    for flow in pipeline.flows:
        sync_flow_steps(flow)


def delete_flow_steps_for(pipeline_step_id: int) -> int:
    return FlowStep.query.filter_by(pipeline_step_id=pipeline_step_id).delete(
        synchronize_session=False
    )


def delete_flow(flow: Flow, tracker) -> None:
    """Remove a flow together with its jobs and processed item records."""

    from ..models.job import Job

    tracker.delete_for_flow(flow.id)
    Job.query.filter_by(flow_id=flow.id).delete(synchronize_session=False)
    db.session.delete(flow)
