from __future__ import annotations

import pathlib
import secrets
import sys
from collections.abc import Callable

import pytest
from flask import g
from sqlalchemy.pool import StaticPool

ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _load_dependencies():
    from datamachine import Config, create_app
    from backend.datamachine.extensions import db, limiter

    return Config, create_app, db, limiter


ConfigBase, create_app, db, limiter = _load_dependencies()


class TestConfig(ConfigBase):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite+pysqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {
        "poolclass": StaticPool,
        "connect_args": {"check_same_thread": False},
    }
    CORS_ALLOWED_ORIGINS = "http://localhost"
    DB_INIT_MAX_RETRIES = 1
    SITE_URL = "http://site.test"
    HANDLER_TIMEOUT = 0
    ENABLE_SCHEDULER = False
    RUN_JOBS_IN_BACKGROUND = False
    HANDLER_MODULES = ()


class FakeHttp:
    """Stands in for ``HttpClient``; responses are queued per (method, url)."""

    def __init__(self) -> None:
        self.responses: dict[tuple[str, str], list] = {}
        self.calls: list[tuple[str, str, dict]] = []

    def add(self, method: str, url: str, *, status: int = 200, text: str = "", json_body=None) -> None:
        import json

        from backend.datamachine.engine.http import SUCCESS_CODES, HttpResponse

        body = json.dumps(json_body) if json_body is not None else text
        success = status in SUCCESS_CODES[method.upper()]
        response = HttpResponse(
            success=success,
            status_code=status,
            text=body,
            url=url,
            error=None if success else f"HTTP {status}",
        )
        self.responses.setdefault((method.upper(), url), []).append(response)

    def request(self, method: str, url: str, **kwargs):
        from backend.datamachine.engine.http import HttpResponse

        self.calls.append((method.upper(), url, kwargs))
        queued = self.responses.get((method.upper(), url)) or []
        if not queued:
            return HttpResponse(success=False, status_code=None, error=f"Failed to connect to {url}", url=url)
        # The last queued response keeps answering repeated calls.
        return queued.pop(0) if len(queued) > 1 else queued[0]

    def get(self, url: str, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs):
        return self.request("POST", url, **kwargs)

    def get_page(self, url: str, context: str = "Page Fetch"):
        return self.request("GET", url, context=context)


@pytest.fixture(scope="module")
def app():
    app = create_app(TestConfig)
    ctx = app.app_context()
    ctx.push()
    yield app
    db.session.remove()
    ctx.pop()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def clean_database(app):
    yield

    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    limiter.reset()
    # The module wide app context shares `g` between requests.
    g.pop("_api_protection_enabled", None)


@pytest.fixture()
def services(app):
    return app.extensions["datamachine"]["services"]


@pytest.fixture()
def registry(app):
    return app.extensions["datamachine"]["registry"]


@pytest.fixture()
def orchestrator(app):
    return app.extensions["datamachine"]["orchestrator"]


@pytest.fixture()
def fake_http():
    return FakeHttp()


@pytest.fixture()
def make_flow(app):
    """Create a pipeline and a flow whose steps are bound to handlers.

    ``steps`` is a list of ``(step_type, handler_slugs, handler_settings)``.
    """
    from backend.datamachine.engine.flows import sync_flow_steps
    from backend.datamachine.models import Flow, Pipeline, PipelineStep

    counter = {"value": 0}

    def factory(steps, name: str | None = None, schedule_interval: str = "manual") -> Flow:
        counter["value"] += 1
        pipeline = Pipeline(name=name or f"Pipeline {counter['value']}")
        for position, (step_type, _, _) in enumerate(steps):
            pipeline.steps.append(PipelineStep(step_type=step_type, position=position, config={}))
        db.session.add(pipeline)
        db.session.flush()

        flow = Flow(pipeline_id=pipeline.id, name=f"Flow {counter['value']}", schedule_interval=schedule_interval)
        db.session.add(flow)
        db.session.flush()
        sync_flow_steps(flow)
        for flow_step, (_, slugs, settings) in zip(flow.ordered_steps(), steps):
            slugs = [slugs] if isinstance(slugs, str) else list(slugs)
            flow_step.handler_slugs = slugs
            flow_step.handler_settings = settings or {}
        db.session.commit()
        return flow

    return factory


@pytest.fixture()
def auth_header_factory(app):
    from backend.datamachine.models.auth import ApiToken
    from backend.datamachine.utils.auth import hash_token

    def factory(role: str = "admin", name: str | None = None) -> dict[str, str]:
        token_value = secrets.token_urlsafe(16)
        token = ApiToken(
            name=name or f"Test {role.title()} Token",
            role=role,
            token_hash=hash_token(token_value),
        )
        db.session.add(token)
        db.session.commit()
        return {"Authorization": f"Bearer {token_value}"}

    return factory


@pytest.fixture()
def admin_headers(auth_header_factory: Callable[..., dict[str, str]]):
    return auth_header_factory(role="admin")


@pytest.fixture()
def readonly_headers(auth_header_factory: Callable[..., dict[str, str]]):
    return auth_header_factory(role="readonly")
