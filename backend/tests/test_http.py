"""Tests for the outbound HTTP client."""

from __future__ import annotations

from types import SimpleNamespace

import requests

from backend.datamachine.engine.http import BROWSER_USER_AGENT, HttpClient


class FakeSession:
    def __init__(self, *responses) -> None:
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append(SimpleNamespace(method=method, url=url, **kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _response(status: int, text: str = "", headers=None):
    return SimpleNamespace(status_code=status, text=text, headers=headers or {})


def test_success_codes_depend_on_method():
    session = FakeSession(_response(201, "{}"), _response(201, "{}"))
    client = HttpClient(session=session)

    assert client.post("http://api.test/items").success is True
    assert client.get("http://api.test/items").success is False


def test_error_message_is_taken_from_json_body():
    session = FakeSession(_response(400, '{"error": {"message": "bad field"}}'))
    client = HttpClient(session=session)

    response = client.put("http://api.test/items/1")

    assert response.success is False
    assert response.error == "HTTP 400: bad field"


def test_connection_errors_become_failed_responses():
    session = FakeSession(requests.ConnectionError("refused"))
    client = HttpClient(session=session)

    response = client.get("http://api.test/")

    assert response.success is False
    assert response.status_code is None
    assert "refused" in response.error


def test_user_agent_names_the_site():
    session = FakeSession(_response(200))
    HttpClient(site_url="http://site.test", session=session).get("http://api.test/")

    assert session.calls[0].headers["User-Agent"].endswith("(+http://site.test)")


def test_blocked_page_is_retried_once_with_standard_headers():
    session = FakeSession(_response(403, "Forbidden"), _response(200, "<html>events</html>"))
    client = HttpClient(session=session)

    response = client.get_page("http://events.test/calendar")

    assert response.success is True
    assert response.used_fallback is True
    assert response.text == "<html>events</html>"
    assert len(session.calls) == 2
    assert session.calls[0].headers["User-Agent"] == BROWSER_USER_AGENT
    assert session.calls[1].headers["User-Agent"].startswith("DataMachine/")


def test_captcha_page_is_retried_and_reported_when_still_blocked():
    challenge = "<html><title>Attention Required! | Cloudflare</title></html>"
    session = FakeSession(_response(200, challenge), _response(200, challenge))
    client = HttpClient(session=session)

    response = client.get_page("http://events.test/calendar")

    assert response.success is False
    assert "Bot protection" in response.error
    assert len(session.calls) == 2


def test_unblocked_page_is_fetched_once():
    session = FakeSession(_response(200, "<html>ok</html>"))
    response = HttpClient(session=session).get_page("http://events.test/")

    assert response.success is True
    assert response.used_fallback is False
    assert len(session.calls) == 1
