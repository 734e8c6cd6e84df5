"""Outbound HTTP client used by handlers and auth providers."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import requests

logger = logging.getLogger("datamachine.http")

VERSION = "1.0"

SUCCESS_CODES = {
    "GET": (200, 202),
    "POST": (200, 201, 202),
    "PUT": (200, 201, 204),
    "PATCH": (200, 204),
    "DELETE": (200, 202, 204),
}

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

BROWSER_HEADERS = {
    "User-Agent": BROWSER_USER_AGENT,
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,"
        "image/webp,image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.7"
    ),
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Connection": "keep-alive",
}

# Lower-cased banner fragments served by bot protection instead of content.
CAPTCHA_SIGNATURES = (
    "sgcaptcha",
    "cf-browser-verification",
    "cf-chl-",
    "attention required! | cloudflare",
    "please verify you are a human",
    "g-recaptcha",
    "h-captcha",
)

_ERROR_KEYS = ("message", "error", "error_description", "detail")


@dataclass
class HttpResponse:
    success: bool
    status_code: int | None = None
    text: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    error: str | None = None
    url: str | None = None
    used_fallback: bool = False

    def json(self) -> Any:
        """Decode the body, returning ``None`` for non-JSON payloads."""

        try:
            return json.loads(self.text) if self.text else None
        except ValueError:
            return None


class HttpClient:
    """Thin wrapper around :mod:`requests` with per-method success codes."""

    def __init__(
        self,
        timeout: float = 120,
        site_url: str = "",
        session: requests.Session | None = None,
    ) -> None:
        self.timeout = timeout
        self.user_agent = f"DataMachine/{VERSION} (+{site_url})" if site_url else f"DataMachine/{VERSION}"
        self.session = session or requests.Session()

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        data: Any = None,
        json_body: Any = None,
        auth: tuple[str, str] | requests.auth.AuthBase | None = None,
        browser_mode: bool = False,
        context: str = "HTTP Request",
        timeout: float | None = None,
    ) -> HttpResponse:
        method = method.upper()
        if method not in SUCCESS_CODES:
            logger.error("%s: invalid method %s", context, method)
            return HttpResponse(success=False, error="Invalid HTTP method", url=url)

        merged = dict(BROWSER_HEADERS) if browser_mode else {"User-Agent": self.user_agent}
        merged.update(headers or {})

        try:
            response = self.session.request(
                method,
                url,
                headers=merged,
                params=params,
                data=data,
                json=json_body,
                auth=auth,
                timeout=timeout or self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("%s: %s %s failed: %s", context, method, url, exc)
            return HttpResponse(success=False, error=f"Failed to connect to {url}: {exc}", url=url)

        result = HttpResponse(
            success=response.status_code in SUCCESS_CODES[method],
            status_code=response.status_code,
            text=response.text or "",
            headers=dict(response.headers),
            url=url,
        )
        if not result.success:
            result.error = _extract_error(result)
            logger.warning(
                "%s: %s %s returned HTTP %s", context, method, url, response.status_code
            )
        return result

    def get(self, url: str, **kwargs: Any) -> HttpResponse:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> HttpResponse:
        return self.request("POST", url, **kwargs)

    def put(self, url: str, **kwargs: Any) -> HttpResponse:
        return self.request("PUT", url, **kwargs)

    def patch(self, url: str, **kwargs: Any) -> HttpResponse:
        return self.request("PATCH", url, **kwargs)

    def delete(self, url: str, **kwargs: Any) -> HttpResponse:
        return self.request("DELETE", url, **kwargs)

    def get_page(self, url: str, context: str = "Page Fetch") -> HttpResponse:
        """Fetch HTML with browser headers, retrying once with plain headers when blocked."""

        response = self.get(url, browser_mode=True, context=context)
        if not _looks_blocked(response):
            return response

        logger.info("%s: %s looks blocked, retrying with standard headers", context, url)
        retry = self.get(url, browser_mode=False, context=context)
        retry.used_fallback = True
        if retry.success and has_captcha_signature(retry.text):
            retry.success = False
            retry.error = "Bot protection challenge returned instead of content"
        return retry


def has_captcha_signature(text: str) -> bool:
    lowered = (text or "").lower()
    return any(signature in lowered for signature in CAPTCHA_SIGNATURES)


def _looks_blocked(response: HttpResponse) -> bool:
    if response.status_code == 403:
        return True
    return response.success and has_captcha_signature(response.text)


def _extract_error(response: HttpResponse) -> str:
    message = f"HTTP {response.status_code}"
    payload = response.json()
    if isinstance(payload, dict):
        for key in _ERROR_KEYS:
            value = payload.get(key)
            if isinstance(value, dict):
                value = value.get("message")
            if value:
                return f"{message}: {value}"
    return message
