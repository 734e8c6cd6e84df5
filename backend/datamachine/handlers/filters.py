"""Filters shared by fetch handlers: timeframe and keyword matching."""

from __future__ import annotations

from datetime import datetime, timedelta

from bs4 import BeautifulSoup

TIMEFRAMES = {
    "all_time": None,
    "24_hours": timedelta(hours=24),
    "72_hours": timedelta(hours=72),
    "7_days": timedelta(days=7),
    "30_days": timedelta(days=30),
}


def timeframe_cutoff(timeframe: str | None, now: datetime | None = None) -> datetime | None:
    """Return the oldest acceptable timestamp, ``None`` for no limit."""

    delta = TIMEFRAMES.get(timeframe or "all_time")
    if delta is None:
        return None
    return (now or datetime.utcnow()) - delta


def split_terms(value: str | None) -> list[str]:
    return [term.strip().lower() for term in (value or "").split(",") if term.strip()]


def keyword_match(text: str, search: str | None) -> bool:
    """True when ``search`` is empty or any comma separated term occurs in ``text``."""

    terms = split_terms(search)
    if not terms:
        return True
    haystack = (text or "").lower()
    return any(term in haystack for term in terms)


def keyword_excluded(text: str, exclude: str | None) -> bool:
    terms = split_terms(exclude)
    if not terms:
        return False
    haystack = (text or "").lower()
    return any(term in haystack for term in terms)


def passes_keywords(text: str, settings: dict) -> bool:
    return keyword_match(text, settings.get("search")) and not keyword_excluded(
        text, settings.get("exclude_keywords")
    )


def strip_tags(html: str | None) -> str:
    if not html:
        return ""
    return BeautifulSoup(html, "html.parser").get_text(" ")
