"""Heuristic section finder used when no structured data is present."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass

from bs4 import BeautifulSoup, Comment

_NOISE_TAGS = ("script", "style", "noscript", "svg", "iframe", "form", "header", "footer", "nav")
_KEEP_ATTRIBUTES = {"href", "src", "datetime", "alt"}
_EVENT_HINT = re.compile(r"event|calendar|show|concert|gig|listing|schedule", re.IGNORECASE)

MIN_TEXT_LENGTH = 40
MAX_SECTION_CHARS = 20_000


@dataclass
class HtmlSection:
    html: str
    identifier: str
    hint: str


class SectionFinder:
    """Locate blocks that probably hold event listings and clean them for an AI step."""

    def __init__(self, max_sections: int = 25) -> None:
        self.max_sections = max_sections

    def find_sections(self, html: str, url: str) -> list[HtmlSection]:
        soup = BeautifulSoup(html, "html.parser")
        for tag in soup.find_all(_NOISE_TAGS):
            tag.decompose()
        for comment in soup.find_all(string=lambda value: isinstance(value, Comment)):
            comment.extract()

        candidates = []
        for tag in soup.find_all(["article", "li", "div", "section"]):
            marker = " ".join(tag.get("class") or []) + " " + (tag.get("id") or "")
            if not _EVENT_HINT.search(marker):
                continue
            # Skip wrappers whose children are candidates themselves.
            if tag.find(["article", "li", "div", "section"], class_=_EVENT_HINT):
                continue
            text = tag.get_text(" ", strip=True)
            if len(text) < MIN_TEXT_LENGTH:
                continue
            candidates.append((tag, marker.strip()))

        if not candidates:
            main = soup.find("main") or soup.body
            if main is not None and len(main.get_text(" ", strip=True)) >= MIN_TEXT_LENGTH:
                candidates.append((main, main.name))

        sections = []
        for tag, hint in candidates[: self.max_sections]:
            cleaned = clean_html(tag)
            text = re.sub(r"\s+", " ", tag.get_text(" ", strip=True)).lower()
            sections.append(
                HtmlSection(
                    html=cleaned[:MAX_SECTION_CHARS],
                    identifier=hashlib.md5(f"{url}|{text}".encode("utf-8")).hexdigest(),
                    hint=hint,
                )
            )
        return sections


def clean_html(tag) -> str:
    """Drop presentational attributes and collapse whitespace."""

    fragment = BeautifulSoup(str(tag), "html.parser")
    for node in fragment.find_all(True):
        node.attrs = {key: value for key, value in node.attrs.items() if key in _KEEP_ATTRIBUTES}
    return re.sub(r"\s+", " ", str(fragment)).strip()
