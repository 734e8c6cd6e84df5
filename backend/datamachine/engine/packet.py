"""Helpers for the newest-first data packet passed between steps."""

from __future__ import annotations

import time
from typing import Any

DataEntry = dict[str, Any]


def make_entry(
    entry_type: str,
    handler: str | None,
    title: str = "",
    body: str = "",
    metadata: dict[str, Any] | None = None,
    attachments: list[Any] | None = None,
    **extra: Any,
) -> DataEntry:
    """Build a data entry with the normalized shape every step understands."""

    entry: DataEntry = {
        "type": entry_type,
        "handler": handler,
        "content": {"title": title or "", "body": body or ""},
        "metadata": dict(metadata or {}),
        "attachments": list(attachments or []),
        "timestamp": int(time.time()),
    }
    entry.update(extra)
    return entry


def prepend(entries: list[DataEntry], entry: DataEntry) -> list[DataEntry]:
    """Return a new packet with ``entry`` placed at index 0."""

    return [entry, *entries]


def latest(entries: list[DataEntry]) -> DataEntry | None:
    return entries[0] if entries else None
