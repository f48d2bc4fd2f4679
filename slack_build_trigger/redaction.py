"""Helpers for keeping secrets and large payloads out of logs and replies."""

from __future__ import annotations

from typing import Iterable

PLACEHOLDER = "********"


def redact(text: str | None, secrets: Iterable[str | None]) -> str:
    """Return *text* with every non-empty secret replaced by a placeholder."""

    if text is None:
        return "(unknown)"
    for secret in secrets:
        if secret:
            text = text.replace(secret, PLACEHOLDER)
    return text


def truncate(text: str | None, max_length: int) -> str:
    if text is None:
        return ""
    return text[:max_length]
