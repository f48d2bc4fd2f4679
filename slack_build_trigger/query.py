"""Parsing for the form-encoded bodies Slack sends with slash commands."""

from __future__ import annotations

from typing import Dict
from urllib.parse import unquote_plus


def parse_query_string(body: str | bytes, charset: str = "utf-8") -> Dict[str, str]:
    """Split a form-encoded *body* into a field map.

    Segments without exactly one ``=`` are dropped. Only values are decoded;
    keys are used as sent. Later duplicates replace earlier ones.
    """

    if isinstance(body, bytes):
        body = body.decode(charset, errors="replace")

    fields: Dict[str, str] = {}
    for segment in body.split("&"):
        parts = segment.split("=")
        if len(parts) != 2:
            continue
        key, value = parts
        fields[key] = unquote_plus(value, encoding=charset)
    return fields
