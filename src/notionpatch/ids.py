"""Notion ID parsing: raw UUIDs (dashed or not) and Notion URLs."""

from __future__ import annotations

import re

from notionpatch.errors import ValidationError

_NOTION_ID_RE = re.compile(
    r"^[a-f0-9]{8}-?[a-f0-9]{4}-?[a-f0-9]{4}-?[a-f0-9]{4}-?[a-f0-9]{12}$", re.IGNORECASE
)
# URL slugs end in the undashed ID: /My-Page-1234...abcd?v=...
_URL_ID_RE = re.compile(r"([a-f0-9]{32})(?:\?|$)", re.IGNORECASE)
_DASHED_ID_RE = re.compile(
    r"([a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12})", re.IGNORECASE
)


def is_notion_id(value: str) -> bool:
    return bool(_NOTION_ID_RE.match(value))


def normalize_id(value: str) -> str:
    """Return the dashed 8-4-4-4-12 form of a 32-hex-digit ID."""
    clean = value.replace("-", "")
    return "-".join(
        (clean[0:8], clean[8:12], clean[12:16], clean[16:20], clean[20:32])
    )


def parse_notion_id(text: str) -> str:
    """Extract and normalise a Notion ID from user input."""
    value = text.strip()

    match = _URL_ID_RE.search(value)
    if match:
        return normalize_id(match.group(1))

    match = _DASHED_ID_RE.search(value)
    if match:
        return normalize_id(match.group(1))

    if not is_notion_id(value):
        raise ValidationError(
            f'Invalid Notion ID: "{text}". Expected a UUID or Notion URL.'
        )
    return normalize_id(value)
