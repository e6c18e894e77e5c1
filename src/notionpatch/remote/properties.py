"""Conversion between CSV cell text and Notion property values."""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, List, Mapping, Optional

from notionpatch.errors import ValidationError

logger = logging.getLogger(__name__)

READ_ONLY_TYPES = frozenset({
    "formula",
    "rollup",
    "created_time",
    "created_by",
    "last_edited_time",
    "last_edited_by",
    "unique_id",
    "button",
    "verification",
})

# Notion caps a single rich-text content string at 2000 characters.
RICH_TEXT_LIMIT = 2000

_TRUE = {"true", "yes", "y", "1", "x", "checked", "✓"}
_FALSE = {"false", "no", "n", "0", "", "unchecked"}
_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


# --- Reading ---


def _plain(rich: Optional[List[Mapping[str, Any]]]) -> str:
    return "".join(part.get("plain_text", "") for part in rich or [])


def _format_number(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _format_date(value: Optional[Mapping[str, Any]]) -> str:
    if not value or not value.get("start"):
        return ""
    if value.get("end"):
        return f"{value['start']}/{value['end']}"
    return value["start"]


def _format_user(user: Optional[Mapping[str, Any]]) -> str:
    if not user:
        return ""
    return user.get("name") or user.get("id", "")


def property_to_text(prop: Optional[Mapping[str, Any]]) -> str:
    """Render a page property value as plain text for CSV output."""
    if not prop:
        return ""
    ptype = prop.get("type", "")
    value = prop.get(ptype)

    if ptype in ("title", "rich_text"):
        return _plain(value)
    if ptype == "number":
        return _format_number(value)
    if ptype in ("select", "status"):
        return value.get("name", "") if value else ""
    if ptype == "multi_select":
        return ", ".join(option.get("name", "") for option in value or [])
    if ptype == "date":
        return _format_date(value)
    if ptype == "checkbox":
        return "true" if value else "false"
    if ptype in ("url", "email", "phone_number", "created_time", "last_edited_time"):
        return value or ""
    if ptype == "people":
        return ", ".join(_format_user(user) for user in value or [])
    if ptype in ("created_by", "last_edited_by"):
        return _format_user(value)
    if ptype == "relation":
        return ", ".join(item.get("id", "") for item in value or [])
    if ptype == "files":
        return ", ".join(item.get("name", "") for item in value or [])
    if ptype == "unique_id" and value:
        prefix = value.get("prefix")
        return f"{prefix}-{value.get('number')}" if prefix else _format_number(value.get("number"))
    if ptype == "formula" and value:
        return property_to_text(value)
    if ptype == "rollup" and value:
        if value.get("type") == "array":
            return ", ".join(property_to_text(item) for item in value.get("array") or [])
        return property_to_text(value)
    if isinstance(value, (str, int, float)):
        return str(value)
    return ""


# --- Writing ---


def _rich_text(text: str) -> List[Dict[str, Any]]:
    return [
        {"type": "text", "text": {"content": text[i : i + RICH_TEXT_LIMIT]}}
        for i in range(0, len(text), RICH_TEXT_LIMIT)
    ]


def _split_list(text: str) -> List[str]:
    return [item.strip() for item in text.split(",") if item.strip()]


def _number(name: str, text: str) -> Optional[float]:
    text = text.strip().replace(",", "")
    if not text:
        return None
    if not _NUMBER_RE.match(text):
        raise ValidationError(f'Property "{name}" expects a number, got "{text}".')
    number = float(text)
    return int(number) if number.is_integer() and "." not in text and "e" not in text.lower() else number


def _checkbox(name: str, text: str) -> bool:
    lowered = text.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValidationError(
        f'Property "{name}" expects a checkbox value (true/false), got "{text}".'
    )


def _date(text: str) -> Optional[Dict[str, str]]:
    text = text.strip()
    if not text:
        return None
    start, sep, end = text.partition("/")
    date = {"start": start.strip()}
    if sep and end.strip():
        date["end"] = end.strip()
    return date


def _named(text: str) -> Optional[Dict[str, str]]:
    text = text.strip()
    return {"name": text} if text else None


def _nullable(text: str) -> Optional[str]:
    text = text.strip()
    return text or None


_BUILDERS: Dict[str, Callable[[str, str], Any]] = {
    "title": lambda name, text: _rich_text(text),
    "rich_text": lambda name, text: _rich_text(text),
    "number": _number,
    "select": lambda name, text: _named(text),
    "status": lambda name, text: _named(text),
    "multi_select": lambda name, text: [{"name": item} for item in _split_list(text)],
    "date": lambda name, text: _date(text),
    "checkbox": _checkbox,
    "url": lambda name, text: _nullable(text),
    "email": lambda name, text: _nullable(text),
    "phone_number": lambda name, text: _nullable(text),
    "relation": lambda name, text: [{"id": item} for item in _split_list(text)],
    "people": lambda name, text: [{"id": item} for item in _split_list(text)],
}


def build_notion_properties(
    values: Mapping[str, str],
    schema: Mapping[str, Mapping[str, Any]],
) -> Dict[str, Any]:
    """Turn CSV cells into a ``pages.update`` properties payload.

    *schema* is the ``properties`` object of the parent database (or data
    source). Columns that are not in the schema are rejected; read-only
    property types are skipped.
    """
    payload: Dict[str, Any] = {}
    for name, text in values.items():
        definition = schema.get(name)
        if definition is None:
            known = ", ".join(sorted(schema)) or "(none)"
            raise ValidationError(
                f'Unknown property "{name}". The database has: {known}.',
                details={"property": name},
            )
        ptype = definition.get("type", "")
        if ptype in READ_ONLY_TYPES:
            logger.warning('Skipping read-only property "%s" (%s).', name, ptype)
            continue
        builder = _BUILDERS.get(ptype)
        if builder is None:
            logger.warning('Skipping property "%s": type %s cannot be written from CSV.', name, ptype)
            continue
        payload[name] = {ptype: builder(name, text)}
    return payload


def writable_properties(props: Mapping[str, Mapping[str, Any]]) -> Dict[str, Any]:
    """Reduce page properties to request shape, dropping read-only types."""
    writable: Dict[str, Any] = {}
    for name, prop in props.items():
        ptype = prop.get("type", "")
        if not ptype or ptype in READ_ONLY_TYPES or ptype not in prop:
            continue
        writable[name] = {ptype: prop[ptype]}
    return writable
