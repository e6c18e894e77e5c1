"""Secret redaction for error messages and log lines."""

from __future__ import annotations

import re

_REDACTED = "[REDACTED]"

_NOTION_TOKEN_RE = re.compile(r"\bntn_[A-Za-z0-9_-]+")
_LEGACY_SECRET_RE = re.compile(r"\bsecret_[A-Za-z0-9_-]+")
_BEARER_RE = re.compile(r"Bearer\s+[A-Za-z0-9_.-]+")
_LONG_HEX_RE = re.compile(r"\b[a-fA-F0-9]{40,}\b")


def sanitize_message(message: str) -> str:
    """Strip token-shaped substrings from *message*.

    Covers Notion integration tokens (``ntn_``), legacy ``secret_`` tokens,
    ``Bearer`` headers and long hex runs.
    """
    message = _NOTION_TOKEN_RE.sub(_REDACTED, message)
    message = _LEGACY_SECRET_RE.sub(_REDACTED, message)
    message = _BEARER_RE.sub(f"Bearer {_REDACTED}", message)
    return _LONG_HEX_RE.sub(_REDACTED, message)


def mask_token(token: str) -> str:
    """Partial reveal for logs: first 4 + last 4 chars.

    Example: ``ntn_abcdefgh12345678`` → ``ntn_...5678``
    """
    if len(token) <= 12:
        return "****"
    return f"{token[:4]}...{token[-4:]}"
