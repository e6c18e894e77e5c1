"""JSON envelopes for scripted callers and AI agents."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from notionpatch.errors import NotionPatchError


def success(data: Any, meta: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """``{"ok": true, "data": ..., "meta"?: ...}``"""
    envelope: Dict[str, Any] = {"ok": True, "data": data}
    if meta is not None:
        envelope["meta"] = meta
    return envelope


def failure(err: NotionPatchError) -> Dict[str, Any]:
    """``{"ok": false, "error": {"code", "message", "details"?}}``"""
    error: Dict[str, Any] = {"code": err.code.value, "message": err.message}
    if err.details is not None:
        error["details"] = err.details
    return {"ok": False, "error": error}


def render(envelope: Dict[str, Any]) -> str:
    """Return formatted JSON string."""
    return json.dumps(envelope, indent=2, ensure_ascii=False, default=str)
