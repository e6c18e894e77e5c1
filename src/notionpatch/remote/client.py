"""Notion API client singleton with token resolution."""

from __future__ import annotations

import logging
from typing import Optional

from notion_client import AsyncClient

from notionpatch.config import NotionPatchConfig, resolve_token

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 30_000

_client: Optional[AsyncClient] = None


def get_client(
    token: Optional[str] = None,
    *,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    config: Optional[NotionPatchConfig] = None,
) -> AsyncClient:
    """Get or create the Notion API client.

    The token is resolved from --token, then NOTION_TOKEN, then the config
    file.
    """
    global _client
    if _client is not None:
        return _client

    auth = resolve_token(token, config)
    if config is not None:
        timeout_ms = config.client.timeout_ms
    logger.debug("Initializing Notion API client (timeout %dms).", timeout_ms)
    _client = AsyncClient(auth=auth, timeout_ms=timeout_ms)
    return _client


async def close_client() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


def reset_client() -> None:
    """Forget the cached client without closing it (tests)."""
    global _client
    _client = None
