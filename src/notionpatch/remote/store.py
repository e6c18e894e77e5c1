"""Notion-backed document store.

Each method issues its remote requests through a ResilientCaller, one
request per retry unit. Reads, deletes and property updates are retried on
any transient failure. Appends are retried only when throttled: a 429 means
the request was never applied, whereas a timeout may hide a successful
append and a blind retry would duplicate the blocks.

Page bodies are rewritten in place. Only the top-level blocks whose
Markdown changed are replaced; blocks Markdown cannot hold are never
touched.
"""

from __future__ import annotations

import difflib
import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from notionpatch.errors import notion_error_code
from notionpatch.remote.markdown import join_rendered, markdown_to_blocks, render_blocks
from notionpatch.resilience import ResilientCaller, get_default_caller

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
APPEND_CHUNK = 100

# Children of these are separate pages, not part of this page's body.
_OPAQUE_TYPES = {"child_page", "child_database"}


@dataclass
class PageSnapshot:
    """A page body as Markdown, plus the top-level blocks it was rendered from.

    ``chunks`` pairs each rendered block id with its Markdown, in page order.
    Blocks left out of the Markdown are not listed.
    """

    page_id: str
    markdown: str
    chunks: List[Tuple[str, str]] = field(default_factory=list)
    skipped: int = 0


def _split_nesting(block: Dict[str, Any]) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    """Trim *block* to two levels for one append request; return the cut children."""
    btype = block["type"]
    body = block.get(btype) or {}
    children = body.get("children") or []
    if not any((child.get(child["type"]) or {}).get("children") for child in children):
        return block, []
    trimmed = {key: value for key, value in body.items() if key != "children"}
    return {**block, btype: trimmed}, children


class NotionDocumentStore:
    """Read and write Notion pages as Markdown."""

    def __init__(self, client: Any, caller: Optional[ResilientCaller] = None) -> None:
        self.client = client
        self.caller = caller or get_default_caller()

    # --- Blocks ---

    async def list_children(
        self,
        block_id: str,
        *,
        page_size: int = PAGE_SIZE,
        cursor: Optional[str] = None,
    ) -> Dict[str, Any]:
        """One page of raw child blocks (``results``, ``has_more``, ``next_cursor``)."""
        kwargs: Dict[str, Any] = {"block_id": block_id, "page_size": min(page_size, PAGE_SIZE)}
        if cursor:
            kwargs["start_cursor"] = cursor
        return await self.caller.with_retry(
            functools.partial(self.client.blocks.children.list, **kwargs),
            "blocks.children.list",
        )

    async def list_all_children(self, block_id: str) -> List[Dict[str, Any]]:
        blocks: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        while True:
            response = await self.list_children(block_id, cursor=cursor)
            blocks.extend(response.get("results", []))
            cursor = response.get("next_cursor")
            if not response.get("has_more") or not cursor:
                return blocks

    async def block_tree(self, block_id: str) -> List[Dict[str, Any]]:
        """Child blocks with their descendants nested under ``"children"``."""
        tree: List[Dict[str, Any]] = []
        for block in await self.list_all_children(block_id):
            if block.get("has_children") and block.get("type") not in _OPAQUE_TYPES:
                block = {**block, "children": await self.block_tree(block["id"])}
            tree.append(block)
        return tree

    async def delete_block(self, block_id: str) -> Dict[str, Any]:
        return await self.caller.with_retry(
            functools.partial(self.client.blocks.delete, block_id=block_id),
            "blocks.delete",
        )

    async def append_blocks(
        self,
        block_id: str,
        blocks: List[Dict[str, Any]],
        *,
        after: Optional[str] = None,
    ) -> int:
        """Append *blocks* under *block_id*, right after the child *after* if given.

        A list nested deeper than one request may carry is sent level by
        level, each level under the block just created for its parent.
        """
        for start in range(0, len(blocks), APPEND_CHUNK):
            chunk = [_split_nesting(block) for block in blocks[start : start + APPEND_CHUNK]]
            kwargs: Dict[str, Any] = {
                "block_id": block_id,
                "children": [payload for payload, _ in chunk],
            }
            if after:
                kwargs["after"] = after
            response = await self.caller.with_rate_limit(
                functools.partial(self.client.blocks.children.append, **kwargs),
                "blocks.children.append",
            )
            created = (response or {}).get("results", [])[: len(chunk)]
            for made, (_, deferred) in zip(created, chunk):
                if deferred:
                    await self.append_blocks(made["id"], deferred)
            if after and created:
                after = created[-1]["id"]
        return len(blocks)

    # --- Markdown ---

    async def read_page(self, page_id: str) -> PageSnapshot:
        logger.debug("Fetching page %s and converting to Markdown.", page_id)
        tree = await self.block_tree(page_id)
        parts: List[Tuple[str, str]] = []
        chunks: List[Tuple[str, str]] = []
        for block, text in zip(tree, render_blocks(tree)):
            if text is None:
                continue
            parts.append((block["type"], text))
            chunks.append((block["id"], text))

        snapshot = PageSnapshot(
            page_id=page_id,
            markdown=join_rendered(parts),
            chunks=chunks,
            skipped=len(tree) - len(chunks),
        )
        if snapshot.skipped:
            logger.info(
                "%d block(s) on %s have no Markdown form; they are left as they are.",
                snapshot.skipped, page_id,
            )
        logger.debug("Converted page to %d chars of Markdown.", len(snapshot.markdown))
        return snapshot

    async def read_markdown(self, page_id: str) -> str:
        return (await self.read_page(page_id)).markdown

    async def write_markdown(
        self,
        page_id: str,
        markdown: str,
        snapshot: Optional[PageSnapshot] = None,
    ) -> Dict[str, int]:
        """Rewrite the page body to *markdown*, touching only what changed.

        *snapshot* is the read the new text was derived from; the page is
        read again when it is missing. Top-level blocks are matched by their
        Markdown: unchanged ones stay, changed ones are replaced by new blocks
        inserted at the same position. Every insert happens before any
        delete, so a failure part-way leaves extra content, never missing
        content.
        """
        if snapshot is None:
            snapshot = await self.read_page(page_id)
        blocks = markdown_to_blocks(markdown)
        old = [text for _, text in snapshot.chunks]
        matcher = difflib.SequenceMatcher(None, old, render_blocks(blocks), autojunk=False)

        doomed: List[str] = []
        appended = 0
        # last edit first, so inserts sharing an anchor keep document order
        for tag, i1, i2, j1, j2 in reversed(matcher.get_opcodes()):
            if tag == "equal":
                continue
            replaced = [block_id for block_id, _ in snapshot.chunks[i1:i2]]
            fresh = blocks[j1:j2]
            if replaced:
                anchor: Optional[str] = replaced[-1]
            elif i1 > 0:
                anchor = snapshot.chunks[i1 - 1][0]
            elif snapshot.chunks:
                # no block to insert after: re-create the first one behind the new text
                anchor = snapshot.chunks[0][0]
                replaced = [anchor]
                fresh = blocks[j1 : j2 + 1]
            else:
                anchor = None
            appended += await self.append_blocks(page_id, fresh, after=anchor)
            doomed.extend(replaced)

        for block_id in doomed:
            await self.delete_block(block_id)
        logger.debug(
            "Rewrote %s: %d blocks removed, %d added, %d kept.",
            page_id, len(doomed), appended, len(old) - len(doomed),
        )
        return {"deleted": len(doomed), "appended": appended}

    # --- Pages and properties ---

    async def retrieve_page(self, page_id: str) -> Dict[str, Any]:
        return await self.caller.with_retry(
            functools.partial(self.client.pages.retrieve, page_id=page_id),
            "pages.retrieve",
        )

    async def update_properties(
        self, page_id: str, properties: Mapping[str, Any]
    ) -> Dict[str, Any]:
        return await self.caller.with_retry(
            functools.partial(
                self.client.pages.update, page_id=page_id, properties=dict(properties)
            ),
            "pages.update",
        )

    async def retrieve_schema(self, database_id: str) -> Dict[str, Any]:
        """Property schema of a database, via its primary data source when it has one."""
        data_sources = getattr(self.client, "data_sources", None)
        try:
            database = await self.caller.with_retry(
                functools.partial(self.client.databases.retrieve, database_id=database_id),
                "databases.retrieve",
            )
        except Exception as exc:
            # Already a data source ID; databases.retrieve cannot see it.
            if data_sources is None or notion_error_code(exc) != "object_not_found":
                raise
            logger.debug("%s is not a database; trying it as a data source.", database_id)
            source = await self.retrieve_data_source(database_id)
            return source.get("properties", {})

        if database.get("properties"):
            return database["properties"]
        sources = database.get("data_sources") or []
        if sources and data_sources is not None:
            source = await self.retrieve_data_source(sources[0]["id"])
            return source.get("properties", {})
        return database.get("properties", {})

    async def retrieve_data_source(self, data_source_id: str) -> Dict[str, Any]:
        return await self.caller.with_retry(
            functools.partial(
                self.client.data_sources.retrieve, data_source_id=data_source_id
            ),
            "data_sources.retrieve",
        )
