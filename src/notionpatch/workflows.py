"""Multi-step page workflows.

Each remote step is its own retry unit. Merges and patches are computed
once, between the read and the write, and never re-run by a retry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from notionpatch.csvio import CsvRow, rows_to_csv
from notionpatch.errors import ValidationError
from notionpatch.patch import PatchOperation, PatchResult, apply_patch_operation
from notionpatch.remote.properties import build_notion_properties, writable_properties
from notionpatch.remote.store import NotionDocumentStore

logger = logging.getLogger(__name__)

Gate = Callable[[PatchResult], bool]


@dataclass
class PatchOutcome:
    page_id: str
    result: PatchResult
    written: bool = False
    dry_run: bool = False
    cancelled: bool = False
    blocks_deleted: int = 0
    blocks_appended: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pageId": self.page_id,
            "linesChanged": self.result.lines_changed,
            "diff": self.result.diff,
            "written": self.written,
            "dryRun": self.dry_run,
            "cancelled": self.cancelled,
            "blocksDeleted": self.blocks_deleted,
            "blocksAppended": self.blocks_appended,
        }


@dataclass
class PropertiesOutcome:
    page_id: str
    properties: List[str] = field(default_factory=list)
    written: bool = False
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pageId": self.page_id,
            "properties": self.properties,
            "written": self.written,
            "dryRun": self.dry_run,
        }


async def patch_page(
    store: NotionDocumentStore,
    page_id: str,
    operation: PatchOperation,
    *,
    dry_run: bool = False,
    confirm: Optional[Gate] = None,
) -> PatchOutcome:
    """Read the page, apply *operation* locally, and write it back.

    *confirm* sees the computed result and may veto the write. Unchanged
    documents are never written.
    """
    snapshot = await store.read_page(page_id)
    original = snapshot.markdown
    result = apply_patch_operation(original, operation)
    outcome = PatchOutcome(page_id=page_id, result=result, dry_run=dry_run)

    if result.patched == original:
        logger.info("Page %s is unchanged; nothing to write.", page_id)
        return outcome
    if dry_run:
        return outcome
    if confirm is not None and not confirm(result):
        outcome.cancelled = True
        return outcome

    stats = await store.write_markdown(page_id, result.patched, snapshot)
    outcome.written = True
    outcome.blocks_deleted = stats["deleted"]
    outcome.blocks_appended = stats["appended"]
    logger.info("Patched page %s (%d lines changed).", page_id, result.lines_changed)
    return outcome


async def _parent_schema(store: NotionDocumentStore, page: Dict[str, Any]) -> Dict[str, Any]:
    parent = page.get("parent") or {}
    ptype = parent.get("type")
    if ptype == "data_source_id":
        source = await store.retrieve_data_source(parent["data_source_id"])
        return source.get("properties", {})
    if ptype == "database_id":
        return await store.retrieve_schema(parent["database_id"])
    raise ValidationError(
        "Page does not belong to a database; cannot resolve property schema."
    )


async def write_page_properties(
    store: NotionDocumentStore,
    page_id: str,
    row: CsvRow,
    *,
    dry_run: bool = False,
) -> PropertiesOutcome:
    """Update only the properties named in *row*; all others keep their values.

    Existing page properties are the base and CSV values overwrite them.
    The merge happens once, before the retried update call.
    """
    page = await store.retrieve_page(page_id)
    schema = await _parent_schema(store, page)

    csv_properties = build_notion_properties(row.properties, schema)
    if not csv_properties:
        raise ValidationError("CSV row contains no writable properties.")
    merged = {**writable_properties(page.get("properties") or {}), **csv_properties}

    outcome = PropertiesOutcome(
        page_id=page_id, properties=list(csv_properties), dry_run=dry_run
    )
    logger.debug("Updating %d properties on page %s.", len(csv_properties), page_id)
    if dry_run:
        return outcome

    await store.update_properties(page_id, merged)
    outcome.written = True
    return outcome


async def export_page_properties(store: NotionDocumentStore, page_id: str) -> str:
    """One-row CSV of the page's properties."""
    page = await store.retrieve_page(page_id)
    properties = page.get("properties") or {}
    return rows_to_csv(
        [{"id": page.get("id", page_id), "properties": properties}], list(properties)
    )
