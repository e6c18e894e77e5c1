"""Shared test fixtures: sample documents and diffs, an in-memory Notion, fast callers."""

from __future__ import annotations

import copy
import itertools
import textwrap
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

from notionpatch.remote.markdown import markdown_to_blocks
from notionpatch.resilience import (
    ResilientCaller,
    RetryPolicy,
    SlidingWindowLimiter,
    reset_default_caller,
)

PAGE_ID = "12345678-1234-1234-1234-1234567890ab"
DATABASE_ID = "abcdefab-cdef-abcd-efab-cdefabcdefab"


def _levels(block: Dict[str, Any]) -> int:
    """Block levels in an append payload: 1 for a block without children."""
    children = block.get(block["type"], {}).get("children") or []
    return 1 + max((_levels(child) for child in children), default=0)


class FakeAPIError(Exception):
    """Shaped like notion_client.APIResponseError: status, code, headers."""

    def __init__(self, status: int, code: str, message: str = "", headers: Optional[Dict[str, str]] = None):
        super().__init__(message or code)
        self.status = status
        self.code = code
        self.headers = headers or {}


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeNotion:
    """Just enough of notion_client.AsyncClient, backed by dicts.

    Failures can be queued per endpoint label with ``fail_next``.
    """

    def __init__(self) -> None:
        self.page_data: Dict[str, Dict[str, Any]] = {}
        self.children: Dict[str, List[Dict[str, Any]]] = {}
        self.database_data: Dict[str, Dict[str, Any]] = {}
        self.calls: List[str] = []
        self.append_requests: List[Dict[str, Any]] = []
        self._failures: Dict[str, List[BaseException]] = {}
        self._ids = itertools.count(1)

        self.pages = SimpleNamespace(retrieve=self._pages_retrieve, update=self._pages_update)
        self.blocks = SimpleNamespace(
            children=SimpleNamespace(list=self._children_list, append=self._children_append),
            delete=self._blocks_delete,
        )
        self.databases = SimpleNamespace(retrieve=self._databases_retrieve)

    # --- setup helpers ---

    def fail_next(self, label: str, *errors: BaseException) -> None:
        self._failures.setdefault(label, []).extend(errors)

    def add_page(self, page_id: str, markdown: str = "", **page: Any) -> None:
        self.page_data[page_id] = {"object": "page", "id": page_id, "properties": {}, **page}
        self.children[page_id] = []
        self._store_blocks(page_id, markdown_to_blocks(markdown))

    def add_block(self, parent_id: str, btype: str, body: Dict[str, Any], **fields: Any) -> Dict[str, Any]:
        """Append a raw block, shaped as the API returns it."""
        block_id = fields.pop("id", None) or f"block-{next(self._ids)}"
        block = {"object": "block", "id": block_id, "type": btype, btype: body, "has_children": False, **fields}
        self.children[parent_id].append(block)
        self.children.setdefault(block_id, [])
        return block

    def ids(self, parent_id: str) -> List[str]:
        return [block["id"] for block in self.children[parent_id]]

    def _store_blocks(
        self, parent_id: str, blocks: List[Dict[str, Any]], after: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        siblings = self.children.setdefault(parent_id, [])
        position = len(siblings)
        if after is not None:
            position = [block["id"] for block in siblings].index(after) + 1
        stored = []
        for block in blocks:
            block = copy.deepcopy(block)
            btype = block["type"]
            nested = block.get(btype, {}).pop("children", [])
            block_id = f"block-{next(self._ids)}"
            block.update({"id": block_id, "has_children": bool(nested)})
            siblings.insert(position, block)
            position += 1
            self.children[block_id] = []
            self._store_blocks(block_id, nested)
            stored.append(block)
        return stored

    def _call(self, label: str) -> None:
        self.calls.append(label)
        queued = self._failures.get(label)
        if queued:
            raise queued.pop(0)

    # --- endpoints ---

    async def _pages_retrieve(self, page_id: str) -> Dict[str, Any]:
        self._call("pages.retrieve")
        if page_id not in self.page_data:
            raise FakeAPIError(404, "object_not_found")
        return copy.deepcopy(self.page_data[page_id])

    async def _pages_update(self, page_id: str, properties: Dict[str, Any]) -> Dict[str, Any]:
        self._call("pages.update")
        page = self.page_data[page_id]
        for name, value in properties.items():
            (ptype, payload), = value.items()
            page["properties"][name] = {"type": ptype, ptype: payload}
        return copy.deepcopy(page)

    async def _children_list(
        self, block_id: str, page_size: int = 100, start_cursor: Optional[str] = None
    ) -> Dict[str, Any]:
        self._call("blocks.children.list")
        if block_id not in self.children:
            raise FakeAPIError(404, "object_not_found")
        items = self.children[block_id]
        start = int(start_cursor) if start_cursor else 0
        end = start + page_size
        return {
            "object": "list",
            "results": copy.deepcopy(items[start:end]),
            "has_more": end < len(items),
            "next_cursor": str(end) if end < len(items) else None,
        }

    async def _children_append(
        self, block_id: str, children: List[Dict[str, Any]], after: Optional[str] = None
    ) -> Dict[str, Any]:
        self._call("blocks.children.append")
        self.append_requests.append({"block_id": block_id, "children": children, "after": after})
        if any(_levels(block) > 2 for block in children):
            raise FakeAPIError(400, "validation_error", "Too many levels of nesting in children.")
        for siblings in self.children.values():
            for parent in siblings:
                if parent["id"] == block_id:
                    parent["has_children"] = True
        return {"object": "list", "results": copy.deepcopy(self._store_blocks(block_id, children, after))}

    async def _blocks_delete(self, block_id: str) -> Dict[str, Any]:
        self._call("blocks.delete")
        for siblings in self.children.values():
            for block in siblings:
                if block["id"] == block_id:
                    siblings.remove(block)
                    return {**block, "archived": True}
        raise FakeAPIError(404, "object_not_found")

    async def _databases_retrieve(self, database_id: str) -> Dict[str, Any]:
        self._call("databases.retrieve")
        if database_id not in self.database_data:
            raise FakeAPIError(404, "object_not_found")
        return copy.deepcopy(self.database_data[database_id])

    async def aclose(self) -> None:
        pass


def make_fast_caller(**policy: Any) -> ResilientCaller:
    """A caller that never really sleeps; delays are recorded on ``.slept``."""
    slept: List[float] = []

    async def no_sleep(seconds: float) -> None:
        slept.append(seconds)

    caller = ResilientCaller(
        limiter=SlidingWindowLimiter(max_calls=10_000, window_seconds=1.0),
        policy=RetryPolicy(jitter=False, **policy),
        sleep=no_sleep,
    )
    caller.slept = slept  # type: ignore[attr-defined]
    return caller


# --- fixtures ---


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch):
    """Keep tests away from the real home directory, tokens and shared caller."""
    home = tmp_path / "home"
    home.mkdir()
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(work)
    for var in ("NOTION_TOKEN", "NOTIONPATCH_FORMAT", "NOTIONPATCH_MAX_ATTEMPTS"):
        monkeypatch.delenv(var, raising=False)
    reset_default_caller()
    yield work
    reset_default_caller()


@pytest.fixture
def fake_notion() -> FakeNotion:
    return FakeNotion()


@pytest.fixture
def fast_caller() -> ResilientCaller:
    return make_fast_caller()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sample_doc() -> str:
    """Ten-line Markdown document."""
    return "\n".join(f"line {i}" for i in range(1, 11))


@pytest.fixture
def sample_page_markdown() -> str:
    return textwrap.dedent("""\
        # Project Plan

        Intro paragraph.

        - first item
        - second item

        ## Notes

        Closing words.""")


@pytest.fixture
def sample_diff() -> str:
    """Replace 'line 5' with two lines."""
    return textwrap.dedent("""\
        --- a/page.md
        +++ b/page.md
        @@ -3,5 +3,6 @@
         line 3
         line 4
        -line 5
        +line five
        +line five and a half
         line 6
         line 7
    """)
