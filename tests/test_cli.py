"""Tests for the CLI commands."""

import json
from pathlib import Path

import pytest
from conftest import DATABASE_ID, PAGE_ID, FakeAPIError, make_fast_caller
from typer.testing import CliRunner

from notionpatch import __version__
from notionpatch.cli import app
from notionpatch.config.defaults import CONFIG_FILENAME
from notionpatch.remote import client as client_module

runner = CliRunner()

BLOCK_ID = "aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee"


@pytest.fixture
def notion(fake_notion, monkeypatch):
    """Route every command to the in-memory Notion with a non-sleeping caller."""
    monkeypatch.setattr(client_module, "get_client", lambda *args, **kwargs: fake_notion)
    monkeypatch.setattr("notionpatch.cli._build_caller", lambda config: make_fast_caller())
    return fake_notion


@pytest.fixture(autouse=True)
def no_cached_client():
    client_module.reset_client()
    yield
    client_module.reset_client()


def _json(result):
    return json.loads(result.stdout)


class TestVersion:
    def test_version_flag(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"notionpatch {__version__}" in result.stdout


class TestInit:
    def test_creates_config(self, isolated_env: Path):
        result = runner.invoke(app, ["init"])
        assert result.exit_code == 0
        assert (isolated_env / CONFIG_FILENAME).exists()

    def test_refuses_overwrite(self, isolated_env: Path):
        (isolated_env / CONFIG_FILENAME).write_text("existing")
        result = runner.invoke(app, ["init"])
        assert result.exit_code == 1
        assert (isolated_env / CONFIG_FILENAME).read_text() == "existing"

    def test_global(self):
        result = runner.invoke(app, ["init", "--global"])
        assert result.exit_code == 0
        assert (Path.home() / CONFIG_FILENAME).exists()

    def test_ignores_broken_config(self, isolated_env: Path):
        (isolated_env / "broken.toml").write_text("not [valid")
        result = runner.invoke(app, ["--config", "broken.toml", "init"])
        assert result.exit_code == 0


class TestConfigErrors:
    def test_invalid_config_exits_2(self, isolated_env: Path, notion):
        (isolated_env / CONFIG_FILENAME).write_text("this is not valid [toml")
        result = runner.invoke(app, ["page", "read", PAGE_ID])
        assert result.exit_code == 2

    def test_invalid_config_json_envelope(self, isolated_env: Path, notion):
        (isolated_env / CONFIG_FILENAME).write_text("this is not valid [toml")
        result = runner.invoke(app, ["--json", "page", "read", PAGE_ID])
        assert result.exit_code == 2
        assert _json(result)["error"]["code"] == "VALIDATION_ERROR"

    def test_json_format_from_config(self, isolated_env: Path, notion):
        (isolated_env / CONFIG_FILENAME).write_text('[output]\nformat = "json"\n')
        notion.add_page(PAGE_ID, "hello")
        result = runner.invoke(app, ["page", "read", PAGE_ID])
        assert result.exit_code == 0
        assert _json(result)["data"]["markdown"] == "hello"


class TestPageRead:
    def test_plain_markdown(self, notion, sample_page_markdown):
        notion.add_page(PAGE_ID, sample_page_markdown)
        result = runner.invoke(app, ["page", "read", PAGE_ID])
        assert result.exit_code == 0
        assert result.stdout == sample_page_markdown + "\n"

    def test_numbered_lines(self, notion, sample_doc):
        notion.add_page(PAGE_ID, sample_doc)
        result = runner.invoke(app, ["page", "read", PAGE_ID, "--numbered-lines"])
        assert result.exit_code == 0
        lines = result.stdout.splitlines()
        assert lines[0] == " 1: line 1"
        assert lines[9] == "10: line 10"

    def test_json(self, notion, sample_page_markdown):
        notion.add_page(PAGE_ID, sample_page_markdown)
        url = "https://www.notion.so/Project-Plan-" + PAGE_ID.replace("-", "")
        result = runner.invoke(app, ["--json", "page", "read", url])
        assert result.exit_code == 0
        data = _json(result)
        assert data["ok"] is True
        assert data["data"]["pageId"] == PAGE_ID
        assert data["data"]["title"] == "Project Plan"
        assert data["data"]["lineCount"] == len(sample_page_markdown.split("\n"))

    def test_invalid_id(self, notion):
        result = runner.invoke(app, ["--json", "page", "read", "not-a-page"])
        assert result.exit_code == 2
        assert _json(result)["error"]["code"] == "VALIDATION_ERROR"

    def test_not_found(self, notion):
        result = runner.invoke(app, ["--json", "page", "read", PAGE_ID])
        assert result.exit_code == 4
        assert _json(result)["error"]["code"] == "NOT_FOUND"

    def test_missing_token(self):
        result = runner.invoke(app, ["--json", "page", "read", PAGE_ID])
        assert result.exit_code == 3
        assert _json(result)["error"]["code"] == "AUTH_ERROR"

    def test_rate_limit_exhaustion(self, notion):
        notion.add_page(PAGE_ID, "hello")
        notion.fail_next("blocks.children.list", *(FakeAPIError(429, "rate_limited") for _ in range(3)))
        result = runner.invoke(app, ["page", "read", PAGE_ID])
        assert result.exit_code == 5


class TestPagePatch:
    def test_line_range(self, notion, sample_doc):
        notion.add_page(PAGE_ID, sample_doc)
        result = runner.invoke(
            app, ["--json", "--yes", "page", "patch", PAGE_ID, "--lines", "3:3", "--content", "THREE"]
        )
        assert result.exit_code == 0
        data = _json(result)["data"]
        assert data["written"] is True
        assert data["linesChanged"] == 2
        assert "+THREE" in data["diff"]
        assert "THREE" in notion.children[PAGE_ID][0]["paragraph"]["rich_text"][0]["text"]["content"]

    def test_insert_before_line(self, notion, sample_doc):
        notion.add_page(PAGE_ID, sample_doc)
        result = runner.invoke(
            app, ["--json", "--yes", "page", "patch", PAGE_ID, "--lines", "3:2", "--content", "inserted"]
        )
        assert result.exit_code == 0
        data = _json(result)["data"]
        assert data["linesChanged"] == 1
        text = notion.children[PAGE_ID][0]["paragraph"]["rich_text"][0]["text"]["content"]
        assert text.split("\n")[1:4] == ["line 2", "inserted", "line 3"]

    def test_human_output(self, notion, sample_doc):
        notion.add_page(PAGE_ID, sample_doc)
        result = runner.invoke(app, ["--yes", "page", "patch", PAGE_ID, "-l", "1:end", "-c", "all new"])
        assert result.exit_code == 0
        assert "blocks.children.append" in notion.calls

    def test_diff_file(self, notion, sample_doc, sample_diff, isolated_env: Path):
        notion.add_page(PAGE_ID, sample_doc)
        (isolated_env / "change.diff").write_text(sample_diff)
        result = runner.invoke(app, ["--json", "-y", "page", "patch", PAGE_ID, "--diff", "change.diff"])
        assert result.exit_code == 0
        assert _json(result)["data"]["linesChanged"] == 3

    def test_append_from_stdin(self, notion):
        notion.add_page(PAGE_ID, "first")
        result = runner.invoke(
            app, ["--json", "-y", "page", "patch", PAGE_ID, "--append", "-f", "-"], input="second"
        )
        assert result.exit_code == 0
        assert _json(result)["data"]["written"] is True

    def test_dry_run(self, notion, sample_doc):
        notion.add_page(PAGE_ID, sample_doc)
        result = runner.invoke(
            app, ["--json", "--dry-run", "page", "patch", PAGE_ID, "--prepend", "-c", "# Header"]
        )
        assert result.exit_code == 0
        data = _json(result)["data"]
        assert data["dryRun"] is True
        assert data["written"] is False
        assert "blocks.children.append" not in notion.calls

    def test_non_interactive_without_yes_aborts(self, notion, sample_doc):
        notion.add_page(PAGE_ID, sample_doc)
        result = runner.invoke(app, ["page", "patch", PAGE_ID, "--append", "-c", "more"])
        assert result.exit_code == 1
        assert "blocks.children.append" not in notion.calls

    def test_conflict(self, notion, sample_doc, isolated_env: Path):
        notion.add_page(PAGE_ID, sample_doc)
        (isolated_env / "stale.diff").write_text("@@ -2,1 +2,1 @@\n-line two\n+line 2b\n")
        result = runner.invoke(app, ["--json", "-y", "page", "patch", PAGE_ID, "--diff", "stale.diff"])
        assert result.exit_code == 1
        assert _json(result)["error"]["code"] == "PATCH_CONFLICT"

    @pytest.mark.parametrize(
        "args",
        [
            ["-c", "x"],
            ["--append", "--prepend", "-c", "x"],
            ["--lines", "0:3", "-c", "x"],
            ["--lines", "3:1", "-c", "x"],
            ["--lines", "3:4"],
            ["--append", "-c", "x", "-f", "other.md"],
            ["--diff", "missing.diff"],
        ],
    )
    def test_invalid_arguments(self, notion, args):
        notion.add_page(PAGE_ID, "body")
        result = runner.invoke(app, ["--json", "-y", "page", "patch", PAGE_ID, *args])
        assert result.exit_code == 2
        assert _json(result)["error"]["code"] == "VALIDATION_ERROR"
        assert notion.calls == []


class TestPageProperties:
    @pytest.fixture
    def db_page(self, notion):
        notion.database_data[DATABASE_ID] = {
            "object": "database",
            "properties": {"Name": {"type": "title"}, "Status": {"type": "select"}},
        }
        notion.add_page(
            PAGE_ID,
            parent={"type": "database_id", "database_id": DATABASE_ID},
            properties={
                "Name": {"type": "title", "title": [{"plain_text": "Task"}]},
                "Status": {"type": "select", "select": {"name": "Todo"}},
            },
        )
        return notion

    def test_export(self, db_page):
        result = runner.invoke(app, ["page", "properties", PAGE_ID])
        assert result.exit_code == 0
        assert result.stdout == f"_notion_id,Name,Status\n{PAGE_ID},Task,Todo\n"

    def test_write(self, db_page, isolated_env: Path):
        (isolated_env / "row.csv").write_text("_notion_id,Status\n,Done\n")
        result = runner.invoke(app, ["--json", "page", "write-properties", PAGE_ID, "--file", "row.csv"])
        assert result.exit_code == 0
        assert _json(result)["data"]["properties"] == ["Status"]
        assert db_page.page_data[PAGE_ID]["properties"]["Status"]["select"] == {"name": "Done"}

    def test_write_rejects_several_rows(self, db_page, isolated_env: Path):
        (isolated_env / "rows.csv").write_text("_notion_id,Status\n,Done\n,Todo\n")
        result = runner.invoke(app, ["--json", "page", "write-properties", PAGE_ID, "-f", "rows.csv"])
        assert result.exit_code == 2
        assert "pages.update" not in db_page.calls

    def test_write_unknown_column(self, db_page, isolated_env: Path):
        (isolated_env / "row.csv").write_text("_notion_id,Owner\n,me\n")
        result = runner.invoke(app, ["--json", "page", "write-properties", PAGE_ID, "-f", "row.csv"])
        assert result.exit_code == 2
        assert _json(result)["error"]["details"] == {"property": "Owner"}


class TestBlockCommands:
    def test_list_json(self, notion):
        notion.add_page(PAGE_ID, "\n\n".join(f"p{i}" for i in range(5)))
        result = runner.invoke(app, ["--json", "block", "list", PAGE_ID, "--limit", "2"])
        assert result.exit_code == 0
        data = _json(result)
        assert len(data["data"]["blocks"]) == 2
        assert data["meta"] == {"hasMore": True, "cursor": "2", "totalCount": 2}

    def test_list_markdown(self, notion):
        notion.add_page(PAGE_ID, "one\n\ntwo")
        result = runner.invoke(app, ["block", "list", PAGE_ID, "--numbered-lines"])
        assert result.exit_code == 0
        assert result.stdout.splitlines() == ["1: one", "2: ", "3: two"]

    def test_list_raw(self, notion):
        notion.add_page(PAGE_ID, "one")
        result = runner.invoke(app, ["block", "list", PAGE_ID, "--raw"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["blocks"][0]["type"] == "paragraph"

    @pytest.mark.parametrize("limit", ["0", "101"])
    def test_list_limit_bounds(self, notion, limit):
        result = runner.invoke(app, ["--json", "block", "list", PAGE_ID, "--limit", limit])
        assert result.exit_code == 2

    def _add_block(self, notion):
        notion.add_page(PAGE_ID)
        notion.children[PAGE_ID].append({"id": BLOCK_ID, "type": "divider", "divider": {}})

    def test_delete(self, notion):
        self._add_block(notion)
        result = runner.invoke(app, ["--json", "--yes", "block", "delete", BLOCK_ID])
        assert result.exit_code == 0
        assert _json(result)["data"] == {"blockId": BLOCK_ID, "deleted": True}
        assert notion.children[PAGE_ID] == []

    def test_delete_dry_run(self, notion):
        self._add_block(notion)
        result = runner.invoke(app, ["--json", "--dry-run", "block", "delete", BLOCK_ID])
        assert result.exit_code == 0
        assert _json(result)["data"]["dryRun"] is True
        assert len(notion.children[PAGE_ID]) == 1

    def test_delete_requires_confirmation(self, notion):
        self._add_block(notion)
        result = runner.invoke(app, ["block", "delete", BLOCK_ID])
        assert result.exit_code == 1
        assert len(notion.children[PAGE_ID]) == 1
