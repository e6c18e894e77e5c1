"""notionpatch CLI: Typer application with page, block and init commands."""

from __future__ import annotations

import asyncio
import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterator, Optional, TypeVar

import typer
from rich.console import Console

from notionpatch import __version__
from notionpatch.config import ConfigError, NotionPatchConfig, load_config
from notionpatch.errors import NotionPatchError, ValidationError, to_cli_error
from notionpatch.logger import configure_logging
from notionpatch.output import json_report, terminal
from notionpatch.resilience import ResilientCaller, configure_default_caller

T = TypeVar("T")

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="notionpatch",
    help="Read and patch Notion pages as line-numbered Markdown.",
    add_completion=False,
    no_args_is_help=True,
)
page_app = typer.Typer(help="Read, patch and update pages.", no_args_is_help=True)
block_app = typer.Typer(help="List and delete blocks.", no_args_is_help=True)
app.add_typer(page_app, name="page")
app.add_typer(block_app, name="block")

console = Console(stderr=True)


@dataclass
class GlobalOptions:
    token: Optional[str] = None
    config: NotionPatchConfig = field(default_factory=NotionPatchConfig)
    json_mode: bool = False
    dry_run: bool = False
    yes: bool = False
    verbose: bool = False


def _options(ctx: typer.Context) -> GlobalOptions:
    return ctx.obj if isinstance(ctx.obj, GlobalOptions) else GlobalOptions()


# --- Error and output plumbing ---


def _fail(opts: GlobalOptions, err: NotionPatchError) -> None:
    if opts.json_mode:
        print(json_report.render(json_report.failure(err)))
    else:
        terminal.print_error(err)
    raise typer.Exit(code=int(err.exit_code))


@contextmanager
def _handle_errors(opts: GlobalOptions) -> Iterator[None]:
    """Turn any failure into an error report and its exit code."""
    try:
        yield
    except (typer.Exit, typer.Abort):
        raise
    except ConfigError as exc:
        _fail(opts, ValidationError(f"Config error: {exc}"))
    except Exception as exc:
        logger.debug("Command failed", exc_info=True)
        _fail(opts, to_cli_error(exc))


def _emit(
    opts: GlobalOptions,
    data: Any,
    meta: Optional[Dict[str, Any]] = None,
    human: Optional[Callable[[], None]] = None,
) -> None:
    if opts.json_mode:
        print(json_report.render(json_report.success(data, meta)))
    elif human is not None:
        human()
    else:
        terminal.print_data(data)


def _build_caller(config: NotionPatchConfig) -> ResilientCaller:
    return ResilientCaller.from_config(config)


def _execute(opts: GlobalOptions, action: Callable[[Any], Awaitable[T]]) -> T:
    """Run *action* with a NotionDocumentStore inside a fresh event loop."""
    from notionpatch.remote.client import close_client, get_client
    from notionpatch.remote.store import NotionDocumentStore

    caller = configure_default_caller(_build_caller(opts.config))
    client = get_client(opts.token, config=opts.config)

    async def runner() -> T:
        try:
            return await action(NotionDocumentStore(client, caller))
        finally:
            await close_client()

    return asyncio.run(runner())


def _read_input(value: str) -> str:
    """Read a file path, or stdin for ``-``."""
    if value == "-":
        return sys.stdin.read()
    path = Path(value)
    if not path.is_file():
        raise ValidationError(f"File not found: {value}")
    return path.read_text(encoding="utf-8")


# ── page read ─────────────────────────────────────────────────────────────────


@page_app.command("read")
def page_read(
    ctx: typer.Context,
    page: str = typer.Argument(..., help="Notion page ID or URL"),
    numbered_lines: bool = typer.Option(False, "--numbered-lines", help="Prefix each line with its number"),
) -> None:
    """Print a page as Markdown."""
    from notionpatch.ids import parse_notion_id
    from notionpatch.patch import add_line_numbers
    from notionpatch.remote.markdown import extract_title

    opts = _options(ctx)
    with _handle_errors(opts):
        page_id = parse_notion_id(page)
        markdown = _execute(opts, lambda store: store.read_markdown(page_id))
        text = add_line_numbers(markdown) if numbered_lines else markdown
        _emit(
            opts,
            {
                "pageId": page_id,
                "title": extract_title(markdown),
                "lineCount": len(markdown.split("\n")),
                "markdown": text,
            },
            human=lambda: terminal.print_data(text),
        )


# ── page patch ────────────────────────────────────────────────────────────────


def _build_operation(
    lines: Optional[str],
    diff: Optional[str],
    append: bool,
    prepend: bool,
    content: Optional[str],
    file: Optional[str],
):
    from notionpatch.patch import Append, LineRange, Prepend, UnifiedDiff
    from notionpatch.validators import parse_line_range

    modes = [name for name, on in (
        ("--lines", lines is not None),
        ("--diff", diff is not None),
        ("--append", append),
        ("--prepend", prepend),
    ) if on]
    if len(modes) != 1:
        raise ValidationError(
            "Choose exactly one of --lines START:END, --diff FILE, --append or --prepend."
        )
    if content is not None and file is not None:
        raise ValidationError("Use either --content or --file, not both.")

    if diff is not None:
        return UnifiedDiff(patch=_read_input(diff))

    if content is None and file is None:
        raise ValidationError(
            f"{modes[0]} needs new text: pass --content TEXT or --file PATH (- for stdin)."
        )
    text = content if content is not None else _read_input(file)  # type: ignore[arg-type]

    if lines is not None:
        start, end = parse_line_range(lines)
        return LineRange(start=start, end=end, content=text)
    if append:
        return Append(content=text)
    return Prepend(content=text)


@page_app.command("patch")
def page_patch(
    ctx: typer.Context,
    page: str = typer.Argument(..., help="Notion page ID or URL"),
    lines: Optional[str] = typer.Option(None, "--lines", "-l", help="Replace lines START:END (END may be 'end'; START:START-1 inserts before START)"),
    diff: Optional[str] = typer.Option(None, "--diff", help="Apply a unified diff file (- for stdin)"),
    append: bool = typer.Option(False, "--append", help="Append content to the page"),
    prepend: bool = typer.Option(False, "--prepend", help="Prepend content to the page"),
    content: Optional[str] = typer.Option(None, "--content", "-c", help="New text"),
    file: Optional[str] = typer.Option(None, "--file", "-f", help="Read new text from a file (- for stdin)"),
) -> None:
    """Edit a page by line range, unified diff, append or prepend."""
    from notionpatch.ids import parse_notion_id
    from notionpatch.safety import confirm_action, is_dry_run, show_diff_preview
    from notionpatch.workflows import patch_page

    opts = _options(ctx)
    with _handle_errors(opts):
        page_id = parse_notion_id(page)
        operation = _build_operation(lines, diff, append, prepend, content, file)
        dry_run = is_dry_run(opts.dry_run)

        def gate(result) -> bool:
            if not opts.json_mode:
                show_diff_preview(result.diff)
            return confirm_action(
                f"Apply {result.lines_changed} changed line(s) to page {page_id}?", opts.yes
            )

        outcome = _execute(
            opts,
            lambda store: patch_page(store, page_id, operation, dry_run=dry_run, confirm=gate),
        )

        def human() -> None:
            if not outcome.result.diff:
                terminal.print_notice("No changes: the page already matches.")
            elif outcome.dry_run:
                show_diff_preview(outcome.result.diff)
                terminal.print_notice(
                    f"[DRY RUN] Would change {outcome.result.lines_changed} line(s) on page {page_id}."
                )
            elif outcome.cancelled:
                terminal.print_notice("Aborted; the page was not changed.")
            else:
                terminal.print_success(f"Patched page {page_id}.")
                terminal.print_table(
                    [
                        ("Lines changed", str(outcome.result.lines_changed)),
                        ("Blocks removed", str(outcome.blocks_deleted)),
                        ("Blocks added", str(outcome.blocks_appended)),
                    ]
                )

        _emit(opts, outcome.to_dict(), human=human)
        if outcome.cancelled:
            raise typer.Exit(code=1)


# ── page properties ───────────────────────────────────────────────────────────


@page_app.command("properties")
def page_properties(
    ctx: typer.Context,
    page: str = typer.Argument(..., help="Notion page ID or URL"),
) -> None:
    """Print a page's properties as a one-row CSV."""
    from notionpatch.ids import parse_notion_id
    from notionpatch.workflows import export_page_properties

    opts = _options(ctx)
    with _handle_errors(opts):
        page_id = parse_notion_id(page)
        csv_text = _execute(opts, lambda store: export_page_properties(store, page_id))
        _emit(opts, {"pageId": page_id, "csv": csv_text}, human=lambda: terminal.print_data(csv_text))


# ── page write-properties ─────────────────────────────────────────────────────


@page_app.command("write-properties")
def page_write_properties(
    ctx: typer.Context,
    page: str = typer.Argument(..., help="Notion page ID or URL"),
    file: str = typer.Option(..., "--file", "-f", help="CSV with a header and one data row (- for stdin)"),
) -> None:
    """Update a page's properties from a CSV row. Other properties are kept."""
    from notionpatch.csvio import csv_to_rows
    from notionpatch.ids import parse_notion_id
    from notionpatch.safety import is_dry_run
    from notionpatch.workflows import write_page_properties

    opts = _options(ctx)
    with _handle_errors(opts):
        page_id = parse_notion_id(page)
        rows = csv_to_rows(_read_input(file))
        if not rows:
            raise ValidationError("CSV file contains no data rows.")
        if len(rows) > 1:
            raise ValidationError(
                "CSV file must contain exactly one data row for page write-properties."
            )
        dry_run = is_dry_run(opts.dry_run)
        outcome = _execute(
            opts, lambda store: write_page_properties(store, page_id, rows[0], dry_run=dry_run)
        )

        names = ", ".join(outcome.properties)

        def human() -> None:
            if outcome.dry_run:
                terminal.print_notice(f"[DRY RUN] Would update [{names}] on page {page_id}.")
            else:
                terminal.print_success(f"Updated properties [{names}] on page {page_id}.")

        _emit(opts, outcome.to_dict(), human=human)


# ── block list ────────────────────────────────────────────────────────────────


@block_app.command("list")
def block_list(
    ctx: typer.Context,
    block: str = typer.Argument(..., help="Notion block or page ID"),
    numbered_lines: bool = typer.Option(False, "--numbered-lines", help="Prefix each line with its number"),
    raw: bool = typer.Option(False, "--raw", help="Output raw Notion block objects (JSON)"),
    limit: int = typer.Option(100, "--limit", help="Maximum blocks to return (1-100)"),
    cursor: Optional[str] = typer.Option(None, "--cursor", help="Pagination cursor"),
) -> None:
    """List the child blocks of a block or page."""
    from notionpatch.ids import parse_notion_id
    from notionpatch.patch import add_line_numbers
    from notionpatch.validators import validate_limit

    opts = _options(ctx)
    with _handle_errors(opts):
        block_id = parse_notion_id(block)
        page_size = validate_limit(limit)

        if raw or opts.json_mode:
            response = _execute(
                opts,
                lambda store: store.list_children(block_id, page_size=page_size, cursor=cursor),
            )
            results = response.get("results", [])
            meta = {
                "hasMore": bool(response.get("has_more")),
                "cursor": response.get("next_cursor"),
                "totalCount": len(results),
            }
            if opts.json_mode:
                _emit(opts, {"blocks": results}, meta)
            else:
                terminal.print_data({"blocks": results, **meta})
            return

        markdown = _execute(opts, lambda store: store.read_markdown(block_id))
        terminal.print_data(add_line_numbers(markdown) if numbered_lines else markdown)


# ── block delete ──────────────────────────────────────────────────────────────


@block_app.command("delete")
def block_delete(
    ctx: typer.Context,
    block: str = typer.Argument(..., help="Notion block ID"),
) -> None:
    """Delete (archive) a block."""
    from notionpatch.ids import parse_notion_id
    from notionpatch.safety import confirm_action, is_dry_run

    opts = _options(ctx)
    with _handle_errors(opts):
        block_id = parse_notion_id(block)

        if is_dry_run(opts.dry_run):
            _emit(
                opts,
                {"blockId": block_id, "deleted": False, "dryRun": True},
                human=lambda: terminal.print_notice(f"[DRY RUN] Would delete block {block_id}."),
            )
            return

        if not confirm_action(f"Delete block {block_id}?", opts.yes):
            if not opts.json_mode:
                terminal.print_notice("Aborted; the block was not deleted.")
            raise typer.Exit(code=1)

        _execute(opts, lambda store: store.delete_block(block_id))
        _emit(
            opts,
            {"blockId": block_id, "deleted": True},
            human=lambda: terminal.print_success(f"Deleted block {block_id}."),
        )


# ── init ──────────────────────────────────────────────────────────────────────


@app.command()
def init(
    home: bool = typer.Option(False, "--global", help="Write to ~/.notionpatch.toml instead of ./"),
) -> None:
    """Generate a starter .notionpatch.toml."""
    from notionpatch.config import write_starter_config
    from notionpatch.config.defaults import CONFIG_FILENAME

    config_path = (Path.home() if home else Path.cwd()) / CONFIG_FILENAME
    try:
        write_starter_config(config_path)
    except ConfigError as exc:
        console.print(f"[yellow]⚠[/yellow]  {exc}")
        raise typer.Exit(code=1) from exc
    console.print(f"[green]✓[/green] Created {config_path}")


# ── version ───────────────────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        print(f"notionpatch {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", "-V", callback=_version_callback,
        is_eager=True, help="Show version and exit",
    ),
    token: Optional[str] = typer.Option(None, "--token", help="Notion integration token (default: NOTION_TOKEN)"),
    config: Optional[str] = typer.Option(None, "--config", help="Path to .notionpatch.toml"),
    json_output: bool = typer.Option(False, "--json", help="Emit JSON envelopes on stdout"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would change without writing"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompts"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging on stderr"),
) -> None:
    """notionpatch: line-level editing of Notion pages."""
    configure_logging(verbose)

    cfg = NotionPatchConfig()
    if ctx.invoked_subcommand != "init":
        try:
            cfg = load_config(config)
        except ConfigError as exc:
            if json_output:
                err = ValidationError(f"Config error: {exc}")
                print(json_report.render(json_report.failure(err)))
            else:
                console.print(f"[bold red]Config error:[/bold red] {exc}")
            raise typer.Exit(code=2) from exc

    ctx.obj = GlobalOptions(
        token=token,
        config=cfg,
        json_mode=json_output or cfg.output.format == "json",
        dry_run=dry_run,
        yes=yes,
        verbose=verbose,
    )
