"""Rich terminal rendering. Status goes to stderr, data to stdout."""

from __future__ import annotations

import json
import sys
from typing import Any, Iterable, Tuple

from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from notionpatch.errors import NotionPatchError

console = Console(stderr=True)


def print_data(data: Any) -> None:
    """Write command data to stdout. Strings are written verbatim."""
    if isinstance(data, str):
        sys.stdout.write(data if data.endswith("\n") else data + "\n")
    else:
        sys.stdout.write(json.dumps(data, indent=2, ensure_ascii=False, default=str) + "\n")
    sys.stdout.flush()


def print_success(message: str) -> None:
    console.print(Text.assemble(("✔ ", "bold green"), message))


def print_notice(message: str) -> None:
    console.print(Text(message, style="cyan"))


def print_error(err: NotionPatchError) -> None:
    console.print(
        Text.assemble(("Error", "bold red"), f" [{err.code.value}]: ", err.message)
    )
    if err.details is not None:
        console.print(
            Text(json.dumps(err.details, indent=2, default=str), style="dim")
        )


def print_diff(diff: str, title: str = "Changes preview") -> None:
    """Syntax-highlight a unified diff."""
    console.print()
    console.print(f"[bold]{title}:[/bold]")
    if not diff:
        console.print("[dim]  (no changes)[/dim]")
        return
    console.print(Syntax(diff.rstrip("\n"), "diff", theme="ansi_dark", background_color="default"))
    console.print()


def print_table(rows: Iterable[Tuple[str, str]], title: str = "") -> None:
    """Key/value table."""
    table = Table(
        title=title or None,
        show_header=False,
        title_style="bold",
        border_style="dim",
    )
    table.add_column("Key", style="bold cyan")
    table.add_column("Value")
    for key, value in rows:
        table.add_row(key, value)
    console.print(table)
