"""Write guards: confirmation prompts, dry-run and diff previews.

Every destructive command funnels through here. Prompts go to stderr so
stdout stays clean for data.
"""

from __future__ import annotations

import logging
import sys

import typer

from notionpatch.output import terminal

logger = logging.getLogger(__name__)


def confirm_action(message: str, skip_confirm: bool) -> bool:
    """Ask before a destructive operation; ``--yes`` skips the prompt.

    A non-interactive stdin always answers no.
    """
    if skip_confirm:
        logger.debug("Auto-confirmed: %s", message)
        return True

    if not sys.stdin.isatty():
        logger.warning("Non-interactive terminal detected. Use --yes to confirm. Aborting.")
        return False

    return typer.confirm(message, default=False, err=True)


def is_dry_run(dry_run: bool) -> bool:
    if dry_run:
        logger.info("[DRY RUN] No changes will be made.")
    return bool(dry_run)


def show_diff_preview(diff: str) -> None:
    terminal.print_diff(diff)
